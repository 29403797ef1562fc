# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic response models for the document endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class DocumentRow(BaseModel):
    id: int
    contract_id: int
    original_name: str
    mime_type: str
    size: int
    version: int
    is_main_document: bool
    checksum: str
    uploaded_by_id: Optional[int] = None
    created_at: datetime
    deleted_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
