# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the partner endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CreatePartnerRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: str = Field(default="SUPPLIER", max_length=32)
    email: Optional[str] = Field(default=None, max_length=255)


class PartnerRow(BaseModel):
    id: int
    name: str
    type: str
    email: Optional[str] = None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
