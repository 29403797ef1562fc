# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the admin endpoints."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field


# -- Requests --------------------------------------------------------------


class CreateUserRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str  # temporary, mailed to the user
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: str = "USER"  # ADMIN | MANAGER | USER | VIEWER
    department: Optional[str] = Field(default=None, max_length=100)


class RejectUserRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


# -- Responses -------------------------------------------------------------


class UserRow(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    department: Optional[str] = None
    role: str
    status: str
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# -- Audit log responses ---------------------------------------------------


class AuditLogRow(BaseModel):
    id: int
    action: str
    entity_type: str
    entity_id: str
    user_id: Optional[int] = None
    user_email: Optional[str] = None       # resolved from user_id join
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    contract_id: Optional[int] = None
    document_id: Optional[int] = None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogRow]


# -- Jobs ------------------------------------------------------------------


class JobResult(BaseModel):
    processed: int
    failed: int


class CleanupStats(BaseModel):
    soft_deleted: int
    pending_purge: int
    retention_days: int
