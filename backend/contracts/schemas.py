# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the contract endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


# -- Requests --------------------------------------------------------------


class CreateContractRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    type: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    notice_period_days: Optional[int] = Field(default=None, ge=0)
    auto_renewal: bool = False
    value: Optional[Decimal] = Field(default=None, ge=0)
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    partner_id: int
    owner_id: Optional[int] = None  # defaults to the creator


class UpdateContractRequest(BaseModel):
    """Only the fields present in the body are changed."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    notice_period_days: Optional[int] = Field(default=None, ge=0)
    auto_renewal: Optional[bool] = None
    value: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    partner_id: Optional[int] = None
    owner_id: Optional[int] = None


class ChangeStatusRequest(BaseModel):
    status: str


class AssignContractRequest(BaseModel):
    owner_id: int
    reason: Optional[str] = Field(default=None, max_length=500)


# -- Responses -------------------------------------------------------------


class ContractRow(BaseModel):
    id: int
    contract_number: str
    title: str
    description: Optional[str] = None
    type: str
    status: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    notice_period_days: Optional[int] = None
    auto_renewal: bool
    value: Optional[Decimal] = None
    currency: str
    partner_id: int
    owner_id: int
    created_by_id: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
