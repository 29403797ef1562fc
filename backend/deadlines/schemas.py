# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the reminder endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CreateReminderRequest(BaseModel):
    contract_id: int
    type: str = "CUSTOM"  # EXPIRATION | RENEWAL | CUSTOM
    reminder_date: datetime
    message: Optional[str] = Field(default=None, max_length=500)


class ReminderRow(BaseModel):
    id: int
    contract_id: int
    type: str
    reminder_date: datetime
    message: Optional[str] = None
    is_sent: bool
    sent_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UpcomingReminderRow(BaseModel):
    id: int
    type: str
    reminder_date: datetime
    message: Optional[str] = None
    contract_id: int
    contract_number: str
    contract_title: str
    days_until: int
