# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Reminder ORM model."""

from sqlalchemy import Column, Integer, String, Boolean, Enum, ForeignKey

from database import Base, UTCDateTime, utcnow

REMINDER_TYPES = ("EXPIRATION", "RENEWAL", "CUSTOM")


class Reminder(Base):
    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(Enum(*REMINDER_TYPES, name="reminder_type"), nullable=False)
    reminder_date = Column(UTCDateTime(), nullable=False, index=True)
    message = Column(String(500), nullable=True)
    # false → true exactly once, by the dispatcher
    is_sent = Column(Boolean, nullable=False, default=False, index=True)
    sent_at = Column(UTCDateTime(), nullable=True)
    contract_id = Column(
        Integer,
        ForeignKey("contracts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)
