# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Contract and ContractSequence ORM models."""

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Enum, Numeric, ForeignKey,
)

from database import Base, UTCDateTime, utcnow

CONTRACT_STATUSES = ("DRAFT", "PENDING_APPROVAL", "ACTIVE", "EXPIRED", "TERMINATED", "ARCHIVED")
CONTRACT_TYPES = ("SUPPLIER", "CUSTOMER", "EMPLOYMENT", "LEASE", "LICENSE", "NDA", "SERVICE", "OTHER")


class Contract(Base):
    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contract_number = Column(String(32), unique=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(Enum(*CONTRACT_TYPES, name="contract_type"), nullable=False)
    status = Column(
        Enum(*CONTRACT_STATUSES, name="contract_status"),
        nullable=False,
        default="DRAFT",
        index=True,
    )
    start_date = Column(UTCDateTime(), nullable=True)
    end_date = Column(UTCDateTime(), nullable=True, index=True)
    notice_period_days = Column(Integer, nullable=True)
    auto_renewal = Column(Boolean, nullable=False, default=False)
    value = Column(Numeric(15, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="EUR")
    partner_id = Column(Integer, ForeignKey("partners.id"), nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)


class ContractSequence(Base):
    """Per-year counter behind the gapless contract numbers."""

    __tablename__ = "contract_sequences"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)
