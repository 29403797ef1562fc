# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""AuditLog ORM model – append-only record of every data-changing action."""

from sqlalchemy import Column, Integer, String, Enum, ForeignKey, JSON

from database import Base, UTCDateTime, utcnow

AUDIT_ACTIONS = ("CREATE", "READ", "UPDATE", "DELETE", "DOWNLOAD", "EXPORT")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(Enum(*AUDIT_ACTIONS, name="audit_action"), nullable=False, index=True)
    entity_type = Column(String(64), nullable=False, index=True)   # e.g. "Contract"
    entity_id = Column(String(64), nullable=False)
    # The user who performed the action
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)             # supports IPv6
    user_agent = Column(String(512), nullable=True)
    # Plain columns rather than FKs: the trail must outlive purged rows.
    contract_id = Column(Integer, nullable=True, index=True)
    document_id = Column(Integer, nullable=True, index=True)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False, index=True)
