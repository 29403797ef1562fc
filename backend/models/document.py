# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Document ORM model – one row per stored file version."""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey

from database import Base, UTCDateTime, utcnow


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String(255), nullable=False)         # generated
    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(128), nullable=False)        # detected, not claimed
    size = Column(Integer, nullable=False)
    storage_path = Column(String(512), nullable=False)
    # 1, 2, 3 … per (contract_id, original_name)
    version = Column(Integer, nullable=False, default=1)
    is_main_document = Column(Boolean, nullable=False, default=False)
    checksum = Column(String(64), nullable=False)          # sha256 hex
    contract_id = Column(
        Integer,
        ForeignKey("contracts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    uploaded_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)
    # Soft delete markers – purged by the retention sweep
    deleted_at = Column(UTCDateTime(), nullable=True, index=True)
    deleted_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
