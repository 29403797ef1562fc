# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""User ORM model – identity plus all login / 2FA security state."""

from sqlalchemy import Column, Integer, String, Boolean, Enum

from database import Base, UTCDateTime, utcnow

USER_ROLES = ("ADMIN", "MANAGER", "USER", "VIEWER")
USER_STATUSES = ("PENDING", "ACTIVE", "REJECTED")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Always stored lower-cased; lookups lower-case the input too.
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    department = Column(String(100), nullable=True)
    role = Column(Enum(*USER_ROLES, name="user_role"), nullable=False, default="USER")
    # PENDING → ACTIVE | REJECTED, admin action only, never back to PENDING
    status = Column(Enum(*USER_STATUSES, name="user_status"), nullable=False, default="PENDING")
    # Suspension flag, independent of status
    is_active = Column(Boolean, nullable=False, default=True)

    failed_login_attempts = Column(Integer, nullable=False, default=0)
    last_failed_login_at = Column(UTCDateTime(), nullable=True)
    locked_until = Column(UTCDateTime(), nullable=True)

    two_factor_enabled = Column(Boolean, nullable=False, default=False)
    # AES-GCM encrypted "iv.ciphertext"; set by setup, cleared by disable
    two_factor_secret = Column(String(255), nullable=True)
    two_factor_failed_attempts = Column(Integer, nullable=False, default=0)
    two_factor_locked_until = Column(UTCDateTime(), nullable=True)

    last_login_at = Column(UTCDateTime(), nullable=True)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
