# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""RefreshToken ORM model – one row per login session."""

from sqlalchemy import Column, Integer, String, ForeignKey

from database import Base, UTCDateTime, utcnow


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Opaque random value; the client only ever sees it inside a signed JWT.
    token = Column(String(128), unique=True, nullable=False, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Recorded for the session list and audit, not enforced on refresh.
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(512), nullable=True)
    issued_at = Column(UTCDateTime(), default=utcnow, nullable=False)
    expires_at = Column(UTCDateTime(), nullable=False)
    revoked_at = Column(UTCDateTime(), nullable=True)
