# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Token service – access tokens, refresh tokens, rotation and revocation.

Access tokens are short-lived HS256 JWTs and are never stored.

Refresh tokens are opaque 64-byte random values persisted in
``refresh_tokens``.  The client receives them wrapped in a signed JWT
(``type = "refresh"``) so a forged value is rejected before any lookup.

Rotation policy
---------------
Every refresh revokes the presented token and issues a new one.  Presenting a
token that is already revoked is treated as theft: every refresh token of
that user is revoked and the call fails.  The revoke step is a conditional
UPDATE (``WHERE revoked_at IS NULL``) so two concurrent refreshes of the same
token cannot both win; the loser lands in the theft branch.
"""

import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from core.config import Settings
from core.errors import NotFound, Unauthorized
from core.identity import ACCESS_TOKEN_TYPE
from core.logger import logger
from core.security import decode_jwt, encode_jwt
from database import utcnow
from models.refresh_token import RefreshToken
from models.user import User

REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int   # access-token lifetime in seconds


class TokenService:
    def __init__(self, db: Session, settings: Settings, clock: Callable = utcnow):
        self.db = db
        self.settings = settings
        self.clock = clock
        self.access_lifetime = timedelta(minutes=settings.access_token_expire_minutes)
        self.refresh_lifetime = timedelta(days=settings.refresh_token_expire_days)

    # -- access tokens --------------------------------------------------------

    def mint_access_token(self, user: User) -> str:
        claims = {
            "sub": str(user.id),
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "role": user.role,
            "type": ACCESS_TOKEN_TYPE,
        }
        return encode_jwt(claims, self.settings.secret_key, self.access_lifetime, now=self.clock())

    # -- refresh tokens -------------------------------------------------------

    def issue_refresh_token(
        self,
        user_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> str:
        """Persist a new refresh token (caller commits) and return its JWT wrapper."""
        now = self.clock()
        value = secrets.token_hex(64)
        self.db.add(RefreshToken(
            token=value,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:512] or None,
            issued_at=now,
            expires_at=now + self.refresh_lifetime,
        ))
        claims = {"sub": str(user_id), "token": value, "type": REFRESH_TOKEN_TYPE}
        return encode_jwt(claims, self.settings.secret_key, self.refresh_lifetime, now=now)

    def issue_pair(self, user: User, ip_address: Optional[str], user_agent: Optional[str]) -> TokenPair:
        return TokenPair(
            access_token=self.mint_access_token(user),
            refresh_token=self.issue_refresh_token(user.id, ip_address, user_agent),
            expires_in=int(self.access_lifetime.total_seconds()),
        )

    def _unwrap(self, refresh_jwt: str) -> tuple[int, str]:
        payload = decode_jwt(refresh_jwt, self.settings.secret_key)
        if payload.get("type") != REFRESH_TOKEN_TYPE or not payload.get("token"):
            raise Unauthorized("Invalid refresh token")
        try:
            return int(payload["sub"]), payload["token"]
        except (KeyError, TypeError, ValueError):
            raise Unauthorized("Invalid refresh token")

    def rotate(
        self,
        refresh_jwt: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> TokenPair:
        user_id, value = self._unwrap(refresh_jwt)
        now = self.clock()

        stored = self.db.query(RefreshToken).filter(RefreshToken.token == value).first()
        if stored is None or stored.user_id != user_id:
            raise Unauthorized("Refresh token not found")

        if stored.revoked_at is not None:
            self._contain_reuse(stored.user_id, ip_address)

        if stored.expires_at <= now:
            raise Unauthorized("Refresh token has expired")

        user = self.db.query(User).filter(User.id == stored.user_id).first()
        if user is None or not user.is_active or user.status != "ACTIVE":
            raise Unauthorized("User is not active")

        claimed = (
            self.db.query(RefreshToken)
            .filter(RefreshToken.id == stored.id, RefreshToken.revoked_at.is_(None))
            .update({RefreshToken.revoked_at: now}, synchronize_session=False)
        )
        if claimed == 0:
            # Someone else rotated this token between our read and our write.
            self.db.rollback()
            self._contain_reuse(stored.user_id, ip_address)

        pair = self.issue_pair(user, ip_address, user_agent)
        self.db.commit()
        logger.debug("Refresh token rotated for user %s", user.id)
        return pair

    def _contain_reuse(self, user_id: int, ip_address: Optional[str]) -> None:
        revoked = self.revoke_all(user_id)
        logger.warning(
            "Reuse of revoked refresh token for user %s from %s – revoked %d session(s)",
            user_id, ip_address or "unknown", revoked,
        )
        raise Unauthorized("Refresh token has been revoked. Please sign in again.")

    # -- revocation -----------------------------------------------------------

    def revoke(self, user_id: int, refresh_jwt: Optional[str]) -> int:
        """Revoke the presented token.  Invalid or foreign tokens are a no-op."""
        if not refresh_jwt:
            return 0
        try:
            _, value = self._unwrap(refresh_jwt)
        except Unauthorized:
            logger.info("Logout with invalid refresh token for user %s ignored", user_id)
            return 0
        count = (
            self.db.query(RefreshToken)
            .filter(
                RefreshToken.token == value,
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
            )
            .update({RefreshToken.revoked_at: self.clock()}, synchronize_session=False)
        )
        self.db.commit()
        return count

    def revoke_all(self, user_id: int) -> int:
        """Revoke every live token of *user_id*; returns how many were revoked."""
        count = (
            self.db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .update({RefreshToken.revoked_at: self.clock()}, synchronize_session=False)
        )
        self.db.commit()
        return count

    def list_active(self, user_id: int) -> list[RefreshToken]:
        return (
            self.db.query(RefreshToken)
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > self.clock(),
            )
            .order_by(RefreshToken.issued_at.desc())
            .all()
        )

    def revoke_session(self, user_id: int, session_id: int) -> None:
        count = (
            self.db.query(RefreshToken)
            .filter(
                RefreshToken.id == session_id,
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
            )
            .update({RefreshToken.revoked_at: self.clock()}, synchronize_session=False)
        )
        self.db.commit()
        if count == 0:
            raise NotFound("Session not found")

    def cleanup_expired(self) -> int:
        """Hard-delete tokens that are expired or revoked."""
        count = (
            self.db.query(RefreshToken)
            .filter((RefreshToken.expires_at < self.clock()) | RefreshToken.revoked_at.isnot(None))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if count:
            logger.info("Deleted %d expired/revoked refresh tokens", count)
        return count
