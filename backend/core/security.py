# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Central security module.  All cryptographic primitives and auth guards live
here.  No other module should touch raw crypto directly.

Responsibilities
----------------
1. Password hashing / verification          (passlib pbkdf2_sha256)
2. Secret encryption at rest                (AES-256-GCM, for TOTP secrets)
3. JWT signing / decoding                   (PyJWT / HS256)
4. Client IP extraction                     (trusted-proxy allowlist)
5. FastAPI dependency guards                (get_current_user, require_roles)
"""

import base64
import ipaddress
import secrets
from datetime import datetime, timedelta
from typing import Iterable, Optional

import jwt as _jwt        # PyJWT
from passlib.hash import pbkdf2_sha256 as _pbkdf2  # pure Python, no binary deps
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.errors import Forbidden, Unauthorized
from database import get_db, utcnow

# Stored for accounts that must never pass a password check (system user).
UNUSABLE_PASSWORD = "!"


# ---------------------------------------------------------------------------
# 1.  pbkdf2_sha256 – password hashing
# ---------------------------------------------------------------------------


class PasswordHasher:
    """One-way hash / verify with a fixed PBKDF2 work factor."""

    def __init__(self, rounds: int = 600_000):
        self._scheme = _pbkdf2.using(rounds=rounds)

    def hash(self, plain: str) -> str:
        """Return the full passlib hash string, e.g. ``$pbkdf2-sha256$...``."""
        return self._scheme.hash(plain)

    def verify(self, plain: str, stored_hash: str) -> bool:
        """
        Constant-time verification.  Malformed or unusable hashes (the system
        account) simply never match.
        """
        try:
            return self._scheme.verify(plain, stored_hash)
        except ValueError:
            return False


# ---------------------------------------------------------------------------
# 2.  AES-256-GCM – secrets at rest
# ---------------------------------------------------------------------------


class SecretBox:
    """
    Encrypt short secrets with AES-256-GCM under the master key.

    The stored form is ``base64(nonce) + "." + base64(ciphertext || tag)``.
    Every call draws a fresh 96-bit nonce; nonce reuse with the same key
    would be catastrophic for GCM.
    """

    def __init__(self, master_key_b64: str):
        key = base64.b64decode(master_key_b64)
        if len(key) != 32:
            raise RuntimeError("MASTER_ENCRYPTION_KEY must decode to exactly 32 bytes")
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        iv = secrets.token_bytes(12)
        ct_and_tag = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        return (
            base64.b64encode(iv).decode("ascii")
            + "."
            + base64.b64encode(ct_and_tag).decode("ascii")
        )

    def decrypt(self, stored: str) -> str:
        """Raises ``ValueError`` if the value was tampered with or the key is wrong."""
        iv_b64, _, ct_b64 = stored.partition(".")
        try:
            plaintext = self._aesgcm.decrypt(
                base64.b64decode(iv_b64), base64.b64decode(ct_b64), None
            )
        except Exception as exc:
            raise ValueError("Decryption failed – data may be tampered") from exc
        return plaintext.decode("utf-8")


# ---------------------------------------------------------------------------
# 3.  JWT – signed tokens
# ---------------------------------------------------------------------------


def encode_jwt(
    claims: dict,
    secret: str,
    expires_delta: timedelta,
    now: Optional[datetime] = None,
) -> str:
    """Sign *claims* with HS256, adding ``iat`` and ``exp``."""
    issued = now or utcnow()
    to_encode = claims.copy()
    to_encode["iat"] = issued
    to_encode["exp"] = issued + expires_delta
    return _jwt.encode(to_encode, secret, algorithm="HS256")


def decode_jwt(token: str, secret: str) -> dict:
    """
    Decode and verify an HS256 JWT.  Raises ``Unauthorized`` on any failure
    (expired, bad signature, malformed).
    """
    try:
        return _jwt.decode(token, secret, algorithms=["HS256"])
    except _jwt.PyJWTError:
        raise Unauthorized("Invalid or expired token")


# ---------------------------------------------------------------------------
# 4.  Client IP extraction
# ---------------------------------------------------------------------------


def _is_trusted(peer: str, trusted_proxies: Iterable[str]) -> bool:
    try:
        peer_ip = ipaddress.ip_address(peer)
    except ValueError:
        return False
    for entry in trusted_proxies:
        try:
            if peer_ip in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def get_client_ip(request: Request, trusted_proxies: Iterable[str] = ()) -> str:
    """
    Return the caller's IP address (IPv4 or IPv6).

    ``X-Forwarded-For`` is honoured only when the direct peer is one of the
    configured trusted proxies; otherwise anyone could spoof their address.
    """
    peer = request.client.host if request.client else None
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and peer and _is_trusted(peer, trusted_proxies):
        # X-Forwarded-For can contain multiple IPs, take the first (original client)
        return forwarded.split(",")[0].strip()
    return peer or "unknown"


def request_ip(request: Request) -> str:
    """``get_client_ip`` with the allowlist from the app settings."""
    return get_client_ip(request, request.app.state.settings.trusted_proxies)


# ---------------------------------------------------------------------------
# 5.  FastAPI dependency guards
# ---------------------------------------------------------------------------

# The tokenUrl here is only used by the auto-generated OpenAPI docs;
# the actual login endpoint is POST /auth/login.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
):
    """
    Dependency: verify the bearer token with the configured identity
    verifier, load the User row, and require an ACTIVE, enabled account.
    Returns the User ORM instance and leaves the principal on
    ``request.state`` for the audit layer.
    """
    principal = request.app.state.identity_verifier.verify(token)

    # Lazy import to avoid circular dependency at module load time
    from models.user import User  # noqa: E402

    if principal.user_id is not None:
        user = db.query(User).filter(User.id == principal.user_id).first()
    else:
        user = db.query(User).filter(func.lower(User.email) == principal.email.lower()).first()

    if not user or not user.is_active or user.status != "ACTIVE":
        raise Unauthorized("User not found or inactive")

    request.state.principal = principal
    request.state.user_id = user.id
    return user


def require_roles(*roles: str):
    """
    Dependency factory: wraps :func:`get_current_user` and additionally
    asserts the user's role is one of *roles*.  Raises 403 otherwise.
    """
    allowed = set(roles)

    def _guard(current_user=Depends(get_current_user)):
        if current_user.role not in allowed:
            raise Forbidden("Insufficient permissions")
        return current_user

    return _guard


require_admin = require_roles("ADMIN")
# Every role except VIEWER may change data.
require_editor = require_roles("ADMIN", "MANAGER", "USER")
