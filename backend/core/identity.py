# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Bearer-token identity verification.

One capability, two variants, picked once at startup from
``settings.auth_provider``:

* ``LocalTokenVerifier``    – access tokens minted by this service (HS256).
* ``ExternalTokenVerifier`` – tokens from an OIDC provider (RS256, JWKS).

Both return a :class:`Principal`; ``core.security.get_current_user`` maps it
to a local User row.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

import jwt as _jwt        # PyJWT

from core.config import Settings
from core.errors import Unauthorized
from core.security import decode_jwt

ACCESS_TOKEN_TYPE = "access"


@dataclass(frozen=True)
class Principal:
    user_id: Optional[int]   # set by the local verifier
    email: str


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> Principal: ...


class LocalTokenVerifier:
    def __init__(self, secret_key: str):
        self._secret_key = secret_key

    def verify(self, token: str) -> Principal:
        payload = decode_jwt(token, self._secret_key)
        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise Unauthorized("Invalid or expired token")
        try:
            user_id = int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            raise Unauthorized("Invalid or expired token")
        return Principal(user_id=user_id, email=payload.get("email", ""))


class ExternalTokenVerifier:
    """Verify RS256 tokens against the identity provider's published keys."""

    def __init__(self, issuer: str, jwks_url: str, audience: Optional[str] = None):
        self._issuer = issuer
        self._audience = audience
        # PyJWKClient caches the key set between calls
        self._jwks = _jwt.PyJWKClient(jwks_url)

    def verify(self, token: str) -> Principal:
        try:
            signing_key = self._jwks.get_signing_key_from_jwt(token)
            claims = _jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                issuer=self._issuer,
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except _jwt.PyJWTError:
            raise Unauthorized("Invalid or expired token")

        email = claims.get("email") or claims.get("preferred_username")
        if not email:
            raise Unauthorized("Token carries no email claim")
        return Principal(user_id=None, email=email)


def build_identity_verifier(settings: Settings) -> IdentityVerifier:
    if settings.auth_provider == "external":
        return ExternalTokenVerifier(
            issuer=settings.oidc_issuer,
            jwks_url=settings.oidc_jwks_url,
            audience=settings.oidc_audience,
        )
    return LocalTokenVerifier(settings.secret_key)
