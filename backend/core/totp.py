# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""TOTP engine – RFC 6238 six-digit codes via pyotp."""

import pyotp


class TotpEngine:
    def __init__(self, issuer: str, valid_window: int = 1):
        self.issuer = issuer
        # one 30 s step either side tolerates clock drift on the phone
        self.valid_window = valid_window

    def generate_secret(self) -> str:
        return pyotp.random_base32()

    def build_uri(self, secret: str, account_name: str) -> str:
        """otpauth:// URI for authenticator apps (rendered as a QR code by the UI)."""
        return pyotp.TOTP(secret).provisioning_uri(name=account_name, issuer_name=self.issuer)

    def verify(self, secret: str, code: str) -> bool:
        if not code or not code.isdigit() or len(code) != 6:
            return False
        return pyotp.TOTP(secret).verify(code, valid_window=self.valid_window)

    def current_code(self, secret: str) -> str:
        return pyotp.TOTP(secret).now()
