# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Outbound email.

Every ``send_*`` method raises on delivery failure; callers decide whether a
failure matters.  All current callers treat mail as best-effort and catch.
Without SMTP_HOST the service only logs what it would have sent.
"""

import smtplib
import ssl
from datetime import datetime
from email.message import EmailMessage
from html import escape
from typing import Optional

from core.config import Settings
from core.logger import logger

_BUTTON_STYLE = (
    "display:inline-block;padding:12px 24px;background:#1a1a2e;"
    "color:#fff;text-decoration:none;border-radius:6px;"
)


def _redact(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailService:
    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        timeout: float = 10.0,
        frontend_url: str = "http://localhost:3000",
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.timeout = timeout
        self.frontend_url = frontend_url.rstrip("/")

        if not self.is_configured:
            logger.warning("SMTP not configured – emails will only be logged")

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailService":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            smtp_use_tls=settings.smtp_use_tls,
            from_email=settings.smtp_from,
            timeout=settings.smtp_timeout_seconds,
            frontend_url=settings.frontend_url,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    # -- transport ------------------------------------------------------------

    def send(self, to: str, subject: str, html_body: str) -> None:
        """Send one HTML message.  Bounded by ``timeout`` so a stalled SMTP
        server cannot hang a batch."""
        if not self.is_configured:
            logger.info("[email simulated] to=%s subject=%s", _redact(to), subject)
            return

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html_body, subtype="html")

        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as smtp:
            if self.smtp_use_tls:
                smtp.starttls(context=ssl.create_default_context())
            if self.smtp_user and self.smtp_password:
                smtp.login(self.smtp_user, self.smtp_password)
            smtp.send_message(msg)

        logger.info("Email sent to %s: %s", _redact(to), subject)

    def _button(self, path: str, label: str) -> str:
        return f'<p><a href="{self.frontend_url}{path}" style="{_BUTTON_STYLE}">{escape(label)}</a></p>'

    # -- templates ------------------------------------------------------------

    def send_account_locked(self, to: str, user_name: str, lock_minutes: int, ip_address: str) -> None:
        self.send(
            to,
            "Your account has been temporarily locked",
            f"<h2>Account locked</h2>"
            f"<p>Hello {escape(user_name)},</p>"
            f"<p>After repeated failed sign-in attempts your account is locked for "
            f"{lock_minutes} minutes.</p>"
            f"<p>Last attempt came from IP address <strong>{escape(ip_address)}</strong>. "
            f"If this was not you, change your password once the lock expires.</p>",
        )

    def send_two_factor_enabled(self, to: str, user_name: str) -> None:
        self.send(
            to,
            "Two-factor authentication enabled",
            f"<h2>Two-factor authentication enabled</h2>"
            f"<p>Hello {escape(user_name)},</p>"
            f"<p>Sign-ins to your account now require a code from your authenticator app.</p>",
        )

    def send_contract_expiration(
        self,
        to: str,
        user_name: str,
        contract_id: int,
        contract_title: str,
        contract_number: str,
        end_date: Optional[datetime],
        days_until_expiry: int,
    ) -> None:
        end_text = end_date.strftime("%Y-%m-%d") if end_date else "n/a"
        self.send(
            to,
            f"Contract expiring: {contract_title} ({contract_number})",
            f"<h2>Contract expiring</h2>"
            f"<p>Hello {escape(user_name)},</p>"
            f"<p>The contract <strong>{escape(contract_title)}</strong> "
            f"({escape(contract_number)}) ends on {end_text}, "
            f"in {days_until_expiry} days.</p>"
            + self._button(f"/contracts/{contract_id}", "Open contract"),
        )

    def send_welcome(self, to: str, user_name: str, temporary_password: str) -> None:
        self.send(
            to,
            "Your account has been created",
            f"<h2>Welcome</h2>"
            f"<p>Hello {escape(user_name)},</p>"
            f"<p>An administrator created an account for you. Your temporary password is "
            f"<code>{escape(temporary_password)}</code>; please change it after signing in.</p>"
            + self._button("/login", "Sign in"),
        )

    def send_registration_pending(self, to: str, applicant_name: str, applicant_email: str) -> None:
        self.send(
            to,
            "New registration awaiting approval",
            f"<h2>New registration</h2>"
            f"<ul><li><strong>Name:</strong> {escape(applicant_name)}</li>"
            f"<li><strong>Email:</strong> {escape(applicant_email)}</li></ul>"
            + self._button("/admin/users?status=PENDING", "Review registrations"),
        )

    def send_registration_approved(self, to: str, user_name: str) -> None:
        self.send(
            to,
            "Your account has been approved",
            f"<p>Hello {escape(user_name)},</p>"
            f"<p>Your account has been approved. You can sign in now.</p>"
            + self._button("/login", "Sign in"),
        )

    def send_registration_rejected(self, to: str, user_name: str, reason: Optional[str]) -> None:
        reason_html = f"<p><strong>Reason:</strong> {escape(reason)}</p>" if reason else ""
        self.send(
            to,
            "Your registration was rejected",
            f"<p>Hello {escape(user_name)},</p>"
            f"<p>Unfortunately your registration was rejected.</p>{reason_html}"
            f"<p>Please contact the administrator with any questions.</p>",
        )
