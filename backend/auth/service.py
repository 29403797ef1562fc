# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Auth session manager.

The only component that writes password, lockout, 2FA or refresh-token
state.  Routers build one instance per request through
:func:`get_auth_service`; background jobs build one from their own session.

Login walks a fixed sequence and stops at the first failing step::

    CHECK_STATUS → CHECK_LOCK → CHECK_PASSWORD → CHECK_2FA → ISSUE_TOKENS

Security notes
--------------
* An unknown email and a wrong password produce the *same* error, so the
  login endpoint cannot be used to enumerate accounts.
* A locked account is rejected before the password is checked; the attempt
  counter does not move while the lock holds.
* Notification emails are best-effort: a failed send is logged and the
  operation carries on.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Request
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit.recorder import AuditContext, AuditRecorder
from auth.tokens import TokenPair, TokenService
from core.config import Settings
from core.email import EmailService
from core.errors import BadRequest, Conflict, Forbidden, NotFound, Unauthorized
from core.lockout import LockoutPolicy
from core.logger import logger
from core.security import UNUSABLE_PASSWORD, PasswordHasher, SecretBox, request_ip
from core.totp import TotpEngine
from database import get_db, utcnow
from models.refresh_token import RefreshToken
from models.user import USER_ROLES, User

# Generic message used for both "no such email" and "wrong password"
_LOGIN_FAIL = "Invalid email or password"


def validate_password_policy(pw: str) -> Optional[str]:
    """
    Return an error string if the password does not meet the minimum policy,
    or None if it is acceptable.

    Policy: >= 8 chars, at least one uppercase, one lowercase, one digit.
    """
    if len(pw) < 8:
        return "Password must be at least 8 characters"
    if not re.search(r"[A-Z]", pw):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[a-z]", pw):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"[0-9]", pw):
        return "Password must contain at least one digit"
    return None


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True)
class ClientContext:
    """Where a request came from.  Bound to refresh tokens for audit only."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "ClientContext":
        return cls(ip_address=request_ip(request), user_agent=request.headers.get("user-agent"))

    def for_actor(self, actor_id: Optional[int]) -> AuditContext:
        return AuditContext(actor_id=actor_id, ip_address=self.ip_address, user_agent=self.user_agent)


@dataclass(frozen=True)
class LoginResult:
    profile: dict
    tokens: Optional[TokenPair] = None
    requires_two_factor: bool = False


@dataclass(frozen=True)
class TwoFactorSetup:
    secret: str
    provisioning_uri: str


def get_or_create_system_user(db: Session, email: str) -> User:
    """
    The account scheduled jobs act as.  Created on first use, ACTIVE but
    suspended, with a hash no password can match: it can never sign in.
    """
    email = normalize_email(email)
    user = db.query(User).filter(User.email == email).first()
    if user is not None:
        return user

    user = User(
        email=email,
        password_hash=UNUSABLE_PASSWORD,
        first_name="System",
        last_name="",
        role="ADMIN",
        status="ACTIVE",
        is_active=False,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # created concurrently by another job
        db.rollback()
        return db.query(User).filter(User.email == email).one()
    db.refresh(user)
    logger.info("Created system user %s", email)
    return user


class AuthService:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        hasher: PasswordHasher,
        totp: TotpEngine,
        secret_box: SecretBox,
        email: EmailService,
        clock: Callable = utcnow,
        recorder: Optional[AuditRecorder] = None,
    ):
        self.db = db
        self.settings = settings
        self.hasher = hasher
        self.totp = totp
        self.secret_box = secret_box
        self.email = email
        self.clock = clock
        self.recorder = recorder
        self.tokens = TokenService(db, settings, clock)
        self.login_policy = LockoutPolicy(settings.max_login_attempts, settings.lockout_minutes)
        self.two_factor_policy = LockoutPolicy(
            settings.max_two_factor_attempts, settings.two_factor_lockout_minutes
        )

    # -- helpers --------------------------------------------------------------

    def _get_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFound("User not found")
        return user

    def _find_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(func.lower(User.email) == normalize_email(email)).first()

    def _notify(self, send: Callable, *args) -> None:
        try:
            send(*args)
        except Exception:
            logger.exception("Notification email failed (%s)", getattr(send, "__name__", "send"))

    def _audit(self, action: str, user_id: int, context: Optional[AuditContext], old=None, new=None) -> None:
        if self.recorder is None or context is None:
            return
        self.recorder.record(action, "User", user_id, context, old_value=old, new_value=new)

    @staticmethod
    def get_profile(user: User) -> dict:
        """Non-sensitive profile fields, safe to return before 2FA completes."""
        return {
            "id": user.id,
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "department": user.department,
            "role": user.role,
            "two_factor_enabled": bool(user.two_factor_enabled),
        }

    # -- login ----------------------------------------------------------------

    def login(
        self,
        email: str,
        password: str,
        code: Optional[str] = None,
        client: ClientContext = ClientContext(),
    ) -> LoginResult:
        now = self.clock()

        # CHECK_STATUS
        user = self._find_by_email(email)
        if user is None:
            logger.info("Login failed for unknown email from %s", client.ip_address or "unknown")
            raise Unauthorized(_LOGIN_FAIL)
        if user.status == "PENDING":
            raise Forbidden("Your registration is awaiting administrator approval")
        if user.status == "REJECTED":
            raise Forbidden("Your registration has been rejected")
        if not user.is_active:
            raise Forbidden("Your account has been deactivated")

        # CHECK_LOCK
        remaining = self.login_policy.remaining_minutes(user.locked_until, now)
        if remaining is not None:
            raise Forbidden(f"Account is locked. Try again in {remaining} minute(s).")

        # CHECK_PASSWORD
        if not self.hasher.verify(password, user.password_hash):
            self._register_login_failure(user, client, now)
            raise Unauthorized(_LOGIN_FAIL)

        # CHECK_2FA
        if user.two_factor_enabled:
            if not code:
                return LoginResult(profile=self.get_profile(user), requires_two_factor=True)
            self.verify_two_factor_code(user, code, client)

        # ISSUE_TOKENS
        user.failed_login_attempts = 0
        user.last_failed_login_at = None
        user.locked_until = None
        user.last_login_at = now
        tokens = self.tokens.issue_pair(user, client.ip_address, client.user_agent)
        self.db.commit()

        logger.info("User %s logged in from %s", user.id, client.ip_address or "unknown")
        return LoginResult(profile=self.get_profile(user), tokens=tokens)

    def _register_login_failure(self, user: User, client: ClientContext, now) -> None:
        outcome = self.login_policy.count_failure(
            self.db,
            User,
            user.id,
            User.failed_login_attempts,
            User.locked_until,
            now,
            last_failed_col=User.last_failed_login_at,
        )

        if outcome.just_locked:
            logger.warning(
                "Account %s locked after %d failed logins, last from %s",
                user.id, outcome.attempts, client.ip_address or "unknown",
            )
            self._notify(
                self.email.send_account_locked,
                user.email,
                user.full_name or user.email,
                self.settings.lockout_minutes,
                client.ip_address or "unknown",
            )

    # -- tokens ---------------------------------------------------------------

    def refresh(self, refresh_token: str, client: ClientContext = ClientContext()) -> TokenPair:
        return self.tokens.rotate(refresh_token, client.ip_address, client.user_agent)

    def logout(self, user_id: int, refresh_token: Optional[str] = None) -> int:
        return self.tokens.revoke(user_id, refresh_token)

    def logout_all(self, user_id: int) -> int:
        count = self.tokens.revoke_all(user_id)
        logger.info("User %s signed out of %d session(s)", user_id, count)
        return count

    def list_sessions(self, user_id: int) -> list[RefreshToken]:
        return self.tokens.list_active(user_id)

    def revoke_session(self, user_id: int, session_id: int) -> None:
        self.tokens.revoke_session(user_id, session_id)

    def cleanup_expired_tokens(self) -> int:
        return self.tokens.cleanup_expired()

    # -- password -------------------------------------------------------------

    def change_password(
        self,
        user_id: int,
        old_password: str,
        new_password: str,
        context: Optional[AuditContext] = None,
    ) -> None:
        """Re-verify the old password, store the new one, sign out everywhere."""
        user = self._get_user(user_id)
        if not self.hasher.verify(old_password, user.password_hash):
            raise Unauthorized("Current password is incorrect")

        err = validate_password_policy(new_password)
        if err:
            raise BadRequest(err)

        user.password_hash = self.hasher.hash(new_password)
        # revoke_all commits the new hash together with the revocations
        revoked = self.tokens.revoke_all(user.id)
        logger.info("User %s changed password, %d session(s) revoked", user.id, revoked)
        self._audit("UPDATE", user.id, context, new={"password_changed": True})

    # -- two-factor -----------------------------------------------------------

    def verify_two_factor_code(self, user: User, code: str, client: ClientContext = ClientContext()) -> None:
        """
        Check *code* against the user's secret under the 2FA lock.  Raises
        Forbidden while locked, Unauthorized on a wrong code.  A good code
        resets the counter (caller commits).
        """
        now = self.clock()
        remaining = self.two_factor_policy.remaining_minutes(user.two_factor_locked_until, now)
        if remaining is not None:
            raise Forbidden(f"Too many invalid 2FA codes. Try again in {remaining} minute(s).")
        if not user.two_factor_secret:
            raise Forbidden("Two-factor authentication has not been set up")

        try:
            secret = self.secret_box.decrypt(user.two_factor_secret)
        except ValueError:
            logger.error("Stored 2FA secret of user %s cannot be decrypted", user.id)
            raise Unauthorized("Invalid 2FA code")

        if not self.totp.verify(secret, code):
            # Only an expired lock restarts the count, not elapsed time.
            outcome = self.two_factor_policy.count_failure(
                self.db,
                User,
                user.id,
                User.two_factor_failed_attempts,
                User.two_factor_locked_until,
                now,
            )
            if outcome.just_locked:
                logger.warning(
                    "2FA locked for user %s after %d invalid codes, last from %s",
                    user.id, outcome.attempts, client.ip_address or "unknown",
                )
            raise Unauthorized("Invalid 2FA code")

        user.two_factor_failed_attempts = 0
        user.two_factor_locked_until = None

    def setup_two_factor(self, user_id: int) -> TwoFactorSetup:
        user = self._get_user(user_id)
        if user.two_factor_enabled:
            raise Conflict("Two-factor authentication is already enabled")

        secret = self.totp.generate_secret()
        user.two_factor_secret = self.secret_box.encrypt(secret)
        self.db.commit()
        return TwoFactorSetup(secret=secret, provisioning_uri=self.totp.build_uri(secret, user.email))

    def enable_two_factor(self, user_id: int, code: str, context: Optional[AuditContext] = None) -> None:
        user = self._get_user(user_id)
        if user.two_factor_enabled:
            raise Conflict("Two-factor authentication is already enabled")
        if not user.two_factor_secret:
            raise Forbidden("Run two-factor setup first")

        client = ClientContext(context.ip_address, context.user_agent) if context else ClientContext()
        self.verify_two_factor_code(user, code, client)
        user.two_factor_enabled = True
        self.db.commit()

        logger.info("User %s enabled 2FA", user.id)
        self._audit("UPDATE", user.id, context, old={"two_factor_enabled": False}, new={"two_factor_enabled": True})
        self._notify(self.email.send_two_factor_enabled, user.email, user.full_name or user.email)

    def disable_two_factor(self, user_id: int, code: str, context: Optional[AuditContext] = None) -> None:
        user = self._get_user(user_id)
        if not user.two_factor_enabled:
            raise Conflict("Two-factor authentication is not enabled")

        client = ClientContext(context.ip_address, context.user_agent) if context else ClientContext()
        self.verify_two_factor_code(user, code, client)
        user.two_factor_enabled = False
        user.two_factor_secret = None
        self.db.commit()

        logger.info("User %s disabled 2FA", user.id)
        self._audit("UPDATE", user.id, context, old={"two_factor_enabled": True}, new={"two_factor_enabled": False})

    def get_two_factor_status(self, user_id: int) -> dict:
        return {"enabled": bool(self._get_user(user_id).two_factor_enabled)}

    # -- registration & administration ----------------------------------------

    def _new_user(self, email, password, first_name, last_name, department, role, status) -> User:
        email = normalize_email(email)
        err = validate_password_policy(password)
        if err:
            raise BadRequest(err)
        if self._find_by_email(email) is not None:
            raise Conflict("A user with this email already exists")

        user = User(
            email=email,
            password_hash=self.hasher.hash(password),
            first_name=first_name,
            last_name=last_name,
            department=department,
            role=role,
            status=status,
            is_active=True,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("A user with this email already exists")
        self.db.refresh(user)
        return user

    def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        department: Optional[str] = None,
    ) -> User:
        """Self-registration.  The account waits PENDING for an admin."""
        user = self._new_user(email, password, first_name, last_name, department, "USER", "PENDING")
        logger.info("New registration %s awaiting approval", user.id)

        admins = (
            self.db.query(User)
            .filter(User.role == "ADMIN", User.status == "ACTIVE", User.is_active.is_(True))
            .all()
        )
        for admin in admins:
            self._notify(self.email.send_registration_pending, admin.email, user.full_name or user.email, user.email)
        return user

    def create_user_by_admin(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: str = "USER",
        department: Optional[str] = None,
    ) -> User:
        if role not in USER_ROLES:
            raise BadRequest(f"Invalid role. Must be one of {', '.join(USER_ROLES)}")
        user = self._new_user(email, password, first_name, last_name, department, role, "ACTIVE")
        logger.info("Admin created user %s with role %s", user.id, role)
        self._notify(self.email.send_welcome, user.email, user.full_name or user.email, password)
        return user

    def list_pending(self) -> list[User]:
        return (
            self.db.query(User)
            .filter(User.status == "PENDING")
            .order_by(User.created_at.asc())
            .all()
        )

    def _decide_registration(self, user_id: int, new_status: str, context: Optional[AuditContext]) -> User:
        user = self._get_user(user_id)
        if user.status != "PENDING":
            raise Conflict(f"User is not pending approval (status: {user.status})")
        user.status = new_status
        self.db.commit()
        self._audit("UPDATE", user.id, context, old={"status": "PENDING"}, new={"status": new_status})
        return user

    def approve_user(self, user_id: int, context: Optional[AuditContext] = None) -> User:
        user = self._decide_registration(user_id, "ACTIVE", context)
        logger.info("User %s approved", user.id)
        self._notify(self.email.send_registration_approved, user.email, user.full_name or user.email)
        return user

    def reject_user(
        self,
        user_id: int,
        reason: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> User:
        user = self._decide_registration(user_id, "REJECTED", context)
        logger.info("User %s rejected", user.id)
        self._notify(self.email.send_registration_rejected, user.email, user.full_name or user.email, reason)
        return user

    def set_active(self, user_id: int, is_active: bool, context: Optional[AuditContext] = None) -> User:
        """
        Suspend or reinstate an account.  Deactivation signs the user out of
        every session; an admin cannot deactivate their own account.
        """
        user = self._get_user(user_id)
        if not is_active and context is not None and context.actor_id == user.id:
            raise BadRequest("You cannot deactivate your own account")

        was_active = bool(user.is_active)
        user.is_active = is_active
        if is_active:
            self.db.commit()
        else:
            # revoke_all commits the flag together with the revocations
            revoked = self.tokens.revoke_all(user.id)
            logger.info("User %s deactivated, %d session(s) revoked", user.id, revoked)
        self.db.refresh(user)

        self._audit("UPDATE", user.id, context, old={"is_active": was_active}, new={"is_active": is_active})
        return user


def get_auth_service(request: Request, db: Session = Depends(get_db)) -> AuthService:
    """FastAPI dependency: an AuthService wired from ``app.state``."""
    state = request.app.state
    return AuthService(
        db,
        state.settings,
        state.password_hasher,
        state.totp,
        state.secret_box,
        state.email,
        clock=state.clock,
        recorder=state.audit_recorder,
    )
