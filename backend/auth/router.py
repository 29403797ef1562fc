# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Auth endpoints – registration, login, token refresh, logout, password
change, sessions and two-factor management.

Security notes
--------------
* Login returns the *same* error message whether the email doesn't exist or
  the password is wrong.  This prevents user-enumeration attacks.
* change-password verifies the old password before accepting the new one,
  so a stolen (but not yet expired) token alone cannot reset the password.
* All state changes go through :class:`auth.service.AuthService`; the
  handlers only translate between HTTP and the service.
"""

from fastapi import APIRouter, Depends, Request, status

from audit.recorder import AuditContext
from auth.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    RevokedResponse,
    SessionInfo,
    TokenResponse,
    TwoFactorCodeRequest,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
    UserProfile,
)
from auth.service import AuthService, ClientContext, get_auth_service
from core.security import get_current_user
from models.user import User

router = APIRouter(prefix="/auth", tags=["auth"])


# ---------------------------------------------------------------------------
# Registration / login / tokens
# ---------------------------------------------------------------------------


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    """Self-registration.  The account stays PENDING until an admin approves it."""
    return service.register(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        department=body.department,
    )


@router.post("/login", response_model=LoginResponse)
def login(body: LoginRequest, request: Request, service: AuthService = Depends(get_auth_service)):
    """
    Authenticate.  When 2FA is on and no code was sent, only
    ``requires_two_factor`` and the profile come back; resend with the code.
    """
    result = service.login(
        body.email,
        body.password,
        body.two_factor_code,
        ClientContext.from_request(request),
    )
    if result.requires_two_factor:
        return LoginResponse(requires_two_factor=True, user=UserProfile(**result.profile))
    return LoginResponse(
        user=UserProfile(**result.profile),
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        token_type="bearer",
        expires_in=result.tokens.expires_in,
    )


@router.post("/refresh", response_model=TokenResponse)
def refresh(body: RefreshRequest, request: Request, service: AuthService = Depends(get_auth_service)):
    pair = service.refresh(body.refresh_token, ClientContext.from_request(request))
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
    )


@router.post("/logout", response_model=RevokedResponse)
def logout(
    body: LogoutRequest,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    return RevokedResponse(revoked=service.logout(current_user.id, body.refresh_token))


@router.post("/logout-all", response_model=RevokedResponse)
def logout_all(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    return RevokedResponse(revoked=service.logout_all(current_user.id))


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@router.put("/change-password")
def change_password(
    body: ChangePasswordRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    """Change the password and revoke every refresh token of the user."""
    service.change_password(
        current_user.id,
        body.old_password,
        body.new_password,
        context=AuditContext.from_request(request, current_user.id),
    )
    return {"detail": "Password changed successfully"}


@router.get("/me", response_model=UserProfile)
def me(current_user: User = Depends(get_current_user)):
    """Return the authenticated user's public profile (no secrets)."""
    return AuthService.get_profile(current_user)


@router.get("/sessions", response_model=list[SessionInfo])
def list_sessions(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    return service.list_sessions(current_user.id)


@router.delete("/sessions/{id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_session(
    id: int,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    service.revoke_session(current_user.id, id)


# ---------------------------------------------------------------------------
# Two-factor
# ---------------------------------------------------------------------------


@router.post("/2fa/setup", response_model=TwoFactorSetupResponse)
def two_factor_setup(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    setup = service.setup_two_factor(current_user.id)
    return TwoFactorSetupResponse(secret=setup.secret, provisioning_uri=setup.provisioning_uri)


@router.post("/2fa/enable", response_model=TwoFactorStatusResponse)
def two_factor_enable(
    body: TwoFactorCodeRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    service.enable_two_factor(current_user.id, body.code, AuditContext.from_request(request, current_user.id))
    return TwoFactorStatusResponse(enabled=True)


@router.post("/2fa/disable", response_model=TwoFactorStatusResponse)
def two_factor_disable(
    body: TwoFactorCodeRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    service.disable_two_factor(current_user.id, body.code, AuditContext.from_request(request, current_user.id))
    return TwoFactorStatusResponse(enabled=False)


@router.get("/2fa/status", response_model=TwoFactorStatusResponse)
def two_factor_status(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    return service.get_two_factor_status(current_user.id)
