# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the auth endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# -- Requests --------------------------------------------------------------


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    department: Optional[str] = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: str
    password: str
    two_factor_code: Optional[str] = None


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


class TwoFactorCodeRequest(BaseModel):
    code: str = Field(min_length=6, max_length=6)


# -- Responses -------------------------------------------------------------


class UserProfile(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    department: Optional[str] = None
    role: str
    two_factor_enabled: bool


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class LoginResponse(BaseModel):
    requires_two_factor: bool = False
    user: UserProfile
    # absent while a 2FA code is still required
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None


class RegisterResponse(BaseModel):
    id: int
    email: str
    status: str

    model_config = {"from_attributes": True}


class RevokedResponse(BaseModel):
    revoked: int


class SessionInfo(BaseModel):
    id: int
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    issued_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}


class TwoFactorSetupResponse(BaseModel):
    secret: str
    provisioning_uri: str


class TwoFactorStatusResponse(BaseModel):
    enabled: bool
