"""Authentication Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from leadflow.schemas.user import User


class LoginRequest(BaseModel):
    """Schema for user login."""

    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    """Schema for token response."""

    access_token: str
    token_type: str = "bearer"
    user: User


class MFAChallengeResponse(BaseModel):
    """Response returned when a second factor is required before completing login."""

    mfa_required: bool = True
    mfa_token: str  # Short-lived JWT with type="mfa_pending"


class MFAVerifyRequest(BaseModel):
    """Request body to complete a login challenge."""

    mfa_token: str
    code: str = Field(..., min_length=6, max_length=20)  # 6-digit TOTP or backup code


class CheckTwoFactorRequest(BaseModel):
    """Request body for the pre-login 2FA probe."""

    user_id: str


class CheckTwoFactorResponse(BaseModel):
    """Whether the login flow should prompt for a second factor."""

    enabled: bool
