"""Authentication API endpoints."""

import logging
import secrets
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from jose import JWTError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.database import get_db
from leadflow.core.security import (
    MFA_PENDING_TOKEN_TYPE,
    create_access_token,
    create_mfa_pending_token,
    decode_token,
    hash_password,
    verify_password,
)
from leadflow.crud.user import user_crud
from leadflow.dependencies import get_current_user
from leadflow.models.user import User
from leadflow.schemas.auth import (
    CheckTwoFactorRequest,
    CheckTwoFactorResponse,
    LoginRequest,
    MFAChallengeResponse,
    MFAVerifyRequest,
    TokenResponse,
)
from leadflow.schemas.user import User as UserSchema
from leadflow.services.two_factor_service import InvalidCodeError, two_factor_service
from leadflow.utils.logging_utils import redact_email

router = APIRouter()
logger = logging.getLogger(__name__)

# Generate dummy password hash for timing attack prevention
# This is generated once at module load time to prevent timing attacks
# when checking non-existent users
DUMMY_PASSWORD_HASH = hash_password(secrets.token_urlsafe(32))


def create_auth_response(user: User) -> TokenResponse:
    """Issue an access token for a fully authenticated user."""
    access_token = create_access_token(data={"sub": str(user.id)})
    return TokenResponse(access_token=access_token, user=UserSchema.model_validate(user))


@router.post("/login", response_model=None)
async def login(
    data: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Login with email and password.

    Returns an access token, or an ``mfa_required`` challenge when the user
    has two-factor authentication enabled.
    """
    logger.info("Login attempt for email: %s", redact_email(data.email))

    try:
        user = await user_crud.get_by_email(db, data.email)
        if not user:
            # Keep response time consistent whether the user exists or not
            verify_password(data.password, DUMMY_PASSWORD_HASH)
            logger.warning("Login failed: User not found - %s", redact_email(data.email))
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password",
            )

        if not verify_password(data.password, user.password_hash):
            logger.warning("Login failed: Incorrect password for %s", redact_email(data.email))
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password",
            )

        if not user.is_active:
            logger.warning("Login failed: Inactive account - %s", redact_email(data.email))
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User account is inactive",
            )

        if await two_factor_service.check_enabled(db, user.id):
            logger.info("2FA challenge issued for %s", redact_email(data.email))
            return MFAChallengeResponse(mfa_token=create_mfa_pending_token(str(user.id)))

        await user_crud.update_last_login(db, user.id)
        logger.info("Login successful for %s", redact_email(data.email))
        return create_auth_response(user)
    except HTTPException:
        raise
    except SQLAlchemyError:
        logger.error("Database error during login for %s", redact_email(data.email), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred during login",
        )


@router.post("/check-2fa", response_model=CheckTwoFactorResponse)
async def check_two_factor(
    data: CheckTwoFactorRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Whether the given user must pass a second factor at login.

    Unknown or malformed user ids report ``enabled=false``.
    """
    try:
        user_id = UUID(data.user_id)
    except ValueError:
        return CheckTwoFactorResponse(enabled=False)
    return CheckTwoFactorResponse(enabled=await two_factor_service.check_enabled(db, user_id))


@router.post("/2fa/verify", response_model=TokenResponse)
async def verify_two_factor_challenge(
    data: MFAVerifyRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Complete a login challenge.

    Called after /login returns mfa_required=true. Accepts the short-lived
    mfa_token from that response together with a 6-digit TOTP code or an
    unused backup code. A backup code is consumed on success.
    """
    try:
        payload = decode_token(data.mfa_token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired MFA token",
        )

    if payload.get("type") != MFA_PENDING_TOKEN_TYPE:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = await user_crud.get_by_id(db, user_id)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="MFA verification failed",
        )

    try:
        verification = await two_factor_service.verify_login_code(db, user.id, data.code)
    except InvalidCodeError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid MFA code",
        )

    if verification.method is None:
        # 2FA was turned off after the challenge was issued
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="MFA verification failed",
        )

    await user_crud.update_last_login(db, user.id)
    return create_auth_response(user)


@router.get("/me", response_model=UserSchema)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
):
    """
    Get current user information.
    """
    return UserSchema.model_validate(current_user)
