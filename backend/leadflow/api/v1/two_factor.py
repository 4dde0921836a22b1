"""Two-factor authentication API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.dependencies import get_current_user, get_db
from leadflow.models.user import User
from leadflow.schemas.two_factor import (
    BackupCodesResponse,
    TwoFactorCodeRequest,
    TwoFactorMessageResponse,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
)
from leadflow.services.totp_service import totp_service
from leadflow.services.two_factor_service import two_factor_service

router = APIRouter()


@router.get("/status", response_model=TwoFactorStatusResponse)
async def get_two_factor_status(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the current user's two-factor status."""
    return await two_factor_service.get_status(db, current_user.id)


@router.post("/setup", response_model=TwoFactorSetupResponse)
async def setup_two_factor(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Start enrollment.

    Returns the secret, the provisioning URI (also rendered as a QR code) and
    the backup codes. The codes are not retrievable again later.
    """
    setup = await two_factor_service.initialize(db, current_user.id)
    return TwoFactorSetupResponse(
        secret=setup.secret,
        qr_code_uri=setup.qr_code_uri,
        qr_code_png=totp_service.generate_qr_code(setup.qr_code_uri),
        backup_codes=setup.backup_codes,
    )


@router.post("/enable", response_model=TwoFactorMessageResponse)
async def enable_two_factor(
    data: TwoFactorCodeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Confirm enrollment with a code from the authenticator app."""
    await two_factor_service.verify_and_enable(db, current_user.id, data.code)
    return TwoFactorMessageResponse(message="Two-factor authentication enabled")


@router.post("/disable", response_model=TwoFactorMessageResponse)
async def disable_two_factor(
    data: TwoFactorCodeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Turn two-factor authentication off. Accepts a TOTP or backup code."""
    await two_factor_service.disable(db, current_user.id, data.code)
    return TwoFactorMessageResponse(message="Two-factor authentication disabled")


@router.post("/backup-codes/regenerate", response_model=BackupCodesResponse)
async def regenerate_backup_codes(
    data: TwoFactorCodeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Replace all backup codes. Requires a current TOTP code."""
    codes = await two_factor_service.regenerate_backup_codes(db, current_user.id, data.code)
    return BackupCodesResponse(backup_codes=codes)
