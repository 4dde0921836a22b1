"""Two-factor authentication schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class TwoFactorCodeRequest(BaseModel):
    """A TOTP code, or a backup code where the endpoint accepts one."""

    code: str = Field(..., min_length=6, max_length=20)


class TwoFactorStatusResponse(BaseModel):
    """Two-factor status of the current user."""

    enabled: bool
    enabled_at: Optional[datetime] = None
    has_backup_codes: bool
    backup_codes_remaining: int
    pending_setup: bool

    class Config:
        from_attributes = True


class TwoFactorSetupResponse(BaseModel):
    """Enrollment material. Backup codes are only ever shown here."""

    secret: str
    qr_code_uri: str
    qr_code_png: str  # base64 PNG of qr_code_uri
    backup_codes: List[str]


class BackupCodesResponse(BaseModel):
    """Freshly regenerated backup codes."""

    backup_codes: List[str]


class TwoFactorMessageResponse(BaseModel):
    """Generic success acknowledgement."""

    success: bool = True
    message: str
