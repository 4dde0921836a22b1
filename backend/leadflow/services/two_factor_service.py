"""Two-factor authentication (TOTP) enrollment and verification.

State machine per user::

    Disabled --initialize--> PendingVerification --verify_and_enable--> Enabled
    Enabled --disable--> Disabled

A user without a ``user_two_factor`` row is Disabled. Every write is a
compare-and-swap on ``UserTwoFactor.version`` so two concurrent requests can
never both consume the same backup code or both promote the same enrollment.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.models.two_factor import UserTwoFactor
from leadflow.models.user import User
from leadflow.services.totp_service import totp_service
from leadflow.utils.datetime_utils import utc_now
from leadflow.utils.logging_utils import redact_email

logger = logging.getLogger(__name__)

# Attempts at a compare-and-swap before giving up on a hot row
MAX_CAS_ATTEMPTS = 3


class TwoFactorError(Exception):
    """Base class for expected two-factor failures."""

    code = "two_factor_error"
    default_message = "Two-factor operation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class UserNotFoundError(TwoFactorError):
    code = "not_found"
    default_message = "User not found"


class TwoFactorAlreadyEnabledError(TwoFactorError):
    code = "already_enabled"
    default_message = "Two-factor authentication is already enabled"


class TwoFactorNotEnabledError(TwoFactorError):
    code = "not_enabled"
    default_message = "Two-factor authentication is not enabled"


class NoPendingSetupError(TwoFactorError):
    code = "no_pending_setup"
    default_message = "No pending two-factor setup found. Please start setup again."


class InvalidCodeError(TwoFactorError):
    code = "invalid_code"
    default_message = "Invalid verification code. Please try again."


class ConcurrentUpdateError(TwoFactorError):
    code = "conflict"
    default_message = "Two-factor settings changed concurrently. Please retry."


@dataclass
class TwoFactorStatus:
    """Read-only view of a user's two-factor state."""

    enabled: bool
    enabled_at: Optional[datetime] = None
    has_backup_codes: bool = False
    backup_codes_remaining: int = 0
    pending_setup: bool = False


@dataclass
class TwoFactorSetup:
    """Enrollment material returned once by ``initialize``."""

    secret: str
    qr_code_uri: str
    backup_codes: List[str] = field(default_factory=list)


@dataclass
class LoginCodeVerification:
    """Outcome of a successful login-time code check.

    ``method`` is ``"totp"``, ``"backup_code"`` or ``None`` when the user has
    no two-factor protection and the check passed trivially.
    """

    method: Optional[str]
    backup_codes_remaining: Optional[int] = None


class TwoFactorService:
    """Service implementing the two-factor lifecycle."""

    async def get_status(self, db: AsyncSession, user_id: UUID) -> TwoFactorStatus:
        """
        Get the two-factor status of a user.

        Raises:
            UserNotFoundError: If the user does not exist
        """
        await self._get_user(db, user_id)
        state = await self._get_state(db, user_id)

        if state is None:
            return TwoFactorStatus(enabled=False)

        remaining = len(state.backup_codes or []) if state.is_enabled else 0
        return TwoFactorStatus(
            enabled=state.is_enabled,
            enabled_at=state.enabled_at if state.is_enabled else None,
            has_backup_codes=remaining > 0,
            backup_codes_remaining=remaining,
            pending_setup=bool(state.pending_secret),
        )

    async def initialize(self, db: AsyncSession, user_id: UUID) -> TwoFactorSetup:
        """
        Start (or restart) enrollment.

        A fresh secret and backup codes are stored in the pending fields only;
        a previous unconfirmed enrollment is overwritten.

        Raises:
            UserNotFoundError: If the user does not exist
            TwoFactorAlreadyEnabledError: If 2FA is already enabled
        """
        user = await self._get_user(db, user_id)

        secret = totp_service.generate_secret()
        backup_codes = totp_service.generate_backup_codes()
        hashed_codes = [totp_service.hash_backup_code(code) for code in backup_codes]
        qr_code_uri = totp_service.get_totp_uri(secret, user.email or str(user.id))

        for _ in range(MAX_CAS_ATTEMPTS):
            state = await self._get_state(db, user_id)

            if state is not None and state.is_enabled:
                raise TwoFactorAlreadyEnabledError()

            if state is None:
                state = UserTwoFactor(
                    user_id=user_id,
                    is_enabled=False,
                    pending_secret=secret,
                    pending_backup_codes=hashed_codes,
                    setup_initiated_at=utc_now(),
                )
                try:
                    async with db.begin_nested():
                        db.add(state)
                except IntegrityError:
                    # Another request created the row first; go through CAS
                    continue
                break

            swapped = await self._compare_and_swap(
                db,
                state,
                pending_secret=secret,
                pending_backup_codes=hashed_codes,
                setup_initiated_at=utc_now(),
            )
            if swapped:
                break
        else:
            raise ConcurrentUpdateError()

        await db.commit()

        logger.info("2FA setup initiated for %s", redact_email(user.email))
        return TwoFactorSetup(secret=secret, qr_code_uri=qr_code_uri, backup_codes=backup_codes)

    async def verify_and_enable(self, db: AsyncSession, user_id: UUID, code: str) -> None:
        """
        Confirm enrollment with a code from the authenticator app.

        Promotes pending secret and backup codes to the committed fields and
        clears the pending fields in one update. A wrong code leaves the
        pending enrollment in place so the user can retry.

        Raises:
            UserNotFoundError: If the user does not exist
            NoPendingSetupError: If no enrollment is in progress
            InvalidCodeError: If the code does not match the pending secret
        """
        user = await self._get_user(db, user_id)

        for _ in range(MAX_CAS_ATTEMPTS):
            state = await self._get_state(db, user_id)
            if state is None or not state.pending_secret:
                raise NoPendingSetupError()

            if not totp_service.verify_totp(state.pending_secret, code):
                logger.warning("Invalid 2FA setup code for %s", redact_email(user.email))
                raise InvalidCodeError()

            swapped = await self._compare_and_swap(
                db,
                state,
                is_enabled=True,
                secret=state.pending_secret,
                backup_codes=list(state.pending_backup_codes or []),
                enabled_at=utc_now(),
                backup_codes_regenerated_at=None,
                last_used_at=None,
                pending_secret=None,
                pending_backup_codes=None,
                setup_initiated_at=None,
            )
            if swapped:
                break
        else:
            raise ConcurrentUpdateError()

        await db.commit()
        logger.info("2FA enabled for %s", redact_email(user.email))

    async def disable(self, db: AsyncSession, user_id: UUID, code: str) -> None:
        """
        Turn 2FA off after proving possession of a TOTP or backup code.

        Clears committed and pending state alike.

        Raises:
            UserNotFoundError: If the user does not exist
            TwoFactorNotEnabledError: If 2FA is not enabled
            InvalidCodeError: If neither a TOTP nor an unused backup code matches
        """
        user = await self._get_user(db, user_id)

        for _ in range(MAX_CAS_ATTEMPTS):
            state = await self._get_state(db, user_id)
            if state is None or not state.is_enabled:
                raise TwoFactorNotEnabledError()

            code_ok = totp_service.verify_totp(state.secret, code)
            if not code_ok:
                code_ok = totp_service.find_backup_code(code, state.backup_codes) is not None
            if not code_ok:
                logger.warning("Invalid 2FA code on disable for %s", redact_email(user.email))
                raise InvalidCodeError()

            result = await db.execute(
                delete(UserTwoFactor)
                .where(
                    UserTwoFactor.id == state.id,
                    UserTwoFactor.version == state.version,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                break
        else:
            raise ConcurrentUpdateError()

        await db.commit()
        logger.info("2FA disabled for %s", redact_email(user.email))

    async def check_enabled(self, db: AsyncSession, user_id: UUID) -> bool:
        """
        Whether the login flow must prompt for a second factor.

        Unknown users are reported as not enabled rather than as an error.
        """
        result = await db.execute(
            select(UserTwoFactor.is_enabled).where(UserTwoFactor.user_id == user_id)
        )
        return bool(result.scalar_one_or_none())

    async def verify_login_code(
        self, db: AsyncSession, user_id: UUID, code: str
    ) -> LoginCodeVerification:
        """
        Check a second-factor code during login.

        The TOTP is tried first against the committed secret, then the backup
        codes. A matching backup code is removed in the same compare-and-swap
        that accepts it, so it can never be used twice.

        Raises:
            UserNotFoundError: If the user does not exist
            InvalidCodeError: If neither check passes
        """
        user = await self._get_user(db, user_id)

        for _ in range(MAX_CAS_ATTEMPTS):
            state = await self._get_state(db, user_id)
            if state is None or not state.is_enabled:
                return LoginCodeVerification(method=None)

            if totp_service.verify_totp(state.secret, code):
                await db.execute(
                    update(UserTwoFactor)
                    .where(UserTwoFactor.id == state.id)
                    .values(last_used_at=utc_now())
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
                logger.info("2FA login code accepted for %s", redact_email(user.email))
                return LoginCodeVerification(
                    method="totp",
                    backup_codes_remaining=len(state.backup_codes or []),
                )

            index = totp_service.find_backup_code(code, state.backup_codes)
            if index is None:
                logger.warning("Invalid 2FA login code for %s", redact_email(user.email))
                raise InvalidCodeError("Invalid verification code")

            remaining = [c for i, c in enumerate(state.backup_codes) if i != index]
            swapped = await self._compare_and_swap(
                db,
                state,
                backup_codes=remaining,
                last_used_at=utc_now(),
            )
            if swapped:
                await db.commit()
                logger.info(
                    "2FA backup code consumed for %s (%d remaining)",
                    redact_email(user.email),
                    len(remaining),
                )
                return LoginCodeVerification(
                    method="backup_code",
                    backup_codes_remaining=len(remaining),
                )

        raise ConcurrentUpdateError()

    async def regenerate_backup_codes(
        self, db: AsyncSession, user_id: UUID, code: str
    ) -> List[str]:
        """
        Replace all backup codes. Requires a current TOTP code, not a backup code.

        Raises:
            UserNotFoundError: If the user does not exist
            TwoFactorNotEnabledError: If 2FA is not enabled
            InvalidCodeError: If the TOTP code is wrong
        """
        user = await self._get_user(db, user_id)

        backup_codes = totp_service.generate_backup_codes()
        hashed_codes = [totp_service.hash_backup_code(c) for c in backup_codes]

        for _ in range(MAX_CAS_ATTEMPTS):
            state = await self._get_state(db, user_id)
            if state is None or not state.is_enabled:
                raise TwoFactorNotEnabledError()

            if not totp_service.verify_totp(state.secret, code):
                logger.warning(
                    "Invalid 2FA code on backup code regeneration for %s",
                    redact_email(user.email),
                )
                raise InvalidCodeError("Invalid verification code")

            swapped = await self._compare_and_swap(
                db,
                state,
                backup_codes=hashed_codes,
                backup_codes_regenerated_at=utc_now(),
            )
            if swapped:
                break
        else:
            raise ConcurrentUpdateError()

        await db.commit()
        logger.info("2FA backup codes regenerated for %s", redact_email(user.email))
        return backup_codes

    # -------------------------------------------------------------------
    # Internal methods
    # -------------------------------------------------------------------

    async def _get_user(self, db: AsyncSession, user_id: UUID) -> User:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError()
        return user

    async def _get_state(self, db: AsyncSession, user_id: UUID) -> Optional[UserTwoFactor]:
        """Load the state row, bypassing stale identity-map copies."""
        result = await db.execute(
            select(UserTwoFactor)
            .where(UserTwoFactor.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _compare_and_swap(self, db: AsyncSession, state: UserTwoFactor, **values) -> bool:
        """Apply ``values`` only if nobody wrote the row since ``state`` was read."""
        result = await db.execute(
            update(UserTwoFactor)
            .where(
                UserTwoFactor.id == state.id,
                UserTwoFactor.version == state.version,
            )
            .values(version=state.version + 1, updated_at=utc_now(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


two_factor_service = TwoFactorService()
