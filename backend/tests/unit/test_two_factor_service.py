"""Tests for the two-factor lifecycle: enroll, enable, verify at login, disable."""

from types import SimpleNamespace
from uuid import uuid4

import pyotp
import pytest
from sqlalchemy import select, text

from leadflow.models.two_factor import UserTwoFactor
from leadflow.services.totp_service import totp_service
from leadflow.services.two_factor_service import (
    InvalidCodeError,
    NoPendingSetupError,
    TwoFactorAlreadyEnabledError,
    TwoFactorNotEnabledError,
    TwoFactorService,
    UserNotFoundError,
    two_factor_service,
)


async def _state(db, user_id):
    result = await db.execute(
        select(UserTwoFactor)
        .where(UserTwoFactor.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@pytest.mark.unit
@pytest.mark.auth
class TestGetStatus:
    async def test_new_user_is_disabled(self, db_session, test_user):
        status = await two_factor_service.get_status(db_session, test_user.id)
        assert status.enabled is False
        assert status.enabled_at is None
        assert status.has_backup_codes is False
        assert status.backup_codes_remaining == 0
        assert status.pending_setup is False

    async def test_pending_setup_reported(self, db_session, test_user):
        await two_factor_service.initialize(db_session, test_user.id)
        status = await two_factor_service.get_status(db_session, test_user.id)
        assert status.enabled is False
        assert status.pending_setup is True
        assert status.has_backup_codes is False

    async def test_enabled_status(self, db_session, two_factor_user):
        user, _, codes = two_factor_user
        status = await two_factor_service.get_status(db_session, user.id)
        assert status.enabled is True
        assert status.enabled_at is not None
        assert status.has_backup_codes is True
        assert status.backup_codes_remaining == len(codes)
        assert status.pending_setup is False

    async def test_unknown_user(self, db_session):
        with pytest.raises(UserNotFoundError) as exc_info:
            await two_factor_service.get_status(db_session, uuid4())
        assert exc_info.value.code == "not_found"


@pytest.mark.unit
@pytest.mark.auth
class TestInitialize:
    async def test_returns_setup_material(self, db_session, test_user):
        setup = await two_factor_service.initialize(db_session, test_user.id)

        assert len(setup.secret) == 32
        assert setup.qr_code_uri.startswith("otpauth://totp/")
        assert setup.secret in setup.qr_code_uri
        assert len(setup.backup_codes) == 8

    async def test_stores_only_pending_fields(self, db_session, test_user):
        setup = await two_factor_service.initialize(db_session, test_user.id)

        state = await _state(db_session, test_user.id)
        assert state.is_enabled is False
        assert state.secret is None
        assert state.backup_codes is None
        assert state.pending_secret == setup.secret
        assert len(state.pending_backup_codes) == 8
        assert state.setup_initiated_at is not None

    async def test_backup_codes_stored_hashed(self, db_session, test_user):
        setup = await two_factor_service.initialize(db_session, test_user.id)

        state = await _state(db_session, test_user.id)
        for plain, hashed in zip(setup.backup_codes, state.pending_backup_codes):
            assert plain != hashed
            assert totp_service.verify_backup_code(plain, hashed)

    async def test_secret_encrypted_at_rest(self, db_session, test_user):
        setup = await two_factor_service.initialize(db_session, test_user.id)

        raw = await db_session.execute(
            text("SELECT pending_secret FROM user_two_factor WHERE user_id = :uid"),
            {"uid": str(test_user.id)},
        )
        stored = raw.scalar_one()
        assert stored.startswith("v1:")
        assert setup.secret not in stored

    async def test_restart_replaces_pending_setup(self, db_session, test_user):
        first = await two_factor_service.initialize(db_session, test_user.id)
        second = await two_factor_service.initialize(db_session, test_user.id)

        assert first.secret != second.secret
        state = await _state(db_session, test_user.id)
        assert state.pending_secret == second.secret

        rows = await db_session.execute(
            select(UserTwoFactor.id).where(UserTwoFactor.user_id == test_user.id)
        )
        assert len(rows.all()) == 1

    async def test_already_enabled(self, db_session, two_factor_user):
        user, _, _ = two_factor_user
        with pytest.raises(TwoFactorAlreadyEnabledError):
            await two_factor_service.initialize(db_session, user.id)

    async def test_unknown_user(self, db_session):
        with pytest.raises(UserNotFoundError):
            await two_factor_service.initialize(db_session, uuid4())


@pytest.mark.unit
@pytest.mark.auth
class TestVerifyAndEnable:
    async def test_valid_code_enables(self, db_session, test_user):
        setup = await two_factor_service.initialize(db_session, test_user.id)

        await two_factor_service.verify_and_enable(
            db_session, test_user.id, pyotp.TOTP(setup.secret).now()
        )

        state = await _state(db_session, test_user.id)
        assert state.is_enabled is True
        assert state.secret == setup.secret
        assert len(state.backup_codes) == 8
        assert state.enabled_at is not None
        assert state.pending_secret is None
        assert state.pending_backup_codes is None
        assert state.setup_initiated_at is None

    async def test_invalid_code_keeps_pending_setup(self, db_session, test_user, wrong_totp):
        setup = await two_factor_service.initialize(db_session, test_user.id)

        with pytest.raises(InvalidCodeError) as exc_info:
            await two_factor_service.verify_and_enable(
                db_session, test_user.id, wrong_totp(setup.secret)
            )
        assert exc_info.value.code == "invalid_code"

        state = await _state(db_session, test_user.id)
        assert state.is_enabled is False
        assert state.pending_secret == setup.secret

        # Retry with the right code still works
        await two_factor_service.verify_and_enable(
            db_session, test_user.id, pyotp.TOTP(setup.secret).now()
        )
        assert (await _state(db_session, test_user.id)).is_enabled is True

    async def test_without_setup(self, db_session, test_user):
        with pytest.raises(NoPendingSetupError) as exc_info:
            await two_factor_service.verify_and_enable(db_session, test_user.id, "123456")
        assert exc_info.value.code == "no_pending_setup"

    async def test_code_from_superseded_setup_rejected(self, db_session, test_user):
        first = await two_factor_service.initialize(db_session, test_user.id)
        second = await two_factor_service.initialize(db_session, test_user.id)

        old_code = pyotp.TOTP(first.secret).now()
        if totp_service.verify_totp(second.secret, old_code):
            pytest.skip("codes of both secrets collide")
        with pytest.raises(InvalidCodeError):
            await two_factor_service.verify_and_enable(db_session, test_user.id, old_code)

    async def test_enabled_user_has_no_pending_setup(self, db_session, two_factor_user):
        user, secret, _ = two_factor_user
        with pytest.raises(NoPendingSetupError):
            await two_factor_service.verify_and_enable(
                db_session, user.id, pyotp.TOTP(secret).now()
            )


@pytest.mark.unit
@pytest.mark.auth
class TestDisable:
    async def test_disable_with_totp(self, db_session, two_factor_user):
        user, secret, _ = two_factor_user

        await two_factor_service.disable(db_session, user.id, pyotp.TOTP(secret).now())

        assert await _state(db_session, user.id) is None
        assert await two_factor_service.check_enabled(db_session, user.id) is False

    async def test_disable_with_backup_code(self, db_session, two_factor_user):
        user, _, codes = two_factor_user

        await two_factor_service.disable(db_session, user.id, codes[0])

        assert await two_factor_service.check_enabled(db_session, user.id) is False

    async def test_invalid_code_keeps_enabled(self, db_session, two_factor_user, wrong_totp):
        user, secret, _ = two_factor_user

        with pytest.raises(InvalidCodeError):
            await two_factor_service.disable(db_session, user.id, wrong_totp(secret))

        assert await two_factor_service.check_enabled(db_session, user.id) is True

    async def test_not_enabled(self, db_session, test_user):
        with pytest.raises(TwoFactorNotEnabledError) as exc_info:
            await two_factor_service.disable(db_session, test_user.id, "123456")
        assert exc_info.value.code == "not_enabled"

    async def test_pending_only_is_not_enabled(self, db_session, test_user):
        setup = await two_factor_service.initialize(db_session, test_user.id)
        with pytest.raises(TwoFactorNotEnabledError):
            await two_factor_service.disable(
                db_session, test_user.id, pyotp.TOTP(setup.secret).now()
            )

    async def test_can_enroll_again_after_disable(self, db_session, two_factor_user):
        user, secret, _ = two_factor_user
        await two_factor_service.disable(db_session, user.id, pyotp.TOTP(secret).now())

        setup = await two_factor_service.initialize(db_session, user.id)
        assert setup.secret != secret


@pytest.mark.unit
@pytest.mark.auth
class TestCheckEnabled:
    async def test_unknown_user_is_false(self, db_session):
        assert await two_factor_service.check_enabled(db_session, uuid4()) is False

    async def test_pending_is_false(self, db_session, test_user):
        await two_factor_service.initialize(db_session, test_user.id)
        assert await two_factor_service.check_enabled(db_session, test_user.id) is False

    async def test_enabled_is_true(self, db_session, two_factor_user):
        user, _, _ = two_factor_user
        assert await two_factor_service.check_enabled(db_session, user.id) is True


@pytest.mark.unit
@pytest.mark.auth
class TestVerifyLoginCode:
    async def test_totp_accepted(self, db_session, two_factor_user):
        user, secret, codes = two_factor_user

        result = await two_factor_service.verify_login_code(
            db_session, user.id, pyotp.TOTP(secret).now()
        )

        assert result.method == "totp"
        assert result.backup_codes_remaining == len(codes)
        assert (await _state(db_session, user.id)).last_used_at is not None

    async def test_backup_code_is_single_use(self, db_session, two_factor_user):
        user, _, codes = two_factor_user

        result = await two_factor_service.verify_login_code(db_session, user.id, codes[0])
        assert result.method == "backup_code"
        assert result.backup_codes_remaining == len(codes) - 1

        with pytest.raises(InvalidCodeError):
            await two_factor_service.verify_login_code(db_session, user.id, codes[0])

        state = await _state(db_session, user.id)
        assert len(state.backup_codes) == len(codes) - 1

    async def test_backup_code_with_separator_and_lowercase(self, db_session, two_factor_user):
        user, _, codes = two_factor_user
        typed = f"{codes[1][:4].lower()}-{codes[1][4:].lower()}"

        result = await two_factor_service.verify_login_code(db_session, user.id, typed)
        assert result.method == "backup_code"

    async def test_other_backup_codes_survive(self, db_session, two_factor_user):
        user, _, codes = two_factor_user

        await two_factor_service.verify_login_code(db_session, user.id, codes[0])
        result = await two_factor_service.verify_login_code(db_session, user.id, codes[1])

        assert result.backup_codes_remaining == len(codes) - 2

    async def test_invalid_code(self, db_session, two_factor_user, wrong_totp):
        user, secret, _ = two_factor_user
        with pytest.raises(InvalidCodeError):
            await two_factor_service.verify_login_code(db_session, user.id, wrong_totp(secret))

    async def test_not_enabled_passes_trivially(self, db_session, test_user):
        result = await two_factor_service.verify_login_code(db_session, test_user.id, "000000")
        assert result.method is None

    async def test_pending_secret_not_usable_for_login(self, db_session, test_user):
        setup = await two_factor_service.initialize(db_session, test_user.id)
        result = await two_factor_service.verify_login_code(
            db_session, test_user.id, pyotp.TOTP(setup.secret).now()
        )
        assert result.method is None

    async def test_unknown_user(self, db_session):
        with pytest.raises(UserNotFoundError):
            await two_factor_service.verify_login_code(db_session, uuid4(), "123456")

    async def test_stale_version_loses_race(self, db_session, two_factor_user):
        """A write based on an outdated read of the row is rejected."""
        user, _, codes = two_factor_user
        state = await _state(db_session, user.id)
        stale = SimpleNamespace(id=state.id, version=state.version)

        await two_factor_service.verify_login_code(db_session, user.id, codes[0])

        swapped = await TwoFactorService()._compare_and_swap(
            db_session, stale, backup_codes=[]
        )
        assert swapped is False
        assert len((await _state(db_session, user.id)).backup_codes) == len(codes) - 1


@pytest.mark.unit
@pytest.mark.auth
class TestRegenerateBackupCodes:
    async def test_regenerate_invalidates_old_codes(self, db_session, two_factor_user):
        user, secret, old_codes = two_factor_user

        new_codes = await two_factor_service.regenerate_backup_codes(
            db_session, user.id, pyotp.TOTP(secret).now()
        )

        assert len(new_codes) == 8
        assert set(new_codes).isdisjoint(old_codes)

        with pytest.raises(InvalidCodeError):
            await two_factor_service.verify_login_code(db_session, user.id, old_codes[0])

        result = await two_factor_service.verify_login_code(db_session, user.id, new_codes[0])
        assert result.method == "backup_code"

        state = await _state(db_session, user.id)
        assert state.backup_codes_regenerated_at is not None

    async def test_backup_code_not_accepted(self, db_session, two_factor_user):
        user, _, codes = two_factor_user
        with pytest.raises(InvalidCodeError):
            await two_factor_service.regenerate_backup_codes(db_session, user.id, codes[0])

    async def test_not_enabled(self, db_session, test_user):
        with pytest.raises(TwoFactorNotEnabledError):
            await two_factor_service.regenerate_backup_codes(db_session, test_user.id, "123456")
