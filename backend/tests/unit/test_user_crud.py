"""Tests for user and organization CRUD helpers."""

from uuid import uuid4

import pytest

from leadflow.core.security import verify_password
from leadflow.crud.user import organization_crud, user_crud
from leadflow.models.user import UserRole


@pytest.mark.unit
class TestOrganizationCRUD:
    async def test_create_and_get(self, db_session):
        org = await organization_crud.create(db_session, name="Acme")

        fetched = await organization_crud.get_by_id(db_session, org.id)
        assert fetched is not None
        assert fetched.name == "Acme"

    async def test_get_missing(self, db_session):
        assert await organization_crud.get_by_id(db_session, uuid4()) is None


@pytest.mark.unit
class TestUserCRUD:
    async def test_create_hashes_password(self, db_session, test_organization, test_password):
        user = await user_crud.create(
            db_session,
            email="rep@example.com",
            password=test_password,
            organization_id=test_organization.id,
            role=UserRole.MANAGER,
        )

        assert user.password_hash != test_password
        assert verify_password(test_password, user.password_hash)
        assert user.role == UserRole.MANAGER
        assert user.is_active is True

    async def test_lookups(self, db_session, test_user):
        assert (await user_crud.get_by_email(db_session, test_user.email)).id == test_user.id
        assert (await user_crud.get_by_id(db_session, test_user.id)).email == test_user.email
        assert await user_crud.get_by_email(db_session, "nobody@example.com") is None

    async def test_update_last_login(self, db_session, test_user):
        assert test_user.last_login_at is None

        await user_crud.update_last_login(db_session, test_user.id)

        refreshed = await user_crud.get_by_id(db_session, test_user.id)
        assert refreshed.last_login_at is not None
