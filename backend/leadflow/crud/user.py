"""CRUD operations for users."""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.security import hash_password
from leadflow.models.user import Organization, User, UserRole
from leadflow.utils.datetime_utils import utc_now


class UserCRUD:
    """CRUD operations for User model."""

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Optional[User]:
        """Get user by email."""
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: UUID) -> Optional[User]:
        """Get user by ID."""
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        email: str,
        password: str,
        organization_id: UUID,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: UserRole = UserRole.USER,
        is_active: bool = True,
    ) -> User:
        """Create a new user."""
        user = User(
            email=email,
            password_hash=hash_password(password),
            organization_id=organization_id,
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=is_active,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def update_last_login(db: AsyncSession, user_id: UUID) -> None:
        """Update user's last login timestamp."""
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user:
            user.last_login_at = utc_now()
            await db.commit()


class OrganizationCRUD:
    """CRUD operations for Organization model."""

    @staticmethod
    async def create(db: AsyncSession, name: str) -> Organization:
        """Create a new organization."""
        org = Organization(name=name)
        db.add(org)
        await db.commit()
        await db.refresh(org)
        return org

    @staticmethod
    async def get_by_id(db: AsyncSession, org_id: UUID) -> Optional[Organization]:
        """Get organization by ID."""
        result = await db.execute(select(Organization).where(Organization.id == org_id))
        return result.scalar_one_or_none()


user_crud = UserCRUD()
organization_crud = OrganizationCRUD()
