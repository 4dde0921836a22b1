"""User and Organization models."""

import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum as SQLEnum, ForeignKey, String
from sqlalchemy.orm import relationship

from leadflow.core.database import Base
from leadflow.core.db_types import UUID
from leadflow.utils.datetime_utils import utc_now


class UserRole(str, enum.Enum):
    """Role of a user inside their organization."""

    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


class Organization(Base):
    """Organization (tenant) model for multi-tenancy."""

    __tablename__ = "organizations"

    id = Column(UUID, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    users = relationship("User", back_populates="organization", cascade="all, delete-orphan")
    lead_assignment_config = relationship(
        "LeadAssignmentConfig",
        back_populates="organization",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Organization {self.name}>"


class User(Base):
    """User model. Sales reps are users with a rep-eligible role."""

    __tablename__ = "users"

    id = Column(UUID, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    role = Column(
        SQLEnum(UserRole, values_callable=lambda e: [m.value for m in e], name="user_role"),
        default=UserRole.USER,
        nullable=False,
    )

    is_active = Column(Boolean, default=True, nullable=False)

    last_login_at = Column(DateTime)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="users")
    two_factor = relationship(
        "UserTwoFactor", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or self.email

    def __repr__(self):
        return f"<User {self.email}>"
