"""User Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from leadflow.models.user import UserRole


class User(BaseModel):
    """User schema for API responses."""

    id: UUID
    organization_id: UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: UserRole
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RepSummary(BaseModel):
    """Compact user view used in rep pickers."""

    id: UUID
    email: str
    display_name: str
    role: UserRole

    class Config:
        from_attributes = True
