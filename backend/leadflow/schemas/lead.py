"""Lead and lead distribution schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from leadflow.models.lead import DistributionMethod, LeadStatus
from leadflow.models.user import UserRole


class LeadCreate(BaseModel):
    """Schema for creating a lead."""

    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    company: Optional[str] = Field(None, max_length=255)
    source: Optional[str] = Field(None, max_length=100)
    custom_fields: Optional[Dict[str, Any]] = None


class LeadResponse(BaseModel):
    """Schema for lead response."""

    id: UUID
    organization_id: UUID
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    source: Optional[str] = None
    status: LeadStatus
    custom_fields: Optional[Dict[str, Any]] = None
    assigned_to: Optional[UUID] = None
    assigned_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LeadAssignmentConfigUpdate(BaseModel):
    """Auto-distribution settings as saved from the settings screen."""

    enabled: bool = False
    method: DistributionMethod = DistributionMethod.ROUND_ROBIN
    eligible_roles: List[UserRole] = Field(
        default_factory=lambda: [UserRole.USER, UserRole.MANAGER]
    )
    exclude_user_ids: List[UUID] = Field(default_factory=list)
    max_leads_per_rep: Optional[int] = Field(None, ge=1)
    reset_cursor: bool = False


class LeadAssignmentConfigResponse(BaseModel):
    """Auto-distribution settings of an organization."""

    enabled: bool
    method: DistributionMethod
    eligible_roles: List[str]
    exclude_user_ids: List[str]
    max_leads_per_rep: Optional[int] = None
    last_assigned_index: int

    class Config:
        from_attributes = True


class AssignedLead(BaseModel):
    lead_id: UUID
    user_id: UUID


class DistributionError(BaseModel):
    lead_id: UUID
    error: str


class DistributionResultResponse(BaseModel):
    """Outcome of a distribution run."""

    assigned_count: int
    skipped_count: int
    errors: List[DistributionError]
    assigned_leads: List[AssignedLead]

    class Config:
        from_attributes = True
