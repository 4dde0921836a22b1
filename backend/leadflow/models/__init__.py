"""SQLAlchemy models package."""

from leadflow.models.user import User, Organization, UserRole
from leadflow.models.two_factor import UserTwoFactor
from leadflow.models.lead import DistributionMethod, Lead, LeadAssignmentConfig, LeadStatus

__all__ = [
    "User",
    "Organization",
    "UserRole",
    "UserTwoFactor",
    "Lead",
    "LeadStatus",
    "LeadAssignmentConfig",
    "DistributionMethod",
]
