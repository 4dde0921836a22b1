"""Lead and lead auto-distribution models."""

import enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from leadflow.core.database import Base
from leadflow.core.db_types import JSONList, UUID
from leadflow.utils.datetime_utils import utc_now


class LeadStatus(str, enum.Enum):
    """Lead lifecycle status."""

    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    WON = "won"
    LOST = "lost"


class DistributionMethod(str, enum.Enum):
    """Strategy used to pick a rep for an unassigned lead."""

    ROUND_ROBIN = "round_robin"
    LOAD_BALANCED = "load_balanced"
    RANDOM = "random"


class Lead(Base):
    """A sales lead owned by an organization."""

    __tablename__ = "leads"
    __table_args__ = (
        Index("ix_leads_org_assigned_to", "organization_id", "assigned_to"),
        Index("ix_leads_org_created_at", "organization_id", "created_at"),
    )

    id = Column(UUID, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )

    first_name = Column(String(100))
    last_name = Column(String(100))
    email = Column(String(255))
    phone = Column(String(50))
    company = Column(String(255))
    source = Column(String(100))
    status = Column(
        SQLEnum(LeadStatus, values_callable=lambda e: [m.value for m in e], name="lead_status"),
        default=LeadStatus.NEW,
        nullable=False,
    )

    # Tenant-defined fields, stored and returned as-is
    custom_fields = Column(JSON, nullable=True)

    # NULL = unassigned; only the distributor fills this on unassigned leads
    assigned_to = Column(UUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    assignee = relationship("User", foreign_keys=[assigned_to])

    def __repr__(self):
        return f"<Lead {self.id} assigned_to={self.assigned_to}>"


class LeadAssignmentConfig(Base):
    """Per-organization auto-distribution settings and round-robin cursor."""

    __tablename__ = "lead_assignment_configs"

    id = Column(UUID, primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    enabled = Column(Boolean, default=False, nullable=False)
    method = Column(
        SQLEnum(
            DistributionMethod,
            values_callable=lambda e: [m.value for m in e],
            name="distribution_method",
        ),
        default=DistributionMethod.ROUND_ROBIN,
        nullable=False,
    )
    eligible_roles = Column(JSONList, nullable=False, default=list)
    exclude_user_ids = Column(JSONList, nullable=False, default=list)
    max_leads_per_rep = Column(Integer, nullable=True)  # load_balanced only

    # Index of the rep that received the last round-robin assignment
    last_assigned_index = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="lead_assignment_config")

    def __repr__(self):
        return f"<LeadAssignmentConfig org={self.organization_id} method={self.method}>"
