"""CRUD operations for leads."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.models.lead import Lead


class LeadCRUD:
    """CRUD operations for Lead model."""

    @staticmethod
    async def create(db: AsyncSession, organization_id: UUID, **fields: Any) -> Lead:
        """Create a new, unassigned lead."""
        lead = Lead(organization_id=organization_id, **fields)
        db.add(lead)
        await db.commit()
        await db.refresh(lead)
        return lead

    @staticmethod
    async def get_by_id(db: AsyncSession, organization_id: UUID, lead_id: UUID) -> Optional[Lead]:
        """Get a lead of the organization by ID."""
        result = await db.execute(
            select(Lead).where(Lead.id == lead_id, Lead.organization_id == organization_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_organization(
        db: AsyncSession,
        organization_id: UUID,
        unassigned_only: bool = False,
        assigned_to: Optional[UUID] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Lead]:
        """List leads of an organization, oldest first."""
        query = select(Lead).where(Lead.organization_id == organization_id)
        if unassigned_only:
            query = query.where(Lead.assigned_to.is_(None))
        if assigned_to is not None:
            query = query.where(Lead.assigned_to == assigned_to)
        query = query.order_by(Lead.created_at.asc(), Lead.id.asc()).offset(skip).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())


lead_crud = LeadCRUD()
