"""Lead API endpoints."""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.crud.lead import lead_crud
from leadflow.dependencies import get_current_user, get_db
from leadflow.models.user import User
from leadflow.schemas.lead import LeadCreate, LeadResponse
from leadflow.services.lead_distribution_service import lead_distribution_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/", response_model=LeadResponse, status_code=status.HTTP_201_CREATED)
async def create_lead(
    lead_data: LeadCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a lead.

    When auto-distribution is enabled the lead is assigned right away. A
    failed assignment never fails the creation; the lead stays unassigned
    and is picked up by the next distribution run.
    """
    lead = await lead_crud.create(
        db, current_user.organization_id, **lead_data.model_dump(exclude_unset=True)
    )

    try:
        await lead_distribution_service.assign_lead(db, current_user.organization_id, lead.id)
    except SQLAlchemyError:
        logger.warning("Auto-assignment failed for lead %s", lead.id, exc_info=True)
        await db.rollback()

    await db.refresh(lead)
    return lead


@router.get("/", response_model=List[LeadResponse])
async def list_leads(
    unassigned_only: bool = False,
    assigned_to: Optional[UUID] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List leads of the current user's organization."""
    return await lead_crud.list_for_organization(
        db,
        current_user.organization_id,
        unassigned_only=unassigned_only,
        assigned_to=assigned_to,
        skip=skip,
        limit=limit,
    )


@router.get("/{lead_id}", response_model=LeadResponse)
async def get_lead(
    lead_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get a single lead."""
    lead = await lead_crud.get_by_id(db, current_user.organization_id, lead_id)
    if lead is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
    return lead
