"""Lead auto-distribution API endpoints."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.dependencies import get_current_manager_user, get_current_user, get_db
from leadflow.models.user import User
from leadflow.schemas.lead import (
    DistributionResultResponse,
    LeadAssignmentConfigResponse,
    LeadAssignmentConfigUpdate,
)
from leadflow.schemas.user import RepSummary
from leadflow.services.lead_distribution_service import lead_distribution_service

router = APIRouter()


@router.get("/config", response_model=LeadAssignmentConfigResponse)
async def get_distribution_config(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the organization's distribution settings (defaults if never saved)."""
    return await lead_distribution_service.get_config(db, current_user.organization_id)


@router.put("/config", response_model=LeadAssignmentConfigResponse)
async def update_distribution_config(
    data: LeadAssignmentConfigUpdate,
    current_user: User = Depends(get_current_manager_user),
    db: AsyncSession = Depends(get_db),
):
    """Save the organization's distribution settings."""
    try:
        return await lead_distribution_service.save_config(
            db,
            current_user.organization_id,
            enabled=data.enabled,
            method=data.method,
            eligible_roles=[role.value for role in data.eligible_roles],
            exclude_user_ids=data.exclude_user_ids,
            max_leads_per_rep=data.max_leads_per_rep,
            reset_cursor=data.reset_cursor,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.get("/eligible-reps", response_model=List[RepSummary])
async def list_eligible_reps(
    current_user: User = Depends(get_current_manager_user),
    db: AsyncSession = Depends(get_db),
):
    """Reps that would currently receive leads, in round-robin order."""
    return await lead_distribution_service.get_eligible_reps(db, current_user.organization_id)


@router.post("/distribute", response_model=DistributionResultResponse)
async def distribute_unassigned_leads(
    current_user: User = Depends(get_current_manager_user),
    db: AsyncSession = Depends(get_db),
):
    """Assign every currently unassigned lead of the organization."""
    return await lead_distribution_service.distribute_unassigned_leads(
        db, current_user.organization_id
    )
