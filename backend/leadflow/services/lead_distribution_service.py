"""Automatic distribution of unassigned leads to sales reps.

Three interchangeable strategies pick the rep for each lead:

- round_robin: cycles through the id-sorted eligible reps using the cursor
  persisted on the tenant's ``LeadAssignmentConfig``.
- load_balanced: rep with the fewest assigned leads, optionally capped by
  ``max_leads_per_rep``.
- random: uniform choice, independent per lead.

The config row is locked for the whole batch, so two concurrent batches for
the same organization serialize instead of advancing the cursor from the same
starting value. Lead writes are conditional on the lead still being
unassigned and each runs in its own savepoint, so one failing write never
loses the rest of the batch.
"""

import logging
import random
import secrets
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.config import settings
from leadflow.core.logging_config import get_logger, log_distribution_run
from leadflow.models.lead import DistributionMethod, Lead, LeadAssignmentConfig
from leadflow.models.user import Organization, User, UserRole
from leadflow.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)
struct_logger = get_logger(__name__)

_system_random = secrets.SystemRandom()


class LeadDistributionError(Exception):
    """Base class for expected distribution failures."""

    code = "lead_distribution_error"
    default_message = "Lead distribution failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class TenantNotFoundError(LeadDistributionError):
    code = "not_found"
    default_message = "Organization not found"


class NoEligibleRepsError(LeadDistributionError):
    code = "no_eligible_reps"
    default_message = "No eligible team members found. Check role settings."


@dataclass
class DistributionResult:
    """Aggregate outcome of a distribution run."""

    assigned_count: int = 0
    skipped_count: int = 0
    errors: List[dict] = field(default_factory=list)
    assigned_leads: List[dict] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Strategies (pure)
# ---------------------------------------------------------------------------


def sort_reps(reps: Sequence[User]) -> List[User]:
    """Stable rep order used by the round-robin cursor."""
    return sorted(reps, key=lambda rep: str(rep.id))


def pick_round_robin(reps: Sequence[User], last_assigned_index: int) -> Tuple[User, int]:
    """
    Next rep after the cursor.

    The cursor is reduced modulo the current rep count first, so a roster
    that shrank since the cursor was saved never indexes out of range.

    Returns:
        Tuple of (rep, new cursor value)
    """
    index = (last_assigned_index % len(reps) + 1) % len(reps)
    return reps[index], index


def pick_load_balanced(
    reps: Sequence[User],
    load_by_rep: Dict[UUID, int],
    max_leads_per_rep: Optional[int] = None,
) -> Optional[User]:
    """
    Rep with the fewest assigned leads; ties go to the earliest rep in ``reps``.

    Reps at or above ``max_leads_per_rep`` are not considered. Returns None
    when every rep is at the cap.
    """
    best = None
    best_load = None
    for rep in reps:
        load = load_by_rep.get(rep.id, 0)
        if max_leads_per_rep is not None and load >= max_leads_per_rep:
            continue
        if best is None or load < best_load:
            best, best_load = rep, load
    return best


def pick_random(reps: Sequence[User], rng: Optional[random.Random] = None) -> User:
    """Uniform random rep."""
    return (rng or _system_random).choice(list(reps))


class AssignmentPlanner:
    """
    Per-batch strategy state: in-memory loads and the round-robin cursor.

    ``propose`` is side-effect free; ``commit`` is called only once the
    assignment has been written, so the cursor and loads reflect exactly the
    assignments that were persisted.
    """

    def __init__(
        self,
        method: DistributionMethod,
        reps: Sequence[User],
        load_by_rep: Optional[Dict[UUID, int]] = None,
        last_assigned_index: int = 0,
        max_leads_per_rep: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        self.method = DistributionMethod(method)
        self.reps = sort_reps(reps)
        self.load_by_rep = dict(load_by_rep or {})
        self.cursor = last_assigned_index
        self.max_leads_per_rep = max_leads_per_rep
        self.rng = rng
        self._proposed_index: Optional[int] = None

    def propose(self) -> Optional[User]:
        """Rep for the next lead, or None when the lead must be skipped."""
        if not self.reps:
            return None

        if self.method == DistributionMethod.ROUND_ROBIN:
            rep, self._proposed_index = pick_round_robin(self.reps, self.cursor)
            return rep

        if self.method == DistributionMethod.LOAD_BALANCED:
            return pick_load_balanced(self.reps, self.load_by_rep, self.max_leads_per_rep)

        return pick_random(self.reps, self.rng)

    def commit(self, rep: User) -> None:
        """Record a persisted assignment to ``rep``."""
        self.load_by_rep[rep.id] = self.load_by_rep.get(rep.id, 0) + 1
        if self.method == DistributionMethod.ROUND_ROBIN and self._proposed_index is not None:
            self.cursor = self._proposed_index
        self._proposed_index = None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class LeadDistributionService:
    """Service for lead auto-distribution settings and runs."""

    @staticmethod
    def default_config(organization_id: UUID) -> LeadAssignmentConfig:
        """Transient config used until an organization saves its own."""
        return LeadAssignmentConfig(
            organization_id=organization_id,
            enabled=False,
            method=DistributionMethod.ROUND_ROBIN,
            eligible_roles=list(settings.DISTRIBUTION_DEFAULT_ROLES),
            exclude_user_ids=[],
            max_leads_per_rep=None,
            last_assigned_index=0,
        )

    async def get_config(self, db: AsyncSession, organization_id: UUID) -> LeadAssignmentConfig:
        """
        Get the organization's config, or the default one if none was saved.

        Raises:
            TenantNotFoundError: If the organization does not exist
        """
        await self._ensure_organization(db, organization_id)
        config = await self._load_config(db, organization_id)
        return config or self.default_config(organization_id)

    async def save_config(
        self,
        db: AsyncSession,
        organization_id: UUID,
        enabled: bool,
        method: DistributionMethod,
        eligible_roles: Sequence[str],
        exclude_user_ids: Sequence[UUID] = (),
        max_leads_per_rep: Optional[int] = None,
        reset_cursor: bool = False,
    ) -> LeadAssignmentConfig:
        """
        Create or update the organization's config.

        The round-robin cursor is preserved unless ``reset_cursor`` is set.

        Raises:
            TenantNotFoundError: If the organization does not exist
            ValueError: If a role is unknown or the cap is below 1
        """
        await self._ensure_organization(db, organization_id)

        roles = [UserRole(role).value for role in eligible_roles]
        if max_leads_per_rep is not None and max_leads_per_rep < 1:
            raise ValueError("max_leads_per_rep must be at least 1")

        config = await self._load_config(db, organization_id, for_update=True)
        if config is None:
            config = LeadAssignmentConfig(organization_id=organization_id, last_assigned_index=0)
            db.add(config)

        config.enabled = enabled
        config.method = DistributionMethod(method)
        config.eligible_roles = sorted(set(roles))
        config.exclude_user_ids = sorted({str(user_id) for user_id in exclude_user_ids})
        config.max_leads_per_rep = max_leads_per_rep
        if reset_cursor:
            config.last_assigned_index = 0

        await db.commit()
        await db.refresh(config)

        logger.info(
            "Lead distribution config saved for org %s (enabled=%s, method=%s)",
            organization_id,
            config.enabled,
            config.method.value,
        )
        return config

    async def get_eligible_reps(
        self,
        db: AsyncSession,
        organization_id: UUID,
        config: Optional[LeadAssignmentConfig] = None,
    ) -> List[User]:
        """
        Active users of the organization whose role is eligible and who are
        not excluded, in round-robin order.
        """
        if config is None:
            config = await self.get_config(db, organization_id)

        roles = []
        for role in config.eligible_roles or []:
            try:
                roles.append(UserRole(role))
            except ValueError:
                logger.warning("Ignoring unknown eligible role %r for org %s", role, organization_id)
        if not roles:
            return []

        result = await db.execute(
            select(User).where(
                User.organization_id == organization_id,
                User.is_active.is_(True),
                User.role.in_(roles),
            )
        )
        excluded = {str(user_id) for user_id in (config.exclude_user_ids or [])}
        reps = [user for user in result.scalars().all() if str(user.id) not in excluded]
        return sort_reps(reps)

    async def distribute_unassigned_leads(
        self,
        db: AsyncSession,
        organization_id: UUID,
        rng: Optional[random.Random] = None,
    ) -> DistributionResult:
        """
        Assign every currently unassigned lead of the organization.

        Raises:
            TenantNotFoundError: If the organization does not exist
            NoEligibleRepsError: If no user can receive leads (nothing is written)
        """
        await self._ensure_organization(db, organization_id)
        config = await self._load_config(db, organization_id, for_update=True)

        if config is None or not config.enabled:
            return DistributionResult()

        reps = await self.get_eligible_reps(db, organization_id, config)
        if not reps:
            raise NoEligibleRepsError()

        result = await db.execute(
            select(Lead)
            .where(
                Lead.organization_id == organization_id,
                Lead.assigned_to.is_(None),
            )
            .order_by(Lead.created_at.asc(), Lead.id.asc())
        )
        leads = list(result.scalars().all())

        if not leads:
            return DistributionResult()

        logger.info(
            "Distributing %d unassigned leads for org %s via %s across %d reps",
            len(leads),
            organization_id,
            config.method.value,
            len(reps),
        )

        outcome = await self._assign_leads(db, config, reps, leads, rng)
        await db.commit()

        log_distribution_run(
            struct_logger,
            organization_id=str(organization_id),
            method=config.method.value,
            assigned_count=outcome.assigned_count,
            skipped_count=outcome.skipped_count,
            error_count=len(outcome.errors),
            rep_count=len(reps),
        )
        return outcome

    async def assign_lead(
        self,
        db: AsyncSession,
        organization_id: UUID,
        lead_id: UUID,
        rng: Optional[random.Random] = None,
    ) -> Optional[UUID]:
        """
        Auto-assign a single (typically just created) lead.

        Returns the assigned user id, or None when distribution is disabled,
        nobody is eligible, every rep is at the cap, or the lead is already
        assigned. Never raises for those cases.
        """
        config = await self._load_config(db, organization_id, for_update=True)
        if config is None or not config.enabled:
            return None

        reps = await self.get_eligible_reps(db, organization_id, config)
        if not reps:
            logger.warning("No eligible reps to auto-assign lead %s in org %s", lead_id, organization_id)
            return None

        result = await db.execute(
            select(Lead).where(
                Lead.id == lead_id,
                Lead.organization_id == organization_id,
                Lead.assigned_to.is_(None),
            )
        )
        lead = result.scalar_one_or_none()
        if lead is None:
            return None

        outcome = await self._assign_leads(db, config, reps, [lead], rng)
        await db.commit()

        if not outcome.assigned_leads:
            return None
        return outcome.assigned_leads[0]["user_id"]

    # -------------------------------------------------------------------
    # Internal methods
    # -------------------------------------------------------------------

    async def _assign_leads(
        self,
        db: AsyncSession,
        config: LeadAssignmentConfig,
        reps: Sequence[User],
        leads: Sequence[Lead],
        rng: Optional[random.Random],
    ) -> DistributionResult:
        """Assign ``leads`` in order and advance the cursor; caller commits."""
        load_by_rep = await self._current_load(db, config.organization_id, [rep.id for rep in reps])
        planner = AssignmentPlanner(
            method=config.method,
            reps=reps,
            load_by_rep=load_by_rep,
            last_assigned_index=config.last_assigned_index or 0,
            max_leads_per_rep=(
                config.max_leads_per_rep
                if config.method == DistributionMethod.LOAD_BALANCED
                else None
            ),
            rng=rng,
        )
        outcome = DistributionResult()

        for lead in leads:
            lead_id = lead.id
            rep = planner.propose()
            if rep is None:
                outcome.skipped_count += 1
                continue

            try:
                async with db.begin_nested():
                    written = await self._write_assignment(db, lead_id, rep.id)
            except SQLAlchemyError as exc:
                logger.warning("Failed to assign lead %s to %s", lead_id, rep.id, exc_info=True)
                outcome.errors.append(
                    {"lead_id": lead_id, "error": f"Failed to assign lead: {type(exc).__name__}"}
                )
                continue

            if not written:
                # Assigned by someone else since the batch was loaded
                outcome.skipped_count += 1
                continue

            planner.commit(rep)
            outcome.assigned_count += 1
            outcome.assigned_leads.append({"lead_id": lead_id, "user_id": rep.id})

        if config.method == DistributionMethod.ROUND_ROBIN and outcome.assigned_count:
            config.last_assigned_index = planner.cursor

        return outcome

    async def _write_assignment(self, db: AsyncSession, lead_id: UUID, user_id: UUID) -> bool:
        """Assign the lead if it is still unassigned. Returns False if it was not."""
        result = await db.execute(
            update(Lead)
            .where(Lead.id == lead_id, Lead.assigned_to.is_(None))
            .values(assigned_to=user_id, assigned_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _current_load(
        self, db: AsyncSession, organization_id: UUID, rep_ids: Sequence[UUID]
    ) -> Dict[UUID, int]:
        """Number of leads currently assigned to each rep."""
        if not rep_ids:
            return {}
        result = await db.execute(
            select(Lead.assigned_to, func.count(Lead.id))
            .where(
                Lead.organization_id == organization_id,
                Lead.assigned_to.in_(list(rep_ids)),
            )
            .group_by(Lead.assigned_to)
        )
        return {user_id: count for user_id, count in result.all()}

    async def _load_config(
        self, db: AsyncSession, organization_id: UUID, for_update: bool = False
    ) -> Optional[LeadAssignmentConfig]:
        query = (
            select(LeadAssignmentConfig)
            .where(LeadAssignmentConfig.organization_id == organization_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def _ensure_organization(self, db: AsyncSession, organization_id: UUID) -> None:
        result = await db.execute(
            select(Organization.id).where(Organization.id == organization_id)
        )
        if result.scalar_one_or_none() is None:
            raise TenantNotFoundError()


lead_distribution_service = LeadDistributionService()
