"""Read-only availability views built on the capacity calculator."""
from datetime import date
from typing import Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintledger.engine.capacity import ConsultantCapacity, calculate_capacity
from sprintledger.engine.structure import PhaseHourLimits, phase_hour_limits
from sprintledger.errors import DomainError, NotFoundError
from sprintledger.models.project import Phase, ProjectConsultant
from sprintledger.repositories.allocations import AllocationRepository

logger = structlog.get_logger(__name__)


async def consultant_availability(
    db: AsyncSession,
    start: date,
    end: date,
    consultant_ids: Sequence[int],
) -> list[ConsultantCapacity]:
    """Weekly load of each consultant across every project between two dates."""
    if end < start:
        raise DomainError("End date must not be before start date")
    repo = AllocationRepository(db)
    snapshots = await repo.get_overlapping_allocations(consultant_ids, start, end)
    logger.debug("availability_computed", consultants=len(consultant_ids), allocations=len(snapshots))
    return calculate_capacity(consultant_ids, start, end, snapshots)


async def phase_consultant_availability(
    db: AsyncSession,
    phase_id: int,
    consultant_ids: Sequence[int] | None = None,
) -> tuple[Phase, PhaseHourLimits, list[ConsultantCapacity]]:
    """Availability over a phase's date range, defaulting to the project's whole team."""
    repo = AllocationRepository(db)
    phase = await repo.get_phase(phase_id)
    if not phase:
        raise NotFoundError("Phase not found")
    if consultant_ids is None:
        result = await db.execute(
            select(ProjectConsultant.user_id)
            .where(ProjectConsultant.project_id == phase.project_id)
            .order_by(ProjectConsultant.user_id)
        )
        consultant_ids = list(result.scalars().all())

    limits = phase_hour_limits(phase.sprints)
    capacities = await consultant_availability(db, phase.start_date, phase.end_date, consultant_ids)
    return phase, limits, capacities
