"""Allocation queries used by the services for every bounds check.

Each method reads committed state inside the caller's transaction. Lookups
that precede a write take a row lock so concurrent approvals and plan
submissions on the same allocation serialise.
"""
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sprintledger.engine.capacity import AllocationSnapshot, WeeklyHours
from sprintledger.models.allocation import (
    UNCOMMITTED_STATUSES,
    ApprovalStatus,
    PhaseAllocation,
    PlanningStatus,
    WeeklyAllocation,
)
from sprintledger.models.project import Phase, Project, ProjectConsultant, Sprint

DECIDED_PLANNING_STATUSES = (PlanningStatus.APPROVED, PlanningStatus.MODIFIED)


class AllocationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_project_allocations(
        self,
        consultant_id: int,
        project_id: int,
        exclude_phase_id: int | None = None,
    ) -> Decimal:
        """Hours committed to phases of a project, ignoring released and rejected allocations."""
        stmt = (
            select(func.coalesce(func.sum(PhaseAllocation.total_hours), 0))
            .join(Phase, Phase.id == PhaseAllocation.phase_id)
            .where(
                PhaseAllocation.consultant_id == consultant_id,
                Phase.project_id == project_id,
                PhaseAllocation.approval_status.not_in(list(UNCOMMITTED_STATUSES)),
            )
        )
        if exclude_phase_id is not None:
            stmt = stmt.where(PhaseAllocation.phase_id != exclude_phase_id)
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar_one()))

    async def get_project_approved_hours(self, project_id: int) -> Decimal:
        """Approved allocation hours across every phase of a project, for budget utilisation."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(PhaseAllocation.total_hours), 0))
            .join(Phase, Phase.id == PhaseAllocation.phase_id)
            .where(Phase.project_id == project_id, PhaseAllocation.approval_status == ApprovalStatus.APPROVED)
        )
        return Decimal(str(result.scalar_one()))

    async def get_planned_hours(self, phase_allocation_id: int, decided_only: bool = False) -> Decimal:
        """Sum of effective weekly hours under an allocation.

        Rejected weeks never count. With ``decided_only`` only approved and
        modified weeks count, which is what expiry looks at.
        """
        effective = func.coalesce(WeeklyAllocation.approved_hours, WeeklyAllocation.proposed_hours)
        stmt = select(func.coalesce(func.sum(effective), 0)).where(
            WeeklyAllocation.phase_allocation_id == phase_allocation_id,
        )
        if decided_only:
            stmt = stmt.where(WeeklyAllocation.planning_status.in_(DECIDED_PLANNING_STATUSES))
        else:
            stmt = stmt.where(WeeklyAllocation.planning_status != PlanningStatus.REJECTED)
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar_one()))

    async def get_overlapping_allocations(
        self,
        consultant_ids: Iterable[int],
        start: date,
        end: date,
    ) -> list[AllocationSnapshot]:
        """Every counted allocation of these consultants whose phase overlaps [start, end], across all projects."""
        ids = list(consultant_ids)
        if not ids:
            return []
        stmt = (
            select(PhaseAllocation, Phase, Project.title)
            .join(Phase, Phase.id == PhaseAllocation.phase_id)
            .join(Project, Project.id == Phase.project_id)
            .where(
                PhaseAllocation.consultant_id.in_(ids),
                PhaseAllocation.approval_status.not_in(list(UNCOMMITTED_STATUSES)),
                Phase.start_date <= end,
                Phase.end_date >= start,
            )
            .options(selectinload(PhaseAllocation.weekly_allocations))
            .order_by(PhaseAllocation.id)
        )
        result = await self.session.execute(stmt)
        snapshots = []
        for allocation, phase, title in result.all():
            snapshots.append(
                AllocationSnapshot(
                    phase_allocation_id=allocation.id,
                    consultant_id=allocation.consultant_id,
                    project_id=phase.project_id,
                    project_title=title,
                    phase_id=phase.id,
                    phase_name=phase.name,
                    approval_status=allocation.approval_status,
                    total_hours=allocation.total_hours,
                    weeks=tuple(
                        WeeklyHours(
                            week_start=w.week_start_date,
                            proposed_hours=w.proposed_hours,
                            approved_hours=w.approved_hours,
                            planning_status=w.planning_status,
                        )
                        for w in allocation.weekly_allocations
                    ),
                )
            )
        return snapshots

    async def get_sprints_for_project(self, project_id: int) -> list[Sprint]:
        result = await self.session.execute(
            select(Sprint).where(Sprint.project_id == project_id).order_by(Sprint.sprint_number)
        )
        return list(result.scalars().all())

    async def get_project_allocated_hours(self, consultant_id: int, project_id: int) -> Decimal | None:
        """The consultant's project-level hour allocation, or None when not on the project team."""
        result = await self.session.execute(
            select(ProjectConsultant.allocated_hours).where(
                ProjectConsultant.project_id == project_id,
                ProjectConsultant.user_id == consultant_id,
            )
        )
        hours = result.scalar_one_or_none()
        return None if hours is None else Decimal(str(hours))

    async def get_phase(self, phase_id: int, for_update: bool = False) -> Phase | None:
        stmt = (
            select(Phase)
            .where(Phase.id == phase_id)
            .options(selectinload(Phase.sprints), selectinload(Phase.project))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update(of=Phase)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_phase_allocation(self, allocation_id: int, for_update: bool = True) -> PhaseAllocation | None:
        stmt = (
            select(PhaseAllocation)
            .where(PhaseAllocation.id == allocation_id)
            .options(
                selectinload(PhaseAllocation.phase).selectinload(Phase.project),
                selectinload(PhaseAllocation.weekly_allocations),
            )
        )
        if for_update:
            # Locked reads must not be served from the identity map
            stmt = stmt.with_for_update(of=PhaseAllocation).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_phase_allocation_for(
        self,
        phase_id: int,
        consultant_id: int,
        for_update: bool = True,
    ) -> PhaseAllocation | None:
        stmt = (
            select(PhaseAllocation)
            .where(PhaseAllocation.phase_id == phase_id, PhaseAllocation.consultant_id == consultant_id)
            .options(
                selectinload(PhaseAllocation.phase).selectinload(Phase.project),
                selectinload(PhaseAllocation.weekly_allocations),
            )
        )
        if for_update:
            # Locked reads must not be served from the identity map
            stmt = stmt.with_for_update(of=PhaseAllocation).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_weekly_allocations(self, ids: Sequence[int], for_update: bool = True) -> dict[int, WeeklyAllocation]:
        if not ids:
            return {}
        stmt = (
            select(WeeklyAllocation)
            .where(WeeklyAllocation.id.in_(list(ids)))
            .options(selectinload(WeeklyAllocation.phase_allocation).selectinload(PhaseAllocation.phase))
        )
        if for_update:
            # Locked reads must not be served from the identity map
            stmt = stmt.with_for_update(of=WeeklyAllocation).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return {w.id: w for w in result.scalars().all()}

    async def get_expiry_candidates(self, today: date) -> list[PhaseAllocation]:
        """APPROVED allocations whose phase ended before ``today``."""
        stmt = (
            select(PhaseAllocation)
            .join(Phase, Phase.id == PhaseAllocation.phase_id)
            .where(PhaseAllocation.approval_status == ApprovalStatus.APPROVED, Phase.end_date < today)
            .options(selectinload(PhaseAllocation.phase).selectinload(Phase.project))
            .order_by(PhaseAllocation.id)
            .with_for_update(of=PhaseAllocation)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
