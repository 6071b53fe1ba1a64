"""Phase creation and sprint assignment."""
from datetime import date
from typing import Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sprintledger.config import get_settings
from sprintledger.engine.structure import (
    SelectionOutcome,
    SelectionStrategy,
    can_edit_phase,
    derive_date_range,
    is_kickoff_phase,
    is_sprint_selectable,
    phase_lock_message,
    toggle_sprint,
    validate_phase_sprints,
)
from sprintledger.errors import DomainError, NotFoundError, PermissionDeniedError, StructureError
from sprintledger.models.allocation import PhaseAllocation
from sprintledger.models.project import Phase, Project, Sprint
from sprintledger.repositories.allocations import AllocationRepository
from sprintledger.services import audit_service

logger = structlog.get_logger(__name__)


def _sprint_numbers(sprints: Sequence[Sprint]) -> str:
    return ",".join(str(s.sprint_number) for s in sorted(sprints, key=lambda s: s.sprint_number))


def _pick_sprints(
    project_sprints: Sequence[Sprint],
    sprint_ids: Sequence[int],
    *,
    phase_id: int | None,
    is_new_phase: bool,
    kickoff: bool,
    today: date,
) -> list[Sprint]:
    by_id = {s.id: s for s in project_sprints}
    unknown = [i for i in sprint_ids if i not in by_id]
    if unknown:
        raise StructureError(f"Sprints {unknown} do not belong to this project")

    chosen = [by_id[i] for i in dict.fromkeys(sprint_ids)]
    for sprint in chosen:
        if sprint.phase_id is not None and sprint.phase_id != phase_id:
            raise StructureError(f"Sprint {sprint.sprint_number} is already assigned to another phase")
        selectable = is_sprint_selectable(
            sprint,
            today=today,
            is_new_phase=is_new_phase,
            is_kickoff_phase=kickoff,
            already_selected=phase_id is not None and sprint.phase_id == phase_id,
        )
        if not selectable:
            raise StructureError(f"Sprint {sprint.sprint_number} cannot be selected for this phase")

    result = validate_phase_sprints(chosen, is_new_phase=is_new_phase, is_kickoff_phase=kickoff)
    if not result.is_valid:
        raise StructureError(result.error)
    return chosen


async def create_phase(
    db: AsyncSession,
    *,
    project_id: int,
    name: str,
    sprint_ids: Sequence[int],
    user_id: int,
    description: str | None = None,
    today: date | None = None,
) -> Phase:
    today = today or date.today()
    project = await db.get(Project, project_id)
    if not project:
        raise NotFoundError("Project not found")
    name = name.strip()
    if not name:
        raise DomainError("Phase name is required")

    repo = AllocationRepository(db)
    project_sprints = await repo.get_sprints_for_project(project_id)
    chosen = _pick_sprints(
        project_sprints,
        sprint_ids,
        phase_id=None,
        is_new_phase=True,
        kickoff=is_kickoff_phase(name),
        today=today,
    )
    dates = derive_date_range(chosen)

    phase = Phase(
        project_id=project_id,
        name=name,
        description=description,
        start_date=dates.start,
        end_date=dates.end,
    )
    db.add(phase)
    await db.flush()
    for sprint in chosen:
        sprint.phase_id = phase.id

    audit_service.record(
        db,
        action="create",
        entity_type="phase",
        entity_id=phase.id,
        user_id=user_id,
        project_id=project_id,
        new_value=f"{name} (sprints {_sprint_numbers(chosen)})",
    )
    await db.flush()
    logger.info("phase_created", phase_id=phase.id, project_id=project_id, sprints=len(chosen))
    return phase


async def update_phase_sprints(
    db: AsyncSession,
    *,
    phase_id: int,
    sprint_ids: Sequence[int],
    user_id: int,
    is_growth_team: bool = False,
    today: date | None = None,
) -> Phase:
    """Replace a phase's sprints and re-derive its dates."""
    today = today or date.today()
    repo = AllocationRepository(db)
    phase = await repo.get_phase(phase_id, for_update=True)
    if not phase:
        raise NotFoundError("Phase not found")
    if not can_edit_phase(phase.end_date, today, is_growth_team):
        raise PermissionDeniedError(phase_lock_message(phase.end_date, today))

    project_sprints = await repo.get_sprints_for_project(phase.project_id)
    chosen = _pick_sprints(
        project_sprints,
        sprint_ids,
        phase_id=phase.id,
        is_new_phase=False,
        kickoff=is_kickoff_phase(phase.name),
        today=today,
    )
    old_sprints = _sprint_numbers([s for s in project_sprints if s.phase_id == phase.id])
    chosen_ids = {s.id for s in chosen}
    for sprint in project_sprints:
        if sprint.id in chosen_ids:
            sprint.phase_id = phase.id
        elif sprint.phase_id == phase.id:
            sprint.phase_id = None

    dates = derive_date_range(chosen)
    phase.start_date = dates.start
    phase.end_date = dates.end

    audit_service.record(
        db,
        action="update_sprints",
        entity_type="phase",
        entity_id=phase.id,
        user_id=user_id,
        project_id=phase.project_id,
        old_value=old_sprints,
        new_value=_sprint_numbers(chosen),
    )
    await db.flush()
    logger.info("phase_sprints_updated", phase_id=phase.id, old=old_sprints, new=_sprint_numbers(chosen))
    return phase


async def delete_phase(db: AsyncSession, *, phase_id: int, user_id: int) -> None:
    """Delete a phase that has no planned weekly hours. Its sprints become unassigned."""
    result = await db.execute(
        select(Phase)
        .where(Phase.id == phase_id)
        .options(
            selectinload(Phase.sprints),
            selectinload(Phase.allocations).selectinload(PhaseAllocation.weekly_allocations),
        )
        .execution_options(populate_existing=True)
        .with_for_update(of=Phase)
    )
    phase = result.scalar_one_or_none()
    if not phase:
        raise NotFoundError("Phase not found")

    repo = AllocationRepository(db)
    for allocation in phase.allocations:
        if await repo.get_planned_hours(allocation.id) > 0:
            raise DomainError("Cannot delete a phase with planned weekly hours; remove its consultants first")

    for sprint in phase.sprints:
        sprint.phase_id = None
    audit_service.record(
        db,
        action="delete",
        entity_type="phase",
        entity_id=phase.id,
        user_id=user_id,
        project_id=phase.project_id,
        old_value=phase.name,
    )
    await db.delete(phase)
    await db.flush()
    logger.info("phase_deleted", phase_id=phase_id)


async def preview_sprint_toggle(
    db: AsyncSession,
    *,
    project_id: int,
    selected_ids: Sequence[int],
    sprint_id: int,
    checked: bool,
    phase_id: int | None = None,
    today: date | None = None,
) -> SelectionOutcome:
    """What a phase form's sprint selection becomes after one checkbox change."""
    today = today or date.today()
    repo = AllocationRepository(db)
    phase = None
    if phase_id is not None:
        phase = await repo.get_phase(phase_id)
        if not phase or phase.project_id != project_id:
            raise NotFoundError("Phase not found")

    kickoff = phase is not None and is_kickoff_phase(phase.name)
    available = [
        s
        for s in await repo.get_sprints_for_project(project_id)
        if s.phase_id in (None, phase_id)
        and is_sprint_selectable(
            s,
            today=today,
            is_new_phase=phase is None,
            is_kickoff_phase=kickoff,
            already_selected=phase is not None and s.phase_id == phase.id,
        )
    ]
    strategy = SelectionStrategy(get_settings().sprint_selection_strategy)
    return toggle_sprint(selected_ids, sprint_id, checked, available, strategy)


async def get_phase_with_allocations(db: AsyncSession, phase_id: int) -> Phase:
    result = await db.execute(
        select(Phase)
        .where(Phase.id == phase_id)
        .options(selectinload(Phase.sprints), selectinload(Phase.allocations))
    )
    phase = result.scalar_one_or_none()
    if not phase:
        raise NotFoundError("Phase not found")
    return phase
