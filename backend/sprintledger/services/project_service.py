"""Project bootstrap: sprint layout, kickoff phase and the consultant roster."""
from datetime import date
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from sprintledger.config import get_settings
from sprintledger.engine.allocation_rules import validate_project_budget
from sprintledger.engine.results import to_hours
from sprintledger.engine.structure import KICKOFF_SPRINT_NUMBER, generate_sprints
from sprintledger.errors import DomainError
from sprintledger.models.project import Phase, Project, ProjectConsultant, Sprint
from sprintledger.services import audit_service

logger = structlog.get_logger(__name__)


async def create_project(
    db: AsyncSession,
    *,
    title: str,
    budgeted_hours,
    start_date: date,
    end_date: date,
    product_manager_id: int | None,
    consultants: dict[int, Decimal] | None = None,
    description: str | None = None,
    user_id: int | None = None,
) -> tuple[Project, str | None]:
    """Create a project with its sprints and its consultant roster.

    When the layout includes a sprint 0 the kickoff phase is created with it,
    since no later phase may claim that sprint. A roster that books more
    hours than the budget is allowed and reported as a warning.
    """
    budget = to_hours(budgeted_hours)
    if budget < 0:
        raise DomainError("Budgeted hours cannot be negative")
    roster = {cid: to_hours(hours) for cid, hours in (consultants or {}).items()}
    if any(hours < 0 for hours in roster.values()):
        raise DomainError("Consultant hours cannot be negative")
    roster_hours = sum(roster.values(), Decimal(0))
    warning = None
    if roster_hours > budget:
        warning = validate_project_budget(budget, roster_hours, title).warning
    try:
        layout = generate_sprints(start_date, end_date)
    except ValueError as exc:
        raise DomainError(str(exc)) from exc

    project = Project(
        title=title,
        description=description,
        budgeted_hours=budget,
        start_date=start_date,
        product_manager_id=product_manager_id,
    )
    db.add(project)
    await db.flush()

    sprints = [
        Sprint(project_id=project.id, sprint_number=s.sprint_number, start_date=s.start_date, end_date=s.end_date)
        for s in layout
    ]
    db.add_all(sprints)
    for consultant_id, hours in roster.items():
        db.add(ProjectConsultant(project_id=project.id, user_id=consultant_id, allocated_hours=hours))
    await db.flush()

    kickoff = next((s for s in sprints if s.sprint_number == KICKOFF_SPRINT_NUMBER), None)
    if kickoff is not None:
        phase = Phase(
            project_id=project.id,
            name=get_settings().kickoff_phase_name,
            start_date=kickoff.start_date,
            end_date=kickoff.end_date,
        )
        db.add(phase)
        await db.flush()
        kickoff.phase_id = phase.id

    audit_service.record(
        db,
        action="create",
        entity_type="project",
        entity_id=project.id,
        user_id=user_id,
        project_id=project.id,
        new_value=project.title,
    )
    await db.flush()
    logger.info("project_created", project_id=project.id, sprint_count=len(sprints), consultants=len(roster))
    return project, warning
