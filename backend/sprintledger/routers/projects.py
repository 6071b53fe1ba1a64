"""Project API routes."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sprintledger.auth.deps import get_current_user, get_user_roles
from sprintledger.auth.rbac import can_manage_phases
from sprintledger.database import get_db
from sprintledger.models.project import Project
from sprintledger.models.user import User
from sprintledger.schemas.project import (
    ProjectCreate,
    ProjectResponse,
    SprintToggleRequest,
    SprintToggleResponse,
)
from sprintledger.services import phase_service, project_service

router = APIRouter(prefix="/projects", tags=["projects"])


async def _load_project(db: AsyncSession, project_id: int) -> Project:
    result = await db.execute(
        select(Project)
        .where(Project.id == project_id)
        .options(selectinload(Project.sprints))
        .execution_options(populate_existing=True)
    )
    project = result.scalar_one_or_none()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    if not can_manage_phases(roles):
        raise HTTPException(status_code=403, detail="Cannot create project")
    project, warning = await project_service.create_project(
        db,
        title=data.title,
        description=data.description,
        budgeted_hours=data.budgeted_hours,
        start_date=data.start_date,
        end_date=data.end_date,
        product_manager_id=data.product_manager_id,
        consultants={c.user_id: c.allocated_hours for c in data.consultants},
        user_id=user.id,
    )
    response = ProjectResponse.model_validate(await _load_project(db, project.id))
    response.warning = warning
    return response


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    return ProjectResponse.model_validate(await _load_project(db, project_id))


@router.post("/{project_id}/sprint-selection", response_model=SprintToggleResponse)
async def toggle_sprint_selection(
    project_id: int,
    data: SprintToggleRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    outcome = await phase_service.preview_sprint_toggle(
        db,
        project_id=project_id,
        selected_ids=data.selected_ids,
        sprint_id=data.sprint_id,
        checked=data.checked,
        phase_id=data.phase_id,
    )
    return SprintToggleResponse(
        selected_ids=list(outcome.selected_ids),
        accepted=outcome.accepted,
        error=outcome.error,
    )
