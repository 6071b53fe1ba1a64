"""Phase and phase roster API routes."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from sprintledger.auth.deps import get_current_user, get_user_roles
from sprintledger.auth.rbac import can_forfeit, can_manage_phases, is_growth_team
from sprintledger.database import get_db
from sprintledger.engine.structure import phase_hour_limits
from sprintledger.models.project import Phase
from sprintledger.models.user import User
from sprintledger.repositories.allocations import AllocationRepository
from sprintledger.schemas.allocation import (
    ForfeitResult,
    PhaseAllocationResponse,
    PhaseAllocationResult,
    PhaseAllocationSet,
)
from sprintledger.schemas.project import PhaseCreate, PhaseResponse, PhaseSprintsUpdate
from sprintledger.services import allocation_service, phase_service

router = APIRouter(prefix="/phases", tags=["phases"])


async def _phase_response(db: AsyncSession, phase_id: int) -> PhaseResponse:
    phase: Phase | None = await AllocationRepository(db).get_phase(phase_id)
    if not phase:
        raise HTTPException(status_code=404, detail="Phase not found")
    return PhaseResponse(
        id=phase.id,
        project_id=phase.project_id,
        name=phase.name,
        description=phase.description,
        start_date=phase.start_date,
        end_date=phase.end_date,
        sprint_numbers=[s.sprint_number for s in phase.sprints],
        max_hours_per_consultant=phase_hour_limits(phase.sprints).max_hours_per_consultant,
    )


def _require_manager(roles: list[str]) -> None:
    if not can_manage_phases(roles):
        raise HTTPException(status_code=403, detail="Cannot manage phases")


@router.post("", response_model=PhaseResponse, status_code=status.HTTP_201_CREATED)
async def create_phase(
    data: PhaseCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_manager(roles)
    phase = await phase_service.create_phase(
        db,
        project_id=data.project_id,
        name=data.name,
        description=data.description,
        sprint_ids=data.sprint_ids,
        user_id=user.id,
    )
    return await _phase_response(db, phase.id)


@router.get("/{phase_id}", response_model=PhaseResponse)
async def get_phase(
    phase_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    return await _phase_response(db, phase_id)


@router.put("/{phase_id}/sprints", response_model=PhaseResponse)
async def update_phase_sprints(
    phase_id: int,
    data: PhaseSprintsUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_manager(roles)
    await phase_service.update_phase_sprints(
        db,
        phase_id=phase_id,
        sprint_ids=data.sprint_ids,
        user_id=user.id,
        is_growth_team=is_growth_team(roles),
    )
    return await _phase_response(db, phase_id)


@router.delete("/{phase_id}", status_code=204)
async def delete_phase(
    phase_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_manager(roles)
    await phase_service.delete_phase(db, phase_id=phase_id, user_id=user.id)


@router.put("/{phase_id}/allocations", response_model=PhaseAllocationResult)
async def set_phase_allocation(
    phase_id: int,
    data: PhaseAllocationSet,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_manager(roles)
    allocation, warning = await allocation_service.set_phase_allocation(
        db,
        phase_id=phase_id,
        consultant_id=data.consultant_id,
        total_hours=data.total_hours,
        user_id=user.id,
    )
    return PhaseAllocationResult(
        allocation=PhaseAllocationResponse.model_validate(allocation),
        warning=warning,
    )


@router.delete("/{phase_id}/allocations/{consultant_id}", response_model=PhaseAllocationResult)
async def remove_consultant(
    phase_id: int,
    consultant_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_manager(roles)
    allocation = await allocation_service.remove_consultant_from_phase(
        db,
        phase_id=phase_id,
        consultant_id=consultant_id,
        user_id=user.id,
    )
    if allocation is None:
        return PhaseAllocationResult(allocation=None, removed=True)
    return PhaseAllocationResult(
        allocation=PhaseAllocationResponse.model_validate(allocation),
        warning="Hours are already planned; removal is waiting for approval",
    )


@router.post("/{phase_id}/allocations/{allocation_id}/forfeit", response_model=ForfeitResult)
async def forfeit_expired_hours(
    phase_id: int,
    allocation_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    if not can_forfeit(roles):
        raise HTTPException(status_code=403, detail="Only the Product Manager can perform this action")
    existing = await AllocationRepository(db).get_phase_allocation(allocation_id, for_update=False)
    if not existing or existing.phase_id != phase_id:
        raise HTTPException(status_code=404, detail="Phase allocation not found")
    allocation, forfeited = await allocation_service.forfeit_expired_hours(
        db,
        allocation_id=allocation_id,
        user_id=user.id,
    )
    return ForfeitResult(
        allocation=PhaseAllocationResponse.model_validate(allocation),
        forfeited_hours=forfeited,
    )
