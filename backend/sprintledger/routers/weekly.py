"""Weekly plan submission routes."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from sprintledger.auth.deps import get_current_user, get_user_roles
from sprintledger.auth.rbac import can_plan_for
from sprintledger.database import get_db
from sprintledger.models.user import User
from sprintledger.repositories.allocations import AllocationRepository
from sprintledger.schemas.allocation import WeeklyAllocationResponse, WeeklyPlanResult, WeeklyPlanSubmit
from sprintledger.services import weekly_service

router = APIRouter(prefix="/weekly-allocations", tags=["weekly-allocations"])


@router.post("", response_model=WeeklyPlanResult)
async def submit_weekly_plan(
    data: WeeklyPlanSubmit,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    allocation = await AllocationRepository(db).get_phase_allocation(data.phase_allocation_id, for_update=False)
    if not allocation:
        raise HTTPException(status_code=404, detail="Phase allocation not found")
    if not can_plan_for(roles, user.id, allocation.consultant_id):
        raise HTTPException(status_code=403, detail="Cannot plan hours for another consultant")
    rows, warning = await weekly_service.submit_weekly_plan(
        db,
        phase_allocation_id=data.phase_allocation_id,
        entries=[weekly_service.WeekEntry(week_start=w.week_start, hours=w.hours) for w in data.weeks],
        user_id=user.id,
    )
    return WeeklyPlanResult(
        weeks=[WeeklyAllocationResponse.model_validate(r) for r in rows],
        warning=warning,
    )
