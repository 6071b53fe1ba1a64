"""Hour change request routes."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from sprintledger.auth.deps import get_current_user, get_user_roles
from sprintledger.auth.rbac import can_plan_for, can_request_hour_change
from sprintledger.database import get_db
from sprintledger.models.allocation import ChangeType
from sprintledger.models.user import User
from sprintledger.repositories.allocations import AllocationRepository
from sprintledger.schemas.allocation import HourChangeCreate, HourChangeResponse, HourChangeResult
from sprintledger.services import change_request_service

router = APIRouter(prefix="/hour-changes", tags=["hour-changes"])


@router.post("", response_model=HourChangeResult, status_code=status.HTTP_201_CREATED)
async def create_hour_change(
    data: HourChangeCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    if not can_request_hour_change(roles):
        raise HTTPException(status_code=403, detail="Cannot request hour changes")
    allocation = await AllocationRepository(db).get_phase_allocation(data.phase_allocation_id, for_update=False)
    if not allocation:
        raise HTTPException(status_code=404, detail="Phase allocation not found")
    if not can_plan_for(roles, user.id, allocation.consultant_id):
        raise HTTPException(status_code=403, detail="Cannot request changes for another consultant")
    request, warning = await change_request_service.create_hour_change_request(
        db,
        phase_allocation_id=data.phase_allocation_id,
        change_type=ChangeType(data.change_type),
        reason=data.reason,
        requester_id=user.id,
        requested_hours=data.requested_hours,
        shift_hours=data.shift_hours,
        to_consultant_id=data.to_consultant_id,
    )
    return HourChangeResult(request=HourChangeResponse.model_validate(request), warning=warning)
