"""Approval queue routes for the growth team."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintledger.auth.deps import get_current_user, get_user_roles
from sprintledger.auth.rbac import can_approve
from sprintledger.database import get_db
from sprintledger.engine.approvals import BatchItem, WeeklyAction
from sprintledger.models.allocation import ApprovalStatus, PhaseAllocation, PlanningStatus, WeeklyAllocation
from sprintledger.models.user import User
from sprintledger.schemas.allocation import (
    AllocationApprove,
    BatchDecision,
    BatchItemResponse,
    BatchResultResponse,
    HourChangeResponse,
    PhaseAllocationResponse,
    PhaseAllocationResult,
    RejectRequest,
    WeeklyAllocationResponse,
    WeeklyDecision,
)
from sprintledger.services import allocation_service, change_request_service, weekly_service

router = APIRouter(prefix="/approvals", tags=["approvals"])


def _require_approver(roles: list[str]) -> None:
    if not can_approve(roles):
        raise HTTPException(status_code=403, detail="Only the growth team can approve")


# Phase allocations

@router.get("/phase-allocations", response_model=list[PhaseAllocationResponse])
async def list_pending_phase_allocations(
    db: Annotated[AsyncSession, Depends(get_db)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_approver(roles)
    result = await db.execute(
        select(PhaseAllocation)
        .where(PhaseAllocation.approval_status.in_([ApprovalStatus.PENDING, ApprovalStatus.DELETION_PENDING]))
        .order_by(PhaseAllocation.id)
    )
    return [PhaseAllocationResponse.model_validate(a) for a in result.scalars().all()]


@router.post("/phase-allocations/{allocation_id}/approve", response_model=PhaseAllocationResult)
async def approve_phase_allocation(
    allocation_id: int,
    data: AllocationApprove,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_approver(roles)
    allocation, warning = await allocation_service.approve_phase_allocation(
        db,
        allocation_id=allocation_id,
        approver_id=user.id,
        approved_hours=data.approved_hours,
    )
    return PhaseAllocationResult(allocation=PhaseAllocationResponse.model_validate(allocation), warning=warning)


@router.post("/phase-allocations/{allocation_id}/reject", response_model=PhaseAllocationResponse)
async def reject_phase_allocation(
    allocation_id: int,
    data: RejectRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_approver(roles)
    allocation = await allocation_service.reject_phase_allocation(
        db,
        allocation_id=allocation_id,
        approver_id=user.id,
        reason=data.reason,
    )
    return PhaseAllocationResponse.model_validate(allocation)


@router.post("/phase-allocations/{allocation_id}/approve-deletion", response_model=PhaseAllocationResult)
async def approve_deletion(
    allocation_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_approver(roles)
    await allocation_service.approve_deletion(db, allocation_id=allocation_id, approver_id=user.id)
    return PhaseAllocationResult(allocation=None, removed=True)


@router.post("/phase-allocations/{allocation_id}/reject-deletion", response_model=PhaseAllocationResponse)
async def reject_deletion(
    allocation_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_approver(roles)
    allocation = await allocation_service.reject_deletion(db, allocation_id=allocation_id, approver_id=user.id)
    return PhaseAllocationResponse.model_validate(allocation)


# Weekly allocations

@router.get("/weekly-allocations", response_model=list[WeeklyAllocationResponse])
async def list_pending_weekly_allocations(
    db: Annotated[AsyncSession, Depends(get_db)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_approver(roles)
    result = await db.execute(
        select(WeeklyAllocation)
        .where(WeeklyAllocation.planning_status == PlanningStatus.PENDING)
        .order_by(WeeklyAllocation.week_start_date, WeeklyAllocation.id)
    )
    return [WeeklyAllocationResponse.model_validate(w) for w in result.scalars().all()]


@router.post("/weekly-allocations/batch", response_model=BatchResultResponse)
async def batch_decide_weekly_allocations(
    data: BatchDecision,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_approver(roles)
    items = [
        BatchItem(
            id=item.id,
            action=WeeklyAction(item.action) if item.action else None,
            approved_hours=item.approved_hours,
            reason=item.reason or data.reason,
        )
        for item in data.items
    ]
    outcome = await weekly_service.batch_decide_weekly_allocations(
        db,
        items=items,
        default_action=WeeklyAction(data.default_action),
        approver_id=user.id,
    )
    return BatchResultResponse(
        succeeded=outcome.succeeded,
        failed=outcome.failed,
        results=[BatchItemResponse(id=r.id, ok=r.ok, status=r.status, error=r.error) for r in outcome.results],
    )


@router.post("/weekly-allocations/{weekly_id}", response_model=WeeklyAllocationResponse)
async def decide_weekly_allocation(
    weekly_id: int,
    data: WeeklyDecision,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_approver(roles)
    row = await weekly_service.decide_weekly_allocation(
        db,
        weekly_id=weekly_id,
        action=WeeklyAction(data.action),
        approver_id=user.id,
        approved_hours=data.approved_hours,
        reason=data.reason,
    )
    return WeeklyAllocationResponse.model_validate(row)


# Hour change requests

@router.get("/hour-changes", response_model=list[HourChangeResponse])
async def list_pending_hour_changes(
    db: Annotated[AsyncSession, Depends(get_db)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_approver(roles)
    requests = await change_request_service.list_pending_requests(db)
    return [HourChangeResponse.model_validate(r) for r in requests]


@router.post("/hour-changes/{request_id}/approve", response_model=HourChangeResponse)
async def approve_hour_change(
    request_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_approver(roles)
    request = await change_request_service.approve_hour_change_request(
        db,
        request_id=request_id,
        approver_id=user.id,
    )
    return HourChangeResponse.model_validate(request)


@router.post("/hour-changes/{request_id}/reject", response_model=HourChangeResponse)
async def reject_hour_change(
    request_id: int,
    data: RejectRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    _require_approver(roles)
    request = await change_request_service.reject_hour_change_request(
        db,
        request_id=request_id,
        approver_id=user.id,
        reason=data.reason,
    )
    return HourChangeResponse.model_validate(request)
