"""Hour change requests: creation, approval with apply-time re-validation, rejection."""
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sprintledger.config import get_settings
from sprintledger.engine import approvals
from sprintledger.engine.allocation_rules import validate_phase_allocation
from sprintledger.engine.change_requests import HourChangeInput, validate_hour_change_request
from sprintledger.engine.results import ValidationResult, format_hours, to_hours
from sprintledger.errors import DomainError, NotFoundError, RuleViolationError
from sprintledger.models.allocation import (
    ApprovalStatus,
    ChangeStatus,
    ChangeType,
    HourChangeRequest,
    PhaseAllocation,
)
from sprintledger.models.project import Phase
from sprintledger.repositories.allocations import AllocationRepository
from sprintledger.services import audit_service

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def create_hour_change_request(
    db: AsyncSession,
    *,
    phase_allocation_id: int,
    change_type: ChangeType,
    reason: str,
    requester_id: int,
    requested_hours=None,
    shift_hours=None,
    to_consultant_id: int | None = None,
) -> tuple[HourChangeRequest, str | None]:
    """Validate and file a request against an approved allocation."""
    change_type = ChangeType(change_type)
    repo = AllocationRepository(db)
    allocation = await repo.get_phase_allocation(phase_allocation_id, for_update=True)
    if not allocation:
        raise NotFoundError("Phase allocation not found")
    if allocation.approval_status != ApprovalStatus.APPROVED:
        raise DomainError("Hour changes can only be requested for approved allocations")

    request_input = HourChangeInput(
        change_type=change_type,
        original_hours=allocation.total_hours,
        reason=reason,
        requested_hours=None if requested_hours is None else to_hours(requested_hours),
        shift_hours=None if shift_hours is None else to_hours(shift_hours),
        from_consultant_id=allocation.consultant_id if change_type == ChangeType.SHIFT else None,
        to_consultant_id=to_consultant_id,
    )
    planned = await repo.get_planned_hours(allocation.id)
    result = validate_hour_change_request(request_input, planned)
    if not result.is_valid:
        logger.info("hour_change_request_invalid", allocation_id=allocation.id, error=result.error)
        raise RuleViolationError(result)

    if change_type == ChangeType.SHIFT:
        on_team = await repo.get_project_allocated_hours(to_consultant_id, allocation.phase.project_id)
        if on_team is None:
            raise DomainError("Target consultant is not on this project's team")

    request = HourChangeRequest(
        change_type=change_type,
        phase_allocation_id=allocation.id,
        phase_id=allocation.phase_id,
        requester_id=requester_id,
        original_hours=allocation.total_hours,
        requested_hours=request_input.requested_hours,
        shift_hours=request_input.shift_hours,
        from_consultant_id=request_input.from_consultant_id,
        to_consultant_id=to_consultant_id if change_type == ChangeType.SHIFT else None,
        reason=reason.strip(),
        status=ChangeStatus.PENDING,
    )
    db.add(request)
    await db.flush()
    audit_service.record(
        db,
        action="request_hour_change",
        entity_type="hour_change_request",
        entity_id=request.id,
        user_id=requester_id,
        project_id=allocation.phase.project_id,
        old_value=format_hours(allocation.total_hours),
        new_value=_describe(request),
        reason=request.reason,
    )
    await db.flush()
    logger.info(
        "hour_change_requested",
        request_id=request.id,
        change_type=change_type.value,
        allocation_id=allocation.id,
    )
    return request, result.warning


def _describe(request: HourChangeRequest) -> str:
    if request.change_type == ChangeType.SHIFT:
        return f"shift {format_hours(request.shift_hours)} to consultant {request.to_consultant_id}"
    return f"adjust to {format_hours(request.requested_hours)}"


async def _locked_request(db: AsyncSession, request_id: int) -> HourChangeRequest:
    result = await db.execute(
        select(HourChangeRequest)
        .where(HourChangeRequest.id == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if not request:
        raise NotFoundError("Hour change request not found")
    return request


async def _check_allocation_total(
    repo: AllocationRepository,
    phase: Phase,
    consultant_id: int,
    new_total: Decimal,
    allocation: PhaseAllocation | None = None,
) -> ValidationResult:
    project_hours = await repo.get_project_allocated_hours(consultant_id, phase.project_id)
    if project_hours is None:
        return ValidationResult.fail("Consultant is not on this project's team")
    committed_elsewhere = await repo.get_project_allocations(consultant_id, phase.project_id, exclude_phase_id=phase.id)
    planned = await repo.get_planned_hours(allocation.id) if allocation is not None else Decimal(0)
    return validate_phase_allocation(
        new_total,
        project_allocated_hours=project_hours,
        committed_to_other_phases=committed_elsewhere,
        planned_floor=planned,
        current_hours=allocation.total_hours if allocation is not None else None,
    )


async def _apply_adjustment(
    repo: AllocationRepository,
    request: HourChangeRequest,
    allocation: PhaseAllocation,
) -> ValidationResult:
    delta = to_hours(request.requested_hours) - to_hours(request.original_hours)
    new_total = to_hours(allocation.total_hours) + delta
    if new_total <= 0:
        return ValidationResult.fail(
            f"Cannot reduce allocation to {format_hours(new_total)}. Allocation must remain positive"
        )
    result = await _check_allocation_total(repo, allocation.phase, allocation.consultant_id, new_total, allocation)
    if result.is_valid:
        allocation.total_hours = new_total
    return result


async def _apply_shift(
    db: AsyncSession,
    repo: AllocationRepository,
    request: HourChangeRequest,
    source: PhaseAllocation,
) -> ValidationResult:
    shift = to_hours(request.shift_hours)
    remaining = to_hours(source.total_hours) - shift
    if remaining < 0:
        return ValidationResult.fail("Cannot transfer more hours than currently allocated")
    planned = await repo.get_planned_hours(source.id)
    if remaining < planned:
        return ValidationResult.fail(
            f"Cannot transfer {format_hours(shift)}: {format_hours(planned)} already planned. "
            f"Maximum transfer allowed: {format_hours(max(Decimal(0), to_hours(source.total_hours) - planned))}"
        )

    target = await repo.get_phase_allocation_for(source.phase_id, request.to_consultant_id)
    if target is not None and target.approval_status != ApprovalStatus.APPROVED:
        return ValidationResult.fail(
            f"Target consultant's allocation is {target.approval_status.value}, not APPROVED"
        )
    target_total = shift if target is None else to_hours(target.total_hours) + shift
    result = await _check_allocation_total(repo, source.phase, request.to_consultant_id, target_total, target)
    if not result.is_valid:
        return result

    if target is None:
        db.add(
            PhaseAllocation(
                phase_id=source.phase_id,
                consultant_id=request.to_consultant_id,
                total_hours=target_total,
                approval_status=ApprovalStatus.APPROVED,
                approved_by=request.approver_id,
                approved_at=request.approved_at,
            )
        )
    else:
        target.total_hours = target_total
    source.total_hours = remaining
    return ValidationResult.ok()


async def approve_hour_change_request(
    db: AsyncSession,
    *,
    request_id: int,
    approver_id: int,
    policy: approvals.ApplyPolicy | None = None,
) -> HourChangeRequest:
    """Approve a request and apply it to the allocation(s) it targets.

    Facts may have moved since the request was filed, so the change is
    re-validated against current budget and planned hours. When that fails
    the allocation is left alone and the configured apply policy decides
    the request's final state.
    """
    policy = approvals.ApplyPolicy(policy or get_settings().change_request_apply_policy)
    request = await _locked_request(db, request_id)
    now = _now()
    approvals.approve_change_request(request, approver_id, now=now)

    repo = AllocationRepository(db)
    allocation = await repo.get_phase_allocation(request.phase_allocation_id, for_update=True)
    if allocation is None:
        result = ValidationResult.fail("The phase allocation no longer exists")
    elif allocation.approval_status != ApprovalStatus.APPROVED:
        result = ValidationResult.fail(
            f"The phase allocation is {allocation.approval_status.value}, not APPROVED"
        )
    else:
        old_hours = allocation.total_hours
        if request.change_type == ChangeType.ADJUSTMENT:
            result = await _apply_adjustment(repo, request, allocation)
        else:
            result = await _apply_shift(db, repo, request, allocation)

    project_id = allocation.phase.project_id if allocation is not None else None
    if not result.is_valid:
        approvals.record_apply_failure(request, result, policy, now=now)
        audit_service.record(
            db,
            action="apply_failed",
            entity_type="hour_change_request",
            entity_id=request.id,
            user_id=approver_id,
            project_id=project_id,
            new_value=request.status.value,
            reason=result.error,
        )
        await db.flush()
        logger.warning(
            "hour_change_apply_failed",
            request_id=request.id,
            policy=policy.value,
            status=request.status.value,
            error=result.error,
        )
        return request

    audit_service.record(
        db,
        action="approve_hour_change",
        entity_type="hour_change_request",
        entity_id=request.id,
        user_id=approver_id,
        project_id=project_id,
        old_value=format_hours(old_hours),
        new_value=format_hours(allocation.total_hours),
        reason=request.reason,
    )
    await db.flush()
    logger.info(
        "hour_change_applied",
        request_id=request.id,
        allocation_id=allocation.id,
        old_hours=str(old_hours),
        new_hours=str(allocation.total_hours),
    )
    return request


async def reject_hour_change_request(
    db: AsyncSession,
    *,
    request_id: int,
    approver_id: int,
    reason: str | None,
) -> HourChangeRequest:
    request = await _locked_request(db, request_id)
    approvals.reject_change_request(request, approver_id, reason, now=_now())
    audit_service.record(
        db,
        action="reject_hour_change",
        entity_type="hour_change_request",
        entity_id=request.id,
        user_id=approver_id,
        new_value=request.status.value,
        reason=request.rejection_reason,
    )
    await db.flush()
    logger.info("hour_change_rejected", request_id=request.id)
    return request


async def list_pending_requests(db: AsyncSession) -> list[HourChangeRequest]:
    result = await db.execute(
        select(HourChangeRequest)
        .where(HourChangeRequest.status == ChangeStatus.PENDING)
        .options(selectinload(HourChangeRequest.phase_allocation))
        .order_by(HourChangeRequest.created_at, HourChangeRequest.id)
    )
    return list(result.scalars().all())
