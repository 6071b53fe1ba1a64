"""Phase allocation lifecycle: roster edits, approval, deletion and expiry.

Every write re-reads the consultant's committed and planned hours inside
the current transaction, with the allocation row locked, before the bounds
checks run.
"""
from datetime import date, datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from sprintledger.engine import approvals
from sprintledger.engine.allocation_rules import validate_phase_allocation, validate_project_budget
from sprintledger.engine.capacity import calculate_capacity
from sprintledger.engine.results import ValidationResult, format_hours, to_hours
from sprintledger.errors import DomainError, NotFoundError, RuleViolationError
from sprintledger.models.allocation import ApprovalStatus, PhaseAllocation
from sprintledger.models.project import Phase
from sprintledger.repositories.allocations import AllocationRepository
from sprintledger.services import audit_service

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _join_warnings(*warnings: str | None) -> str | None:
    present = [w for w in warnings if w]
    return " ".join(present) if present else None


async def check_phase_allocation(
    repo: AllocationRepository,
    phase: Phase,
    consultant_id: int,
    total_hours,
    *,
    allocation: PhaseAllocation | None = None,
) -> ValidationResult:
    """Run the allocation bounds against freshly read budget, planned and capacity figures."""
    project_hours = await repo.get_project_allocated_hours(consultant_id, phase.project_id)
    if project_hours is None:
        raise DomainError("Consultant is not on this project's team")
    committed_elsewhere = await repo.get_project_allocations(
        consultant_id, phase.project_id, exclude_phase_id=phase.id
    )
    planned = await repo.get_planned_hours(allocation.id) if allocation is not None else Decimal(0)

    snapshots = await repo.get_overlapping_allocations([consultant_id], phase.start_date, phase.end_date)
    # Hours this allocation already holds are not competing capacity
    if allocation is not None:
        snapshots = [s for s in snapshots if s.phase_allocation_id != allocation.id]
    capacity = calculate_capacity([consultant_id], phase.start_date, phase.end_date, snapshots)[0]

    return validate_phase_allocation(
        total_hours,
        project_allocated_hours=project_hours,
        committed_to_other_phases=committed_elsewhere,
        planned_floor=planned,
        current_hours=allocation.total_hours if allocation is not None else None,
        phase_available_hours=capacity.available_hours,
    )


async def set_phase_allocation(
    db: AsyncSession,
    *,
    phase_id: int,
    consultant_id: int,
    total_hours,
    user_id: int,
) -> tuple[PhaseAllocation, str | None]:
    """Create a consultant's allocation on a phase or change its hours.

    Returns the allocation and any advisory warning. A change to an
    APPROVED allocation goes back to PENDING when re-validation on modify
    is enabled.
    """
    hours = to_hours(total_hours)
    repo = AllocationRepository(db)
    phase = await repo.get_phase(phase_id)
    if not phase:
        raise NotFoundError("Phase not found")

    allocation = await repo.get_phase_allocation_for(phase_id, consultant_id)
    result = await check_phase_allocation(repo, phase, consultant_id, hours, allocation=allocation)
    if not result.is_valid:
        logger.info(
            "phase_allocation_rejected",
            phase_id=phase_id,
            consultant_id=consultant_id,
            hours=str(hours),
            error=result.error,
        )
        raise RuleViolationError(result)

    if allocation is None:
        allocation = PhaseAllocation(
            phase_id=phase_id,
            consultant_id=consultant_id,
            total_hours=hours,
            approval_status=ApprovalStatus.PENDING,
        )
        db.add(allocation)
        await db.flush()
        audit_service.record(
            db,
            action="create",
            entity_type="phase_allocation",
            entity_id=allocation.id,
            user_id=user_id,
            project_id=phase.project_id,
            new_value=format_hours(hours),
        )
        logger.info("phase_allocation_created", allocation_id=allocation.id, hours=str(hours))
    else:
        old_hours = allocation.total_hours
        old_status = allocation.approval_status
        resubmitted = approvals.modify_allocation(allocation, hours)
        audit_service.record(
            db,
            action="modify",
            entity_type="phase_allocation",
            entity_id=allocation.id,
            user_id=user_id,
            project_id=phase.project_id,
            old_value=f"{format_hours(old_hours)} {old_status.value}",
            new_value=f"{format_hours(hours)} {allocation.approval_status.value}",
        )
        logger.info(
            "phase_allocation_modified",
            allocation_id=allocation.id,
            old_hours=str(old_hours),
            new_hours=str(hours),
            resubmitted=resubmitted,
        )
    await db.flush()
    return allocation, result.warning


async def remove_consultant_from_phase(
    db: AsyncSession,
    *,
    phase_id: int,
    consultant_id: int,
    user_id: int,
) -> PhaseAllocation | None:
    """Remove a consultant from a phase.

    Returns the allocation when it was parked in DELETION_PENDING because
    weekly hours are already planned under it, or None when it was deleted.
    """
    repo = AllocationRepository(db)
    allocation = await repo.get_phase_allocation_for(phase_id, consultant_id)
    if not allocation:
        raise NotFoundError("Consultant is not allocated to this phase")

    planned = await repo.get_planned_hours(allocation.id)
    project_id = allocation.phase.project_id
    old_status = allocation.approval_status
    if approvals.request_deletion(allocation, planned):
        audit_service.record(
            db,
            action="delete",
            entity_type="phase_allocation",
            entity_id=allocation.id,
            user_id=user_id,
            project_id=project_id,
            old_value=format_hours(allocation.total_hours),
        )
        await db.delete(allocation)
        await db.flush()
        logger.info("phase_allocation_deleted", phase_id=phase_id, consultant_id=consultant_id)
        return None

    audit_service.record(
        db,
        action="request_deletion",
        entity_type="phase_allocation",
        entity_id=allocation.id,
        user_id=user_id,
        project_id=project_id,
        old_value=old_status.value,
        new_value=allocation.approval_status.value,
        reason=f"{format_hours(planned)} already planned",
    )
    await db.flush()
    logger.info("phase_allocation_deletion_requested", allocation_id=allocation.id, planned=str(planned))
    return allocation


async def _locked_allocation(repo: AllocationRepository, allocation_id: int) -> PhaseAllocation:
    allocation = await repo.get_phase_allocation(allocation_id, for_update=True)
    if not allocation:
        raise NotFoundError("Phase allocation not found")
    return allocation


async def approve_phase_allocation(
    db: AsyncSession,
    *,
    allocation_id: int,
    approver_id: int,
    approved_hours=None,
) -> tuple[PhaseAllocation, str | None]:
    """Approve a PENDING allocation, optionally at different hours.

    Modified hours must pass the same bounds as a roster edit. The result
    carries the project's budget utilisation advisory.
    """
    repo = AllocationRepository(db)
    allocation = await _locked_allocation(repo, allocation_id)
    phase = allocation.phase
    warning = None
    if approved_hours is not None and to_hours(approved_hours) != to_hours(allocation.total_hours):
        result = await check_phase_allocation(
            repo, phase, allocation.consultant_id, approved_hours, allocation=allocation
        )
        if not result.is_valid:
            raise RuleViolationError(result)
        warning = result.warning

    old_hours = allocation.total_hours
    approvals.approve_allocation(allocation, approver_id, now=_now(), approved_hours=approved_hours)
    audit_service.record(
        db,
        action="approve",
        entity_type="phase_allocation",
        entity_id=allocation.id,
        user_id=approver_id,
        project_id=phase.project_id,
        old_value=format_hours(old_hours),
        new_value=format_hours(allocation.total_hours),
    )
    await db.flush()

    budget = validate_project_budget(
        phase.project.budgeted_hours,
        await repo.get_project_approved_hours(phase.project_id),
        phase.project.title,
    )
    logger.info("phase_allocation_approved", allocation_id=allocation.id, hours=str(allocation.total_hours))
    return allocation, _join_warnings(warning, budget.warning)


async def reject_phase_allocation(
    db: AsyncSession,
    *,
    allocation_id: int,
    approver_id: int,
    reason: str | None,
) -> PhaseAllocation:
    repo = AllocationRepository(db)
    allocation = await _locked_allocation(repo, allocation_id)
    old_hours = allocation.total_hours
    restored = approvals.reject_allocation(allocation, approver_id, reason, now=_now())
    audit_service.record(
        db,
        action="reject_change" if restored else "reject",
        entity_type="phase_allocation",
        entity_id=allocation.id,
        user_id=approver_id,
        project_id=allocation.phase.project_id,
        old_value=format_hours(old_hours),
        new_value=f"{format_hours(allocation.total_hours)} {allocation.approval_status.value}",
        reason=allocation.rejection_reason,
    )
    await db.flush()
    logger.info(
        "phase_allocation_rejected_by_approver",
        allocation_id=allocation.id,
        restored=restored,
        status=allocation.approval_status.value,
    )
    return allocation


async def approve_deletion(db: AsyncSession, *, allocation_id: int, approver_id: int) -> None:
    """Carry out a pending removal; the allocation and its weekly plan are deleted."""
    repo = AllocationRepository(db)
    allocation = await _locked_allocation(repo, allocation_id)
    approvals.approve_deletion(allocation)
    audit_service.record(
        db,
        action="approve_deletion",
        entity_type="phase_allocation",
        entity_id=allocation.id,
        user_id=approver_id,
        project_id=allocation.phase.project_id,
        old_value=format_hours(allocation.total_hours),
    )
    await db.delete(allocation)
    await db.flush()
    logger.info("phase_allocation_deletion_approved", allocation_id=allocation_id)


async def reject_deletion(db: AsyncSession, *, allocation_id: int, approver_id: int) -> PhaseAllocation:
    repo = AllocationRepository(db)
    allocation = await _locked_allocation(repo, allocation_id)
    approvals.reject_deletion(allocation, approver_id, now=_now())
    audit_service.record(
        db,
        action="reject_deletion",
        entity_type="phase_allocation",
        entity_id=allocation.id,
        user_id=approver_id,
        project_id=allocation.phase.project_id,
        new_value=allocation.approval_status.value,
    )
    await db.flush()
    logger.info("phase_allocation_deletion_rejected", allocation_id=allocation.id)
    return allocation


async def detect_expired_allocations(db: AsyncSession, today: date | None = None) -> list[PhaseAllocation]:
    """Expire APPROVED allocations of ended phases that still hold unplanned hours.

    Only approved or modified weeks count as planned here.
    """
    today = today or date.today()
    repo = AllocationRepository(db)
    candidates = await repo.get_expiry_candidates(today)
    expired = []
    for allocation in candidates:
        planned = await repo.get_planned_hours(allocation.id, decided_only=True)
        unplanned = approvals.expire_allocation(allocation, planned, phase_ended=allocation.phase.end_date < today)
        if unplanned is None:
            continue
        expired.append(allocation)
        audit_service.record(
            db,
            action="expire",
            entity_type="phase_allocation",
            entity_id=allocation.id,
            user_id=None,
            project_id=allocation.phase.project_id,
            old_value=ApprovalStatus.APPROVED.value,
            new_value=ApprovalStatus.EXPIRED.value,
            reason=f"{format_hours(unplanned)} unplanned when the phase ended",
        )
        logger.info(
            "phase_allocation_expired",
            allocation_id=allocation.id,
            consultant_id=allocation.consultant_id,
            unplanned=str(unplanned),
        )
    await db.flush()
    logger.info("expiry_sweep_finished", checked=len(candidates), expired=len(expired), today=today.isoformat())
    return expired


async def forfeit_expired_hours(
    db: AsyncSession,
    *,
    allocation_id: int,
    user_id: int,
) -> tuple[PhaseAllocation, Decimal]:
    """Give up an EXPIRED allocation's unplanned hours; returns the allocation and hours forfeited."""
    repo = AllocationRepository(db)
    allocation = await _locked_allocation(repo, allocation_id)
    planned = await repo.get_planned_hours(allocation.id, decided_only=True)
    old_hours = allocation.total_hours
    forfeited = approvals.forfeit_allocation(allocation, planned)
    audit_service.record(
        db,
        action="forfeit",
        entity_type="phase_allocation",
        entity_id=allocation.id,
        user_id=user_id,
        project_id=allocation.phase.project_id,
        old_value=format_hours(old_hours),
        new_value=f"{format_hours(allocation.total_hours)} {allocation.approval_status.value}",
        reason=f"{format_hours(forfeited)} forfeited",
    )
    await db.flush()
    logger.info("expired_hours_forfeited", allocation_id=allocation.id, forfeited=str(forfeited))
    return allocation, forfeited
