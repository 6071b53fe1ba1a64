"""Weekly plans: consultants distribute approved phase hours into calendar weeks."""
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from sprintledger.engine import approvals
from sprintledger.engine.allocation_rules import max_hours_for_week, validate_hours, validate_weekly_distribution
from sprintledger.engine.calendar import is_date_in_range, week_of, week_start
from sprintledger.engine.capacity import AvailabilityStatus, calculate_capacity
from sprintledger.engine.results import ValidationResult, format_hours, to_hours
from sprintledger.errors import DomainError, NotFoundError, RuleViolationError
from sprintledger.models.allocation import ApprovalStatus, PlanningStatus, WeeklyAllocation
from sprintledger.repositories.allocations import AllocationRepository
from sprintledger.services import audit_service

logger = structlog.get_logger(__name__)

ZERO = Decimal(0)


@dataclass(frozen=True)
class WeekEntry:
    week_start: date
    hours: Decimal


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _counted(row: WeeklyAllocation) -> Decimal:
    return ZERO if row.planning_status == PlanningStatus.REJECTED else to_hours(row.effective_hours)


async def submit_weekly_plan(
    db: AsyncSession,
    *,
    phase_allocation_id: int,
    entries: Sequence[WeekEntry],
    user_id: int,
) -> tuple[list[WeeklyAllocation], str | None]:
    """Propose hours for one or more weeks of an approved phase allocation.

    Each entry replaces whatever the consultant planned for that week and
    goes back to PENDING; zero hours removes the week from the plan. The
    whole plan may never exceed the allocation's total.
    """
    if not entries:
        raise DomainError("No weeks submitted")
    repo = AllocationRepository(db)
    allocation = await repo.get_phase_allocation(phase_allocation_id, for_update=True)
    if not allocation:
        raise NotFoundError("Phase allocation not found")
    if allocation.approval_status != ApprovalStatus.APPROVED:
        raise DomainError("Weekly hours can only be planned against an approved phase allocation")
    phase = allocation.phase

    warnings: list[str] = []
    updates: dict[date, Decimal] = {}
    for entry in entries:
        bucket = week_of(entry.week_start)
        # Any week overlapping the phase
        if not is_date_in_range(bucket.week_start, week_start(phase.start_date), phase.end_date):
            raise DomainError(f"Week of {bucket.label} is outside the phase ({phase.start_date} to {phase.end_date})")
        check = validate_hours(entry.hours)
        if not check.is_valid:
            raise RuleViolationError(ValidationResult.fail(f"Week of {bucket.label}: {check.error}"))
        if check.warning:
            warnings.append(f"Week of {bucket.label}: {check.warning}")
        updates[bucket.week_start] = to_hours(entry.hours)

    existing = {row.week_start_date: row for row in allocation.weekly_allocations}
    distributed = sum(
        (_counted(row) for week, row in existing.items() if week not in updates),
        ZERO,
    ) + sum(updates.values(), ZERO)
    distribution = validate_weekly_distribution(allocation.total_hours, distributed, phase.name)
    if not distribution.is_valid:
        raise RuleViolationError(distribution)
    if distribution.warning:
        warnings.append(distribution.warning)

    saved: list[WeeklyAllocation] = []
    for week, hours in sorted(updates.items()):
        row = existing.get(week)
        if hours == 0:
            if row is not None:
                allocation.weekly_allocations.remove(row)
                await db.delete(row)
            continue
        if row is None:
            bucket = week_of(week)
            row = WeeklyAllocation(
                consultant_id=allocation.consultant_id,
                week_start_date=bucket.week_start,
                week_end_date=bucket.week_end,
                week_number=bucket.week_number,
                year=bucket.year,
                proposed_hours=hours,
                planning_status=PlanningStatus.PENDING,
            )
            allocation.weekly_allocations.append(row)
        else:
            if row.planning_status != PlanningStatus.PENDING:
                approvals.ensure_transition(
                    "weekly allocation", approvals.WEEKLY_TRANSITIONS, row.planning_status, PlanningStatus.PENDING
                )
            row.proposed_hours = hours
            row.approved_hours = None
            row.planning_status = PlanningStatus.PENDING
            row.approved_by = None
            row.approved_at = None
            row.modification_reason = None
            row.rejection_reason = None
        saved.append(row)

    await db.flush()
    audit_service.record(
        db,
        action="submit_weekly_plan",
        entity_type="phase_allocation",
        entity_id=allocation.id,
        user_id=user_id,
        project_id=phase.project_id,
        new_value=", ".join(f"{week.isoformat()}={format_hours(hours)}" for week, hours in sorted(updates.items())),
    )

    overload = await _overload_warning(repo, allocation.consultant_id, list(updates))
    if overload:
        warnings.append(overload)
    await db.flush()
    logger.info(
        "weekly_plan_submitted",
        allocation_id=allocation.id,
        weeks=len(updates),
        distributed=str(distributed),
        total=str(allocation.total_hours),
    )
    return saved, " ".join(warnings) if warnings else None


async def _overload_warning(repo: AllocationRepository, consultant_id: int, weeks: list[date]) -> str | None:
    """Advisory when the consultant's load across all projects tops full time in a submitted week."""
    if not weeks:
        return None
    start, end = min(weeks), max(weeks)
    snapshots = await repo.get_overlapping_allocations([consultant_id], start, end)
    capacity = calculate_capacity([consultant_id], start, end, snapshots)[0]
    submitted = {week_of(w).key for w in weeks}
    overloaded = [
        f"{w.week.label} ({format_hours(w.allocated_hours)})"
        for w in capacity.weekly_breakdown
        if w.week.key in submitted and w.status == AvailabilityStatus.OVERLOADED
    ]
    if not overloaded:
        return None
    return "Consultant is overloaded across projects in: " + ", ".join(overloaded)


async def _decide(
    db: AsyncSession,
    repo: AllocationRepository,
    row: WeeklyAllocation,
    action: approvals.WeeklyAction,
    approver_id: int,
    approved_hours=None,
    reason: str | None = None,
) -> WeeklyAllocation:
    # Every check runs before the row is touched
    decision = approvals.decide_weekly(row.proposed_hours, action, approved_hours, reason)
    if decision.status == PlanningStatus.MODIFIED:
        check = validate_hours(decision.approved_hours)
        if not check.is_valid:
            raise RuleViolationError(check)
    if decision.approved_hours is not None and decision.approved_hours > _counted(row):
        allocation = row.phase_allocation
        other_weeks = await repo.get_planned_hours(allocation.id) - _counted(row)
        if decision.approved_hours > max_hours_for_week(allocation.total_hours, other_weeks):
            raise RuleViolationError(
                validate_weekly_distribution(allocation.total_hours, other_weeks + decision.approved_hours)
            )

    old_status = row.planning_status
    approvals.apply_weekly_decision(row, decision, approver_id, now=_now())
    audit_service.record(
        db,
        action=f"weekly_{decision.status.value.lower()}",
        entity_type="weekly_allocation",
        entity_id=row.id,
        user_id=approver_id,
        project_id=row.phase_allocation.phase.project_id,
        old_value=f"{format_hours(row.proposed_hours)} {old_status.value}",
        new_value=(
            f"{format_hours(decision.approved_hours)} {decision.status.value}"
            if decision.approved_hours is not None
            else decision.status.value
        ),
        reason=decision.modification_reason or decision.rejection_reason,
    )
    logger.info("weekly_allocation_decided", weekly_id=row.id, status=decision.status.value)
    return row


async def decide_weekly_allocation(
    db: AsyncSession,
    *,
    weekly_id: int,
    action: approvals.WeeklyAction,
    approver_id: int,
    approved_hours=None,
    reason: str | None = None,
) -> WeeklyAllocation:
    repo = AllocationRepository(db)
    rows = await repo.get_weekly_allocations([weekly_id])
    row = rows.get(weekly_id)
    if not row:
        raise NotFoundError("Weekly allocation not found")
    row = await _decide(db, repo, row, action, approver_id, approved_hours, reason)
    await db.flush()
    return row


async def batch_decide_weekly_allocations(
    db: AsyncSession,
    *,
    items: Iterable[approvals.BatchItem],
    default_action: approvals.WeeklyAction,
    approver_id: int,
) -> approvals.BatchResult:
    """Decide many weekly rows with one default action; each item succeeds or fails on its own."""
    items = list(items)
    repo = AllocationRepository(db)
    rows = await repo.get_weekly_allocations([item.id for item in items])

    async def handle(item: approvals.BatchItem, action: approvals.WeeklyAction) -> PlanningStatus:
        row = rows.get(item.id)
        if row is None:
            raise NotFoundError("Weekly allocation not found")
        decided = await _decide(db, repo, row, action, approver_id, item.approved_hours, item.reason)
        await db.flush()
        return decided.planning_status

    outcome = await approvals.process_batch(items, default_action, handle)
    logger.info(
        "weekly_batch_decided",
        total=len(items),
        succeeded=outcome.succeeded,
        failed=outcome.failed,
    )
    return outcome
