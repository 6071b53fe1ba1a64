"""Approval lifecycle for phase allocations, weekly plans and hour change requests.

Transition helpers mutate the record they are given and leave persistence to
the caller. Anything with ``approval_status`` / ``planning_status`` / ``status``
attributes works, so the ORM models and plain test doubles go through the
same code.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping

from sprintledger.config import get_settings
from sprintledger.engine.allocation_rules import has_expired_hours
from sprintledger.engine.results import ValidationResult, format_hours, to_hours
from sprintledger.errors import DomainError, InvalidTransitionError, RuleViolationError
from sprintledger.models.allocation import ApprovalStatus, ChangeStatus, PlanningStatus

ZERO = Decimal(0)

A = ApprovalStatus

PHASE_ALLOCATION_TRANSITIONS: Mapping[ApprovalStatus, frozenset[ApprovalStatus]] = {
    A.PENDING: frozenset({A.APPROVED, A.REJECTED, A.DELETION_PENDING, A.EXPIRED, A.FORFEITED}),
    A.APPROVED: frozenset({A.PENDING, A.DELETION_PENDING, A.EXPIRED, A.FORFEITED}),
    A.REJECTED: frozenset({A.PENDING, A.EXPIRED, A.FORFEITED}),
    A.DELETION_PENDING: frozenset({A.APPROVED, A.EXPIRED, A.FORFEITED}),
    # Forfeiting unplanned hours hands the planned remainder back as APPROVED
    A.EXPIRED: frozenset({A.APPROVED, A.FORFEITED}),
    A.FORFEITED: frozenset(),
}

WEEKLY_TRANSITIONS: Mapping[PlanningStatus, frozenset[PlanningStatus]] = {
    PlanningStatus.PENDING: frozenset({PlanningStatus.APPROVED, PlanningStatus.REJECTED, PlanningStatus.MODIFIED}),
    # Resubmitting a decided week puts it back in the queue
    PlanningStatus.APPROVED: frozenset({PlanningStatus.PENDING}),
    PlanningStatus.REJECTED: frozenset({PlanningStatus.PENDING}),
    PlanningStatus.MODIFIED: frozenset({PlanningStatus.PENDING}),
}

CHANGE_REQUEST_TRANSITIONS: Mapping[ChangeStatus, frozenset[ChangeStatus]] = {
    ChangeStatus.PENDING: frozenset({ChangeStatus.APPROVED, ChangeStatus.REJECTED}),
    # An approval that fails at apply time under the reject policy
    ChangeStatus.APPROVED: frozenset({ChangeStatus.REJECTED}),
    ChangeStatus.REJECTED: frozenset(),
}


class WeeklyAction(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    MODIFY = "MODIFY"


class ApplyPolicy(str, Enum):
    """What happens when an approved change request no longer validates at apply time."""

    REJECT = "reject"
    FLAG = "flag"


def ensure_transition(entity: str, table: Mapping, current, target) -> None:
    if target not in table.get(current, frozenset()):
        raise InvalidTransitionError(entity, _label(current), _label(target))


def _label(status) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def _require_reason(reason: str | None, what: str) -> str:
    text = (reason or "").strip()
    if not text:
        raise RuleViolationError(ValidationResult.fail(f"A reason is required to {what}"))
    if len(text) > get_settings().max_reason_length:
        raise RuleViolationError(
            ValidationResult.fail(f"Reason cannot exceed {get_settings().max_reason_length} characters")
        )
    return text


# Phase allocations

def approve_allocation(allocation, approver_id: int, *, now: datetime, approved_hours=None) -> None:
    ensure_transition("phase allocation", PHASE_ALLOCATION_TRANSITIONS, allocation.approval_status, A.APPROVED)
    if approved_hours is not None:
        allocation.total_hours = to_hours(approved_hours)
    allocation.approval_status = A.APPROVED
    allocation.approved_by = approver_id
    allocation.approved_at = now
    allocation.rejection_reason = None
    allocation.previous_hours = None


def reject_allocation(allocation, approver_id: int, reason: str | None, *, now: datetime) -> bool:
    """Reject a PENDING allocation.

    A pending change to an allocation that was already approved only rejects
    the change: the allocation goes back to APPROVED at its previous hours so
    the weeks planned under it stay committed. Returns True in that case.
    """
    text = _require_reason(reason, "reject an allocation")
    previous = allocation.previous_hours
    if allocation.approval_status == A.PENDING and previous is not None:
        ensure_transition("phase allocation", PHASE_ALLOCATION_TRANSITIONS, allocation.approval_status, A.APPROVED)
        allocation.total_hours = to_hours(previous)
        allocation.previous_hours = None
        allocation.approval_status = A.APPROVED
        allocation.approved_by = approver_id
        allocation.approved_at = now
        allocation.rejection_reason = text
        return True

    ensure_transition("phase allocation", PHASE_ALLOCATION_TRANSITIONS, allocation.approval_status, A.REJECTED)
    allocation.approval_status = A.REJECTED
    allocation.approved_by = approver_id
    allocation.approved_at = now
    allocation.rejection_reason = text
    return False


def modify_allocation(allocation, total_hours, *, revalidate_on_modify: bool | None = None) -> bool:
    """Set new hours on an existing allocation.

    Returns True when the change sends the allocation back for approval.
    A REJECTED allocation always returns to PENDING; an APPROVED one does
    so only when ``revalidate_on_modify`` is on, remembering its approved
    hours in ``previous_hours``.
    """
    if revalidate_on_modify is None:
        revalidate_on_modify = get_settings().revalidate_on_modify
    status = allocation.approval_status
    if status not in (A.PENDING, A.APPROVED, A.REJECTED):
        raise InvalidTransitionError("phase allocation", _label(status), "modified hours")

    resubmit = status == A.REJECTED or (status == A.APPROVED and revalidate_on_modify)
    if status == A.APPROVED and resubmit:
        allocation.previous_hours = allocation.total_hours
    allocation.total_hours = to_hours(total_hours)
    if resubmit:
        allocation.approval_status = A.PENDING
        allocation.approved_by = None
        allocation.approved_at = None
        allocation.rejection_reason = None
    return resubmit


def request_deletion(allocation, planned_hours) -> bool:
    """Start removing a consultant from a phase.

    Returns True when the row can be deleted outright. With hours already
    planned into weeks the allocation moves to DELETION_PENDING instead and
    waits for approval.
    """
    if to_hours(planned_hours) <= 0:
        return True
    ensure_transition(
        "phase allocation", PHASE_ALLOCATION_TRANSITIONS, allocation.approval_status, A.DELETION_PENDING
    )
    allocation.approval_status = A.DELETION_PENDING
    return False


def approve_deletion(allocation) -> None:
    if allocation.approval_status != A.DELETION_PENDING:
        raise InvalidTransitionError("phase allocation", _label(allocation.approval_status), "removed")


def reject_deletion(allocation, approver_id: int, *, now: datetime) -> None:
    if allocation.approval_status != A.DELETION_PENDING:
        raise InvalidTransitionError("phase allocation", _label(allocation.approval_status), "kept")
    # A removal requested during a pending change keeps the approved hours
    if allocation.previous_hours is not None:
        allocation.total_hours = to_hours(allocation.previous_hours)
        allocation.previous_hours = None
    allocation.approval_status = A.APPROVED
    allocation.approved_by = approver_id
    allocation.approved_at = now


def expire_allocation(allocation, planned_hours, *, phase_ended: bool) -> Decimal | None:
    """Mark an APPROVED allocation of an ended phase EXPIRED if hours were left unplanned.

    Returns the unplanned hours when the allocation expired, else None.
    """
    if allocation.approval_status != A.APPROVED or not phase_ended:
        return None
    if not has_expired_hours(allocation.total_hours, planned_hours):
        return None
    allocation.approval_status = A.EXPIRED
    return to_hours(allocation.total_hours) - to_hours(planned_hours)


def forfeit_allocation(allocation, planned_hours) -> Decimal:
    """Give up the unplanned hours of an EXPIRED allocation.

    The total shrinks to what was planned. Planned work stays APPROVED; an
    allocation with nothing planned becomes FORFEITED. Returns the hours
    forfeited.
    """
    if allocation.approval_status != A.EXPIRED:
        raise DomainError("These hours have already been handled")
    planned = to_hours(planned_hours)
    forfeited = to_hours(allocation.total_hours) - planned
    target = A.APPROVED if planned > 0 else A.FORFEITED
    ensure_transition("phase allocation", PHASE_ALLOCATION_TRANSITIONS, allocation.approval_status, target)
    allocation.total_hours = planned
    allocation.approval_status = target
    return forfeited


# Weekly allocations

@dataclass(frozen=True)
class WeeklyDecision:
    status: PlanningStatus
    approved_hours: Decimal | None
    modification_reason: str | None = None
    rejection_reason: str | None = None


def decide_weekly(
    proposed_hours,
    action: WeeklyAction,
    approved_hours=None,
    reason: str | None = None,
) -> WeeklyDecision:
    """Resolve one weekly plan entry.

    APPROVE with hours that differ from the proposal is a modification, and
    a modification needs a rationale. REJECT needs a reason and clears any
    approved hours.
    """
    proposed = to_hours(proposed_hours)
    action = WeeklyAction(action)

    if action == WeeklyAction.REJECT:
        return WeeklyDecision(
            status=PlanningStatus.REJECTED,
            approved_hours=None,
            rejection_reason=_require_reason(reason, "reject a weekly plan"),
        )

    hours = proposed if approved_hours is None else to_hours(approved_hours)
    if hours < 0:
        raise RuleViolationError(ValidationResult.fail("Hours cannot be negative"))
    if hours == proposed:
        if action == WeeklyAction.MODIFY:
            raise RuleViolationError(
                ValidationResult.fail(f"Modified hours must differ from the proposed {format_hours(proposed)}")
            )
        return WeeklyDecision(status=PlanningStatus.APPROVED, approved_hours=hours)

    return WeeklyDecision(
        status=PlanningStatus.MODIFIED,
        approved_hours=hours,
        modification_reason=_require_reason(reason, "modify a weekly plan"),
    )


def apply_weekly_decision(weekly, decision: WeeklyDecision, approver_id: int, *, now: datetime) -> None:
    ensure_transition("weekly allocation", WEEKLY_TRANSITIONS, weekly.planning_status, decision.status)
    weekly.planning_status = decision.status
    weekly.approved_hours = decision.approved_hours
    weekly.modification_reason = decision.modification_reason
    weekly.rejection_reason = decision.rejection_reason
    weekly.approved_by = approver_id
    weekly.approved_at = now


# Hour change requests

def approve_change_request(request, approver_id: int, *, now: datetime) -> None:
    ensure_transition("hour change request", CHANGE_REQUEST_TRANSITIONS, request.status, ChangeStatus.APPROVED)
    request.status = ChangeStatus.APPROVED
    request.approver_id = approver_id
    request.approved_at = now


def reject_change_request(request, approver_id: int, reason: str | None, *, now: datetime) -> None:
    text = _require_reason(reason, "reject a change request")
    ensure_transition("hour change request", CHANGE_REQUEST_TRANSITIONS, request.status, ChangeStatus.REJECTED)
    request.status = ChangeStatus.REJECTED
    request.approver_id = approver_id
    request.rejected_at = now
    request.rejection_reason = text


def record_apply_failure(request, result: ValidationResult, policy: ApplyPolicy, *, now: datetime) -> None:
    """Record that an approved request could not be applied to its allocation."""
    error = result.error or "Change could not be applied"
    if ApplyPolicy(policy) == ApplyPolicy.REJECT:
        ensure_transition(
            "hour change request", CHANGE_REQUEST_TRANSITIONS, request.status, ChangeStatus.REJECTED
        )
        request.status = ChangeStatus.REJECTED
        request.rejected_at = now
        request.rejection_reason = f"Could not be applied: {error}"
    else:
        request.application_error = error


# Batches

@dataclass(frozen=True)
class BatchItem:
    id: int
    action: WeeklyAction | None = None
    approved_hours: Decimal | None = None
    reason: str | None = None


@dataclass(frozen=True)
class BatchItemResult:
    id: int
    ok: bool
    status: str | None = None
    error: str | None = None


@dataclass
class BatchResult:
    results: list[BatchItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)


async def process_batch(
    items: Iterable[BatchItem],
    default_action: WeeklyAction,
    handler: Callable[[BatchItem, WeeklyAction], Awaitable[Any]],
) -> BatchResult:
    """Run ``handler`` for every item; a DomainError on one item is recorded, not raised.

    ``handler`` returns the resulting status. Unexpected exceptions still
    propagate.
    """
    outcome = BatchResult()
    for item in items:
        action = WeeklyAction(item.action or default_action)
        try:
            status = await handler(item, action)
        except DomainError as exc:
            outcome.results.append(BatchItemResult(id=item.id, ok=False, error=exc.message))
            continue
        outcome.results.append(BatchItemResult(id=item.id, ok=True, status=_label(status)))
    return outcome
