"""Consultant capacity across overlapping projects.

Capacity is global: every non-terminal allocation a consultant holds counts,
whatever project or phase is being looked at. The calculation only reads
the snapshots it is given, so calling it twice on the same data gives the
same answer.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Sequence

from sprintledger.config import get_settings
from sprintledger.engine.calendar import WeekBucket, week_of, weeks_between
from sprintledger.models.allocation import ApprovalStatus, PlanningStatus, UNCOMMITTED_STATUSES

ZERO = Decimal(0)


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    PARTIALLY_BUSY = "partially-busy"
    BUSY = "busy"
    OVERLOADED = "overloaded"


@dataclass(frozen=True)
class WeeklyHours:
    week_start: date
    proposed_hours: Decimal
    approved_hours: Decimal | None = None
    planning_status: PlanningStatus = PlanningStatus.PENDING

    @property
    def effective_hours(self) -> Decimal:
        return self.approved_hours if self.approved_hours is not None else self.proposed_hours


@dataclass(frozen=True)
class AllocationSnapshot:
    """Read-only view of one phase allocation and its weekly plan."""

    phase_allocation_id: int
    consultant_id: int
    project_id: int
    project_title: str
    phase_id: int
    phase_name: str
    approval_status: ApprovalStatus
    total_hours: Decimal
    weeks: tuple[WeeklyHours, ...] = ()

    @property
    def counts_toward_capacity(self) -> bool:
        return self.approval_status not in UNCOMMITTED_STATUSES


@dataclass(frozen=True)
class WeekCapacity:
    week: WeekBucket
    allocated_hours: Decimal
    available_hours: Decimal
    status: AvailabilityStatus
    projects: dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class ConsultantCapacity:
    consultant_id: int
    week_count: int
    total_allocated_hours: Decimal
    average_hours_per_week: Decimal
    available_hours: Decimal
    available_hours_per_week: Decimal
    overall_status: AvailabilityStatus
    weekly_breakdown: tuple[WeekCapacity, ...]
    projects: dict[str, Decimal] = field(default_factory=dict)


def classify_hours(hours: Decimal) -> AvailabilityStatus:
    settings = get_settings()
    if hours <= settings.available_max_hours:
        return AvailabilityStatus.AVAILABLE
    if hours <= settings.partially_busy_max_hours:
        return AvailabilityStatus.PARTIALLY_BUSY
    if hours <= settings.full_time_hours_per_week:
        return AvailabilityStatus.BUSY
    return AvailabilityStatus.OVERLOADED


def available_hours_for(allocated: Decimal) -> Decimal:
    return max(ZERO, get_settings().full_time_hours_per_week - allocated)


def _round1(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def calculate_capacity(
    consultant_ids: Sequence[int],
    start: date,
    end: date,
    allocations: Iterable[AllocationSnapshot],
) -> list[ConsultantCapacity]:
    """Per-consultant weekly load and availability for the weeks of [start, end]."""
    weeks = weeks_between(start, end)
    week_keys = {w.key for w in weeks}

    # consultant -> week key -> project title -> hours
    load: dict[int, dict[tuple[int, int], dict[str, Decimal]]] = defaultdict(
        lambda: defaultdict(lambda: defaultdict(lambda: ZERO))
    )
    wanted = set(consultant_ids)
    for allocation in allocations:
        if allocation.consultant_id not in wanted or not allocation.counts_toward_capacity:
            continue
        for entry in allocation.weeks:
            if entry.planning_status == PlanningStatus.REJECTED:
                continue
            key = week_of(entry.week_start).key
            if key not in week_keys:
                continue
            load[allocation.consultant_id][key][allocation.project_title] += entry.effective_hours

    return [_summarise(consultant_id, weeks, load.get(consultant_id, {})) for consultant_id in consultant_ids]


def _summarise(
    consultant_id: int,
    weeks: list[WeekBucket],
    consultant_load: dict[tuple[int, int], dict[str, Decimal]],
) -> ConsultantCapacity:
    breakdown: list[WeekCapacity] = []
    project_totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    total = ZERO
    total_available = ZERO
    for week in weeks:
        projects = dict(consultant_load.get(week.key, {}))
        allocated = sum(projects.values(), ZERO)
        available = available_hours_for(allocated)
        breakdown.append(
            WeekCapacity(
                week=week,
                allocated_hours=allocated,
                available_hours=available,
                status=classify_hours(allocated),
                projects=projects,
            )
        )
        for title, hours in projects.items():
            project_totals[title] += hours
        total += allocated
        total_available += available

    week_count = len(weeks)
    average = total / week_count if week_count else ZERO
    return ConsultantCapacity(
        consultant_id=consultant_id,
        week_count=week_count,
        total_allocated_hours=total,
        average_hours_per_week=_round1(average),
        available_hours=total_available,
        available_hours_per_week=_round1(available_hours_for(average)),
        overall_status=classify_hours(average),
        weekly_breakdown=tuple(breakdown),
        projects=dict(project_totals),
    )
