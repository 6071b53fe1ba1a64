"""Tests for the cross-project capacity calculator."""
from datetime import date
from decimal import Decimal

from sprintledger.engine.capacity import (
    AllocationSnapshot,
    AvailabilityStatus,
    WeeklyHours,
    calculate_capacity,
    classify_hours,
)
from sprintledger.models.allocation import ApprovalStatus, PlanningStatus

WEEK = date(2030, 1, 7)


def _snapshot(alloc_id, consultant_id, project, hours_by_week, status=ApprovalStatus.APPROVED, weekly_status=PlanningStatus.APPROVED):
    return AllocationSnapshot(
        phase_allocation_id=alloc_id,
        consultant_id=consultant_id,
        project_id=alloc_id,
        project_title=project,
        phase_id=alloc_id,
        phase_name="Build",
        approval_status=status,
        total_hours=sum((Decimal(h) for h in hours_by_week.values()), Decimal(0)),
        weeks=tuple(
            WeeklyHours(week_start=w, proposed_hours=Decimal(h), planning_status=weekly_status)
            for w, h in hours_by_week.items()
        ),
    )


def test_classify_hours_boundaries():
    assert classify_hours(Decimal("15")) == AvailabilityStatus.AVAILABLE
    assert classify_hours(Decimal("15.5")) == AvailabilityStatus.PARTIALLY_BUSY
    assert classify_hours(Decimal("30")) == AvailabilityStatus.PARTIALLY_BUSY
    assert classify_hours(Decimal("40")) == AvailabilityStatus.BUSY
    assert classify_hours(Decimal("40.5")) == AvailabilityStatus.OVERLOADED


def test_overloaded_week_across_two_projects():
    snapshots = [
        _snapshot(1, 7, "Atlas", {WEEK: 25}),
        _snapshot(2, 7, "Borealis", {WEEK: 20}),
    ]
    capacity = calculate_capacity([7], WEEK, date(2030, 1, 13), snapshots)[0]
    week = capacity.weekly_breakdown[0]
    assert week.allocated_hours == Decimal("45")
    assert week.status == AvailabilityStatus.OVERLOADED
    assert week.available_hours == Decimal("0")
    assert week.projects == {"Atlas": Decimal("25"), "Borealis": Decimal("20")}
    assert capacity.overall_status == AvailabilityStatus.OVERLOADED


def test_released_allocations_and_rejected_weeks_do_not_count():
    snapshots = [
        _snapshot(1, 7, "Atlas", {WEEK: 30}, status=ApprovalStatus.EXPIRED),
        _snapshot(2, 7, "Borealis", {WEEK: 30}, status=ApprovalStatus.FORFEITED),
        _snapshot(3, 7, "Cygnus", {WEEK: 30}, weekly_status=PlanningStatus.REJECTED),
        _snapshot(4, 7, "Draco", {WEEK: 10}, status=ApprovalStatus.PENDING, weekly_status=PlanningStatus.PENDING),
    ]
    capacity = calculate_capacity([7], WEEK, WEEK, snapshots)[0]
    assert capacity.total_allocated_hours == Decimal("10")
    assert capacity.weekly_breakdown[0].status == AvailabilityStatus.AVAILABLE


def test_approved_hours_override_proposed():
    snapshot = AllocationSnapshot(
        phase_allocation_id=1,
        consultant_id=7,
        project_id=1,
        project_title="Atlas",
        phase_id=1,
        phase_name="Build",
        approval_status=ApprovalStatus.APPROVED,
        total_hours=Decimal("40"),
        weeks=(WeeklyHours(WEEK, Decimal("20"), Decimal("12"), PlanningStatus.MODIFIED),),
    )
    capacity = calculate_capacity([7], WEEK, WEEK, [snapshot])[0]
    assert capacity.total_allocated_hours == Decimal("12")


def test_averages_over_every_week_in_range():
    snapshots = [_snapshot(1, 7, "Atlas", {WEEK: 30, date(2030, 1, 14): 10})]
    capacity = calculate_capacity([7], WEEK, date(2030, 1, 27), snapshots)[0]
    assert capacity.week_count == 3
    assert capacity.total_allocated_hours == Decimal("40")
    assert capacity.average_hours_per_week == Decimal("13.3")
    assert capacity.available_hours == Decimal("80")
    assert capacity.available_hours_per_week == Decimal("26.7")
    assert capacity.overall_status == AvailabilityStatus.AVAILABLE
    assert capacity.projects == {"Atlas": Decimal("40")}


def test_weeks_outside_range_and_other_consultants_ignored():
    snapshots = [
        _snapshot(1, 7, "Atlas", {date(2030, 3, 4): 40}),
        _snapshot(2, 8, "Atlas", {WEEK: 40}),
    ]
    capacity = calculate_capacity([7], WEEK, WEEK, snapshots)[0]
    assert capacity.total_allocated_hours == Decimal("0")
    assert capacity.available_hours == Decimal("40")


def test_calculation_is_repeatable_and_keeps_consultant_order():
    snapshots = [_snapshot(1, 7, "Atlas", {WEEK: 25}), _snapshot(2, 8, "Atlas", {WEEK: 5})]
    first = calculate_capacity([8, 7, 9], WEEK, WEEK, snapshots)
    second = calculate_capacity([8, 7, 9], WEEK, WEEK, snapshots)
    assert first == second
    assert [c.consultant_id for c in first] == [8, 7, 9]
    assert first[2].total_allocated_hours == Decimal("0")
