"""Tests for allocation bounds checks."""
from decimal import Decimal

from sprintledger.engine.allocation_rules import (
    has_expired_hours,
    is_half_hour_increment,
    max_hours_for_week,
    validate_hours,
    validate_phase_allocation,
    validate_project_budget,
    validate_weekly_distribution,
)


def test_over_allocation_against_project_pool():
    result = validate_phase_allocation(
        70,
        project_allocated_hours=100,
        committed_to_other_phases=40,
    )
    assert not result.is_valid
    assert result.error.startswith("Over-allocated by 10h")
    assert "only 60h of the 100h" in result.error


def test_reduction_below_planned_floor():
    rejected = validate_phase_allocation(
        5,
        project_allocated_hours=100,
        committed_to_other_phases=0,
        planned_floor=10,
        current_hours=30,
    )
    assert not rejected.is_valid
    assert rejected.error == (
        "Cannot reduce allocation below 10h already planned. Maximum reduction allowed: -20h"
    )

    accepted = validate_phase_allocation(
        15,
        project_allocated_hours=100,
        committed_to_other_phases=0,
        planned_floor=10,
        current_hours=30,
    )
    assert accepted.is_valid


def test_negative_allocation_rejected():
    result = validate_phase_allocation(-1, project_allocated_hours=100, committed_to_other_phases=0)
    assert result.error == "Hours cannot be negative"


def test_capacity_shortfall_only_warns():
    result = validate_phase_allocation(
        50,
        project_allocated_hours=100,
        committed_to_other_phases=0,
        phase_available_hours=40,
    )
    assert result.is_valid
    assert "exceeds the consultant's 40h of free capacity" in result.warning


def test_validate_hours_rules():
    assert validate_hours("abc").error == "Please enter a valid number"
    assert validate_hours("NaN").error == "Please enter a valid number"
    assert validate_hours(-1).error == "Hours cannot be negative"
    assert validate_hours(61).error == "Hours cannot exceed 60h"
    assert validate_hours("7.3").error == "Hours must be in increments of 0.5"
    assert validate_hours(0, allow_zero=False).error == "Hours must be greater than zero"
    assert validate_hours(2, minimum=4).error == "Hours must be at least 4h"
    assert validate_hours("7.5").is_valid
    assert validate_hours(0).is_valid


def test_validate_hours_warns_on_high_week():
    result = validate_hours(45)
    assert result.is_valid
    assert result.warning == "High weekly hours - consider work-life balance"


def test_half_hour_increment():
    assert is_half_hour_increment("20.5")
    assert not is_half_hour_increment("20.3")


def test_project_budget_advisories():
    assert validate_project_budget(100, 110).warning == "Budget exceeded by 10h"
    assert validate_project_budget(100, 95, "Atlas").warning == "High budget utilization: 95% for Atlas"
    assert validate_project_budget(100, 40).warning == "Low budget utilization: 40%"
    assert validate_project_budget(100, 70).warning is None
    assert validate_project_budget(100, 110).is_valid
    assert validate_project_budget(0, 8).warning == "Budget exceeded by 8h"


def test_weekly_distribution():
    assert validate_weekly_distribution(40, 40) == validate_weekly_distribution(40, Decimal("40.0"))
    remaining = validate_weekly_distribution(40, 30)
    assert remaining.is_valid
    assert remaining.warning == "10h remaining to distribute"
    over = validate_weekly_distribution(40, 45, "Build")
    assert not over.is_valid
    assert over.error == "Over-allocated by 5h for Build"


def test_max_hours_for_week():
    assert max_hours_for_week(40, 30) == Decimal("10")
    assert max_hours_for_week(40, 50) == Decimal("0")


def test_expiry_tolerance():
    assert not has_expired_hours(40, "39.99")
    assert has_expired_hours(40, "39.5")
