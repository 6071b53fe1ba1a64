"""Bounds checks for phase allocations and weekly plans.

Callers pass in freshly read committed/planned figures; nothing here touches
the database. Rules run in a fixed order and the first failing rule wins.
"""
from decimal import Decimal

from sprintledger.config import get_settings
from sprintledger.engine.results import ValidationResult, format_hours, to_hours

ZERO = Decimal(0)


def is_half_hour_increment(value) -> bool:
    increment = get_settings().hour_increment
    return (to_hours(value) / increment) % 1 == 0


def validate_hours(
    hours,
    *,
    minimum=ZERO,
    maximum=None,
    allow_zero: bool = True,
) -> ValidationResult:
    """Single hour entry: a number, non-negative, within bounds, in 0.5 steps."""
    settings = get_settings()
    try:
        value = to_hours(hours)
    except (ValueError, ArithmeticError):
        return ValidationResult.fail("Please enter a valid number")
    if value.is_nan():
        return ValidationResult.fail("Please enter a valid number")
    maximum = settings.max_weekly_hours if maximum is None else to_hours(maximum)
    minimum = to_hours(minimum)

    if value < 0:
        return ValidationResult.fail("Hours cannot be negative")
    if not allow_zero and value == 0:
        return ValidationResult.fail("Hours must be greater than zero")
    if value < minimum:
        return ValidationResult.fail(f"Hours must be at least {format_hours(minimum)}")
    if value > maximum:
        return ValidationResult.fail(f"Hours cannot exceed {format_hours(maximum)}")
    if not is_half_hour_increment(value):
        return ValidationResult.fail(f"Hours must be in increments of {settings.hour_increment.normalize()}")
    if value > settings.high_weekly_hours_warning:
        return ValidationResult.ok("High weekly hours - consider work-life balance")
    return ValidationResult.ok()


def validate_phase_allocation(
    total_hours,
    *,
    project_allocated_hours,
    committed_to_other_phases,
    planned_floor=ZERO,
    current_hours=None,
    phase_available_hours=None,
) -> ValidationResult:
    """Check a proposed phase total against the planned floor and the project budget.

    Order: non-negative, not below hours already planned into weeks, within
    the consultant's remaining project allocation. Exceeding the consultant's
    free capacity during the phase only produces a warning.
    """
    total = to_hours(total_hours)
    floor = to_hours(planned_floor)

    if total < 0:
        return ValidationResult.fail("Hours cannot be negative")

    if total < floor:
        current = to_hours(current_hours) if current_hours is not None else floor
        max_reduction = max(ZERO, current - floor)
        return ValidationResult.fail(
            f"Cannot reduce allocation below {format_hours(floor)} already planned. "
            f"Maximum reduction allowed: -{format_hours(max_reduction)}"
        )

    remaining = to_hours(project_allocated_hours) - to_hours(committed_to_other_phases)
    if total > remaining:
        overage = total - remaining
        return ValidationResult.fail(
            f"Over-allocated by {format_hours(overage)}: only {format_hours(max(ZERO, remaining))} "
            f"of the {format_hours(project_allocated_hours)} project allocation is not committed to other phases"
        )

    if phase_available_hours is not None:
        available = to_hours(phase_available_hours)
        if total > available:
            return ValidationResult.ok(
                f"{format_hours(total)} exceeds the consultant's {format_hours(available)} of free capacity "
                f"during this phase by {format_hours(total - available)}; some hours may not be plannable"
            )
    return ValidationResult.ok()


def validate_project_budget(budgeted_hours, allocated_hours, project_title: str | None = None) -> ValidationResult:
    """Budget utilisation advisory for a project's approved allocations. Never blocks."""
    budgeted = to_hours(budgeted_hours)
    allocated = to_hours(allocated_hours)
    utilization = allocated / budgeted * 100 if budgeted > 0 else ZERO
    label = f" for {project_title}" if project_title else ""

    if allocated > budgeted:
        return ValidationResult.ok(f"Budget exceeded by {format_hours(allocated - budgeted)}{label}")
    if utilization > 90:
        return ValidationResult.ok(f"High budget utilization: {round(utilization)}%{label}")
    if utilization < 50:
        return ValidationResult.ok(f"Low budget utilization: {round(utilization)}%{label}")
    return ValidationResult.ok()


def validate_weekly_distribution(total_hours, distributed_hours, phase_name: str | None = None) -> ValidationResult:
    """Weekly plan against its phase allocation: never more than the total."""
    total = to_hours(total_hours)
    distributed = to_hours(distributed_hours)
    label = f" for {phase_name}" if phase_name else ""
    remaining = total - distributed

    if remaining == 0:
        return ValidationResult.ok()
    if remaining > 0:
        return ValidationResult.ok(f"{format_hours(remaining)} remaining to distribute{label}")
    return ValidationResult.fail(f"Over-allocated by {format_hours(-remaining)}{label}")


def max_hours_for_week(total_hours, other_weeks_hours) -> Decimal:
    """Largest value one weekly entry may take given the rest of the plan."""
    return max(ZERO, to_hours(total_hours) - to_hours(other_weeks_hours))


def unplanned_hours(total_hours, planned_hours) -> Decimal:
    return to_hours(total_hours) - to_hours(planned_hours)


def has_expired_hours(total_hours, planned_hours) -> bool:
    return unplanned_hours(total_hours, planned_hours) > get_settings().expiry_tolerance_hours
