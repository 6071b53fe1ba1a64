"""Hour change request validation (ADJUSTMENT and SHIFT)."""
from dataclasses import dataclass
from decimal import Decimal

from sprintledger.config import get_settings
from sprintledger.engine.allocation_rules import is_half_hour_increment
from sprintledger.engine.results import ValidationResult, format_hours, to_hours
from sprintledger.models.allocation import ChangeType

ZERO = Decimal(0)


@dataclass(frozen=True)
class HourChangeInput:
    change_type: ChangeType
    original_hours: Decimal
    reason: str
    requested_hours: Decimal | None = None
    shift_hours: Decimal | None = None
    from_consultant_id: int | None = None
    to_consultant_id: int | None = None


def validate_reason(reason: str | None) -> ValidationResult:
    text = (reason or "").strip()
    if not text:
        return ValidationResult.fail("Reason is required")
    minimum = get_settings().min_reason_length
    if len(text) < minimum:
        return ValidationResult.fail(f"Please provide a more detailed reason (minimum {minimum} characters)")
    return ValidationResult.ok()


def validate_hour_change_request(request: HourChangeInput, planned_floor=ZERO) -> ValidationResult:
    """Reason quality first, then the numeric rules of the request's change type."""
    reason_check = validate_reason(request.reason)
    if not reason_check.is_valid:
        return reason_check

    if request.change_type == ChangeType.ADJUSTMENT:
        return _validate_adjustment(request, to_hours(planned_floor))
    if request.change_type == ChangeType.SHIFT:
        return _validate_shift(request, to_hours(planned_floor))
    raise ValueError(f"Unknown change type: {request.change_type!r}")


def _increment_error() -> ValidationResult:
    return ValidationResult.fail(f"Hours must be in increments of {get_settings().hour_increment.normalize()}")


def _validate_adjustment(request: HourChangeInput, floor: Decimal) -> ValidationResult:
    settings = get_settings()
    if request.requested_hours is None:
        return ValidationResult.fail("Requested hours is required for adjustment")

    original = to_hours(request.original_hours)
    new_total = to_hours(request.requested_hours)
    if not is_half_hour_increment(new_total):
        return _increment_error()

    delta = new_total - original
    if delta == 0:
        return ValidationResult.fail("Requested hours must be different from current hours")
    if abs(delta) < settings.hour_increment:
        return ValidationResult.fail(f"Change must be at least {format_hours(settings.hour_increment)}")
    if not is_half_hour_increment(delta):
        return _increment_error()

    if floor > 0 and new_total < floor:
        return ValidationResult.fail(
            f"Cannot reduce allocation below {format_hours(floor)} already planned. "
            f"Maximum reduction allowed: -{format_hours(max(ZERO, original - floor))}"
        )
    if new_total <= 0:
        max_reduction = original - floor if floor > 0 else original - settings.hour_increment
        return ValidationResult.fail(
            f"Cannot reduce allocation to {format_hours(new_total)}. Allocation must remain positive. "
            f"Maximum reduction allowed: -{format_hours(max(ZERO, max_reduction))}"
        )

    if abs(delta) > settings.large_change_threshold_hours:
        sign = "+" if delta > 0 else ""
        return ValidationResult.ok(f"Large hour change requested: {sign}{format_hours(delta)}")
    return ValidationResult.ok()


def _validate_shift(request: HourChangeInput, floor: Decimal) -> ValidationResult:
    if request.from_consultant_id is None or request.to_consultant_id is None:
        return ValidationResult.fail("Both source and target consultants are required for transfer")
    if request.from_consultant_id == request.to_consultant_id:
        return ValidationResult.fail("Cannot transfer hours to the same consultant")

    if request.shift_hours is None or to_hours(request.shift_hours) <= 0:
        return ValidationResult.fail("Transfer hours must be greater than zero")
    shift = to_hours(request.shift_hours)
    original = to_hours(request.original_hours)
    if shift > original:
        return ValidationResult.fail("Cannot transfer more hours than currently allocated")
    if not is_half_hour_increment(shift):
        return _increment_error()

    if floor > 0 and original - shift < floor:
        return ValidationResult.fail(
            f"Cannot transfer {format_hours(shift)}: {format_hours(floor)} already planned. "
            f"Maximum transfer allowed: {format_hours(max(ZERO, original - floor))}"
        )
    return ValidationResult.ok()
