"""Validation result shared by every validator, plus hour formatting for messages."""
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a rule check.

    ``error`` blocks the action and is shown verbatim; ``warning`` is
    informational only and never makes a result invalid.
    """

    is_valid: bool
    error: str | None = None
    warning: str | None = None

    @classmethod
    def ok(cls, warning: str | None = None) -> "ValidationResult":
        return cls(is_valid=True, warning=warning)

    @classmethod
    def fail(cls, error: str) -> "ValidationResult":
        return cls(is_valid=False, error=error)

    @property
    def message(self) -> str:
        return self.error or self.warning or "Valid"


def to_hours(value) -> Decimal:
    """Coerce ints, floats and strings to Decimal hours without float artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Not an hour value: {value!r}")
    return Decimal(str(value))


def format_hours(hours) -> str:
    """20 -> '20h', 7.5 -> '7.5h', -3 -> '-3h'."""
    value = to_hours(hours)
    if value % 1 == 0:
        return f"{int(value)}h"
    return f"{value:.1f}h"
