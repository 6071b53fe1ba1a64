"""Domain exceptions raised by services and mapped to HTTP responses in main."""
from sprintledger.engine.results import ValidationResult


class DomainError(Exception):
    """Base class for errors a caller can act on."""

    status_code = 400

    def __init__(self, message: str, warning: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.warning = warning


class NotFoundError(DomainError):
    status_code = 404


class PermissionDeniedError(DomainError):
    status_code = 403


class StructureError(DomainError):
    """Sprint/phase structure violation (empty, non-contiguous, reserved sprint)."""


class RuleViolationError(DomainError):
    """A bounds or data-quality rule rejected the input."""

    def __init__(self, result: ValidationResult) -> None:
        super().__init__(result.error or "Validation failed", warning=result.warning)
        self.result = result


class InvalidTransitionError(DomainError):
    status_code = 409

    def __init__(self, entity: str, current: str, target: str) -> None:
        super().__init__(f"Cannot move {entity} from {current} to {target}")
        self.entity = entity
        self.current = current
        self.target = target
