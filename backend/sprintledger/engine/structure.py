"""Sprint/phase structure rules.

A phase owns a contiguous run of sprints. Sprint 0 is the kickoff sprint:
only the kickoff phase may hold it and a newly created phase never can.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable, Protocol, Sequence

from sprintledger.config import get_settings
from sprintledger.engine.calendar import sprint_week_count
from sprintledger.engine.results import ValidationResult

KICKOFF_SPRINT_NUMBER = 0


class SprintLike(Protocol):
    id: int
    sprint_number: int
    start_date: date
    end_date: date


class SelectionStrategy(str, Enum):
    STRICT = "strict"
    AUTO_EXPAND = "auto_expand"


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date


@dataclass(frozen=True)
class SelectionOutcome:
    selected_ids: tuple[int, ...]
    error: str | None = None

    @property
    def accepted(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class PhaseHourLimits:
    sprint_count: int
    total_weeks: int
    max_hours_per_consultant: Decimal


def is_kickoff_phase(phase_name: str | None) -> bool:
    return (phase_name or "").strip() == get_settings().kickoff_phase_name


def is_sprint_selectable(
    sprint: SprintLike,
    *,
    today: date,
    is_new_phase: bool,
    is_kickoff_phase: bool = False,
    already_selected: bool = False,
) -> bool:
    """Whether a sprint may be ticked in a phase's sprint picker.

    Ended sprints stay selectable on edit only when the phase already holds
    them, so editing a running phase does not drop its history.
    """
    if sprint.sprint_number == KICKOFF_SPRINT_NUMBER:
        return not is_new_phase and is_kickoff_phase
    if sprint.end_date < today:
        return not is_new_phase and already_selected
    return True


def validate_consecutive(sprint_numbers: Iterable[int]) -> bool:
    numbers = sorted(sprint_numbers)
    for i in range(1, len(numbers)):
        if numbers[i] != numbers[i - 1] + 1:
            return False
    return True


def derive_date_range(sprints: Sequence[SprintLike]) -> DateRange:
    if not sprints:
        raise ValueError("Cannot derive a date range from an empty sprint set")
    return DateRange(
        start=min(s.start_date for s in sprints),
        end=max(s.end_date for s in sprints),
    )


def validate_phase_sprints(
    sprints: Sequence[SprintLike],
    *,
    is_new_phase: bool,
    is_kickoff_phase: bool = False,
) -> ValidationResult:
    if not sprints:
        return ValidationResult.fail("Please select at least one sprint")
    if any(s.sprint_number == KICKOFF_SPRINT_NUMBER for s in sprints):
        if is_new_phase or not is_kickoff_phase:
            return ValidationResult.fail(
                f"Sprint 0 is reserved for the {get_settings().kickoff_phase_name} phase"
            )
    if not validate_consecutive(s.sprint_number for s in sprints):
        numbers = ", ".join(str(n) for n in sorted(s.sprint_number for s in sprints))
        return ValidationResult.fail(f"Selected sprints must be consecutive (got {numbers})")
    return ValidationResult.ok()


def toggle_sprint(
    selected_ids: Iterable[int],
    sprint_id: int,
    checked: bool,
    available: Sequence[SprintLike],
    strategy: SelectionStrategy = SelectionStrategy.STRICT,
) -> SelectionOutcome:
    """Apply one checkbox change to a sprint selection.

    ``available`` is the set of selectable sprints. With STRICT, a change that
    would leave a gap is refused and the selection is returned unchanged.
    With AUTO_EXPAND, adding a sprint selects every available sprint between
    the lowest and highest selected numbers. Removing a sprint from the middle
    of a run is refused under both strategies.
    """
    current = tuple(selected_ids)
    by_id = {s.id: s for s in available}

    if not checked:
        remaining = tuple(i for i in current if i != sprint_id)
        numbers = [by_id[i].sprint_number for i in remaining if i in by_id]
        if not validate_consecutive(numbers):
            return SelectionOutcome(current, "Removing this sprint would leave a gap between selected sprints")
        return SelectionOutcome(remaining)

    sprint = by_id.get(sprint_id)
    if sprint is None:
        return SelectionOutcome(current, "Sprint is not available for selection")
    if sprint_id in current:
        return SelectionOutcome(current)

    candidate = current + (sprint_id,)
    numbers = [by_id[i].sprint_number for i in candidate if i in by_id]
    if validate_consecutive(numbers):
        return SelectionOutcome(_ordered(candidate, by_id))

    if strategy == SelectionStrategy.AUTO_EXPAND:
        low, high = min(numbers), max(numbers)
        span = [s for s in available if low <= s.sprint_number <= high]
        if validate_consecutive(s.sprint_number for s in span) and len(span) == high - low + 1:
            return SelectionOutcome(_ordered((s.id for s in span), by_id))

    return SelectionOutcome(
        current,
        f"Sprint {sprint.sprint_number} is not adjacent to the current selection; selected sprints must be consecutive",
    )


def _ordered(ids: Iterable[int], by_id: dict[int, SprintLike]) -> tuple[int, ...]:
    return tuple(sorted(ids, key=lambda i: by_id[i].sprint_number))


def phase_hour_limits(sprints: Sequence[SprintLike]) -> PhaseHourLimits:
    """Full-time ceiling for one consultant across a phase's sprints."""
    total_weeks = sum(sprint_week_count(s.start_date, s.end_date) for s in sprints)
    return PhaseHourLimits(
        sprint_count=len(sprints),
        total_weeks=total_weeks,
        max_hours_per_consultant=Decimal(total_weeks) * get_settings().full_time_hours_per_week,
    )


def is_phase_locked(end_date: date, today: date) -> bool:
    return end_date < today


def can_edit_phase(end_date: date, today: date, is_growth_team: bool = False) -> bool:
    # Growth team can correct ended phases
    if is_growth_team:
        return True
    return not is_phase_locked(end_date, today)


def phase_lock_message(end_date: date, today: date) -> str:
    if end_date < today:
        days_past = (today - end_date).days
        return f"This phase ended {days_past} day{'s' if days_past != 1 else ''} ago and can no longer be edited."
    return "This phase cannot be edited."


@dataclass(frozen=True)
class SprintSlot:
    sprint_number: int
    start_date: date
    end_date: date


def generate_sprints(project_start: date, project_end: date) -> list[SprintSlot]:
    """Lay out a project's sprints.

    A project that does not start on a Monday gets a short sprint 0 running
    to the first Sunday. Numbered sprints then start on Mondays and run for
    the configured sprint length until the project end is covered.
    """
    if project_end < project_start:
        raise ValueError("Project end date is before its start date")
    length = timedelta(weeks=get_settings().sprint_length_weeks)
    sprints: list[SprintSlot] = []
    current = project_start
    if current.weekday() != 0:
        kickoff_end = current + timedelta(days=6 - current.weekday())
        sprints.append(SprintSlot(KICKOFF_SPRINT_NUMBER, current, kickoff_end))
        current = kickoff_end + timedelta(days=1)

    number = 1
    while current <= project_end:
        sprints.append(SprintSlot(number, current, current + length - timedelta(days=1)))
        current += length
        number += 1
    return sprints
