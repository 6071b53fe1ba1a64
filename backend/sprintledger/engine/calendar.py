"""ISO calendar week helpers. Weeks start on Monday and end on Sunday."""
from dataclasses import dataclass
from datetime import date, datetime, timedelta


@dataclass(frozen=True)
class WeekBucket:
    week_start: date
    week_end: date
    week_number: int
    year: int

    @property
    def key(self) -> tuple[int, int]:
        return (self.year, self.week_number)

    @property
    def label(self) -> str:
        return f"{self.week_start:%b} {self.week_start.day}"


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise ValueError(f"Invalid date: {value!r}")


def week_start(value) -> date:
    """Monday of the week containing ``value``."""
    d = _as_date(value)
    return d - timedelta(days=d.weekday())


def week_end(value) -> date:
    """Sunday of the week containing ``value``."""
    return week_start(value) + timedelta(days=6)


def week_of(value) -> WeekBucket:
    start = week_start(value)
    iso_year, iso_week, _ = start.isocalendar()
    return WeekBucket(
        week_start=start,
        week_end=start + timedelta(days=6),
        week_number=iso_week,
        year=iso_year,
    )


def weeks_between(start, end) -> list[WeekBucket]:
    """Every week that overlaps [start, end]. Reversed bounds are swapped."""
    first = _as_date(start)
    last = _as_date(end)
    if last < first:
        first, last = last, first
    weeks: list[WeekBucket] = []
    current = week_start(first)
    while current <= last:
        weeks.append(week_of(current))
        current += timedelta(weeks=1)
    return weeks


def sprint_week_count(start, end) -> int:
    """Weeks covered by an inclusive date range, rounded up; at least 1."""
    days = (_as_date(end) - _as_date(start)).days + 1
    return max(1, -(-days // 7))


def is_date_in_range(value, start, end) -> bool:
    return _as_date(start) <= _as_date(value) <= _as_date(end)
