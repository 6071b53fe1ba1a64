"""Availability schemas."""
from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from sprintledger.engine.capacity import ConsultantCapacity


class WeekAvailability(BaseModel):
    week_start: date
    week_end: date
    week_number: int
    year: int
    label: str
    allocated_hours: Decimal
    available_hours: Decimal
    status: str
    projects: dict[str, Decimal] = {}


class ConsultantAvailability(BaseModel):
    consultant_id: int
    week_count: int
    total_allocated_hours: Decimal
    average_hours_per_week: Decimal
    available_hours: Decimal
    available_hours_per_week: Decimal
    overall_status: str
    weekly_breakdown: list[WeekAvailability]
    projects: dict[str, Decimal] = {}

    @classmethod
    def from_capacity(cls, capacity: ConsultantCapacity) -> "ConsultantAvailability":
        return cls(
            consultant_id=capacity.consultant_id,
            week_count=capacity.week_count,
            total_allocated_hours=capacity.total_allocated_hours,
            average_hours_per_week=capacity.average_hours_per_week,
            available_hours=capacity.available_hours,
            available_hours_per_week=capacity.available_hours_per_week,
            overall_status=capacity.overall_status.value,
            weekly_breakdown=[
                WeekAvailability(
                    week_start=w.week.week_start,
                    week_end=w.week.week_end,
                    week_number=w.week.week_number,
                    year=w.week.year,
                    label=w.week.label,
                    allocated_hours=w.allocated_hours,
                    available_hours=w.available_hours,
                    status=w.status.value,
                    projects=w.projects,
                )
                for w in capacity.weekly_breakdown
            ],
            projects=capacity.projects,
        )


class PhaseAvailability(BaseModel):
    phase_id: int
    start_date: date
    end_date: date
    sprint_count: int
    total_weeks: int
    max_hours_per_consultant: Decimal
    consultants: list[ConsultantAvailability]
