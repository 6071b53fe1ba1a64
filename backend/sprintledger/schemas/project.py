"""Project, sprint and phase schemas."""
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator


class ProjectConsultantIn(BaseModel):
    user_id: int
    allocated_hours: Decimal = Field(..., ge=0)


class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    budgeted_hours: Decimal = Field(..., ge=0)
    start_date: date
    end_date: date
    product_manager_id: int | None = None
    consultants: list[ProjectConsultantIn] = []

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class SprintResponse(BaseModel):
    id: int
    sprint_number: int
    start_date: date
    end_date: date
    phase_id: int | None

    class Config:
        from_attributes = True


class ProjectResponse(BaseModel):
    id: int
    title: str
    description: str | None
    budgeted_hours: Decimal
    start_date: date
    product_manager_id: int | None
    sprints: list[SprintResponse] = []
    warning: str | None = None

    class Config:
        from_attributes = True


class PhaseCreate(BaseModel):
    project_id: int
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    sprint_ids: list[int] = Field(..., min_length=1)


class PhaseSprintsUpdate(BaseModel):
    sprint_ids: list[int] = Field(..., min_length=1)


class PhaseResponse(BaseModel):
    id: int
    project_id: int
    name: str
    description: str | None
    start_date: date
    end_date: date
    sprint_numbers: list[int] = []
    max_hours_per_consultant: Decimal | None = None


class SprintToggleRequest(BaseModel):
    selected_ids: list[int] = []
    sprint_id: int
    checked: bool
    phase_id: int | None = None


class SprintToggleResponse(BaseModel):
    selected_ids: list[int]
    accepted: bool
    error: str | None = None
