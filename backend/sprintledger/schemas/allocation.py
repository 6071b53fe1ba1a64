"""Allocation, weekly plan and hour change request schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class PhaseAllocationSet(BaseModel):
    consultant_id: int
    total_hours: Decimal


class PhaseAllocationResponse(BaseModel):
    id: int
    phase_id: int
    consultant_id: int
    total_hours: Decimal
    previous_hours: Decimal | None = None
    approval_status: str
    approved_by: int | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None

    class Config:
        from_attributes = True


class PhaseAllocationResult(BaseModel):
    allocation: PhaseAllocationResponse | None
    removed: bool = False
    warning: str | None = None


class AllocationApprove(BaseModel):
    approved_hours: Decimal | None = None


class RejectRequest(BaseModel):
    reason: str = Field(..., max_length=500)


class ForfeitResult(BaseModel):
    allocation: PhaseAllocationResponse
    forfeited_hours: Decimal


class WeekEntryIn(BaseModel):
    week_start: date
    hours: Decimal


class WeeklyPlanSubmit(BaseModel):
    phase_allocation_id: int
    weeks: list[WeekEntryIn] = Field(..., min_length=1)


class WeeklyAllocationResponse(BaseModel):
    id: int
    phase_allocation_id: int
    consultant_id: int
    week_start_date: date
    week_end_date: date
    week_number: int
    year: int
    proposed_hours: Decimal
    approved_hours: Decimal | None
    planning_status: str
    modification_reason: str | None = None
    rejection_reason: str | None = None

    class Config:
        from_attributes = True


class WeeklyPlanResult(BaseModel):
    weeks: list[WeeklyAllocationResponse]
    warning: str | None = None


WeeklyActionName = Literal["APPROVE", "REJECT", "MODIFY"]


class WeeklyDecision(BaseModel):
    action: WeeklyActionName
    approved_hours: Decimal | None = None
    reason: str | None = Field(None, max_length=500)


class BatchItemIn(BaseModel):
    id: int
    action: WeeklyActionName | None = None
    approved_hours: Decimal | None = None
    reason: str | None = Field(None, max_length=500)


class BatchDecision(BaseModel):
    default_action: WeeklyActionName
    items: list[BatchItemIn] = Field(..., min_length=1)
    reason: str | None = Field(None, max_length=500)


class BatchItemResponse(BaseModel):
    id: int
    ok: bool
    status: str | None = None
    error: str | None = None


class BatchResultResponse(BaseModel):
    succeeded: int
    failed: int
    results: list[BatchItemResponse]


class HourChangeCreate(BaseModel):
    phase_allocation_id: int
    change_type: Literal["ADJUSTMENT", "SHIFT"]
    reason: str = Field(..., max_length=500)
    requested_hours: Decimal | None = None
    shift_hours: Decimal | None = None
    to_consultant_id: int | None = None

    @model_validator(mode="after")
    def check_fields(self):
        if self.change_type == "ADJUSTMENT" and self.requested_hours is None:
            raise ValueError("requested_hours is required for ADJUSTMENT")
        if self.change_type == "SHIFT" and (self.shift_hours is None or self.to_consultant_id is None):
            raise ValueError("shift_hours and to_consultant_id are required for SHIFT")
        return self


class HourChangeResponse(BaseModel):
    id: int
    change_type: str
    phase_allocation_id: int
    phase_id: int
    requester_id: int
    original_hours: Decimal
    requested_hours: Decimal | None
    shift_hours: Decimal | None
    from_consultant_id: int | None
    to_consultant_id: int | None
    reason: str
    status: str
    approver_id: int | None = None
    rejection_reason: str | None = None
    application_error: str | None = None

    class Config:
        from_attributes = True


class HourChangeResult(BaseModel):
    request: HourChangeResponse
    warning: str | None = None
