"""Pydantic schemas."""
from sprintledger.schemas.allocation import (
    BatchDecision,
    BatchResultResponse,
    HourChangeCreate,
    HourChangeResponse,
    PhaseAllocationResponse,
    PhaseAllocationSet,
    WeeklyAllocationResponse,
    WeeklyPlanSubmit,
)
from sprintledger.schemas.auth import Token, UserCreate, UserLogin, UserResponse
from sprintledger.schemas.availability import ConsultantAvailability, PhaseAvailability
from sprintledger.schemas.project import PhaseCreate, PhaseResponse, ProjectCreate, ProjectResponse

__all__ = [
    "BatchDecision",
    "BatchResultResponse",
    "ConsultantAvailability",
    "HourChangeCreate",
    "HourChangeResponse",
    "PhaseAllocationResponse",
    "PhaseAllocationSet",
    "PhaseAvailability",
    "PhaseCreate",
    "PhaseResponse",
    "ProjectCreate",
    "ProjectResponse",
    "Token",
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "WeeklyAllocationResponse",
    "WeeklyPlanSubmit",
]
