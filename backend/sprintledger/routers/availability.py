"""Consultant availability routes. Read-only and advisory."""
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sprintledger.auth.deps import get_current_user
from sprintledger.database import get_db
from sprintledger.models.user import User
from sprintledger.schemas.availability import ConsultantAvailability, PhaseAvailability
from sprintledger.services import capacity_service

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("", response_model=list[ConsultantAvailability])
async def consultant_availability(
    start: date,
    end: date,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    consultant_ids: Annotated[list[int], Query()] = [],
):
    capacities = await capacity_service.consultant_availability(db, start, end, consultant_ids)
    return [ConsultantAvailability.from_capacity(c) for c in capacities]


@router.get("/phases/{phase_id}", response_model=PhaseAvailability)
async def phase_consultant_availability(
    phase_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    consultant_ids: Annotated[list[int] | None, Query()] = None,
):
    phase, limits, capacities = await capacity_service.phase_consultant_availability(db, phase_id, consultant_ids)
    return PhaseAvailability(
        phase_id=phase.id,
        start_date=phase.start_date,
        end_date=phase.end_date,
        sprint_count=limits.sprint_count,
        total_weeks=limits.total_weeks,
        max_hours_per_consultant=limits.max_hours_per_consultant,
        consultants=[ConsultantAvailability.from_capacity(c) for c in capacities],
    )
