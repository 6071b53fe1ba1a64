"""Scheduled job endpoints, authenticated with the cron secret."""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sprintledger.auth.deps import verify_cron_secret
from sprintledger.database import get_db
from sprintledger.services import allocation_service

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


@router.post("/detect-expired-allocations")
async def detect_expired_allocations(db: Annotated[AsyncSession, Depends(get_db)]):
    expired = await allocation_service.detect_expired_allocations(db)
    return {
        "expired_count": len(expired),
        "allocation_ids": [a.id for a in expired],
    }
