"""Auth API routes."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintledger.auth.jwt import create_access_token
from sprintledger.database import get_db
from sprintledger.models.user import User
from sprintledger.schemas.auth import Token, UserCreate, UserLogin
from sprintledger.services.auth_service import authenticate_user, create_user, role_names, user_to_response

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=Token)
async def register(
    data: UserCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    result = await db.execute(select(User).where(User.email == data.email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email already registered")
    user = await create_user(db, data)
    token = create_access_token(user.id, role_names(user))
    return Token(access_token=token, user=user_to_response(user))


@router.post("/login", response_model=Token)
async def login(
    data: UserLogin,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    user = await authenticate_user(db, data)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    token = create_access_token(user.id, role_names(user))
    return Token(access_token=token, user=user_to_response(user))
