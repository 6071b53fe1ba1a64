"""Auth schemas."""
from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: str | None = None
    roles: list[str] = []


class UserLogin(BaseModel):
    email: str  # str to allow internal emails like growth@sprintledger.local
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    is_active: bool
    roles: list[str] = []

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
