"""Authentication service."""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sprintledger.auth.jwt import get_password_hash, verify_password
from sprintledger.models.user import Role, User, UserRole
from sprintledger.schemas.auth import UserCreate, UserLogin, UserResponse


async def load_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.user_roles).selectinload(UserRole.role))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def create_user(db: AsyncSession, data: UserCreate) -> User:
    """Create user with roles given by name; unknown role names are ignored."""
    user = User(
        email=data.email,
        hashed_password=get_password_hash(data.password),
        name=data.name,
    )
    db.add(user)
    await db.flush()
    if data.roles:
        result = await db.execute(select(Role).where(Role.name.in_(data.roles)))
        for role in result.scalars().all():
            db.add(UserRole(user_id=user.id, role_id=role.id))
        await db.flush()
    return await load_user(db, user.id)


async def authenticate_user(db: AsyncSession, data: UserLogin) -> User | None:
    """Authenticate user by email and password."""
    result = await db.execute(select(User).where(User.email == data.email))
    user = result.scalar_one_or_none()
    if not user or not verify_password(data.password, user.hashed_password):
        return None
    return await load_user(db, user.id)


def role_names(user: User) -> list[str]:
    return [ur.role.name for ur in user.user_roles if ur.role]


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.display_name,
        is_active=user.is_active,
        roles=role_names(user),
    )
