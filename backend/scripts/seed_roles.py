"""Seed roles and an admin user."""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from sprintledger.auth.jwt import get_password_hash
from sprintledger.auth.rbac import Role as RoleName
from sprintledger.database import async_session_maker, init_db
from sprintledger.models.user import Role, User, UserRole


ROLES = [
    (RoleName.ADMIN.value, "System administrator"),
    (RoleName.GROWTH_TEAM.value, "Growth team: approves allocations, plans and hour changes"),
    (RoleName.PRODUCT_MANAGER.value, "Product manager: runs project phases and rosters"),
    (RoleName.CONSULTANT.value, "Consultant: plans own weekly hours"),
]


async def seed():
    await init_db()
    async with async_session_maker() as db:
        for name, desc in ROLES:
            r = await db.execute(select(Role).where(Role.name == name))
            if not r.scalar_one_or_none():
                db.add(Role(name=name, description=desc))
        await db.commit()

        admin_role = (await db.execute(select(Role).where(Role.name == RoleName.ADMIN.value))).scalar_one()
        r = await db.execute(select(User).where(User.email == "admin@sprintledger.local"))
        if not r.scalar_one_or_none():
            user = User(
                email="admin@sprintledger.local",
                hashed_password=get_password_hash("admin123"),
                name="Admin User",
            )
            db.add(user)
            await db.flush()
            db.add(UserRole(user_id=user.id, role_id=admin_role.id))
        await db.commit()
    print("Seeded roles and admin user (admin@sprintledger.local / admin123)")


if __name__ == "__main__":
    asyncio.run(seed())
