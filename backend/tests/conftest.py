"""
Shared test fixtures for sprintledger.

Service tests run against an in-memory SQLite database through aiosqlite.
Each test drives its async code with ``asyncio.run`` via the ``run_in_db``
fixture, which hands a fresh session with every table created. API tests
use the FastAPI TestClient with ``get_db`` pointed at the same kind of
database.
"""
import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import sprintledger.models  # noqa: F401
from sprintledger.auth.jwt import get_password_hash
from sprintledger.auth.rbac import ROLE_NAMES
from sprintledger.config import get_settings
from sprintledger.database import Base, get_db
from sprintledger.engine.calendar import week_of
from sprintledger.models.allocation import (
    ApprovalStatus,
    PhaseAllocation,
    PlanningStatus,
    WeeklyAllocation,
)
from sprintledger.models.project import Phase, Project, ProjectConsultant, Sprint
from sprintledger.models.user import Role, User, UserRole

TEST_DB_URL = "sqlite+aiosqlite://"
CRON_SECRET = "test-cron-secret"


def _make_engine():
    return create_async_engine(TEST_DB_URL, poolclass=StaticPool, connect_args={"check_same_thread": False})


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    """Fresh settings for every test with a known cron secret."""
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def run_in_db():
    """Run ``scenario(session)`` to completion against a fresh in-memory database."""

    def _run(scenario):
        async def _main():
            engine = _make_engine()
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            try:
                async with maker() as session:
                    await _seed_roles(session)
                    return await scenario(session)
            finally:
                await engine.dispose()

        return asyncio.run(_main())

    return _run


# Seed helpers

async def _seed_roles(db: AsyncSession) -> None:
    for name in ROLE_NAMES:
        db.add(Role(name=name, description=name.replace("_", " ").title()))
    await db.flush()


async def _seed_user(db: AsyncSession, email: str, *roles: str) -> User:
    user = User(email=email, hashed_password=get_password_hash("password123"), name=email.split("@")[0])
    db.add(user)
    await db.flush()
    if roles:
        result = await db.execute(select(Role).where(Role.name.in_(roles)))
        for role in result.scalars().all():
            db.add(UserRole(user_id=user.id, role_id=role.id))
        await db.flush()
    return user


async def _seed_project(
    db: AsyncSession,
    *,
    title: str = "Atlas",
    budgeted_hours=Decimal("1000"),
    start_date: date = date(2030, 1, 7),
    sprint_count: int = 3,
    team: dict[int, Decimal] | None = None,
) -> tuple[Project, list[Sprint]]:
    """Project with two-week sprints numbered from 1, starting on a Monday."""
    project = Project(title=title, budgeted_hours=Decimal(budgeted_hours), start_date=start_date)
    db.add(project)
    await db.flush()
    sprints = []
    for n in range(1, sprint_count + 1):
        start = start_date + timedelta(weeks=2 * (n - 1))
        sprints.append(
            Sprint(project_id=project.id, sprint_number=n, start_date=start, end_date=start + timedelta(days=13))
        )
    db.add_all(sprints)
    for user_id, hours in (team or {}).items():
        db.add(ProjectConsultant(project_id=project.id, user_id=user_id, allocated_hours=Decimal(hours)))
    await db.flush()
    return project, sprints


async def _seed_phase(db: AsyncSession, project: Project, sprints: list[Sprint], name: str = "Build") -> Phase:
    phase = Phase(
        project_id=project.id,
        name=name,
        start_date=min(s.start_date for s in sprints),
        end_date=max(s.end_date for s in sprints),
    )
    db.add(phase)
    await db.flush()
    for sprint in sprints:
        sprint.phase_id = phase.id
    await db.flush()
    return phase


async def _seed_allocation(
    db: AsyncSession,
    phase: Phase,
    consultant_id: int,
    hours,
    status: ApprovalStatus = ApprovalStatus.APPROVED,
) -> PhaseAllocation:
    allocation = PhaseAllocation(
        phase_id=phase.id,
        consultant_id=consultant_id,
        total_hours=Decimal(hours),
        approval_status=status,
    )
    db.add(allocation)
    await db.flush()
    return allocation


async def _seed_week(
    db: AsyncSession,
    allocation: PhaseAllocation,
    week_start: date,
    hours,
    status: PlanningStatus = PlanningStatus.APPROVED,
) -> WeeklyAllocation:

    bucket = week_of(week_start)
    row = WeeklyAllocation(
        phase_allocation_id=allocation.id,
        consultant_id=allocation.consultant_id,
        week_start_date=bucket.week_start,
        week_end_date=bucket.week_end,
        week_number=bucket.week_number,
        year=bucket.year,
        proposed_hours=Decimal(hours),
        approved_hours=Decimal(hours) if status in (PlanningStatus.APPROVED, PlanningStatus.MODIFIED) else None,
        planning_status=status,
    )
    db.add(row)
    await db.flush()
    return row


# API client

@pytest.fixture
def client(monkeypatch):
    """TestClient on an in-memory database. Lifespan runs, so every request shares one event loop."""
    from sprintledger import main

    engine = _make_engine()
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with maker() as session:
            await _seed_roles(session)
            await session.commit()

    async def override_get_db():
        async with maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    monkeypatch.setattr(main, "init_db", create_tables)
    main.app.dependency_overrides[get_db] = override_get_db
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


def register(client: TestClient, email: str, *roles: str) -> tuple[int, dict]:
    """Register a user through the API; returns the user id and auth headers."""
    response = client.post(
        "/auth/register",
        json={"email": email, "password": "password123", "roles": list(roles)},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    return body["user"]["id"], {"Authorization": f"Bearer {body['access_token']}"}
