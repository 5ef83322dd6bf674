"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (calculator, lifecycle, reconciliation, api).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavedesk.common.constants import DurationType, HolidayHalf, LeaveStatus, UserRole
from leavedesk.config import settings
from leavedesk.database import Base, get_db
from leavedesk.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import leavedesk.common.audit  # noqa: F401
import leavedesk.holidays.models  # noqa: F401
import leavedesk.leave.models  # noqa: F401
import leavedesk.users.models  # noqa: F401

from leavedesk.holidays.models import Holiday
from leavedesk.leave.models import LeaveBalance, LeaveRequest, LeaveType
from leavedesk.users.models import User

# ── SQLite compat: compile PG-specific types to TEXT/CHAR ───────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leavedesk.common.rate_limit import limiter
    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

MANAGER_EMAIL = "ayse.manager@leavedesk.io"
EMPLOYEE_EMAIL = "mehmet.employee@leavedesk.io"
ADMIN_EMAIL = "hr.admin@leavedesk.io"


def _make_user(
    *,
    email: str = EMPLOYEE_EMAIL,
    name: str = "Mehmet Employee",
    role: UserRole = UserRole.employee,
    manager_email: Optional[str] = MANAGER_EMAIL,
    is_active: bool = True,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        email=email,
        name=name,
        role=role,
        manager_email=manager_email,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
    )


async def _seed_user(db: AsyncSession, **kwargs) -> User:
    user = User(**_make_user(**kwargs))
    db.add(user)
    await db.flush()
    return user


async def _seed_leave_type(
    db: AsyncSession,
    *,
    code: str = "AL",
    name: str = "Annual Leave",
    is_active: bool = True,
) -> LeaveType:
    lt = LeaveType(
        id=uuid.uuid4(),
        code=code,
        name=name,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
    )
    db.add(lt)
    await db.flush()
    return lt


async def _seed_balance(
    db: AsyncSession,
    user_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    accrued: Decimal = Decimal("14"),
    used: Decimal = Decimal("0"),
    remaining: Optional[Decimal] = None,
) -> LeaveBalance:
    bal = LeaveBalance(
        id=uuid.uuid4(),
        user_id=user_id,
        leave_type_id=leave_type_id,
        accrued=accrued,
        used=used,
        remaining=accrued - used if remaining is None else remaining,
        last_updated=datetime.now(timezone.utc),
    )
    db.add(bal)
    await db.flush()
    return bal


async def _seed_holiday(
    db: AsyncSession,
    day: date,
    *,
    name: str = "Public Holiday",
    half: Optional[HolidayHalf] = None,
) -> Holiday:
    now = datetime.now(timezone.utc)
    holiday = Holiday(
        id=uuid.uuid4(),
        date=day,
        name=name,
        is_half_day=half is not None,
        half=half,
        created_at=now,
        updated_at=now,
    )
    db.add(holiday)
    await db.flush()
    return holiday


async def _seed_request(
    db: AsyncSession,
    owner: User,
    leave_type_id: uuid.UUID,
    start: date,
    end: date,
    *,
    status: LeaveStatus = LeaveStatus.pending,
    requested_days: Decimal = Decimal("1"),
    deducted_days: Optional[Decimal] = None,
    duration_type: DurationType = DurationType.full,
    enable_ooo: bool = False,
) -> LeaveRequest:
    """Insert a request row directly, bypassing creation rules."""
    now = datetime.now(timezone.utc)
    req = LeaveRequest(
        id=uuid.uuid4(),
        user_id=owner.id,
        email=owner.email,
        leave_type_id=leave_type_id,
        start_date=start,
        end_date=end,
        duration_type=duration_type,
        requested_days=requested_days,
        deducted_days=deducted_days,
        status=status,
        manager_email=owner.manager_email,
        enable_ooo=enable_ooo,
        request_date=now,
        deduction_date=now if status == LeaveStatus.deducted else None,
        updated_at=now,
    )
    db.add(req)
    await db.flush()
    return req


@pytest.fixture
async def people(db) -> dict[str, User]:
    """Employee, their manager, an unrelated employee and an admin."""
    return {
        "manager": await _seed_user(
            db, email=MANAGER_EMAIL, name="Ayse Manager",
            role=UserRole.manager, manager_email=None,
        ),
        "employee": await _seed_user(db),
        "stranger": await _seed_user(
            db, email="other.person@leavedesk.io", name="Other Person",
            manager_email="someone.else@leavedesk.io",
        ),
        "admin": await _seed_user(
            db, email=ADMIN_EMAIL, name="HR Admin",
            role=UserRole.admin, manager_email=None,
        ),
    }


@pytest.fixture
async def annual_leave(db) -> LeaveType:
    return await _seed_leave_type(db)


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    user_id: uuid.UUID,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {"sub": str(user_id), "exp": exp}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers_for(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
