"""
Payroll Readiness Engine - Test Configuration

Pytest fixtures and configuration.
"""

import os

# Tests run against in-memory SQLite; must be set before app modules load settings
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers all tables on Base.metadata)
from app.database import Base, get_async_session
from app.models.employee import Employee, SystemRole
from app.models.payroll import PayrollRun, PayrollRunStatus, Payslip, PayslipPaymentStatus
from main import app
from tests.helpers import make_employee


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """A fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def employee(db_session: AsyncSession) -> Employee:
    return await make_employee(db_session, "EMP-001", "Ada", "Obi")


@pytest_asyncio.fixture
async def specialist(db_session: AsyncSession) -> Employee:
    return await make_employee(db_session, "EMP-101", "Sam", "Specialist", SystemRole.PAYROLL_SPECIALIST)


@pytest_asyncio.fixture
async def manager(db_session: AsyncSession) -> Employee:
    return await make_employee(db_session, "EMP-102", "Mia", "Manager", SystemRole.PAYROLL_MANAGER)


@pytest_asyncio.fixture
async def finance_staff(db_session: AsyncSession) -> Employee:
    return await make_employee(db_session, "EMP-103", "Fin", "Staff", SystemRole.FINANCE_STAFF)


@pytest_asyncio.fixture
async def hr_manager(db_session: AsyncSession) -> Employee:
    return await make_employee(db_session, "EMP-104", "Hana", "Resources", SystemRole.HR_MANAGER)


@pytest_asyncio.fixture
async def payroll_runs(db_session: AsyncSession) -> dict:
    """A paid December run and open January/February runs."""
    runs = {
        "RUN-2024-12": PayrollRun(
            run_id="RUN-2024-12", period_start=date(2024, 12, 1), period_end=date(2024, 12, 31),
            status=PayrollRunStatus.PAID,
        ),
        "RUN-2025-01": PayrollRun(
            run_id="RUN-2025-01", period_start=date(2025, 1, 1), period_end=date(2025, 1, 31),
            status=PayrollRunStatus.DRAFT,
        ),
        "RUN-2025-02": PayrollRun(
            run_id="RUN-2025-02", period_start=date(2025, 2, 1), period_end=date(2025, 2, 28),
            status=PayrollRunStatus.DRAFT,
        ),
    }
    db_session.add_all(runs.values())
    await db_session.commit()
    return runs


@pytest_asyncio.fixture
async def paid_payslip(db_session: AsyncSession, employee: Employee, payroll_runs: dict) -> Payslip:
    """The employee's payslip from the already-paid December run."""
    payslip = Payslip(
        id=uuid4(),
        employee_id=employee.id,
        payroll_run_id="RUN-2024-12",
        net_pay=Decimal("240000.00"),
        payment_status=PayslipPaymentStatus.PAID,
    )
    db_session.add(payslip)
    await db_session.commit()
    return payslip


@pytest_asyncio.fixture
async def open_payslip(db_session: AsyncSession, employee: Employee, payroll_runs: dict) -> Payslip:
    """The employee's payslip in the open January run."""
    payslip = Payslip(
        id=uuid4(),
        employee_id=employee.id,
        payroll_run_id="RUN-2025-01",
        net_pay=Decimal("240000.00"),
        payment_status=PayslipPaymentStatus.PENDING,
    )
    db_session.add(payslip)
    await db_session.commit()
    return payslip


