"""Pytest fixtures for RCTI engine tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from rcti_engine.database import make_session_factory
from rcti_engine.models import Base, Driver, Job

# In-memory SQLite shared by every connection of one test's engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh test database for each test."""
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


@pytest.fixture
def session_factory(engine: AsyncEngine):
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def contractor(session: AsyncSession) -> Driver:
    """GST-registered contractor with a half-hour break allowance."""
    driver = Driver(
        driver_id=uuid4(),
        name="Jane Smith",
        driver_type="contractor",
        abn="12 345 678 901",
        address="1 Depot Rd, Brisbane QLD",
        gst_status="registered",
        gst_mode="exclusive",
        break_hours=Decimal("0.5"),
        rate_tray=Decimal("60.00"),
        rate_crane=Decimal("80.00"),
        rate_semi=Decimal("90.00"),
        rate_semi_crane=Decimal("110.00"),
    )
    session.add(driver)
    await session.flush()
    return driver


@pytest.fixture
async def employee(session: AsyncSession) -> Driver:
    driver = Driver(
        driver_id=uuid4(),
        name="Eddie Employee",
        driver_type="employee",
        gst_status="not_registered",
        gst_mode="exclusive",
    )
    session.add(driver)
    await session.flush()
    return driver


async def add_job(
    session: AsyncSession,
    driver: Driver,
    job_date: date,
    hours: str,
    truck_type: str = "Tray",
    driver_charge: str | None = None,
    customer: str = "Acme Logistics",
) -> Job:
    """Insert a completed job for ``driver``."""
    job = Job(
        job_id=uuid4(),
        driver_id=driver.driver_id,
        job_date=job_date,
        customer=customer,
        truck_type=truck_type,
        charged_hours=Decimal(hours),
        driver_charge=Decimal(driver_charge) if driver_charge is not None else None,
        pickup="Brisbane",
        dropoff="Ipswich",
    )
    session.add(job)
    await session.flush()
    return job


@pytest.fixture
async def week_jobs(session: AsyncSession, contractor: Driver) -> list[Job]:
    """Two long tray shifts and one short crane job in the week ending 2025-11-09."""
    return [
        await add_job(session, contractor, date(2025, 11, 3), "8"),
        await add_job(session, contractor, date(2025, 11, 4), "9"),
        await add_job(session, contractor, date(2025, 11, 5), "4", truck_type="Crane"),
    ]


@pytest.fixture
def make_job(session: AsyncSession):
    """Factory fixture wrapping ``add_job`` for the current session."""

    async def _make(driver: Driver, job_date: date, hours: str, **kwargs) -> Job:
        return await add_job(session, driver, job_date, hours, **kwargs)

    return _make
