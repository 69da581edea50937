"""Pytest fixtures for rigger billing tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from rigger_billing.config import BillingConfig
from rigger_billing.database import create_schema, get_engine, make_session_factory
from rigger_billing.events import AsyncEventEmitter, DomainEvent
from rigger_billing.metrics import InMemoryStats
from rigger_billing.models import AppUser, Job, Subscription
from rigger_billing.providers import StubPaymentProcessor
from rigger_billing.services import BillingOrchestrator, TransparencyService

NOW = datetime(2024, 3, 15, 12, 0, 0)


class FrozenClock:
    """Deterministic clock for services; advance() moves it forward."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so concurrent sessions share one database."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def config() -> BillingConfig:
    return BillingConfig()


@pytest.fixture
def stats() -> InMemoryStats:
    return InMemoryStats()


@pytest.fixture
def events() -> AsyncEventEmitter:
    return AsyncEventEmitter()


@pytest.fixture
def emitted(events: AsyncEventEmitter) -> list[DomainEvent]:
    """Every event the emitter delivers, in order."""
    received: list[DomainEvent] = []
    events.on_all(received.append)
    return received


@pytest.fixture
def processor() -> StubPaymentProcessor:
    return StubPaymentProcessor()


@pytest.fixture
def orchestrator(session_factory, processor, config, stats, events, clock) -> BillingOrchestrator:
    return BillingOrchestrator(
        session_factory,
        processor,
        config=config,
        stats=stats,
        events=events,
        clock=clock,
    )


@pytest.fixture
def transparency(session_factory, config, stats, events, clock) -> TransparencyService:
    return TransparencyService(session_factory, config=config, stats=stats, events=events, clock=clock)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


class Seeder:
    """Inserts marketplace rows the billing use cases read."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _add(self, row):
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()
        return row

    async def user(self, role: str = "worker", first_name: str = "Sam", last_name: str = "Rigger") -> AppUser:
        return await self._add(
            AppUser(
                user_id=f"user_{uuid4().hex[:8]}",
                first_name=first_name,
                last_name=last_name,
                email=f"{first_name.lower()}.{uuid4().hex[:6]}@example.com",
                role=role,
            )
        )

    async def job(
        self,
        employer: AppUser,
        worker: AppUser | None,
        hourly_rate: str = "50",
        estimated_hours: str = "8",
        actual_hours: str | None = None,
        status: str = "completed",
    ) -> Job:
        return await self._add(
            Job(
                job_id=f"job{uuid4().hex[:8]}",
                title="Stage truss install",
                posted_by_id=employer.user_id,
                assigned_to_id=worker.user_id if worker else None,
                status=status,
                hourly_rate=Decimal(hourly_rate),
                estimated_hours=Decimal(estimated_hours),
                actual_hours=Decimal(actual_hours) if actual_hours is not None else None,
            )
        )

    async def subscription(
        self,
        user: AppUser,
        period_end: datetime,
        plan_type: str = "professional",
        amount: str = "79.99",
        interval: str = "monthly",
        status: str = "active",
    ) -> Subscription:
        return await self._add(
            Subscription(
                subscription_id=f"sub_{uuid4().hex[:12]}",
                user_id=user.user_id,
                plan_type=plan_type,
                plan_name=plan_type.replace("_", " ").title(),
                amount=Decimal(amount),
                interval=interval,
                status=status,
                start_at=period_end - timedelta(days=30),
                current_period_start=period_end - timedelta(days=30),
                current_period_end=period_end,
                usage_current_period_jobs=4,
                usage_current_period_connections=2,
            )
        )


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest_asyncio.fixture
async def employer(seed: Seeder) -> AppUser:
    return await seed.user(role="employer", first_name="Erin", last_name="Boss")


@pytest_asyncio.fixture
async def worker(seed: Seeder) -> AppUser:
    return await seed.user(role="worker", first_name="Wes", last_name="Hand")
