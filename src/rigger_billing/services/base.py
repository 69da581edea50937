"""Shared plumbing for use-case services.

A use case runs in one unit of work: one session, committed on success and
rolled back on error, with its domain events emitted only after the commit.
``run`` turns whatever the use case raised into a ``Failure`` so that
nothing escapes to the caller.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rigger_billing.config import BillingConfig
from rigger_billing.errors import BillingError
from rigger_billing.events import AsyncEventBatch, AsyncEventEmitter
from rigger_billing.metrics import NullStats, StatsRecorder
from rigger_billing.models import utcnow
from rigger_billing.services.results import Failure, Result, Success

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UseCaseService:
    """Base for services whose public methods return ``Result``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        config: BillingConfig | None = None,
        stats: StatsRecorder | None = None,
        events: AsyncEventEmitter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.config = config or BillingConfig()
        self.stats: StatsRecorder = stats or NullStats()
        self.events = events or AsyncEventEmitter()
        self.clock = clock

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[tuple[AsyncSession, AsyncEventBatch]]:
        """Session plus event batch; events go out after a successful commit."""
        async with self.events.batch() as batch:
            async with self.session_factory() as session:
                try:
                    yield session, batch
                    await session.commit()
                except BaseException:
                    await session.rollback()
                    raise

    async def run(self, operation: str, work: Callable[[], Awaitable[T]]) -> Result[T]:
        """Execute a use case and convert its outcome into a ``Result``."""
        started = time.perf_counter()
        try:
            value = await work()
        except BillingError as exc:
            logger.warning("%s failed (%s): %s", operation, exc.code.value, exc.message)
            self.stats.increment("billing_operations_total", operation=operation, outcome="failure")
            self.stats.increment("billing_failures_total", operation=operation, code=exc.code.value)
            return Failure.from_error(exc)
        except Exception:
            logger.exception("%s failed unexpectedly", operation)
            self.stats.increment("billing_operations_total", operation=operation, outcome="error")
            self.stats.increment("billing_failures_total", operation=operation, code="Internal")
            return Failure.internal()
        finally:
            self.stats.observe("billing_operation_seconds", time.perf_counter() - started, operation=operation)

        self.stats.increment("billing_operations_total", operation=operation, outcome="success")
        return Success(value)
