"""Process-wide service container.

Built once at startup: one engine, one stats recorder, one event emitter,
shared by every request. Tests build their own and pass it to
``create_app``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rigger_billing.config import BillingConfig
from rigger_billing.events import AsyncEventEmitter
from rigger_billing.metrics import InMemoryStats
from rigger_billing.providers import PaymentProcessor, StubPaymentProcessor
from rigger_billing.services import BillingOrchestrator, TransparencyService

logger = logging.getLogger(__name__)


@dataclass
class BillingContainer:
    """Wires services to shared collaborators."""

    session_factory: async_sessionmaker[AsyncSession]
    orchestrator: BillingOrchestrator
    transparency: TransparencyService
    stats: InMemoryStats
    events: AsyncEventEmitter
    processor: PaymentProcessor

    @classmethod
    def build(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        processor: PaymentProcessor | None = None,
        config: BillingConfig | None = None,
    ) -> BillingContainer:
        config = config or BillingConfig()
        processor = processor or StubPaymentProcessor()
        stats = InMemoryStats()
        events = AsyncEventEmitter()
        return cls(
            session_factory=session_factory,
            orchestrator=BillingOrchestrator(
                session_factory,
                processor,
                config=config,
                stats=stats,
                events=events,
            ),
            transparency=TransparencyService(session_factory, config=config, stats=stats, events=events),
            stats=stats,
            events=events,
            processor=processor,
        )

    def shutdown(self) -> None:
        """Flush process-lifetime collaborators."""
        self.stats.flush()
        logger.info("Billing container shut down")
