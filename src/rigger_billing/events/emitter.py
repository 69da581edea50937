"""Event emitter for publishing billing domain events.

The emitter provides:
- Handler registration with event type filtering
- Error isolation (handler failures don't break other handlers)
- Per-unit-of-work batches, flushed only when the work succeeded
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, TypeVar, Union

from rigger_billing.events.types import DomainEvent

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)

Handler = Callable[[DomainEvent], Union[Awaitable[None], None]]


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: Handler
    event_types: set[str] | None  # None = all events

    def matches(self, event: DomainEvent) -> bool:
        return self.event_types is None or event.event_type in self.event_types


class AsyncEventEmitter:
    """Asynchronous event emitter.

    Accepts both coroutine and plain-function handlers.

    Usage:
        emitter = AsyncEventEmitter()

        async def notify_ngo(event: ContributionRecorded) -> None:
            await ngo_client.track(event.to_dict())

        emitter.on(ContributionRecorded, notify_ngo)
        await emitter.emit(event)
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []

    def on(self, event_type: type[T] | list[type[T]], handler: Handler) -> None:
        """Register handler for specific event type(s)."""
        if isinstance(event_type, list):
            types = {t.__name__ for t in event_type}
        else:
            types = {event_type.__name__}
        self._handlers.append(HandlerRegistration(handler=handler, event_types=types))

    def on_all(self, handler: Handler) -> None:
        """Register handler for all events."""
        self._handlers.append(HandlerRegistration(handler=handler, event_types=None))

    async def emit(self, event: DomainEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns list of any exceptions raised by handlers. Handlers are
        isolated - failures don't stop other handlers.
        """
        tasks = [
            asyncio.ensure_future(self._call_handler(reg.handler, event))
            for reg in self._handlers
            if reg.matches(event)
        ]
        if not tasks:
            return []
        results = await asyncio.gather(*tasks, return_exceptions=True)
        return [r for r in results if isinstance(r, Exception)]

    async def emit_all(self, events: Iterable[DomainEvent]) -> list[Exception]:
        """Emit events in order."""
        errors: list[Exception] = []
        for event in events:
            errors.extend(await self.emit(event))
        return errors

    async def _call_handler(self, handler: Handler, event: DomainEvent) -> None:
        """Call handler with error logging."""
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Handler %s failed for event %s", handler, event.event_type)
            raise

    def batch(self) -> AsyncEventBatch:
        """Create a batch context for collecting events."""
        return AsyncEventBatch(self)


class AsyncEventBatch:
    """Collects events for one unit of work.

    Events are emitted when the context exits cleanly and discarded when it
    exits with an exception. Each batch holds its own events, so concurrent
    use cases sharing one emitter do not see each other's events.
    """

    def __init__(self, emitter: AsyncEventEmitter) -> None:
        self._emitter = emitter
        self._events: list[DomainEvent] = []
        self._errors: list[Exception] = []

    async def __aenter__(self) -> AsyncEventBatch:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        events, self._events = self._events, []
        if exc_type is None:
            self._errors = await self._emitter.emit_all(events)

    def add(self, event: DomainEvent) -> None:
        """Add event to batch."""
        self._events.append(event)

    @property
    def pending(self) -> list[DomainEvent]:
        return list(self._events)

    @property
    def errors(self) -> list[Exception]:
        """Errors from handler execution (available after context exits)."""
        return self._errors
