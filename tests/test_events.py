"""Tests for billing domain events and the async emitter."""

import json
from datetime import datetime
from decimal import Decimal

import pytest

from rigger_billing.events import (
    AsyncEventEmitter,
    ContributionRecorded,
    EventMetadata,
    SubscriptionPastDue,
)


def contribution_event(**overrides) -> ContributionRecorded:
    fields = dict(
        metadata=EventMetadata.create(),
        contribution_id="contrib_1",
        transaction_id="txn_1",
        source_kind="job_payment",
        amount=Decimal("2.00"),
        period_year=2024,
        period_month=3,
    )
    fields.update(overrides)
    return ContributionRecorded(**fields)


def past_due_event() -> SubscriptionPastDue:
    return SubscriptionPastDue(
        metadata=EventMetadata.create(),
        subscription_id="sub_1",
        user_id="user_1",
        amount=Decimal("79.99"),
        reason="Card declined",
    )


class TestAsyncEventEmitter:
    async def test_type_handler_receives_matching_events_only(self):
        emitter = AsyncEventEmitter()
        received = []
        emitter.on(ContributionRecorded, received.append)

        await emitter.emit(contribution_event())
        await emitter.emit(past_due_event())

        assert [type(e) for e in received] == [ContributionRecorded]

    async def test_handler_for_several_types(self):
        emitter = AsyncEventEmitter()
        received = []

        async def handler(event):
            received.append(event.event_type)

        emitter.on([ContributionRecorded, SubscriptionPastDue], handler)

        await emitter.emit_all([contribution_event(), past_due_event()])

        assert received == ["ContributionRecorded", "SubscriptionPastDue"]

    async def test_handler_error_isolation(self):
        emitter = AsyncEventEmitter()
        received = []

        async def failing(event):
            raise ValueError("ngo endpoint down")

        emitter.on_all(failing)
        emitter.on_all(received.append)

        errors = await emitter.emit(contribution_event())

        assert len(received) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)

    async def test_batch_emits_on_clean_exit(self):
        emitter = AsyncEventEmitter()
        received = []
        emitter.on_all(received.append)

        async with emitter.batch() as batch:
            batch.add(contribution_event())
            batch.add(past_due_event())
            assert len(batch.pending) == 2
            assert received == []

        assert len(received) == 2
        assert batch.errors == []

    async def test_batch_discards_on_exception(self):
        emitter = AsyncEventEmitter()
        received = []
        emitter.on_all(received.append)

        with pytest.raises(RuntimeError):
            async with emitter.batch() as batch:
                batch.add(contribution_event())
                raise RuntimeError("commit failed")

        assert received == []


class TestEventSerialization:
    def test_to_dict(self):
        event = contribution_event()

        data = event.to_dict()

        assert data["event_type"] == "ContributionRecorded"
        assert data["category"] == "contribution"
        assert data["amount"] == "2.00"
        assert data["metadata"]["event_id"] == str(event.metadata.event_id)
        assert data["metadata"]["source_service"] == "billing"

    def test_to_json_round_trips_through_json(self):
        event = past_due_event()

        data = json.loads(event.to_json())

        assert data["category"] == "subscription"
        assert data["reason"] == "Card declined"
        datetime.fromisoformat(data["metadata"]["timestamp"])
