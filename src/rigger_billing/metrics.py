"""Billing observability metrics.

The orchestrator records through the ``StatsRecorder`` port instead of a
module-level singleton. The process creates one recorder at startup, hands
it to the services, and flushes it at shutdown.

Usage:
    stats = InMemoryStats()
    orchestrator = BillingOrchestrator(session_factory, processor, stats=stats)

    # For Prometheus export
    print(stats.to_prometheus())

    # For JSON export
    print(stats.to_json())
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from rigger_billing.models import utcnow

logger = logging.getLogger(__name__)

LabelKey = tuple[tuple[str, str], ...]

HELP_TEXT = {
    "billing_operations_total": "Billing use-case invocations by operation and outcome",
    "billing_failures_total": "Failed billing use cases by error code",
    "billing_amount_total": "Gross amount processed by transaction kind",
    "billing_contributions_total": "Contribution amount recorded",
    "billing_operation_seconds": "Last observed billing operation duration",
    "billing_reconciliation_discrepancies": "Discrepancies found by the last reconciliation",
}


@dataclass
class Counter:
    """A counter metric (monotonically increasing)."""

    name: str
    value: int | Decimal
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


@dataclass
class Gauge:
    """A gauge metric (can go up or down)."""

    name: str
    value: float | int | Decimal
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


class StatsRecorder(Protocol):
    """Port for recording billing statistics."""

    def increment(self, name: str, value: int | Decimal = 1, **labels: str) -> None:
        ...

    def gauge(self, name: str, value: float | int | Decimal, **labels: str) -> None:
        ...

    def observe(self, name: str, seconds: float, **labels: str) -> None:
        ...

    def flush(self) -> None:
        ...


def _key(labels: dict[str, str]) -> LabelKey:
    return tuple(sorted((k, str(v)) for k, v in labels.items()))


class InMemoryStats:
    """Process-local recorder rendering Prometheus text and JSON."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[tuple[str, LabelKey], Counter] = {}
        self._gauges: dict[tuple[str, LabelKey], Gauge] = {}
        self.started_at: datetime = utcnow()
        self.flushed_at: datetime | None = None

    def increment(self, name: str, value: int | Decimal = 1, **labels: str) -> None:
        with self._lock:
            key = (name, _key(labels))
            counter = self._counters.get(key)
            if counter is None:
                counter = Counter(name=name, value=0, labels=dict(key[1]), help_text=HELP_TEXT.get(name, ""))
                self._counters[key] = counter
            counter.value += value

    def gauge(self, name: str, value: float | int | Decimal, **labels: str) -> None:
        with self._lock:
            key = (name, _key(labels))
            self._gauges[key] = Gauge(name=name, value=value, labels=dict(key[1]), help_text=HELP_TEXT.get(name, ""))

    def observe(self, name: str, seconds: float, **labels: str) -> None:
        self.gauge(name, round(seconds, 6), **labels)

    def counter_value(self, name: str, **labels: str) -> int | Decimal:
        counter = self._counters.get((name, _key(labels)))
        return counter.value if counter else 0

    def counters(self) -> list[Counter]:
        with self._lock:
            return list(self._counters.values())

    def gauges(self) -> list[Gauge]:
        with self._lock:
            return list(self._gauges.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "started_at": self.started_at.isoformat(),
            "counters": [self._metric_to_dict(m) for m in self.counters()],
            "gauges": [self._metric_to_dict(m) for m in self.gauges()],
        }

    def _metric_to_dict(self, metric: Counter | Gauge) -> dict[str, Any]:
        return {
            "name": metric.name,
            "value": float(metric.value) if isinstance(metric.value, Decimal) else metric.value,
            "labels": metric.labels,
            "help": metric.help_text,
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    def to_prometheus(self) -> str:
        """Convert to Prometheus text format."""
        lines: list[str] = []
        seen: set[str] = set()

        def emit(metric: Counter | Gauge) -> None:
            labels = ""
            if metric.labels:
                label_parts = [f'{k}="{v}"' for k, v in metric.labels.items()]
                labels = "{" + ",".join(label_parts) + "}"

            value = float(metric.value) if isinstance(metric.value, Decimal) else metric.value

            if metric.name not in seen:
                seen.add(metric.name)
                if metric.help_text:
                    lines.append(f"# HELP {metric.name} {metric.help_text}")
                metric_type = "counter" if isinstance(metric, Counter) else "gauge"
                lines.append(f"# TYPE {metric.name} {metric_type}")
            lines.append(f"{metric.name}{labels} {value}")

        for metric in sorted(self.counters(), key=lambda m: m.name):
            emit(metric)
        for metric in sorted(self.gauges(), key=lambda m: m.name):
            emit(metric)

        return "\n".join(lines)

    def flush(self) -> None:
        """Write the current snapshot to the log."""
        self.flushed_at = utcnow()
        logger.info("Billing stats snapshot: %s", json.dumps(self.to_dict()))


class NullStats:
    """Recorder that drops everything."""

    def increment(self, name: str, value: int | Decimal = 1, **labels: str) -> None:
        return None

    def gauge(self, name: str, value: float | int | Decimal, **labels: str) -> None:
        return None

    def observe(self, name: str, seconds: float, **labels: str) -> None:
        return None

    def flush(self) -> None:
        return None
