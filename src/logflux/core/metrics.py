"""
Pipeline statistics and Prometheus metrics.

PipelineCounters backs the stats() snapshot; MetricsCollector mirrors the
same events into Prometheus collectors for scraping.
"""

from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info

from ..models.stats import PipelineStats
from .queue import LogQueue

logger = structlog.get_logger(__name__)


class PipelineCounters:
    """
    Monotonic sent/failed counters.

    Only mutated from the event loop thread, so plain integer increments
    cannot race.
    """

    def __init__(self) -> None:
        self._sent = 0
        self._failed = 0

    @property
    def total_sent(self) -> int:
        return self._sent

    @property
    def total_failed(self) -> int:
        return self._failed

    def record_sent(self) -> None:
        self._sent += 1

    def record_failed(self, count: int = 1) -> None:
        if count < 0:
            raise ValueError("Failure count cannot be negative")
        self._failed += count

    def snapshot(self, queue: LogQueue) -> PipelineStats:
        return PipelineStats(
            total_sent=self._sent,
            total_failed=self._failed,
            total_dropped=queue.dropped_count,
            queue_size=queue.size(),
            queue_capacity=queue.capacity,
        )


class MetricsCollector:
    """
    Prometheus metrics for one pipeline.

    Each collector owns a registry unless one is supplied, so several
    pipelines in one process do not collide on metric names.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        # SDK info
        self.sdk_info = Info(
            "logflux_sdk",
            "LogFlux SDK information",
            registry=self.registry,
        )
        self.sdk_info.info({
            "version": "0.1.0",
            "sdk": "logflux-python",
        })

        # Delivery metrics
        self.entries_sent_total = Counter(
            "logflux_entries_sent_total",
            "Total log entries delivered successfully",
            registry=self.registry,
        )

        self.entries_failed_total = Counter(
            "logflux_entries_failed_total",
            "Total log entries abandoned",
            ["reason"],
            registry=self.registry,
        )

        self.entries_dropped_total = Counter(
            "logflux_entries_dropped_total",
            "Total log entries dropped by a full failsafe queue",
            registry=self.registry,
        )

        self.delivery_retries_total = Counter(
            "logflux_delivery_retries_total",
            "Total delivery retries",
            ["attempt"],
            registry=self.registry,
        )

        self.delivery_duration = Histogram(
            "logflux_delivery_duration_seconds",
            "Time to deliver one entry, retries included",
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=self.registry,
        )

        # Queue metrics
        self.queue_size = Gauge(
            "logflux_queue_size",
            "Current number of queued entries",
            registry=self.registry,
        )

        self.queue_capacity = Gauge(
            "logflux_queue_capacity",
            "Configured queue capacity",
            registry=self.registry,
        )

    def record_sent(self, duration_seconds: float) -> None:
        """Record a successful delivery."""
        self.entries_sent_total.inc()
        self.delivery_duration.observe(duration_seconds)

    def record_failed(self, reason: str, count: int = 1) -> None:
        """Record abandoned entries."""
        self.entries_failed_total.labels(reason=reason).inc(count)

    def record_dropped(self) -> None:
        self.entries_dropped_total.inc()

    def record_retry(self, attempt: int) -> None:
        self.delivery_retries_total.labels(attempt=str(attempt)).inc()

    def update_queue_metrics(self, size: int, capacity: int) -> None:
        """Update queue gauges."""
        self.queue_size.set(size)
        self.queue_capacity.set(capacity)
