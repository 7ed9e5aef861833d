"""
Resilient delivery pipeline.

Orchestrates the complete flow from submit to delivery:
1. Payload encryption (off the event loop)
2. Admission into the bounded queue (block or drop)
3. Worker pool draining the queue
4. Delivery with exponential-backoff retry
5. Statistics and metrics
"""

import asyncio
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol, Union

import structlog

from ..config import Settings, get_settings
from ..models.log_entry import LogLevel, LogMessage, LogRecord
from ..models.stats import PipelineStats
from .crypto import EncryptionResult, Encryptor
from .delivery import DeliveryPort, HttpDeliveryPort
from .exceptions import (
    ConfigurationError,
    DeliveryError,
    EncryptionError,
    ErrorKind,
    PipelineClosedError,
    QueueFullError,
    RetryExhaustedError,
)
from .metrics import MetricsCollector, PipelineCounters
from .queue import LogQueue, create_queue
from .retry import RetryStrategy

logger = structlog.get_logger(__name__)

FLUSH_POLL_SECONDS = 0.01


class PipelineState(str, Enum):
    """Lifecycle of a pipeline."""

    NEW = "new"  # built, workers not started; submissions buffer
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class PayloadEncryptor(Protocol):
    """What the pipeline needs from an encryptor."""

    def encrypt(self, message: str) -> EncryptionResult:
        ...

    def clear_cache(self) -> None:
        ...


class LogPipeline:
    """
    Encrypts, buffers and delivers log messages in the background.

    Workers start with ``start()``, ``async with``, or on the first
    submission. With ``autostart=False`` submissions buffer in the queue
    until ``start()`` is called.

    Usage:
        async with LogPipeline(settings) as pipeline:
            await pipeline.info("Service started")
            print(pipeline.stats())
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        delivery_port: Optional[DeliveryPort] = None,
        encryptor: Optional[PayloadEncryptor] = None,
        metrics: Optional[MetricsCollector] = None,
        retry_strategy: Optional[RetryStrategy] = None,
        autostart: bool = True,
    ) -> None:
        self.settings = settings or get_settings()
        server = self.settings.server
        pipeline = self.settings.pipeline

        if encryptor is None:
            if not server.secret.strip():
                raise ConfigurationError("Secret cannot be empty")
            encryptor = Encryptor(server.secret)

        self.metrics = metrics or MetricsCollector()
        self._encryptor = encryptor
        self._delivery = delivery_port or HttpDeliveryPort(server)
        self._queue: LogQueue[LogRecord] = create_queue(pipeline.queue_size, pipeline.failsafe_mode)
        self._retry = retry_strategy or RetryStrategy(
            self.settings.retry.to_policy(),
            on_retry=lambda attempt, _error: self.metrics.record_retry(attempt),
        )
        self._counters = PipelineCounters()

        self._autostart = autostart
        self._state = PipelineState.NEW
        self._sealed = False  # set once close() has taken the final drain
        self._workers: List["asyncio.Task[None]"] = []
        self._ticker: Optional["asyncio.Task[None]"] = None
        self._stop_event = asyncio.Event()
        self._stopped_event = asyncio.Event()

        self.metrics.update_queue_metrics(0, pipeline.queue_size)
        logger.info(
            "Log pipeline initialized",
            node=server.node,
            queue_size=pipeline.queue_size,
            worker_count=pipeline.worker_count,
            failsafe_mode=pipeline.failsafe_mode,
        )

    # Lifecycle

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is PipelineState.RUNNING

    @property
    def failsafe(self) -> bool:
        return self.settings.pipeline.failsafe_mode

    async def start(self) -> "LogPipeline":
        """Spawn the worker pool and, if configured, the flush ticker."""
        if self._state is not PipelineState.NEW:
            return self

        pipeline = self.settings.pipeline
        self._workers = [
            asyncio.create_task(self._worker_loop(worker_id), name=f"logflux-worker-{worker_id}")
            for worker_id in range(pipeline.worker_count)
        ]
        if pipeline.flush_interval_seconds > 0:
            self._ticker = asyncio.create_task(self._ticker_loop(), name="logflux-ticker")

        self._state = PipelineState.RUNNING
        logger.info("Log pipeline started", workers=len(self._workers))
        return self

    async def __aenter__(self) -> "LogPipeline":
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """
        Drain and stop the pipeline. Safe to call more than once.

        Entries still queued once the flush budget is spent are counted as
        failed, so after close the queue is empty and every accepted entry is
        reflected in total_sent + total_failed.
        """
        if self._state is PipelineState.STOPPED:
            return
        if self._state is PipelineState.DRAINING:
            await self._stopped_event.wait()
            return

        was_started = self._state is PipelineState.RUNNING
        self._state = PipelineState.DRAINING
        pipeline = self.settings.pipeline
        logger.info("Log pipeline shutting down", queue_size=self._queue.size())

        if was_started:
            drained = await self.flush(pipeline.shutdown_flush_timeout_seconds)
            if not drained:
                logger.warning(
                    "Flush timed out during shutdown",
                    remaining=self._queue.size(),
                    timeout=pipeline.shutdown_flush_timeout_seconds,
                )
            await self._stop_tasks(pipeline.shutdown_grace_period_seconds)

        self._sealed = True
        self._discard_queued()

        self._encryptor.clear_cache()
        try:
            await self._delivery.close()
        except Exception as e:
            logger.error("Error closing delivery port", error=str(e), error_type=type(e).__name__)

        self._state = PipelineState.STOPPED
        self._stopped_event.set()

        self.metrics.update_queue_metrics(0, self._queue.capacity)
        stats = self.stats()
        logger.info(
            "Log pipeline stopped",
            total_sent=stats.total_sent,
            total_failed=stats.total_failed,
            total_dropped=stats.total_dropped,
        )

    def _discard_queued(self) -> None:
        """Count everything still queued as failed; only valid once workers are gone."""
        leftovers = self._queue.drain()
        if leftovers:
            self._counters.record_failed(len(leftovers))
            self.metrics.record_failed("shutdown", len(leftovers))
            logger.warning("Discarded undelivered entries at shutdown", count=len(leftovers))

    async def _stop_tasks(self, grace_period: float) -> None:
        self._stop_event.set()

        if self._ticker is not None:
            self._ticker.cancel()
            await asyncio.gather(self._ticker, return_exceptions=True)
            self._ticker = None

        if not self._workers:
            return

        _, pending = await asyncio.wait(self._workers, timeout=grace_period)
        if pending:
            logger.warning("Cancelling workers after grace period", count=len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        self._workers = []

    # Submission

    async def submit(
        self,
        message: str,
        level: Union[LogLevel, int] = LogLevel.INFO,
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """
        Encrypt a message and queue it for delivery.

        Returns:
            True if queued. In failsafe mode every failure returns False;
            otherwise failures raise.

        Raises:
            PipelineClosedError: Pipeline is draining or stopped (strict mode).
            EncryptionError: The message could not be encrypted (strict mode).
            QueueFullError: No space within the offer timeout (strict mode).
        """
        if not self._accepting():
            return self._reject_closed()
        await self._ensure_started()

        try:
            result = await asyncio.to_thread(self._encryptor.encrypt, message)
            record = self._build_record(result, level, timestamp)
        except Exception as e:
            if not self.failsafe:
                raise
            self._counters.record_failed()
            self.metrics.record_failed("encryption")
            logger.warning("Dropping entry that could not be prepared", error=str(e), error_type=type(e).__name__)
            return False

        if not self._accepting():
            return self._reject_closed()

        return await self._enqueue(record)

    async def submit_batch(self, messages: Iterable[LogMessage]) -> int:
        """Submit several messages; returns how many were queued."""
        accepted = 0
        for item in messages:
            if await self.submit(item.message, item.level, item.timestamp):
                accepted += 1
        return accepted

    async def submit_records(self, records: Iterable[LogRecord]) -> int:
        """Queue already-encrypted records; returns how many were queued."""
        accepted = 0
        for record in records:
            if not self._accepting():
                self._reject_closed()
                break
            await self._ensure_started()
            if await self._enqueue(record):
                accepted += 1
        return accepted

    async def debug(self, message: str) -> bool:
        return await self.submit(message, LogLevel.DEBUG)

    async def info(self, message: str) -> bool:
        return await self.submit(message, LogLevel.INFO)

    async def notice(self, message: str) -> bool:
        return await self.submit(message, LogLevel.NOTICE)

    async def warn(self, message: str) -> bool:
        return await self.submit(message, LogLevel.WARN)

    async def warning(self, message: str) -> bool:
        return await self.submit(message, LogLevel.WARNING)

    async def error(self, message: str) -> bool:
        return await self.submit(message, LogLevel.ERROR)

    async def critical(self, message: str) -> bool:
        return await self.submit(message, LogLevel.CRITICAL)

    async def alert(self, message: str) -> bool:
        return await self.submit(message, LogLevel.ALERT)

    async def emergency(self, message: str) -> bool:
        return await self.submit(message, LogLevel.EMERGENCY)

    async def fatal(self, message: str) -> bool:
        return await self.submit(message, LogLevel.FATAL)

    def _accepting(self) -> bool:
        return self._state in (PipelineState.NEW, PipelineState.RUNNING)

    async def _ensure_started(self) -> None:
        if self._autostart and self._state is PipelineState.NEW:
            await self.start()

    def _reject_closed(self) -> bool:
        if self.failsafe:
            logger.debug("Entry rejected, pipeline not accepting", state=self._state.value)
            return False
        raise PipelineClosedError(state=self._state.value)

    def _build_record(
        self,
        result: EncryptionResult,
        level: Union[LogLevel, int],
        timestamp: Optional[datetime],
    ) -> LogRecord:
        return LogRecord(
            node=self.settings.server.node,
            payload=result.encrypted_payload,
            level=LogLevel.from_value(int(level)),
            timestamp=timestamp or datetime.now(timezone.utc),
            encryption_mode=result.encryption_mode,
            iv=result.iv,
            salt=result.salt,
        )

    async def _enqueue(self, record: LogRecord) -> bool:
        accepted = await self._queue.offer(record, timeout=self.settings.pipeline.offer_timeout_seconds)
        if accepted and self._sealed:
            # Producer was blocked on a full queue while close() drained it
            self._discard_queued()
            return self._reject_closed()
        if accepted:
            return True

        if self.failsafe:
            self.metrics.record_dropped()
            return False
        raise QueueFullError(capacity=self._queue.capacity)

    # Draining

    async def flush(self, timeout: float = 10.0) -> bool:
        """
        Wait until the queue is empty or ``timeout`` seconds pass.

        Entries already taken by workers may still be in flight.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self._queue.size() > 0:
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(FLUSH_POLL_SECONDS)
        return True

    def stats(self) -> PipelineStats:
        """Point-in-time statistics."""
        return self._counters.snapshot(self._queue)

    # Workers

    async def _worker_loop(self, worker_id: int) -> None:
        """Poll the queue and deliver entries until told to stop."""
        poll_interval = self.settings.pipeline.poll_interval_seconds
        logger.debug("Worker started", worker_id=worker_id)

        while not self._stop_event.is_set():
            record = await self._queue.poll(poll_interval)
            if record is None:
                continue
            await self._deliver(record, worker_id)

        logger.debug("Worker stopped", worker_id=worker_id)

    async def _deliver(self, record: LogRecord, worker_id: int) -> None:
        started = time.monotonic()
        try:
            await self._retry.execute(lambda: self._delivery.send(record))

        except asyncio.CancelledError:
            # Already dequeued: counted as failed, never requeued
            self._fail("cancelled")
            logger.warning("Delivery cancelled during shutdown", worker_id=worker_id)
            raise

        except RetryExhaustedError as e:
            self._fail("retry_exhausted")
            logger.error(
                "Delivery failed after retries",
                worker_id=worker_id,
                attempts=e.attempts,
                error=str(e.last_error),
            )

        except (DeliveryError, EncryptionError) as e:
            kind = e.kind.value if isinstance(e, DeliveryError) else ErrorKind.VALIDATION.value
            self._fail("rejected")
            logger.error(
                "Delivery rejected",
                worker_id=worker_id,
                kind=kind,
                error=str(e),
            )

        except Exception as e:
            self._fail("unexpected")
            logger.error(
                "Unexpected error delivering entry",
                worker_id=worker_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

        else:
            self._counters.record_sent()
            self.metrics.record_sent(time.monotonic() - started)

    def _fail(self, reason: str) -> None:
        self._counters.record_failed()
        self.metrics.record_failed(reason)

    async def _ticker_loop(self) -> None:
        """Periodically refresh queue gauges while workers drain."""
        interval = self.settings.pipeline.flush_interval_seconds
        while True:
            await asyncio.sleep(interval)
            size = self._queue.size()
            self.metrics.update_queue_metrics(size, self._queue.capacity)
            if size:
                logger.debug("Queue depth", queue_size=size, capacity=self._queue.capacity)

    # Endpoint probes

    async def health(self) -> str:
        """Ask the ingestion endpoint for its health status."""
        probe = getattr(self._delivery, "health", None)
        if probe is None:
            raise DeliveryError("Delivery port does not support health checks", kind=ErrorKind.CLIENT_ERROR)
        return await probe()

    async def version(self) -> Dict[str, Any]:
        """Ask the ingestion endpoint for its version information."""
        probe = getattr(self._delivery, "version", None)
        if probe is None:
            raise DeliveryError("Delivery port does not report versions", kind=ErrorKind.CLIENT_ERROR)
        return await probe()


async def create_pipeline(settings: Optional[Settings] = None, **kwargs: Any) -> LogPipeline:
    """Build and start a pipeline."""
    return await LogPipeline(settings, **kwargs).start()
