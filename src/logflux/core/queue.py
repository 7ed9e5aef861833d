"""
Bounded in-memory queues for pending log records.

Two admission policies share one interface:
- BlockingLogQueue: producers wait for space (optionally with a timeout)
- DroppingLogQueue: producers never wait; overflow is discarded and counted

Both are FIFO and safe for many producer and consumer tasks on one event loop.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Generic, List, Optional, TypeVar

import structlog

from .exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class LogQueue(ABC, Generic[T]):
    """Fixed-capacity FIFO buffer."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ConfigurationError("Queue capacity must be positive", details={"capacity": capacity})

        self._capacity = capacity
        self._queue: "asyncio.Queue[T]" = asyncio.Queue(maxsize=capacity)
        self._dropped = 0

    @abstractmethod
    async def offer(self, item: T, timeout: Optional[float] = None) -> bool:
        """Try to enqueue; returns whether the item was accepted."""

    async def poll(self, timeout: float) -> Optional[T]:
        """Remove the oldest item, waiting up to ``timeout`` seconds."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            pass

        if timeout <= 0:
            return None

        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def poll_nowait(self) -> Optional[T]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def drain(self) -> List[T]:
        """Remove and return everything currently queued."""
        items = []
        while True:
            item = self.poll_nowait()
            if item is None:
                return items
            items.append(item)

    def size(self) -> int:
        return self._queue.qsize()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def remaining_capacity(self) -> int:
        return self._capacity - self._queue.qsize()

    def is_empty(self) -> bool:
        return self._queue.empty()

    def is_full(self) -> bool:
        return self._queue.full()


class BlockingLogQueue(LogQueue[T]):
    """Queue whose producers wait for free space."""

    async def offer(self, item: T, timeout: Optional[float] = None) -> bool:
        if timeout is None:
            await self._queue.put(item)
            return True

        try:
            self._queue.put_nowait(item)
            return True
        except asyncio.QueueFull:
            if timeout <= 0:
                return False

        try:
            await asyncio.wait_for(self._queue.put(item), timeout)
            return True
        except asyncio.TimeoutError:
            logger.debug("Queue offer timed out", capacity=self._capacity, timeout=timeout)
            return False


class DroppingLogQueue(LogQueue[T]):
    """Queue that discards new items when full (failsafe admission)."""

    async def offer(self, item: T, timeout: Optional[float] = None) -> bool:
        try:
            self._queue.put_nowait(item)
            return True
        except asyncio.QueueFull:
            self._dropped += 1
            if self._dropped == 1 or self._dropped % 1000 == 0:
                logger.warning(
                    "Queue full, dropping entries",
                    capacity=self._capacity,
                    total_dropped=self._dropped,
                )
            return False


def create_queue(capacity: int, failsafe: bool) -> LogQueue:
    """Build the queue matching the admission policy."""
    if failsafe:
        return DroppingLogQueue(capacity)
    return BlockingLogQueue(capacity)
