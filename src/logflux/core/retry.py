"""
Exponential backoff retry with jitter.

Features:
- Delay = min(initial * factor^attempt, max_delay), ±5% jitter
- Structured retry classification via ErrorKind, message matching as fallback
- Async execution wrapper with an injectable sleep
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from .exceptions import (
    ConfigurationError,
    DeliveryError,
    EncryptionError,
    ErrorKind,
    RetryExhaustedError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

JITTER_FRACTION = 0.05

RETRYABLE_MESSAGE_MARKERS = (
    "connection refused",
    "connection reset",
    "connection timed out",
    "timeout",
    "network is unreachable",
    "no route to host",
    "name or service not known",
    "temporarily unavailable",
    "http 5",  # 5xx
    "http 429",
)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters; delays are in seconds."""
    max_attempts: int = 5
    initial_delay: float = 0.1
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter_enabled: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ConfigurationError("Max attempts cannot be negative")
        if self.initial_delay < 0:
            raise ConfigurationError("Initial delay cannot be negative")
        if self.max_delay < 0:
            raise ConfigurationError("Max delay cannot be negative")
        if self.backoff_factor < 1.0:
            raise ConfigurationError("Backoff factor must be >= 1.0")

    @classmethod
    def default(cls) -> "RetryPolicy":
        return cls()


class RetryStrategy:
    """
    Retries a fallible async operation with exponential backoff.

    Total attempts are ``max_attempts + 1``: the first try plus one retry per
    allowed attempt.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        on_retry: Optional[Callable[[int, BaseException], None]] = None,
    ) -> None:
        self.policy = policy or RetryPolicy.default()
        self._sleep = sleep
        self._random = rng or random.Random()
        self._on_retry = on_retry

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        policy = self.policy
        if attempt < 0:
            return 0.0
        if attempt >= policy.max_attempts:
            return policy.max_delay

        try:
            delay = policy.initial_delay * (policy.backoff_factor ** attempt)
        except OverflowError:
            delay = policy.max_delay
        delay = min(delay, policy.max_delay)

        if policy.jitter_enabled:
            delay += self._random.uniform(-JITTER_FRACTION, JITTER_FRACTION) * delay

        return max(0.0, delay)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.policy.max_attempts

    @staticmethod
    def is_retryable(error: Optional[BaseException]) -> bool:
        """Whether a failure is transient and worth another attempt."""
        if error is None:
            return False
        if isinstance(error, EncryptionError):
            return False
        if isinstance(error, DeliveryError) and error.kind is not ErrorKind.UNKNOWN:
            return error.retryable

        message = str(error).lower()
        if not message:
            return False
        return any(marker in message for marker in RETRYABLE_MESSAGE_MARKERS)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` until it succeeds or retrying stops.

        Raises:
            The original exception when it is not retryable.
            RetryExhaustedError when every attempt failed with a retryable error.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if not self.is_retryable(e):
                    raise

                if not self.should_retry(attempt):
                    raise RetryExhaustedError(attempt + 1, e) from e

                delay = self.calculate_delay(attempt)
                logger.debug(
                    "Retrying after transient failure",
                    attempt=attempt + 1,
                    max_attempts=self.policy.max_attempts,
                    delay_seconds=round(delay, 3),
                    error=str(e),
                )
                if self._on_retry is not None:
                    self._on_retry(attempt + 1, e)
                if delay > 0:
                    await self._sleep(delay)
                attempt += 1
