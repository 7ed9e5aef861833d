"""
Pytest configuration and shared fixtures.

Contains fakes for the pipeline collaborators so most tests never pay for
real key derivation or touch the network.
"""

import asyncio
import base64
from typing import Any, Callable, Dict, List, Optional

import pytest
from prometheus_client import CollectorRegistry

from logflux.config import PipelineSettings, RetrySettings, ServerSettings, Settings
from logflux.core.crypto import EncryptionResult
from logflux.core.exceptions import EncryptionError
from logflux.core.metrics import MetricsCollector
from logflux.models.log_entry import EncryptionMode, LogRecord
from logflux.models.stats import IngestResponse


class FakeEncryptor:
    """Encodes instead of encrypting; records cache clears."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.encrypted: List[str] = []
        self.cache_cleared = 0

    def encrypt(self, message: str) -> EncryptionResult:
        if self.fail:
            raise EncryptionError("Failed to encrypt message")
        self.encrypted.append(message)
        return EncryptionResult(
            encrypted_payload=base64.b64encode(message.encode("utf-8")).decode("ascii"),
            iv=base64.b64encode(b"\x00" * 12).decode("ascii"),
            salt=base64.b64encode(b"\x00" * 32).decode("ascii"),
            encryption_mode=EncryptionMode.AES256_GCM_PBKDF2_SHA256_600K,
        )

    def clear_cache(self) -> None:
        self.cache_cleared += 1


class FakeDeliveryPort:
    """
    Scriptable delivery port.

    ``failures`` are raised in order, one per attempt, before sends start
    succeeding. ``always_raise`` fails every attempt. When ``gate`` is set,
    each send waits on it first.
    """

    def __init__(
        self,
        failures: Optional[List[BaseException]] = None,
        always_raise: Optional[BaseException] = None,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.failures = list(failures or [])
        self.always_raise = always_raise
        self.gate = gate
        self.attempts = 0
        self.sent: List[LogRecord] = []
        self.closed = False

    async def send(self, record: LogRecord) -> IngestResponse:
        self.attempts += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.always_raise is not None:
            raise self.always_raise
        if self.failures:
            raise self.failures.pop(0)
        self.sent.append(record)
        return IngestResponse(id=len(self.sent))

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def build_settings() -> Callable[..., Settings]:
    """Factory for settings tuned for fast tests."""

    def _build(
        pipeline: Optional[Dict[str, Any]] = None,
        retry: Optional[Dict[str, Any]] = None,
    ) -> Settings:
        pipeline_values: Dict[str, Any] = {
            "queue_size": 10,
            "worker_count": 2,
            "failsafe_mode": True,
            "flush_interval_seconds": 0,
            "poll_interval_seconds": 0.02,
            "shutdown_flush_timeout_seconds": 1.0,
            "shutdown_grace_period_seconds": 0.5,
        }
        pipeline_values.update(pipeline or {})

        retry_values: Dict[str, Any] = {
            "max_attempts": 3,
            "initial_delay_seconds": 0.001,
            "max_delay_seconds": 0.01,
            "jitter_enabled": False,
        }
        retry_values.update(retry or {})

        return Settings(
            server=ServerSettings(
                server_url="http://127.0.0.1:9",
                node="test-node",
                api_key="lf_test123456",
                secret="test-secret",
            ),
            pipeline=PipelineSettings(**pipeline_values),
            retry=RetrySettings(**retry_values),
        )

    return _build


@pytest.fixture
def settings(build_settings: Callable[..., Settings]) -> Settings:
    """Default fast test settings."""
    return build_settings()


@pytest.fixture
def fake_encryptor() -> FakeEncryptor:
    return FakeEncryptor()


@pytest.fixture
def fake_port() -> FakeDeliveryPort:
    return FakeDeliveryPort()


@pytest.fixture
def port_factory() -> Callable[..., FakeDeliveryPort]:
    """Build a delivery port with scripted failures."""
    return FakeDeliveryPort


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics on an isolated registry."""
    return MetricsCollector(CollectorRegistry())


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Poll a condition until it holds or a timeout passes."""

    async def _wait(condition: Callable[[], bool], timeout: float = 2.0) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(0.01)
        return True

    return _wait
