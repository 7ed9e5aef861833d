"""
LogFlux - encrypted, resilient log shipping

Applications submit log messages; the SDK encrypts each one, buffers it in
a bounded queue, and delivers it to the LogFlux ingestion API from a pool of
background workers with exponential-backoff retry.
"""

__version__ = "0.1.0"

from .config import Settings, get_settings, reload_settings
from .core.crypto import EncryptionResult, Encryptor
from .core.delivery import DeliveryPort, HttpDeliveryPort
from .core.exceptions import (
    ConfigurationError,
    DeliveryError,
    EncryptionError,
    ErrorKind,
    LogFluxException,
    PipelineClosedError,
    QueueFullError,
    RetryExhaustedError,
)
from .core.pipeline import LogPipeline, PipelineState, create_pipeline
from .core.queue import BlockingLogQueue, DroppingLogQueue, LogQueue, create_queue
from .core.retry import RetryPolicy, RetryStrategy
from .log_config import configure_logging
from .models import EncryptionMode, IngestResponse, LogLevel, LogMessage, LogRecord, PipelineStats

__all__ = [
    # Pipeline
    "LogPipeline",
    "PipelineState",
    "create_pipeline",

    # Components
    "Encryptor",
    "EncryptionResult",
    "DeliveryPort",
    "HttpDeliveryPort",
    "LogQueue",
    "BlockingLogQueue",
    "DroppingLogQueue",
    "create_queue",
    "RetryPolicy",
    "RetryStrategy",

    # Models
    "LogRecord",
    "LogMessage",
    "LogLevel",
    "EncryptionMode",
    "PipelineStats",
    "IngestResponse",

    # Errors
    "LogFluxException",
    "ConfigurationError",
    "EncryptionError",
    "QueueFullError",
    "PipelineClosedError",
    "DeliveryError",
    "ErrorKind",
    "RetryExhaustedError",

    # Configuration
    "Settings",
    "get_settings",
    "reload_settings",
    "configure_logging",
]
