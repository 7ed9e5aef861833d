"""
Custom exceptions for the LogFlux SDK.

Provides structured error handling with stable error codes so callers and
the retry strategy can tell transient delivery failures from permanent ones
without parsing error messages.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Classification of a delivery failure."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    CLIENT_ERROR = "client_error"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE_KINDS

    @classmethod
    def from_status(cls, status_code: int) -> "ErrorKind":
        """Map an HTTP status code to an error kind."""
        if status_code == 429:
            return cls.RATE_LIMITED
        if 500 <= status_code < 600:
            return cls.SERVER_ERROR
        if status_code in (401, 403):
            return cls.AUTHENTICATION
        if status_code in (400, 422):
            return cls.VALIDATION
        if 400 <= status_code < 500:
            return cls.CLIENT_ERROR
        return cls.UNKNOWN


_RETRYABLE_KINDS = frozenset(
    {ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.SERVER_ERROR, ErrorKind.RATE_LIMITED}
)


class LogFluxException(Exception):
    """Base exception for the LogFlux SDK."""

    def __init__(
        self,
        message: str,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(LogFluxException):
    """Raised when pipeline configuration is invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            error_code="configuration_error",
            details=details,
        )


class EncryptionError(LogFluxException):
    """Raised when encryption, decryption or key derivation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            error_code="encryption_error",
            details=details,
        )


class QueueFullError(LogFluxException):
    """Raised when an entry cannot be queued and failsafe mode is off."""

    def __init__(
        self,
        message: str = "Log queue is full",
        capacity: Optional[int] = None,
    ) -> None:
        details = {}
        if capacity is not None:
            details["capacity"] = capacity

        super().__init__(
            message=message,
            error_code="queue_full",
            details=details,
        )


class PipelineClosedError(LogFluxException):
    """Raised when submitting to a pipeline that is not running."""

    def __init__(self, message: str = "Pipeline is not accepting entries", state: str = "unknown") -> None:
        super().__init__(
            message=message,
            error_code="pipeline_closed",
            details={"state": state},
        )


class DeliveryError(LogFluxException):
    """Raised when the delivery port fails to ship an entry."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = dict(details or {})
        details["kind"] = kind.value
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(
            message=message,
            error_code="delivery_error",
            details=details,
        )
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    @classmethod
    def from_status(cls, status_code: int, body: str = "") -> "DeliveryError":
        """Build an error for a non-success HTTP response."""
        message = f"HTTP {status_code}: {body}" if body else f"HTTP {status_code}"
        return cls(
            message,
            kind=ErrorKind.from_status(status_code),
            status_code=status_code,
        )


class RetryExhaustedError(LogFluxException):
    """Raised when a retryable operation still fails after every attempt."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            message=f"Operation failed after {attempts} attempts: {last_error}",
            error_code="retry_exhausted",
            details={"attempts": attempts, "last_error": str(last_error)},
        )
        self.attempts = attempts
        self.last_error = last_error
