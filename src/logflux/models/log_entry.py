"""
Log entry data models and validation.

- LogRecord: one encrypted, timestamped, leveled entry awaiting delivery
- Node identifier ≤ 255 chars; level ordinal 0-4; encryption mode 1-4
- Wire form uses epoch seconds (decimal) for the timestamp
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LogLevel(IntEnum):
    """Severity levels accepted by the ingestion API."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4

    # Syslog-style aliases
    NOTICE = 1
    WARNING = 2
    CRITICAL = 3
    ALERT = 4
    EMERGENCY = 4

    @classmethod
    def from_value(cls, value: int) -> "LogLevel":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Invalid log level value: {value}. Valid values are 0-4.") from None

    @classmethod
    def from_name(cls, name: str) -> "LogLevel":
        try:
            return cls.__members__[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Invalid log level name: {name}") from None


class EncryptionMode(IntEnum):
    """Encryption schemes known to the ingestion API."""

    AES256_GCM_PBKDF2_SHA256_600K = 1
    AES256_GCM_SCRYPT = 2
    AES256_GCM_ARGON2 = 3
    CHACHA20_POLY1305_ARGON2 = 4

    @property
    def label(self) -> str:
        return _MODE_LABELS[self]

    @classmethod
    def from_value(cls, value: int) -> "EncryptionMode":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(
                f"Invalid encryption mode value: {value}. Valid values are 1-4."
            ) from None

    @classmethod
    def from_name(cls, name: str) -> "EncryptionMode":
        for mode, label in _MODE_LABELS.items():
            if label.lower() == name.strip().lower():
                return mode
        raise ValueError(f"Invalid encryption mode name: {name}")


_MODE_LABELS = {
    EncryptionMode.AES256_GCM_PBKDF2_SHA256_600K: "AES256-GCM_PBKDF2-SHA256-600K",
    EncryptionMode.AES256_GCM_SCRYPT: "AES256-GCM_SCRYPT",
    EncryptionMode.AES256_GCM_ARGON2: "AES256-GCM_ARGON2",
    EncryptionMode.CHACHA20_POLY1305_ARGON2: "ChaCha20-Poly1305_ARGON2",
}


class LogRecord(BaseModel):
    """
    Encrypted log entry as queued and delivered.

    Immutable once built; only the ciphertext of the message is carried.
    """

    node: str = Field(
        min_length=1,
        max_length=255,
        description="Origin identifier of the submitting application"
    )
    payload: str = Field(
        min_length=1,
        description="Base64 AES-GCM ciphertext of the message"
    )
    level: LogLevel = Field(
        description="Severity ordinal (0=DEBUG .. 4=FATAL)"
    )
    timestamp: datetime = Field(
        description="When the event occurred (timezone-aware)"
    )
    encryption_mode: EncryptionMode = Field(
        default=EncryptionMode.AES256_GCM_PBKDF2_SHA256_600K,
        description="Scheme tag used to produce the payload"
    )
    iv: str = Field(description="Base64 initialization vector")
    salt: str = Field(description="Base64 key-derivation salt")

    @field_validator("timestamp")
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps are taken to be UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    model_config = ConfigDict(frozen=True)

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to the JSON object accepted by the ingestion endpoint."""
        return {
            "node": self.node,
            "payload": self.payload,
            "loglevel": int(self.level),
            "timestamp": self.timestamp.timestamp(),
            "encryption_mode": int(self.encryption_mode),
            "iv": self.iv,
            "salt": self.salt,
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "LogRecord":
        """Parse the wire form produced by ``to_wire``."""
        return cls(
            node=data["node"],
            payload=data["payload"],
            level=LogLevel.from_value(int(data["loglevel"])),
            timestamp=datetime.fromtimestamp(float(data["timestamp"]), tz=timezone.utc),
            encryption_mode=EncryptionMode.from_value(int(data.get("encryption_mode") or 1)),
            iv=data["iv"],
            salt=data["salt"],
        )


@dataclass(frozen=True)
class LogMessage:
    """Plaintext message waiting to be encrypted, used for batch submission."""

    message: str
    level: LogLevel = LogLevel.INFO
    timestamp: Optional[datetime] = None
