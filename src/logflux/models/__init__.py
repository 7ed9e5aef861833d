"""
Pydantic data models package.

Contains the data structures passed through the delivery pipeline:
- Encrypted log records and their wire form
- Severity levels and encryption modes
- Statistics snapshots and server acknowledgements
"""

from .log_entry import EncryptionMode, LogLevel, LogMessage, LogRecord
from .stats import IngestResponse, PipelineStats

__all__ = [
    # Log entry models
    "LogRecord",
    "LogMessage",
    "LogLevel",
    "EncryptionMode",

    # Pipeline models
    "PipelineStats",
    "IngestResponse",
]
