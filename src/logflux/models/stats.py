"""
Pipeline statistics and server response models.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class PipelineStats(BaseModel):
    """
    Point-in-time snapshot of pipeline health.
    """

    total_sent: int = Field(ge=0, description="Entries delivered successfully")
    total_failed: int = Field(ge=0, description="Entries given up on")
    total_dropped: int = Field(ge=0, description="Entries discarded by a full failsafe queue")
    queue_size: int = Field(ge=0, description="Entries currently queued")
    queue_capacity: int = Field(gt=0, description="Configured queue capacity")

    model_config = ConfigDict(frozen=True)

    @property
    def is_queue_full(self) -> bool:
        return self.queue_size >= self.queue_capacity

    @property
    def queue_utilization(self) -> float:
        return self.queue_size / self.queue_capacity if self.queue_capacity > 0 else 0.0


class IngestResponse(BaseModel):
    """
    Acknowledgement returned by the ingestion endpoint.
    """

    status: str = Field(default="accepted", description="Server-side status")
    id: Optional[int] = Field(default=None, description="Server-assigned entry id")
    timestamp: Optional[datetime] = Field(default=None, description="Server receive time")
    message: Optional[str] = Field(default=None, description="Human-readable detail")
    success: Optional[bool] = Field(default=None, description="Explicit success flag")

    @property
    def accepted(self) -> bool:
        return self.success is True or self.status == "accepted"

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "IngestResponse":
        """Parse a response body, reading numeric timestamps as epoch seconds."""
        data = dict(data)
        ts = data.get("timestamp")
        if isinstance(ts, (int, float)):
            data["timestamp"] = datetime.fromtimestamp(ts, tz=timezone.utc)
        return cls.model_validate(data)
