"""
Data Transfer Objects for serial-ingestor service.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict


class CoordinatorState(str, Enum):
    """Lifecycle states of the pipeline coordinator loop."""

    WAITING_FOR_CHUNK = "waiting_for_chunk"
    PROCESSING_CHUNK = "processing_chunk"
    PUBLISHING = "publishing"
    STOPPED = "stopped"


class PublishResult(BaseModel):
    """Result of publishing a telegram."""
    model_config = ConfigDict(extra='forbid')

    success: bool = Field(..., description="Whether publishing succeeded")
    stream_id: Optional[str] = Field(None, description="Stream entry ID if successful")
    is_duplicate: bool = Field(default=False, description="Whether the telegram was a duplicate")
    error: Optional[str] = Field(None, description="Error message if failed")


class PipelineStats(BaseModel):
    """Running totals for the serial pipeline."""
    model_config = ConfigDict(extra='forbid')

    chunks_received: int = Field(default=0, description="Chunks taken off the handoff queue")
    bytes_observed: int = Field(default=0, description="Total bytes read from the source")
    telegrams_extracted: int = Field(default=0, description="Telegrams cut out of the stream")
    telegrams_published: int = Field(default=0, description="Telegrams accepted by the sink")
    publish_failures: int = Field(default=0, description="Telegrams dropped on publish failure")
    duplicates_detected: int = Field(default=0, description="Telegrams the sink reported as duplicates")
    buffer_discards: int = Field(default=0, description="Frame buffer overflow discards")
    last_activity: Optional[datetime] = Field(None, description="Time of the last processed chunk")

    def record_chunk(self, size: int) -> None:
        """Count one chunk of the given size."""
        self.chunks_received += 1
        self.bytes_observed += size
        self.last_activity = datetime.now(timezone.utc)

    def increment_published(self) -> None:
        self.telegrams_published += 1

    def increment_failed(self) -> None:
        self.publish_failures += 1

    def increment_duplicate(self) -> None:
        self.duplicates_detected += 1
