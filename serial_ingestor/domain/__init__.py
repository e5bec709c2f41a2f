"""
Domain layer for serial-ingestor service.

Contains data models, interfaces and domain errors.
"""

from .dto import (
    CoordinatorState,
    PublishResult,
    PipelineStats,
)
from .ports import (
    ChunkSource,
    TelegramPublisher,
    TelegramFramer,
    SequenceExtractor,
    PipelineService,
    SourceError,
    PublishError,
    FramingConfigError,
    PipelineError,
)

__all__ = [
    # DTOs
    "CoordinatorState",
    "PublishResult",
    "PipelineStats",

    # Ports (Interfaces)
    "ChunkSource",
    "TelegramPublisher",
    "TelegramFramer",
    "SequenceExtractor",
    "PipelineService",

    # Errors
    "SourceError",
    "PublishError",
    "FramingConfigError",
    "PipelineError",
]
