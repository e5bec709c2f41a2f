"""
Ports (interfaces) for serial-ingestor service.
High-level pipeline code depends on these abstractions, not on pyserial or Redis.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, List

from .dto import PipelineStats, PublishResult


class ChunkSource(ABC):
    """
    Interface for a raw byte source.
    The serial port is the production implementation.
    """

    @abstractmethod
    def chunks(self) -> AsyncIterator[bytes]:
        """
        Iterate over raw chunks as they arrive.

        Yields:
            Non-empty byte chunks in arrival order

        Raises:
            SourceError: On any terminal read failure
        """
        pass

    @abstractmethod
    def request_stop(self) -> None:
        """Ask the iterator to finish after the current read."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying device."""
        pass


class TelegramPublisher(ABC):
    """
    Interface for publishing telegrams to downstream systems.
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Connect to the downstream system.

        Raises:
            PublishError: If the connection cannot be established
        """
        pass

    @abstractmethod
    async def publish(self, telegram: bytes, sequence: str) -> PublishResult:
        """
        Publish one telegram.

        Args:
            telegram: Complete telegram bytes, start to end marker
            sequence: Sequence identifier, used for keys and headers

        Returns:
            PublishResult with success status and details

        Raises:
            PublishError: On connection-level failures
        """
        pass

    @abstractmethod
    async def check_health(self) -> bool:
        """
        Check if the publisher can accept telegrams.

        Returns:
            True if healthy, False otherwise
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""
        pass


class TelegramFramer(ABC):
    """
    Interface for cutting a byte stream into telegrams.
    """

    @abstractmethod
    def append(self, chunk: bytes) -> List[bytes]:
        """
        Feed a chunk and return every telegram that is now complete.

        Args:
            chunk: Raw bytes, any size

        Returns:
            Complete telegrams in the order their end markers occur
        """
        pass

    @abstractmethod
    def reset(self) -> int:
        """
        Drop the in-flight partial telegram.

        Returns:
            Number of bytes discarded
        """
        pass

    @property
    @abstractmethod
    def pending(self) -> bytes:
        """Bytes buffered but not yet part of a complete telegram."""
        pass

    @property
    @abstractmethod
    def discards(self) -> int:
        """Number of times the buffer was discarded for exceeding its cap."""
        pass


class SequenceExtractor(ABC):
    """
    Interface for pulling a tracking identifier out of a telegram.
    """

    @abstractmethod
    def extract(self, telegram: bytes) -> str:
        """
        Return the sequence identifier, or the sentinel when absent.
        Never raises.
        """
        pass


class PipelineService(ABC):
    """
    Interface for the main pipeline service.
    """

    @abstractmethod
    async def run(self) -> None:
        """
        Consume the source until it closes.

        Raises:
            SourceError: If the source fails
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Request a graceful stop; queued chunks are still processed."""
        pass

    @abstractmethod
    async def get_stats(self) -> PipelineStats:
        """
        Get current pipeline statistics.

        Returns:
            Current statistics
        """
        pass


# Custom exceptions
class SourceError(Exception):
    """Raised when the byte source fails terminally."""
    pass


class PublishError(Exception):
    """Raised when telegram publishing fails."""
    pass


class FramingConfigError(ValueError):
    """Raised when a marker or sequence pattern is unusable."""
    pass


class PipelineError(Exception):
    """Raised when the pipeline cannot be started."""
    pass
