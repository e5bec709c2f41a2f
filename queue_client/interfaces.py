"""
Interfaces for the queue client library.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class QueueType(Enum):
    """Supported queue backends"""
    REDIS = "redis"


@dataclass
class QueueMessage:
    """A single opaque payload destined for a queue"""
    key: str
    payload: bytes
    headers: Optional[Dict[str, str]] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if self.headers is None:
            self.headers = {}


@dataclass
class QueueResult:
    """Outcome of a write"""
    success: bool
    message_id: str
    is_duplicate: bool = False
    error: Optional[str] = None


class QueueWriter(ABC):
    """Abstract queue writer"""

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection"""
        pass

    @abstractmethod
    async def write(self, queue_name: str, message: QueueMessage) -> QueueResult:
        """
        Write one message to the queue.

        Args:
            queue_name: Target queue (stream) name
            message: Message to write

        Returns:
            Result of the write
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check the connection"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection"""
        pass


class QueueConnectionError(Exception):
    """Queue connection failure"""
    pass


class QueueWriteError(Exception):
    """Queue write failure"""
    pass


class QueueConfigError(Exception):
    """Invalid queue configuration"""
    pass
