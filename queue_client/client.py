"""
Backend-agnostic queue client
"""

import logging
from typing import Dict

from .interfaces import (
    QueueWriter,
    QueueMessage,
    QueueResult,
    QueueConnectionError
)


logger = logging.getLogger(__name__)


class QueueClient:
    """
    Thin facade over one QueueWriter.

    Usable as ``async with QueueClient(writer) as client:``.
    """

    def __init__(self, writer: QueueWriter):
        self.writer = writer
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """
        Raises:
            QueueConnectionError: If the writer fails to connect
        """
        try:
            await self.writer.connect()
        except Exception as e:
            logger.error(f"Queue writer failed to connect: {e}")
            await self.close()
            raise QueueConnectionError(f"Connection failed: {e}") from e

        self._connected = True
        logger.info(
            "Queue client connected",
            extra={"component": "queue_client", "writer": type(self.writer).__name__}
        )

    async def write(self, queue_name: str, message: QueueMessage) -> QueueResult:
        if not self._connected:
            raise QueueConnectionError("Client not connected")
        return await self.writer.write(queue_name, message)

    async def health_check(self) -> Dict[str, bool]:
        """Report connected, writer_healthy and overall_healthy."""
        try:
            writer_healthy = bool(await self.writer.health_check())
        except Exception as e:
            logger.error(f"Writer health check raised: {e}")
            writer_healthy = False

        return {
            "connected": self._connected,
            "writer_healthy": writer_healthy,
            "overall_healthy": self._connected and writer_healthy
        }

    async def close(self) -> None:
        try:
            await self.writer.close()
        except Exception as e:
            logger.error(f"Error closing queue writer: {e}")
        finally:
            self._connected = False

    async def __aenter__(self) -> "QueueClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
