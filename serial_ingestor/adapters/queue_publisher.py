"""
Telegram publisher using the shared queue library.
"""

import asyncio
import hashlib
import logging
from typing import Optional

from queue_client import create_queue_client, QueueMessage, QueueClient
from queue_client.interfaces import QueueConnectionError, QueueWriteError, QueueConfigError

from ..domain.ports import TelegramPublisher, PublishError
from ..domain.dto import PublishResult


logger = logging.getLogger(__name__)


class QueuePublisher(TelegramPublisher):
    """
    Publisher writing each telegram as one queue message.
    Writes are serialized so concurrent callers cannot interleave.
    """

    def __init__(
        self,
        queue_type: str,
        queue_config: dict,
        queue_name: str = "serial.telegrams",
        service_name: str = "serial-ingestor"
    ):
        """
        Initialize publisher.

        Args:
            queue_type: Queue type ("redis")
            queue_config: Queue connection settings
            queue_name: Stream receiving telegrams
            service_name: Value of the "service" header
        """
        self.queue_type = queue_type
        self.queue_config = queue_config
        self.queue_name = queue_name
        self.service_name = service_name

        self.client: Optional[QueueClient] = None
        self._connected = False
        self._write_lock = asyncio.Lock()

    async def connect(self) -> None:
        """
        Raises:
            PublishError: If the queue is unreachable or misconfigured
        """
        try:
            self.client = await create_queue_client(self.queue_type, self.queue_config)
        except (QueueConnectionError, QueueConfigError, ValueError) as e:
            logger.error(f"Telegram sink unavailable: {e}")
            raise PublishError(f"Queue connection failed: {e}") from e

        self._connected = True
        logger.info(
            f"Publishing telegrams to {self.queue_type} stream {self.queue_name}",
            extra={
                "component": "queue_publisher",
                "queue_type": self.queue_type,
                "queue_name": self.queue_name
            }
        )

    async def publish(self, telegram: bytes, sequence: str) -> PublishResult:
        if not (self._connected and self.client):
            raise PublishError("Publisher not connected")

        context = {
            "component": "queue_publisher",
            "sequence": sequence,
            "queue_name": self.queue_name
        }

        try:
            async with self._write_lock:
                result = await self.client.write(
                    self.queue_name, self._build_message(telegram, sequence)
                )
        except (QueueConnectionError, QueueWriteError) as e:
            logger.error(f"Queue rejected telegram {sequence}: {e}", extra=context)
            raise PublishError(f"Queue error: {e}") from e

        if not result.success:
            reason = result.error or "Unknown queue error"
            logger.error(f"Telegram {sequence} not written: {reason}", extra=context)
            return PublishResult(success=False, error=reason)

        logger.debug(
            f"Telegram {sequence} written as {result.message_id}",
            extra={**context, "is_duplicate": result.is_duplicate}
        )
        return PublishResult(
            success=True,
            stream_id=result.message_id,
            is_duplicate=result.is_duplicate
        )

    def _build_message(self, telegram: bytes, sequence: str) -> QueueMessage:
        # The sequence alone is not unique (sentinel, retransmissions)
        digest = hashlib.sha1(telegram).hexdigest()[:16]

        return QueueMessage(
            key=f"{sequence}:{digest}",
            payload=bytes(telegram),
            headers={
                "service": self.service_name,
                "sequence": sequence,
                "size": str(len(telegram))
            }
        )

    async def check_health(self) -> bool:
        if not (self._connected and self.client):
            return False

        try:
            health = await self.client.health_check()
        except Exception as e:
            logger.warning(
                f"Sink health check raised: {e}",
                extra={"component": "queue_publisher", "error": str(e)}
            )
            return False

        return bool(health.get("overall_healthy", False))

    async def close(self) -> None:
        client, self.client = self.client, None
        self._connected = False

        if client is None:
            return

        try:
            await client.close()
            logger.info("Telegram sink closed", extra={"component": "queue_publisher"})
        except Exception as e:
            logger.error(f"Error closing queue publisher: {e}")


def create_queue_publisher(
    queue_type: str,
    queue_config: dict,
    queue_name: str,
    service_name: str = "serial-ingestor"
) -> QueuePublisher:
    """
    Create queue publisher with configuration.

    Returns:
        Configured publisher (not yet connected)
    """
    return QueuePublisher(
        queue_type=queue_type,
        queue_config=queue_config,
        queue_name=queue_name,
        service_name=service_name
    )
