"""
Redis Streams backend for the queue client.
"""

import json
import logging
from typing import Dict, Optional, Union

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..interfaces import (
    QueueWriter,
    QueueMessage,
    QueueResult,
    QueueConnectionError,
    QueueWriteError,
)


logger = logging.getLogger(__name__)

DUPLICATE_ID = "duplicate"


class RedisQueueWriter(QueueWriter):
    """
    Appends each message to a stream with XADD.

    When dedup_ttl_seconds is positive a marker key ``<stream>:dedup:<key>``
    is claimed with SET NX first; a message whose marker already exists is
    reported as a duplicate and not appended.
    """

    def __init__(
        self,
        url: str,
        dedup_ttl_seconds: int = 0,
        maxlen_approx: int = 1_000_000,
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0
    ):
        self.url = url
        self.dedup_ttl_seconds = dedup_ttl_seconds
        self.maxlen_approx = maxlen_approx
        self.pool_options = dict(
            max_connections=max_connections,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
            retry_on_timeout=True,
            health_check_interval=30
        )

        self.client: Optional[redis.Redis] = None
        self._connected = False

    async def connect(self) -> None:
        try:
            self.client = redis.Redis(
                connection_pool=redis.ConnectionPool.from_url(self.url, **self.pool_options)
            )
            await self.client.ping()
        except Exception as e:
            logger.error(f"Cannot reach Redis at {self.url}: {e}")
            raise QueueConnectionError(f"Redis connection failed: {e}") from e

        self._connected = True
        logger.info(
            "Redis stream writer connected",
            extra={"component": "redis_queue_writer", "url": self.url}
        )

    async def write(self, queue_name: str, message: QueueMessage) -> QueueResult:
        if not (self._connected and self.client):
            raise QueueConnectionError("Not connected to Redis")

        context = {
            "component": "redis_queue_writer",
            "queue_name": queue_name,
            "message_key": message.key
        }

        try:
            if self.dedup_ttl_seconds > 0 and not await self._claim(queue_name, message.key):
                logger.debug("Skipping already written message", extra=context)
                return QueueResult(success=True, message_id=DUPLICATE_ID, is_duplicate=True)

            entry_id = await self.client.xadd(
                queue_name,
                self._to_fields(message),
                maxlen=self.maxlen_approx,
                approximate=True
            )
        except RedisError as e:
            logger.error(f"XADD to {queue_name} failed: {e}", extra=context)
            raise QueueWriteError(f"Redis write failed: {e}") from e

        if isinstance(entry_id, bytes):
            entry_id = entry_id.decode("ascii")

        logger.debug(f"Appended stream entry {entry_id}", extra=context)
        return QueueResult(success=True, message_id=entry_id)

    async def _claim(self, queue_name: str, key: str) -> bool:
        """True if this key has not been written within the dedup window."""
        claimed = await self.client.set(
            f"{queue_name}:dedup:{key}",
            1,
            nx=True,
            ex=self.dedup_ttl_seconds
        )
        return bool(claimed)

    @staticmethod
    def _to_fields(message: QueueMessage) -> Dict[str, Union[str, bytes]]:
        # payload is stored as-is, stream values are binary safe
        return {
            "key": message.key,
            "timestamp": message.timestamp.isoformat(),
            "payload": message.payload,
            "headers_json": json.dumps(message.headers or {}, default=str)
        }

    async def health_check(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        if self.client is None:
            return
        try:
            await self.client.aclose()
            logger.info("Redis stream writer closed")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")
        finally:
            self.client = None
            self._connected = False
