"""
Queue client library.

Writes opaque payloads to a message queue through a single interface.
Redis Streams is the supported backend.
"""

from .interfaces import QueueMessage, QueueResult, QueueType
from .factory import QueueFactory
from .client import QueueClient


async def create_queue_client(queue_type: str, config: dict) -> 'QueueClient':
    """
    Create and connect a queue client.

    Usage:
        client = await create_queue_client("redis", {"url": "redis://localhost"})
        result = await client.write("events", QueueMessage("key", b"payload"))
    """
    queue_enum = QueueType(queue_type)
    writer = QueueFactory.create_writer(queue_enum, config)

    client = QueueClient(writer)
    await client.connect()
    return client

__version__ = "1.0.0"
__all__ = [
    "QueueMessage",
    "QueueResult",
    "QueueType",
    "QueueFactory",
    "QueueClient",
    "create_queue_client"
]
