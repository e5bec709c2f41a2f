"""
Strategies for different queue implementations
"""

from .redis_strategy import RedisQueueWriter

__all__ = [
    "RedisQueueWriter"
]
