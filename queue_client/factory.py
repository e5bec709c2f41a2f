"""
Factory for queue writers
"""

from typing import Dict, Any

from .interfaces import QueueType, QueueWriter, QueueConfigError
from .strategies.redis_strategy import RedisQueueWriter


class QueueFactory:
    """Builds queue writers from plain config dicts"""

    @staticmethod
    def create_writer(queue_type: QueueType, config: Dict[str, Any]) -> QueueWriter:
        """
        Create a QueueWriter for the given queue type.

        Args:
            queue_type: Queue backend
            config: Connection settings

        Returns:
            QueueWriter instance

        Raises:
            QueueConfigError: If the configuration is invalid
        """
        if queue_type == QueueType.REDIS:
            return QueueFactory._create_redis_writer(config)
        raise QueueConfigError(f"Unsupported queue type: {queue_type}")

    @staticmethod
    def _create_redis_writer(config: Dict[str, Any]) -> RedisQueueWriter:
        QueueFactory._validate_config(config, ["url"], "Redis writer")

        return RedisQueueWriter(
            url=config["url"],
            dedup_ttl_seconds=config.get("dedup_ttl_seconds", 0),
            maxlen_approx=config.get("maxlen_approx", 1_000_000),
            max_connections=config.get("max_connections", 10),
            socket_timeout=config.get("socket_timeout", 5.0),
            socket_connect_timeout=config.get("socket_connect_timeout", 5.0)
        )

    @staticmethod
    def _validate_config(
        config: Dict[str, Any],
        required_fields: list,
        component_name: str
    ) -> None:
        """
        Validate a writer configuration.

        Raises:
            QueueConfigError: On missing fields or a malformed URL
        """
        missing_fields = [
            field for field in required_fields
            if field not in config or config[field] is None
        ]

        if missing_fields:
            raise QueueConfigError(
                f"{component_name} missing required fields: {missing_fields}"
            )

        url = config.get("url")
        if url and not url.startswith(("redis://", "rediss://", "unix://")):
            raise QueueConfigError(
                f"{component_name} invalid Redis URL format: {url}"
            )

        if config.get("dedup_ttl_seconds", 0) < 0:
            raise QueueConfigError(
                f"{component_name} dedup_ttl_seconds must be >= 0"
            )
