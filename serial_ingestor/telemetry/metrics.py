"""
Prometheus counters for the serial pipeline.

Each PipelineMetrics owns its registry so several pipelines (or tests)
never collide on metric names.
"""

import logging
from typing import Optional

from prometheus_client import (
    Counter,
    CollectorRegistry,
    generate_latest,
    start_http_server,
)

logger = logging.getLogger(__name__)

NAMESPACE = "serial"


class PipelineMetrics:
    """Monotonic pipeline counters; incremented only by the coordinator."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.bytes_total = Counter(
            'serial_read_bytes_total',
            'The total number of bytes read from the serial port',
            namespace=NAMESPACE,
            registry=self.registry
        )

        self.telegrams_total = Counter(
            'telegram_total',
            'The total number of telegrams received',
            namespace=NAMESPACE,
            registry=self.registry
        )

        self.publish_failures_total = Counter(
            'telegram_publish_failures_total',
            'Telegrams dropped because publishing failed',
            namespace=NAMESPACE,
            registry=self.registry
        )

        self.buffer_discards_total = Counter(
            'buffer_discards_total',
            'Frame buffer discards caused by exceeding the size cap',
            namespace=NAMESPACE,
            registry=self.registry
        )

    def observe_bytes(self, count: int) -> None:
        if count > 0:
            self.bytes_total.inc(count)

    def observe_telegrams(self, count: int) -> None:
        if count > 0:
            self.telegrams_total.inc(count)

    def observe_publish_failure(self) -> None:
        self.publish_failures_total.inc()

    def observe_buffer_discards(self, count: int) -> None:
        if count > 0:
            self.buffer_discards_total.inc(count)

    def value(self, name: str) -> float:
        """Current sample value by full metric name (e.g. serial_telegram_total)."""
        sample = self.registry.get_sample_value(name)
        return sample or 0.0

    def render(self) -> bytes:
        """Exposition-format snapshot."""
        return generate_latest(self.registry)

    def start_exporter(self, host: str, port: int) -> None:
        """Serve /metrics from a background thread."""
        logger.info(
            f"Starting metrics server on {host}:{port}",
            extra={"component": "metrics", "host": host, "port": port}
        )
        start_http_server(port, addr=host, registry=self.registry)
