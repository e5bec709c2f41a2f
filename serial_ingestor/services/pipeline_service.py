"""
Main pipeline service for serial-ingestor.
Moves raw chunks from the source through the framer to the publisher.
"""

import asyncio
import logging
import time
from typing import List, Optional

from ..domain.ports import (
    PipelineService,
    ChunkSource,
    TelegramFramer,
    SequenceExtractor,
    TelegramPublisher,
    SourceError,
    PublishError,
    PipelineError,
)
from ..domain.dto import CoordinatorState, PipelineStats, PublishResult
from ..telemetry.logger import MetricsLogger
from ..telemetry.metrics import PipelineMetrics


logger = logging.getLogger(__name__)

_END_OF_STREAM = object()


class SerialPipelineService(PipelineService):
    """
    Single consumer loop driving the telegram pipeline.

    Pipeline: Source → handoff queue → Framer → Sequence Extractor → Publisher

    The source runs as a producer task feeding a bounded queue, so a slow
    publisher back-pressures reads. Telegrams are published one at a time in
    the order their end markers arrive.
    """

    def __init__(
        self,
        source: ChunkSource,
        framer: TelegramFramer,
        sequence_extractor: SequenceExtractor,
        publisher: TelegramPublisher,
        metrics: Optional[PipelineMetrics] = None,
        handoff_queue_capacity: int = 1024,
        stats_log_interval: int = 100
    ):
        if handoff_queue_capacity < 1:
            raise ValueError(
                f"handoff_queue_capacity must be positive, got {handoff_queue_capacity}"
            )

        self.source = source
        self.framer = framer
        self.sequence_extractor = sequence_extractor
        self.publisher = publisher
        self.metrics = metrics or PipelineMetrics()
        self.handoff_queue_capacity = handoff_queue_capacity
        self.stats_log_interval = stats_log_interval

        # Service state
        self._is_running = False
        self._state = CoordinatorState.WAITING_FOR_CHUNK
        self._stats = PipelineStats()
        self._queue: Optional[asyncio.Queue] = None

        self.metrics_logger = MetricsLogger("pipeline_service")

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def run(self) -> None:
        if self._is_running:
            raise PipelineError("Pipeline already running")

        if self._state == CoordinatorState.STOPPED:
            raise PipelineError("Pipeline already stopped")

        self._is_running = True
        self._queue = asyncio.Queue(maxsize=self.handoff_queue_capacity)

        logger.info(
            "Pipeline started",
            extra={
                "component": "pipeline_service",
                "handoff_queue_capacity": self.handoff_queue_capacity
            }
        )

        producer = asyncio.create_task(self._produce(), name="chunk-producer")

        try:
            await self._consume()
        except BaseException:
            producer.cancel()
            try:
                await producer
            except (asyncio.CancelledError, SourceError):
                pass
            raise
        finally:
            self._finish()

        # Surfaces a source failure once everything queued has been handled
        await producer

    def stop(self) -> None:
        logger.info("Stopping pipeline", extra={"component": "pipeline_service"})
        self.source.request_stop()

    async def get_stats(self) -> PipelineStats:
        return self._stats.model_copy()

    async def _produce(self) -> None:
        """Pump source chunks into the handoff queue, then close it."""
        error: Optional[SourceError] = None

        try:
            async for chunk in self.source.chunks():
                await self._queue.put(chunk)
        except SourceError as e:
            error = e
        except Exception as e:
            error = SourceError(f"Unexpected source failure: {e}")
            error.__cause__ = e

        await self._queue.put(_END_OF_STREAM)

        if error is not None:
            logger.error(
                f"Source failed: {error}",
                extra={"component": "pipeline_service", "error": str(error)}
            )
            raise error

    async def _consume(self) -> None:
        while True:
            self._state = CoordinatorState.WAITING_FOR_CHUNK
            chunk = await self._queue.get()

            if chunk is _END_OF_STREAM:
                break

            self._state = CoordinatorState.PROCESSING_CHUNK
            await self._process_chunk(chunk)

    async def _process_chunk(self, chunk: bytes) -> None:
        self._stats.record_chunk(len(chunk))
        self.metrics.observe_bytes(len(chunk))

        telegrams: List[bytes] = self.framer.append(chunk)

        new_discards = self.framer.discards - self._stats.buffer_discards
        if new_discards > 0:
            self._stats.buffer_discards += new_discards
            self.metrics.observe_buffer_discards(new_discards)

        if telegrams:
            for telegram in telegrams:
                self._state = CoordinatorState.PUBLISHING
                await self._publish(telegram)

            self._stats.telegrams_extracted += len(telegrams)
            self.metrics.observe_telegrams(len(telegrams))

        if self.stats_log_interval > 0 and self._stats.chunks_received % self.stats_log_interval == 0:
            self._log_stats()

    async def _publish(self, telegram: bytes) -> None:
        sequence = self.sequence_extractor.extract(telegram)
        started = time.monotonic()

        try:
            result = await self.publisher.publish(telegram, sequence)
        except PublishError as e:
            result = PublishResult(success=False, error=str(e))
        except Exception as e:
            logger.exception(
                f"Unexpected error publishing telegram {sequence}",
                extra={"component": "pipeline_service", "sequence": sequence}
            )
            result = PublishResult(success=False, error=f"Unexpected publish error: {e}")

        duration_ms = (time.monotonic() - started) * 1000

        if result.success:
            if result.is_duplicate:
                self._stats.increment_duplicate()
            else:
                self._stats.increment_published()
        else:
            self._stats.increment_failed()
            self.metrics.observe_publish_failure()
            logger.error(
                f"Error publishing telegram {sequence}: {result.error}",
                extra={
                    "component": "pipeline_service",
                    "sequence": sequence,
                    "size": len(telegram),
                    "error": result.error
                }
            )

        self.metrics_logger.log_telegram_published(
            sequence=sequence,
            size=len(telegram),
            duration_ms=duration_ms,
            success=result.success,
            stream_id=result.stream_id,
            error=result.error
        )

    def _log_stats(self) -> None:
        self.metrics_logger.log_pipeline_stats(
            chunks_received=self._stats.chunks_received,
            bytes_observed=self._stats.bytes_observed,
            telegrams_extracted=self._stats.telegrams_extracted,
            telegrams_published=self._stats.telegrams_published,
            publish_failures=self._stats.publish_failures,
            buffer_discards=self._stats.buffer_discards,
            pending_bytes=len(self.framer.pending)
        )

    def _finish(self) -> None:
        # The unterminated tail has no end marker yet and is lost on shutdown
        dropped = self.framer.reset()
        if dropped:
            logger.warning(
                f"Discarding {dropped} bytes of partial telegram on shutdown",
                extra={"component": "pipeline_service", "dropped_bytes": dropped}
            )

        self._state = CoordinatorState.STOPPED
        self._is_running = False

        logger.info(
            "Pipeline stopped",
            extra={
                "component": "pipeline_service",
                "final_stats": self._stats.model_dump(mode="json")
            }
        )
