"""
Main application module for serial-ingestor service.
Wires the serial source, framer, publisher and metrics into one pipeline.
"""

import argparse
import asyncio
import logging
import signal
import sys
from contextlib import asynccontextmanager
from typing import List, Optional

from .config import load_config, AppConfig
from .telemetry.logger import setup_logging
from .telemetry.metrics import PipelineMetrics

from .domain.ports import SourceError, PublishError

from .adapters import (
    QueuePublisher,
    RegexSequenceExtractor,
    RegexTelegramFramer,
    SerialChunkSource,
    create_queue_publisher,
    create_serial_source,
    create_telegram_framer,
    list_serial_ports,
)

from .services.pipeline_service import SerialPipelineService


logger = logging.getLogger(__name__)

SERVICE_NAME = "serial-ingestor"
HEALTH_CHECK_INTERVAL_SECONDS = 30.0


class SerialIngestorApplication:
    """
    Composition root: builds the source, framer, publisher and pipeline.
    """

    def __init__(self, config: AppConfig):
        """
        Nothing is opened until setup().

        Args:
            config: Validated application configuration
        """
        self.config = config

        # Built in setup()
        self.metrics: Optional[PipelineMetrics] = None
        self.publisher: Optional[QueuePublisher] = None
        self.source: Optional[SerialChunkSource] = None
        self.framer: Optional[RegexTelegramFramer] = None
        self.sequence_extractor: Optional[RegexSequenceExtractor] = None
        self.pipeline: Optional[SerialPipelineService] = None

        # Lifecycle management
        self._shutdown_event = asyncio.Event()
        self._health_task: Optional[asyncio.Task] = None
        self._setup_signal_handlers()

    def _setup_signal_handlers(self) -> None:
        """SIGINT and SIGTERM stop reading and let the queue drain."""
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, initiating shutdown")
            self.request_shutdown()

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

    def request_shutdown(self) -> None:
        """Stop reading; chunks already queued are still published."""
        self._shutdown_event.set()
        if self.pipeline:
            self.pipeline.stop()

    async def setup(self) -> None:
        """
        Connect the sink, open the port and assemble the pipeline.

        Raises:
            PublishError: If the queue cannot be reached
            SourceError: If the serial port cannot be opened
        """
        try:
            logger.info("Setting up serial-ingestor application")

            self.metrics = PipelineMetrics()
            if self.config.metrics.enabled:
                self.metrics.start_exporter(
                    self.config.metrics.host,
                    self.config.metrics.port
                )

            self.publisher = create_queue_publisher(
                queue_type=self.config.queue.type,
                queue_config=self.config.queue.config,
                queue_name=self.config.queue.queue_name,
                service_name=SERVICE_NAME
            )
            await self.publisher.connect()

            serial_config = self.config.serial
            self.source = create_serial_source(
                port=serial_config.name,
                baudrate=serial_config.baud,
                bytesize=serial_config.data_bits,
                parity=serial_config.parity,
                stopbits=serial_config.stop_bits,
                flow_control=serial_config.flow_control,
                read_timeout=serial_config.read_timeout,
                buffer_size=serial_config.buffer_size
            )
            await self.source.open()

            framing = self.config.framing
            self.framer = create_telegram_framer(
                start_marker=framing.start_marker,
                end_marker=framing.end_marker,
                max_buffer_size=framing.max_buffer_size
            )
            self.sequence_extractor = RegexSequenceExtractor(
                pattern=framing.sequence_pattern,
                sentinel=framing.sequence_sentinel
            )

            self.pipeline = SerialPipelineService(
                source=self.source,
                framer=self.framer,
                sequence_extractor=self.sequence_extractor,
                publisher=self.publisher,
                metrics=self.metrics,
                handoff_queue_capacity=self.config.pipeline.handoff_queue_capacity,
                stats_log_interval=self.config.pipeline.stats_log_interval
            )

            logger.info(
                "Application setup completed",
                extra={
                    "component": "app",
                    "serial_port": serial_config.name,
                    "queue_name": self.config.queue.queue_name,
                    "start_marker": framing.start_marker,
                    "end_marker": framing.end_marker
                }
            )

        except Exception as e:
            logger.error(f"Startup failed: {e}")
            await self.cleanup()
            raise

    async def run(self) -> None:
        """
        Run the pipeline until the source closes or a shutdown is requested.

        Raises:
            SourceError: If the serial port fails while reading
        """
        if not self.pipeline:
            raise RuntimeError("Application not setup. Call setup() first.")

        logger.info("Starting serial-ingestor service")

        self._health_task = asyncio.create_task(self._monitor_health())
        try:
            await self.pipeline.run()
        finally:
            self._health_task.cancel()
            try:
                await self._health_task
            except asyncio.CancelledError:
                pass

            stats = await self.pipeline.get_stats()
            logger.info(
                "Service finished",
                extra={"component": "app", "final_stats": stats.model_dump(mode="json")}
            )

    async def _monitor_health(self) -> None:
        """Warn periodically while the publisher is unhealthy."""
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=HEALTH_CHECK_INTERVAL_SECONDS
                )
                break
            except asyncio.TimeoutError:
                pass

            if self.publisher and not await self.publisher.check_health():
                logger.warning(
                    "Publisher unhealthy",
                    extra={"component": "app", "queue_name": self.config.queue.queue_name}
                )

    async def cleanup(self) -> None:
        """Release the serial port and the queue connection."""
        logger.info("Releasing resources")

        try:
            if self.source:
                await self.source.close()

            if self.publisher:
                await self.publisher.close()

            logger.info("Resources released")

        except Exception as e:
            logger.error(f"Error during cleanup: {e}")

    @asynccontextmanager
    async def lifespan(self):
        """
        setup() on enter, cleanup() on exit.
        """
        try:
            await self.setup()
            yield self
        finally:
            await self.cleanup()


def _configure_logging(config: AppConfig) -> None:
    setup_logging(
        level=config.logging.level,
        service_name=SERVICE_NAME,
        enable_json=config.logging.json_format,
        enable_correlation=config.logging.enable_correlation,
        log_file=config.logging.file,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse the command line; argv defaults to sys.argv[1:]."""
    parser = argparse.ArgumentParser(
        prog=SERVICE_NAME,
        description="Frame telegrams from a serial port and publish them to a Redis stream",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                   # same as read
  %(prog)s read -c /etc/serial/config.yml    # explicit config file
  %(prog)s read -u redis://redis:6379/0 -q weather.telegrams
  %(prog)s list                              # available serial ports
        """
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="read",
        choices=["read", "list", "healthcheck"],
        help="Command to execute (default: read)"
    )
    parser.add_argument(
        "--config", "-c",
        help="Config file (default: $CONFIG_PATH or ./config.yml)"
    )
    parser.add_argument(
        "--queue-url", "-u",
        help="Redis URL, overrides queue.config.url"
    )
    parser.add_argument(
        "--queue-name", "-q",
        help="Stream name, overrides queue.queue_name"
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AppConfig:
    """
    Load the config file and apply command-line overrides on top.

    Raises:
        FileNotFoundError: If the config file does not exist
        ValueError: If the file or an override is invalid
    """
    config = load_config(args.config)

    if args.queue_name:
        config.queue.queue_name = args.queue_name
    if args.queue_url:
        config.queue.config = {**config.queue.config, "url": args.queue_url}

    return config


async def main(args: Optional[argparse.Namespace] = None) -> None:
    """
    Read telegrams from the serial port and publish them until stopped.
    """
    if args is None:
        args = parse_args([])

    try:
        config = build_config(args)

        _configure_logging(config)

        logger.info(
            "Starting serial-ingestor service",
            extra={
                "component": "app",
                "serial_port": config.serial.name,
                "queue_name": config.queue.queue_name
            }
        )

        async with SerialIngestorApplication(config).lifespan() as app:
            await app.run()

    except KeyboardInterrupt:
        logger.info("Service interrupted by user")
    except (SourceError, PublishError) as e:
        logger.error(f"Service failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Service failed: {e}")
        sys.exit(1)


def list_ports() -> int:
    """Print available serial ports, one per line."""
    logging.basicConfig(level=logging.INFO)
    logger.info("Listing available serial ports")

    try:
        ports = list_serial_ports()
    except SourceError as e:
        logger.error(f"Error listing serial ports: {e}")
        return 1

    for port in ports:
        print(port)
    return 0


def health_check(args: Optional[argparse.Namespace] = None) -> bool:
    """
    Container health check: the configuration loads and validates.
    """
    try:
        build_config(args or parse_args([]))
        return True
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return False


def cli(argv: Optional[List[str]] = None) -> None:
    """Console entry point."""
    args = parse_args(argv)

    if args.command == "read":
        asyncio.run(main(args))
    elif args.command == "list":
        sys.exit(list_ports())
    else:
        sys.exit(0 if health_check(args) else 1)


if __name__ == "__main__":
    cli()
