"""
Structured logging for serial-ingestor.

Records are emitted as one JSON object per line, tagged with the service
name and a correlation id, to stdout and optionally to a size-rotated file.
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional


# LogRecord attributes that are never copied as extra fields
RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
    'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'taskName', 'message', 'asctime'
})

PLAIN_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
PLAIN_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("redis", "asyncio", "serial")


class JSONFormatter(logging.Formatter):
    """
    Renders a record as a single-line JSON object.

    Anything passed through ``extra=`` lands as a top-level key. Bytes
    values (telegram previews) are decoded as ASCII with replacement.
    """

    def __init__(
        self,
        service_name: str = "serial-ingestor",
        include_extra: bool = True
    ):
        """
        Args:
            service_name: Value of the "service" key
            include_extra: Copy extra record attributes into the output
        """
        super().__init__()
        self.service_name = service_name
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)

        entry = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            entry.update(
                (key, value) for key, value in vars(record).items()
                if key not in RESERVED_ATTRS and not key.startswith('_')
            )

        return json.dumps(entry, default=self._encode)

    @staticmethod
    def _encode(obj: Any) -> str:
        if isinstance(obj, (bytes, bytearray)):
            return obj.decode("ascii", errors="replace")
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)


class CorrelationFilter(logging.Filter):
    """Stamps records lacking a correlation_id with a fixed or time-based id."""

    def __init__(self, correlation_id: Optional[str] = None):
        super().__init__()
        self.correlation_id = correlation_id

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, 'correlation_id', None) is None:
            record.correlation_id = self.correlation_id or f"sri-{int(time.time() * 1000)}"
        return True


def _build_handlers(
    log_file: Optional[str],
    max_bytes: int,
    backup_count: int
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8"
            )
        )

    return handlers


def setup_logging(
    level: str = "INFO",
    service_name: str = "serial-ingestor",
    enable_json: bool = True,
    enable_correlation: bool = True,
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5
) -> None:
    """
    Replace the root logger's handlers.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        service_name: Service tag in JSON output
        enable_json: JSON lines instead of plain text
        enable_correlation: Attach a correlation_id to every record
        log_file: Also write to this file, rotated by size
        max_bytes: Size at which log_file rotates
        backup_count: Number of rotated files kept

    Raises:
        ValueError: On an unknown level
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    if enable_json:
        formatter: logging.Formatter = JSONFormatter(service_name=service_name)
    else:
        formatter = logging.Formatter(fmt=PLAIN_FORMAT, datefmt=PLAIN_DATE_FORMAT)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric_level)

    for handler in _build_handlers(log_file, max_bytes, backup_count):
        handler.setFormatter(formatter)
        if enable_correlation:
            handler.addFilter(CorrelationFilter())
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "component": "logger",
            "level": level.upper(),
            "json_enabled": enable_json,
            "correlation_enabled": enable_correlation,
            "log_file": log_file
        }
    )


class MetricsLogger:
    """
    Emits metric-shaped log lines (``metric_type`` plus numeric fields).
    """

    def __init__(self, logger_name: str = "metrics"):
        self.logger = logging.getLogger(logger_name)

    def log_telegram_published(
        self,
        sequence: str,
        size: int,
        duration_ms: float,
        success: bool,
        stream_id: Optional[str] = None,
        error: Optional[str] = None
    ) -> None:
        """
        One line per publish attempt.

        Args:
            sequence: Telegram sequence identifier
            size: Telegram length in bytes
            duration_ms: Time spent in the publisher
            success: Whether the sink accepted the telegram
            stream_id: Stream entry id on success
            error: Failure reason otherwise
        """
        self.logger.info(
            f"Publishing telegram: {sequence}",
            extra={
                "metric_type": "telegram_published",
                "sequence": sequence,
                "size": size,
                "duration_ms": round(duration_ms, 2),
                "success": success,
                "stream_id": stream_id,
                "error": error
            }
        )

    def log_pipeline_stats(
        self,
        chunks_received: int,
        bytes_observed: int,
        telegrams_extracted: int,
        telegrams_published: int,
        publish_failures: int,
        buffer_discards: int,
        pending_bytes: int
    ) -> None:
        self.logger.info(
            f"Total bytes: {bytes_observed}, Total telegrams: {telegrams_extracted}",
            extra={
                "metric_type": "pipeline_stats",
                "chunks_received": chunks_received,
                "bytes_observed": bytes_observed,
                "telegrams_extracted": telegrams_extracted,
                "telegrams_published": telegrams_published,
                "publish_failures": publish_failures,
                "buffer_discards": buffer_discards,
                "pending_bytes": pending_bytes
            }
        )
