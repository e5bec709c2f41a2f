"""
Configuration management for serial-ingestor service.
YAML file, then environment overrides, then pydantic validation.
"""

import os
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, ConfigDict


logger = logging.getLogger(__name__)


def _check_pattern(value: str, name: str) -> str:
    if not value:
        raise ValueError(f"{name} must not be empty")
    try:
        re.compile(value.encode("utf-8"))
    except re.error as e:
        raise ValueError(f"Invalid {name} {value!r}: {e}") from e
    return value


class SerialConfig(BaseModel):
    """Serial port configuration."""
    model_config = ConfigDict(extra='forbid')

    name: str = Field(
        default="/dev/ttyUSB0",
        description="Serial device name or pyserial URL"
    )
    baud: int = Field(
        default=9600,
        ge=50,
        le=4_000_000,
        description="Baud rate"
    )
    data_bits: int = Field(
        default=8,
        ge=5,
        le=8,
        description="Data bits per character"
    )
    parity: str = Field(
        default="N",
        description="Parity: N, E, O, M or S"
    )
    stop_bits: float = Field(
        default=1,
        description="Stop bits: 1, 1.5 or 2"
    )
    flow_control: str = Field(
        default="none",
        description="Flow control: none, rtscts or xonxoff"
    )
    read_timeout: float = Field(
        default=1.0,
        gt=0,
        le=60,
        description="Seconds a single read may block"
    )
    buffer_size: int = Field(
        default=1024,
        ge=1,
        le=1_048_576,
        description="Maximum bytes per read"
    )

    @field_validator('parity')
    @classmethod
    def validate_parity(cls, v):
        v = v.upper()
        if v not in ('N', 'E', 'O', 'M', 'S'):
            raise ValueError("Parity must be one of: N, E, O, M, S")
        return v

    @field_validator('stop_bits')
    @classmethod
    def validate_stop_bits(cls, v):
        if v not in (1, 1.5, 2):
            raise ValueError("Stop bits must be 1, 1.5 or 2")
        return v

    @field_validator('flow_control')
    @classmethod
    def validate_flow_control(cls, v):
        v = v.lower()
        if v not in ('none', 'rtscts', 'xonxoff'):
            raise ValueError("Flow control must be one of: none, rtscts, xonxoff")
        return v


class FramingConfig(BaseModel):
    """Telegram framing configuration."""
    model_config = ConfigDict(extra='forbid')

    start_marker: str = Field(
        default="ZCZC",
        description="Regex marking the start of a telegram"
    )
    end_marker: str = Field(
        default="NNNN",
        description="Regex marking the end of a telegram"
    )
    sequence_pattern: str = Field(
        default=r"ZCZC\s(\S+)\s",
        description="Regex whose first group is the sequence identifier"
    )
    sequence_sentinel: str = Field(
        default="TMQ----",
        min_length=1,
        description="Sequence identifier used when the pattern does not match"
    )
    max_buffer_size: int = Field(
        default=65536,
        ge=1,
        description="Largest unterminated tail kept before discarding, in bytes"
    )

    @field_validator('start_marker', 'end_marker')
    @classmethod
    def validate_marker(cls, v, info):
        return _check_pattern(v, info.field_name)

    @field_validator('sequence_pattern')
    @classmethod
    def validate_sequence_pattern(cls, v):
        _check_pattern(v, "sequence_pattern")
        if re.compile(v.encode("utf-8")).groups > 1:
            raise ValueError("sequence_pattern may have at most one capture group")
        return v


class PipelineConfig(BaseModel):
    """Chunk handoff configuration."""
    model_config = ConfigDict(extra='forbid')

    handoff_queue_capacity: int = Field(
        default=1024,
        ge=1,
        le=1_000_000,
        description="Chunks buffered between the reader and the framer"
    )
    stats_log_interval: int = Field(
        default=100,
        ge=0,
        description="Log pipeline statistics every N chunks (0 disables)"
    )


class QueueConfig(BaseModel):
    """Telegram sink (queue_client) settings."""
    model_config = ConfigDict(extra='forbid')

    type: str = Field(
        default="redis",
        description="Queue backend (redis only)"
    )
    queue_name: str = Field(
        default="serial.telegrams",
        min_length=1,
        description="Stream receiving telegrams"
    )
    config: Dict[str, Any] = Field(
        default_factory=lambda: {
            "url": "redis://localhost:6379/0",
            "dedup_ttl_seconds": 0,
            "maxlen_approx": 1000000,
            "max_connections": 10,
            "socket_timeout": 5.0
        },
        description="Keyword settings for the Redis stream writer"
    )

    @field_validator('type')
    @classmethod
    def validate_queue_type(cls, v):
        if v.lower() != "redis":
            raise ValueError("Only 'redis' queue type is supported in this version")
        return v.lower()


class MetricsConfig(BaseModel):
    """Prometheus exporter configuration."""
    model_config = ConfigDict(extra='forbid')

    enabled: bool = Field(
        default=True,
        description="Whether to serve /metrics"
    )
    host: str = Field(
        default="0.0.0.0",
        description="Exporter bind address"
    )
    port: int = Field(
        default=9100,
        ge=1,
        le=65535,
        description="Exporter port"
    )


class LoggingConfig(BaseModel):
    """Log output settings."""
    model_config = ConfigDict(extra='forbid')

    level: str = Field(
        default="INFO",
        description="Root log level"
    )
    json_format: bool = Field(
        default=True,
        description="One JSON object per log line"
    )
    enable_correlation: bool = Field(
        default=True,
        description="Attach correlation_id to records"
    )
    file: Optional[str] = Field(
        default=None,
        description="Optional size-rotated log file"
    )
    max_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Rotation size of the log file"
    )
    backup_count: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Rotated log files kept"
    )

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()


class AppConfig(BaseModel):
    """Root of config.yml."""
    model_config = ConfigDict(extra='forbid')

    serial: SerialConfig = Field(default_factory=SerialConfig)
    framing: FramingConfig = Field(default_factory=FramingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


DEFAULT_CONFIG_PATH = "./config.yml"

# Environment variable -> dotted path inside the YAML document
ENV_OVERRIDES = {
    'SERIAL_PORT': 'serial.name',
    'SERIAL_BAUD': 'serial.baud',
    'FRAMING_MAX_BUFFER_SIZE': 'framing.max_buffer_size',
    'PIPELINE_QUEUE_CAPACITY': 'pipeline.handoff_queue_capacity',
    'QUEUE_TYPE': 'queue.type',
    'QUEUE_NAME': 'queue.queue_name',
    'QUEUE_URL': 'queue.config.url',
    'METRICS_ENABLED': 'metrics.enabled',
    'METRICS_PORT': 'metrics.port',
    'LOG_LEVEL': 'logging.level',
    'LOG_JSON': 'logging.json_format',
    'LOG_FILE': 'logging.file',
}

def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Build the application config.

    The YAML file is read from config_path, else $CONFIG_PATH, else
    ./config.yml. Environment overrides (ENV_OVERRIDES) are applied on top
    as raw strings; pydantic converts them to each field's type.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the YAML is malformed or its root is not a mapping
        pydantic.ValidationError: If a value is out of range
    """
    path = Path(config_path or os.getenv('CONFIG_PATH', DEFAULT_CONFIG_PATH))

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding='utf-8'))
    except yaml.YAMLError as e:
        logger.error(f"Cannot parse {path}: {e}")
        raise ValueError(f"Invalid YAML config: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping, got {type(data).__name__}")

    for env_var, dotted in ENV_OVERRIDES.items():
        raw = os.getenv(env_var)
        if raw is not None:
            _assign(data, dotted.split('.'), raw)
            logger.debug(f"{env_var} overrides {dotted}")

    config = AppConfig.model_validate(data)

    logger.info(
        "Configuration loaded",
        extra={
            "component": "config",
            "config_file": str(path),
            "serial_port": config.serial.name,
            "queue_name": config.queue.queue_name,
            "max_buffer_size": config.framing.max_buffer_size
        }
    )
    return config


def _assign(data: dict, keys: List[str], value: Any) -> None:
    """Set data[k1][k2]...[kn] = value, creating mappings on the way."""
    head, *rest = keys
    if not rest:
        data[head] = value
        return
    if not isinstance(data.get(head), dict):
        data[head] = {}
    _assign(data[head], rest, value)
