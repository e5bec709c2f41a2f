"""
Telemetry utilities for serial-ingestor service.
"""

from .logger import setup_logging, JSONFormatter, CorrelationFilter, MetricsLogger
from .metrics import PipelineMetrics

__all__ = ["setup_logging", "JSONFormatter", "CorrelationFilter", "MetricsLogger", "PipelineMetrics"]
