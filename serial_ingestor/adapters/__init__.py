"""
Adapters layer for serial-ingestor service.

Implementations of domain interfaces over pyserial, regex framing and the
shared queue library.
"""

from .telegram_framer import FrameBuffer, RegexTelegramFramer, create_telegram_framer
from .sequence_extractor import RegexSequenceExtractor, SEQUENCE_UNKNOWN
from .serial_source import SerialChunkSource, create_serial_source, list_serial_ports
from .queue_publisher import QueuePublisher, create_queue_publisher

__all__ = [
    "FrameBuffer",
    "RegexTelegramFramer",
    "create_telegram_framer",
    "RegexSequenceExtractor",
    "SEQUENCE_UNKNOWN",
    "SerialChunkSource",
    "create_serial_source",
    "list_serial_ports",
    "QueuePublisher",
    "create_queue_publisher",
]
