"""
Regex-based telegram framer.
Cuts an arbitrarily chunked byte stream into start...end delimited telegrams.
"""

import logging
import re
import threading
from typing import List, Optional, Pattern

from ..domain.ports import TelegramFramer, FramingConfigError


logger = logging.getLogger(__name__)

DEFAULT_START_MARKER = "ZCZC"
DEFAULT_END_MARKER = "NNNN"
DEFAULT_MAX_BUFFER_SIZE = 64 * 1024


def compile_marker(pattern: str, name: str, flags: int = 0) -> Pattern[bytes]:
    """
    Compile a text pattern into a bytes regex.

    Raises:
        FramingConfigError: If the pattern is empty or does not compile
    """
    if not pattern:
        raise FramingConfigError(f"{name} must not be empty")
    try:
        return re.compile(pattern.encode("utf-8"), flags)
    except re.error as e:
        raise FramingConfigError(f"Invalid {name} {pattern!r}: {e}") from e


class FrameBuffer:
    """
    Accumulator of stream bytes not yet consumed by the framer.
    Not thread-safe on its own; the owning framer serializes access.
    """

    def __init__(self) -> None:
        self._data = bytearray()

    def append(self, chunk: bytes) -> None:
        self._data.extend(chunk)

    def snapshot(self, start: int = 0) -> bytes:
        """Copy of the buffered bytes from offset start onwards."""
        return bytes(self._data[start:])

    def consume(self, count: int) -> None:
        """Drop the first count bytes."""
        del self._data[:count]

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class RegexTelegramFramer(TelegramFramer):
    """
    Framer matching the shortest start...end span (non-greedy).

    After each extraction the buffer keeps only the bytes that follow the
    last end marker, so a partially received next telegram survives. The
    buffer never holds more than max_buffer_size bytes without an end
    marker: the byte that would exceed it triggers a discard, at the same
    stream offset however the input is chunked.
    """

    def __init__(
        self,
        start_marker: str = DEFAULT_START_MARKER,
        end_marker: str = DEFAULT_END_MARKER,
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE
    ):
        """
        Initialize framer.

        Args:
            start_marker: Regex marking the start of a telegram
            end_marker: Regex marking the end of a telegram
            max_buffer_size: Largest unterminated tail kept, in bytes

        Raises:
            FramingConfigError: On an invalid pattern or size
        """
        if max_buffer_size < 1:
            raise FramingConfigError(
                f"max_buffer_size must be positive, got {max_buffer_size}"
            )

        compile_marker(start_marker, "start marker")
        self._end_pattern = compile_marker(end_marker, "end marker")
        self._telegram_pattern = compile_marker(
            f"(?:{start_marker}).*?(?:{end_marker})",
            "telegram pattern",
            re.DOTALL
        )

        self.start_marker = start_marker
        self.end_marker = end_marker
        self.max_buffer_size = max_buffer_size

        # A literal end marker can only straddle the last len(marker) - 1
        # scanned bytes; other patterns are rescanned from the start
        if re.escape(end_marker) == end_marker:
            self._end_overlap: Optional[int] = len(end_marker.encode("utf-8")) - 1
        else:
            self._end_overlap = None

        self._buffer = FrameBuffer()
        self._lock = threading.Lock()
        self._discards = 0
        self._scanned = 0

    @property
    def pending(self) -> bytes:
        """Bytes buffered since the last extraction."""
        with self._lock:
            return self._buffer.snapshot()

    @property
    def discards(self) -> int:
        """Number of overflow discards so far."""
        return self._discards

    def append(self, chunk: bytes) -> List[bytes]:
        telegrams: List[bytes] = []

        with self._lock:
            offset = 0
            while offset < len(chunk):
                # Never grow past max_buffer_size + 1 before checking
                room = self.max_buffer_size - len(self._buffer) + 1
                piece = chunk[offset:offset + room]
                offset += len(piece)

                self._buffer.append(piece)
                telegrams.extend(self._extract())

                if len(self._buffer) > self.max_buffer_size:
                    self._discard_overflow()

        return telegrams

    def reset(self) -> int:
        with self._lock:
            dropped = len(self._buffer)
            self._buffer.clear()
            self._scanned = 0
            return dropped

    def _extract(self) -> List[bytes]:
        start = 0
        if self._end_overlap is not None:
            start = max(0, self._scanned - self._end_overlap)

        last_end: Optional[int] = None
        for match in self._end_pattern.finditer(self._buffer.snapshot(start)):
            last_end = start + match.end()

        if last_end is None:
            self._scanned = len(self._buffer)
            return []

        data = self._buffer.snapshot()
        telegrams = []
        for match in self._telegram_pattern.finditer(data):
            telegrams.append(match.group(0))
            last_end = max(last_end, match.end())

        # Nothing before the last end marker can start a future telegram
        self._buffer.consume(last_end)
        self._scanned = len(self._buffer)
        return telegrams

    def _discard_overflow(self) -> None:
        dropped = self._buffer.snapshot()
        self._buffer.clear()
        self._scanned = 0
        self._discards += 1

        logger.warning(
            f"Frame buffer exceeded {self.max_buffer_size} bytes without an end marker, discarding",
            extra={
                "component": "telegram_framer",
                "dropped_bytes": len(dropped),
                "max_buffer_size": self.max_buffer_size,
                "discards_total": self._discards,
                "head_preview": dropped[:64].decode("ascii", errors="replace")
            }
        )


def create_telegram_framer(
    start_marker: str = DEFAULT_START_MARKER,
    end_marker: str = DEFAULT_END_MARKER,
    max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE
) -> RegexTelegramFramer:
    """
    Create telegram framer with configuration.

    Returns:
        Configured framer
    """
    return RegexTelegramFramer(
        start_marker=start_marker,
        end_marker=end_marker,
        max_buffer_size=max_buffer_size
    )
