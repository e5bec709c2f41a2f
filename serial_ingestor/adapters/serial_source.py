"""
Serial port chunk source built on pyserial.
Blocking reads run in a worker thread so the event loop stays free.
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional

import serial
from serial.tools import list_ports

from ..domain.ports import ChunkSource, SourceError


logger = logging.getLogger(__name__)

PARITIES = {
    "N": serial.PARITY_NONE,
    "E": serial.PARITY_EVEN,
    "O": serial.PARITY_ODD,
    "M": serial.PARITY_MARK,
    "S": serial.PARITY_SPACE,
}

STOP_BITS = {
    1: serial.STOPBITS_ONE,
    1.5: serial.STOPBITS_ONE_POINT_FIVE,
    2: serial.STOPBITS_TWO,
}

FLOW_CONTROLS = ("none", "rtscts", "xonxoff")


class SerialChunkSource(ChunkSource):
    """
    Reads raw chunks from a serial port.

    Each read waits at most read_timeout seconds, so a stop request is
    noticed within one timeout. Empty reads are never yielded.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        bytesize: int = 8,
        parity: str = "N",
        stopbits: float = 1,
        flow_control: str = "none",
        read_timeout: float = 1.0,
        buffer_size: int = 1024
    ):
        """
        Initialize serial source.

        Args:
            port: Device name (e.g. /dev/ttyUSB0, COM1) or pyserial URL
            baudrate: Baud rate
            bytesize: Data bits (5-8)
            parity: One of N, E, O, M, S
            stopbits: 1, 1.5 or 2
            flow_control: none, rtscts or xonxoff
            read_timeout: Maximum seconds a single read blocks
            buffer_size: Maximum bytes per chunk
        """
        self.port = port
        self.baudrate = baudrate
        self.bytesize = bytesize
        self.parity = parity
        self.stopbits = stopbits
        self.flow_control = flow_control
        self.read_timeout = read_timeout
        self.buffer_size = buffer_size

        self._serial: Optional[serial.SerialBase] = None
        self._stop_requested = False
        self._bytes_read = 0

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    @property
    def device(self) -> Optional[serial.SerialBase]:
        """The open pyserial handle, if any."""
        return self._serial

    async def open(self) -> None:
        """
        Open the port if not already open.

        Raises:
            SourceError: If the port cannot be opened
        """
        if self._serial is not None:
            return

        logger.info(
            f"Opening port: {self.port}",
            extra={
                "component": "serial_source",
                "port": self.port,
                "baudrate": self.baudrate,
                "bytesize": self.bytesize,
                "parity": self.parity,
                "stopbits": self.stopbits,
                "flow_control": self.flow_control
            }
        )

        try:
            self._serial = await asyncio.to_thread(self._open)
        except (serial.SerialException, ValueError, OSError) as e:
            raise SourceError(f"Error opening port {self.port}: {e}") from e

    def _open(self) -> serial.SerialBase:
        return serial.serial_for_url(
            self.port,
            baudrate=self.baudrate,
            bytesize=self.bytesize,
            parity=PARITIES[self.parity],
            stopbits=STOP_BITS[self.stopbits],
            rtscts=self.flow_control == "rtscts",
            xonxoff=self.flow_control == "xonxoff",
            timeout=self.read_timeout
        )

    def _read_chunk(self) -> bytes:
        # Block for the first byte, then take whatever else already arrived
        data = self._serial.read(1)
        if data:
            waiting = self._serial.in_waiting
            if waiting and self.buffer_size > 1:
                data += self._serial.read(min(waiting, self.buffer_size - 1))
        return data

    async def chunks(self) -> AsyncIterator[bytes]:
        await self.open()

        while not self._stop_requested:
            try:
                data = await asyncio.to_thread(self._read_chunk)
            except (serial.SerialException, OSError) as e:
                logger.error(
                    f"Error reading from port: {e}",
                    extra={
                        "component": "serial_source",
                        "port": self.port,
                        "bytes_read": self._bytes_read
                    }
                )
                raise SourceError(f"Error reading from port {self.port}: {e}") from e

            if data:
                self._bytes_read += len(data)
                logger.debug(
                    f"Read {len(data)} bytes",
                    extra={"component": "serial_source", "port": self.port}
                )
                yield data

        logger.info(
            "Serial source stopped",
            extra={
                "component": "serial_source",
                "port": self.port,
                "bytes_read": self._bytes_read
            }
        )

    def request_stop(self) -> None:
        self._stop_requested = True

    async def close(self) -> None:
        """Close the port."""
        try:
            if self._serial is not None:
                await asyncio.to_thread(self._serial.close)
                self._serial = None
            logger.info("Serial port closed", extra={"component": "serial_source"})
        except Exception as e:
            logger.error(f"Error closing serial port: {e}")


def list_serial_ports() -> List[str]:
    """
    List serial port device names available on this host.

    Raises:
        SourceError: If ports cannot be enumerated
    """
    try:
        return sorted(port.device for port in list_ports.comports())
    except OSError as e:
        raise SourceError(f"Error listing serial ports: {e}") from e


def create_serial_source(
    port: str,
    baudrate: int = 9600,
    bytesize: int = 8,
    parity: str = "N",
    stopbits: float = 1,
    flow_control: str = "none",
    read_timeout: float = 1.0,
    buffer_size: int = 1024
) -> SerialChunkSource:
    """
    Create serial source with configuration.

    Returns:
        Configured serial source (not yet opened)
    """
    return SerialChunkSource(
        port=port,
        baudrate=baudrate,
        bytesize=bytesize,
        parity=parity,
        stopbits=stopbits,
        flow_control=flow_control,
        read_timeout=read_timeout,
        buffer_size=buffer_size
    )
