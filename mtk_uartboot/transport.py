"""
Serial Transport
================

Thin wrapper over a pyserial port exposing exactly what the protocol
clients consume: baud / timeout control, exact writes, exact reads and
line reads for the banner scanner.

The handle is exclusively owned. A protocol client claims it on
construction and hands it back with release(); a second claim while
owned raises SessionStateError, so two clients can never drive the
same link at once.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional

import serial
import serial.tools.list_ports

from .config import BYTESIZE, DEFAULT_BAUD, DEFAULT_TIMEOUT, PARITY, STOPBITS, WRITE_TIMEOUT
from .errors import LinkLost, SessionStateError, ShortWrite, TransportTimeout
from .protocol import hexdump

log = logging.getLogger('mtk_uartboot.transport')


class SerialTransport:
    """
    Exclusive duplex byte stream over a serial port.

    Usage:
        transport = SerialTransport.open('/dev/ttyUSB0', 115200)
        brom = BootROM(transport)       # claims the handle
        ...
        transport = brom.release()      # ownership back to the caller
    """

    def __init__(self, ser: serial.Serial):
        self.ser = ser
        self._owner = None

    @classmethod
    def open(cls, port: str, baudrate: int = DEFAULT_BAUD,
             timeout: float = DEFAULT_TIMEOUT) -> "SerialTransport":
        """Open port 8N1 with the given initial rate and read timeout."""
        ser = serial.Serial(
            port=port,
            baudrate=baudrate,
            bytesize=BYTESIZE,
            parity=PARITY,
            stopbits=STOPBITS,
            timeout=timeout,
            write_timeout=WRITE_TIMEOUT,
        )
        log.info(f"Opened {port} @ {baudrate} baud")
        return cls(ser)

    @staticmethod
    def list_ports() -> List[str]:
        """Device names of the serial ports pyserial can see."""
        return [p.device for p in serial.tools.list_ports.comports()]

    # -------------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------------

    @property
    def owner(self):
        return self._owner

    def claim(self, owner) -> None:
        if self._owner is not None:
            raise SessionStateError(
                f"{self.port} is already owned by {type(self._owner).__name__}")
        self._owner = owner

    def release(self, owner) -> None:
        if self._owner is not owner:
            raise SessionStateError(f"{type(owner).__name__} does not own {self.port}")
        self._owner = None

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @property
    def port(self) -> str:
        return self.ser.port

    @property
    def baudrate(self) -> int:
        return self.ser.baudrate

    @property
    def read_timeout(self) -> Optional[float]:
        return self.ser.timeout

    def set_baud(self, rate: int) -> None:
        log.debug(f"{self.port}: baud {self.ser.baudrate} -> {rate}")
        self.ser.baudrate = rate

    def set_read_timeout(self, seconds: Optional[float]) -> None:
        self.ser.timeout = seconds

    # -------------------------------------------------------------------------
    # I/O
    # -------------------------------------------------------------------------

    def write(self, data: bytes) -> int:
        """Write all of data or raise ShortWrite / TransportTimeout."""
        try:
            written = self.ser.write(data)
            self.ser.flush()
        except serial.SerialTimeoutException as e:
            raise TransportTimeout(f"write of {len(data)} bytes timed out") from e
        except serial.SerialException as e:
            raise ShortWrite(f"link closed while writing {len(data)} bytes: {e}") from e
        if written is not None and written != len(data):
            raise ShortWrite(f"wrote {written} of {len(data)} bytes")
        log.debug(f"TX: {hexdump(data)}")
        return len(data)

    def read_exact(self, n: int) -> bytes:
        """Read n bytes; raise TransportTimeout (with the partial data) on timeout."""
        # pyserial returns short only once the timeout has expired
        try:
            data = self.ser.read(n)
        except serial.SerialException as e:
            raise LinkLost(f"link failed while reading {n} bytes: {e}") from e
        if len(data) < n:
            raise TransportTimeout(
                f"read timed out after {len(data)} of {n} bytes", bytes(data))
        return bytes(data)

    def read_line(self) -> Optional[str]:
        """One console line without its terminator, or None on timeout."""
        try:
            raw = self.ser.readline()
        except serial.SerialException as e:
            raise LinkLost(f"link failed while reading a console line: {e}") from e
        if not raw:
            return None
        return raw.decode('utf-8', errors='replace').rstrip('\r\n')

    def reset_input_buffer(self) -> None:
        self.ser.reset_input_buffer()

    def settle(self, seconds: float = 0.05) -> None:
        """Give the UART time to apply a rate change, then drop line noise."""
        time.sleep(seconds)
        self.ser.reset_input_buffer()

    def close(self) -> None:
        if self.ser.is_open:
            self.ser.close()
            log.info(f"Closed {self.port}")
