"""
BL2 UART-download client
========================

Talks to a BL2 (TF-A second stage) built with UART download support,
after it has printed "Starting UART download handshake":

    Idle -> Handshaking -> Ready -> VersionQueried -> BaudSwitched
         -> Uploading -> Executing

  handshake()       "mudl", each byte answered by its complement
  version()         01          -> version u8, status u8
  set_baudrate(r)   02 r:u32    -> status u8, then both sides switch and
                                   a fresh handshake must succeed
  send_fip(data)    03 len:u32  -> status u8, per chunk ack u8,
                                   checksum u32, status u8
  go()              04          (nothing read back)

BL2 decides where the FIP lands, so no address goes on the wire.
"""

from __future__ import annotations

import logging
from enum import Enum, auto

from .engine import FramedClient
from .errors import BaudSwitchFailed, ChecksumMismatch, HandshakeTimeout, StatusError
from .protocol import BL2_PROTOCOL, compute_checksum

log = logging.getLogger('mtk_uartboot.bl2')


class BL2State(Enum):
    IDLE = auto()
    HANDSHAKING = auto()
    READY = auto()
    VERSION_QUERIED = auto()
    BAUD_SWITCHED = auto()
    UPLOADING = auto()
    EXECUTING = auto()


class BL2Client(FramedClient):
    """Session with BL2's UART download loop over an exclusively owned transport."""

    PROTOCOL = BL2_PROTOCOL
    INITIAL = BL2State.IDLE
    HANDSHAKING = BL2State.HANDSHAKING
    READY = BL2State.READY
    TERMINAL = frozenset({BL2State.EXECUTING})

    def handshake(self) -> None:
        """
        Caller must already have seen BL2's handshake banner on the
        console, otherwise the probes land in BL2's boot log.
        """
        self._handshake()

    def version(self) -> int:
        """UART download protocol version. Diagnostic only."""
        self._require_handshake("version")
        self._command("VERSION")
        version = self._read_int(1, "version")
        self._read_status("VERSION")
        self.state = BL2State.VERSION_QUERIED
        return version

    def set_baudrate(self, rate: int) -> None:
        """
        Switch both ends to rate and resynchronize.

        Raises BaudSwitchFailed (not HandshakeTimeout) when the device
        acknowledged the switch but no handshake succeeds at the new rate.
        """
        self._require_handshake("set_baudrate")
        transport = self.transport
        previous = transport.baudrate

        self._command("BAUDRATE", rate)
        self._read_status("BAUDRATE")
        transport.set_baud(rate)
        transport.settle()
        try:
            self._handshake()
        except HandshakeTimeout as e:
            log.error(f"No resync at {rate} baud (was {previous})")
            raise BaudSwitchFailed(rate, previous) from e
        self.state = BL2State.BAUD_SWITCHED
        log.info(f"Baud rate set to: {rate}")

    def send_fip(self, data: bytes) -> int:
        """
        Upload a firmware image package. Returns the device checksum;
        raises ChecksumMismatch on a nacked chunk, a rejected image or a
        checksum different from ours.
        """
        self._require_handshake("send_fip")
        expected = compute_checksum(data, self.protocol.checksum)

        self.state = BL2State.UPLOADING
        self._command("SEND_FIP", len(data))
        self._read_status("SEND_FIP")
        log.info(f"Sending FIP ({len(data)} bytes)...")
        try:
            self._stream(data, "SEND_FIP", ack=True)
        except StatusError as e:
            raise ChecksumMismatch(f"BL2 nacked FIP data: {e}") from e

        actual = self._read_int(self.protocol.checksum.byte_width, "SEND_FIP checksum")
        try:
            self._read_status("SEND_FIP data")
        except StatusError as e:
            raise ChecksumMismatch(
                f"BL2 rejected FIP (status 0x{e.status:02x})", expected, actual) from e
        if actual != expected:
            raise ChecksumMismatch(
                f"FIP checksum mismatch: local 0x{expected:08x}, device 0x{actual:08x}",
                expected, actual)
        return actual

    def go(self) -> None:
        """Hand execution to the loaded image. Terminal for this client."""
        self._require_handshake("go")
        self._command("GO")
        self.state = BL2State.EXECUTING
        log.info("BL2 executing FIP")
