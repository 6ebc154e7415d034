"""
Exception hierarchy for the UART boot tool.

Every failure raised by the transport, the protocol engine or the two
clients derives from UartbootError, so the CLI can abort a session with
one except clause and a readable message.
"""

from typing import Optional


class UartbootError(Exception):
    """Base class for all boot session failures."""


# =============================================================================
# Link level
# =============================================================================

class TransportError(UartbootError):
    """Raised when the serial link itself misbehaves."""


class TransportTimeout(TransportError):
    """A read or write did not complete within the configured timeout."""
    def __init__(self, message: str, partial: bytes = b""):
        self.partial = partial
        super().__init__(message)


class ShortWrite(TransportError):
    """Fewer bytes left the host (or were accepted by the device) than were sent."""


class LinkLost(TransportError):
    """The serial port failed while reading (adapter unplugged, port closed)."""


# =============================================================================
# Protocol level
# =============================================================================

class ProtocolError(UartbootError):
    """Malformed, short or unexpected reply from the device."""


class ShortReply(ProtocolError):
    """Fewer reply bytes arrived than the command defines."""
    def __init__(self, expected: int, received: bytes, what: str = "reply"):
        self.expected = expected
        self.received = received
        super().__init__(
            f"short {what}: expected {expected} bytes, got {len(received)}"
            + (f" ({received.hex(' ')})" if received else "")
        )


class UnexpectedReply(ProtocolError):
    """The device echoed something other than what was sent."""
    def __init__(self, what: str, sent: bytes, received: bytes):
        self.sent = sent
        self.received = received
        super().__init__(f"{what}: sent {sent.hex(' ')}, device answered {received.hex(' ')}")


class StatusError(ProtocolError):
    """The device reported a nonzero status word."""
    def __init__(self, what: str, status: int):
        self.status = status
        super().__init__(f"{what} failed with status 0x{status:04x}")


class SessionStateError(ProtocolError):
    """Operation issued out of order, or on a client that gave up its transport."""


class HandshakeTimeout(UartbootError):
    """No valid handshake reply within the attempt / time budget."""


class BaudSwitchFailed(UartbootError):
    """Device accepted a new baud rate but did not resynchronize at it."""
    def __init__(self, baudrate: int, previous: Optional[int] = None):
        self.baudrate = baudrate
        self.previous = previous
        msg = f"no handshake at {baudrate} baud after rate switch"
        if previous:
            msg += f" (was {previous})"
        super().__init__(msg)


class ChecksumMismatch(UartbootError):
    """Device checksum disagrees with the local one, or the device nacked an upload."""
    def __init__(self, message: str, expected: Optional[int] = None,
                 actual: Optional[int] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class SecurityPrecondition(UartbootError):
    """A security feature is enabled on the target; unsigned download is impossible."""
