"""
Tests for the pyserial transport wrapper and its exclusive ownership.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
import serial

from mtk_uartboot.errors import (
    LinkLost,
    SessionStateError,
    ShortWrite,
    TransportError,
    TransportTimeout,
    UartbootError,
)
from mtk_uartboot.bootrom import BootROM
from mtk_uartboot.transport import SerialTransport
from stub_device import FakeSerial, connect


class TruncatingSerial(FakeSerial):
    def write(self, data):
        super().write(data[:-1])
        return len(data) - 1


class ClosedSerial(FakeSerial):
    def write(self, data):
        raise serial.SerialException("device disconnected")


class StalledSerial(FakeSerial):
    def write(self, data):
        raise serial.SerialTimeoutException("Write timeout")


class UnpluggedSerial(FakeSerial):
    def read(self, size=1):
        raise serial.SerialException(
            "device reports readiness to read but returned no data")

    def readline(self):
        raise serial.SerialException(
            "device reports readiness to read but returned no data")


# =============================================================================
#  WRITE
# =============================================================================

class TestWrite:
    def test_write_all(self):
        transport, fake = connect()
        assert transport.write(b"\x01\x02") == 2
        assert bytes(fake.written) == b"\x01\x02"

    def test_partial_write_is_short_write(self):
        transport = SerialTransport(TruncatingSerial())
        with pytest.raises(ShortWrite):
            transport.write(b"\x01\x02\x03")

    def test_link_closed_is_short_write(self):
        transport = SerialTransport(ClosedSerial())
        with pytest.raises(ShortWrite):
            transport.write(b"\x01")

    def test_write_timeout(self):
        transport = SerialTransport(StalledSerial())
        with pytest.raises(TransportTimeout):
            transport.write(b"\x01")


# =============================================================================
#  READ
# =============================================================================

class TestRead:
    def test_read_exact(self):
        transport, fake = connect()
        fake.reply(b"abcd")
        assert transport.read_exact(2) == b"ab"
        assert transport.read_exact(2) == b"cd"

    def test_read_exact_timeout_keeps_partial(self):
        transport, fake = connect()
        fake.reply(b"\x5f")
        with pytest.raises(TransportTimeout) as exc:
            transport.read_exact(4)
        assert exc.value.partial == b"\x5f"

    def test_read_line(self):
        transport, fake = connect()
        fake.reply(b"NOTICE:  BL2: v2.9\r\nnext")
        assert transport.read_line() == "NOTICE:  BL2: v2.9"
        assert transport.read_line() == "next"
        assert transport.read_line() is None

    def test_read_line_tolerates_binary(self):
        transport, fake = connect()
        fake.reply(b"\xd5\x00\xffhello\n")
        assert transport.read_line().endswith("hello")

    def test_unplugged_during_read_exact(self):
        transport = SerialTransport(UnpluggedSerial())
        with pytest.raises(LinkLost) as exc:
            transport.read_exact(2)
        assert isinstance(exc.value, TransportError)
        assert isinstance(exc.value.__cause__, serial.SerialException)

    def test_unplugged_during_read_line(self):
        transport = SerialTransport(UnpluggedSerial())
        with pytest.raises(LinkLost):
            transport.read_line()

    def test_unplugged_during_handshake_is_project_error(self):
        transport = SerialTransport(UnpluggedSerial())
        with pytest.raises(UartbootError):
            BootROM(transport).handshake()


# =============================================================================
#  CONFIGURATION
# =============================================================================

class TestConfiguration:
    def test_set_baud(self):
        transport, fake = connect()
        transport.set_baud(921600)
        assert transport.baudrate == 921600
        assert fake.baud_history == [115200, 921600]

    def test_set_read_timeout(self):
        transport, fake = connect()
        transport.set_read_timeout(0.5)
        assert transport.read_timeout == 0.5
        assert fake.timeout == 0.5

    def test_close(self):
        transport, fake = connect()
        transport.close()
        assert not fake.is_open


# =============================================================================
#  OWNERSHIP
# =============================================================================

class TestOwnership:
    def test_claim_release(self):
        transport, _ = connect()
        owner = object()
        transport.claim(owner)
        assert transport.owner is owner
        transport.release(owner)
        assert transport.owner is None

    def test_second_claim_rejected(self):
        transport, _ = connect()
        transport.claim(object())
        with pytest.raises(SessionStateError):
            transport.claim(object())

    def test_release_by_non_owner_rejected(self):
        transport, _ = connect()
        transport.claim(object())
        with pytest.raises(SessionStateError):
            transport.release(object())
