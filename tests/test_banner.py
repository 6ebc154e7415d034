"""
Console banner scanner.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
import serial

from mtk_uartboot.banner import wait_for_line
from mtk_uartboot.bootrom import BootROM
from mtk_uartboot.errors import LinkLost, SessionStateError
from mtk_uartboot.transport import SerialTransport
from stub_device import FakeSerial, connect


class UnpluggedConsole(FakeSerial):
    def readline(self):
        raise serial.SerialException("device disconnected")


class TimeoutRecordingSerial(FakeSerial):
    def readline(self):
        self.seen_timeouts.append(self.timeout)
        return super().readline()


def test_finds_pattern(capsys):
    transport, fake = connect()
    fake.reply(b"NOTICE:  BL2: v2.9(release)\r\n"
               b"NOTICE:  Starting UART download handshake ...\r\n"
               b"left for the next reader\r\n")
    assert wait_for_line(transport, "Starting UART download handshake")
    out = capsys.readouterr().out
    assert "BL2: v2.9(release)" in out
    assert out.count("=" * 34) == 2
    # scanning stops at the matching line
    assert bytes(fake.rx) == b"left for the next reader\r\n"


def test_timeout_returns_false(caplog):
    transport, fake = connect()
    fake.reply(b"some other log line\n")
    assert not wait_for_line(transport, "Received FIP", echo=False)
    assert "Timeout waiting for" in caplog.text


def test_no_echo(capsys):
    transport, fake = connect()
    fake.reply(b"Received FIP 0x4000\n")
    assert wait_for_line(transport, "Received FIP", echo=False)
    assert capsys.readouterr().out == ""


def test_scan_uses_banner_timeout_then_restores():
    fake = TimeoutRecordingSerial(timeout=0.5)
    fake.seen_timeouts = []
    fake.reply(b"one\ntwo\n")
    transport = SerialTransport(fake)
    assert not wait_for_line(transport, "x", timeout=5.0, echo=False)
    assert fake.seen_timeouts == [5.0, 5.0, 5.0]
    assert fake.timeout == 0.5


def test_timeout_restored_when_link_fails():
    fake = UnpluggedConsole(timeout=0.5)
    transport = SerialTransport(fake)
    with pytest.raises(LinkLost):
        wait_for_line(transport, "x", timeout=5.0, echo=False)
    assert fake.timeout == 0.5


def test_refuses_while_client_owns_transport():
    transport, fake = connect()
    fake.reply(b"NOTICE:  Starting UART download handshake\n")
    BootROM(transport)
    with pytest.raises(SessionStateError):
        wait_for_line(transport, "Starting")
    # nothing was consumed
    assert fake.rx
