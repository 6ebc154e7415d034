"""
Boot orchestration: BootROM session, banner wait, BL2 session.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from mtk_uartboot.bootrom import SecurityConfig
from mtk_uartboot.errors import (
    ChecksumMismatch,
    HandshakeTimeout,
    SecurityPrecondition,
)
from mtk_uartboot.session import (
    Payload,
    boot,
    check_security,
    handshake_with_retries,
    run_bl2_session,
    run_bootrom_session,
)
from stub_device import bl2_device, brom_device, connect, silent_device

BL2_CODE = bytes(range(64))
A32_CODE = b"\x00\xf0\x20\xe3" * 4
FIP = bytes((i * 31) & 0xFF for i in range(5000))


class FlakyClient:
    """Fails the first `failures` handshakes."""

    def __init__(self, failures):
        self.failures = failures
        self.attempts = 0

    def handshake(self):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise HandshakeTimeout("no answer")


# =============================================================================
#  BUILDING BLOCKS
# =============================================================================

def test_payload_from_file(tmp_path):
    path = tmp_path / "bl2.bin"
    path.write_bytes(BL2_CODE)
    payload = Payload.from_file(path, 0x201000)
    assert payload.data == BL2_CODE
    assert payload.load_address == 0x201000
    assert payload.name == "bl2.bin"
    assert len(payload) == 64


@pytest.mark.parametrize("bits, message", [
    (0x1, "Secure boot enabled."),
    (0x2, "Serial link authorization enabled."),
    (0x4, "Download agent authorization enabled."),
    (0x7, "Secure boot enabled."),
])
def test_check_security(bits, message):
    with pytest.raises(SecurityPrecondition, match=message):
        check_security(SecurityConfig.from_bits(bits))


def test_check_security_clear():
    check_security(SecurityConfig.from_bits(0))


class TestHandshakeRetries:
    def test_no_retries(self):
        client = FlakyClient(failures=0)
        handshake_with_retries(client, 0)
        assert client.attempts == 1

    def test_recovers_within_budget(self):
        client = FlakyClient(failures=2)
        handshake_with_retries(client, 2)
        assert client.attempts == 3

    def test_gives_up(self):
        client = FlakyClient(failures=5)
        with pytest.raises(HandshakeTimeout):
            handshake_with_retries(client, 1)
        assert client.attempts == 2


# =============================================================================
#  BOOTROM SESSION
# =============================================================================

class TestBootROMSession:
    def test_upload_and_jump(self):
        calls = []
        transport, fake = connect(brom_device, hw_code=0x1234, calls=calls)
        returned = run_bootrom_session(transport, Payload(BL2_CODE, 0x201000))
        assert returned is transport
        assert transport.owner is None
        assert calls == [0xFD, 0xFC, 0xD8, 0xD7, 0xD5, ("jump", 0x201000)]

    def test_a32_payload_is_entry(self):
        calls = []
        transport, _ = connect(brom_device, calls=calls)
        run_bootrom_session(transport, Payload(BL2_CODE, 0x201000),
                            Payload(A32_CODE, 0x200a00))
        assert calls.count(0xD7) == 2
        assert calls[-1] == ("jump", 0x200a00)

    def test_secure_boot_stops_before_upload(self):
        calls = []
        transport, fake = connect(brom_device, target_config=0x1, calls=calls)
        with pytest.raises(SecurityPrecondition, match="Secure boot enabled."):
            run_bootrom_session(transport, Payload(BL2_CODE, 0x201000))
        assert 0xD7 not in calls
        assert BL2_CODE not in bytes(fake.written)
        assert transport.owner is None

    def test_checksum_failure_releases_transport(self):
        transport, _ = connect(brom_device, checksum=0xBEEF)
        with pytest.raises(ChecksumMismatch):
            run_bootrom_session(transport, Payload(BL2_CODE, 0x201000))
        assert transport.owner is None

    def test_silent_rom(self):
        transport, _ = connect(silent_device)
        with pytest.raises(HandshakeTimeout):
            run_bootrom_session(transport, Payload(BL2_CODE, 0x201000),
                                handshake_retries=1)
        assert transport.owner is None


# =============================================================================
#  BL2 SESSION
# =============================================================================

def test_bl2_session():
    calls = []
    transport, fake = connect(bl2_device, banner=False, calls=calls)
    assert run_bl2_session(transport, FIP, 921600) is transport
    assert calls == [0x01, 0x02, ("baud", 921600), 0x03, ("fip", FIP), 0x04]
    assert transport.baudrate == 921600
    assert transport.owner is None


# =============================================================================
#  WHOLE CHAIN
# =============================================================================

class TestBoot:
    def test_without_fip(self):
        transport, _ = connect(brom_device)
        assert boot(transport, Payload(BL2_CODE, 0x201000)) is True
        assert transport.owner is None

    def test_full_chain(self, capsys):
        brom_calls, bl2_calls = [], []
        transport, fake = connect(
            brom_device, calls=brom_calls,
            after_jump=lambda port: bl2_device(port, calls=bl2_calls))

        assert boot(transport, Payload(BL2_CODE, 0x201000), fip=FIP,
                    bl2_baudrate=921600, banner_timeout=7.0)

        assert brom_calls[-1] == ("jump", 0x201000)
        assert ("fip", FIP) in bl2_calls
        assert bl2_calls[-1] == 0x04
        assert fake.baud_history == [115200, 921600]
        out = capsys.readouterr().out
        assert "Waiting for BL2. Message below:" in out
        assert "Starting UART download handshake" in out
        assert "Received FIP" in out
        # banner scans hand the port back with its configured timeout
        assert fake.timeout == 2.0

    def test_bl2_never_ready(self):
        bl2_calls = []
        transport, _ = connect(
            brom_device,
            after_jump=lambda port: bl2_device(port, banner=False, calls=bl2_calls))
        assert boot(transport, Payload(BL2_CODE, 0x201000), fip=FIP) is False
        assert bl2_calls == []
        assert transport.owner is None
