"""
BootROM Download-Agent client
=============================

Drives the mask-ROM UART download protocol of MediaTek SoCs:

    Idle -> Handshaking -> Handshaken -> Queried -> SecurityChecked
         -> Uploading -> Jumped

  handshake()          A0 0A 50 05, each answered by its complement
  get_hw_code()        FD  -> hw_code u16, status u16
  get_hw_dict()        FC  -> hw_sub_code u16, hw_ver u16, sw_ver u16, status u16
  get_target_config()  D8  -> config u32, status u16
  send_da()            D7 addr len sig_len -> status, <data>, checksum u16, status
  jump_da()            D5 addr  (one frame, nothing read back, the ROM is gone)

The client only reports the security flags. Refusing to continue when one
is set is the caller's job (see session.check_security).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto

from .engine import FramedClient
from .errors import ChecksumMismatch, ShortWrite, StatusError
from .protocol import (
    BROM_PROTOCOL,
    TARGET_CONFIG_DAA,
    TARGET_CONFIG_SBC,
    TARGET_CONFIG_SLA,
    compute_checksum,
    encode_command,
    encode_u32,
    hexdump,
)

log = logging.getLogger('mtk_uartboot.bootrom')


class BootROMState(Enum):
    IDLE = auto()
    HANDSHAKING = auto()
    HANDSHAKEN = auto()
    QUERIED = auto()
    SECURITY_CHECKED = auto()
    UPLOADING = auto()
    JUMPED = auto()


@dataclass(frozen=True)
class HardwareIdentity:
    """Chip identification reported by the ROM. Informational only."""
    hw_code: int
    hw_sub_code: int
    hw_ver: int
    sw_ver: int

    def __str__(self) -> str:
        return (f"hw code 0x{self.hw_code:04x}, sub code 0x{self.hw_sub_code:04x}, "
                f"hw ver 0x{self.hw_ver:04x}, sw ver 0x{self.sw_ver:04x}")


@dataclass(frozen=True)
class SecurityConfig:
    """Decoded GET_TARGET_CONFIG bitfield."""
    secure_boot: bool
    sla_enabled: bool
    daa_enabled: bool

    @classmethod
    def from_bits(cls, config: int) -> "SecurityConfig":
        return cls(
            secure_boot=bool(config & TARGET_CONFIG_SBC),
            sla_enabled=bool(config & TARGET_CONFIG_SLA),
            daa_enabled=bool(config & TARGET_CONFIG_DAA),
        )

    @property
    def any_enabled(self) -> bool:
        return self.secure_boot or self.sla_enabled or self.daa_enabled


class BootROM(FramedClient):
    """Session with the SoC BootROM over an exclusively owned transport."""

    PROTOCOL = BROM_PROTOCOL
    INITIAL = BootROMState.IDLE
    HANDSHAKING = BootROMState.HANDSHAKING
    READY = BootROMState.HANDSHAKEN
    TERMINAL = frozenset({BootROMState.JUMPED})

    def handshake(self) -> None:
        self._handshake()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_hw_code(self) -> int:
        """Chip id, e.g. 0x7986. The ROM reports it as a u16 (widened to int)."""
        self._require_handshake("get_hw_code")
        self._command("GET_HW_CODE")
        hw_code = self._read_int(2, "hw code")
        self._read_status("GET_HW_CODE")
        self.state = BootROMState.QUERIED
        return hw_code

    def get_hw_dict(self):
        """Returns (hw_sub_code, hw_ver, sw_ver)."""
        self._require_handshake("get_hw_dict")
        self._command("GET_HW_SW_VER")
        hw_sub_code = self._read_int(2, "hw sub code")
        hw_ver = self._read_int(2, "hw ver")
        sw_ver = self._read_int(2, "sw ver")
        self._read_status("GET_HW_SW_VER")
        self.state = BootROMState.QUERIED
        return hw_sub_code, hw_ver, sw_ver

    def get_identity(self) -> HardwareIdentity:
        hw_code = self.get_hw_code()
        hw_sub_code, hw_ver, sw_ver = self.get_hw_dict()
        return HardwareIdentity(hw_code, hw_sub_code, hw_ver, sw_ver)

    def get_target_config(self):
        """Returns (secure_boot, sla, daa)."""
        config = self.get_security_config()
        return config.secure_boot, config.sla_enabled, config.daa_enabled

    def get_security_config(self) -> SecurityConfig:
        self._require_handshake("get_target_config")
        self._command("GET_TARGET_CONFIG")
        bits = self._read_int(4, "target config")
        self._read_status("GET_TARGET_CONFIG")
        self.state = BootROMState.SECURITY_CHECKED
        config = SecurityConfig.from_bits(bits)
        log.debug(f"target config 0x{bits:08x}: {config}")
        return config

    # -------------------------------------------------------------------------
    # Upload / execute
    # -------------------------------------------------------------------------

    def send_da(self, address: int, sig_len: int, payload: bytes) -> int:
        """
        Upload payload to address and return the device checksum.

        sig_len is the length of a signature appended to the payload
        (0 for unsigned code). Raises ChecksumMismatch when the device
        nacks the data or reports a checksum different from ours, and
        ShortWrite when the device acknowledges a different length.
        Out-of-range address or sig_len raise ValueError before any byte
        is sent.
        """
        self._require_handshake("send_da")
        # all header fields must encode before the opcode goes out
        for value in (address, len(payload), sig_len):
            encode_u32(value)
        length = len(payload)
        expected = compute_checksum(payload, self.protocol.checksum)

        self.state = BootROMState.UPLOADING
        self._command("SEND_DA")
        self._echo_field(address, "SEND_DA address")
        acked = self._echo_u32(length, "SEND_DA length")
        if acked != length:
            raise ShortWrite(f"device acknowledged {acked} bytes, payload is {length}")
        self._echo_field(sig_len, "SEND_DA signature length")
        self._read_status("SEND_DA")

        log.info(f"Uploading {length} bytes to 0x{address:08x}...")
        self._stream(payload, "SEND_DA")

        width = self.protocol.checksum.byte_width
        actual = self._read_int(width, "SEND_DA checksum")
        try:
            self._read_status("SEND_DA data")
        except StatusError as e:
            raise ChecksumMismatch(
                f"device rejected upload to 0x{address:08x} (status 0x{e.status:04x})",
                expected, actual) from e
        if actual != expected:
            raise ChecksumMismatch(
                f"checksum mismatch at 0x{address:08x}: "
                f"local 0x{expected:04x}, device 0x{actual:04x}",
                expected, actual)
        return actual

    def jump_da(self, address: int) -> None:
        """
        Start execution at address. The ROM stops answering once it jumps,
        so opcode and address go out as one frame and nothing is read.
        Terminal for this client; call release() to take the transport back.
        """
        self._require_handshake("jump_da")
        frame = encode_command(self.protocol.opcode("JUMP_DA"), address)
        log.debug(f"JUMP_DA: {hexdump(frame)}")
        self._write(frame)
        self.state = BootROMState.JUMPED
        log.info(f"Jumped to 0x{address:08x}")
