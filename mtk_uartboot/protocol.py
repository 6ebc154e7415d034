"""
Framing & Checksum Codec
========================

Wire-level building blocks shared by the BootROM and BL2 clients:

  - ChecksumSpec / compute_checksum: running accumulator over fixed-width
    words. Width, byte order and combining operation are parameters, since
    ROM and bootloader revisions differ.
  - encode_command: opcode byte followed by big-endian u32 arguments.
  - ProtocolDescriptor: everything version-specific about one protocol
    (handshake magic, opcode table, status width, chunk size, checksum).

Frame formats:

  BootROM   TX [OP]            RX [OP]              (every byte echoed)
            TX [ARG u32 BE]    RX [ARG u32 BE]
            RX [payload...] [STATUS u16 BE]

  BL2       TX [OP] [ARG u32 BE ...]                (no echo)
            RX [payload...] [STATUS u8]

Checksums are opaque integers to the caller; they are only compared
against the value the device reports after an upload.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Dict, Mapping

from .errors import ShortReply, TransportTimeout

log = logging.getLogger('mtk_uartboot.protocol')


def hexdump(data: bytes, prefix: str = '', limit: int = 32) -> str:
    """Format bytes as hex string for logging. Long buffers are truncated."""
    if not data:
        return f"{prefix}<empty>"
    shown = data[:limit]
    hex_str = ' '.join(f'{b:02X}' for b in shown)
    if len(data) > limit:
        hex_str += ' ...'
    return f"{prefix}[{len(data):4d}] {hex_str}"


# =============================================================================
#  CHECKSUM
# =============================================================================

@dataclass(frozen=True)
class ChecksumSpec:
    """How a protocol revision folds payload bytes into a checksum."""
    word_size: int = 2          # bytes per accumulated word
    byteorder: str = "little"   # word byte order
    op: str = "xor"             # "xor" or "add"
    bits: int = 16              # result width

    def __post_init__(self):
        if self.word_size < 1:
            raise ValueError(f"word_size must be >= 1, got {self.word_size}")
        if self.byteorder not in ("little", "big"):
            raise ValueError(f"byteorder must be 'little' or 'big', got {self.byteorder!r}")
        if self.op not in ("xor", "add"):
            raise ValueError(f"op must be 'xor' or 'add', got {self.op!r}")
        if self.bits < 1:
            raise ValueError(f"bits must be >= 1, got {self.bits}")

    @property
    def mask(self) -> int:
        return (1 << self.bits) - 1

    @property
    def byte_width(self) -> int:
        """Bytes the device uses to report this checksum."""
        return (self.bits + 7) // 8


# MediaTek BootROM: XOR of 16-bit little-endian words
XOR16_LE = ChecksumSpec(word_size=2, byteorder="little", op="xor", bits=16)

# BL2 UART download: 32-bit sum of bytes
SUM8_32 = ChecksumSpec(word_size=1, byteorder="big", op="add", bits=32)


def compute_checksum(data: bytes, spec: ChecksumSpec = XOR16_LE) -> int:
    """
    Fold data into a checksum as described by spec.

    A trailing partial word is zero-padded for the computation; the
    payload that goes on the wire is not modified.
    """
    size = spec.word_size
    remainder = len(data) % size
    if remainder:
        data = bytes(data) + b"\x00" * (size - remainder)

    acc = 0
    for pos in range(0, len(data), size):
        word = int.from_bytes(data[pos:pos + size], spec.byteorder)
        if spec.op == "xor":
            acc ^= word
        else:
            acc += word
    return acc & spec.mask


# =============================================================================
#  COMMAND ENCODING
# =============================================================================

def encode_u32(value: int) -> bytes:
    """Big-endian u32 argument field."""
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"argument out of u32 range: {value:#x}")
    return struct.pack(">I", value)


def encode_command(opcode: int, *args: int) -> bytes:
    """Opcode byte followed by each argument as a big-endian u32."""
    if not 0 <= opcode <= 0xFF:
        raise ValueError(f"opcode out of byte range: {opcode:#x}")
    return bytes([opcode]) + b"".join(encode_u32(a) for a in args)


def decode_int(data: bytes) -> int:
    """Unsigned big-endian integer of any width (status words, counters)."""
    return int.from_bytes(data, "big")


def complement(value: int) -> int:
    """Expected handshake answer for one probe byte."""
    return (~value) & 0xFF


def read_reply(transport, expected_len: int, what: str = "reply") -> bytes:
    """
    Read exactly expected_len reply bytes.

    Blocks for at most the transport's read timeout. A timeout with
    fewer bytes is reported as ShortReply; nothing is retried.
    """
    try:
        data = transport.read_exact(expected_len)
    except TransportTimeout as e:
        raise ShortReply(expected_len, e.partial, what) from e
    log.debug(f"RX {what}: {hexdump(data)}")
    return data


# =============================================================================
#  PROTOCOL DESCRIPTORS
# =============================================================================

@dataclass(frozen=True)
class ProtocolDescriptor:
    """Version-specific constants for one framed UART protocol."""
    name: str
    handshake_magic: bytes
    opcodes: Mapping[str, int]
    checksum: ChecksumSpec
    echo_commands: bool = True
    status_width: int = 2
    chunk_size: int = 1024
    handshake_attempts: int = 2000
    handshake_budget: float = 30.0     # seconds
    probe_timeout: float = 0.1         # per probe read, seconds

    def opcode(self, name: str) -> int:
        try:
            return self.opcodes[name]
        except KeyError:
            raise KeyError(f"{self.name}: no opcode named {name!r}") from None


BROM_OPCODES: Dict[str, int] = {
    "GET_HW_CODE":       0xFD,
    "GET_HW_SW_VER":     0xFC,
    "GET_TARGET_CONFIG": 0xD8,
    "SEND_DA":           0xD7,
    "JUMP_DA":           0xD5,
}

BL2_OPCODES: Dict[str, int] = {
    "VERSION":  0x01,
    "BAUDRATE": 0x02,
    "SEND_FIP": 0x03,
    "GO":       0x04,
}

BROM_PROTOCOL = ProtocolDescriptor(
    name="BootROM",
    handshake_magic=bytes([0xA0, 0x0A, 0x50, 0x05]),
    opcodes=BROM_OPCODES,
    checksum=XOR16_LE,
    echo_commands=True,
    status_width=2,
    chunk_size=1024,
)

BL2_PROTOCOL = ProtocolDescriptor(
    name="BL2",
    handshake_magic=b"mudl",
    opcodes=BL2_OPCODES,
    checksum=SUM8_32,
    echo_commands=False,
    status_width=1,
    chunk_size=1024,
)

# Target config bits reported by GET_TARGET_CONFIG
TARGET_CONFIG_SBC = 1 << 0   # Secure boot
TARGET_CONFIG_SLA = 1 << 1   # Serial link authorization
TARGET_CONFIG_DAA = 1 << 2   # Download agent authorization
