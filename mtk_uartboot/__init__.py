"""
mtk-uartboot: run custom code on MediaTek SoCs over a raw UART
==============================================================

Pushes a binary into SoC SRAM through the BootROM download protocol,
jumps to it, and optionally feeds a FIP to the BL2 it started.

Architecture:
    ┌───────────┐   ┌──────────┐   ┌─────────────┐   ┌──────────┐
    │ Transport │──>│ BootROM  │──>│ banner scan │──>│ BL2      │
    │ (pyserial)│   │ (DA load)│   │ (text lines)│   │ (FIP)    │
    └───────────┘   └──────────┘   └─────────────┘   └──────────┘

    - transport.py: exclusive serial handle, moved from owner to owner
    - protocol.py:  command encoding, checksums, protocol descriptors
    - engine.py:    handshake / echo / status / chunked upload, shared
    - bootrom.py:   BootROM Download-Agent client
    - bl2.py:       BL2 UART-download client
    - banner.py:    console line scanner used between sessions
    - session.py:   the BootROM -> banner -> BL2 sequence
"""

__version__ = "0.1.0"

from .errors import (
    UartbootError,
    TransportError,
    TransportTimeout,
    ShortWrite,
    LinkLost,
    ProtocolError,
    ShortReply,
    UnexpectedReply,
    StatusError,
    SessionStateError,
    HandshakeTimeout,
    BaudSwitchFailed,
    ChecksumMismatch,
    SecurityPrecondition,
)
from .protocol import (
    BL2_PROTOCOL,
    BROM_PROTOCOL,
    ChecksumSpec,
    ProtocolDescriptor,
    compute_checksum,
    encode_command,
    read_reply,
)
from .transport import SerialTransport
from .bootrom import BootROM, BootROMState, HardwareIdentity, SecurityConfig
from .bl2 import BL2Client, BL2State
from .banner import wait_for_line
from .session import Payload, boot, check_security, run_bl2_session, run_bootrom_session
