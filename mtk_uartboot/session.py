"""
Boot orchestration: BootROM session, banner wait, BL2 session.

The transport moves strictly in sequence:

    caller -> BootROM -> caller (banner scan) -> BL2Client -> caller

Each client claims it on construction and returns it from release().
Only this module retries anything, and only the BootROM handshake, a
bounded number of times.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .banner import wait_for_line
from .bl2 import BL2Client
from .bootrom import BootROM, SecurityConfig
from .config import (
    BANNER_TIMEOUT,
    BL2_DONE_BANNER,
    BL2_READY_BANNER,
    DEFAULT_BL2_BAUD,
)
from .errors import HandshakeTimeout, SecurityPrecondition

log = logging.getLogger('mtk_uartboot.session')


@dataclass
class Payload:
    """Bytes to upload plus where they go. Consumed by one send_da call."""
    data: bytes
    load_address: int
    sig_len: int = 0
    name: str = "payload"

    @classmethod
    def from_file(cls, path, load_address: int, name: Optional[str] = None) -> "Payload":
        path = Path(path)
        return cls(data=path.read_bytes(), load_address=load_address,
                   name=name or path.name)

    def __len__(self) -> int:
        return len(self.data)


def check_security(config: SecurityConfig) -> None:
    """Refuse to continue if the ROM enforces any download authentication."""
    if config.secure_boot:
        raise SecurityPrecondition("Secure boot enabled.")
    if config.sla_enabled:
        raise SecurityPrecondition("Serial link authorization enabled.")
    if config.daa_enabled:
        raise SecurityPrecondition("Download agent authorization enabled.")


def handshake_with_retries(client, retries: int = 0) -> None:
    """Call client.handshake(), retrying at most `retries` extra times."""
    for attempt in range(retries + 1):
        try:
            client.handshake()
            return
        except HandshakeTimeout as e:
            if attempt == retries:
                raise
            log.warning(f"Handshake failed ({e}), retry {attempt + 1}/{retries}")


def upload(brom: BootROM, payload: Payload) -> int:
    log.info(f"sending {payload.name} to 0x{payload.load_address:x}...")
    checksum = brom.send_da(payload.load_address, payload.sig_len, payload.data)
    log.info(f"Checksum: 0x{checksum:x}")
    return checksum


def run_bootrom_session(transport, payload: Payload,
                        a32_payload: Optional[Payload] = None,
                        handshake_retries: int = 0):
    """
    Full BootROM session: handshake, identify, security check, upload,
    jump. With an A32 payload both are uploaded and execution starts at
    the A32 one. Returns the transport once the ROM has jumped.
    """
    brom = BootROM(transport)
    try:
        log.info("Handshake...")
        handshake_with_retries(brom, handshake_retries)

        identity = brom.get_identity()
        log.info(f"hw code: 0x{identity.hw_code:x}")
        log.info(f"hw sub code: 0x{identity.hw_sub_code:x}")
        log.info(f"hw ver: 0x{identity.hw_ver:x}")
        log.info(f"sw ver: 0x{identity.sw_ver:x}")

        check_security(brom.get_security_config())

        upload(brom, payload)
        entry = payload
        if a32_payload is not None:
            upload(brom, a32_payload)
            entry = a32_payload

        log.info(f"Jumping to 0x{entry.load_address:x}...")
        brom.jump_da(entry.load_address)
    finally:
        transport = brom.release()
    return transport


def run_bl2_session(transport, fip: bytes, baudrate: int = DEFAULT_BL2_BAUD):
    """Handshake with BL2, raise the rate, send the FIP and start it."""
    bl2 = BL2Client(transport)
    try:
        bl2.handshake()
        log.info(f"BL2 UART DL version: 0x{bl2.version():x}")
        bl2.set_baudrate(baudrate)
        checksum = bl2.send_fip(fip)
        log.info(f"FIP sent. Checksum: 0x{checksum:x}")
        bl2.go()
    finally:
        transport = bl2.release()
    return transport


def boot(transport, payload: Payload, a32_payload: Optional[Payload] = None,
         fip: Optional[bytes] = None, bl2_baudrate: int = DEFAULT_BL2_BAUD,
         handshake_retries: int = 0, banner_timeout: float = BANNER_TIMEOUT) -> bool:
    """
    Whole chain. Without a FIP this ends after the BootROM jump. Returns
    False if BL2 never announced its handshake.
    """
    transport = run_bootrom_session(transport, payload, a32_payload, handshake_retries)
    if fip is None:
        return True

    print("Waiting for BL2. Message below:")
    if not wait_for_line(transport, BL2_READY_BANNER, banner_timeout):
        return False

    transport = run_bl2_session(transport, fip, bl2_baudrate)

    if not wait_for_line(transport, BL2_DONE_BANNER, banner_timeout):
        log.warning("BL2 did not confirm the FIP")
    return True
