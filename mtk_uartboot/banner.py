"""
Console banner scanner.

BL2 prints its boot log on the same UART the binary protocols use. The
orchestrator reads that log line by line, between binary sessions only,
to learn when BL2 is ready for the next stage. A protocol client that
still owns the transport blocks the scanner, so text reads can never
eat bytes in the middle of a binary command.
"""

import logging
from typing import Optional

from .config import BANNER_TIMEOUT
from .errors import SessionStateError

log = logging.getLogger('mtk_uartboot.banner')


def wait_for_line(transport, pattern: str, timeout: Optional[float] = BANNER_TIMEOUT,
                  echo: bool = True) -> bool:
    """
    Read console lines until one contains pattern or a read times out.

    Every line is printed between separator rules when echo is set.
    Returns True if the pattern was seen. The transport read timeout is
    only replaced for the duration of the scan.
    """
    if transport.owner is not None:
        raise SessionStateError(
            f"{transport.port} is held by {type(transport.owner).__name__}; "
            f"cannot scan console text")
    saved_timeout = transport.read_timeout
    if timeout is not None:
        transport.set_read_timeout(timeout)

    found = False
    if echo:
        print("=" * 34)
    try:
        while True:
            line = transport.read_line()
            if line is None:
                break
            if echo:
                print(line)
            if pattern in line:
                found = True
                break
    finally:
        transport.set_read_timeout(saved_timeout)
    if echo:
        print("=" * 34)

    if not found:
        log.warning(f"Timeout waiting for {pattern!r}")
    return found
