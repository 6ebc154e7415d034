"""
mtk-uartboot command line.

Usage:
    mtk-uartboot -s /dev/ttyUSB0 -p bl2.bin
    mtk-uartboot -s /dev/ttyUSB0 -p bl2.bin -a a32_trampoline.bin
    mtk-uartboot -s /dev/ttyUSB0 -p bl2.bin -f fip.bin --bl2-load-baudrate 921600
    mtk-uartboot --list-ports
"""

import argparse
import logging
import sys
from pathlib import Path

import serial

from . import __version__
from .config import (
    BANNER_TIMEOUT,
    DEFAULT_A32_LOAD_ADDR,
    DEFAULT_BAUD,
    DEFAULT_BL2_BAUD,
    DEFAULT_LOAD_ADDR,
    DEFAULT_TIMEOUT,
)
from .errors import UartbootError
from .session import Payload, boot
from .transport import SerialTransport

log = logging.getLogger('mtk_uartboot')


def parse_int_arg(value: str) -> int:
    """u32 argument in hex (0x...) or decimal."""
    try:
        number = int(value, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if not 0 <= number <= 0xFFFFFFFF:
        raise argparse.ArgumentTypeError(f"out of u32 range: {value}")
    return number


def parse_baud_arg(value: str) -> int:
    """Positive baud rate that fits the u32 BAUDRATE argument."""
    rate = parse_int_arg(value)
    if rate == 0:
        raise argparse.ArgumentTypeError("baud rate must be positive")
    return rate


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mtk-uartboot",
        description="Upload and execute binaries over UART for MediaTek SoCs",
    )
    parser.add_argument('--serial', '-s', help='Serial port (e.g. /dev/ttyUSB0, COM3)')
    parser.add_argument('--payload', '-p', help='Path to the binary code to be executed')
    parser.add_argument('--load-addr', '-l', type=parse_int_arg, default=DEFAULT_LOAD_ADDR,
                        help=f'Load address of the payload (default: 0x{DEFAULT_LOAD_ADDR:x})')
    parser.add_argument('--a32-payload', '-a',
                        help='Additional ARMv7 payload; both are loaded and execution '
                             'starts at this one')
    parser.add_argument('--a32-load-addr', type=parse_int_arg, default=DEFAULT_A32_LOAD_ADDR,
                        help=f'Load address of the A32 payload (default: 0x{DEFAULT_A32_LOAD_ADDR:x})')
    parser.add_argument('--fip', '-f',
                        help='FIP to hand to a BL2 built with UART download support')
    parser.add_argument('--bl2-load-baudrate', type=parse_baud_arg, default=DEFAULT_BL2_BAUD,
                        help=f'Baud rate for the FIP transfer (default: {DEFAULT_BL2_BAUD})')
    parser.add_argument('--baudrate', '-b', type=parse_baud_arg, default=DEFAULT_BAUD,
                        help=f'Initial BootROM baud rate (default: {DEFAULT_BAUD})')
    parser.add_argument('--timeout', '-t', type=float, default=DEFAULT_TIMEOUT,
                        help=f'Per-read timeout in seconds (default: {DEFAULT_TIMEOUT})')
    parser.add_argument('--handshake-retries', type=int, default=0,
                        help='Extra BootROM handshake attempts before giving up')
    parser.add_argument('--list-ports', '-L', action='store_true',
                        help='List available serial ports')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable debug logging (raw TX/RX)')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def list_serial_ports() -> None:
    ports = SerialTransport.list_ports()
    if not ports:
        print("No serial ports found!")
        return
    print("Available serial ports:")
    for device in ports:
        print(f"  {device}")


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.list_ports:
        list_serial_ports()
        return 0
    if not args.serial or not args.payload:
        parser.error("--serial and --payload are required")
    if args.handshake_retries < 0:
        parser.error("--handshake-retries must be >= 0")

    try:
        payload = Payload.from_file(args.payload, args.load_addr)
        a32_payload = None
        if args.a32_payload:
            a32_payload = Payload.from_file(args.a32_payload, args.a32_load_addr)
        fip = Path(args.fip).read_bytes() if args.fip else None
    except OSError as e:
        log.error(f"failed to open payload: {e}")
        return 1

    try:
        transport = SerialTransport.open(args.serial, args.baudrate, args.timeout)
    except serial.SerialException as e:
        log.error(f"Failed to open port: {e}")
        return 1

    try:
        ok = boot(transport, payload, a32_payload, fip,
                  bl2_baudrate=args.bl2_load_baudrate,
                  handshake_retries=args.handshake_retries,
                  banner_timeout=max(args.timeout, BANNER_TIMEOUT))
    except UartbootError as e:
        log.error(f"{type(e).__name__}: {e}")
        return 1
    except serial.SerialException as e:
        log.error(f"Serial error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nAborted by user")
        return 1
    finally:
        transport.close()

    # Missing BL2 banner is not an error, matching a plain early return
    if not ok:
        log.info("BL2 handshake banner not seen; stopping")
    return 0


if __name__ == '__main__':
    sys.exit(main())
