#!/usr/bin/env python3
"""
mtkboot: upload and execute binaries over UART for MediaTek SoCs

Usage:
    python mtkboot.py -s /dev/ttyUSB0 -p bl2.bin [-a a32.bin] [-f fip.bin]

Same as the installed `mtk-uartboot` command.
"""

import os
import sys

# Allow running from project root without installing
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from mtk_uartboot.cli import main

if __name__ == "__main__":
    sys.exit(main())
