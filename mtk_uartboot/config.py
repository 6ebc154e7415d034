"""
Default settings for mtk-uartboot.

There is no configuration file; the CLI overrides these values.
"""

# =============================================================================
#  SERIAL
# =============================================================================
DEFAULT_BAUD = 115200        # BootROM UART rate
DEFAULT_TIMEOUT = 2.0        # Per-read timeout, seconds
WRITE_TIMEOUT = 2.0
BYTESIZE = 8
PARITY = "N"
STOPBITS = 1

# =============================================================================
#  LOAD ADDRESSES
# =============================================================================
DEFAULT_LOAD_ADDR = 0x201000       # Primary (AArch64 BL2) payload
DEFAULT_A32_LOAD_ADDR = 0x200a00   # Optional ARMv7 trampoline payload

# =============================================================================
#  BL2 UART DOWNLOAD
# =============================================================================
DEFAULT_BL2_BAUD = 921600
BL2_READY_BANNER = "Starting UART download handshake"
BL2_DONE_BANNER = "Received FIP"
BANNER_TIMEOUT = 2.0         # Read timeout while scanning console lines
