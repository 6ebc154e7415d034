"""
Framed protocol engine shared by the BootROM and BL2 clients.

Both boot stages speak the same dialect: a complemented-echo handshake,
single-byte opcodes with big-endian u32 arguments, fixed-width status
words and chunked raw uploads. The differences (magic bytes, opcode
table, echo behaviour, status width, checksum) live in a
ProtocolDescriptor, so one engine drives both.

The engine never retries and never swallows a failure. It also owns
the transport exclusively from construction until release().
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import FrozenSet, Optional

from .errors import (
    HandshakeTimeout,
    SessionStateError,
    TransportTimeout,
    UnexpectedReply,
    StatusError,
)
from .protocol import (
    ProtocolDescriptor,
    complement,
    decode_int,
    encode_command,
    encode_u32,
    hexdump,
    read_reply,
)

log = logging.getLogger('mtk_uartboot.engine')


class FramedClient:
    """
    Base class for one protocol session over an exclusively owned transport.

    Subclasses set PROTOCOL and describe their state machine with
    INITIAL / HANDSHAKING / READY states plus the set of TERMINAL states.
    """

    PROTOCOL: ProtocolDescriptor
    INITIAL: Enum
    HANDSHAKING: Enum
    READY: Enum
    TERMINAL: FrozenSet[Enum] = frozenset()

    def __init__(self, transport, protocol: Optional[ProtocolDescriptor] = None):
        self.protocol = protocol or self.PROTOCOL
        transport.claim(self)
        self._transport = transport
        self.state = self.INITIAL

    # -------------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------------

    @property
    def transport(self):
        if self._transport is None:
            raise SessionStateError(f"{self.protocol.name} client has released its transport")
        return self._transport

    def release(self):
        """Hand the transport back to the caller. The client is unusable afterwards."""
        transport = self.transport
        transport.release(self)
        self._transport = None
        return transport

    # -------------------------------------------------------------------------
    # State guards
    # -------------------------------------------------------------------------

    def _require_live(self, op: str) -> None:
        self.transport  # raises once released
        if self.state in self.TERMINAL:
            raise SessionStateError(
                f"{self.protocol.name}: {op} after session ended ({self.state.name})")

    def _require_handshake(self, op: str) -> None:
        self._require_live(op)
        if self.state in (self.INITIAL, self.HANDSHAKING):
            raise SessionStateError(f"{self.protocol.name}: {op} before handshake")

    # -------------------------------------------------------------------------
    # Handshake
    # -------------------------------------------------------------------------

    def _handshake(self) -> int:
        """
        Send the magic one byte at a time until every byte is answered with
        its complement. A wrong answer or a silent probe restarts the
        sequence. Returns the number of probes sent.
        """
        self._require_live("handshake")
        proto = self.protocol
        transport = self.transport
        magic = proto.handshake_magic

        self.state = self.HANDSHAKING
        saved_timeout = transport.read_timeout
        transport.set_read_timeout(proto.probe_timeout)
        transport.reset_input_buffer()

        deadline = time.monotonic() + proto.handshake_budget
        probes = 0
        index = 0
        try:
            while index < len(magic):
                if probes >= proto.handshake_attempts or time.monotonic() > deadline:
                    raise HandshakeTimeout(
                        f"{proto.name}: no handshake after {probes} probes "
                        f"(matched {index}/{len(magic)} bytes)")
                probe = magic[index]
                transport.write(bytes([probe]))
                probes += 1
                try:
                    answer = transport.read_exact(1)[0]
                except TransportTimeout:
                    index = 0
                    continue
                if answer == complement(probe):
                    index += 1
                else:
                    if index:
                        log.debug(f"{proto.name} handshake: 0x{probe:02X} answered "
                                  f"0x{answer:02X}, restarting")
                    index = 0
        except Exception:
            self.state = self.INITIAL
            raise
        finally:
            transport.set_read_timeout(saved_timeout)

        self.state = self.READY
        log.info(f"{proto.name} handshake OK ({probes} probes)")
        return probes

    # -------------------------------------------------------------------------
    # Primitives
    # -------------------------------------------------------------------------

    def _write(self, data: bytes) -> None:
        self.transport.write(data)

    def _read(self, n: int, what: str) -> bytes:
        return read_reply(self.transport, n, what)

    def _read_int(self, width: int, what: str) -> int:
        return decode_int(self._read(width, what))

    def _read_status(self, what: str) -> int:
        """Read one status field; nonzero raises StatusError."""
        status = self._read_int(self.protocol.status_width, f"{what} status")
        if status != 0:
            raise StatusError(what, status)
        return status

    def _echo(self, data: bytes, what: str) -> bytes:
        """Write data and read back the device's echo of it. Returns the echo."""
        self._write(data)
        answer = self._read(len(data), f"{what} echo")
        if answer != data:
            raise UnexpectedReply(what, data, answer)
        return answer

    def _echo_u32(self, value: int, what: str) -> int:
        """Write a u32 argument and return the value the device echoed."""
        field = encode_u32(value)
        self._write(field)
        return decode_int(self._read(4, f"{what} echo"))

    def _echo_field(self, value: int, what: str) -> None:
        echoed = self._echo_u32(value, what)
        if echoed != value:
            raise UnexpectedReply(what, encode_u32(value), encode_u32(echoed))

    def _command(self, name: str, *args: int) -> None:
        """
        Issue an opcode with its u32 arguments. Echoing protocols verify
        every field; the others send the whole frame at once.
        """
        opcode = self.protocol.opcode(name)
        if not self.protocol.echo_commands:
            frame = encode_command(opcode, *args)
            log.debug(f"{self.protocol.name} {name}: {hexdump(frame)}")
            self._write(frame)
            return
        self._echo(bytes([opcode]), name)
        for arg in args:
            self._echo_field(arg, name)

    def _stream(self, data: bytes, what: str, ack: bool = False) -> int:
        """
        Send data in chunk_size pieces. With ack=True each chunk is followed
        by a status read, so the read timeout applies per chunk.
        Returns the number of chunks.
        """
        size = self.protocol.chunk_size
        chunks = 0
        for pos in range(0, len(data), size):
            self._write(data[pos:pos + size])
            chunks += 1
            if ack:
                self._read_status(f"{what} chunk {chunks}")
        log.debug(f"{self.protocol.name}: streamed {len(data)} bytes in {chunks} chunks")
        return chunks
