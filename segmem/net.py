"""TCP connections carrying packets between the modules."""

from __future__ import annotations

import logging
import re
import socket
import struct
import time

from segmem.model import OpCode
from segmem.wire import HEADER_SIZE, Packet, Reader, message_packet

_LOG = logging.getLogger(__name__)
_UINT32 = struct.Struct("<I")
_LINE_BREAKS = re.compile(r"[\r\n]+")

HANDSHAKE_OK = 0
HANDSHAKE_ERROR = 0xFFFF_FFFF


def _text(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", errors="replace")


class Connection:
    """A connected socket that speaks the packet protocol."""

    def __init__(self, sock: socket.socket, logger: logging.Logger | None = None) -> None:
        self.socket = sock
        self.logger = logger or _LOG

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _receive_exactly(self, size: int) -> bytes:
        data = bytearray()
        while len(data) < size:
            chunk = self.socket.recv(size - len(data))
            if not chunk:
                raise EOFError("connection closed by peer")
            data += chunk
        return bytes(data)

    def send_uint32(self, value: int) -> None:
        """Send an unsigned 32-bit integer; negative values wrap around."""
        self.socket.sendall(_UINT32.pack(value & 0xFFFF_FFFF))

    def receive_uint32(self) -> int:
        """Receive an unsigned 32-bit integer."""
        return _UINT32.unpack(self._receive_exactly(_UINT32.size))[0]

    def handshake(self, value: int, module: str) -> int:
        """Send ``value`` and wait for the peer's verdict.

        Raises ConnectionError when the peer rejects the handshake.
        """
        self.send_uint32(value)
        result = self.receive_uint32()
        if result != HANDSHAKE_OK:
            self.logger.error("Handshake with %s failed", module)
            raise ConnectionError(f"handshake with {module} was rejected")
        self.logger.info("Connection established with %s", module)
        return result

    def answer_handshake(self) -> bool:
        """Answer a client's handshake: accept it when the client sent 1."""
        accepted = self.receive_uint32() == 1
        self.send_uint32(HANDSHAKE_OK if accepted else HANDSHAKE_ERROR)
        return accepted

    def send_message(self, text: str) -> None:
        """Send ``text`` as a MESSAGE packet."""
        self.socket.sendall(message_packet(text).to_bytes())

    def send_instruction(self, text: str) -> None:
        """Send ``text`` as an INSTRUCTION packet."""
        self.socket.sendall(message_packet(text, OpCode.INSTRUCTION).to_bytes())

    def send_packet(self, packet: Packet, module: str) -> bool:
        """Send ``packet`` and wait for the byte count the peer acknowledges.

        Returns whether the acknowledged count matches the bytes sent.
        """
        data = packet.to_bytes()
        self.socket.sendall(data)
        self.logger.debug("Data sent, waiting for an answer from %s...", module)
        acknowledged = self.receive_uint32()
        if acknowledged == len(data):
            self.logger.debug("Data sent correctly")
            return True
        self.logger.error("Fewer bytes arrived than were sent to %s", module)
        return False

    def receive_operation(self) -> int:
        """Receive the op code of the next packet.

        Closes the connection and raises EOFError when the peer has gone.
        """
        try:
            raw = self._receive_exactly(4)
        except EOFError:
            self.close()
            raise
        value = struct.unpack("<i", raw)[0]
        try:
            return OpCode(value)
        except ValueError:
            return value

    def receive_buffer(self) -> bytes:
        """Receive a payload preceded by its size."""
        return self._receive_exactly(self.receive_uint32())

    def receive_message(self) -> str:
        """Receive a payload holding a NUL-terminated string."""
        text = _text(self.receive_buffer())
        self.logger.debug("Received instruction: %s", text)
        return text

    def receive_instructions(self) -> list[str]:
        """Receive length-prefixed blocks of text and split them into lines.

        The number of bytes taken, header included, is sent back to the peer.
        """
        buffer = self.receive_buffer()
        reader = Reader(buffer)
        lines: list[str] = []
        while reader.offset < len(buffer):
            text = _text(reader.read_bytes(reader.read_uint32()))
            lines.extend(token for token in _LINE_BREAKS.split(text) if token)
        self.send_uint32(reader.offset + HEADER_SIZE)
        return lines

    def close(self) -> None:
        """Close the socket."""
        self.logger.debug("Closing connection %s", self.socket.fileno())
        self.socket.close()


def connect(host: str, port: int | str, module: str, retry_delay: float = 1.0) -> Connection:
    """Connect to ``module``, retrying until it accepts."""
    while True:
        try:
            sock = socket.create_connection((host, int(port)))
        except OSError:
            _LOG.info("Could not connect to module %s %s:%s, retrying...", module, host, port)
            time.sleep(retry_delay)
        else:
            return Connection(sock)


def listen(host: str | None, port: int | str) -> socket.socket:
    """Open a listening socket; ``None`` as host listens on every interface."""
    server = socket.create_server((host or "", int(port)), backlog=socket.SOMAXCONN)
    _LOG.debug("Ready to listen for clients")
    return server


def accept_client(server: socket.socket) -> Connection:
    """Wait for a client on ``server`` and return its connection."""
    sock, _ = server.accept()
    _LOG.debug("A client connected")
    return Connection(sock)