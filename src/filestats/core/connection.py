"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with the reads and writes the
upload protocol needs.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. The client writes:

    send(<int32 name length>)
    send(<name bytes>)
    send(<int64 size>)
    send(<payload ...>)

and the server might receive ANY split of those bytes:

    recv() → 4 bytes of length + first 3 bytes of the name
    recv() → rest of the name + size + 8000 bytes of payload
    ...

So we never trust a single recv(). Two primitives cover the protocol:

    read_exact(n)   loop until exactly n bytes arrived (header fields)
    recv_chunk(n)   return whatever arrived, up to n (payload streaming)

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► WRITING ──────► CLOSING ──────► CLOSED
     │             │                               ▲
     └─────────────┴───────────────────────────────┘
                 (errors jump straight to CLOSING)

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..errors import ProtocolError


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, mostly useful in logs."""
    NEW = "new"              # Just accepted, nothing read yet
    READING = "reading"      # Reading header or payload
    WRITING = "writing"      # Sending the reply frame
    CLOSING = "closing"      # Shutdown sequence in progress
    CLOSED = "closed"        # Socket released


@dataclass
class Connection:
    """
    Represents one client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. EXACT READS                                                      │
    │     └── header fields need exactly 4 / n / 8 bytes                   │
    │     └── early EOF is a ProtocolError                                 │
    │                                                                      │
    │  2. CHUNKED READS                                                    │
    │     └── payload is streamed through a fixed-size buffer              │
    │     └── EOF or reset returns b"" (caller decides what it means)      │
    │                                                                      │
    │  3. BYTE ACCOUNTING                                                  │
    │     └── bytes_received counts everything read off the socket         │
    │                                                                      │
    │  4. GRACEFUL CLOSE                                                   │
    │     └── FIN first, drain leftovers, then release the descriptor      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short connection identifier for logs.
        state: Current connection state.
        created_at: Timestamp when the connection was accepted.
        bytes_received: Total bytes read from the socket.
    """

    # Required parameters
    socket: socket.socket
    address: tuple

    # Generated/default parameters
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    bytes_received: int = 0

    # Configuration (passed from ServerConfig)
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0

    # Upper bound on bytes discarded while closing
    drain_limit: int = 100 * 1024 * 1024

    def __post_init__(self):
        # Blocking socket with a per-operation timeout
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_exact(self, size: int) -> bytes:
        """
        Read exactly `size` bytes.

        Used for the fixed-width header fields, where a short read can
        only mean the peer went away mid-frame.

        Raises:
            ProtocolError: If the stream ends before `size` bytes arrived.
            socket.timeout: If the peer stalls longer than the timeout.
        """
        self.state = ConnectionState.READING
        parts = []
        remaining = size
        while remaining > 0:
            chunk = self._recv(min(remaining, self.buffer_size))
            if not chunk:
                raise ProtocolError(
                    f"Connection closed after {size - remaining} of {size} bytes"
                )
            parts.append(chunk)
            remaining -= len(chunk)
        return b"".join(parts)

    def recv_chunk(self, max_size: Optional[int] = None) -> bytes:
        """
        Read up to `max_size` bytes (default: buffer_size).

        Returns:
            The bytes received, or b"" once the peer closed or reset.
        """
        self.state = ConnectionState.READING
        return self._recv(max_size or self.buffer_size)

    def _recv(self, size: int) -> bytes:
        try:
            data = self.socket.recv(size)
        except (ConnectionResetError, BrokenPipeError):
            # Client disconnected abruptly
            return b""
        self.bytes_received += len(data)
        return data

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_all(self, data: bytes) -> bool:
        """
        Send all bytes to the client.

        Returns:
            True if sent, False if the client is gone.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR)  send FIN, the reply is complete
        2. drain              read what the client is still sending (e.g. the
                              payload of a rejected upload) so it can finish
                              writing and read our reply
        3. close()            release the file descriptor

        Safe to call more than once.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        try:
            self.socket.settimeout(0.5)
            drained = 0
            while drained < self.drain_limit:
                chunk = self.socket.recv(self.buffer_size)
                if not chunk:
                    break
                drained += len(chunk)
        except OSError:
            pass  # Includes socket.timeout

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        """
        Allows:

            with conn:
                header = read_request_header(conn.read_exact)
                ...
            # Connection closed here, whatever happened inside
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False  # Don't suppress exceptions
