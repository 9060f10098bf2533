"""
=============================================================================
UPLOAD CLIENT
=============================================================================

Sends one local file to the server and returns the statistics it computed.

=============================================================================
FLOW
=============================================================================

    send_file(path)
        │
        ├──► local checks          exists? non-empty? name/size in limits?
        │                          (no connection is opened if these fail)
        │
        ├──► _connect()            up to max_attempts, retry_delay apart
        │       attempt 1 ✗ ── sleep ── attempt 2 ✗ ── sleep ── attempt 3 ✗
        │                                                         │
        │                                     TransferConnectionError
        │
        ├──► send header + stream payload in chunks
        ├──► read reply frame
        │
        └──► "ERROR: ..."  → ServerReportedError
             otherwise     → AnalysisResult

=============================================================================
WHAT IS RETRIED?
=============================================================================

Only failures to ESTABLISH the connection (refused, unreachable, connect
timeout). Once connected, any failure (server-reported error, truncated
reply, reset mid-upload) propagates immediately. The server may already
have stored the file.
=============================================================================
"""

import socket
import time
import logging
from pathlib import Path
from typing import Optional, Union

from .analysis.analyzer import AnalysisResult
from .config import ClientConfig
from .errors import (
    ProtocolError,
    ServerReportedError,
    TransferConnectionError,
    ValidationError,
)
from .protocol.codec import (
    encode_request_header,
    is_error,
    parse_success,
    read_response,
    strip_error_marker,
)


logger = logging.getLogger(__name__)


class FileClient:
    """
    Client side of the upload protocol.

    Usage:
        client = FileClient(ClientConfig(host="127.0.0.1", port=5000))
        result = client.send_file("notes.txt")
        print(result.line_count, result.word_count, result.char_count)
    """

    def __init__(self, config: Optional[ClientConfig] = None, sleep=time.sleep):
        """
        Args:
            config: Client configuration. Defaults are used if omitted.
            sleep: Function used for the delay between attempts.
        """
        self.config = config or ClientConfig()
        self.config.validate()
        self._sleep = sleep
        self.attempts_made = 0

    def send_file(self, path: Union[str, Path]) -> AnalysisResult:
        """
        Upload one file and return the server's analysis.

        Raises:
            FileNotFoundError: The file does not exist.
            ValidationError: The file is empty or outside protocol limits.
            TransferConnectionError: No connection after max_attempts.
            ServerReportedError: The server replied with an error frame.
            ProtocolError: The reply could not be decoded.
            OSError: The connection broke after it was established.
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        file_size = path.stat().st_size
        if file_size == 0:
            raise ValidationError(f"File is empty: {path}")

        header = encode_request_header(path.name, file_size)

        with self._connect() as sock:
            logger.info(f"Connected to {self.config.host}:{self.config.port}")
            sock.sendall(header)
            self._send_payload(sock, path)
            logger.info(f"Sent {path.name} ({file_size} bytes)")
            message = read_response(lambda n: _recv_exact(sock, n))

        if is_error(message):
            reason = strip_error_marker(message)
            logger.error(f"Server rejected {path.name}: {reason}")
            raise ServerReportedError(reason)

        return parse_success(message)

    # =========================================================================
    # CONNECTION WITH RETRY
    # =========================================================================

    def _connect(self) -> socket.socket:
        """
        Open a TCP connection, retrying connection-level failures.

        Raises:
            TransferConnectionError: After max_attempts failed attempts.
        """
        self.attempts_made = 0
        address = (self.config.host, self.config.port)

        while True:
            self.attempts_made += 1
            try:
                return socket.create_connection(address, timeout=self.config.timeout)
            except OSError as e:
                if self.attempts_made >= self.config.max_attempts:
                    logger.error(
                        f"Could not connect to {address[0]}:{address[1]} "
                        f"after {self.attempts_made} attempts: {e}"
                    )
                    raise TransferConnectionError(
                        f"Could not connect to server at {address[0]}:{address[1]}. "
                        f"Check that the server is running and reachable.",
                        attempts=self.attempts_made,
                    ) from e

                logger.warning(
                    f"Connection failed ({e}), retry {self.attempts_made} "
                    f"of {self.config.max_attempts}..."
                )
                self._sleep(self.config.retry_delay)

    def _send_payload(self, sock: socket.socket, path: Path):
        with open(path, "rb") as f:
            while True:
                chunk = f.read(self.config.chunk_size)
                if not chunk:
                    break
                sock.sendall(chunk)


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    parts = []
    remaining = size
    while remaining > 0:
        chunk = sock.recv(remaining)
        if not chunk:
            raise ProtocolError(
                f"Server closed the connection after {size - remaining} of {size} bytes"
            )
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)
