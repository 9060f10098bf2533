"""
=============================================================================
UPLOAD HANDLER
=============================================================================

Drives ONE client connection from the first header byte to the close.

=============================================================================
STATE MACHINE
=============================================================================

    RECEIVE_HEADER ──► VALIDATE_HEADER ──► RECEIVE_PAYLOAD ──► VERIFY_LENGTH
                                                                     │
           ┌─────────────────────────────────────────────────────────┘
           ▼
        ANALYZE ──────► LOG ──────► RESPOND ──────► CLOSE
                                       ▲
                                       │
          any failure ─────────────────┘   (error frame: "ERROR: <reason>")

The header is read and validated field by field (the codec validates each
field as soon as it arrives), so RECEIVE_HEADER and VALIDATE_HEADER fail
before a single payload byte is read.

=============================================================================
PAYLOAD STREAMING
=============================================================================

    socket ──recv(≤ buffer_size)──► chunk ──write──► {save_dir}/{uuid}_{name}
                                      │
                                      └──► received += len(chunk)

The loop stops when `received` reaches the declared size or the client
stops sending (EOF, reset or timeout). Then:

    received == declared   → continue to ANALYZE
    received != declared   → TransferIncomplete, artifact deleted,
                             nothing written to the result log

The connection is closed on EVERY path by the `with conn:` block.
=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..analysis.analyzer import AnalysisResult, analyze_file
from ..core.connection import Connection
from ..errors import FileStatsError, ProtocolError, StorageError, TransferIncomplete
from ..protocol.codec import (
    CHUNK_SIZE,
    TransferHeader,
    encode_response,
    format_error,
    format_success,
    read_request_header,
)
from ..storage.file_store import FileStore
from ..storage.result_log import ResultLog
from ..transfer_log import TransferLog, emit, now_timestamp


logger = logging.getLogger(__name__)


class HandlerState(Enum):
    RECEIVE_HEADER = "receive_header"
    VALIDATE_HEADER = "validate_header"
    RECEIVE_PAYLOAD = "receive_payload"
    VERIFY_LENGTH = "verify_length"
    ANALYZE = "analyze"
    LOG = "log"
    RESPOND = "respond"
    CLOSE = "close"


@dataclass
class UploadOutcome:
    """
    What happened on one connection.

    Attributes:
        connection_id: Id of the Connection that was handled.
        state: Last state reached (CLOSE once the handler returns).
        failed_in: State in which the failure happened, if any.
        header: Decoded request header, if it got that far.
        bytes_received: Payload bytes written to disk.
        stored_path: Artifact path; None if nothing was kept.
        result: Statistics, on success.
        error: Error text sent to the client, on failure.
        error_type: Exception class name, on failure.
        reply_sent: Whether the reply frame reached the socket.
    """
    connection_id: str
    state: HandlerState = HandlerState.RECEIVE_HEADER
    failed_in: Optional[HandlerState] = None
    header: Optional[TransferHeader] = None
    bytes_received: int = 0
    stored_path: Optional[Path] = None
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    reply_sent: bool = False

    @property
    def succeeded(self) -> bool:
        return self.result is not None and self.error is None


class UploadHandler:
    """
    Per-connection upload pipeline.

    One UploadHandler is shared by all connection threads. It holds no
    per-connection state: everything about a connection lives in the
    UploadOutcome created inside handle(). The only shared mutable thing
    it touches is the ResultLog, which serializes its own appends.

    Usage:
        handler = UploadHandler(FileStore("ReceivedFiles"),
                                ResultLog("ReceivedFiles/analysis_result.txt"))
        outcome = handler.handle(conn)   # runs in the connection's thread
    """

    def __init__(
        self,
        file_store: FileStore,
        result_log: ResultLog,
        buffer_size: int = CHUNK_SIZE,
        log_format: str = "text",
    ):
        self.file_store = file_store
        self.result_log = result_log
        self.buffer_size = buffer_size
        self.log_format = log_format

    def handle(self, conn: Connection) -> UploadOutcome:
        """
        Run the full state machine for one connection.

        Never raises: every failure becomes an error frame for the client
        and an entry in the transfer log.
        """
        start_time = time.time()
        outcome = UploadOutcome(connection_id=conn.id)

        with conn:
            try:
                reply = format_success(self._process(conn, outcome))
            except FileStatsError as e:
                outcome.failed_in = outcome.state
                outcome.error = str(e)
                outcome.error_type = type(e).__name__
                logger.warning(f"[{conn.id}] Upload failed in {outcome.state.value}: {e}")
                reply = format_error(str(e))
            except Exception as e:
                outcome.failed_in = outcome.state
                outcome.error = "Internal server error"
                outcome.error_type = type(e).__name__
                logger.exception(f"[{conn.id}] Unexpected error in {outcome.state.value}")
                reply = format_error(outcome.error)

            outcome.state = HandlerState.RESPOND
            outcome.reply_sent = conn.send_all(encode_response(reply))
            outcome.state = HandlerState.CLOSE

        self._log_transfer(conn, outcome, start_time)
        return outcome

    # =========================================================================
    # PIPELINE
    # =========================================================================

    def _process(self, conn: Connection, outcome: UploadOutcome) -> AnalysisResult:
        # ─────────────────────────────────────────────────────────────────
        # RECEIVE + VALIDATE HEADER
        # ─────────────────────────────────────────────────────────────────
        outcome.state = HandlerState.RECEIVE_HEADER
        try:
            header = read_request_header(conn.read_exact)
        except socket.timeout as e:
            raise ProtocolError("Timed out waiting for request header") from e
        outcome.state = HandlerState.VALIDATE_HEADER
        outcome.header = header
        logger.debug(
            f"[{conn.id}] Receiving {header.file_name} ({header.file_size} bytes) "
            f"from {conn.client_ip}"
        )

        # ─────────────────────────────────────────────────────────────────
        # RECEIVE PAYLOAD + VERIFY LENGTH
        # ─────────────────────────────────────────────────────────────────
        path = self.file_store.allocate(header.file_name)
        try:
            outcome.state = HandlerState.RECEIVE_PAYLOAD
            outcome.bytes_received = self._receive_payload(conn, header, path)

            outcome.state = HandlerState.VERIFY_LENGTH
            if outcome.bytes_received != header.file_size:
                raise TransferIncomplete(header.file_size, outcome.bytes_received)
        except BaseException:
            self.file_store.discard(path)
            raise

        outcome.stored_path = path
        logger.info(f"[{conn.id}] Saved {header.file_name} as {path.name}")

        # ─────────────────────────────────────────────────────────────────
        # ANALYZE + LOG
        # ─────────────────────────────────────────────────────────────────
        outcome.state = HandlerState.ANALYZE
        result = analyze_file(path, header.file_name)

        outcome.state = HandlerState.LOG
        self.result_log.append(result)

        outcome.result = result
        return result

    def _receive_payload(self, conn: Connection, header: TransferHeader, path: Path) -> int:
        """
        Stream the payload to `path`.

        Never reads past the declared size, so trailing bytes from a
        misbehaving client stay in the socket.

        Returns:
            Number of bytes written (may be short if the client stopped).

        Raises:
            StorageError: If the artifact cannot be created or written.
        """
        received = 0
        try:
            f = open(path, "wb")
        except OSError as e:
            raise StorageError(f"Cannot create {path.name}: {e}") from e

        with f:
            while received < header.file_size:
                want = min(self.buffer_size, header.file_size - received)
                try:
                    chunk = conn.recv_chunk(want)
                except socket.timeout:
                    logger.warning(f"[{conn.id}] Timed out after {received} payload bytes")
                    break
                if not chunk:
                    break

                try:
                    f.write(chunk)
                except OSError as e:
                    raise StorageError(f"Cannot write {path.name}: {e}") from e
                received += len(chunk)

        return received

    def _log_transfer(self, conn: Connection, outcome: UploadOutcome, start_time: float):
        header = outcome.header
        emit(
            TransferLog(
                connection_id=conn.id,
                client_ip=conn.client_ip,
                file_name=header.file_name if header else "-",
                declared_size=header.file_size if header else 0,
                bytes_received=outcome.bytes_received,
                outcome="ok" if outcome.succeeded else (outcome.error_type or "error"),
                error=outcome.error,
                duration_ms=(time.time() - start_time) * 1000,
                timestamp=now_timestamp(),
            ),
            self.log_format,
        )
