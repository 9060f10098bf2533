"""
=============================================================================
WIRE CODEC
=============================================================================

Encodes and decodes the two frames of the upload protocol.

=============================================================================
FRAME LAYOUT
=============================================================================

All integers are little-endian and fixed width.

    REQUEST (client -> server):

    ┌──────────────┬─────────────────────┬──────────────┬──────────────────┐
    │ int32        │ bytes               │ int64        │ bytes            │
    │ name_length  │ file_name (utf-8)   │ file_size    │ payload          │
    │ (4 bytes)    │ (name_length bytes) │ (8 bytes)    │ (file_size bytes)│
    └──────────────┴─────────────────────┴──────────────┴──────────────────┘

    RESPONSE (server -> client):

    ┌──────────────┬──────────────────────────────┐
    │ int32        │ bytes                        │
    │ msg_length   │ message (utf-8)              │
    └──────────────┴──────────────────────────────┘

The payload is NOT length-delimited any further: the receiver reads exactly
file_size bytes from the stream. That is why this module only decodes the
request HEADER; the payload is streamed by the handler straight to disk.

=============================================================================
VALIDATION (fail fast, before any payload byte is read)
=============================================================================

    name_length   0 < n <= 260          checked BEFORE reading the name
    file_name     non-empty, no "..",   checked after utf-8 decoding
                  no control chars
    file_size     0 < n <= 100 MiB      checked before the payload

=============================================================================
ERROR REPLIES
=============================================================================

A reply whose body starts with ERROR_MARKER is a failure. That prefix is
the only thing the client looks at to tell success from failure.
=============================================================================
"""

import re
import struct
from dataclasses import dataclass
from typing import Callable

from ..errors import ProtocolError, ValidationError
from ..analysis.analyzer import AnalysisResult


# ─────────────────────────────────────────────────────────────────────────────
# PROTOCOL CONSTANTS
# ─────────────────────────────────────────────────────────────────────────────

MAX_FILE_NAME_LENGTH = 260
MAX_FILE_SIZE = 100 * 1024 * 1024  # 100 MiB
MAX_RESPONSE_LENGTH = 64 * 1024
CHUNK_SIZE = 8192

ERROR_MARKER = "ERROR:"

INT32 = struct.Struct("<i")
INT64 = struct.Struct("<q")

# A callable returning exactly n bytes or raising ProtocolError.
ReadExact = Callable[[int], bytes]

_SUCCESS_PATTERN = re.compile(
    r"^File name: (?P<name>.*)\n"
    r"Lines: (?P<lines>\d+), Words: (?P<words>\d+), Characters: (?P<chars>\d+)$",
    re.DOTALL,
)


@dataclass(frozen=True)
class TransferHeader:
    """
    Decoded request header.

    The payload that follows it on the wire is exactly file_size bytes.
    """
    file_name: str
    file_size: int


# =============================================================================
# VALIDATION
# =============================================================================

def validate_name_length(length: int) -> None:
    """Reject name lengths outside (0, MAX_FILE_NAME_LENGTH]."""
    if length <= 0 or length > MAX_FILE_NAME_LENGTH:
        raise ValidationError(f"Invalid file name length: {length}")


def validate_file_name(file_name: str) -> None:
    """
    Reject empty names, names with a parent-directory segment and names
    with control characters.

    The name is written verbatim on the "File:" line of the result log, so
    a newline in it would split the log block.
    """
    if not file_name or not file_name.strip() or ".." in file_name:
        raise ValidationError(f"Invalid file name: {file_name!r}")
    if any(ord(c) < 32 or c == "\x7f" for c in file_name):
        raise ValidationError(f"Invalid file name: {file_name!r}")


def validate_file_size(file_size: int) -> None:
    """Reject sizes outside (0, MAX_FILE_SIZE]."""
    if file_size <= 0 or file_size > MAX_FILE_SIZE:
        raise ValidationError(f"Invalid file size: {file_size} bytes")


# =============================================================================
# REQUEST
# =============================================================================

def encode_request_header(file_name: str, file_size: int) -> bytes:
    """
    Build the request header that precedes the payload.

    The client applies the same limits as the server so a bad upload
    fails locally instead of after a round trip.

    Args:
        file_name: Base name of the file being sent.
        file_size: Exact number of payload bytes that will follow.

    Returns:
        Header bytes: name length, name, file size.

    Raises:
        ValidationError: If any field is outside the protocol limits.
    """
    name_bytes = file_name.encode("utf-8")
    validate_name_length(len(name_bytes))
    validate_file_name(file_name)
    validate_file_size(file_size)
    return INT32.pack(len(name_bytes)) + name_bytes + INT64.pack(file_size)


def read_request_header(read_exact: ReadExact) -> TransferHeader:
    """
    Decode a request header from the stream.

    Each field is validated as soon as it is read, so an oversized name
    length is rejected before the name bytes are even requested.

    Args:
        read_exact: Returns exactly n bytes from the stream.

    Returns:
        The validated TransferHeader.

    Raises:
        ValidationError: A field is outside the protocol limits.
        ProtocolError: The stream ended early or the name is not utf-8.
    """
    (name_length,) = INT32.unpack(read_exact(INT32.size))
    validate_name_length(name_length)

    try:
        file_name = read_exact(name_length).decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError(f"File name is not valid UTF-8: {e}") from e
    validate_file_name(file_name)

    (file_size,) = INT64.unpack(read_exact(INT64.size))
    validate_file_size(file_size)

    return TransferHeader(file_name=file_name, file_size=file_size)


# =============================================================================
# RESPONSE
# =============================================================================

def encode_response(message: str) -> bytes:
    """Frame a reply message with its int32 length prefix."""
    body = message.encode("utf-8")
    return INT32.pack(len(body)) + body


def read_response(read_exact: ReadExact) -> str:
    """
    Decode a reply frame from the stream.

    Raises:
        ProtocolError: Negative or oversized length, truncated body,
                       or a body that is not utf-8.
    """
    (length,) = INT32.unpack(read_exact(INT32.size))
    if length < 0 or length > MAX_RESPONSE_LENGTH:
        raise ProtocolError(f"Invalid response length: {length}")
    try:
        return read_exact(length).decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError(f"Response is not valid UTF-8: {e}") from e


def format_success(result: AnalysisResult) -> str:
    return (
        f"File name: {result.file_name}\n"
        f"Lines: {result.line_count}, "
        f"Words: {result.word_count}, "
        f"Characters: {result.char_count}"
    )


def format_error(reason: str) -> str:
    return f"{ERROR_MARKER} {reason}"


def is_error(message: str) -> bool:
    return message.startswith(ERROR_MARKER)


def strip_error_marker(message: str) -> str:
    """Return the reason text of an error reply."""
    return message[len(ERROR_MARKER):].strip()


def parse_success(message: str) -> AnalysisResult:
    """
    Parse a success reply back into an AnalysisResult.

    Raises:
        ProtocolError: If the message does not have the success layout.
    """
    match = _SUCCESS_PATTERN.match(message)
    if match is None:
        raise ProtocolError(f"Unrecognized response: {message!r}")
    return AnalysisResult(
        file_name=match.group("name"),
        line_count=int(match.group("lines")),
        word_count=int(match.group("words")),
        char_count=int(match.group("chars")),
    )
