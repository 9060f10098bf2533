"""
=============================================================================
PROTOCOL PACKAGE
=============================================================================

Wire format and error taxonomy shared by the server and the client.

    codec.py    frame encoding/decoding and header validation
    (the exception hierarchy lives in filestats.errors)

=============================================================================
"""

from ..errors import (
    FileStatsError,
    ValidationError,
    ProtocolError,
    TransferIncomplete,
    StorageError,
    ServerReportedError,
    TransferConnectionError,
)
from .codec import (
    TransferHeader,
    MAX_FILE_NAME_LENGTH,
    MAX_FILE_SIZE,
    CHUNK_SIZE,
    ERROR_MARKER,
    encode_request_header,
    read_request_header,
    encode_response,
    read_response,
    format_success,
    format_error,
    is_error,
    parse_success,
)

__all__ = [
    "FileStatsError",
    "ValidationError",
    "ProtocolError",
    "TransferIncomplete",
    "StorageError",
    "ServerReportedError",
    "TransferConnectionError",
    "TransferHeader",
    "MAX_FILE_NAME_LENGTH",
    "MAX_FILE_SIZE",
    "CHUNK_SIZE",
    "ERROR_MARKER",
    "encode_request_header",
    "read_request_header",
    "encode_response",
    "read_response",
    "format_success",
    "format_error",
    "is_error",
    "parse_success",
]
