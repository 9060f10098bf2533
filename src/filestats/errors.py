"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the upload protocol can produce has its own exception class.
The server catches them at the handler boundary and turns them into an
error frame; the client raises them to its caller.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      FileStatsError (base)                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ValidationError          bad file name / file size fields         │
    │   ProtocolError            truncated or unparseable frame           │
    │   TransferIncomplete       declared size != bytes received          │
    │   StorageError             disk read/write failure                  │
    │   ServerReportedError      client received an "ERROR:" reply        │
    │   TransferConnectionError  client never got a connection            │
    │                            (also a builtin ConnectionError)         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Only TransferConnectionError is retried by the client. Everything else
propagates after a single attempt.
=============================================================================
"""


class FileStatsError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(FileStatsError):
    """
    Raised when a header field is outside the allowed limits.

    The server raises this before reading any payload byte, so a client
    that declared a bad header never gets to stream its file.
    """


class ProtocolError(FileStatsError):
    """Raised when a frame is truncated or cannot be decoded."""


class TransferIncomplete(FileStatsError):
    """
    Raised when the payload stream ends before the declared size.

    Attributes:
        expected: Size declared in the request header.
        received: Bytes actually read from the socket.
    """

    def __init__(self, expected: int, received: int):
        super().__init__(
            f"Incomplete transfer: expected {expected} bytes, received {received}"
        )
        self.expected = expected
        self.received = received


class StorageError(FileStatsError):
    """Raised when the save directory or the result log cannot be written/read."""


class ServerReportedError(FileStatsError):
    """
    Raised on the client when the server replied with an error frame.

    The message is the server's text without the error marker.
    """


class TransferConnectionError(FileStatsError, ConnectionError):
    """
    Raised by the client after every connection attempt failed.

    Subclasses the builtin ConnectionError so callers can catch either.

    Attributes:
        attempts: How many connection attempts were made.
    """

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts
