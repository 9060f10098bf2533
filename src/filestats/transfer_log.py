"""
=============================================================================
TRANSFER LOGGING
=============================================================================

Logging setup for the whole package plus a structured record emitted once
per connection.

=============================================================================
LOG FORMATS
=============================================================================

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ [a1b2c3d4] 127.0.0.1 "notes.txt" 15/15 bytes ok 3.21ms             │
    │ ───────────────────────────────────────────────────────────────────│
    │ conn id    client IP  file name  received/declared outcome duration │
    └─────────────────────────────────────────────────────────────────────┘

    JSON (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"connection_id": "a1b2c3d4", "client_ip": "127.0.0.1",            │
    │  "file_name": "notes.txt", "declared_size": 15,                    │
    │  "bytes_received": 15, "outcome": "ok", "error": null,             │
    │  "duration_ms": 3.21, "timestamp": "18/Oct/2026:10:55:36 +0000"}   │
    └─────────────────────────────────────────────────────────────────────┘

The connection id is the same one Connection uses in its own debug lines,
so every line about one upload can be grepped together.
=============================================================================
"""

import json
import time
import logging
from dataclasses import dataclass
from typing import Optional


# Namespaced so it can be routed separately:
#   logging.getLogger("filestats.transfers").addHandler(file_handler)
logger = logging.getLogger("filestats.transfers")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for the CLI entry points."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    logging.getLogger("filestats").setLevel(numeric)


@dataclass
class TransferLog:
    """
    Structured record of one upload attempt.

    Fields:
        connection_id:  Short id of the connection
        client_ip:      Peer address
        file_name:      Name from the header ("-" if the header never parsed)
        declared_size:  Size from the header (0 if unknown)
        bytes_received: Payload bytes actually read
        outcome:        "ok" or the error class name
        error:          Error text sent to the client, if any
        duration_ms:    Time from accept to close
        timestamp:      When the record was built
    """
    connection_id: str
    client_ip: str
    file_name: str
    declared_size: int
    bytes_received: int
    outcome: str
    error: Optional[str]
    duration_ms: float
    timestamp: str

    @property
    def succeeded(self) -> bool:
        return self.outcome == "ok"

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "client_ip": self.client_ip,
            "file_name": self.file_name,
            "declared_size": self.declared_size,
            "bytes_received": self.bytes_received,
            "outcome": self.outcome,
            "error": self.error,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        text = (
            f'[{self.connection_id}] {self.client_ip} "{self.file_name}" '
            f'{self.bytes_received}/{self.declared_size} bytes '
            f'{self.outcome} {self.duration_ms:.2f}ms'
        )
        if self.error:
            text += f" - {self.error}"
        return text


def emit(entry: TransferLog, log_format: str = "text") -> None:
    """
    Write one TransferLog line.

    Successful transfers go out at INFO, failed ones at WARNING.
    """
    level = logging.INFO if entry.succeeded else logging.WARNING
    if log_format == "json":
        logger.log(level, json.dumps(entry.to_dict()))
    else:
        logger.log(level, entry.to_text())


def now_timestamp() -> str:
    return time.strftime("%d/%b/%Y:%H:%M:%S %z")
