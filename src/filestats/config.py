"""
=============================================================================
CONFIGURATION
=============================================================================

Centralized configuration for the upload server and the client.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m filestats serve --port 6000                     │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── FILESTATS_PORT=6000 python -m filestats serve             │
    │                                                                      │
    │   3. Default values (in these dataclasses)                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Both configs validate eagerly. A bad port or a negative retry delay is
reported at startup, not on the first upload.
=============================================================================
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5000
DEFAULT_SAVE_DIR = "ReceivedFiles"
DEFAULT_RESULT_LOG_NAME = "analysis_result.txt"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


def _validate_port(port: int, allow_zero: bool) -> None:
    low = 0 if allow_zero else 1
    if not low <= port < 65536:
        raise ValueError(f"Invalid port: {port}. Must be {low}-65535.")


@dataclass
class ServerConfig:
    """
    Configuration for the upload server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, timeout

    STORAGE
    - save_dir, result_log_name

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = DEFAULT_HOST
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only
    - "0.0.0.0" - All network interfaces
    """

    port: int = DEFAULT_PORT
    """
    The port number to listen on. 0 lets the OS pick a free port
    (the bound port is then available from FileServer.address).
    """

    backlog: int = 128
    """Maximum number of queued connections before new ones are refused."""

    buffer_size: int = 8192
    """Size of each payload chunk read from the socket and written to disk."""

    timeout: Optional[float] = 30.0
    """
    Per-read socket timeout for client connections in seconds.
    None = block forever on a silent client.
    """

    # ─────────────────────────────────────────────────────────────────────
    # STORAGE
    # ─────────────────────────────────────────────────────────────────────

    save_dir: str = DEFAULT_SAVE_DIR
    """Directory that receives {uuid}_{name} artifacts and the result log."""

    result_log_name: str = DEFAULT_RESULT_LOG_NAME
    """File name of the shared result log inside save_dir."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """
    Format of the per-transfer log line: 'text' or 'json'.
    JSON is easier to feed to log aggregators.
    """

    @property
    def result_log_path(self) -> Path:
        return Path(self.save_dir) / self.result_log_name

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        FILESTATS_HOST        Server host (default: 127.0.0.1)
        FILESTATS_PORT        Server port (default: 5000)
        FILESTATS_TIMEOUT     Socket timeout in seconds (default: 30)
        FILESTATS_SAVE_DIR    Save directory (default: ReceivedFiles)
        FILESTATS_LOG_LEVEL   Logging level (default: INFO)
        FILESTATS_LOG_FORMAT  text or json (default: text)

        =====================================================================
        """
        return cls(
            host=os.getenv("FILESTATS_HOST", DEFAULT_HOST),
            port=int(os.getenv("FILESTATS_PORT", str(DEFAULT_PORT))),
            timeout=float(os.getenv("FILESTATS_TIMEOUT", "30")),
            save_dir=os.getenv("FILESTATS_SAVE_DIR", DEFAULT_SAVE_DIR),
            log_level=os.getenv("FILESTATS_LOG_LEVEL", "INFO"),
            log_format=os.getenv("FILESTATS_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: On the first invalid field.
        """
        _validate_port(self.port, allow_zero=True)

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if not self.save_dir:
            raise ValueError("save_dir must not be empty")

        if not self.result_log_name or Path(self.result_log_name).name != self.result_log_name:
            raise ValueError(f"Invalid result_log_name: {self.result_log_name!r}")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}")


@dataclass
class ClientConfig:
    """
    Configuration for the upload client.

    The retry policy only applies to ESTABLISHING the connection:

        attempt 1 ── refused ── sleep(retry_delay)
        attempt 2 ── refused ── sleep(retry_delay)
        attempt 3 ── refused ── TransferConnectionError
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    max_attempts: int = 3
    """Total connection attempts, including the first one."""

    retry_delay: float = 1.0
    """Fixed delay in seconds between connection attempts."""

    timeout: Optional[float] = 30.0
    """Socket timeout for connect and for each read/write."""

    chunk_size: int = 8192
    """Size of each chunk read from the local file and sent."""

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """
        Create configuration from environment variables.

        FILESTATS_HOST, FILESTATS_PORT, FILESTATS_TIMEOUT,
        FILESTATS_ATTEMPTS, FILESTATS_RETRY_DELAY
        """
        return cls(
            host=os.getenv("FILESTATS_HOST", DEFAULT_HOST),
            port=int(os.getenv("FILESTATS_PORT", str(DEFAULT_PORT))),
            timeout=float(os.getenv("FILESTATS_TIMEOUT", "30")),
            max_attempts=int(os.getenv("FILESTATS_ATTEMPTS", "3")),
            retry_delay=float(os.getenv("FILESTATS_RETRY_DELAY", "1.0")),
        )

    def validate(self) -> None:
        _validate_port(self.port, allow_zero=False)

        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        if self.retry_delay < 0:
            raise ValueError("retry_delay must be >= 0")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
