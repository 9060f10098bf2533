"""
pytest configuration and fixtures.
"""

import socket
import struct
import threading
import time
from pathlib import Path
from typing import Generator, Optional
import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from filestats import FileServer, ServerConfig, ClientConfig


def recv_exact(sock: socket.socket, size: int) -> bytes:
    """Read exactly `size` bytes or fail the test."""
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            raise AssertionError(f"Peer closed after {len(data)} of {size} bytes")
        data += chunk
    return data


def read_reply(sock: socket.socket) -> str:
    """Read one reply frame (int32 length + utf-8 body)."""
    (length,) = struct.unpack("<i", recv_exact(sock, 4))
    return recv_exact(sock, length).decode("utf-8")


def raw_header(name: bytes, size: int, name_length: Optional[int] = None) -> bytes:
    """Build a request header without client-side validation."""
    if name_length is None:
        name_length = len(name)
    return struct.pack("<i", name_length) + name + struct.pack("<q", size)


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def save_dir(tmp_path: Path) -> Path:
    return tmp_path / "received"


@pytest.fixture
def server_config(save_dir: Path) -> ServerConfig:
    """Test server configuration on an OS-assigned port."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        timeout=5.0,
        save_dir=str(save_dir),
        log_level="WARNING",
    )


@pytest.fixture
def sample_file(tmp_path: Path) -> Path:
    path = tmp_path / "sample.txt"
    path.write_text("hello world\nfoo", encoding="utf-8")
    return path


class RunningServer:
    """Runs a FileServer in a background thread."""

    def __init__(self, server: FileServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def client_config(self, **overrides) -> ClientConfig:
        options = dict(host="127.0.0.1", port=self.port, timeout=5.0, retry_delay=0.05)
        options.update(overrides)
        return ClientConfig(**options)

    def connect(self) -> socket.socket:
        sock = socket.create_connection(("127.0.0.1", self.port), timeout=5.0)
        return sock

    def start(self):
        """Start server in background thread and wait until it listens."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(5.0):
            raise RuntimeError("Server failed to start")

    def stop(self, timeout: float = 5.0):
        """Stop accepting and wait for the accept loop to exit."""
        self.server.stop()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    @property
    def accept_loop_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def wait_for_idle(self, timeout: float = 5.0):
        """Wait until no upload thread is running."""
        deadline = time.time() + timeout
        while self.server.active_handlers and time.time() < deadline:
            time.sleep(0.02)


@pytest.fixture
def running_server(server_config: ServerConfig) -> Generator[RunningServer, None, None]:
    """A started FileServer; stopped after the test."""
    srv = RunningServer(FileServer(server_config))
    srv.start()

    yield srv

    srv.stop()
