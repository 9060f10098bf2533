"""
=============================================================================
UPLOAD SERVER
=============================================================================

Ties the listening socket, the per-connection handler and the storage
together.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         FileServer                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    ┌──────────────┐   accept()    ┌────────────────────────────┐    │
    │    │ SocketServer │──────────────►│ Thread per connection      │    │
    │    │ (accept loop)│  Thread.start │   UploadHandler.handle()   │    │
    │    └──────────────┘               └─────────────┬──────────────┘    │
    │                                                 │                    │
    │                     ┌───────────────────────────┼──────────┐        │
    │                     ▼                           ▼          ▼        │
    │              ┌─────────────┐          ┌──────────┐  ┌───────────┐   │
    │              │  FileStore  │          │ Analyzer │  │ ResultLog │   │
    │              │ (no lock)   │          │ (pure)   │  │ (locked)  │   │
    │              └─────────────┘          └──────────┘  └───────────┘   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONCURRENCY MODEL
=============================================================================

Every accepted connection gets its own daemon thread and the accept loop
goes straight back to accept(). There is no pool and no upper bound.

stop() only ends the accept loop. Uploads already in progress are neither
cancelled nor waited for; they finish in their own threads.

    t=0  accept ─► thread A (uploading 80 MiB ...........................)
    t=1  accept ─► thread B (uploading 1 KiB ..)
    t=2  stop()  ─► accept loop exits            thread A keeps going
=============================================================================
"""

import logging
import threading
import weakref
from typing import Optional, Tuple

from .config import ServerConfig
from .core import SocketServer, Connection
from .handlers import UploadHandler
from .storage import FileStore, ResultLog


logger = logging.getLogger(__name__)


class FileServer:
    """
    Multi-threaded single-file upload server.

    Usage:
        server = FileServer(ServerConfig(port=5000, save_dir="ReceivedFiles"))
        server.run()   # blocks until stop() or Ctrl+C

    Or in the background:
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        server.wait_until_ready(5.0)
        ...
        server.stop()
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Args:
            config: Server configuration. Defaults are used if omitted.

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self.file_store = FileStore(self.config.save_dir)
        self.result_log = ResultLog(self.config.result_log_path)
        self.handler = UploadHandler(
            self.file_store,
            self.result_log,
            buffer_size=self.config.buffer_size,
            log_format=self.config.log_format,
        )

        self._socket_server = SocketServer(self.config)

        # Handles are kept only for introspection; stop() never joins them
        self._handler_threads: "weakref.WeakSet[threading.Thread]" = weakref.WeakSet()
        self._threads_lock = threading.Lock()
        self._connections_accepted = 0

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the real port once listening with port 0."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    @property
    def active_handlers(self) -> int:
        """Number of connection threads still running."""
        with self._threads_lock:
            return sum(1 for t in self._handler_threads if t.is_alive())

    @property
    def connections_accepted(self) -> int:
        return self._connections_accepted

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Start accepting uploads (blocking).

        The save directory is created before the socket starts listening.

        Raises:
            StorageError: If the save directory cannot be created.
            OSError: If the listening socket cannot be bound.
        """
        self.file_store.ensure_directory()
        logger.info(
            f"Saving uploads to {self.file_store.directory}, "
            f"results to {self.result_log.path.name}"
        )

        try:
            self._socket_server.start(self._dispatch)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            active = self.active_handlers
            if active:
                logger.info(f"Server stopped with {active} upload(s) still in progress")
            else:
                logger.info("Server stopped")

    def stop(self):
        """Stop accepting new connections. In-flight uploads keep running."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is listening. Returns False on timeout."""
        return self._socket_server.wait_until_ready(timeout)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _dispatch(self, conn: Connection):
        """
        Hand a connection to a new thread and return immediately.

        Called from the accept loop, so it must not block.
        """
        thread = threading.Thread(
            target=self.handler.handle,
            args=(conn,),
            name=f"upload-{conn.id}",
            daemon=True,
        )
        with self._threads_lock:
            self._handler_threads.add(thread)
            self._connections_accepted += 1
        thread.start()
