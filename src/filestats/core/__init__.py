"""
=============================================================================
CORE NETWORKING
=============================================================================

    socket_server.py   listening socket, accept loop, cooperative stop
    connection.py      per-client socket wrapper (exact/chunked reads)

Neither module knows about uploads. The handler and the server wire them
to the protocol.
=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState

__all__ = [
    "SocketServer",     # Accepts connections
    "Connection",       # Wrapper for client socket
    "ConnectionState",  # Lifecycle states
]
