"""
=============================================================================
FILESTATS - SINGLE-FILE UPLOAD & TEXT STATISTICS SERVER
=============================================================================

A client sends one file per TCP connection. The server stores it under a
unique name, counts its lines, words and characters, appends the counts to
a shared result log and sends them back.

=============================================================================
QUICK START
=============================================================================

    # Terminal 1
    python -m filestats serve --port 5000 --save-dir ReceivedFiles

    # Terminal 2
    python -m filestats send notes.txt --port 5000

    # From Python
    from filestats import FileClient, ClientConfig
    result = FileClient(ClientConfig(port=5000)).send_file("notes.txt")

=============================================================================
PACKAGE LAYOUT
=============================================================================

    protocol/     wire codec (request header, reply frame)
    analysis/     line / word / character counting
    storage/      unique artifact paths, locked result log
    core/         listening socket and per-client connection wrapper
    handlers/     per-connection upload state machine
    server.py     FileServer: accept loop + thread per connection
    client.py     FileClient: upload with connection retry
    config.py     ServerConfig / ClientConfig
    errors.py     exception taxonomy
=============================================================================
"""

__version__ = "1.0.0"

from .server import FileServer
from .client import FileClient
from .config import ServerConfig, ClientConfig
from .analysis import AnalysisResult, analyze_text, analyze_file

__all__ = [
    "FileServer",
    "FileClient",
    "ServerConfig",
    "ClientConfig",
    "AnalysisResult",
    "analyze_text",
    "analyze_file",
    "__version__",
]
