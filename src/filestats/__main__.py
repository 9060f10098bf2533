"""
=============================================================================
FILESTATS CLI ENTRY POINT
=============================================================================

    # Run the server (Ctrl+C to stop)
    python -m filestats serve
    python -m filestats serve --host 0.0.0.0 --port 5000 --save-dir ./uploads

    # Upload a file and print the statistics
    python -m filestats send notes.txt --port 5000

    # Print everything recorded in the result log
    python -m filestats show-log --save-dir ./uploads

Unset flags fall back to FILESTATS_* environment variables, then to the
defaults in config.py.
=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .analysis.analyzer import format_summary
from .client import FileClient
from .config import ClientConfig, ServerConfig, LOG_LEVELS
from .errors import FileStatsError
from .server import FileServer
from .storage.result_log import ResultLog
from .transfer_log import setup_logging


logger = logging.getLogger("filestats")


def cmd_serve(args: argparse.Namespace) -> int:
    config = ServerConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.save_dir:
        config.save_dir = args.save_dir
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format

    setup_logging(config.log_level)

    try:
        server = FileServer(config)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    print("Server starting...")
    print("Press Ctrl+C to stop the server")
    try:
        server.run()
    except (OSError, FileStatsError) as e:
        logger.error(f"Server failed: {e}")
        return 1
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    config = ClientConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.attempts is not None:
        config.max_attempts = args.attempts
    if args.retry_delay is not None:
        config.retry_delay = args.retry_delay

    setup_logging(args.log_level or "WARNING")

    try:
        result = FileClient(config).send_file(args.file)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    except (FileStatsError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("\nAnalysis results:")
    print(f"File name: {result.file_name}")
    print(f"Lines: {result.line_count}, Words: {result.word_count}, Characters: {result.char_count}")
    return 0


def cmd_show_log(args: argparse.Namespace) -> int:
    config = ServerConfig.from_env()
    if args.save_dir:
        config.save_dir = args.save_dir

    try:
        entries = ResultLog(config.result_log_path).read_entries()
    except FileStatsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not entries:
        print(f"No results recorded in {config.result_log_path}")
        return 0
    for entry in entries:
        print(format_summary(entry), end="")
    print(f"{len(entries)} file(s) analyzed")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filestats",
        description="Single-file upload server that returns line/word/character counts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m filestats serve --port 5000           # Run the server
  python -m filestats send notes.txt              # Upload a file
  python -m filestats show-log                    # Print recorded results
        """,
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"filestats {__version__}",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve", help="Run the upload server")
    serve.add_argument("--host", "-H", help="Host to bind to (default: 127.0.0.1)")
    serve.add_argument("--port", "-p", type=int, help="Port to listen on (default: 5000)")
    serve.add_argument("--save-dir", "-d", help="Directory for uploads and the result log")
    serve.add_argument("--log-level", "-l", choices=LOG_LEVELS, help="Logging level")
    serve.add_argument("--log-format", choices=["text", "json"], help="Transfer log format")
    serve.set_defaults(func=cmd_serve)

    send = sub.add_parser("send", help="Upload one file")
    send.add_argument("file", help="Path of the file to upload")
    send.add_argument("--host", "-H", help="Server host (default: 127.0.0.1)")
    send.add_argument("--port", "-p", type=int, help="Server port (default: 5000)")
    send.add_argument("--attempts", type=int, help="Connection attempts (default: 3)")
    send.add_argument("--retry-delay", type=float, help="Seconds between attempts (default: 1.0)")
    send.add_argument("--log-level", "-l", choices=LOG_LEVELS, help="Logging level")
    send.set_defaults(func=cmd_send)

    show = sub.add_parser("show-log", help="Print the result log")
    show.add_argument("--save-dir", "-d", help="Directory holding the result log")
    show.set_defaults(func=cmd_show_log)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
