"""
=============================================================================
SHARED RESULT LOG
=============================================================================

Append-only text file that accumulates one block per analyzed upload.

=============================================================================
WHY A LOCK?
=============================================================================

Every handler thread appends to the SAME file. Without mutual exclusion
two appends can interleave at the byte level:

    Thread A: write("File: a.txt\\nLines: 3\\n")
    Thread B: write("File: b.txt\\nLines: 9\\n")
    Thread A: write("Words: 7\\n...")

    analysis_result.txt:
        File: a.txt
        Lines: 3
        File: b.txt        ◄── A's block is now broken
        Lines: 9
        Words: 7

The whole append (open, write, flush, fsync, close) runs inside one critical
section:

    ┌──────────────────────────────────────────────────────────────────┐
    │  with lock:                                                       │
    │      open(path, "a")                                              │
    │      write(block)                                                 │
    │      flush()                                                      │
    │      os.fsync()                                                   │
    │      close()                                                      │
    └──────────────────────────────────────────────────────────────────┘

The lock belongs to the PATH, not to the ResultLog object. Two ResultLog
instances pointing at the same file share one lock through _lock_for().
=============================================================================
"""

import os
import re
import logging
import threading
from pathlib import Path
from typing import Dict, List, Union

from ..analysis.analyzer import AnalysisResult, SEPARATOR, format_summary
from ..errors import ProtocolError, StorageError


logger = logging.getLogger(__name__)


_registry_lock = threading.Lock()
_path_locks: Dict[Path, threading.Lock] = {}


def _lock_for(path: Path) -> threading.Lock:
    with _registry_lock:
        lock = _path_locks.get(path)
        if lock is None:
            lock = _path_locks[path] = threading.Lock()
        return lock


_BLOCK_PATTERN = re.compile(
    r"File: (?P<name>[^\n]*)\n"
    r"Lines: (?P<lines>\d+)\n"
    r"Words: (?P<words>\d+)\n"
    r"Characters: (?P<chars>\d+)\n"
    + re.escape(SEPARATOR) + r"\n"
)


class ResultLog:
    """
    Serialized appender for the shared result file.

    Attributes:
        path: Absolute path of the log file.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).resolve()
        self._lock = _lock_for(self.path)

    def append(self, result: AnalysisResult) -> None:
        """
        Append one result block.

        The block is fully written and flushed before any other append on
        the same path can start.

        Raises:
            StorageError: If the file cannot be written.
        """
        block = format_summary(result)
        with self._lock:
            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(block)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                logger.error(f"Failed to append to {self.path}: {e}")
                raise StorageError(f"Cannot write result log: {e}") from e

        logger.info(f"Saved analysis of {result.file_name} to {self.path.name}")

    def read_entries(self) -> List[AnalysisResult]:
        """
        Parse the log back into results, oldest first.

        A missing file means no uploads yet and yields an empty list.

        Raises:
            ProtocolError: If a block is not in the expected layout.
            StorageError: If the file exists but cannot be read.
        """
        with self._lock:
            try:
                text = self.path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return []
            except OSError as e:
                raise StorageError(f"Cannot read result log: {e}") from e

        # Walk block by block; a name may itself look like the separator
        entries = []
        pos = 0
        while pos < len(text):
            match = _BLOCK_PATTERN.match(text, pos)
            if match is None:
                raise ProtocolError(f"Malformed result log block: {text[pos:pos + 200]!r}")
            pos = match.end()
            entries.append(AnalysisResult(
                file_name=match.group("name"),
                line_count=int(match.group("lines")),
                word_count=int(match.group("words")),
                char_count=int(match.group("chars")),
            ))
        return entries
