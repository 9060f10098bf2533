"""
=============================================================================
TEXT ANALYZER
=============================================================================

Computes line, word and character counts for a fully received file.

=============================================================================
COUNTING RULES
=============================================================================

    line_count   number of "\\n" characters, plus one if the text is not
                 empty (an unterminated last line still counts)

    word_count   number of maximal runs of characters that are NOT one of
                 space, tab, CR, LF

    char_count   len() of the decoded text

    "hello world\\nfoo"
     ─────┬───── ─┬─
          │       └── line 2: "foo"            words: hello, world, foo
          └────────── line 1: "hello world"    chars: 15

=============================================================================
MEMORY
=============================================================================

analyze_file() reads the whole file into memory. The server caps uploads
at MAX_FILE_SIZE, so each concurrently analyzed file costs at most that
much. There is no streaming analysis.
=============================================================================
"""

import re
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..errors import StorageError


logger = logging.getLogger(__name__)

# Only these four characters separate words. Other unicode whitespace
# (e.g. non-breaking space) is part of a word.
_WORD = re.compile(r"[^ \t\r\n]+")

SEPARATOR = "-" * 40


@dataclass(frozen=True)
class AnalysisResult:
    """
    Statistics for one analyzed file.

    Immutable: a handler creates one per completed upload and hands it to
    the result log and the reply codec.
    """
    file_name: str
    line_count: int
    word_count: int
    char_count: int


def count_lines(content: str) -> int:
    return content.count("\n") + (1 if content else 0)


def count_words(content: str) -> int:
    return sum(1 for _ in _WORD.finditer(content))


def analyze_text(content: str, file_name: str) -> AnalysisResult:
    """
    Analyze text that is already in memory.

    Args:
        content: The decoded file contents.
        file_name: Name reported in the result.

    Returns:
        AnalysisResult for the content.
    """
    return AnalysisResult(
        file_name=file_name,
        line_count=count_lines(content),
        word_count=count_words(content),
        char_count=len(content),
    )


def analyze_file(
    path: Union[str, Path],
    file_name: Optional[str] = None,
) -> AnalysisResult:
    """
    Read a stored file back from disk and analyze it.

    The file is decoded as UTF-8; a leading byte order mark is dropped and
    undecodable bytes become U+FFFD, so a binary upload still produces
    counts instead of failing the transfer.

    Args:
        path: Path of the stored artifact.
        file_name: Name to report. Defaults to the path's base name.

    Returns:
        AnalysisResult for the file.

    Raises:
        StorageError: If the file cannot be read.
    """
    path = Path(path)
    try:
        # newline="" keeps CR/LF as they are on disk
        with open(path, "r", encoding="utf-8-sig", errors="replace", newline="") as f:
            content = f.read()
    except OSError as e:
        logger.error(f"Failed to read {path}: {e}")
        raise StorageError(f"Cannot read {path.name}: {e}") from e

    result = analyze_text(content, file_name or path.name)
    logger.info(
        f"Analyzed {result.file_name}: {result.line_count} lines, "
        f"{result.word_count} words, {result.char_count} characters"
    )
    return result


def format_summary(result: AnalysisResult) -> str:
    """
    Format the block written to the result log.

        File: notes.txt
        Lines: 2
        Words: 3
        Characters: 15
        ----------------------------------------
    """
    return (
        f"File: {result.file_name}\n"
        f"Lines: {result.line_count}\n"
        f"Words: {result.word_count}\n"
        f"Characters: {result.char_count}\n"
        f"{SEPARATOR}\n"
    )
