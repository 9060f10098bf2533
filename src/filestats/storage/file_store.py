"""
=============================================================================
FILE STORE
=============================================================================

Maps an incoming file name to a collision-free path in the save directory.

    client sends "report.txt"   ─┐
    client sends "report.txt"   ─┼──►  save_dir/3f2a...c1_report.txt
    client sends "report.txt"   ─┘     save_dir/9b07...4e_report.txt
                                       save_dir/d5e8...70_report.txt

A random uuid4 token is prepended to every name, so concurrent uploads of
the same file never share a path and the directory needs no lock.
=============================================================================
"""

import uuid
import logging
from pathlib import Path
from typing import Union

from ..errors import StorageError


logger = logging.getLogger(__name__)


class FileStore:
    """
    Owns the save directory and the artifacts written into it.

    Usage:
        store = FileStore("ReceivedFiles")
        store.ensure_directory()          # once, before accepting
        path = store.allocate("a.txt")    # per upload
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory).resolve()

    def ensure_directory(self) -> None:
        """Create the save directory if needed. Safe to call repeatedly."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create save directory {self.directory}: {e}") from e

    def allocate(self, file_name: str) -> Path:
        """
        Return a fresh absolute path for an upload.

        Args:
            file_name: Already validated name from the request header.
        """
        return self.directory / f"{uuid.uuid4().hex}_{file_name}"

    def discard(self, path: Path) -> None:
        """Remove an artifact whose transfer did not complete."""
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove incomplete file {path.name}: {e}")
        else:
            logger.debug(f"Removed incomplete file {path.name}")
