"""
Flat-file persistence: uploaded artifacts and the shared result log.
"""

from .file_store import FileStore
from .result_log import ResultLog

__all__ = ["FileStore", "ResultLog"]
