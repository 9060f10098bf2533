"""
Connection handlers.

    upload.py   UploadHandler: receive -> store -> analyze -> log -> reply
"""

from .upload import UploadHandler, UploadOutcome, HandlerState

__all__ = ["UploadHandler", "UploadOutcome", "HandlerState"]
