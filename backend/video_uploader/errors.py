"""
Upload pipeline exceptions

Validation errors never reach an item (no item exists yet), transfer errors are
attached to the item they happened on, cancellation is not an error at all.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class UploadError(Exception):
    """Base exception for upload pipeline errors"""

    def __init__(self, message: str, error_code: str = "UPLOAD_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()


class FileValidationError(UploadError):
    """A candidate file or URL was rejected before entering the queue"""

    def __init__(self, filename: str, reason: str, error_code: str = "VALIDATION_FAILED"):
        super().__init__(f"{filename}: {reason}", error_code, {"filename": filename, "reason": reason})
        self.filename = filename
        self.reason = reason


class BatchLimitError(UploadError):
    """The whole addition would push the batch over its item limit"""

    def __init__(self, max_files: int, current: int):
        super().__init__(
            f"Maximum {max_files} files can be uploaded at once. You have {current} files already.",
            "TOO_MANY_FILES",
            {"max_files": max_files, "current": current},
        )
        self.max_files = max_files
        self.current = current


class TransferError(UploadError):
    """Prepare, transfer or confirm failed for one item"""

    def __init__(self, message: str, phase: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, f"{phase.upper()}_FAILED", details)
        self.phase = phase


class IntermediaryError(TransferError):
    """The upload intermediary rejected a request; the message is kept verbatim"""

    def __init__(self, message: str, phase: str, status_code: Optional[int] = None):
        super().__init__(message, phase, {"status_code": status_code})
        self.status_code = status_code


class TransferCancelled(UploadError):
    """A transfer was aborted on request"""

    def __init__(self, message: str = "Upload aborted"):
        super().__init__(message, "CANCELLED")


class RemoteFetchError(UploadError):
    """A remote video could not be inspected or downloaded for import"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message, "REMOTE_FETCH_FAILED", {"status_code": status_code})
        self.status_code = status_code
