"""
Upload data models
"""

import mimetypes
import os
import uuid
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class UploadStatus(str, Enum):
    # File uploads: pending -> preparing -> uploading -> confirming -> completed
    PENDING = "pending"
    PREPARING = "preparing"
    UPLOADING = "uploading"
    CONFIRMING = "confirming"
    COMPLETED = "completed"
    FAILED = "failed"
    # URL imports: pending -> validating -> importing -> completed
    VALIDATING = "validating"
    IMPORTING = "importing"


FILE_ACTIVE_STATUSES = frozenset({UploadStatus.PREPARING, UploadStatus.UPLOADING, UploadStatus.CONFIRMING})
URL_ACTIVE_STATUSES = frozenset({UploadStatus.VALIDATING, UploadStatus.IMPORTING})
ACTIVE_STATUSES = FILE_ACTIVE_STATUSES | URL_ACTIVE_STATUSES


class VideoPlatform(str, Enum):
    YOUTUBE = "youtube"
    VIMEO = "vimeo"
    LOOM = "loom"
    DIRECT = "direct"
    UNKNOWN = "unknown"


# Types the platform's mimetypes table may not know about
_EXTENSION_TYPES = {
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".webm": "video/webm",
    ".flv": "video/x-flv",
    ".wmv": "video/x-ms-wmv",
    ".3gp": "video/3gpp",
    ".mpeg": "video/mpeg",
    ".mpg": "video/mpeg",
    ".ogv": "video/ogg",
}


def guess_content_type(filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    if ext in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[ext]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


class VideoSource(BaseModel):
    """A local file selected for upload"""

    model_config = ConfigDict(frozen=True)

    path: str
    name: str
    size: int
    content_type: str

    @classmethod
    def from_path(cls, path: str, content_type: Optional[str] = None) -> "VideoSource":
        """Describe a file on disk; the declared type comes from its extension unless given"""
        name = os.path.basename(path)
        return cls(
            path=os.path.abspath(path),
            name=name,
            size=os.path.getsize(path),
            content_type=content_type or guess_content_type(name),
        )


class UploadItem(BaseModel):
    """One file or URL staged for transfer"""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    source: Union[VideoSource, str]
    title: str
    status: UploadStatus = UploadStatus.PENDING
    progress: int = 0
    error: Optional[str] = None

    # Derived from the media itself, may arrive at any time
    thumbnail: Optional[str] = None
    duration: Optional[float] = None

    # Assigned by the upload intermediary
    upload_url: Optional[str] = None
    file_key: Optional[str] = None
    upload_id: Optional[str] = None
    video_id: Optional[str] = None

    # URL imports only
    platform: Optional[VideoPlatform] = None

    # Bumped on every admission and cancellation; stale updates carry an old value
    attempt: int = 0

    @property
    def is_url(self) -> bool:
        return isinstance(self.source, str)

    @property
    def size(self) -> int:
        return 0 if self.is_url else self.source.size

    @property
    def filename(self) -> str:
        return self.source if self.is_url else self.source.name

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class UploadResult(BaseModel):
    video_id: str
    title: str
