"""
Upload intermediary wire models

Field names are camelCase on the wire and snake_case in Python.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ApiEnvelope(WireModel, Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None


class PresignedFile(WireModel):
    filename: str
    content_type: str
    file_size: int


class PresignedUploadRequest(PresignedFile):
    organization_id: str


class BulkPresignedUploadRequest(WireModel):
    files: List[PresignedFile]
    organization_id: str


class PresignedUpload(WireModel):
    upload_id: str
    upload_url: str
    file_key: str
    expires_in: int
    filename: Optional[str] = None


class BulkPresignedUpload(WireModel):
    uploads: List[PresignedUpload]


class UploadMetadata(WireModel):
    """What the caller tells the intermediary about a finished transfer"""

    filename: str
    file_size: int
    title: str
    description: Optional[str] = None
    organization_id: str
    author_id: str
    collection_id: Optional[str] = None
    skip_ai_processing: Optional[bool] = None


class ConfirmUploadRequest(UploadMetadata):
    upload_id: str
    file_key: str


class ConfirmedFile(WireModel):
    upload_id: str
    file_key: str
    filename: str
    file_size: int
    title: str
    description: Optional[str] = None


class BulkConfirmUploadRequest(WireModel):
    uploads: List[ConfirmedFile]
    organization_id: str
    author_id: str
    collection_id: Optional[str] = None
    skip_ai_processing: Optional[bool] = None


class ConfirmedVideo(WireModel):
    video_id: str
    video_url: str
    thumbnail_url: str = ""
    processing_status: str
    upload_id: Optional[str] = None


class BulkConfirmedVideos(WireModel):
    videos: List[ConfirmedVideo]
    errors: List[dict] = Field(default_factory=list)
    succeeded: int
    failed: int


class UrlImportRequest(WireModel):
    url: str
    title: str
    description: Optional[str] = None
    organization_id: str
    author_id: str
    collection_id: Optional[str] = None


class VideoRecord(WireModel):
    """A durably registered video"""

    video_id: str
    title: str
    description: Optional[str] = None
    duration: str = "0:00"
    file_key: str
    file_size: int = 0
    content_type: str = "video/mp4"
    organization_id: str
    author_id: str
    collection_id: Optional[str] = None
    processing_status: str = "pending"
    source_url: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def metadata(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
