"""
Upload intermediary client

Talks to the service that hands out write destinations and registers finished
transfers. Responses use the {"success", "data", "error"} envelope; a
rejection surfaces as IntermediaryError carrying the service's own message.
"""

import asyncio
from typing import Callable, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from video_uploader.config.base import settings
from video_uploader.errors import IntermediaryError, TransferError
from video_uploader.models.intermediary import (
    ApiEnvelope,
    BulkPresignedUpload,
    BulkPresignedUploadRequest,
    ConfirmedVideo,
    ConfirmUploadRequest,
    PresignedFile,
    PresignedUpload,
    PresignedUploadRequest,
    UploadMetadata,
    UrlImportRequest,
)
from video_uploader.models.upload import VideoSource
from video_uploader.services.cancellation import CancellationToken
from video_uploader.utils.logger import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

ProgressCallback = Callable[[int, int], None]

PRESIGNED_PATH = "/api/videos/upload/presigned"
CONFIRM_PATH = "/api/videos/upload/confirm"
URL_IMPORT_PATH = "/api/videos/upload/url"


class IntermediaryClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        chunk_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[dict] = None,
    ):
        self.base_url = base_url or settings.API_BASE_URL
        self.chunk_size = chunk_size or settings.UPLOAD_CHUNK_SIZE
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.HTTP_TIMEOUT,
            transport=transport,
            headers=headers,
        )

    async def __aenter__(self) -> "IntermediaryClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _post(
        self,
        path: str,
        payload: dict,
        model: Type[M],
        phase: str,
        default_error: str,
        token: Optional[CancellationToken] = None,
    ) -> M:
        request = self._client.post(path, json=payload)
        try:
            response = await (token.run(request) if token else request)
        except httpx.HTTPError as e:
            raise TransferError(f"{default_error}: {e}", phase)

        try:
            envelope = ApiEnvelope[model].model_validate(response.json())
        except (ValueError, ValidationError):
            raise TransferError(f"{default_error} (HTTP {response.status_code})", phase)

        if not envelope.success or envelope.data is None:
            raise IntermediaryError(envelope.error or default_error, phase, response.status_code)
        return envelope.data

    async def request_destination(
        self,
        filename: str,
        content_type: str,
        size: int,
        organization_id: str,
        token: Optional[CancellationToken] = None,
    ) -> PresignedUpload:
        """Ask for a write destination and upload token for one file"""
        payload = PresignedUploadRequest(
            filename=filename,
            content_type=content_type,
            file_size=size,
            organization_id=organization_id,
        ).to_wire()
        destination = await self._post(
            PRESIGNED_PATH, payload, PresignedUpload, "prepare", "Failed to get upload URL", token
        )
        if not destination.upload_url:
            raise TransferError("Failed to get upload URL", "prepare")
        logger.debug(f"Destination granted for {filename}: {destination.file_key}")
        return destination

    async def request_destinations(self, files: List[VideoSource], organization_id: str) -> List[PresignedUpload]:
        """Bulk form: one request for several files"""
        payload = BulkPresignedUploadRequest(
            files=[PresignedFile(filename=f.name, content_type=f.content_type, file_size=f.size) for f in files],
            organization_id=organization_id,
        ).to_wire()
        bulk = await self._post(
            PRESIGNED_PATH, payload, BulkPresignedUpload, "prepare", "Failed to get upload URLs"
        )
        return bulk.uploads

    async def transfer(
        self,
        destination_url: str,
        source: VideoSource,
        content_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> None:
        """Stream the file to the destination, reporting bytes sent after each chunk"""
        token = token or CancellationToken()
        total = source.size
        chunk_size = self.chunk_size

        async def body():
            sent = 0
            with open(source.path, "rb") as f:
                while True:
                    token.raise_if_cancelled()
                    chunk = await asyncio.to_thread(f.read, chunk_size)
                    if not chunk:
                        break
                    yield chunk
                    sent += len(chunk)
                    if on_progress:
                        on_progress(sent, total)

        headers = {
            "Content-Type": content_type or source.content_type,
            "Content-Length": str(total),
        }
        try:
            response = await token.run(self._client.put(destination_url, content=body(), headers=headers))
        except httpx.HTTPError as e:
            raise TransferError(f"Upload failed: {e}", "transfer")
        except OSError as e:
            raise TransferError(f"Could not read {source.name}: {e}", "transfer")

        if not 200 <= response.status_code < 300:
            raise TransferError(
                f"Upload failed with status {response.status_code}",
                "transfer",
                {"status_code": response.status_code},
            )

    async def confirm_transfer(
        self,
        upload_id: str,
        file_key: str,
        metadata: UploadMetadata,
        token: Optional[CancellationToken] = None,
    ) -> ConfirmedVideo:
        """Register a finished transfer; returns the durable video identifier"""
        payload = ConfirmUploadRequest(
            upload_id=upload_id,
            file_key=file_key,
            **metadata.model_dump(),
        ).to_wire()
        return await self._post(CONFIRM_PATH, payload, ConfirmedVideo, "confirm", "Failed to confirm upload", token)

    async def import_from_url(self, url: str, metadata: UploadMetadata) -> ConfirmedVideo:
        """Collapsed prepare/transfer/confirm for a remote video"""
        payload = UrlImportRequest(
            url=url,
            title=metadata.title,
            description=metadata.description,
            organization_id=metadata.organization_id,
            author_id=metadata.author_id,
            collection_id=metadata.collection_id,
        ).to_wire()
        return await self._post(URL_IMPORT_PATH, payload, ConfirmedVideo, "import", "Failed to import video")
