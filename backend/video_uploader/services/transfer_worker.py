"""
Per-item transfer worker

Drives one admitted item through prepare, transfer and confirm. Every update
carries the attempt it was admitted with, so a cancelled or removed attempt
cannot touch the item again.
"""

from typing import Optional

from video_uploader.errors import TransferCancelled, TransferError
from video_uploader.models.intermediary import UploadMetadata
from video_uploader.models.upload import UploadItem, UploadStatus
from video_uploader.services.batch import UploadBatch
from video_uploader.services.cancellation import CancellationToken
from video_uploader.services.intermediary_client import IntermediaryClient
from video_uploader.utils.logger import LoggerMixin


def percent(sent: int, total: int) -> int:
    if total <= 0:
        return 100
    return max(0, min(100, round(sent / total * 100)))


class TransferWorker(LoggerMixin):
    def __init__(
        self,
        batch: UploadBatch,
        client: IntermediaryClient,
        organization_id: str,
        author_id: str,
        collection_id: Optional[str] = None,
        description: Optional[str] = None,
    ):
        self.batch = batch
        self.client = client
        self.organization_id = organization_id
        self.author_id = author_id
        self.collection_id = collection_id
        self.description = description

    async def __call__(self, item_id: str, token: CancellationToken) -> bool:
        return await self.run(item_id, token)

    async def run(self, item_id: str, token: CancellationToken) -> bool:
        """
        Upload one item

        Returns True when the item completed and False when it failed.
        Raises TransferCancelled when the token fired; the item has already
        been returned to pending by whoever cancelled it.
        """
        item = self.batch.get(item_id)
        if item is None or item.is_url:
            return False
        attempt = item.attempt

        try:
            video_id = await self._upload(item, attempt, token)
        except TransferCancelled:
            self.logger.info(f"Upload of {item.filename} cancelled")
            raise
        except TransferError as e:
            return self._fail(item, attempt, str(e))
        except Exception as e:
            self.logger.exception(f"Unexpected error uploading {item.filename}")
            return self._fail(item, attempt, str(e) or "Upload failed")

        token.raise_if_cancelled()
        updated = self.batch.apply(item_id, attempt, status=UploadStatus.COMPLETED, progress=100, video_id=video_id)
        if updated is None:
            # Removed while confirming; the video exists but nobody is watching it
            self.logger.info(f"{item.filename} finished after leaving the batch")
            return False
        self.logger.info(f"Uploaded {item.filename} as video {video_id}")
        return True

    async def _upload(self, item: UploadItem, attempt: int, token: CancellationToken) -> str:
        source = item.source

        # Prepare
        self.batch.apply(item.id, attempt, status=UploadStatus.PREPARING, progress=0, error=None)
        destination = await self.client.request_destination(
            source.name, source.content_type, source.size, self.organization_id, token=token
        )
        token.raise_if_cancelled()
        self.batch.apply(
            item.id,
            attempt,
            upload_url=destination.upload_url,
            file_key=destination.file_key,
            upload_id=destination.upload_id,
        )

        # Transfer
        self.batch.apply(item.id, attempt, status=UploadStatus.UPLOADING, progress=0)
        last = 0

        def on_progress(sent: int, total: int):
            nonlocal last
            value = percent(sent, total)
            if value > last:
                last = value
                self.batch.apply(item.id, attempt, progress=value)

        await self.client.transfer(destination.upload_url, source, source.content_type, on_progress, token)
        token.raise_if_cancelled()

        # Confirm
        self.batch.apply(item.id, attempt, status=UploadStatus.CONFIRMING, progress=100)
        current = self.batch.get(item.id) or item
        metadata = UploadMetadata(
            filename=source.name,
            file_size=source.size,
            title=current.title,
            description=self.description,
            organization_id=self.organization_id,
            author_id=self.author_id,
            collection_id=self.collection_id,
        )
        confirmed = await self.client.confirm_transfer(
            destination.upload_id, destination.file_key, metadata, token=token
        )
        return confirmed.video_id

    def _fail(self, item: UploadItem, attempt: int, message: str) -> bool:
        self.logger.error(f"Upload of {item.filename} failed: {message}")
        self.batch.apply(item.id, attempt, status=UploadStatus.FAILED, error=message)
        return False
