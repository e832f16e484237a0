"""
Bulk upload session

Caller-facing composition of the batch, intake, metadata extraction and the
scheduler for one organization and author.
"""

import asyncio
from typing import Callable, Iterable, List, Optional, Set

from video_uploader.models.upload import UploadResult, UploadStatus
from video_uploader.services.batch import UploadBatch
from video_uploader.services.intake import Candidate, IntakeResult, validate_candidates
from video_uploader.services.intermediary_client import IntermediaryClient
from video_uploader.services.progress import ProgressSnapshot, progress_snapshot
from video_uploader.services.scheduler import SchedulerRun, UploadScheduler
from video_uploader.services.transfer_worker import TransferWorker
from video_uploader.services.video_processing import MetadataExtractor, get_metadata_extractor
from video_uploader.utils.logger import LoggerMixin

CompleteCallback = Callable[[List[UploadResult]], None]
ChangeCallback = Callable[[ProgressSnapshot], None]


class BulkUploadSession(LoggerMixin):
    def __init__(
        self,
        client: IntermediaryClient,
        organization_id: str,
        author_id: str,
        collection_id: Optional[str] = None,
        description: Optional[str] = None,
        concurrency: Optional[int] = None,
        extractor: Optional[MetadataExtractor] = None,
        extract_metadata: bool = True,
        on_complete: Optional[CompleteCallback] = None,
        on_change: Optional[ChangeCallback] = None,
    ):
        self.client = client
        self.batch = UploadBatch()
        self.worker = TransferWorker(self.batch, client, organization_id, author_id, collection_id, description)
        self.scheduler = UploadScheduler(self.batch, self.worker, concurrency, name="uploads")
        self.extract_metadata = extract_metadata
        self._extractor = extractor
        self._metadata_tasks: Set[asyncio.Task] = set()
        self.on_complete = on_complete
        if on_change is not None:
            self.batch.subscribe(lambda batch: on_change(progress_snapshot(batch.items())))

    @property
    def extractor(self) -> MetadataExtractor:
        if self._extractor is None:
            self._extractor = get_metadata_extractor()
        return self._extractor

    @property
    def is_uploading(self) -> bool:
        return self.scheduler.running

    @property
    def overall_progress(self) -> int:
        return self.progress().percent

    def progress(self) -> ProgressSnapshot:
        return progress_snapshot(self.batch.items())

    def add_files(self, candidates: Iterable[Candidate]) -> IntakeResult:
        """Validate and queue files; metadata extraction starts in the background when a loop is running"""
        result = validate_candidates(candidates, self.batch)
        if result.accepted:
            self.batch.add(result.accepted)
            for item in result.accepted:
                self._schedule_metadata(item.id)
        return result

    def _schedule_metadata(self, item_id: str):
        if not self.extract_metadata:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug("No running event loop, skipping metadata extraction")
            return
        task = loop.create_task(self._extract(item_id))
        self._metadata_tasks.add(task)
        task.add_done_callback(self._metadata_tasks.discard)

    async def _extract(self, item_id: str):
        item = self.batch.get(item_id)
        if item is None or item.is_url:
            return
        probe = await self.extractor.extract(item.source)
        changes = {}
        if probe.thumbnail is not None:
            changes["thumbnail"] = probe.thumbnail
        if probe.duration is not None:
            changes["duration"] = probe.duration
        if changes:
            # Not tied to an attempt: metadata lands whatever the transfer is doing
            self.batch.patch(item_id, **changes)

    async def wait_for_metadata(self):
        if self._metadata_tasks:
            await asyncio.gather(*list(self._metadata_tasks), return_exceptions=True)

    def remove(self, item_id: str) -> bool:
        self.scheduler.cancel(item_id)
        return self.batch.remove(item_id) is not None

    def update_title(self, item_id: str, title: str) -> bool:
        return self.batch.update_title(item_id, title)

    def cancel(self, item_id: str) -> bool:
        return self.scheduler.cancel(item_id)

    async def start_uploads(self) -> SchedulerRun:
        """Upload every pending item; on_complete fires with whatever finished"""
        run = await self.scheduler.run()
        results = []
        for item_id in run.completed:
            item = self.batch.get(item_id)
            if item is not None and item.status == UploadStatus.COMPLETED and item.video_id:
                results.append(UploadResult(video_id=item.video_id, title=item.title))
        if results and self.on_complete is not None:
            self.on_complete(results)
        return run

    async def retry_failed(self) -> SchedulerRun:
        reset = self.batch.reset_failed()
        if not reset:
            return SchedulerRun()
        self.logger.info(f"Retrying {len(reset)} failed uploads")
        return await self.start_uploads()

    async def retry(self, item_id: str) -> SchedulerRun:
        item = self.batch.get(item_id)
        if item is None or item.status != UploadStatus.FAILED:
            return SchedulerRun()
        self.batch.reset_to_pending(item_id)
        return await self.start_uploads()

    def clear_completed(self) -> int:
        return self.batch.clear_completed()

    def clear_all(self) -> int:
        self.scheduler.cancel_all()
        return self.batch.clear_all()

    async def aclose(self):
        self.scheduler.cancel_all()
        for task in list(self._metadata_tasks):
            task.cancel()
        await self.wait_for_metadata()

    async def __aenter__(self) -> "BulkUploadSession":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
