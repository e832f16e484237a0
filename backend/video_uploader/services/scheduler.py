"""
Upload scheduler

Bounded-concurrency admission over the pending items of a batch. A run takes
a snapshot of the pending ids and starts min(K, N) workers that pull the next
id from a shared queue, so a slot is refilled the moment an item finishes.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from video_uploader.config.base import settings
from video_uploader.errors import TransferCancelled
from video_uploader.models.upload import UploadStatus
from video_uploader.services.batch import UploadBatch
from video_uploader.services.cancellation import CancellationToken
from video_uploader.utils.logger import PerformanceLogger, get_logger

logger = get_logger(__name__)

# Resolves True when the item completed and False when it failed
WorkerFn = Callable[[str, CancellationToken], Awaitable[bool]]

POOL = "pool"
SEQUENTIAL = "sequential"


@dataclass
class SchedulerRun:
    """Outcome of one scheduler run"""
    admitted: List[str] = field(default_factory=list)
    completed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    cancelled: List[str] = field(default_factory=list)
    duration: float = 0.0


class UploadScheduler:
    discipline = POOL

    def __init__(
        self,
        batch: UploadBatch,
        worker: WorkerFn,
        concurrency: Optional[int] = None,
        name: str = "uploads",
    ):
        self.batch = batch
        self.worker = worker
        self.concurrency = max(1, concurrency or settings.CONCURRENT_UPLOADS)
        self.name = name
        self.in_flight: Dict[str, CancellationToken] = {}
        self._running = False
        self._idle: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> SchedulerRun:
        """Upload every item that is pending now; returns once each admitted item settled"""
        summary = SchedulerRun()
        if self._running:
            logger.info(f"{self.name}: waiting for the active run to finish")
            await self._wait_idle()

        pending = [item.id for item in self.batch.pending()]
        if not pending:
            logger.info(f"{self.name}: nothing to upload")
            return summary

        queue: "asyncio.Queue[str]" = asyncio.Queue()
        for item_id in pending:
            queue.put_nowait(item_id)

        workers = min(self.concurrency, len(pending))
        perf = PerformanceLogger(self.name)
        perf.start(f"{self.name} run: {len(pending)} items, {workers} slots ({self.discipline})")

        self._running = True
        self._get_idle().clear()
        try:
            await asyncio.gather(*(self._drain(queue, summary) for _ in range(workers)))
        finally:
            self._running = False
            self._get_idle().set()

        summary.duration = perf.end(
            f"{len(summary.completed)} completed, {len(summary.failed)} failed, {len(summary.cancelled)} cancelled"
        )
        perf.metric(f"{self.name}_items_completed", len(summary.completed))
        return summary

    def _get_idle(self) -> asyncio.Event:
        if self._idle is None:
            self._idle = asyncio.Event()
            self._idle.set()
        return self._idle

    async def _wait_idle(self):
        # Several callers may be waiting; whoever resumes first starts the next run
        while self._running:
            await self._get_idle().wait()

    async def _drain(self, queue: "asyncio.Queue[str]", summary: SchedulerRun):
        while True:
            try:
                item_id = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            # Removed, cancelled-and-retried elsewhere or already finished
            admitted = self.batch.admit(item_id)
            if admitted is None:
                logger.debug(f"{self.name}: skipping {item_id}, no longer pending")
                continue

            token = CancellationToken()
            self.in_flight[item_id] = token
            summary.admitted.append(item_id)
            try:
                ok = await self.worker(item_id, token)
            except TransferCancelled:
                summary.cancelled.append(item_id)
            except Exception as e:
                logger.exception(f"{self.name}: worker crashed on {item_id}")
                self.batch.apply(item_id, admitted.attempt, status=UploadStatus.FAILED, error=str(e) or "Upload failed")
                summary.failed.append(item_id)
            else:
                if ok:
                    summary.completed.append(item_id)
                elif token.cancelled:
                    summary.cancelled.append(item_id)
                else:
                    summary.failed.append(item_id)
            finally:
                if self.in_flight.get(item_id) is token:
                    del self.in_flight[item_id]

    def cancel(self, item_id: str) -> bool:
        """Abort an in-flight item and put it back to pending with no progress"""
        token = self.in_flight.pop(item_id, None)
        if token is not None:
            token.cancel()

        item = self.batch.get(item_id)
        if item is None or not (item.is_active or token is not None):
            return token is not None

        self.batch.reset_to_pending(item_id)
        logger.info(f"{self.name}: cancelled {item.filename}")
        return True

    def cancel_all(self) -> int:
        cancelled = 0
        for item_id in list(self.in_flight):
            if self.cancel(item_id):
                cancelled += 1
        return cancelled


class SequentialScheduler(UploadScheduler):
    """One item at a time, in batch order"""

    discipline = SEQUENTIAL

    def __init__(self, batch: UploadBatch, worker: WorkerFn, name: str = "imports"):
        super().__init__(batch, worker, concurrency=1, name=name)


def build_scheduler(
    mode: str,
    batch: UploadBatch,
    worker: WorkerFn,
    concurrency: Optional[int] = None,
    name: str = "uploads",
) -> UploadScheduler:
    """Pick an admission discipline by name"""
    mode = (mode or POOL).lower()
    if mode == SEQUENTIAL:
        return SequentialScheduler(batch, worker, name=name)
    if mode == POOL:
        return UploadScheduler(batch, worker, concurrency, name=name)
    raise ValueError(f"Unknown scheduling mode: {mode!r} (expected '{POOL}' or '{SEQUENTIAL}')")
