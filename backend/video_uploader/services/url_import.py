"""
URL imports

Remote videos skip the local transfer: the intermediary fetches and registers
them in one call. Progress is synthetic (10 while validating, 50 while
importing, 100 when done).
"""

import re
from typing import Callable, Iterable, List, Optional
from urllib.parse import urlparse

from video_uploader.config.base import settings
from video_uploader.errors import FileValidationError, TransferCancelled, TransferError
from video_uploader.models.intermediary import UploadMetadata
from video_uploader.models.upload import UploadItem, UploadResult, UploadStatus, VideoPlatform
from video_uploader.services.batch import UploadBatch
from video_uploader.services.cancellation import CancellationToken
from video_uploader.services.intake import IntakeResult, title_from_filename
from video_uploader.services.intermediary_client import IntermediaryClient
from video_uploader.services.scheduler import SchedulerRun, UploadScheduler, build_scheduler
from video_uploader.utils.logger import LoggerMixin, get_logger

logger = get_logger(__name__)

DEFAULT_URL_TITLE = "Video from URL"

_DIRECT_VIDEO_RE = re.compile(r"\.(mp4|mov|webm|avi|mkv|wmv|flv|3gp)$")

_PLATFORM_TITLES = {
    VideoPlatform.YOUTUBE: "YouTube Video",
    VideoPlatform.VIMEO: "Vimeo Video",
    VideoPlatform.LOOM: "Loom Recording",
}

VALIDATING_PROGRESS = 10
IMPORTING_PROGRESS = 50


def normalize_url(text: str) -> Optional[str]:
    """Trim, default the scheme to https and check the result parses; None when it doesn't"""
    url = (text or "").strip()
    if not url:
        return None
    if not url.startswith("http://") and not url.startswith("https://"):
        url = f"https://{url}"
    if any(c.isspace() for c in url):
        return None
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not hostname:
        return None
    return url


def detect_platform(url: str) -> VideoPlatform:
    try:
        parsed = urlparse(url)
        hostname = (parsed.hostname or "").lower()
    except ValueError:
        return VideoPlatform.UNKNOWN

    if "youtube.com" in hostname or "youtu.be" in hostname:
        return VideoPlatform.YOUTUBE
    if "vimeo.com" in hostname:
        return VideoPlatform.VIMEO
    if "loom.com" in hostname:
        return VideoPlatform.LOOM
    if _DIRECT_VIDEO_RE.search(parsed.path.lower()):
        return VideoPlatform.DIRECT
    return VideoPlatform.UNKNOWN


def filename_from_url(url: str) -> str:
    try:
        path = urlparse(url).path
    except ValueError:
        return DEFAULT_URL_TITLE
    name = title_from_filename(path.rsplit("/", 1)[-1]) if path else ""
    return name or DEFAULT_URL_TITLE


def extract_video_title(url: str, platform: Optional[VideoPlatform] = None) -> str:
    """Default title for an imported URL"""
    platform = platform or detect_platform(url)
    if platform in _PLATFORM_TITLES:
        return _PLATFORM_TITLES[platform]
    return filename_from_url(url)


class UrlImportWorker(LoggerMixin):
    def __init__(
        self,
        batch: UploadBatch,
        client: IntermediaryClient,
        organization_id: str,
        author_id: str,
        collection_id: Optional[str] = None,
    ):
        self.batch = batch
        self.client = client
        self.organization_id = organization_id
        self.author_id = author_id
        self.collection_id = collection_id

    async def __call__(self, item_id: str, token: CancellationToken) -> bool:
        item = self.batch.get(item_id)
        if item is None or not item.is_url:
            return False
        attempt = item.attempt

        try:
            self.batch.apply(item_id, attempt, status=UploadStatus.VALIDATING, progress=VALIDATING_PROGRESS, error=None)
            if normalize_url(item.source) is None:
                raise TransferError("Please enter a valid URL", "validate")

            self.batch.apply(item_id, attempt, status=UploadStatus.IMPORTING, progress=IMPORTING_PROGRESS)
            metadata = UploadMetadata(
                filename=filename_from_url(item.source),
                file_size=0,
                title=item.title,
                organization_id=self.organization_id,
                author_id=self.author_id,
                collection_id=self.collection_id,
            )
            confirmed = await token.run(self.client.import_from_url(item.source, metadata))
        except TransferCancelled:
            self.logger.info(f"Import of {item.source} cancelled")
            raise
        except Exception as e:
            message = str(e) or "Import failed"
            self.logger.error(f"Failed to import video from URL {item.source}: {message}")
            self.batch.apply(item_id, attempt, status=UploadStatus.FAILED, progress=0, error=message)
            return False

        token.raise_if_cancelled()
        self.batch.apply(
            item_id, attempt, status=UploadStatus.COMPLETED, progress=100, video_id=confirmed.video_id
        )
        self.logger.info(f"Imported {item.source} as video {confirmed.video_id}")
        return True


class UrlImportSession(LoggerMixin):
    def __init__(
        self,
        client: IntermediaryClient,
        organization_id: str,
        author_id: str,
        collection_id: Optional[str] = None,
        mode: Optional[str] = None,
        concurrency: Optional[int] = None,
        on_complete: Optional[Callable[[List[UploadResult]], None]] = None,
    ):
        self.client = client
        self.batch = UploadBatch()
        self.worker = UrlImportWorker(self.batch, client, organization_id, author_id, collection_id)
        self.scheduler: UploadScheduler = build_scheduler(
            mode or settings.URL_IMPORT_MODE,
            self.batch,
            self.worker,
            concurrency or settings.URL_IMPORT_CONCURRENCY,
            name="imports",
        )
        self.on_complete = on_complete

    @property
    def is_importing(self) -> bool:
        return self.scheduler.running

    def add_url(self, text: str) -> UploadItem:
        """Queue one URL; raises FileValidationError for an invalid or repeated URL"""
        url = normalize_url(text)
        if url is None:
            raise FileValidationError(text, "Please enter a valid URL", "INVALID_URL")
        if any(item.source == url for item in self.batch if item.is_url):
            raise FileValidationError(url, "This URL has already been added", "DUPLICATE")

        platform = detect_platform(url)
        item = UploadItem(source=url, title=extract_video_title(url, platform), platform=platform)
        self.batch.add([item])
        return item

    def add_urls(self, texts: Iterable[str]) -> IntakeResult:
        result = IntakeResult()
        for text in texts:
            try:
                result.accepted.append(self.add_url(text))
            except FileValidationError as e:
                logger.warning(f"Skipped URL {e.filename}: {e.reason}")
                result.errors.append(e)
        return result

    def remove(self, item_id: str) -> bool:
        self.scheduler.cancel(item_id)
        return self.batch.remove(item_id) is not None

    def update_title(self, item_id: str, title: str) -> bool:
        return self.batch.update_title(item_id, title)

    def cancel(self, item_id: str) -> bool:
        return self.scheduler.cancel(item_id)

    async def start_imports(self) -> SchedulerRun:
        run = await self.scheduler.run()
        results = []
        for item_id in run.completed:
            item = self.batch.get(item_id)
            if item is not None and item.video_id:
                results.append(UploadResult(video_id=item.video_id, title=item.title))
        if results and self.on_complete is not None:
            self.on_complete(results)
        return run

    async def retry_failed(self) -> SchedulerRun:
        if not self.batch.reset_failed():
            return SchedulerRun()
        return await self.start_imports()

    def clear_completed(self) -> int:
        return self.batch.clear_completed()

    def clear_all(self) -> int:
        self.scheduler.cancel_all()
        return self.batch.clear_all()
