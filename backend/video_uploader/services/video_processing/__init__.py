"""
Video probing package
Derives a preview thumbnail and the duration of queued files without blocking the queue
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from video_uploader.config.base import settings
from video_uploader.models.upload import VideoSource
from video_uploader.utils.logger import get_logger

from .core import (
    VideoProcessor,
    VideoMetadata,
    Thumbnail,
    ProcessingError,
    VideoFormat,
    ProcessorFactory,
)

from .opencv_processor import OpenCVProcessor

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class MediaProbe:
    """Whatever could be derived in time; missing fields are None"""
    thumbnail: Optional[str] = None
    duration: Optional[float] = None


def format_duration(seconds: float) -> str:
    """Format seconds as m:ss or h:mm:ss"""
    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class MetadataExtractor:
    """Runs the blocking probes on a small dedicated thread pool with independent timeouts"""

    def __init__(
        self,
        factory: ProcessorFactory,
        thumbnail_timeout: float = None,
        duration_timeout: float = None,
        max_workers: int = None,
    ):
        self.factory = factory
        self.thumbnail_timeout = settings.THUMBNAIL_TIMEOUT if thumbnail_timeout is None else thumbnail_timeout
        self.duration_timeout = settings.DURATION_TIMEOUT if duration_timeout is None else duration_timeout
        self.thumbnail_size = (settings.THUMBNAIL_WIDTH, settings.THUMBNAIL_HEIGHT)
        # A timed-out decode keeps its thread until OpenCV returns; stalled files only tie up this pool
        self.executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.METADATA_WORKERS,
            thread_name_prefix="metadata-probe",
        )

    async def extract(self, source: VideoSource) -> MediaProbe:
        """Never raises; a decode failure or timeout leaves the field empty"""
        processor = self.factory.get_best_processor()
        if processor is None:
            logger.warning("No video processors available, skipping metadata extraction")
            return MediaProbe()

        thumbnail, duration = await asyncio.gather(
            self._guarded(lambda: self._thumbnail(processor, source.path), self.thumbnail_timeout, "thumbnail", source),
            self._guarded(lambda: self._duration(processor, source.path), self.duration_timeout, "duration", source),
        )
        return MediaProbe(thumbnail=thumbnail, duration=duration)

    def _thumbnail(self, processor: VideoProcessor, path: str) -> Optional[str]:
        thumbnail = processor.capture_thumbnail(
            path,
            self.thumbnail_size,
            settings.THUMBNAIL_SEEK_SECONDS,
            settings.THUMBNAIL_SEEK_FRACTION,
        )
        return thumbnail.data_url if thumbnail.is_valid() else None

    @staticmethod
    def _duration(processor: VideoProcessor, path: str) -> Optional[float]:
        metadata = processor.get_video_metadata(path)
        return metadata.duration if metadata.is_valid() else None

    async def _guarded(self, probe: Callable[[], T], timeout: float, label: str, source: VideoSource) -> Optional[T]:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.run_in_executor(self.executor, probe), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{label} probe timed out after {timeout}s for {source.name}")
        except ProcessingError as e:
            logger.warning(f"{label} probe failed for {source.name}: {e.error_code} - {e}")
        except Exception as e:
            logger.warning(f"{label} probe failed for {source.name}: {e}")
        return None


# Global extractor instance
_processor_factory = None
_metadata_extractor = None


def get_metadata_extractor() -> MetadataExtractor:
    """Get singleton metadata extractor instance"""
    global _processor_factory, _metadata_extractor

    if _metadata_extractor is None:
        _processor_factory = ProcessorFactory()
        _processor_factory.register_processor(OpenCVProcessor(jpeg_quality=settings.THUMBNAIL_JPEG_QUALITY))
        _metadata_extractor = MetadataExtractor(_processor_factory)

    return _metadata_extractor


__all__ = [
    'VideoProcessor',
    'VideoMetadata',
    'Thumbnail',
    'ProcessingError',
    'VideoFormat',
    'ProcessorFactory',
    'OpenCVProcessor',
    'MediaProbe',
    'MetadataExtractor',
    'format_duration',
    'get_metadata_extractor',
]
