"""
Video probing core
Abstractions for reading duration and a preview frame from a local video file
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Base exception for video probing errors"""
    def __init__(self, message: str, error_code: str, details: Dict[str, Any] = None):
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()


class VideoFormat(Enum):
    """Known container formats"""
    MP4 = "mp4"
    M4V = "m4v"
    AVI = "avi"
    MOV = "mov"
    WEBM = "webm"
    MKV = "mkv"
    FLV = "flv"
    WMV = "wmv"
    THREE_GP = "3gp"
    MPEG = "mpeg"
    OGV = "ogv"
    UNKNOWN = "unknown"


@dataclass
class VideoMetadata:
    """Video metadata container"""
    duration: float
    fps: float
    width: int
    height: int
    total_frames: int
    format: VideoFormat
    codec: str
    file_size: int

    def is_valid(self) -> bool:
        """Duration is only usable when the stream reported sane numbers"""
        return (
            self.duration > 0 and
            self.fps > 0 and
            self.width > 0 and
            self.height > 0 and
            self.total_frames > 0
        )


@dataclass
class Thumbnail:
    """Preview frame encoded as a data URL"""
    data_url: str
    width: int
    height: int
    timestamp: float

    def is_valid(self) -> bool:
        return bool(self.data_url) and self.data_url.startswith("data:image/") and self.width > 0 and self.height > 0


class VideoProcessor(ABC):
    """Abstract base class for video probes"""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{name}")

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this processor is available on the system"""
        pass

    @abstractmethod
    def get_video_metadata(self, video_path: str) -> VideoMetadata:
        """Extract video metadata"""
        pass

    @abstractmethod
    def capture_thumbnail(
        self,
        video_path: str,
        size: Tuple[int, int],
        seek_seconds: float,
        seek_fraction: float,
    ) -> Thumbnail:
        """Capture one early frame as a small JPEG"""
        pass

    def validate_video_file(self, video_path: str) -> None:
        """Validate video file before probing"""
        if not os.path.exists(video_path):
            raise ProcessingError(
                f"Video file not found: {video_path}",
                "FILE_NOT_FOUND",
                {"path": video_path}
            )

        file_size = os.path.getsize(video_path)
        if file_size == 0:
            raise ProcessingError(
                f"Video file is empty: {video_path}",
                "FILE_EMPTY",
                {"path": video_path}
            )

        self.logger.debug(f"Video file validated: {video_path} ({file_size / (1024*1024):.2f}MB)")


class ProcessorFactory:
    """Registry of video probes, best first"""

    def __init__(self):
        self._processors: List[VideoProcessor] = []
        self.logger = logging.getLogger(f"{__name__}.ProcessorFactory")

    def register_processor(self, processor: VideoProcessor) -> None:
        """Register a video processor"""
        self._processors.append(processor)
        self.logger.info(f"Registered processor: {processor.name}")

    def get_available_processors(self) -> List[VideoProcessor]:
        """Get all available processors"""
        available = []
        for processor in self._processors:
            try:
                if processor.is_available():
                    available.append(processor)
                else:
                    self.logger.warning(f"Processor {processor.name} is not available")
            except Exception as e:
                self.logger.error(f"Error checking processor {processor.name}: {e}")

        return available

    def get_best_processor(self) -> Optional[VideoProcessor]:
        """Get the best available processor"""
        available = self.get_available_processors()
        return available[0] if available else None
