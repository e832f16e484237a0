"""
OpenCV video probe
Reads duration and a preview frame, trying several capture backends in order
"""

import base64
import os
from io import BytesIO
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from .core import (
    VideoProcessor, VideoMetadata, Thumbnail, ProcessingError, VideoFormat
)


class OpenCVProcessor(VideoProcessor):
    """OpenCV-backed probe for local video files"""

    # Capture backends in priority order
    BACKENDS = [
        {
            "backend": cv2.CAP_FFMPEG,
            "name": "FFMPEG",
            "description": "Most reliable for file containers",
            "priority": 1
        },
        {
            "backend": cv2.CAP_ANY,
            "name": "ANY",
            "description": "Let OpenCV auto-select best backend",
            "priority": 2
        },
    ]

    def __init__(self, jpeg_quality: int = 70):
        super().__init__("OpenCV")
        self.jpeg_quality = jpeg_quality
        self._available_backends: Optional[List[Dict]] = None

    def is_available(self) -> bool:
        """Check if OpenCV is importable and has a usable capture backend"""
        try:
            self.logger.debug(f"OpenCV version: {cv2.__version__}")
            return bool(self._get_available_backends())
        except Exception as e:
            self.logger.error(f"OpenCV availability check failed: {e}")
            return False

    def _get_available_backends(self) -> List[Dict]:
        """Get list of configured backends OpenCV can instantiate"""
        if self._available_backends is not None:
            return self._available_backends

        available = []
        for backend_config in self.BACKENDS:
            try:
                test_cap = cv2.VideoCapture()
                if hasattr(test_cap, 'open'):
                    available.append(backend_config)
                test_cap.release()
            except Exception as e:
                self.logger.warning(f"Backend {backend_config['name']} test failed: {e}")

        self._available_backends = available
        return available

    def _open(self, video_path: str):
        """Open the file with the first backend that accepts it"""
        for backend_config in self._get_available_backends():
            cap = cv2.VideoCapture(video_path, backend_config["backend"])
            if cap.isOpened():
                return cap, backend_config["name"]
            cap.release()
            self.logger.debug(f"Could not open {video_path} with {backend_config['name']}")

        raise ProcessingError(
            f"Could not open {video_path} with any available backend",
            "OPEN_FAILED",
            {
                "video_path": video_path,
                "attempted_backends": [b["name"] for b in self._get_available_backends()]
            }
        )

    @staticmethod
    def _duration(cap) -> Tuple[float, float, int]:
        fps = cap.get(cv2.CAP_PROP_FPS)
        total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        duration = total_frames / fps if fps > 0 else 0.0
        return duration, fps, total_frames

    def get_video_metadata(self, video_path: str) -> VideoMetadata:
        """Read stream properties from the container"""
        self.validate_video_file(video_path)
        cap, backend_name = self._open(video_path)

        try:
            duration, fps, total_frames = self._duration(cap)
            width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
            fourcc = cap.get(cv2.CAP_PROP_FOURCC)
        finally:
            cap.release()

        ext = os.path.splitext(video_path)[1].lower().lstrip('.')
        try:
            video_format = VideoFormat(ext)
        except ValueError:
            video_format = VideoFormat.UNKNOWN

        # Convert fourcc to string
        fourcc_str = "".join([chr((int(fourcc) >> 8 * i) & 0xFF) for i in range(4)]).strip()

        metadata = VideoMetadata(
            duration=duration,
            fps=fps,
            width=width,
            height=height,
            total_frames=total_frames,
            format=video_format,
            codec=fourcc_str,
            file_size=os.path.getsize(video_path)
        )
        self.logger.debug(
            f"Metadata via {backend_name}: {duration:.1f}s, {width}x{height}, {total_frames} frames, {fps:.1f} FPS"
        )
        return metadata

    def capture_thumbnail(
        self,
        video_path: str,
        size: Tuple[int, int] = (160, 90),
        seek_seconds: float = 1.0,
        seek_fraction: float = 0.1,
    ) -> Thumbnail:
        """Grab the frame at min(seek_seconds, seek_fraction * duration)"""
        self.validate_video_file(video_path)
        cap, backend_name = self._open(video_path)

        try:
            duration, _, _ = self._duration(cap)
            timestamp = min(seek_seconds, duration * seek_fraction) if duration > 0 else 0.0
            cap.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000)
            ret, frame = cap.read()
            if not ret or frame is None:
                # Some containers refuse to seek; fall back to the first frame
                cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
                ret, frame = cap.read()
                timestamp = 0.0
        finally:
            cap.release()

        if not ret or frame is None:
            raise ProcessingError(
                f"Could not read a frame from {video_path}",
                "FRAME_READ_FAILED",
                {"video_path": video_path, "backend": backend_name}
            )

        return Thumbnail(
            data_url=self._encode_frame(frame, size),
            width=size[0],
            height=size[1],
            timestamp=timestamp,
        )

    def _encode_frame(self, frame: np.ndarray, size: Tuple[int, int]) -> str:
        """Scale the frame onto a fixed-size canvas and encode it as a JPEG data URL"""
        resized = cv2.resize(frame, size, interpolation=cv2.INTER_AREA)

        # OpenCV uses BGR by default
        rgb_frame = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)

        buffer = BytesIO()
        Image.fromarray(rgb_frame).save(buffer, format='JPEG', quality=self.jpeg_quality)
        encoded = base64.b64encode(buffer.getvalue()).decode('utf-8')
        return f"data:image/jpeg;base64,{encoded}"
