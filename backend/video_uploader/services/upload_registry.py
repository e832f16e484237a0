"""
Upload registry
Pending upload sessions (TTL and size bounded) and the video records created on confirm
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from video_uploader.config.base import settings
from video_uploader.models.intermediary import VideoRecord
from video_uploader.utils.logger import get_logger

logger = get_logger(__name__)


class SessionCache:
    """Thread-safe cache of upload sessions with TTL and size limits"""

    def __init__(self, max_size: int = 1000, ttl_seconds: int = 7200):
        """
        Args:
            max_size: Maximum number of open upload sessions
            ttl_seconds: Time to live for a session (default 2 hours)
        """
        self.cache: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._lock = threading.RLock()

        logger.info(f"SessionCache initialized: max_size={max_size}, ttl={ttl_seconds}s")

    def set(self, key: str, value: Dict[str, Any]) -> None:
        """Store session data with timestamp"""
        with self._lock:
            self._cleanup_expired()

            # Remove oldest if at capacity
            if key not in self.cache and len(self.cache) >= self.max_size:
                oldest_key, _ = self.cache.popitem(last=False)
                logger.warning(f"Evicted oldest upload session: {oldest_key}")

            value = dict(value)
            value['_timestamp'] = time.time()
            self.cache[key] = value
            self.cache.move_to_end(key)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Retrieve session data if not expired"""
        with self._lock:
            if key not in self.cache:
                return None

            entry = self.cache[key]
            if time.time() - entry.get('_timestamp', 0) > self.ttl_seconds:
                logger.info(f"Upload session expired: {key}")
                del self.cache[key]
                return None

            return entry

    def delete(self, key: str) -> bool:
        with self._lock:
            if key in self.cache:
                del self.cache[key]
                return True
            return False

    def _cleanup_expired(self) -> None:
        """Remove expired entries (called with lock held)"""
        current_time = time.time()
        expired_keys = [
            key for key, value in self.cache.items()
            if current_time - value.get('_timestamp', 0) > self.ttl_seconds
        ]
        for key in expired_keys:
            del self.cache[key]
            logger.info(f"Expired upload session removed: {key}")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            self._cleanup_expired()
            return {
                "cache_size": len(self.cache),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
            }


class UploadRegistry:
    """Upload sessions handed out by presign and the videos registered by confirm"""

    def __init__(self, max_sessions: Optional[int] = None, session_ttl: Optional[int] = None):
        self.sessions = SessionCache(
            max_size=max_sessions or settings.UPLOAD_SESSION_MAX,
            ttl_seconds=session_ttl or settings.UPLOAD_SESSION_TTL,
        )
        self._videos: "OrderedDict[str, VideoRecord]" = OrderedDict()
        self._lock = threading.RLock()

    def open_session(
        self,
        upload_id: str,
        file_key: str,
        filename: str,
        content_type: str,
        file_size: int,
        organization_id: str,
    ) -> None:
        self.sessions.set(upload_id, {
            'file_key': file_key,
            'filename': filename,
            'content_type': content_type,
            'size': file_size,
            'organization_id': organization_id,
            'status': 'pending_upload',
        })
        logger.info(f"Upload session {upload_id} opened for {filename} ({file_size/(1024*1024):.1f}MB)")

    def get_session(self, upload_id: str) -> Optional[Dict[str, Any]]:
        return self.sessions.get(upload_id)

    def close_session(self, upload_id: str) -> bool:
        return self.sessions.delete(upload_id)

    def add_video(self, record: VideoRecord) -> VideoRecord:
        with self._lock:
            self._videos[record.video_id] = record
        logger.info(f"Registered video {record.video_id}: {record.title!r}")
        return record

    def get_video(self, video_id: str) -> Optional[VideoRecord]:
        with self._lock:
            return self._videos.get(video_id)

    def videos_for(self, organization_id: str) -> List[VideoRecord]:
        with self._lock:
            return [v for v in self._videos.values() if v.organization_id == organization_id]

    def title_exists(self, organization_id: str, title: str) -> bool:
        """Titles are unique per organization, compared case-insensitively"""
        wanted = title.strip().casefold()
        return any(v.title.strip().casefold() == wanted for v in self.videos_for(organization_id))

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            videos = len(self._videos)
        return {"sessions": self.sessions.get_stats(), "videos": videos}
