"""
Redis service for mirroring video metadata
Disabled unless REDIS_ENABLED is set; every call then degrades to a no-op
"""

import json
from typing import Any, Dict, Optional

import redis

from video_uploader.config.base import settings
from video_uploader.utils.logger import get_logger

logger = get_logger(__name__)


class RedisService:
    def __init__(self, client: Optional[redis.Redis] = None):
        self.redis_client = client
        self.enabled = client is not None

        if client is None and settings.REDIS_ENABLED:
            self.redis_client = redis.Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                password=settings.REDIS_PASSWORD or None,
                db=settings.REDIS_DB,
                decode_responses=True
            )
            self.enabled = True
            logger.info(f"Using Redis at {settings.REDIS_HOST}:{settings.REDIS_PORT}")
        elif client is None:
            logger.info("Redis disabled - video metadata is kept in memory only")

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Get JSON object by key"""
        if not self.enabled:
            return None
        try:
            value = self.redis_client.get(key)
            return json.loads(value) if value else None
        except (redis.RedisError, ValueError) as e:
            logger.error(f"Redis GET JSON failed for key {key}: {str(e)}")
            return None

    async def set_json(self, key: str, value: Dict[str, Any], expire: Optional[int] = None) -> bool:
        """Set JSON object with optional expiration"""
        if not self.enabled:
            return False
        try:
            return bool(self.redis_client.set(key, json.dumps(value), ex=expire))
        except redis.RedisError as e:
            logger.error(f"Redis SET JSON failed for key {key}: {str(e)}")
            return False

    async def ping(self) -> bool:
        if not self.enabled:
            return False
        try:
            return bool(self.redis_client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis PING failed: {str(e)}")
            return False

    async def cache_video_metadata(self, video_id: str, metadata: Dict[str, Any], expire: Optional[int] = None) -> bool:
        return await self.set_json(f"video_meta:{video_id}", metadata, expire or settings.VIDEO_META_TTL)

    async def get_cached_video_metadata(self, video_id: str) -> Optional[Dict[str, Any]]:
        return await self.get_json(f"video_meta:{video_id}")
