"""
Remote video fetcher for URL imports
"""

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx

from video_uploader.config.base import settings
from video_uploader.errors import RemoteFetchError
from video_uploader.utils.logger import get_logger

logger = get_logger(__name__)

CONTENT_TYPE_EXTENSIONS = {
    "video/mp4": "mp4",
    "video/quicktime": "mov",
    "video/x-msvideo": "avi",
    "video/x-matroska": "mkv",
    "video/webm": "webm",
    "video/x-flv": "flv",
    "video/x-ms-wmv": "wmv",
    "video/3gpp": "3gp",
    "video/mpeg": "mp4",
}

DEFAULT_EXTENSION = "mp4"


def extension_from_url(url: str) -> Optional[str]:
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return None
    for ext in settings.SUPPORTED_EXTENSIONS:
        if path.endswith(f".{ext}"):
            return ext
    return None


def extension_from_content_type(content_type: str) -> Optional[str]:
    return CONTENT_TYPE_EXTENSIONS.get(content_type.split(";")[0].strip().lower())


@dataclass
class RemoteVideo:
    url: str
    content_type: str
    size: Optional[int]

    @property
    def extension(self) -> str:
        return extension_from_url(self.url) or extension_from_content_type(self.content_type) or DEFAULT_EXTENSION


class UrlFetcher:
    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        max_size: Optional[int] = None,
    ):
        self.transport = transport
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self.max_size = max_size or settings.MAX_URL_FILE_SIZE
        self.headers = {"User-Agent": settings.URL_IMPORT_USER_AGENT}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            timeout=self.timeout,
            headers=self.headers,
            follow_redirects=True,
        )

    def _too_large(self) -> RemoteFetchError:
        limit_gb = self.max_size / (1024 ** 3)
        return RemoteFetchError(f"Video file is too large. Maximum size for URL imports is {limit_gb:g}GB.")

    async def probe(self, url: str) -> RemoteVideo:
        """HEAD the URL for its content type and size"""
        try:
            async with self._client() as client:
                response = await client.head(url)
        except httpx.HTTPError as e:
            logger.warning(f"HEAD {url} failed: {e}")
            raise RemoteFetchError("Failed to access video URL. Please check if the URL is accessible.")

        if response.is_error:
            raise RemoteFetchError(f"Failed to access video URL: {response.status_code} {response.reason_phrase}")

        content_length = response.headers.get("content-length")
        size = int(content_length) if content_length and content_length.isdigit() else None
        if size is not None and size > self.max_size:
            raise self._too_large()

        return RemoteVideo(url=url, content_type=response.headers.get("content-type", ""), size=size)

    async def download(self, url: str, dest_path: str) -> int:
        """Stream the body to dest_path, aborting once it passes the size ceiling"""
        written = 0
        try:
            async with self._client() as client:
                async with client.stream("GET", url) as response:
                    if response.is_error:
                        raise RemoteFetchError(
                            f"Failed to download video: {response.status_code} {response.reason_phrase}"
                        )
                    with open(dest_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            written += len(chunk)
                            if written > self.max_size:
                                raise self._too_large()
                            f.write(chunk)
        except httpx.HTTPError as e:
            logger.warning(f"GET {url} failed: {e}")
            raise RemoteFetchError("Failed to download video from URL.")
        except RemoteFetchError:
            if os.path.exists(dest_path):
                os.remove(dest_path)
            raise

        logger.info(f"Downloaded {url} ({written/(1024*1024):.1f}MB)")
        return written
