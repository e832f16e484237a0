"""
Pytest configuration and fixtures for testing
"""

import asyncio
import threading
import time
from collections import defaultdict
from typing import Callable, Dict, Optional, Set

import httpx
import pytest
from fastapi.testclient import TestClient

from video_uploader.errors import IntermediaryError, TransferError
from video_uploader.main import app, get_redis, get_registry, get_storage
from video_uploader.models.intermediary import ConfirmedVideo, PresignedUpload, UploadMetadata
from video_uploader.models.upload import VideoSource
from video_uploader.services.batch import UploadBatch
from video_uploader.services.intermediary_client import IntermediaryClient
from video_uploader.services.redis_service import RedisService
from video_uploader.services.storage_service import StorageService
from video_uploader.services.upload_registry import UploadRegistry
from video_uploader.services.video_processing import (
    ProcessingError,
    Thumbnail,
    VideoFormat,
    VideoMetadata,
    VideoProcessor,
)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0):
    """Yield to the loop until predicate holds"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class FakeIntermediary:
    """In-memory stand-in for IntermediaryClient that can hold transfers open"""

    def __init__(
        self,
        hold: bool = False,
        reject_titles: Optional[Set[str]] = None,
        fail_transfers: Optional[Set[str]] = None,
    ):
        self.hold = hold
        self.reject_titles = set(reject_titles or ())
        self.fail_transfers = set(fail_transfers or ())
        self.gates: Dict[str, asyncio.Event] = defaultdict(asyncio.Event)
        self.in_transfer = 0
        self.max_in_transfer = 0
        self.confirmed = []
        self.imports = []

    def release(self, filename: str):
        self.gates[filename].set()

    def release_all(self):
        self.hold = False
        for gate in self.gates.values():
            gate.set()

    async def request_destination(self, filename, content_type, size, organization_id, token=None):
        return PresignedUpload(
            upload_id=f"up-{filename}",
            upload_url=f"http://storage.test/{filename}",
            file_key=f"{organization_id}/videos/{filename}",
            expires_in=3600,
        )

    async def transfer(self, destination_url, source: VideoSource, content_type=None, on_progress=None, token=None):
        self.in_transfer += 1
        self.max_in_transfer = max(self.max_in_transfer, self.in_transfer)
        try:
            if self.hold:
                await token.run(self.gates[source.name].wait())
            if source.name in self.fail_transfers:
                raise TransferError("Upload failed with status 500", "transfer")
            if on_progress:
                on_progress(source.size // 2, source.size)
                on_progress(source.size, source.size)
        finally:
            self.in_transfer -= 1

    async def confirm_transfer(self, upload_id, file_key, metadata: UploadMetadata, token=None):
        if metadata.title in self.reject_titles:
            raise IntermediaryError(f'Video title "{metadata.title}" already exists', "confirm", 409)
        self.confirmed.append(metadata)
        return ConfirmedVideo(
            video_id=f"vid-{metadata.filename}",
            video_url=f"http://storage.test/{file_key}",
            processing_status="pending",
            upload_id=upload_id,
        )

    async def import_from_url(self, url, metadata: UploadMetadata):
        if self.hold:
            await self.gates[url].wait()
        if metadata.title in self.reject_titles:
            raise IntermediaryError("Failed to access video URL: 404 Not Found", "import", 400)
        self.imports.append(url)
        return ConfirmedVideo(video_id=f"vid-{len(self.imports)}", video_url=url, processing_status="pending")



class ScriptedProcessor(VideoProcessor):
    """Video probe returning fixed results, optionally slow or failing"""

    def __init__(self, duration=12.5, thumbnail_delay=0.0, fail_thumbnail=False, available=True):
        super().__init__("Scripted")
        self.duration = duration
        self.thumbnail_delay = thumbnail_delay
        self.fail_thumbnail = fail_thumbnail
        self.available = available
        self.threads = []

    def is_available(self) -> bool:
        return self.available

    def get_video_metadata(self, video_path: str) -> VideoMetadata:
        return VideoMetadata(
            duration=self.duration,
            fps=25.0,
            width=320,
            height=240,
            total_frames=int(self.duration * 25),
            format=VideoFormat.MP4,
            codec="avc1",
            file_size=1,
        )

    def capture_thumbnail(self, video_path, size, seek_seconds, seek_fraction) -> Thumbnail:
        self.threads.append(threading.current_thread().name)
        if self.thumbnail_delay:
            time.sleep(self.thumbnail_delay)
        if self.fail_thumbnail:
            raise ProcessingError("Could not read a frame", "FRAME_READ_FAILED")
        return Thumbnail(data_url="data:image/jpeg;base64,AAAA", width=size[0], height=size[1], timestamp=1.0)

@pytest.fixture
def make_video(tmp_path):
    """Write a file of the given size and describe it as an upload source"""
    def _make(name: str = "clip.mp4", size: int = 2048, content_type: Optional[str] = None) -> VideoSource:
        path = tmp_path / "videos" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(bytes(i % 251 for i in range(size)))
        return VideoSource.from_path(str(path), content_type)

    return _make


@pytest.fixture
def batch():
    return UploadBatch()


@pytest.fixture
def fake_intermediary():
    return FakeIntermediary()


@pytest.fixture
def storage(tmp_path):
    return StorageService(use_local=True, local_dir=str(tmp_path / "uploads"))


@pytest.fixture
def registry():
    return UploadRegistry()


@pytest.fixture
def api(storage, registry):
    """The intermediary app wired to local storage and a fresh registry"""
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_redis] = lambda: RedisService()
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(api):
    """Create a test client for FastAPI app"""
    return TestClient(api)


@pytest.fixture
async def intermediary(api):
    """Real IntermediaryClient talking to the in-process app"""
    async with IntermediaryClient(
        base_url="http://testserver",
        transport=httpx.ASGITransport(app=api),
        chunk_size=512,
    ) as client:
        yield client
