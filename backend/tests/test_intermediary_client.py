"""
IntermediaryClient tests against scripted HTTP responses
"""

import json

import httpx
import pytest

from video_uploader.errors import IntermediaryError, TransferCancelled, TransferError
from video_uploader.models.intermediary import UploadMetadata
from video_uploader.services.cancellation import CancellationToken
from video_uploader.services.intermediary_client import IntermediaryClient


def _client(handler, **kwargs) -> IntermediaryClient:
    return IntermediaryClient(base_url="http://api.test", transport=httpx.MockTransport(handler), **kwargs)


def _metadata(**overrides) -> UploadMetadata:
    fields = dict(filename="clip.mp4", file_size=10, title="clip", organization_id="org-1", author_id="author-1")
    fields.update(overrides)
    return UploadMetadata(**fields)


async def test_request_destination_sends_camel_case_and_parses_envelope():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "success": True,
            "data": {
                "uploadId": "u-1",
                "uploadUrl": "http://storage.test/put",
                "fileKey": "org-1/videos/1-clip.mp4",
                "expiresIn": 3600,
            },
        })

    async with _client(handler) as client:
        destination = await client.request_destination("clip.mp4", "video/mp4", 10, "org-1")

    assert seen["path"] == "/api/videos/upload/presigned"
    assert seen["body"] == {
        "filename": "clip.mp4",
        "contentType": "video/mp4",
        "fileSize": 10,
        "organizationId": "org-1",
    }
    assert destination.upload_id == "u-1"
    assert destination.file_key == "org-1/videos/1-clip.mp4"


async def test_rejection_message_is_kept_verbatim():
    def handler(request: httpx.Request):
        return httpx.Response(409, json={"success": False, "error": 'Video title "clip" already exists'})

    async with _client(handler) as client:
        with pytest.raises(IntermediaryError) as exc_info:
            await client.confirm_transfer("u-1", "org-1/videos/1-clip.mp4", _metadata())

    assert str(exc_info.value) == 'Video title "clip" already exists'
    assert exc_info.value.phase == "confirm"
    assert exc_info.value.status_code == 409


async def test_non_envelope_response_is_a_transfer_error():
    def handler(request: httpx.Request):
        return httpx.Response(502, text="Bad Gateway")

    async with _client(handler) as client:
        with pytest.raises(TransferError, match="Failed to get upload URL"):
            await client.request_destination("clip.mp4", "video/mp4", 10, "org-1")


async def test_transfer_streams_file_and_reports_progress(make_video):
    source = make_video("clip.mp4", size=2500)
    received = {}

    def handler(request: httpx.Request):
        received["method"] = request.method
        received["length"] = request.headers["content-length"]
        received["type"] = request.headers["content-type"]
        received["body"] = request.read()
        return httpx.Response(200)

    progress = []
    async with _client(handler, chunk_size=1000) as client:
        await client.transfer("http://storage.test/put", source, on_progress=lambda sent, total: progress.append(sent))

    assert received["method"] == "PUT"
    assert received["length"] == "2500"
    assert received["type"] == "video/mp4"
    assert len(received["body"]) == 2500
    assert progress == [1000, 2000, 2500]


async def test_transfer_non_2xx_fails_with_status(make_video):
    def handler(request: httpx.Request):
        request.read()
        return httpx.Response(403)

    async with _client(handler) as client:
        with pytest.raises(TransferError) as exc_info:
            await client.transfer("http://storage.test/put", make_video())

    assert str(exc_info.value) == "Upload failed with status 403"


async def test_cancelled_token_aborts_transfer(make_video):
    token = CancellationToken()
    token.cancel()

    async with _client(lambda request: httpx.Response(200)) as client:
        with pytest.raises(TransferCancelled):
            await client.transfer("http://storage.test/put", make_video(), token=token)


async def test_import_from_url_posts_request():
    seen = {}

    def handler(request: httpx.Request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={
            "success": True,
            "data": {"videoId": "v-1", "videoUrl": "http://storage.test/v-1", "processingStatus": "pending"},
        })

    async with _client(handler) as client:
        video = await client.import_from_url(
            "https://cdn.example.com/demo.mp4", _metadata(title="demo", collection_id="col-1")
        )

    assert video.video_id == "v-1"
    assert seen["body"]["url"] == "https://cdn.example.com/demo.mp4"
    assert seen["body"]["collectionId"] == "col-1"
