"""
Upload intermediary API tests
"""

import os

import httpx

from video_uploader.main import app, get_url_fetcher
from video_uploader.models.intermediary import VideoRecord
from video_uploader.services.url_fetcher import UrlFetcher, extension_from_content_type, extension_from_url

ORG = "org-1"
AUTHOR = "author-1"


def _presign(client, filename="clip.mp4", size=4, content_type="video/mp4"):
    return client.post("/api/videos/upload/presigned", json={
        "filename": filename,
        "contentType": content_type,
        "fileSize": size,
        "organizationId": ORG,
    })


def _upload(client, filename="clip.mp4", body=b"data"):
    grant = _presign(client, filename, len(body)).json()["data"]
    assert client.put(grant["uploadUrl"], content=body).status_code == 200
    return grant


def _confirm(client, grant, title="clip", size=4):
    return client.post("/api/videos/upload/confirm", json={
        "uploadId": grant["uploadId"],
        "fileKey": grant["fileKey"],
        "filename": "clip.mp4",
        "fileSize": size,
        "title": title,
        "organizationId": ORG,
        "authorId": AUTHOR,
    })


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["services"]["storage"] == "local"


def test_presigned_single(client):
    response = _presign(client)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["expiresIn"] == 3600
    assert data["fileKey"].startswith(f"{ORG}/videos/")
    assert data["fileKey"].endswith("-clip.mp4")
    assert data["uploadUrl"].startswith("http://testserver/api/videos/upload/local/")


def test_presigned_rejects_unsupported_type(client):
    response = _presign(client, "notes.pdf", content_type="application/pdf")

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["error"].startswith("Unsupported content type: application/pdf")


def test_presigned_rejects_oversized_file(client):
    response = _presign(client, size=6 * 1024 ** 3)

    assert response.status_code == 400
    assert response.json()["error"] == "File size exceeds maximum allowed: 5GB"


def test_presigned_bulk(client):
    files = [{"filename": f"clip{i}.mp4", "contentType": "video/mp4", "fileSize": 10} for i in range(3)]

    response = client.post("/api/videos/upload/presigned", json={"files": files, "organizationId": ORG})

    uploads = response.json()["data"]["uploads"]
    assert [u["filename"] for u in uploads] == ["clip0.mp4", "clip1.mp4", "clip2.mp4"]
    assert len({u["uploadId"] for u in uploads}) == 3


def test_presigned_bulk_limit(client):
    files = [{"filename": f"clip{i}.mp4", "contentType": "video/mp4", "fileSize": 10} for i in range(21)]

    response = client.post("/api/videos/upload/presigned", json={"files": files, "organizationId": ORG})

    assert response.status_code == 400
    assert response.json()["error"] == "Maximum 20 files can be uploaded at once"


def test_invalid_body_uses_envelope(client):
    response = client.post("/api/videos/upload/presigned", content=b"not json",
                           headers={"content-type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid request body"}


def test_upload_and_confirm(client, storage, registry):
    grant = _upload(client)

    response = _confirm(client, grant)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["processingStatus"] == "pending"
    assert data["thumbnailUrl"] == ""
    assert os.path.getsize(storage.local_path(grant["fileKey"])) == 4

    record = registry.get_video(data["videoId"])
    assert record.title == "clip"
    assert record.created_at.tzinfo is not None
    assert record.duration == "0:00"
    assert registry.get_session(grant["uploadId"]) is None

    video = client.get(f"/api/videos/{data['videoId']}").json()["data"]
    assert video["fileKey"] == grant["fileKey"]

    download = client.get(data["videoUrl"])
    assert download.content == b"data"


def test_confirm_rejects_duplicate_title(client):
    assert _confirm(client, _upload(client), title="Weekly Sync").status_code == 201

    response = _confirm(client, _upload(client), title="Weekly Sync")

    assert response.status_code == 409
    assert response.json() == {"success": False, "error": 'Video title "Weekly Sync" already exists'}


def test_confirm_requires_known_session(client):
    grant = _upload(client)
    grant["uploadId"] = "unknown"

    response = _confirm(client, grant)

    assert response.status_code == 404
    assert response.json()["error"] == "Upload session not found"


def test_confirm_requires_uploaded_object(client):
    grant = _presign(client).json()["data"]

    response = _confirm(client, grant)

    assert response.status_code == 400
    assert response.json()["error"] == "Uploaded file not found"


def test_bulk_confirm_reports_each_upload(client):
    good = _upload(client)
    missing = _presign(client).json()["data"]

    response = client.post("/api/videos/upload/confirm", json={
        "uploads": [
            {"uploadId": good["uploadId"], "fileKey": good["fileKey"], "filename": "clip.mp4",
             "fileSize": 4, "title": "first"},
            {"uploadId": missing["uploadId"], "fileKey": missing["fileKey"], "filename": "clip.mp4",
             "fileSize": 4, "title": "second"},
        ],
        "organizationId": ORG,
        "authorId": AUTHOR,
        "skipAiProcessing": True,
    })

    assert response.status_code == 201
    data = response.json()["data"]
    assert (data["succeeded"], data["failed"]) == (1, 1)
    assert data["videos"][0]["processingStatus"] == "completed"
    assert data["errors"] == [{"uploadId": missing["uploadId"], "error": "Uploaded file not found"}]


def test_local_upload_rejects_escaping_keys(client):
    response = client.put("/api/videos/upload/local/..%2F..%2Fetc%2Fpasswd", content=b"x")

    assert response.status_code in (400, 404)


def _remote(content_length: str, body: bytes = b"0123456789"):
    requests = []

    def handler(request: httpx.Request):
        requests.append(request)
        if request.method == "HEAD":
            return httpx.Response(200, headers={"content-type": "video/quicktime", "content-length": content_length})
        return httpx.Response(200, content=body)

    return UrlFetcher(transport=httpx.MockTransport(handler)), requests


def test_url_import(client, registry, storage):
    fetcher, requests = _remote("10")
    app.dependency_overrides[get_url_fetcher] = lambda: fetcher

    response = client.post("/api/videos/upload/url", json={
        "url": "https://cdn.example.com/media/watch?id=1",
        "title": "Remote demo",
        "organizationId": ORG,
        "authorId": AUTHOR,
        "collectionId": "col-1",
    })

    assert response.status_code == 201
    record = registry.get_video(response.json()["data"]["videoId"])
    assert record.source_url == "https://cdn.example.com/media/watch?id=1"
    assert record.collection_id == "col-1"
    assert record.file_key.endswith(".mov")
    assert record.file_size == 10
    assert os.path.getsize(storage.local_path(record.file_key)) == 10
    assert [r.method for r in requests] == ["HEAD", "GET"]
    assert requests[0].headers["user-agent"].startswith("Video Uploader Import")


def test_url_import_rejects_large_remote_file(client):
    fetcher, requests = _remote(str(3 * 1024 ** 3))
    app.dependency_overrides[get_url_fetcher] = lambda: fetcher

    response = client.post("/api/videos/upload/url", json={
        "url": "https://cdn.example.com/huge.mp4",
        "title": "Huge",
        "organizationId": ORG,
        "authorId": AUTHOR,
    })

    assert response.status_code == 400
    assert response.json()["error"] == "Video file is too large. Maximum size for URL imports is 2GB."
    assert [r.method for r in requests] == ["HEAD"]


def test_url_import_rechecks_title_after_download(client, registry, storage):
    def handler(request: httpx.Request):
        if request.method == "HEAD":
            return httpx.Response(200, headers={"content-type": "video/mp4", "content-length": "10"})
        # A concurrent import registers the same title while this body downloads
        registry.add_video(VideoRecord(
            video_id="other", title="race", file_key=f"{ORG}/videos/other.mp4",
            organization_id=ORG, author_id=AUTHOR,
        ))
        return httpx.Response(200, content=b"0123456789")

    fetcher = UrlFetcher(transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_url_fetcher] = lambda: fetcher

    response = client.post("/api/videos/upload/url", json={
        "url": "https://cdn.example.com/race.mp4",
        "title": "Race",
        "organizationId": ORG,
        "authorId": AUTHOR,
    })

    assert response.status_code == 409
    assert response.json()["error"] == 'Video title "Race" already exists'
    assert [v.video_id for v in registry.videos_for(ORG)] == ["other"]
    stored = []
    for _, _, files in os.walk(storage.local_dir):
        stored.extend(files)
    assert stored == []


def test_url_import_rejects_non_http_url(client):
    response = client.post("/api/videos/upload/url", json={
        "url": "ftp://example.com/demo.mp4",
        "title": "demo",
        "organizationId": ORG,
        "authorId": AUTHOR,
    })

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid URL"


def test_extension_detection():
    assert extension_from_url("https://cdn.example.com/a/demo.WEBM") == "webm"
    assert extension_from_url("https://cdn.example.com/watch?v=1") is None
    assert extension_from_content_type("video/x-matroska; charset=binary") == "mkv"
    assert extension_from_content_type("text/html") is None
