"""
URL import helpers and session tests
"""

import asyncio

import pytest

from conftest import FakeIntermediary, wait_until
from video_uploader.errors import FileValidationError
from video_uploader.models.upload import UploadStatus, VideoPlatform
from video_uploader.services.url_import import (
    UrlImportSession,
    detect_platform,
    extract_video_title,
    normalize_url,
)


@pytest.mark.parametrize("text,expected", [
    ("https://example.com/a.mp4", "https://example.com/a.mp4"),
    ("  example.com/demo.mov ", "https://example.com/demo.mov"),
    ("http://example.com", "http://example.com"),
    ("", None),
    ("not a url", None),
    ("https://", None),
])
def test_normalize_url(text, expected):
    assert normalize_url(text) == expected


@pytest.mark.parametrize("url,platform", [
    ("https://www.youtube.com/watch?v=abc", VideoPlatform.YOUTUBE),
    ("https://youtu.be/abc", VideoPlatform.YOUTUBE),
    ("https://vimeo.com/123", VideoPlatform.VIMEO),
    ("https://www.loom.com/share/xyz", VideoPlatform.LOOM),
    ("https://cdn.example.com/media/Demo.MP4", VideoPlatform.DIRECT),
    ("https://example.com/page", VideoPlatform.UNKNOWN),
])
def test_detect_platform(url, platform):
    assert detect_platform(url) == platform


def test_extract_video_title():
    assert extract_video_title("https://youtu.be/abc") == "YouTube Video"
    assert extract_video_title("https://vimeo.com/123") == "Vimeo Video"
    assert extract_video_title("https://www.loom.com/share/xyz") == "Loom Recording"
    assert extract_video_title("https://cdn.example.com/media/team-demo.mp4") == "team-demo"
    assert extract_video_title("https://example.com/") == "Video from URL"


def test_add_url_rejects_invalid_and_repeated_urls(fake_intermediary):
    session = UrlImportSession(fake_intermediary, "org-1", "author-1")
    item = session.add_url("cdn.example.com/demo.mp4")

    assert item.source == "https://cdn.example.com/demo.mp4"
    assert item.platform == VideoPlatform.DIRECT
    assert item.title == "demo"

    with pytest.raises(FileValidationError) as exc_info:
        session.add_url("https://cdn.example.com/demo.mp4")
    assert exc_info.value.reason == "This URL has already been added"

    with pytest.raises(FileValidationError) as exc_info:
        session.add_url("   ")
    assert exc_info.value.reason == "Please enter a valid URL"


def test_add_urls_collects_errors(fake_intermediary):
    session = UrlImportSession(fake_intermediary, "org-1", "author-1")

    result = session.add_urls(["https://a.example.com/1.mp4", "bad url", "https://a.example.com/1.mp4"])

    assert len(result.accepted) == 1
    assert [e.reason for e in result.errors] == ["Please enter a valid URL", "This URL has already been added"]


async def test_imports_run_one_at_a_time_in_order():
    fake = FakeIntermediary(hold=True)
    completions = []
    session = UrlImportSession(fake, "org-1", "author-1", on_complete=completions.append)
    urls = [f"https://cdn.example.com/{name}.mp4" for name in ("a", "b", "c")]
    items = session.add_urls(urls).accepted

    run_task = asyncio.create_task(session.start_imports())
    await wait_until(lambda: session.batch.get(items[0].id).status == UploadStatus.IMPORTING)

    first = session.batch.get(items[0].id)
    assert first.progress == 50
    assert [session.batch.get(i.id).status for i in items[1:]] == [UploadStatus.PENDING] * 2

    fake.release_all()
    run = await run_task

    assert fake.imports == urls
    assert run.completed == [i.id for i in items]
    assert all(session.batch.get(i.id).progress == 100 for i in items)
    assert [r.title for r in completions[0]] == ["a", "b", "c"]


async def test_failed_import_keeps_message_and_resets_progress():
    fake = FakeIntermediary(reject_titles={"broken"})
    session = UrlImportSession(fake, "org-1", "author-1")
    good = session.add_url("https://cdn.example.com/fine.mp4")
    bad = session.add_url("https://cdn.example.com/broken.mp4")

    run = await session.start_imports()

    assert run.completed == [good.id]
    failed = session.batch.get(bad.id)
    assert failed.status == UploadStatus.FAILED
    assert failed.progress == 0
    assert failed.error == "Failed to access video URL: 404 Not Found"

    session.update_title(bad.id, "fixed")
    retry = await session.retry_failed()
    assert retry.completed == [bad.id]


async def test_pool_mode_imports_concurrently():
    fake = FakeIntermediary(hold=True)
    session = UrlImportSession(fake, "org-1", "author-1", mode="pool", concurrency=2)
    items = session.add_urls([f"https://cdn.example.com/{i}.mp4" for i in range(3)]).accepted

    run_task = asyncio.create_task(session.start_imports())
    await wait_until(lambda: len(session.batch.by_status(UploadStatus.IMPORTING)) == 2)

    assert session.batch.get(items[2].id).status == UploadStatus.PENDING

    fake.release_all()
    run = await run_task
    assert len(run.completed) == 3


async def test_cancelled_import_returns_to_pending():
    fake = FakeIntermediary(hold=True)
    session = UrlImportSession(fake, "org-1", "author-1")
    item = session.add_url("https://cdn.example.com/long.mp4")

    run_task = asyncio.create_task(session.start_imports())
    await wait_until(lambda: session.batch.get(item.id).status == UploadStatus.IMPORTING)
    session.cancel(item.id)
    run = await run_task

    assert run.cancelled == [item.id]
    assert session.batch.get(item.id).status == UploadStatus.PENDING
    assert fake.imports == []


async def test_retry_while_importing_runs_after_the_active_import():
    fake = FakeIntermediary(hold=True, reject_titles={"broken"})
    session = UrlImportSession(fake, "org-1", "author-1")
    bad = session.add_url("https://cdn.example.com/broken.mp4")
    slow = session.add_url("https://cdn.example.com/slow.mp4")

    first_run = asyncio.create_task(session.start_imports())
    fake.release(bad.source)
    await wait_until(lambda: session.batch.get(slow.id).status == UploadStatus.IMPORTING)
    assert session.batch.get(bad.id).status == UploadStatus.FAILED

    session.update_title(bad.id, "fixed")
    retry = asyncio.create_task(session.retry_failed())
    await wait_until(lambda: session.batch.get(bad.id).status == UploadStatus.PENDING)
    assert not retry.done()

    fake.release_all()
    first, second = await asyncio.gather(first_run, retry)

    assert first.completed == [slow.id]
    assert second.completed == [bad.id]
    assert fake.imports == [slow.source, bad.source]
