"""
Bulk upload sessions driven through the real client against the in-process intermediary
"""

import os

from video_uploader.models.upload import UploadStatus
from video_uploader.services.upload_session import BulkUploadSession


async def test_bulk_upload_through_intermediary(intermediary, make_video, storage, registry):
    completions = []
    snapshots = []
    session = BulkUploadSession(
        intermediary,
        "org-1",
        "author-1",
        collection_id="col-1",
        concurrency=2,
        extract_metadata=False,
        on_complete=completions.append,
        on_change=snapshots.append,
    )
    sources = [make_video(f"clip{i}.mp4", size=1500 + i) for i in range(3)]
    result = session.add_files(sources)

    run = await session.start_uploads()

    assert sorted(run.completed) == sorted(item.id for item in result.accepted)
    assert session.overall_progress == 100
    for item in session.batch:
        assert item.status == UploadStatus.COMPLETED
        assert item.progress == 100
        record = registry.get_video(item.video_id)
        assert record.collection_id == "col-1"
        assert os.path.getsize(storage.local_path(record.file_key)) == item.size

    [results] = completions
    assert sorted(r.title for r in results) == ["clip0", "clip1", "clip2"]
    percents = [s.percent for s in snapshots]
    assert percents == sorted(percents)
    assert percents[-1] == 100


async def test_title_collision_fails_only_the_second_upload(intermediary, make_video):
    session = BulkUploadSession(intermediary, "org-1", "author-1", concurrency=1, extract_metadata=False)
    first, second = session.add_files([make_video("Demo.mp4"), make_video("demo.mov")]).accepted

    run = await session.start_uploads()

    assert run.completed == [first.id]
    assert run.failed == [second.id]
    rejected = session.batch.get(second.id)
    assert rejected.status == UploadStatus.FAILED
    assert rejected.error == 'Video title "demo" already exists'

    session.update_title(second.id, "demo (take 2)")
    retry = await session.retry(second.id)

    assert retry.completed == [second.id]
    assert session.batch.get(second.id).status == UploadStatus.COMPLETED


async def test_clear_completed_after_upload(intermediary, make_video):
    async with BulkUploadSession(intermediary, "org-1", "author-1", extract_metadata=False) as session:
        session.add_files([make_video("only.mp4")])
        await session.start_uploads()

        assert session.clear_completed() == 1
        assert len(session.batch) == 0
        assert session.overall_progress == 0


async def test_bulk_destinations_open_one_session_per_file(intermediary, make_video, registry):
    sources = [make_video("a.mp4"), make_video("b.mov", size=4096)]

    uploads = await intermediary.request_destinations(sources, "org-1")

    assert len({u.upload_id for u in uploads}) == 2
    for source, upload in zip(sources, uploads):
        assert upload.file_key.startswith("org-1/")
        assert upload.file_key.endswith(os.path.splitext(source.name)[1])
        session = registry.get_session(upload.upload_id)
        assert session["filename"] == source.name
        assert session["size"] == source.size
