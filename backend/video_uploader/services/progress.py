"""
Aggregate batch progress, recomputed from the items on every change
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable

from video_uploader.models.upload import UploadItem, UploadStatus


@dataclass
class ProgressSnapshot:
    total_bytes: int = 0
    uploaded_bytes: float = 0.0
    percent: int = 0
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def completed(self) -> int:
        return self.counts.get(UploadStatus.COMPLETED.value, 0)

    @property
    def failed(self) -> int:
        return self.counts.get(UploadStatus.FAILED.value, 0)

    @property
    def pending(self) -> int:
        return self.counts.get(UploadStatus.PENDING.value, 0)


def progress_snapshot(items: Iterable[UploadItem]) -> ProgressSnapshot:
    """Byte-weighted progress: completed items count fully, active ones by their progress"""
    total = 0
    uploaded = 0.0
    counts: Counter = Counter()

    for item in items:
        counts[item.status.value] += 1
        total += item.size
        if item.status == UploadStatus.COMPLETED:
            uploaded += item.size
        elif item.is_active:
            uploaded += item.size * item.progress / 100

    percent = 0
    if total > 0:
        percent = max(0, min(100, round(uploaded / total * 100)))
    return ProgressSnapshot(total_bytes=total, uploaded_bytes=uploaded, percent=percent, counts=dict(counts))


def overall_progress(items: Iterable[UploadItem]) -> int:
    return progress_snapshot(items).percent
