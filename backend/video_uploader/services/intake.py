"""
File intake and validation

Candidates are checked against the batch before any item exists. Rejections
are collected and surfaced once as a summary, accepted files become pending
items.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Union

from video_uploader.config.base import settings
from video_uploader.errors import BatchLimitError, FileValidationError
from video_uploader.models.upload import UploadItem, UploadStatus, VideoSource
from video_uploader.services.batch import UploadBatch
from video_uploader.utils.logger import get_logger

logger = get_logger(__name__)

_EXTENSION_RE = re.compile(r"\.[^/.]+$")

Candidate = Union[VideoSource, str, os.PathLike]


@dataclass
class IntakeResult:
    accepted: List[UploadItem] = field(default_factory=list)
    errors: List[FileValidationError] = field(default_factory=list)
    limit_error: Optional[BatchLimitError] = None

    @property
    def rejected(self) -> bool:
        return self.limit_error is not None

    def summary(self, limit: Optional[int] = None) -> Optional[str]:
        if self.limit_error is not None:
            return str(self.limit_error)
        return summarize_errors(self.errors, limit)


def title_from_filename(filename: str) -> str:
    """Default title: the file name without its extension"""
    return _EXTENSION_RE.sub("", filename) or filename


def format_file_size(size_bytes: int) -> str:
    if size_bytes <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(size_bytes)
    unit = 0
    while size >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    return f"{size:.0f} {units[unit]}" if unit == 0 else f"{size:.1f} {units[unit]}"


def _size_limit_label(max_file_size: int) -> str:
    gb = max_file_size / (1024 ** 3)
    if gb >= 1 and gb == int(gb):
        return f"{int(gb)}GB"
    return format_file_size(max_file_size).replace(" ", "")


def summarize_errors(errors: Sequence[FileValidationError], limit: Optional[int] = None) -> Optional[str]:
    """One line for the whole addition: the first few reasons plus a count of the rest"""
    if not errors:
        return None
    limit = settings.ERROR_SUMMARY_LIMIT if limit is None else limit

    messages: List[str] = []
    for error in errors:
        if str(error) not in messages:
            messages.append(str(error))

    summary = ", ".join(messages[:limit])
    if len(messages) > limit:
        summary += f" and {len(messages) - limit} more"
    return summary


def _to_source(candidate: Candidate) -> VideoSource:
    if isinstance(candidate, VideoSource):
        return candidate
    return VideoSource.from_path(os.fspath(candidate))


def validate_candidates(
    candidates: Iterable[Candidate],
    batch: UploadBatch,
    *,
    max_files: Optional[int] = None,
    max_file_size: Optional[int] = None,
    supported_types: Optional[Sequence[str]] = None,
) -> IntakeResult:
    """
    Check candidate files against the allow-list, size ceiling, duplicates and batch capacity

    Args:
        candidates: files to add, as VideoSource objects or paths
        batch: items already queued
        max_files: maximum number of items a batch may hold
        max_file_size: per-file ceiling in bytes
        supported_types: allowed declared media types

    Returns:
        IntakeResult with the new pending items and the collected rejections.
        When the count limit is hit nothing is accepted.
    """
    max_files = settings.MAX_FILES if max_files is None else max_files
    max_file_size = settings.MAX_FILE_SIZE if max_file_size is None else max_file_size
    supported = set(settings.SUPPORTED_VIDEO_TYPES if supported_types is None else supported_types)

    result = IntakeResult()
    candidates = list(candidates)

    current = len(batch)
    if current + len(candidates) > max_files:
        result.limit_error = BatchLimitError(max_files, current)
        logger.warning(f"Rejected {len(candidates)} files: {result.limit_error}")
        return result

    seen = {(item.source.name, item.source.size) for item in batch if not item.is_url}

    for candidate in candidates:
        try:
            source = _to_source(candidate)
        except OSError as e:
            name = os.path.basename(os.fspath(candidate))
            result.errors.append(FileValidationError(name, f"Cannot read file ({e.strerror or e})", "UNREADABLE"))
            continue

        if source.content_type not in supported:
            result.errors.append(FileValidationError(source.name, "Unsupported format", "UNSUPPORTED_TYPE"))
            continue

        if source.size > max_file_size:
            result.errors.append(
                FileValidationError(source.name, f"Exceeds {_size_limit_label(max_file_size)} limit", "FILE_TOO_LARGE")
            )
            continue

        key = (source.name, source.size)
        if key in seen:
            result.errors.append(FileValidationError(source.name, "Already added", "DUPLICATE"))
            continue
        seen.add(key)

        result.accepted.append(
            UploadItem(
                source=source,
                title=title_from_filename(source.name),
                status=UploadStatus.PENDING,
                progress=0,
            )
        )

    if result.errors:
        logger.warning(f"Some files were skipped: {summarize_errors(result.errors)}")
    logger.info(f"Accepted {len(result.accepted)} of {len(candidates)} files")
    return result
