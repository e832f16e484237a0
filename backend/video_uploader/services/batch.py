"""
Upload batch

The caller-local set of items being uploaded in one session. Items are
immutable models; every update function swaps in a new copy, bumps the batch
version and notifies subscribers. Mutation is serialized by a lock so the
collection stays consistent even if a host drives it from several threads.
"""

import threading
from collections import OrderedDict
from typing import Callable, Iterable, Iterator, List, Optional

from video_uploader.models.upload import UploadItem, UploadStatus
from video_uploader.utils.logger import get_logger

logger = get_logger(__name__)

Listener = Callable[["UploadBatch"], None]


class UploadBatch:
    def __init__(self, items: Optional[Iterable[UploadItem]] = None):
        self._items: "OrderedDict[str, UploadItem]" = OrderedDict()
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self.version = 0
        for item in items or []:
            self._items[item.id] = item

    # -- queries -----------------------------------------------------------

    def get(self, item_id: str) -> Optional[UploadItem]:
        with self._lock:
            return self._items.get(item_id)

    def items(self) -> List[UploadItem]:
        with self._lock:
            return list(self._items.values())

    def by_status(self, *statuses: UploadStatus) -> List[UploadItem]:
        with self._lock:
            return [item for item in self._items.values() if item.status in statuses]

    def pending(self) -> List[UploadItem]:
        return self.by_status(UploadStatus.PENDING)

    def active(self) -> List[UploadItem]:
        with self._lock:
            return [item for item in self._items.values() if item.is_active]

    def completed(self) -> List[UploadItem]:
        return self.by_status(UploadStatus.COMPLETED)

    def failed(self) -> List[UploadItem]:
        return self.by_status(UploadStatus.FAILED)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[UploadItem]:
        return iter(self.items())

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._items

    # -- subscriptions -----------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener after every change; returns an unsubscribe function"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self):
        self.version += 1
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Batch listener {listener!r} failed: {e}")

    # -- update functions --------------------------------------------------

    def add(self, items: Iterable[UploadItem]) -> int:
        with self._lock:
            added = 0
            for item in items:
                self._items[item.id] = item
                added += 1
            if added:
                self._changed()
            return added

    def remove(self, item_id: str) -> Optional[UploadItem]:
        with self._lock:
            item = self._items.pop(item_id, None)
            if item is not None:
                self._changed()
            return item

    def patch(self, item_id: str, **changes) -> Optional[UploadItem]:
        """Apply changes unconditionally; a no-op for items no longer in the batch"""
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return None
            updated = item.model_copy(update=changes)
            self._items[item_id] = updated
            self._changed()
            return updated

    def apply(self, item_id: str, attempt: int, **changes) -> Optional[UploadItem]:
        """Apply changes from a transfer attempt, dropping updates from stale attempts"""
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.attempt != attempt:
                logger.debug(f"Dropped stale update for {item_id} (attempt {attempt}): {sorted(changes)}")
                return None
            if "progress" in changes and item.is_active and changes.get("status") in (None, item.status):
                # Progress never moves backwards while an item is active
                if changes["progress"] < item.progress:
                    changes = {k: v for k, v in changes.items() if k != "progress"}
                    if not changes:
                        return item
            return self.patch(item_id, **changes)

    def admit(self, item_id: str) -> Optional[UploadItem]:
        """Start a new attempt for a pending item"""
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.status != UploadStatus.PENDING:
                return None
            return self.patch(item_id, attempt=item.attempt + 1, error=None)

    def reset_to_pending(self, item_id: str) -> Optional[UploadItem]:
        """Return an item to pending and invalidate whatever attempt is running"""
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.status == UploadStatus.COMPLETED:
                return None
            return self.patch(
                item_id,
                status=UploadStatus.PENDING,
                progress=0,
                error=None,
                attempt=item.attempt + 1,
            )

    def reset_failed(self) -> List[str]:
        """Move every failed item back to pending; other items are untouched"""
        with self._lock:
            reset = [item.id for item in self._items.values() if item.status == UploadStatus.FAILED]
            for item_id in reset:
                self.reset_to_pending(item_id)
            return reset

    def update_title(self, item_id: str, title: str) -> bool:
        """Titles are editable until the transfer starts"""
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.status not in (UploadStatus.PENDING, UploadStatus.FAILED):
                return False
            self.patch(item_id, title=title)
            return True

    def clear_completed(self) -> int:
        with self._lock:
            done = [item_id for item_id, item in self._items.items() if item.status == UploadStatus.COMPLETED]
            for item_id in done:
                del self._items[item_id]
            if done:
                self._changed()
            return len(done)

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._items)
            self._items.clear()
            if count:
                self._changed()
            return count
