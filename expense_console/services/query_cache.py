"""Read-through cache for backend read models with an optimistic write overlay.

The cache is never a source of truth. Optimistic values live in a separate
overlay keyed by the write that produced them; the underlying entry is only
ever replaced by a backend response, so rolling back a failed write is just
dropping its overlay.
"""

from __future__ import annotations

import copy
import itertools
import logging
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Awaitable, Callable, Iterable, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float
    stale: bool = False


@dataclass
class PendingWrite:
    id: int
    keys: tuple[tuple, ...] = field(default_factory=tuple)
    settled: bool = False


def _matches(key: tuple, prefix: tuple) -> bool:
    return key[: len(prefix)] == prefix


class QueryCache:
    def __init__(
        self,
        stale_seconds: Callable[[str], int],
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stale_seconds = stale_seconds
        self._clock = clock
        self._entries: dict[tuple, CacheEntry] = {}
        self._overlays: dict[tuple, tuple[int, Any]] = {}
        self._write_ids = itertools.count(1)
        self._lock = Lock()

    # -- reads ---------------------------------------------------------

    def get(self, key: tuple) -> Any:
        with self._lock:
            return self._visible(key)

    def _visible(self, key: tuple) -> Any:
        overlay = self._overlays.get(key)
        if overlay is not None:
            return overlay[1]
        entry = self._entries.get(key)
        return entry.value if entry else None

    def has_pending(self, key: tuple) -> bool:
        with self._lock:
            return key in self._overlays

    def is_fresh(self, key: tuple) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.stale:
                return False
            max_age = self._stale_seconds(str(key[0]) if key else "")
            return (self._clock() - entry.fetched_at) < max_age

    def keys(self, prefix: tuple = ()) -> list[tuple]:
        with self._lock:
            return [key for key in self._entries if _matches(key, prefix)]

    async def fetch(
        self,
        key: tuple,
        loader: Callable[[], Awaitable[Any]],
        *,
        force: bool = False,
    ) -> Any:
        if not force and self.is_fresh(key):
            return self.get(key)
        value = await loader()
        self.set(key, value)
        return self.get(key)

    # -- writes --------------------------------------------------------

    def set(self, key: tuple, value: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())

    def invalidate(self, prefix: tuple = ()) -> int:
        with self._lock:
            count = 0
            for key, entry in self._entries.items():
                if _matches(key, prefix):
                    entry.stale = True
                    count += 1
            return count

    def remove(self, prefix: tuple) -> None:
        with self._lock:
            for key in [key for key in self._entries if _matches(key, prefix)]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._overlays.clear()

    # -- optimistic overlay -------------------------------------------

    def begin_write(self, keys: Iterable[tuple], patch: Callable[[Any], Any]) -> PendingWrite:
        """Show ``patch(current)`` for every cached key until reconciled or rolled back."""
        with self._lock:
            write = PendingWrite(id=next(self._write_ids))
            touched = []
            for key in keys:
                current = self._visible(key)
                if current is None:
                    continue
                self._overlays[key] = (write.id, patch(copy.deepcopy(current)))
                touched.append(key)
            write.keys = tuple(touched)
            return write

    def _drop_overlays(self, write: PendingWrite) -> None:
        for key in write.keys:
            overlay = self._overlays.get(key)
            if overlay is not None and overlay[0] == write.id:
                del self._overlays[key]

    def reconcile(self, write: PendingWrite, confirmed: Optional[dict[tuple, Any]] = None) -> None:
        """Replace overlaid entries with the backend's values; anything else goes stale."""
        confirmed = confirmed or {}
        with self._lock:
            if write.settled:
                return
            self._drop_overlays(write)
            now = self._clock()
            for key, value in confirmed.items():
                self._entries[key] = CacheEntry(value=value, fetched_at=now)
            for key in write.keys:
                if key not in confirmed and key in self._entries:
                    self._entries[key].stale = True
            write.settled = True

    def rollback(self, write: PendingWrite) -> None:
        with self._lock:
            if write.settled:
                return
            self._drop_overlays(write)
            write.settled = True
        logger.info("Rolled back optimistic write %s over %s keys", write.id, len(write.keys))
