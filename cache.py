import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from config import CACHE_TTL_SECONDS
from extractor import RecommendationItem


@dataclass(frozen=True)
class CacheEntry:
    video_id: str
    items: tuple[RecommendationItem, ...]
    created_at: float


class ResultCache:
    """Most recent extraction result per video id, served while younger than the TTL.

    Expired entries are only ignored, never evicted; ``put`` replaces whatever
    is stored. There is no capacity bound.
    """

    def __init__(
        self,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = Lock()

    def get(self, video_id: str) -> list[RecommendationItem] | None:
        with self._lock:
            entry = self._entries.get(video_id)
        if entry is None:
            return None
        if self._clock() - entry.created_at > self.ttl:
            return None
        return list(entry.items)

    def put(self, video_id: str, items: list[RecommendationItem]):
        entry = CacheEntry(video_id, tuple(items), self._clock())
        with self._lock:
            self._entries[video_id] = entry

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
