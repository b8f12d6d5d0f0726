"""Expiring LRU caches.

Pull requests in one listing usually share a handful of projects, so
project lookups go through ProjectCache instead of hitting the API once per
item. ExpiringCache holds the size and age bounds and is also used by
engines for per-branch settings that change rarely.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from prfeed_core.models import Project

logger = logging.getLogger(__name__)

DEFAULT_TTL = 60 * 60
DEFAULT_MAX_KEYS = 100

V = TypeVar("V")


class ExpiringCache(Generic[V]):
    """Maps a string key to a value, bounded by size and age.

    Entries expire ``ttl`` seconds after they were stored; once more than
    ``max_keys`` entries are held the least recently used one is evicted.
    Safe to use from worker threads.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_keys: int = DEFAULT_MAX_KEYS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl
        self._max_keys = max_keys
        self._clock = clock
        self._entries: OrderedDict[str, tuple[V, float]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.peek(key) is not None

    def peek(self, key: str) -> V | None:
        """Return the cached value if present and unexpired, without fetching."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + self._ttl)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_keys:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted %s from cache", evicted)


class ProjectCache(ExpiringCache[Project]):
    """Maps a project id to its metadata.

    The lock only guards the internal map. The lookup on a miss runs
    outside of it, so concurrent misses for the same id may both fetch;
    the last write wins.
    """

    async def get(self, project_id: str, fetch: Callable[[str], Awaitable[Project]]) -> Project:
        """Return the project for ``project_id``, calling ``fetch`` on a miss."""
        project = self.peek(project_id)
        if project is not None:
            return project

        project = await fetch(project_id)
        self.set(project_id, project)
        return project
