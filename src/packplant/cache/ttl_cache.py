from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from packplant.core.models import CacheEntry

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]


class TTLCache:
    """Keyed cache with expiration and single-flight loading.

    Concurrent `get` calls for a key that is not cached share one fetch.
    A failed fetch stores nothing, so the next `get` retries.
    """

    def __init__(self, name: str, ttl: float, *, clock: Callable[[], float] = time.monotonic):
        if ttl <= 0:
            raise ValueError("ttl debe ser mayor a 0")
        self.name = name
        self.ttl = float(ttl)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._in_flight: dict[str, asyncio.Future] = {}

    def _is_valid(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at < self.ttl

    def peek(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None or not self._is_valid(entry):
            return None
        return entry.value

    async def get(self, key: str, fetcher: Fetcher) -> Any:
        entry = self._entries.get(key)
        if entry is not None and self._is_valid(entry):
            logger.debug("%s: hit %s", self.name, key)
            return entry.value

        pending = self._in_flight.get(key)
        if pending is None:
            logger.debug("%s: miss %s, fetching", self.name, key)
            pending = asyncio.ensure_future(self._load(key, fetcher))
            self._in_flight[key] = pending
        else:
            logger.debug("%s: joining in-flight fetch for %s", self.name, key)

        # A caller giving up must not cancel the fetch the others are waiting on.
        return await asyncio.shield(pending)

    async def _load(self, key: str, fetcher: Fetcher) -> Any:
        try:
            value = await fetcher()
            # A clear() while fetching orphans this load: hand the value to waiters, store nothing.
            if self._in_flight.get(key) is asyncio.current_task():
                self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())
            return value
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    def invalidate(self, key: str | None = None) -> list[str]:
        """Drop one entry, or every entry when `key` is None.

        Fetches already in flight are left alone; their result is stored when it lands.
        """
        if key is None:
            cleared = list(self._entries)
            self._entries.clear()
        elif key in self._entries:
            del self._entries[key]
            cleared = [key]
        else:
            cleared = []
        logger.debug("%s: invalidated %s", self.name, cleared or "nothing")
        return cleared

    def clear(self) -> None:
        """Forget entries and in-flight markers (test harness reset)."""
        self._entries.clear()
        self._in_flight.clear()

    def state(self) -> dict:
        now = self._clock()
        return {
            "name": self.name,
            "ttl": self.ttl,
            "entries": {k: round(now - e.stored_at, 3) for k, e in self._entries.items()},
            "in_flight": sorted(self._in_flight),
        }
