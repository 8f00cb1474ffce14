"""In-process TTL cache shared by the cached upstream clients.

- Entries are (expires_at, value); expired entries are overwritten lazily.
- `None` and empty results are stored like any other value (negative cache).
- `get_or_fetch` holds a per-key lock so concurrent misses share one fetch;
  the lock is discarded once no caller holds or waits on it.
- Hit/miss counters feed the /cache/stats endpoint.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import config

logger = logging.getLogger(__name__)

MISSING = object()


class TTLCache:
    def __init__(self, name: str, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Any:
        """Return the live value for `key`, or MISSING when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return MISSING
        expires_at, value = entry
        if expires_at <= self._clock():
            return MISSING
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock() + self.ttl_seconds, value)

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        value = self.get(key)
        if value is not MISSING:
            self.hits += 1
            return value

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                # Another caller may have filled the slot while we waited.
                value = self.get(key)
                if value is not MISSING:
                    self.hits += 1
                    return value
                self.misses += 1
                value = await fetch()
                self.set(key, value)
                logger.debug("%s cache filled key=%s negative=%s", self.name, key, value is None or value == [])
                return value
        finally:
            # Drop the lock once nobody holds or waits on it.
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict:
        total = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_ratio": (self.hits / total) if total else None,
        }


@dataclass
class ClientCaches:
    weather: TTLCache
    knowledge: TTLCache
    wikidata: TTLCache

    def stats(self) -> dict:
        return {
            "weather": self.weather.stats(),
            "knowledge": self.knowledge.stats(),
            "wikidata": self.wikidata.stats(),
        }


def create_caches() -> ClientCaches:
    """Build the process-wide caches; called once from the app lifespan."""
    return ClientCaches(
        weather=TTLCache("weather", config.WEATHER_CACHE_TTL_S),
        knowledge=TTLCache("knowledge", config.KNOWLEDGE_CACHE_TTL_S),
        wikidata=TTLCache("wikidata", config.WIKIDATA_CACHE_TTL_S),
    )
