import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional
from dataclasses import dataclass

from .config import settings


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class RequestCache:
    """In-memory request cache with single-flight loading.

    Each key is either in flight (one shared task) or resolved with an
    expiry. Concurrent ``fetch_or_join`` calls for the same key await the
    same task, so only one outbound request is made. Failures are not
    cached; every joiner sees the same exception.
    """

    def __init__(
        self,
        default_ttl: float = 1.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._access_order: list = []
        self._inflight: Dict[str, asyncio.Task] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is None:
            return None

        if self._clock() > entry.expires_at:
            self._evict(key)
            return None

        # Update access order for LRU
        if key in self._access_order:
            self._access_order.remove(key)
        self._access_order.append(key)

        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._cache[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

        if key in self._access_order:
            self._access_order.remove(key)
        self._access_order.append(key)

        # Evict oldest if over max size
        while len(self._cache) > self.max_size:
            oldest_key = self._access_order.pop(0)
            self._cache.pop(oldest_key, None)

    async def fetch_or_join(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """Return the cached value, join the in-flight load, or start one."""

        cached = self.get(key)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(loader())
            self._inflight[key] = task

            def _settle(done: asyncio.Task, key: str = key) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]
                if not done.cancelled() and done.exception() is None and done.result() is not None:
                    self.set(key, done.result(), ttl=ttl)

            task.add_done_callback(_settle)

        # Shield so one cancelled caller does not cancel the shared load
        return await asyncio.shield(task)

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def clear(self) -> None:
        self._cache.clear()
        self._access_order.clear()

    def size(self) -> int:
        return len(self._cache)

    def _evict(self, key: str) -> None:
        self._cache.pop(key, None)
        if key in self._access_order:
            self._access_order.remove(key)


# Global request cache instance
request_cache = RequestCache(default_ttl=settings.request_dedup_ttl_seconds)
