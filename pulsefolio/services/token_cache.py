"""
Process-wide logo and price cache for token enrichment.

Keys are lowercase contract addresses. Logos live for 24 hours and prices
for 30 minutes by default; an expired entry reads as a miss even while it
is still stored. State is written to the storage backend after every batch
set and restored on construction. A persisted snapshot older than its TTL
is discarded as a whole rather than entry by entry.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Mapping, Optional, Union

from ..config import settings
from .storage import CacheStorage, JsonFileStorage, MemoryStorage

logger = logging.getLogger(__name__)

LOGO_STORAGE_KEY = "token-logos"
PRICE_STORAGE_KEY = "token-prices"


@dataclass
class LogoCacheEntry:
    address: str
    logo_url: str
    timestamp: float


@dataclass
class PriceCacheEntry:
    address: str
    price: float
    timestamp: float


CacheEntry = Union[LogoCacheEntry, PriceCacheEntry]


class TokenDataCache:
    def __init__(
        self,
        storage: Optional[CacheStorage] = None,
        clock: Callable[[], float] = time.time,
        logo_ttl: Optional[float] = None,
        price_ttl: Optional[float] = None,
    ):
        self.storage = storage or MemoryStorage()
        self.clock = clock
        self.logo_ttl = settings.logo_cache_ttl_seconds if logo_ttl is None else logo_ttl
        self.price_ttl = settings.price_cache_ttl_seconds if price_ttl is None else price_ttl
        self._logos: Dict[str, LogoCacheEntry] = {}
        self._prices: Dict[str, PriceCacheEntry] = {}
        self.load()

    # ----- expiry -----

    def is_expired(self, entry: CacheEntry) -> bool:
        ttl = self.logo_ttl if isinstance(entry, LogoCacheEntry) else self.price_ttl
        return self.clock() - entry.timestamp > ttl

    # ----- logos -----

    def get_logo(self, address: str) -> Optional[str]:
        entry = self._logos.get(address.lower())
        if entry is None or self.is_expired(entry):
            return None
        return entry.logo_url

    def set_logo(self, address: str, logo_url: str) -> None:
        key = address.lower()
        self._logos[key] = LogoCacheEntry(address=key, logo_url=logo_url, timestamp=self.clock())

    def set_many_logos(self, logos: Mapping[str, str]) -> None:
        for address, logo_url in logos.items():
            if logo_url:
                self.set_logo(address, logo_url)
        self._persist(LOGO_STORAGE_KEY, self._logos)

    # ----- prices -----

    def get_price(self, address: str) -> Optional[float]:
        entry = self._prices.get(address.lower())
        if entry is None or self.is_expired(entry):
            return None
        return entry.price

    def set_price(self, address: str, price: float) -> None:
        key = address.lower()
        self._prices[key] = PriceCacheEntry(address=key, price=float(price), timestamp=self.clock())

    def set_many_prices(self, prices: Mapping[str, float]) -> None:
        for address, price in prices.items():
            if price is not None:
                self.set_price(address, price)
        self._persist(PRICE_STORAGE_KEY, self._prices)

    # ----- persistence -----

    def load(self) -> None:
        """Restore persisted state, dropping any snapshot older than its TTL."""

        self._logos = self._restore(LOGO_STORAGE_KEY, self.logo_ttl, LogoCacheEntry)
        self._prices = self._restore(PRICE_STORAGE_KEY, self.price_ttl, PriceCacheEntry)

    def clear(self) -> None:
        self._logos.clear()
        self._prices.clear()
        self.storage.delete(LOGO_STORAGE_KEY)
        self.storage.delete(PRICE_STORAGE_KEY)

    def stats(self) -> Dict[str, int]:
        return {"logos": len(self._logos), "prices": len(self._prices)}

    def _persist(self, key: str, entries: Mapping[str, CacheEntry]) -> None:
        payload = {
            "timestamp": self.clock(),
            "entries": {address: asdict(entry) for address, entry in entries.items()},
        }
        try:
            self.storage.save(key, payload)
        except OSError as exc:
            logger.warning("Failed to persist %s cache: %s", key, exc)

    def _restore(self, key: str, ttl: float, entry_cls):
        payload = self.storage.load(key)
        if not payload:
            return {}
        saved_at = payload.get("timestamp")
        if not isinstance(saved_at, (int, float)) or self.clock() - saved_at > ttl:
            logger.info("Discarding stale persisted %s cache", key)
            self.storage.delete(key)
            return {}
        restored = {}
        for address, raw in (payload.get("entries") or {}).items():
            try:
                restored[address.lower()] = entry_cls(**raw)
            except TypeError:
                logger.debug("Skipping malformed %s entry for %s", key, address)
        return restored


def build_default_cache() -> TokenDataCache:
    storage: CacheStorage = JsonFileStorage(settings.cache_file) if settings.has_cache_file else MemoryStorage()
    return TokenDataCache(storage=storage)


__all__ = [
    "TokenDataCache",
    "LogoCacheEntry",
    "PriceCacheEntry",
    "build_default_cache",
]
