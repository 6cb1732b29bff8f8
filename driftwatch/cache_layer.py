from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

import structlog

log = structlog.get_logger()

T = TypeVar("T")


class CacheStatus(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    STALE = "stale"
    ERROR = "error"


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    fetched_at: float


class CacheLayer:
    """
    In-memory read-through TTL cache for backend reads.
    - Staleness is checked lazily on read: now - fetched_at > ttl
    - Concurrent loads of one key share a single in-flight request
    - A failed load keeps the previous entry so stale data stays visible
    """
    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Future] = {}
        self._errors: dict[str, str] = {}

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def peek(self, key: str, default=None):
        entry = self._entries.get(key)
        return entry.value if entry is not None else default

    def age(self, key: str) -> float | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.fetched_at

    def is_stale(self, key: str) -> bool:
        age = self.age(key)
        return age is None or age > self.ttl_seconds

    def status(self, key: str) -> CacheStatus:
        if key in self._inflight:
            return CacheStatus.LOADING
        if key in self._errors:
            return CacheStatus.ERROR
        if key not in self._entries:
            return CacheStatus.EMPTY
        return CacheStatus.STALE if self.is_stale(key) else CacheStatus.READY

    def last_error(self, key: str) -> str | None:
        return self._errors.get(key)

    def is_loading(self, key: str) -> bool:
        return key in self._inflight

    def set(self, key: str, value: Any):
        self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())
        self._errors.pop(key, None)

    def replace(self, key: str, value: Any):
        """Swap the cached value without touching its age (local edits are not fetches)."""
        entry = self._entries.get(key)
        fetched_at = entry.fetched_at if entry is not None else float("-inf")
        self._entries[key] = CacheEntry(value=value, fetched_at=fetched_at)

    async def fetch(self, key: str, fetch_fn: Callable[[], Awaitable[T]], force: bool = False) -> T:
        entry = self._entries.get(key)
        if not force and entry is not None and key not in self._errors and not self.is_stale(key):
            return entry.value
        inflight = self._inflight.get(key)
        if inflight is None:
            inflight = asyncio.ensure_future(self._load(key, fetch_fn))
            self._inflight[key] = inflight
        return await asyncio.shield(inflight)

    async def _load(self, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        try:
            value = await fetch_fn()
        except Exception as exc:
            self._errors[key] = str(exc)
            log.warning("cache_fetch_failed", key=key, error=str(exc), has_stale=key in self._entries)
            raise
        finally:
            self._inflight.pop(key, None)
        self.set(key, value)
        return value

    def invalidate(self, key: str):
        self._entries.pop(key, None)
        self._errors.pop(key, None)

    def invalidate_all(self):
        self._entries.clear()
        self._errors.clear()
