from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Hashable, Optional, Protocol, TypeVar, runtime_checkable

import structlog

T = TypeVar("T")

logger = structlog.get_logger(__name__)


@runtime_checkable
class QueryCache(Protocol):
    def get(self, key: Hashable) -> Optional[Any]:
        ...

    def set(self, key: Hashable, value: Any, ts: float) -> None:
        ...

    def is_stale(self, key: Hashable, ttl: float) -> bool:
        ...


class TimestampedCache:
    """Values stamped with the time they were fetched; staleness is checked per read."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[Hashable, tuple[Any, float]] = {}
        self.clock = clock

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._entries.get(key)
        return entry[0] if entry else None

    def set(self, key: Hashable, value: Any, ts: float) -> None:
        self._entries[key] = (value, ts)

    def is_stale(self, key: Hashable, ttl: float) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return True
        return self.clock() - entry[1] >= ttl

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


async def cached_query(
    cache: QueryCache,
    key: Hashable,
    loader: Callable[[], Awaitable[T]],
    *,
    stale_seconds: float = 30.0,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    if not cache.is_stale(key, stale_seconds):
        logger.debug("query_cache_hit", key=str(key))
        return cache.get(key)
    value = await loader()
    cache.set(key, value, clock())
    logger.debug("query_cache_store", key=str(key))
    return value
