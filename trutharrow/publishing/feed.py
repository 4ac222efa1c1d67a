from __future__ import annotations

import structlog

from ..cache import TimestampedCache, cached_query
from ..models import PostStatus, PublishedRecord
from ..storage.base import PostRepository

logger = structlog.get_logger(__name__)


class FeedReader:
    """Approved posts for the public feed and thread pages."""

    def __init__(self, posts: PostRepository, cache: TimestampedCache, *, stale_seconds: float = 30.0) -> None:
        self._posts = posts
        self._cache = cache
        self._stale_seconds = stale_seconds

    async def latest(self, limit: int = 50) -> list[PublishedRecord]:
        return await cached_query(
            self._cache,
            ("feed", limit),
            lambda: self._posts.list_posts(status=PostStatus.APPROVED, roots_only=True, limit=limit),
            stale_seconds=self._stale_seconds,
            clock=self._cache.clock,
        )

    async def thread(self, thread_id: str) -> list[PublishedRecord]:
        async def load() -> list[PublishedRecord]:
            records = await self._posts.list_posts(
                status=PostStatus.APPROVED, thread_id=thread_id, newest_first=False
            )
            # root first, replies in creation order
            return sorted(records, key=lambda record: record.parent_id is not None)

        return await cached_query(
            self._cache,
            ("thread", thread_id),
            load,
            stale_seconds=self._stale_seconds,
            clock=self._cache.clock,
        )

    def invalidate(self) -> None:
        self._cache.invalidate()
        logger.debug("feed_cache_invalidated")
