from __future__ import annotations

from typing import Any, Optional

import structlog

from ..errors import PersistenceError, StatusTransitionError
from ..models import PostStatus, PublishedRecord
from ..storage.base import AuditRepository, PostRepository

logger = structlog.get_logger(__name__)


class ModerationQueue:
    """Admin review of records the pipeline left pending."""

    def __init__(self, posts: PostRepository, audit: AuditRepository) -> None:
        self._posts = posts
        self._audit = audit

    async def pending(self, limit: Optional[int] = None) -> list[PublishedRecord]:
        return await self._posts.list_posts(status=PostStatus.PENDING, limit=limit)

    async def approve(self, post_id: str, *, actor: str) -> PublishedRecord:
        return await self._transition(post_id, PostStatus.APPROVED, actor=actor)

    async def reject(self, post_id: str, *, actor: str) -> PublishedRecord:
        return await self._transition(post_id, PostStatus.REJECTED, actor=actor)

    async def delete(self, post_id: str, *, actor: str) -> None:
        current = await self._require(post_id)
        await self._posts.delete_post(post_id)
        logger.info("post_deleted", post_id=post_id, actor=actor)
        await self._log("delete_post", actor, post_id, old_data=_snapshot(current))

    async def _transition(self, post_id: str, target: PostStatus, *, actor: str) -> PublishedRecord:
        current = await self._require(post_id)
        if current.status != PostStatus.PENDING:
            raise StatusTransitionError(
                f"Post {post_id} is {current.status.value}; only pending posts can be {target.value}"
            )
        updated = await self._posts.update_status(post_id, target)
        logger.info("post_status_changed", post_id=post_id, status=target.value, actor=actor)
        await self._log(
            f"post_{target.value}",
            actor,
            post_id,
            old_data={"status": current.status.value},
            new_data={"status": updated.status.value},
        )
        return updated

    async def _require(self, post_id: str) -> PublishedRecord:
        record = await self._posts.get_post(post_id)
        if record is None:
            raise PersistenceError(f"Post {post_id} not found")
        return record

    async def _log(
        self,
        action: str,
        actor: str,
        record_id: str,
        *,
        old_data: Optional[dict[str, Any]] = None,
        new_data: Optional[dict[str, Any]] = None,
    ) -> None:
        try:
            await self._audit.log_audit_event(
                action,
                actor=actor,
                table_name="posts",
                record_id=record_id,
                old_data=old_data,
                new_data=new_data,
            )
        except PersistenceError as exc:
            logger.error("audit_log_failed", action=action, record_id=record_id, error=str(exc))


def _snapshot(record: PublishedRecord) -> dict[str, Any]:
    return {
        "content": record.content,
        "alias": record.alias,
        "status": record.status.value,
        "thread_id": record.thread_id,
        "parent_id": record.parent_id,
    }
