from __future__ import annotations

from typing import Optional

import structlog

from ..models import Draft, Identity, ModerationVerdict, PostStatus, PublishedRecord
from ..storage.base import NewPost, PostRepository

logger = structlog.get_logger(__name__)


def status_for(verdict: ModerationVerdict) -> PostStatus:
    """Initial status of a new record; ``rejected`` is never produced here."""
    if verdict.should_approve is True:
        return PostStatus.APPROVED
    return PostStatus.PENDING


class PublicationRecorder:
    def __init__(self, storage: PostRepository) -> None:
        self._storage = storage

    async def record(
        self,
        draft: Draft,
        verdict: ModerationVerdict,
        identity: Optional[Identity] = None,
    ) -> PublishedRecord:
        status = status_for(verdict)
        record = await self._storage.insert_post(
            NewPost(
                content=draft.content,
                alias=draft.alias,
                status=status,
                post_type=draft.post_type,
                parent_id=draft.parent_id,
                user_id=identity.user_id if identity else None,
            )
        )
        logger.info(
            "publication_recorded",
            post_id=record.post_id,
            status=record.status.value,
            thread_id=record.thread_id,
            is_reply=draft.parent_id is not None,
        )
        return record
