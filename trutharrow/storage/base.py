from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Optional

from ..models import (
    ActionOutcome,
    Identity,
    Poll,
    PostStatus,
    PostType,
    PublishedRecord,
    ReactionKind,
    SubmissionRecord,
    SubmissionStatus,
    Tip,
)


@dataclass(slots=True)
class NewPost:
    content: str
    alias: str
    status: PostStatus
    post_type: PostType = PostType.ANNOUNCEMENT
    parent_id: Optional[str] = None
    user_id: Optional[str] = None


class PostRepository(abc.ABC):
    @abc.abstractmethod
    async def insert_post(self, post: NewPost) -> PublishedRecord:
        """Insert in one atomic call; replies inherit the parent's thread."""

    @abc.abstractmethod
    async def get_post(self, post_id: str) -> Optional[PublishedRecord]:
        ...

    @abc.abstractmethod
    async def list_posts(
        self,
        *,
        status: Optional[PostStatus] = None,
        thread_id: Optional[str] = None,
        roots_only: bool = False,
        limit: Optional[int] = None,
        newest_first: bool = True,
    ) -> list[PublishedRecord]:
        ...

    @abc.abstractmethod
    async def update_status(self, post_id: str, status: PostStatus) -> PublishedRecord:
        ...

    @abc.abstractmethod
    async def delete_post(self, post_id: str) -> None:
        ...


class ReactionRepository(abc.ABC):
    @abc.abstractmethod
    async def increment_reaction(self, post_id: str, kind: ReactionKind, identity: Identity) -> ActionOutcome:
        ...

    @abc.abstractmethod
    async def vote_on_poll(self, poll_id: str, option_index: int, identity: Identity) -> ActionOutcome:
        ...

    @abc.abstractmethod
    async def user_reactions(self, post_ids: list[str], identity: Identity) -> dict[str, set[ReactionKind]]:
        ...

    @abc.abstractmethod
    async def has_voted(self, poll_id: str, identity: Identity) -> bool:
        ...


class PollRepository(abc.ABC):
    @abc.abstractmethod
    async def create_poll(self, question: str, options: list[str]) -> Poll:
        ...

    @abc.abstractmethod
    async def get_poll(self, poll_id: str) -> Optional[Poll]:
        ...


class SubmissionRepository(abc.ABC):
    @abc.abstractmethod
    async def insert_submission(self, tip: Tip, identity: Identity) -> SubmissionRecord:
        ...

    @abc.abstractmethod
    async def get_submission(self, submission_id: str) -> Optional[SubmissionRecord]:
        ...

    @abc.abstractmethod
    async def list_submissions(
        self,
        *,
        status: Optional[SubmissionStatus] = None,
        limit: Optional[int] = None,
    ) -> list[SubmissionRecord]:
        ...

    @abc.abstractmethod
    async def update_submission_status(
        self,
        submission_id: str,
        status: SubmissionStatus,
        *,
        reviewed_by: str,
        admin_notes: Optional[str] = None,
    ) -> SubmissionRecord:
        ...


class AuditRepository(abc.ABC):
    @abc.abstractmethod
    async def log_audit_event(
        self,
        action: str,
        *,
        actor: Optional[str] = None,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
        old_data: Optional[dict[str, Any]] = None,
        new_data: Optional[dict[str, Any]] = None,
    ) -> None:
        ...


class StorageGateway(
    PostRepository,
    ReactionRepository,
    PollRepository,
    SubmissionRepository,
    AuditRepository,
    abc.ABC,
):
    """Combined repository interface for convenience."""

    @abc.abstractmethod
    async def connect(self) -> None:
        ...

    @abc.abstractmethod
    async def disconnect(self) -> None:
        ...
