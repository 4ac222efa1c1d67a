from __future__ import annotations

from typing import Optional

import structlog

from ..adapters.gateway_client import ModerationHttpClient
from ..cache import TimestampedCache
from ..composer.composer import Composer, PublishNotice
from ..config import AppSettings
from ..errors import PersistenceError
from ..identity.store import AliasStore, LocalStore, get_fingerprint
from ..logging.events import level_from_name, setup_logging
from ..models import DraftVariant, Identity, PostType, PublishedRecord, SubmissionRecord, Tip
from ..moderation.gateway import ModerationGateway, VerdictSource
from ..publishing.feed import FeedReader
from ..publishing.queue import ModerationQueue
from ..publishing.recorder import PublicationRecorder
from ..publishing.submissions import TipDesk
from ..reactions.trackers import PollVoteTracker, ReactionTracker
from ..storage.sqlite import SQLiteStorage

logger = structlog.get_logger(__name__)


class PublishingCoordinator:
    """Wires storage, moderation, publishing, tips and client identity together."""

    def __init__(
        self,
        settings: AppSettings,
        *,
        verdicts: Optional[VerdictSource] = None,
        configure_logging: bool = True,
    ) -> None:
        if configure_logging:
            setup_logging(level=level_from_name(settings.logging.level), use_json=settings.logging.use_json)
        self._settings = settings
        self._storage = SQLiteStorage(settings.storage.sqlite_path)
        self._local = LocalStore(settings.client.state_path)
        self.aliases = AliasStore(self._local)
        self._owned_verdicts: Optional[ModerationGateway | ModerationHttpClient] = None
        if verdicts is None:
            if settings.gateway.function_url:
                self._owned_verdicts = ModerationHttpClient(
                    settings.gateway.function_url, api_key=settings.gateway.api_key
                )
            else:
                self._owned_verdicts = ModerationGateway.from_settings(settings.judge)
            verdicts = self._owned_verdicts
        self._verdicts = verdicts
        self.recorder = PublicationRecorder(self._storage)
        self.queue = ModerationQueue(self._storage, self._storage)
        self.tips = TipDesk(self._storage, self._storage)
        self.feed = FeedReader(
            self._storage,
            TimestampedCache(),
            stale_seconds=settings.client.feed_stale_seconds,
        )

    @property
    def storage(self) -> SQLiteStorage:
        return self._storage

    async def start(self) -> None:
        await self._storage.connect()
        logger.info("publishing_coordinator_started")

    async def shutdown(self) -> None:
        await self._storage.disconnect()
        if self._owned_verdicts is not None:
            await self._owned_verdicts.close()
        logger.info("publishing_coordinator_stopped")

    def identity(self, user_id: Optional[str] = None) -> Identity:
        if user_id:
            return Identity(user_id=user_id)
        return Identity(fingerprint=get_fingerprint(self._local))

    def composer(
        self,
        variant: DraftVariant = DraftVariant.COMPOSE,
        *,
        post_type: PostType = PostType.ANNOUNCEMENT,
        user_id: Optional[str] = None,
    ) -> Composer:
        composer = Composer(
            self._verdicts,
            self.recorder,
            variant=variant,
            post_type=post_type,
            identity=Identity(user_id=user_id) if user_id else None,
            alias=self.aliases.alias,
        )
        composer.subscribe(self._on_published)
        return composer

    async def reaction_tracker(self, record: PublishedRecord, *, user_id: Optional[str] = None) -> ReactionTracker:
        identity = self.identity(user_id)
        reacted = await self._storage.user_reactions([record.post_id], identity)
        return ReactionTracker(
            record.post_id,
            record.reactions,
            self._storage,
            identity,
            reacted=reacted[record.post_id],
        )

    async def poll_tracker(self, poll_id: str, *, user_id: Optional[str] = None) -> PollVoteTracker:
        poll = await self._storage.get_poll(poll_id)
        if poll is None:
            raise PersistenceError(f"Poll {poll_id} not found")
        identity = self.identity(user_id)
        has_voted = await self._storage.has_voted(poll_id, identity)
        return PollVoteTracker(poll, self._storage, identity, has_voted=has_voted)

    async def submit_tip(self, tip: Tip, *, user_id: Optional[str] = None) -> SubmissionRecord:
        return await self.tips.submit(tip, self.identity(user_id))

    def _on_published(self, notice: PublishNotice) -> None:
        self.aliases.set_alias(notice.record.alias)
        if notice.live:
            self.feed.invalidate()
