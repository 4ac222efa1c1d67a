from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Optional

import structlog

from ..errors import PersistenceError, ValidationError
from ..models import Draft, DraftVariant, Identity, ModerationVerdict, PostType, PublishedRecord
from ..moderation.gateway import VerdictSource
from ..publishing.recorder import PublicationRecorder
from .validation import validate_draft

logger = structlog.get_logger(__name__)

LIVE_MESSAGE = "Your post is live on the feed!"
REVIEW_MESSAGE = "Your post was sent for human review."
FLAGGED_MESSAGE = "Your post was flagged for review: {reason}"


@dataclass(slots=True)
class PublishNotice:
    record: PublishedRecord
    verdict: ModerationVerdict
    message: str

    @property
    def live(self) -> bool:
        return self.record.is_live


PublishListener = Callable[[PublishNotice], None]


def notice_message(verdict: ModerationVerdict) -> str:
    if verdict.should_approve:
        return LIVE_MESSAGE
    if verdict.flag_reason:
        return FLAGGED_MESSAGE.format(reason=verdict.flag_reason)
    return REVIEW_MESSAGE


class Composer:
    """Turns a draft into a moderated, recorded post.

    The moderation call and the insert run strictly one after the other. The
    draft is cleared only after the insert succeeds, so a failed publish can be
    resubmitted without retyping.
    """

    def __init__(
        self,
        verdicts: VerdictSource,
        recorder: PublicationRecorder,
        *,
        variant: DraftVariant = DraftVariant.COMPOSE,
        post_type: PostType = PostType.ANNOUNCEMENT,
        identity: Optional[Identity] = None,
        alias: str = "",
    ) -> None:
        self._verdicts = verdicts
        self._recorder = recorder
        self._identity = identity
        self._listeners: list[PublishListener] = []
        self._submitting = False
        self.draft = Draft(alias=alias, variant=variant, post_type=post_type)

    @property
    def submitting(self) -> bool:
        return self._submitting

    def subscribe(self, listener: PublishListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(
        self,
        *,
        content: Optional[str] = None,
        alias: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> Draft:
        changes = {}
        if content is not None:
            changes["content"] = content
        if alias is not None:
            changes["alias"] = alias
        if parent_id is not None:
            changes["parent_id"] = parent_id
        self.draft = replace(self.draft, **changes)
        return self.draft

    def clear(self) -> None:
        # the alias is kept between posts; a reply box stays on its parent
        if self.draft.variant is DraftVariant.REPLY:
            self.draft = replace(self.draft, content="")
        else:
            self.draft = replace(self.draft, content="", parent_id=None)

    async def submit(self) -> PublishNotice:
        if self._submitting:
            raise RuntimeError("A submission is already in flight")

        try:
            draft = validate_draft(self.draft)
        except ValidationError as exc:
            logger.info("compose_validation_failed", fields=sorted(exc.field_errors))
            raise

        self._submitting = True
        try:
            verdict = await self._verdicts.judge(draft.content)
            try:
                record = await self._recorder.record(draft, verdict, self._identity)
            except PersistenceError as exc:
                logger.error("compose_publish_failed", error=str(exc))
                raise
        finally:
            self._submitting = False

        notice = PublishNotice(record=record, verdict=verdict, message=notice_message(verdict))
        self.clear()
        logger.info("compose_published", post_id=record.post_id, live=notice.live)
        for listener in list(self._listeners):
            listener(notice)
        return notice
