from __future__ import annotations

import pytest

from trutharrow.composer.composer import (
    LIVE_MESSAGE,
    REVIEW_MESSAGE,
    Composer,
    PublishNotice,
    notice_message,
)
from trutharrow.errors import PersistenceError, ValidationError
from trutharrow.models import DraftVariant, Identity, ModerationVerdict, PostStatus, PostType
from trutharrow.moderation.gateway import ModerationGateway
from trutharrow.moderation.policy import FAIL_OPEN_VERDICT
from trutharrow.publishing.recorder import PublicationRecorder
from tests.factories import FakeVerdicts, open_storage


class BrokenRecorder:
    def __init__(self) -> None:
        self.calls = 0

    async def record(self, draft, verdict, identity=None):
        self.calls += 1
        raise PersistenceError("database is locked")


def test_notice_messages() -> None:
    assert notice_message(FAIL_OPEN_VERDICT) == LIVE_MESSAGE
    assert notice_message(ModerationVerdict(False, "Spam")) == "Your post was flagged for review: Spam"
    assert notice_message(ModerationVerdict(False)) == REVIEW_MESSAGE


@pytest.mark.asyncio
async def test_approved_draft_goes_live_and_clears(tmp_path) -> None:
    storage = await open_storage(tmp_path / "posts.db")
    try:
        verdicts = FakeVerdicts(ModerationVerdict(True))
        composer = Composer(verdicts, PublicationRecorder(storage), alias="Student-22")
        notices: list[PublishNotice] = []
        composer.subscribe(notices.append)
        composer.update(content="  The cafeteria ran out of food again  ")

        notice = await composer.submit()

        assert notice.live is True
        assert notice.message == LIVE_MESSAGE
        assert notice.record.status is PostStatus.APPROVED
        assert notice.record.content == "The cafeteria ran out of food again"
        assert verdicts.calls == ["The cafeteria ran out of food again"]
        assert composer.draft.content == ""
        assert composer.draft.alias == "Student-22"
        assert composer.submitting is False
        assert notices == [notice]
        feed = await storage.list_posts(status=PostStatus.APPROVED)
        assert [record.post_id for record in feed] == [notice.record.post_id]
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_flagged_draft_is_held_pending(tmp_path) -> None:
    storage = await open_storage(tmp_path / "posts.db")
    try:
        composer = Composer(
            FakeVerdicts(ModerationVerdict(False, "PII detected")),
            PublicationRecorder(storage),
            alias="Student-22",
        )
        composer.update(content="Jamie's number is 555-0100")

        notice = await composer.submit()

        assert notice.live is False
        assert notice.record.status is PostStatus.PENDING
        assert notice.message == "Your post was flagged for review: PII detected"
        assert await storage.list_posts(status=PostStatus.APPROVED) == []
        pending = await storage.list_posts(status=PostStatus.PENDING)
        assert [record.post_id for record in pending] == [notice.record.post_id]
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_judge_outage_still_publishes(tmp_path) -> None:
    storage = await open_storage(tmp_path / "posts.db")
    try:
        composer = Composer(ModerationGateway(None), PublicationRecorder(storage), alias="Student-22")
        composer.update(content="Homework load is unreasonable this week")

        notice = await composer.submit()

        assert notice.live is True
        assert notice.record.status is PostStatus.APPROVED
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_invalid_draft_never_reaches_judge() -> None:
    verdicts = FakeVerdicts(ModerationVerdict(True))
    recorder = BrokenRecorder()
    composer = Composer(verdicts, recorder, alias="bad<alias>")
    composer.update(content="hello")

    with pytest.raises(ValidationError) as excinfo:
        await composer.submit()

    assert "alias" in excinfo.value.field_errors
    assert verdicts.calls == []
    assert recorder.calls == 0
    assert composer.submitting is False


@pytest.mark.asyncio
async def test_persistence_failure_keeps_draft() -> None:
    composer = Composer(FakeVerdicts(ModerationVerdict(True)), BrokenRecorder(), alias="Student-22")
    notices: list[PublishNotice] = []
    composer.subscribe(notices.append)
    composer.update(content="Keep this text")

    with pytest.raises(PersistenceError):
        await composer.submit()

    assert composer.draft.content == "Keep this text"
    assert composer.submitting is False
    assert notices == []


@pytest.mark.asyncio
async def test_reply_joins_parent_thread(tmp_path) -> None:
    storage = await open_storage(tmp_path / "posts.db")
    try:
        recorder = PublicationRecorder(storage)
        root_composer = Composer(FakeVerdicts(ModerationVerdict(True)), recorder, alias="Student-22")
        root_composer.update(content="Root post")
        root = (await root_composer.submit()).record

        reply_composer = Composer(
            FakeVerdicts(ModerationVerdict(True)),
            recorder,
            variant=DraftVariant.REPLY,
            post_type=PostType.POP_QUIZ,
            identity=Identity(user_id="user-7"),
            alias="Replier",
        )
        reply_composer.update(content="A reply", parent_id=root.post_id)
        reply = (await reply_composer.submit()).record

        assert reply.thread_id == root.thread_id == root.post_id
        assert reply.parent_id == root.post_id
        assert reply.post_type is PostType.POP_QUIZ
        assert reply.user_id == "user-7"
        assert reply_composer.draft.content == ""
        assert reply_composer.draft.parent_id == root.post_id

        reply_composer.update(content="A second reply")
        second = (await reply_composer.submit()).record

        assert second.parent_id == root.post_id
        assert second.thread_id == root.post_id
        assert (await storage.get_post(root.post_id)).reply_count == 2
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_unsubscribed_listener_is_not_notified(tmp_path) -> None:
    storage = await open_storage(tmp_path / "posts.db")
    try:
        composer = Composer(FakeVerdicts(ModerationVerdict(True)), PublicationRecorder(storage), alias="A")
        notices: list[PublishNotice] = []
        unsubscribe = composer.subscribe(notices.append)
        unsubscribe()
        composer.update(content="quiet")

        await composer.submit()

        assert notices == []
    finally:
        await storage.disconnect()
