from __future__ import annotations

import asyncio
import json

import pytest

from trutharrow.cache import TimestampedCache
from trutharrow.errors import PersistenceError
from trutharrow.models import Identity, PostStatus, ReactionKind
from trutharrow.publishing.feed import FeedReader
from trutharrow.storage.base import NewPost
from tests.factories import open_storage

ANON = Identity(fingerprint="fp_1700000000000_abcdefghijklm")
MEMBER = Identity(user_id="user-42")


def new_post(content: str = "hello", *, status: PostStatus = PostStatus.APPROVED, parent_id=None) -> NewPost:
    return NewPost(content=content, alias="tester", status=status, parent_id=parent_id)


@pytest.mark.asyncio
async def test_reaction_is_counted_once_per_identity(tmp_path) -> None:
    storage = await open_storage(tmp_path / "db.sqlite")
    try:
        post = await storage.insert_post(new_post())

        first = await storage.increment_reaction(post.post_id, ReactionKind.LIKE, ANON)
        again = await storage.increment_reaction(post.post_id, ReactionKind.LIKE, ANON)
        other_kind = await storage.increment_reaction(post.post_id, ReactionKind.LOL, ANON)
        member = await storage.increment_reaction(post.post_id, ReactionKind.LIKE, MEMBER)

        assert first.success is True
        assert again.success is False
        assert again.message == "Already reacted"
        assert other_kind.success is True
        assert member.success is True
        stored = await storage.get_post(post.post_id)
        assert stored.reactions.as_dict() == {"like": 2, "lol": 1, "angry": 0}
        reacted = await storage.user_reactions([post.post_id], ANON)
        assert reacted == {post.post_id: {ReactionKind.LIKE, ReactionKind.LOL}}
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_reaction_on_missing_post(tmp_path) -> None:
    storage = await open_storage(tmp_path / "db.sqlite")
    try:
        outcome = await storage.increment_reaction("missing", ReactionKind.ANGRY, ANON)

        assert outcome.success is False
        assert outcome.message == "Post not found"
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_poll_votes_once_per_identity(tmp_path) -> None:
    storage = await open_storage(tmp_path / "db.sqlite")
    try:
        poll = await storage.create_poll("Best lunch day?", ["Monday", "Friday"])

        assert (await storage.vote_on_poll(poll.poll_id, 1, ANON)).success is True
        duplicate = await storage.vote_on_poll(poll.poll_id, 0, ANON)
        invalid = await storage.vote_on_poll(poll.poll_id, 5, MEMBER)
        missing = await storage.vote_on_poll("missing", 0, MEMBER)

        assert duplicate.message == "Already voted"
        assert invalid.message == "Invalid option"
        assert missing.message == "Poll not found or inactive"
        assert await storage.has_voted(poll.poll_id, ANON) is True
        assert await storage.has_voted(poll.poll_id, MEMBER) is False
        stored = await storage.get_poll(poll.poll_id)
        assert stored.results == {1: 1}
        assert stored.total_votes() == 1
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_list_posts_filters_and_orders(tmp_path) -> None:
    storage = await open_storage(tmp_path / "db.sqlite")
    try:
        first = await storage.insert_post(new_post("first"))
        second = await storage.insert_post(new_post("second"))
        held = await storage.insert_post(new_post("held", status=PostStatus.PENDING))
        reply = await storage.insert_post(new_post("reply", parent_id=first.post_id))

        roots = await storage.list_posts(status=PostStatus.APPROVED, roots_only=True)
        thread = await storage.list_posts(thread_id=first.post_id, newest_first=False)
        pending = await storage.list_posts(status=PostStatus.PENDING)

        assert [record.content for record in roots] == ["second", "first"]
        assert [record.post_id for record in thread] == [first.post_id, reply.post_id]
        assert [record.post_id for record in pending] == [held.post_id]
        assert [record.content for record in await storage.list_posts(limit=1)] == ["reply"]
        assert second.thread_id == second.post_id
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_status_update_and_delete(tmp_path) -> None:
    storage = await open_storage(tmp_path / "db.sqlite")
    try:
        post = await storage.insert_post(new_post(status=PostStatus.PENDING))

        updated = await storage.update_status(post.post_id, PostStatus.APPROVED)
        await storage.delete_post(post.post_id)

        assert updated.status is PostStatus.APPROVED
        assert await storage.get_post(post.post_id) is None
        with pytest.raises(PersistenceError):
            await storage.update_status(post.post_id, PostStatus.REJECTED)
        with pytest.raises(PersistenceError):
            await storage.delete_post(post.post_id)
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_audit_log_round_trip(tmp_path) -> None:
    storage = await open_storage(tmp_path / "db.sqlite")
    try:
        await storage.log_audit_event(
            "post_approved",
            actor="admin-1",
            table_name="posts",
            record_id="post-9",
            old_data={"status": "pending"},
            new_data={"status": "approved"},
        )

        entries = await storage.audit_entries("post-9")

        assert len(entries) == 1
        assert entries[0]["action"] == "post_approved"
        assert json.loads(entries[0]["new_data_json"]) == {"status": "approved"}
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_concurrent_reactions_are_all_counted(tmp_path) -> None:
    storage = await open_storage(tmp_path / "db.sqlite")
    try:
        post = await storage.insert_post(new_post())
        visitors = [Identity(fingerprint=f"fp_1700000000000_visitor{index:05d}") for index in range(20)]

        outcomes = await asyncio.gather(
            *(storage.increment_reaction(post.post_id, ReactionKind.LIKE, visitor) for visitor in visitors),
            storage.increment_reaction(post.post_id, ReactionKind.LIKE, visitors[0]),
        )

        assert sum(outcome.success for outcome in outcomes) == 20
        assert (await storage.get_post(post.post_id)).reactions.like == 20
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_concurrent_votes_are_all_counted(tmp_path) -> None:
    storage = await open_storage(tmp_path / "db.sqlite")
    try:
        poll = await storage.create_poll("Longer lunch?", ["Yes", "No"])
        visitors = [Identity(user_id=f"user-{index}") for index in range(12)]

        await asyncio.gather(
            *(storage.vote_on_poll(poll.poll_id, index % 2, visitor) for index, visitor in enumerate(visitors))
        )

        assert (await storage.get_poll(poll.poll_id)).results == {0: 6, 1: 6}
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_deleting_root_removes_its_replies(tmp_path) -> None:
    storage = await open_storage(tmp_path / "db.sqlite")
    try:
        feed = FeedReader(storage, TimestampedCache(), stale_seconds=30)
        root = await storage.insert_post(new_post("root"))
        reply = await storage.insert_post(new_post("reply", parent_id=root.post_id))
        nested = await storage.insert_post(new_post("nested", parent_id=reply.post_id))

        await storage.delete_post(root.post_id)

        assert await feed.latest() == []
        assert await storage.get_post(reply.post_id) is None
        assert await storage.get_post(nested.post_id) is None
    finally:
        await storage.disconnect()


@pytest.mark.asyncio
async def test_deleting_reply_decrements_parent_count(tmp_path) -> None:
    storage = await open_storage(tmp_path / "db.sqlite")
    try:
        root = await storage.insert_post(new_post("root"))
        first = await storage.insert_post(new_post("first", parent_id=root.post_id))
        await storage.insert_post(new_post("second", parent_id=root.post_id))

        await storage.delete_post(first.post_id)

        stored = await storage.get_post(root.post_id)
        assert stored.reply_count == 1
        assert [record.content for record in await storage.list_posts(thread_id=root.post_id, newest_first=False)] == [
            "root",
            "second",
        ]
    finally:
        await storage.disconnect()
