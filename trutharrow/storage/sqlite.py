from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Optional
from uuid import uuid4

import aiosqlite
import structlog

from ..errors import PersistenceError
from ..models import (
    ActionOutcome,
    Identity,
    Poll,
    PostStatus,
    PublishedRecord,
    ReactionCounts,
    ReactionKind,
    SubmissionRecord,
    SubmissionStatus,
    Tip,
)
from .base import NewPost, StorageGateway

logger = structlog.get_logger(__name__)


CREATE_POSTS = """
CREATE TABLE IF NOT EXISTS posts (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    content TEXT NOT NULL,
    alias TEXT NOT NULL,
    status TEXT NOT NULL,
    parent_id TEXT REFERENCES posts(id) ON DELETE CASCADE,
    thread_id TEXT,
    reactions_json TEXT NOT NULL,
    reply_count INTEGER NOT NULL DEFAULT 0,
    featured INTEGER NOT NULL DEFAULT 0,
    user_id TEXT,
    created_at TEXT NOT NULL
)
"""


CREATE_POST_REACTIONS = """
CREATE TABLE IF NOT EXISTS post_reactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    post_id TEXT NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
    reaction_type TEXT NOT NULL,
    identity TEXT NOT NULL,
    user_id TEXT,
    fingerprint TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (post_id, reaction_type, identity)
)
"""


CREATE_POLLS = """
CREATE TABLE IF NOT EXISTS polls (
    id TEXT PRIMARY KEY,
    question TEXT NOT NULL,
    options_json TEXT NOT NULL,
    results_json TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
)
"""


CREATE_POLL_VOTES = """
CREATE TABLE IF NOT EXISTS poll_votes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    poll_id TEXT NOT NULL REFERENCES polls(id) ON DELETE CASCADE,
    option_index INTEGER NOT NULL,
    identity TEXT NOT NULL,
    user_id TEXT,
    fingerprint TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (poll_id, identity)
)
"""


CREATE_SUBMISSIONS = """
CREATE TABLE IF NOT EXISTS submissions (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    what TEXT NOT NULL,
    when_where TEXT,
    verify TEXT NOT NULL,
    contact TEXT,
    status TEXT NOT NULL,
    user_id TEXT,
    fingerprint TEXT,
    admin_notes TEXT,
    reviewed_by TEXT,
    reviewed_at TEXT,
    created_at TEXT NOT NULL
)
"""


CREATE_AUDIT_LOG = """
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    action TEXT NOT NULL,
    actor TEXT,
    table_name TEXT,
    record_id TEXT,
    old_data_json TEXT,
    new_data_json TEXT,
    created_at TEXT NOT NULL
)
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteStorage(StorageGateway):
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        try:
            self._conn = await aiosqlite.connect(self._path)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA foreign_keys=ON")
            for statement in (
                CREATE_POSTS,
                CREATE_POST_REACTIONS,
                CREATE_POLLS,
                CREATE_POLL_VOTES,
                CREATE_SUBMISSIONS,
                CREATE_AUDIT_LOG,
            ):
                await self._conn.execute(statement)
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise PersistenceError(f"Failed to open {self._path}: {exc}") from exc
        logger.info("sqlite_connected", path=str(self._path))

    async def disconnect(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        if self._conn is None:
            raise PersistenceError("Storage is not connected")
        conn = self._conn
        # one transaction at a time on the shared connection
        async with self._lock:
            try:
                yield conn
                await conn.commit()
            except aiosqlite.Error as exc:
                await conn.rollback()
                raise PersistenceError(str(exc)) from exc
            except BaseException:
                await conn.rollback()
                raise

    async def _fetchone(self, conn: aiosqlite.Connection, query: str, params: tuple) -> Optional[aiosqlite.Row]:
        cursor = await conn.execute(query, params)
        row = await cursor.fetchone()
        await cursor.close()
        return row

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> PublishedRecord:
        data: dict[str, Any] = dict(row)
        data["reactions"] = json.loads(data.pop("reactions_json") or "{}")
        return PublishedRecord.from_row(data)

    async def insert_post(self, post: NewPost) -> PublishedRecord:
        post_id = str(uuid4())
        async with self._transaction() as conn:
            thread_id = post_id
            if post.parent_id:
                parent = await self._fetchone(
                    conn, "SELECT id, thread_id FROM posts WHERE id = ?", (post.parent_id,)
                )
                if parent is None:
                    raise PersistenceError(f"Parent post {post.parent_id} not found")
                thread_id = parent["thread_id"] or parent["id"]
                await conn.execute(
                    "UPDATE posts SET reply_count = reply_count + 1 WHERE id = ?", (post.parent_id,)
                )
            await conn.execute(
                """
                INSERT INTO posts (
                    id, type, content, alias, status, parent_id, thread_id,
                    reactions_json, reply_count, featured, user_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, 0, ?, ?)
                """,
                (
                    post_id,
                    post.post_type.value,
                    post.content,
                    post.alias,
                    post.status.value,
                    post.parent_id,
                    thread_id,
                    json.dumps(ReactionCounts().as_dict()),
                    post.user_id,
                    _now(),
                ),
            )
            row = await self._fetchone(conn, "SELECT * FROM posts WHERE id = ?", (post_id,))
        logger.info("sqlite_insert_post", post_id=post_id, status=post.status.value, thread_id=thread_id)
        return self._row_to_record(row)

    async def get_post(self, post_id: str) -> Optional[PublishedRecord]:
        async with self._transaction() as conn:
            row = await self._fetchone(conn, "SELECT * FROM posts WHERE id = ?", (post_id,))
        return self._row_to_record(row) if row else None

    async def list_posts(
        self,
        *,
        status: Optional[PostStatus] = None,
        thread_id: Optional[str] = None,
        roots_only: bool = False,
        limit: Optional[int] = None,
        newest_first: bool = True,
    ) -> list[PublishedRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if thread_id is not None:
            clauses.append("thread_id = ?")
            params.append(thread_id)
        if roots_only:
            clauses.append("parent_id IS NULL")
        query = "SELECT * FROM posts"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        direction = "DESC" if newest_first else "ASC"
        query += f" ORDER BY created_at {direction}, rowid {direction}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        async with self._transaction() as conn:
            cursor = await conn.execute(query, tuple(params))
            rows = await cursor.fetchall()
            await cursor.close()
        return [self._row_to_record(row) for row in rows]

    async def update_status(self, post_id: str, status: PostStatus) -> PublishedRecord:
        async with self._transaction() as conn:
            cursor = await conn.execute("UPDATE posts SET status = ? WHERE id = ?", (status.value, post_id))
            if cursor.rowcount == 0:
                raise PersistenceError(f"Post {post_id} not found")
            row = await self._fetchone(conn, "SELECT * FROM posts WHERE id = ?", (post_id,))
        logger.info("sqlite_update_status", post_id=post_id, status=status.value)
        return self._row_to_record(row)

    async def delete_post(self, post_id: str) -> None:
        async with self._transaction() as conn:
            row = await self._fetchone(conn, "SELECT parent_id FROM posts WHERE id = ?", (post_id,))
            if row is None:
                raise PersistenceError(f"Post {post_id} not found")
            if row["parent_id"]:
                await conn.execute(
                    "UPDATE posts SET reply_count = MAX(reply_count - 1, 0) WHERE id = ?", (row["parent_id"],)
                )
            # replies go with their parent
            await conn.execute("DELETE FROM posts WHERE id = ?", (post_id,))
        logger.info("sqlite_delete_post", post_id=post_id, parent_id=row["parent_id"])

    async def increment_reaction(self, post_id: str, kind: ReactionKind, identity: Identity) -> ActionOutcome:
        user_id, fingerprint = identity.attribution()
        async with self._transaction() as conn:
            row = await self._fetchone(conn, "SELECT 1 FROM posts WHERE id = ?", (post_id,))
            if row is None:
                return ActionOutcome(success=False, message="Post not found")
            cursor = await conn.execute(
                """
                INSERT OR IGNORE INTO post_reactions (
                    post_id, reaction_type, identity, user_id, fingerprint, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (post_id, kind.value, identity.key, user_id, fingerprint, _now()),
            )
            if cursor.rowcount == 0:
                logger.info("sqlite_reaction_duplicate", post_id=post_id, kind=kind.value)
                return ActionOutcome(success=False, message="Already reacted")
            path = f"$.{kind.value}"
            await conn.execute(
                """
                UPDATE posts
                SET reactions_json = json_set(reactions_json, ?, COALESCE(json_extract(reactions_json, ?), 0) + 1)
                WHERE id = ?
                """,
                (path, path, post_id),
            )
        logger.info("sqlite_reaction_recorded", post_id=post_id, kind=kind.value)
        return ActionOutcome(success=True)

    async def vote_on_poll(self, poll_id: str, option_index: int, identity: Identity) -> ActionOutcome:
        user_id, fingerprint = identity.attribution()
        async with self._transaction() as conn:
            row = await self._fetchone(
                conn, "SELECT options_json, results_json, active FROM polls WHERE id = ?", (poll_id,)
            )
            if row is None or not row["active"]:
                return ActionOutcome(success=False, message="Poll not found or inactive")
            options = json.loads(row["options_json"])
            if not 0 <= option_index < len(options):
                return ActionOutcome(success=False, message="Invalid option")
            cursor = await conn.execute(
                """
                INSERT OR IGNORE INTO poll_votes (
                    poll_id, option_index, identity, user_id, fingerprint, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (poll_id, option_index, identity.key, user_id, fingerprint, _now()),
            )
            if cursor.rowcount == 0:
                logger.info("sqlite_vote_duplicate", poll_id=poll_id)
                return ActionOutcome(success=False, message="Already voted")
            path = f'$."{option_index}"'
            await conn.execute(
                """
                UPDATE polls
                SET results_json = json_set(results_json, ?, COALESCE(json_extract(results_json, ?), 0) + 1)
                WHERE id = ?
                """,
                (path, path, poll_id),
            )
        logger.info("sqlite_vote_recorded", poll_id=poll_id, option_index=option_index)
        return ActionOutcome(success=True)

    async def user_reactions(self, post_ids: list[str], identity: Identity) -> dict[str, set[ReactionKind]]:
        reacted: dict[str, set[ReactionKind]] = {post_id: set() for post_id in post_ids}
        if not post_ids:
            return reacted
        placeholders = ", ".join("?" for _ in post_ids)
        async with self._transaction() as conn:
            cursor = await conn.execute(
                f"SELECT post_id, reaction_type FROM post_reactions WHERE identity = ? AND post_id IN ({placeholders})",
                (identity.key, *post_ids),
            )
            rows = await cursor.fetchall()
            await cursor.close()
        for row in rows:
            reacted[row["post_id"]].add(ReactionKind(row["reaction_type"]))
        return reacted

    async def has_voted(self, poll_id: str, identity: Identity) -> bool:
        async with self._transaction() as conn:
            row = await self._fetchone(
                conn, "SELECT 1 FROM poll_votes WHERE poll_id = ? AND identity = ?", (poll_id, identity.key)
            )
        return row is not None

    async def create_poll(self, question: str, options: list[str]) -> Poll:
        poll_id = str(uuid4())
        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO polls (id, question, options_json, results_json, active, created_at)
                VALUES (?, ?, ?, ?, 1, ?)
                """,
                (poll_id, question, json.dumps(options), json.dumps({}), _now()),
            )
        logger.info("sqlite_create_poll", poll_id=poll_id, options=len(options))
        return Poll(poll_id=poll_id, question=question, options=list(options))

    async def get_poll(self, poll_id: str) -> Optional[Poll]:
        async with self._transaction() as conn:
            row = await self._fetchone(conn, "SELECT * FROM polls WHERE id = ?", (poll_id,))
        if row is None:
            return None
        results = json.loads(row["results_json"] or "{}")
        return Poll(
            poll_id=row["id"],
            question=row["question"],
            options=json.loads(row["options_json"]),
            results={int(key): int(value) for key, value in results.items()},
            active=bool(row["active"]),
        )

    async def insert_submission(self, tip: Tip, identity: Identity) -> SubmissionRecord:
        submission_id = str(uuid4())
        user_id, fingerprint = identity.attribution()
        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO submissions (
                    id, title, what, when_where, verify, contact, status, user_id, fingerprint, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    submission_id,
                    tip.title,
                    tip.what,
                    tip.when_where,
                    tip.verify,
                    tip.contact,
                    SubmissionStatus.PENDING.value,
                    user_id,
                    fingerprint,
                    _now(),
                ),
            )
            row = await self._fetchone(conn, "SELECT * FROM submissions WHERE id = ?", (submission_id,))
        logger.info("sqlite_insert_submission", submission_id=submission_id, anonymous=user_id is None)
        return SubmissionRecord.from_row(dict(row))

    async def get_submission(self, submission_id: str) -> Optional[SubmissionRecord]:
        async with self._transaction() as conn:
            row = await self._fetchone(conn, "SELECT * FROM submissions WHERE id = ?", (submission_id,))
        return SubmissionRecord.from_row(dict(row)) if row else None

    async def list_submissions(
        self,
        *,
        status: Optional[SubmissionStatus] = None,
        limit: Optional[int] = None,
    ) -> list[SubmissionRecord]:
        query = "SELECT * FROM submissions"
        params: list[Any] = []
        if status is not None:
            query += " WHERE status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        async with self._transaction() as conn:
            cursor = await conn.execute(query, tuple(params))
            rows = await cursor.fetchall()
            await cursor.close()
        return [SubmissionRecord.from_row(dict(row)) for row in rows]

    async def update_submission_status(
        self,
        submission_id: str,
        status: SubmissionStatus,
        *,
        reviewed_by: str,
        admin_notes: Optional[str] = None,
    ) -> SubmissionRecord:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                UPDATE submissions
                SET status = ?, reviewed_by = ?, reviewed_at = ?, admin_notes = COALESCE(?, admin_notes)
                WHERE id = ?
                """,
                (status.value, reviewed_by, _now(), admin_notes, submission_id),
            )
            if cursor.rowcount == 0:
                raise PersistenceError(f"Submission {submission_id} not found")
            row = await self._fetchone(conn, "SELECT * FROM submissions WHERE id = ?", (submission_id,))
        logger.info("sqlite_update_submission", submission_id=submission_id, status=status.value)
        return SubmissionRecord.from_row(dict(row))

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
        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO audit_log (
                    action, actor, table_name, record_id, old_data_json, new_data_json, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    action,
                    actor,
                    table_name,
                    record_id,
                    json.dumps(old_data) if old_data is not None else None,
                    json.dumps(new_data) if new_data is not None else None,
                    _now(),
                ),
            )

    async def audit_entries(self, record_id: Optional[str] = None) -> list[dict[str, Any]]:
        query = "SELECT * FROM audit_log"
        params: tuple = ()
        if record_id is not None:
            query += " WHERE record_id = ?"
            params = (record_id,)
        query += " ORDER BY id"
        async with self._transaction() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()
        return [dict(row) for row in rows]
