from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .errors import PersistenceError


class PostStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReactionKind(str, Enum):
    LIKE = "like"
    LOL = "lol"
    ANGRY = "angry"


class PostType(str, Enum):
    ASSIGNMENT = "assignment"
    DETENTION_SLIP = "detention-slip"
    POP_QUIZ = "pop-quiz"
    ANNOUNCEMENT = "announcement"


class DraftVariant(str, Enum):
    COMPOSE = "compose"
    REPLY = "reply"
    POST = "post"


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"


@dataclass(slots=True)
class Identity:
    """Who a reaction, vote or post is attributed to.

    An authenticated user id always wins over the anonymous fingerprint.
    """

    user_id: Optional[str] = None
    fingerprint: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.user_id and not self.fingerprint:
            raise ValueError("identity requires a user_id or a fingerprint")

    @property
    def key(self) -> str:
        if self.user_id:
            return f"user:{self.user_id}"
        return f"fp:{self.fingerprint}"

    def attribution(self) -> tuple[Optional[str], Optional[str]]:
        if self.user_id:
            return self.user_id, None
        return None, self.fingerprint


@dataclass(slots=True)
class Draft:
    content: str = ""
    alias: str = ""
    parent_id: Optional[str] = None
    variant: DraftVariant = DraftVariant.COMPOSE
    post_type: PostType = PostType.ANNOUNCEMENT


@dataclass(slots=True, frozen=True)
class ModerationVerdict:
    should_approve: bool
    flag_reason: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"shouldApprove": self.should_approve}
        if self.flag_reason:
            payload["flagReason"] = self.flag_reason
        return payload


def _non_negative(value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return 0
    return max(number, 0)


@dataclass(slots=True)
class ReactionCounts:
    like: int = 0
    lol: int = 0
    angry: int = 0

    @classmethod
    def from_json(cls, payload: Any) -> "ReactionCounts":
        if not isinstance(payload, dict):
            return cls()
        return cls(
            like=_non_negative(payload.get("like")),
            lol=_non_negative(payload.get("lol")),
            angry=_non_negative(payload.get("angry")),
        )

    def as_dict(self) -> dict[str, int]:
        return {"like": self.like, "lol": self.lol, "angry": self.angry}


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value)
    else:
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(slots=True)
class PublishedRecord:
    post_id: str
    content: str
    alias: str
    status: PostStatus
    created_at: datetime
    thread_id: Optional[str] = None
    parent_id: Optional[str] = None
    post_type: PostType = PostType.ANNOUNCEMENT
    reactions: ReactionCounts = field(default_factory=ReactionCounts)
    user_id: Optional[str] = None
    reply_count: int = 0
    featured: bool = False

    @property
    def is_live(self) -> bool:
        return self.status == PostStatus.APPROVED

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "PublishedRecord":
        """Parse a backend row into a record, rejecting shapes we cannot trust."""
        try:
            status = PostStatus(row.get("status") or PostStatus.PENDING.value)
            post_type = PostType(row.get("type") or PostType.ANNOUNCEMENT.value)
            return cls(
                post_id=str(row["id"]),
                content=str(row["content"]),
                alias=str(row["alias"]),
                status=status,
                created_at=_parse_timestamp(row.get("created_at")),
                thread_id=row.get("thread_id"),
                parent_id=row.get("parent_id"),
                post_type=post_type,
                reactions=ReactionCounts.from_json(row.get("reactions")),
                user_id=row.get("user_id"),
                reply_count=_non_negative(row.get("reply_count")),
                featured=bool(row.get("featured")),
            )
        except (KeyError, ValueError) as exc:
            raise PersistenceError(f"Malformed post row: {exc}") from exc


@dataclass(slots=True)
class Poll:
    poll_id: str
    question: str
    options: list[str]
    results: dict[int, int] = field(default_factory=dict)
    active: bool = True

    def total_votes(self) -> int:
        return sum(self.results.values())


@dataclass(slots=True, frozen=True)
class ActionOutcome:
    success: bool
    message: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ActionOutcome":
        if not isinstance(payload, dict):
            return cls(success=False, message="Malformed response")
        message = payload.get("message")
        return cls(
            success=payload.get("success") is True,
            message=message if isinstance(message, str) else None,
        )


@dataclass(slots=True)
class Tip:
    """An anonymous tip as typed into the submission form."""

    title: str = ""
    what: str = ""
    verify: str = ""
    when_where: Optional[str] = None
    contact: Optional[str] = None


@dataclass(slots=True)
class SubmissionRecord:
    submission_id: str
    title: str
    what: str
    verify: str
    status: SubmissionStatus
    created_at: datetime
    when_where: Optional[str] = None
    contact: Optional[str] = None
    user_id: Optional[str] = None
    fingerprint: Optional[str] = None
    admin_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SubmissionRecord":
        try:
            reviewed_at = row.get("reviewed_at")
            return cls(
                submission_id=str(row["id"]),
                title=str(row["title"]),
                what=str(row["what"]),
                verify=str(row["verify"]),
                status=SubmissionStatus(row.get("status") or SubmissionStatus.PENDING.value),
                created_at=_parse_timestamp(row.get("created_at")),
                when_where=row.get("when_where"),
                contact=row.get("contact"),
                user_id=row.get("user_id"),
                fingerprint=row.get("fingerprint"),
                admin_notes=row.get("admin_notes"),
                reviewed_by=row.get("reviewed_by"),
                reviewed_at=_parse_timestamp(reviewed_at) if reviewed_at else None,
            )
        except (KeyError, ValueError) as exc:
            raise PersistenceError(f"Malformed submission row: {exc}") from exc


__all__ = [
    "ActionOutcome",
    "Draft",
    "DraftVariant",
    "Identity",
    "ModerationVerdict",
    "Poll",
    "PostStatus",
    "PostType",
    "PublishedRecord",
    "ReactionCounts",
    "ReactionKind",
    "SubmissionRecord",
    "SubmissionStatus",
    "Tip",
]
