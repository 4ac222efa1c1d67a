from __future__ import annotations

from typing import Iterable, Optional, Protocol

import structlog

from ..errors import PersistenceError, ReactionConflictError, ValidationError
from ..models import ActionOutcome, Identity, Poll, ReactionCounts, ReactionKind
from .optimistic import Applied, Confirmed, Delta, Tally, apply_delta, confirm, roll_back

logger = structlog.get_logger(__name__)

ALREADY_REACTED = "You've already reacted to this post."
ALREADY_VOTED = "You've already voted on this poll."


class ReactionSafeguard(Protocol):
    async def increment_reaction(self, post_id: str, kind: ReactionKind, identity: Identity) -> ActionOutcome:
        ...

    async def vote_on_poll(self, poll_id: str, option_index: int, identity: Identity) -> ActionOutcome:
        ...


class ReactionTracker:
    """Local mirror of one post's reaction counters for the current identity."""

    def __init__(
        self,
        post_id: str,
        counts: ReactionCounts,
        safeguard: ReactionSafeguard,
        identity: Identity,
        *,
        reacted: Iterable[ReactionKind] = (),
    ) -> None:
        self.post_id = post_id
        self._safeguard = safeguard
        self._identity = identity
        self.tally = Tally(counts=counts.as_dict(), acted=frozenset(kind.value for kind in reacted))

    @property
    def counts(self) -> ReactionCounts:
        return ReactionCounts.from_json(dict(self.tally.counts))

    @property
    def reacted(self) -> set[ReactionKind]:
        return {ReactionKind(key) for key in self.tally.acted}

    async def react(self, kind: ReactionKind) -> Confirmed:
        if kind.value in self.tally.acted:
            raise ReactionConflictError(ALREADY_REACTED)

        applied = apply_delta(self.tally, Delta(kind.value))
        self.tally = applied.tally
        try:
            outcome = await self._safeguard.increment_reaction(self.post_id, kind, self._identity)
        except Exception as exc:
            self._roll_back(applied, str(exc))
            logger.error("reaction_failed", post_id=self.post_id, kind=kind.value, error=str(exc))
            raise PersistenceError(f"Failed to record reaction: {exc}") from exc

        if not outcome.success:
            self._roll_back(applied, outcome.message)
            logger.info("reaction_conflict", post_id=self.post_id, kind=kind.value, message=outcome.message)
            raise ReactionConflictError(ALREADY_REACTED)

        logger.debug("reaction_confirmed", post_id=self.post_id, kind=kind.value)
        return confirm(self.tally)

    def _roll_back(self, applied: Applied, reason: Optional[str]) -> None:
        self.tally = roll_back(self.tally, applied, reason).tally


class PollVoteTracker:
    """Local mirror of a poll's results; one vote per identity."""

    def __init__(
        self,
        poll: Poll,
        safeguard: ReactionSafeguard,
        identity: Identity,
        *,
        has_voted: bool = False,
    ) -> None:
        self.poll_id = poll.poll_id
        self.options = list(poll.options)
        self._safeguard = safeguard
        self._identity = identity
        self._has_voted = has_voted
        self.tally = Tally(counts={str(index): count for index, count in poll.results.items()})

    @property
    def has_voted(self) -> bool:
        return self._has_voted or bool(self.tally.acted)

    @property
    def results(self) -> dict[int, int]:
        return {int(key): value for key, value in self.tally.counts.items()}

    def percentage(self, option_index: int) -> float:
        total = sum(self.tally.counts.values())
        if total == 0:
            return 0.0
        return self.tally.count(str(option_index)) / total * 100

    async def vote(self, option_index: int) -> Confirmed:
        if not 0 <= option_index < len(self.options):
            raise ValidationError({"option_index": f"Option {option_index} does not exist"})
        if self.has_voted:
            raise ReactionConflictError(ALREADY_VOTED)

        applied = apply_delta(self.tally, Delta(str(option_index)))
        self.tally = applied.tally
        try:
            outcome = await self._safeguard.vote_on_poll(self.poll_id, option_index, self._identity)
        except Exception as exc:
            self.tally = roll_back(self.tally, applied, str(exc)).tally
            logger.error("poll_vote_failed", poll_id=self.poll_id, error=str(exc))
            raise PersistenceError(f"Failed to record vote: {exc}") from exc

        if not outcome.success:
            self.tally = roll_back(self.tally, applied, outcome.message).tally
            logger.info("poll_vote_conflict", poll_id=self.poll_id, message=outcome.message)
            raise ReactionConflictError(ALREADY_VOTED)

        logger.debug("poll_vote_confirmed", poll_id=self.poll_id, option_index=option_index)
        return confirm(self.tally)
