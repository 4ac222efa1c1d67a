"""Optimistic counter updates with an exact inverse.

A local ``Tally`` is bumped before the authoritative call. If the call fails,
``invert_delta`` undoes precisely the delta that was applied, computed from the
delta rather than from whatever the tally looks like now.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Union


@dataclass(slots=True, frozen=True)
class Tally:
    counts: Mapping[str, int] = field(default_factory=dict)
    acted: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "counts", MappingProxyType(dict(self.counts)))

    def count(self, key: str) -> int:
        return self.counts.get(key, 0)


@dataclass(slots=True, frozen=True)
class Delta:
    key: str
    amount: int = 1


@dataclass(slots=True, frozen=True)
class Applied:
    tally: Tally
    delta: Delta


@dataclass(slots=True, frozen=True)
class Confirmed:
    tally: Tally


@dataclass(slots=True, frozen=True)
class RolledBack:
    tally: Tally
    reason: Optional[str] = None


Transition = Union[Applied, Confirmed, RolledBack]


def apply_delta(tally: Tally, delta: Delta) -> Applied:
    counts = dict(tally.counts)
    counts[delta.key] = counts.get(delta.key, 0) + delta.amount
    return Applied(tally=Tally(counts=counts, acted=tally.acted | {delta.key}), delta=delta)


def invert_delta(tally: Tally, delta: Delta) -> Tally:
    counts = dict(tally.counts)
    counts[delta.key] = max(counts.get(delta.key, 0) - delta.amount, 0)
    return Tally(counts=counts, acted=tally.acted - {delta.key})


def confirm(current: Tally) -> Confirmed:
    return Confirmed(tally=current)


def roll_back(current: Tally, applied: Applied, reason: Optional[str] = None) -> RolledBack:
    """Undo ``applied`` on ``current``, keeping any deltas applied since."""
    return RolledBack(tally=invert_delta(current, applied.delta), reason=reason)
