from __future__ import annotations

from typing import Optional


class TruthArrowError(Exception):
    pass


class ValidationError(TruthArrowError):
    """Input failed client-side shape checks; nothing was sent over the network."""

    def __init__(self, field_errors: dict[str, str]) -> None:
        self.field_errors = dict(field_errors)
        summary = "; ".join(f"{name}: {message}" for name, message in self.field_errors.items())
        super().__init__(summary or "Invalid input")


class EmptyContentError(TruthArrowError):
    def __init__(self) -> None:
        super().__init__("Empty content")


class UpstreamJudgeError(TruthArrowError):
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class PersistenceError(TruthArrowError):
    pass


class ReactionConflictError(TruthArrowError):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class StatusTransitionError(TruthArrowError):
    pass


__all__ = [
    "EmptyContentError",
    "PersistenceError",
    "ReactionConflictError",
    "StatusTransitionError",
    "TruthArrowError",
    "UpstreamJudgeError",
    "ValidationError",
]
