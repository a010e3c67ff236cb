"""Shared types for review sessions: phases, reveal pacing and host collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Protocol

NoticeLevel = Literal["info", "warning", "error"]


class ReviewPhase(str, Enum):
    STREAMING = "streaming"
    REVEALING = "revealing"
    AWAITING_DECISION = "awaiting_decision"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CLOSED = "closed"

    @property
    def is_open(self) -> bool:
        return self in (ReviewPhase.STREAMING, ReviewPhase.REVEALING, ReviewPhase.AWAITING_DECISION)


@dataclass(frozen=True, slots=True)
class RevealSettings:
    """Typewriter pacing. Non-positive values disable the reveal phase."""

    chars_per_tick: int = 20
    tick_seconds: float = 0.03

    @property
    def enabled(self) -> bool:
        return self.chars_per_tick > 0 and self.tick_seconds > 0


@dataclass(frozen=True, slots=True)
class DiffStats:
    """Changed line counts between the original text and the suggestion."""

    added: int
    removed: int


@dataclass(frozen=True, slots=True)
class ReviewFrame:
    """One redraw of the diff surface."""

    session_id: str
    phase: ReviewPhase
    original: str
    displayed: str
    diff: str
    complete: bool
    stats: DiffStats | None = None


class DiffSurface(Protocol):
    """Visual surface owned by a single review session."""

    def render(self, frame: ReviewFrame) -> None:
        ...

    def close(self) -> None:
        ...


class Notifier(Protocol):
    def notify(self, message: str, *, level: NoticeLevel = "info") -> None:
        ...


__all__ = ["DiffStats", "DiffSurface", "NoticeLevel", "Notifier", "ReviewFrame", "ReviewPhase", "RevealSettings"]
