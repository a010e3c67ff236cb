"""Inline review: stream a suggestion, reveal it, then accept or reject it."""

from .diff import diff_stats, render_diff
from .manager import ReviewManager
from .models import DiffStats, DiffSurface, Notifier, ReviewFrame, ReviewPhase, RevealSettings
from .reveal import RevealAnimator, revealed_prefix
from .session import ReviewSession

__all__ = [
    "DiffStats",
    "DiffSurface",
    "Notifier",
    "RevealAnimator",
    "RevealSettings",
    "ReviewFrame",
    "ReviewManager",
    "ReviewPhase",
    "ReviewSession",
    "diff_stats",
    "render_diff",
    "revealed_prefix",
]
