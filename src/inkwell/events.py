"""Typed publish/subscribe bus connecting the assistant core to host UI code.

The core never talks to widgets directly. Review sessions, the selection
tracker and the chat session publish the events below, and host adapters
subscribe to whichever ones they render.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar
from weakref import WeakMethod

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for everything published on the :class:`EventBus`."""


# Streaming events fire once per delta; publishing them is not logged.
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Selection affordance
# =============================================================================


@dataclass(slots=True)
class AffordanceShown(Event):
    """The floating button should be drawn at ``(x, y)`` in viewport coordinates."""

    document_id: str
    x: float
    y: float
    selection_length: int


@dataclass(slots=True)
class AffordanceHidden(Event):
    document_id: str | None
    reason: str


# =============================================================================
# Review sessions
# =============================================================================


@dataclass(slots=True)
class ReviewStarted(Event):
    session_id: str
    document_id: str
    instruction: str


@dataclass(slots=True)
class ReviewPhaseChanged(Event):
    session_id: str
    phase: str
    previous: str


@dataclass(slots=True)
class ReviewStreamChunk(Event):
    session_id: str
    text: str


@dataclass(slots=True)
class ReviewAccepted(Event):
    """The candidate text replaced the anchored range."""

    session_id: str
    document_id: str
    text_length: int


@dataclass(slots=True)
class ReviewRejected(Event):
    session_id: str
    document_id: str


@dataclass(slots=True)
class ReviewFailed(Event):
    session_id: str
    error_code: str
    message: str


@dataclass(slots=True)
class ReviewClosed(Event):
    session_id: str
    reason: str


# =============================================================================
# Chat
# =============================================================================


@dataclass(slots=True)
class ChatReplyChunk(Event):
    text: str


@dataclass(slots=True)
class ChatReplyCompleted(Event):
    content: str
    summarizing: bool = False


@dataclass(slots=True)
class ChatSummaryUpdated(Event):
    summarized_turns: int
    summary_count: int


@dataclass(slots=True)
class ChatReplyFailed(Event):
    error_code: str
    message: str


# =============================================================================
# Settings
# =============================================================================


@dataclass(slots=True)
class SettingsChanged(Event):
    changed_fields: tuple[str, ...]


_QUIET_EVENT_TYPES.update({ReviewStreamChunk, ChatReplyChunk})


class EventBus(Generic[E]):
    """Synchronous publish/subscribe dispatcher keyed on the exact event type.

    Bound methods are held through :class:`weakref.WeakMethod` so a
    subscriber that goes away is dropped on the next publish. Plain functions
    and lambdas are held strongly. A handler that raises is logged and the
    remaining handlers still run.

    Not thread-safe; use it from the event loop thread.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: defaultdict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        LOGGER.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                del handlers[index]
                LOGGER.debug("Unsubscribed %s from %s", _handler_name(handler), event_type.__name__)
                return

    def publish(self, event: E) -> None:
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        if event_type not in _QUIET_EVENT_TYPES:
            LOGGER.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))

        stale: list[_HandlerRef] = []
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                stale.append(handler_ref)
                continue
            try:
                handler(event)
            except Exception:
                LOGGER.exception("Handler %s failed for %s", _handler_name(handler), event_type.__name__)
        for handler_ref in stale:
            if handler_ref in handlers:
                handlers.remove(handler_ref)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, ()))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_target", "_weak")

    def __init__(self, target: WeakMethod | Handler, weak: bool) -> None:
        self._target = target
        self._weak = weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), weak=True)
            except TypeError:
                pass
        return cls(handler, weak=False)

    def resolve(self) -> Handler | None:
        if self._weak:
            return self._target()  # type: ignore[operator]
        return self._target  # type: ignore[return-value]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        if resolved is None:
            return False
        return resolved == handler


def _handler_name(handler: Callable[..., object]) -> str:
    owner = getattr(handler, "__self__", None)
    name = getattr(handler, "__qualname__", None) or getattr(handler, "__name__", repr(handler))
    if owner is not None and "." not in name:
        return f"{type(owner).__name__}.{name}"
    return name


__all__ = [
    "AffordanceHidden",
    "AffordanceShown",
    "ChatReplyChunk",
    "ChatReplyCompleted",
    "ChatReplyFailed",
    "ChatSummaryUpdated",
    "Event",
    "EventBus",
    "ReviewAccepted",
    "ReviewClosed",
    "ReviewFailed",
    "ReviewPhaseChanged",
    "ReviewRejected",
    "ReviewStarted",
    "ReviewStreamChunk",
    "SettingsChanged",
]
