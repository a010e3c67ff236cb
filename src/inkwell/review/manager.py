"""Registry of open review sessions.

Several sessions may be open at once, each against its own selection. The
manager creates them with their host collaborators, forgets them when they
close, and tears them down when a document view goes away or the plugin
unloads.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from ..events import EventBus
from .models import DiffSurface, Notifier, ReviewPhase, RevealSettings
from .session import ReviewSession

if TYPE_CHECKING:  # pragma: no cover
    from ..ai.client import CompletionClient, CompletionRequest
    from ..editor.anchor import SelectionAnchor
    from ..editor.document_model import EditorHost

LOGGER = logging.getLogger(__name__)

SurfaceFactory = Callable[[ReviewSession], "DiffSurface | None"]


class ReviewManager:
    """Create, track and tear down :class:`ReviewSession` objects."""

    def __init__(
        self,
        bus: EventBus,
        *,
        notifier: Notifier | None = None,
        surface_factory: SurfaceFactory | None = None,
        reveal: RevealSettings | None = None,
    ) -> None:
        self._bus = bus
        self._notifier = notifier
        self._surface_factory = surface_factory
        self._reveal = reveal or RevealSettings()
        self._sessions: dict[str, ReviewSession] = {}

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def reveal_settings(self) -> RevealSettings:
        return self._reveal

    def update_reveal(self, reveal: RevealSettings) -> None:
        """Apply new pacing to sessions opened from now on."""
        self._reveal = reveal

    def sessions(self) -> tuple[ReviewSession, ...]:
        return tuple(self._sessions.values())

    def get(self, session_id: str) -> ReviewSession | None:
        return self._sessions.get(session_id)

    def sessions_for_document(self, document_id: str) -> tuple[ReviewSession, ...]:
        return tuple(s for s in self._sessions.values() if s.document_id == document_id)

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open_session(
        self,
        *,
        editor: "EditorHost",
        anchor: "SelectionAnchor",
        instruction: str = "",
    ) -> ReviewSession:
        session = ReviewSession(
            editor=editor,
            anchor=anchor,
            instruction=instruction,
            bus=self._bus,
            notifier=self._notifier,
            reveal=self._reveal,
        )
        if self._surface_factory is not None:
            session.attach_surface(self._surface_factory(session))
        self._sessions[session.session_id] = session
        session.add_close_callback(self._forget)
        LOGGER.debug(
            "Opened review session %s for %s (%d open)",
            session.session_id,
            anchor.document_id,
            len(self._sessions),
        )
        return session

    async def run(
        self,
        session: ReviewSession,
        client: "CompletionClient",
        request: "CompletionRequest",
    ) -> ReviewPhase:
        return await session.run(client, request)

    def close_for_document(self, document_id: str, *, reason: str = "document-closed") -> int:
        sessions = self.sessions_for_document(document_id)
        for session in sessions:
            session.close(reason)
        if sessions:
            LOGGER.debug("Closed %d review session(s) for %s", len(sessions), document_id)
        return len(sessions)

    def close_all(self, *, reason: str = "unload") -> int:
        sessions = self.sessions()
        for session in sessions:
            session.close(reason)
        return len(sessions)

    def _forget(self, session: ReviewSession) -> None:
        self._sessions.pop(session.session_id, None)


__all__ = ["ReviewManager", "SurfaceFactory"]
