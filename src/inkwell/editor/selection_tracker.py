"""Debounced selection tracking that drives the floating assistant affordance."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

from ..ai.errors import AnchorInvalidError
from ..events import AffordanceHidden, AffordanceShown, EventBus
from .anchor import SelectionAnchor
from .document_model import EditorHost
from .geometry import AffordanceLayout, AffordancePlacement, Rect, Size, place_affordance

LOGGER = logging.getLogger(__name__)


class ViewportHost(Protocol):
    """Screen-geometry queries answered by the host view."""

    def selection_rect(self) -> Rect | None:
        """Bounding box of the current selection, or ``None`` when it is off screen."""
        ...

    def viewport_size(self) -> Size:
        ...


@dataclass(frozen=True, slots=True)
class TrackerConfig:
    debounce_seconds: float = 0.15
    layout: AffordanceLayout = field(default_factory=AffordanceLayout)


class SelectionTrackingController:
    """Watch selection, scroll, resize and focus signals for the active document.

    Selection changes are debounced so the affordance is recomputed once the
    user stops dragging. Scroll and resize reposition a visible affordance
    immediately and bump the view revision, which retires any anchor taken
    before the viewport moved. Losing focus or switching to a view that is
    not a document hides the affordance and forgets the captured selection.
    """

    def __init__(
        self,
        bus: EventBus,
        *,
        config: TrackerConfig | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._bus = bus
        self._config = config or TrackerConfig()
        self._loop = loop
        self._editor: EditorHost | None = None
        self._view: ViewportHost | None = None
        self._pending: asyncio.TimerHandle | None = None
        self._anchor: SelectionAnchor | None = None
        self._placement: AffordancePlacement | None = None
        self._view_revision = 0
        self._closed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def config(self) -> TrackerConfig:
        return self._config

    @property
    def editor(self) -> EditorHost | None:
        return self._editor

    @property
    def visible(self) -> bool:
        return self._placement is not None

    @property
    def placement(self) -> AffordancePlacement | None:
        return self._placement

    @property
    def anchor(self) -> SelectionAnchor | None:
        return self._anchor

    @property
    def view_revision(self) -> int:
        return self._view_revision

    @property
    def has_pending_update(self) -> bool:
        return self._pending is not None

    def update_config(self, config: TrackerConfig) -> None:
        self._config = config

    # ------------------------------------------------------------------
    # Host signals
    # ------------------------------------------------------------------
    def attach(self, editor: EditorHost | None, view: ViewportHost | None = None) -> None:
        """Track the newly active view; ``None`` means it is not a document."""

        if self._closed:
            return
        self._cancel_pending()
        previous = self._editor
        self._editor = editor
        self._view = view if editor is not None else None
        self._view_revision += 1
        if editor is None:
            self._hide("inactive-view", document_id=previous.document_id if previous else None)
        else:
            self._hide("document-changed", document_id=previous.document_id if previous else None)
            LOGGER.debug("Tracking selection in %s", editor.document_id)

    def detach(self) -> None:
        self.attach(None)

    def on_selection_changed(self) -> None:
        if self._closed or self._editor is None:
            return
        self._cancel_pending()
        loop = self._loop or asyncio.get_running_loop()
        self._pending = loop.call_later(max(0.0, self._config.debounce_seconds), self._flush_pending)

    def on_scroll(self) -> None:
        self._on_viewport_moved()

    def on_resize(self) -> None:
        self._on_viewport_moved()

    def on_focus_changed(self, focused: bool) -> None:
        if focused or self._closed:
            return
        self._cancel_pending()
        self._hide("focus-lost")

    def on_document_closed(self, document_id: str) -> None:
        if self._editor is not None and self._editor.document_id == document_id:
            self.attach(None)

    # ------------------------------------------------------------------
    # Anchors
    # ------------------------------------------------------------------
    def refresh(self) -> AffordancePlacement | None:
        """Recompute the affordance from the current selection right away."""

        self._cancel_pending()
        editor = self._editor
        if self._closed or editor is None or editor.is_closed:
            self._hide("inactive-view")
            return None
        if not editor.get_selection().strip():
            self._hide("selection-cleared")
            return None
        return self._show(editor)

    def consume_anchor(self) -> SelectionAnchor:
        """Hand the current anchor to an action, revalidating it first.

        The affordance is hidden either way. Raises :class:`AnchorInvalidError`
        when there is no anchor or the selection it describes has moved on.
        """

        anchor = self._anchor
        editor = self._editor
        self._hide("consumed")
        if anchor is None or editor is None:
            raise AnchorInvalidError(message="There is no active selection", reason="no-anchor")
        if anchor.view_revision != self._view_revision:
            raise AnchorInvalidError(message="The view changed after the selection", reason="stale-view")
        if editor.revision != anchor.revision or editor.get_selection() != anchor.text:
            raise AnchorInvalidError(message="The selection changed", reason="selection-changed")
        anchor.check(editor)
        return anchor

    def close(self) -> None:
        if self._closed:
            return
        self._cancel_pending()
        self._hide("closed")
        self._editor = None
        self._view = None
        self._closed = True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _flush_pending(self) -> None:
        self._pending = None
        self.refresh()

    def _on_viewport_moved(self) -> None:
        if self._closed or self._editor is None:
            return
        self._view_revision += 1
        if self._placement is None:
            return
        if self._editor.is_closed or not self._editor.get_selection().strip():
            self._hide("selection-cleared")
            return
        self._show(self._editor)

    def _show(self, editor: EditorHost) -> AffordancePlacement | None:
        rect = self._view.selection_rect() if self._view is not None else None
        if rect is None:
            self._hide("offscreen")
            return None
        placement = place_affordance(rect, self._view.viewport_size(), self._config.layout)  # type: ignore[union-attr]
        self._anchor = SelectionAnchor.capture(
            editor,
            view_revision=self._view_revision,
            screen_position=placement.position,
        )
        self._placement = placement
        self._bus.publish(
            AffordanceShown(
                document_id=editor.document_id,
                x=placement.position.x,
                y=placement.position.y,
                selection_length=len(self._anchor.text),
            )
        )
        return placement

    def _hide(self, reason: str, *, document_id: str | None = None) -> None:
        self._anchor = None
        if self._placement is None:
            return
        self._placement = None
        if document_id is None and self._editor is not None:
            document_id = self._editor.document_id
        self._bus.publish(AffordanceHidden(document_id=document_id, reason=reason))

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None


__all__ = ["SelectionTrackingController", "TrackerConfig", "ViewportHost"]
