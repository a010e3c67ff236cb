"""Review session state machine for a single inline suggestion."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Callable

from ..ai.errors import AnchorInvalidError, AssistantError
from ..events import (
    EventBus,
    ReviewAccepted,
    ReviewClosed,
    ReviewFailed,
    ReviewPhaseChanged,
    ReviewRejected,
    ReviewStarted,
    ReviewStreamChunk,
)
from .diff import diff_stats, render_diff
from .models import DiffStats, DiffSurface, NoticeLevel, Notifier, ReviewFrame, ReviewPhase, RevealSettings
from .reveal import RevealAnimator

if TYPE_CHECKING:  # pragma: no cover
    from ..ai.client import CompletionClient, CompletionRequest
    from ..editor.anchor import SelectionAnchor
    from ..editor.document_model import EditorHost

LOGGER = logging.getLogger(__name__)

CloseCallback = Callable[["ReviewSession"], None]


class ReviewSession:
    """Stream, reveal and then accept or reject one suggestion for an anchored selection.

    Phases run ``STREAMING -> REVEALING -> AWAITING_DECISION`` and end in
    ``ACCEPTED`` or ``REJECTED`` before ``CLOSED``. Failures and host
    teardown go straight to ``CLOSED``. Closing always releases the diff
    surface and cancels the reveal task, exactly once. Commands issued after
    the session closed are ignored.
    """

    def __init__(
        self,
        *,
        editor: "EditorHost",
        anchor: "SelectionAnchor",
        instruction: str = "",
        bus: EventBus | None = None,
        surface: DiffSurface | None = None,
        notifier: Notifier | None = None,
        reveal: RevealSettings | None = None,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self._editor = editor
        self._anchor = anchor
        self._instruction = instruction
        self._bus = bus
        self._surface = surface
        self._notifier = notifier
        self._reveal_settings = reveal or RevealSettings()
        self._phase = ReviewPhase.STREAMING
        self._outcome: ReviewPhase | None = None
        self._chunks: list[str] = []
        self._result: str | None = None
        self._diff = ""
        self._diff_stats: DiffStats | None = None
        self._displayed = ""
        self._animator: RevealAnimator | None = None
        self._started = False
        self._error: AssistantError | None = None
        self._close_reason: str | None = None
        self._on_closed: list[CloseCallback] = []
        self._publish(ReviewStarted(self.session_id, anchor.document_id, instruction))

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def phase(self) -> ReviewPhase:
        return self._phase

    @property
    def outcome(self) -> ReviewPhase | None:
        """``ACCEPTED`` or ``REJECTED`` once decided, otherwise ``None``."""
        return self._outcome

    @property
    def is_closed(self) -> bool:
        return self._phase is ReviewPhase.CLOSED

    @property
    def anchor(self) -> "SelectionAnchor":
        return self._anchor

    @property
    def document_id(self) -> str:
        return self._anchor.document_id

    @property
    def instruction(self) -> str:
        return self._instruction

    @property
    def original_text(self) -> str:
        return self._anchor.text

    @property
    def accumulated_result(self) -> str:
        if self._result is not None:
            return self._result
        return "".join(self._chunks)

    @property
    def displayed_text(self) -> str:
        return self._displayed

    @property
    def error(self) -> AssistantError | None:
        return self._error

    @property
    def close_reason(self) -> str | None:
        return self._close_reason

    def attach_surface(self, surface: DiffSurface | None) -> None:
        if self.is_closed:
            if surface is not None:
                surface.close()
            return
        self._surface = surface

    def add_close_callback(self, callback: CloseCallback) -> None:
        if self.is_closed:
            callback(self)
            return
        self._on_closed.append(callback)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------
    async def run(self, client: "CompletionClient", request: "CompletionRequest") -> ReviewPhase:
        """Stream ``request`` into this session and wait for the reveal to finish.

        Completion errors close the session and are reported to the notifier
        rather than raised. Cancelling the caller, while streaming or while
        revealing, closes the session as ``aborted``. Returns the phase reached.
        """

        if self._started:
            raise RuntimeError("Review session already issued its request")
        self._started = True
        if self.is_closed:
            return self._phase
        try:
            result = await client.send(request, on_delta=self.append_delta)
        except AssistantError as exc:
            self.fail(exc)
            return self._phase
        except BaseException:
            self.close("aborted")
            raise
        if self.is_closed:
            LOGGER.debug("Session %s closed while streaming; dropping result", self.session_id)
            return self._phase
        try:
            self.finish_stream(result)
            await self.wait_for_reveal()
        except BaseException:
            self.close("aborted")
            raise
        return self._phase

    def append_delta(self, text: str) -> bool:
        """Add one streamed fragment; fragments for a session past streaming are dropped."""

        if self._phase is not ReviewPhase.STREAMING:
            LOGGER.debug("Discarding delta for session %s in phase %s", self.session_id, self._phase.value)
            return False
        if not text:
            return False
        self._chunks.append(text)
        self._publish(ReviewStreamChunk(self.session_id, text))
        self._render(self.accumulated_result, complete=False)
        return True

    def finish_stream(self, result: str | None = None) -> None:
        if self._phase is not ReviewPhase.STREAMING:
            return
        self._result = self.accumulated_result if result is None else result
        self._diff = render_diff(self.original_text, self._result)
        self._diff_stats = diff_stats(self.original_text, self._result)
        self._chunks = []
        self._displayed = ""
        settings = self._reveal_settings
        if not settings.enabled or not self._result:
            self._displayed = self._result
            self._set_phase(ReviewPhase.AWAITING_DECISION)
            self._render(self._displayed, complete=True)
            return
        self._set_phase(ReviewPhase.REVEALING)
        self._animator = RevealAnimator(self._result, settings, self._on_reveal_frame)
        self._animator.start()

    async def wait_for_reveal(self) -> None:
        if self._animator is not None:
            await self._animator.wait()

    def skip_reveal(self) -> None:
        """Show the full suggestion at once and move to ``AWAITING_DECISION``."""

        if self._phase is not ReviewPhase.REVEALING:
            return
        if self._animator is not None:
            self._animator.cancel()
        self._on_reveal_frame(self._result or "", True)

    def fail(self, error: AssistantError) -> None:
        if self.is_closed:
            return
        LOGGER.warning("Review session %s failed: %s", self.session_id, error)
        self._error = error
        self._notify(error.user_message(), level="error")
        self._publish(ReviewFailed(self.session_id, error.error_code, error.message))
        self.close("failed")

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------
    def accept(self) -> bool:
        """Replace the anchored range with the suggestion.

        Returns ``False`` when there is nothing to accept yet or the session
        already closed. Raises :class:`AnchorInvalidError` after closing the
        session when the document changed underneath the anchor; the
        document is left as it is.
        """

        if not self._phase.is_open:
            LOGGER.debug("Ignoring accept for closed session %s", self.session_id)
            return False
        if self._phase is ReviewPhase.STREAMING:
            LOGGER.warning("Ignoring accept for session %s while still streaming", self.session_id)
            return False
        if self._phase is ReviewPhase.REVEALING:
            self.skip_reveal()

        try:
            self._anchor.check(self._editor)
        except AnchorInvalidError as exc:
            self._error = exc
            self._notify(exc.user_message(), level="error")
            self._publish(ReviewFailed(self.session_id, exc.error_code, exc.message))
            self.close("anchor-invalid")
            raise

        replacement = self._result or ""
        try:
            self._editor.replace_range(self._anchor.start, self._anchor.end, replacement)
        except BaseException:
            self.close("apply-failed")
            raise
        self._outcome = ReviewPhase.ACCEPTED
        self._set_phase(ReviewPhase.ACCEPTED)
        self._publish(ReviewAccepted(self.session_id, self.document_id, len(replacement)))
        self.close("accepted")
        return True

    def reject(self) -> bool:
        """Discard the suggestion; the document is never touched."""

        if not self._phase.is_open:
            return False
        self._cancel_reveal()
        self._result = None
        self._chunks = []
        self._outcome = ReviewPhase.REJECTED
        self._set_phase(ReviewPhase.REJECTED)
        self._publish(ReviewRejected(self.session_id, self.document_id))
        self.close("rejected")
        return True

    def close(self, reason: str = "closed") -> None:
        """Tear the session down; safe to call any number of times."""

        if self.is_closed:
            return
        self._cancel_reveal()
        self._close_reason = reason
        if self._surface is not None:
            surface, self._surface = self._surface, None
            try:
                surface.close()
            except Exception:
                LOGGER.exception("Diff surface for session %s failed to close", self.session_id)
        self._set_phase(ReviewPhase.CLOSED)
        self._publish(ReviewClosed(self.session_id, reason))
        callbacks, self._on_closed = self._on_closed, []
        for callback in callbacks:
            callback(self)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _on_reveal_frame(self, prefix: str, complete: bool) -> None:
        if self._phase is not ReviewPhase.REVEALING:
            return
        self._displayed = prefix
        if complete:
            self._animator = None
            self._set_phase(ReviewPhase.AWAITING_DECISION)
        self._render(prefix, complete=complete)

    def _render(self, displayed: str, *, complete: bool) -> None:
        if self._surface is None:
            return
        frame = ReviewFrame(
            session_id=self.session_id,
            phase=self._phase,
            original=self.original_text,
            displayed=displayed,
            diff=self._diff if self._result is not None else "",
            complete=complete,
            stats=self._diff_stats if self._result is not None else None,
        )
        self._surface.render(frame)

    def _cancel_reveal(self) -> None:
        if self._animator is not None:
            self._animator.cancel()
            self._animator = None

    def _set_phase(self, phase: ReviewPhase) -> None:
        previous = self._phase
        if previous is phase:
            return
        self._phase = phase
        LOGGER.debug("Review session %s: %s -> %s", self.session_id, previous.value, phase.value)
        self._publish(ReviewPhaseChanged(self.session_id, phase.value, previous.value))

    def _notify(self, message: str, *, level: NoticeLevel) -> None:
        if self._notifier is not None:
            self._notifier.notify(message, level=level)

    def _publish(self, event: object) -> None:
        if self._bus is not None:
            self._bus.publish(event)  # type: ignore[arg-type]


__all__ = ["ReviewSession"]
