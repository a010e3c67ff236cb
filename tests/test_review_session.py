"""Tests for the review session state machine."""

from __future__ import annotations

import asyncio
from typing import cast

import pytest

from inkwell.ai.client import CompletionClient
from inkwell.ai.errors import AnchorInvalidError, ProtocolError
from inkwell.chat.message_model import ChatMessage
from inkwell.editor.anchor import SelectionAnchor
from inkwell.editor.document_model import TextBuffer, TextPosition
from inkwell.events import (
    EventBus,
    ReviewAccepted,
    ReviewClosed,
    ReviewFailed,
    ReviewRejected,
    ReviewStreamChunk,
)
from inkwell.review.models import DiffStats, ReviewPhase, RevealSettings
from inkwell.review.session import ReviewSession

from tests.helpers import EventRecorder, RecordingNotifier, RecordingSurface, ScriptedClient

FAST_REVEAL = RevealSettings(chars_per_tick=4, tick_seconds=0.001)
SLOW_REVEAL = RevealSettings(chars_per_tick=1, tick_seconds=0.05)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus, ReviewAccepted, ReviewRejected, ReviewFailed, ReviewClosed, ReviewStreamChunk)


def _session(
    buffer: TextBuffer,
    bus: EventBus,
    notifier: RecordingNotifier,
    surface: RecordingSurface,
    reveal: RevealSettings = FAST_REVEAL,
) -> ReviewSession:
    session = ReviewSession(
        editor=buffer,
        anchor=SelectionAnchor.capture(buffer),
        instruction="Make it punchier:",
        bus=bus,
        notifier=notifier,
        reveal=reveal,
    )
    session.attach_surface(surface)
    return session


async def _run(session: ReviewSession, client: ScriptedClient) -> ReviewPhase:
    request = client.build_request([ChatMessage.user("Make it punchier:\n\nquick brown")])
    return await session.run(cast(CompletionClient, client), request)


# =============================================================================
# Happy path
# =============================================================================


class TestStreamAndAccept:
    @pytest.mark.asyncio
    async def test_stream_reveal_then_accept(
        self,
        buffer: TextBuffer,
        bus: EventBus,
        notifier: RecordingNotifier,
        surface: RecordingSurface,
        recorder: EventRecorder,
    ) -> None:
        session = _session(buffer, bus, notifier, surface)
        client = ScriptedClient(["swift ", "auburn"])

        phase = await _run(session, client)

        assert phase is ReviewPhase.AWAITING_DECISION
        assert session.accumulated_result == "swift auburn"
        assert session.displayed_text == "swift auburn"
        assert [event.text for event in recorder.of_type(ReviewStreamChunk)] == ["swift ", "auburn"]

        revealing = [frame for frame in surface.frames if frame.phase is ReviewPhase.REVEALING]
        assert [frame.displayed for frame in revealing] == ["swif", "swift au"]
        final = surface.frames[-1]
        assert final.phase is ReviewPhase.AWAITING_DECISION
        assert final.displayed == "swift auburn"
        assert final.complete
        assert "+swift auburn" in final.diff
        assert final.stats == DiffStats(added=1, removed=1)
        assert all(frame.stats is None for frame in surface.frames if frame.phase is ReviewPhase.STREAMING)

        assert session.accept() is True

        assert buffer.text == "The swift auburn fox\njumps over the lazy dog.\n"
        assert session.phase is ReviewPhase.CLOSED
        assert session.outcome is ReviewPhase.ACCEPTED
        assert surface.close_calls == 1
        assert recorder.of_type(ReviewAccepted)[0].text_length == len("swift auburn")
        assert notifier.notices == []

    @pytest.mark.asyncio
    async def test_reveal_disabled_goes_straight_to_decision(
        self, buffer: TextBuffer, bus: EventBus, notifier: RecordingNotifier, surface: RecordingSurface
    ) -> None:
        session = _session(buffer, bus, notifier, surface, reveal=RevealSettings(chars_per_tick=0))

        assert await _run(session, ScriptedClient("fast")) is ReviewPhase.AWAITING_DECISION
        assert session.displayed_text == "fast"

    @pytest.mark.asyncio
    async def test_accept_while_revealing_completes_reveal(
        self, buffer: TextBuffer, bus: EventBus, notifier: RecordingNotifier, surface: RecordingSurface
    ) -> None:
        session = _session(buffer, bus, notifier, surface, reveal=SLOW_REVEAL)
        task = asyncio.create_task(_run(session, ScriptedClient("a much longer reply")))
        while session.phase is not ReviewPhase.REVEALING:
            await asyncio.sleep(0)

        assert session.accept() is True

        assert buffer.get_line_text(0) == "The a much longer reply fox"
        assert await task is ReviewPhase.CLOSED

    @pytest.mark.asyncio
    async def test_skip_reveal(
        self, buffer: TextBuffer, bus: EventBus, notifier: RecordingNotifier, surface: RecordingSurface
    ) -> None:
        session = _session(buffer, bus, notifier, surface, reveal=SLOW_REVEAL)
        task = asyncio.create_task(_run(session, ScriptedClient("skipped ahead")))
        while session.phase is not ReviewPhase.REVEALING:
            await asyncio.sleep(0)

        session.skip_reveal()

        assert session.phase is ReviewPhase.AWAITING_DECISION
        assert session.displayed_text == "skipped ahead"
        assert await task is ReviewPhase.AWAITING_DECISION


# =============================================================================
# Rejection and teardown
# =============================================================================


class TestRejectAndClose:
    @pytest.mark.asyncio
    async def test_reject_twice_is_idempotent(
        self,
        buffer: TextBuffer,
        bus: EventBus,
        notifier: RecordingNotifier,
        surface: RecordingSurface,
        recorder: EventRecorder,
    ) -> None:
        original = buffer.text
        session = _session(buffer, bus, notifier, surface)
        await _run(session, ScriptedClient("replacement"))

        assert session.reject() is True
        assert session.reject() is False

        assert buffer.text == original
        assert buffer.revision == 0
        assert session.outcome is ReviewPhase.REJECTED
        assert session.accumulated_result == ""
        assert surface.close_calls == 1
        assert len(recorder.of_type(ReviewRejected)) == 1
        assert len(recorder.of_type(ReviewClosed)) == 1
        assert notifier.notices == []

    @pytest.mark.asyncio
    async def test_accept_after_close_is_noop(
        self, buffer: TextBuffer, bus: EventBus, notifier: RecordingNotifier, surface: RecordingSurface
    ) -> None:
        session = _session(buffer, bus, notifier, surface)
        await _run(session, ScriptedClient("replacement"))
        session.reject()

        assert session.accept() is False
        assert buffer.revision == 0

    @pytest.mark.asyncio
    async def test_accept_while_streaming_is_ignored(
        self, buffer: TextBuffer, bus: EventBus, notifier: RecordingNotifier, surface: RecordingSurface
    ) -> None:
        session = _session(buffer, bus, notifier, surface)

        assert session.accept() is False
        assert session.phase is ReviewPhase.STREAMING

    @pytest.mark.asyncio
    async def test_close_mid_stream_discards_later_deltas(
        self, buffer: TextBuffer, bus: EventBus, notifier: RecordingNotifier, surface: RecordingSurface
    ) -> None:
        session = _session(buffer, bus, notifier, surface)
        client = ScriptedClient(["first", "second"])
        client.gate = asyncio.Event()
        task = asyncio.create_task(_run(session, client))
        while session.accumulated_result != "first":
            await asyncio.sleep(0)

        session.close("view-closed")
        client.gate.set()

        assert await task is ReviewPhase.CLOSED
        assert session.accumulated_result == "first"
        assert session.close_reason == "view-closed"
        assert session.append_delta("late") is False
        assert surface.close_calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_run_closes_session(
        self, buffer: TextBuffer, bus: EventBus, notifier: RecordingNotifier, surface: RecordingSurface
    ) -> None:
        session = _session(buffer, bus, notifier, surface)
        client = ScriptedClient(["first", "second"])
        client.gate = asyncio.Event()
        task = asyncio.create_task(_run(session, client))
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.is_closed
        assert session.close_reason == "aborted"

    @pytest.mark.asyncio
    async def test_cancel_during_reveal_closes_session(
        self, buffer: TextBuffer, bus: EventBus, notifier: RecordingNotifier, surface: RecordingSurface
    ) -> None:
        session = _session(buffer, bus, notifier, surface, reveal=SLOW_REVEAL)
        task = asyncio.create_task(_run(session, ScriptedClient("revealed slowly")))
        while session.phase is not ReviewPhase.REVEALING:
            await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(SLOW_REVEAL.tick_seconds * 3)

        assert session.is_closed
        assert session.close_reason == "aborted"
        assert session.outcome is None
        assert surface.close_calls == 1
        assert all(frame.phase is ReviewPhase.REVEALING for frame in surface.frames)

    @pytest.mark.asyncio
    async def test_surface_failure_still_closes(
        self, buffer: TextBuffer, bus: EventBus, notifier: RecordingNotifier
    ) -> None:
        class BrokenSurface(RecordingSurface):
            def close(self) -> None:
                raise RuntimeError("widget already gone")

        session = _session(buffer, bus, notifier, BrokenSurface())

        session.close()

        assert session.is_closed

    @pytest.mark.asyncio
    async def test_second_run_is_rejected(
        self, buffer: TextBuffer, bus: EventBus, notifier: RecordingNotifier, surface: RecordingSurface
    ) -> None:
        session = _session(buffer, bus, notifier, surface)
        client = ScriptedClient("once", "twice")
        await _run(session, client)

        with pytest.raises(RuntimeError):
            await _run(session, client)
        assert len(client.requests) == 1


# =============================================================================
# Failures
# =============================================================================


class TestFailures:
    @pytest.mark.asyncio
    async def test_anchor_invalidated_by_overlapping_edit(
        self,
        buffer: TextBuffer,
        bus: EventBus,
        notifier: RecordingNotifier,
        surface: RecordingSurface,
        recorder: EventRecorder,
    ) -> None:
        session = _session(buffer, bus, notifier, surface)
        await _run(session, ScriptedClient("swift auburn"))
        buffer.replace_range(TextPosition(0, 4), TextPosition(0, 9), "slow")
        edited = buffer.text

        with pytest.raises(AnchorInvalidError):
            session.accept()

        assert buffer.text == edited
        assert session.is_closed
        assert session.outcome is None
        assert surface.close_calls == 1
        assert [level for _, level in notifier.notices] == ["error"]
        assert recorder.of_type(ReviewFailed)[0].error_code == "anchor_invalid"

        assert session.accept() is False
        assert len(notifier.notices) == 1

    @pytest.mark.asyncio
    async def test_edit_shifting_anchored_line_fails_closed(
        self, bus: EventBus, notifier: RecordingNotifier, surface: RecordingSurface
    ) -> None:
        buffer = TextBuffer("foo\nfoo\nbar\n", document_id="doc-1")
        buffer.select(TextPosition(1, 0), TextPosition(1, 3))
        session = _session(buffer, bus, notifier, surface)
        await _run(session, ScriptedClient("NEW"))
        buffer.replace_range(TextPosition(0, 0), TextPosition(0, 0), "foo\n")

        with pytest.raises(AnchorInvalidError) as excinfo:
            session.accept()

        assert excinfo.value.reason == "document-edited"
        assert buffer.text == "foo\nfoo\nfoo\nbar\n"
        assert session.close_reason == "anchor-invalid"

    @pytest.mark.asyncio
    async def test_protocol_error_closes_and_notifies(
        self,
        buffer: TextBuffer,
        bus: EventBus,
        notifier: RecordingNotifier,
        surface: RecordingSurface,
    ) -> None:
        session = _session(buffer, bus, notifier, surface)
        error = ProtocolError(message="The completion request failed", status_code=500, body="overloaded")

        phase = await _run(session, ScriptedClient(error))

        assert phase is ReviewPhase.CLOSED
        assert session.error is error
        assert notifier.notices == [("The completion request failed (HTTP 500): overloaded", "error")]
        assert surface.close_calls == 1
        assert buffer.revision == 0
