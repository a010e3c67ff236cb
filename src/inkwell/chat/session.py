"""Multi-turn chat used by the assistant sidebar."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Callable, Mapping

from ..ai.client import CompletionClient
from ..ai.conversation import ConversationContextAssembler
from ..ai.errors import AssistantError
from ..ai.prompts import contextual_question
from ..events import ChatReplyChunk, ChatReplyCompleted, ChatReplyFailed, ChatSummaryUpdated, EventBus
from .message_model import ChatMessage

LOGGER = logging.getLogger(__name__)

ERROR_PREFIX = "Error: "


@dataclass(frozen=True, slots=True)
class ChatReply:
    content: str
    error: AssistantError | None = None
    summarizing: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class ChatSession:
    """Send questions with optional context and keep the visible transcript.

    The transcript is what the sidebar shows, including failure messages.
    Only successful exchanges reach the :class:`ConversationContextAssembler`,
    which decides what the model sees on the next turn. Summaries are
    requested in a background task so a reply is never held back by one.
    """

    def __init__(
        self,
        client: CompletionClient,
        assembler: ConversationContextAssembler,
        *,
        bus: EventBus | None = None,
    ) -> None:
        self._client = client
        self._assembler = assembler
        self._bus = bus
        self._transcript: list[ChatMessage] = []
        self._draft: str | None = None
        self._generation = 0
        self._summary_task: asyncio.Task[bool] | None = None

    @property
    def assembler(self) -> ConversationContextAssembler:
        return self._assembler

    @property
    def is_replying(self) -> bool:
        return self._draft is not None

    @property
    def is_summarizing(self) -> bool:
        return self._summary_task is not None and not self._summary_task.done()

    @property
    def transcript(self) -> tuple[ChatMessage, ...]:
        if self._draft is None:
            return tuple(self._transcript)
        return (*self._transcript, ChatMessage.assistant(self._draft))

    async def ask(
        self,
        question: str,
        *,
        selection: str = "",
        documents: Mapping[str, str] | None = None,
        on_delta: Callable[[str], None] | None = None,
    ) -> ChatReply:
        """Stream an answer to ``question``.

        Completion failures are returned as a :class:`ChatReply` carrying the
        error and shown in the transcript as ``"Error: ..."``; they are not
        recorded as a completed turn.
        """

        question = question.strip()
        if not question:
            raise ValueError("Cannot send an empty message")
        if self._draft is not None:
            raise RuntimeError("A reply is already being streamed")

        generation = self._generation
        messages = self._assembler.build_messages(
            contextual_question(question, selection=selection, documents=documents)
        )
        self._transcript.append(ChatMessage.user(question))
        self._draft = ""

        def deliver(text: str) -> None:
            if generation != self._generation or self._draft is None:
                return
            self._draft += text
            if self._bus is not None:
                self._bus.publish(ChatReplyChunk(text))
            if on_delta is not None:
                on_delta(text)

        try:
            content = await self._client.send(self._client.build_request(messages), on_delta=deliver)
        except AssistantError as exc:
            LOGGER.warning("Chat reply failed: %s", exc)
            if generation == self._generation:
                self._draft = None
                self._transcript.append(ChatMessage.assistant(f"{ERROR_PREFIX}{exc.user_message()}"))
                if self._bus is not None:
                    self._bus.publish(ChatReplyFailed(exc.error_code, exc.message))
            return ChatReply(content="", error=exc)
        except BaseException:
            if generation == self._generation:
                self._draft = None
            raise

        if generation != self._generation:
            LOGGER.debug("Dropping chat reply for a cleared conversation")
            return ChatReply(content=content)
        self._draft = None
        self._transcript.append(ChatMessage.assistant(content))
        self._assembler.record_turn(question, content)
        summarizing = self._start_summary()
        if self._bus is not None:
            self._bus.publish(ChatReplyCompleted(content, summarizing=summarizing))
        return ChatReply(content=content, summarizing=summarizing)

    async def wait_for_summary(self) -> bool:
        """Wait for a background summary, if one is running; ``True`` when it was folded in."""

        task = self._summary_task
        if task is None:
            return False
        with contextlib.suppress(asyncio.CancelledError):
            return await asyncio.shield(task)
        return False

    def clear(self) -> None:
        """Forget the transcript, history and summary; a reply in flight is dropped."""

        self._generation += 1
        self._transcript.clear()
        self._draft = None
        self._cancel_summary()
        self._assembler.reset()

    async def aclose(self) -> None:
        task = self._summary_task
        self._cancel_summary()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------
    def _start_summary(self) -> bool:
        if self.is_summarizing or not self._assembler.should_summarize():
            return False
        task = asyncio.get_running_loop().create_task(self._assembler.maybe_summarize())
        task.add_done_callback(self._on_summary_done)
        self._summary_task = task
        return True

    def _on_summary_done(self, task: asyncio.Task[bool]) -> None:
        if task.cancelled():
            LOGGER.debug("Background summary cancelled")
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Background summary crashed", exc_info=exc)
            return
        if task.result() and self._bus is not None:
            self._bus.publish(
                ChatSummaryUpdated(self._assembler.summarized_turns, self._assembler.summary_count)
            )

    def _cancel_summary(self) -> None:
        if self._summary_task is not None and not self._summary_task.done():
            self._summary_task.cancel()


__all__ = ["ChatReply", "ChatSession", "ERROR_PREFIX"]
