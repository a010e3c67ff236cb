"""Outbound message assembly for multi-turn chat with rolling summaries."""

from __future__ import annotations

import logging
from typing import Sequence

from ..chat.message_model import ChatMessage
from .client import CompletionClient
from .errors import AssistantError
from .prompts import summary_messages, system_with_summary

LOGGER = logging.getLogger(__name__)
DEFAULT_TURN_THRESHOLD = 5


class ConversationContextAssembler:
    """Keeps chat history and bounds the size of outbound requests.

    Every ``turn_threshold`` completed user+assistant pairs, the turns not yet
    covered by the summary are folded into it through a separate completion
    request. Requests then carry the summary inside the system message and
    only the verbatim tail of un-summarized turns.
    """

    def __init__(
        self,
        client: CompletionClient,
        *,
        system_prompt: str = "",
        turn_threshold: int = DEFAULT_TURN_THRESHOLD,
    ) -> None:
        if turn_threshold < 1:
            raise ValueError("turn_threshold must be at least 1")
        self._client = client
        self._system_prompt = system_prompt
        self._turn_threshold = turn_threshold
        self._history: list[ChatMessage] = []
        self._summary = ""
        self._summarized_turns = 0
        self._last_attempt_turns = 0
        self._summary_count = 0
        self._summarizing = False
        self._generation = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def history(self) -> tuple[ChatMessage, ...]:
        return tuple(self._history)

    @property
    def summary(self) -> str:
        return self._summary

    @property
    def completed_turns(self) -> int:
        return len(self._history) // 2

    @property
    def summarized_turns(self) -> int:
        return self._summarized_turns

    @property
    def summary_count(self) -> int:
        """Number of summaries successfully folded in since the last reset."""
        return self._summary_count

    @property
    def is_summarizing(self) -> bool:
        return self._summarizing

    @property
    def turn_threshold(self) -> int:
        return self._turn_threshold

    def configure(self, *, system_prompt: str | None = None, turn_threshold: int | None = None) -> None:
        if system_prompt is not None:
            self._system_prompt = system_prompt
        if turn_threshold is not None:
            if turn_threshold < 1:
                raise ValueError("turn_threshold must be at least 1")
            self._turn_threshold = turn_threshold

    # ------------------------------------------------------------------
    # Message assembly
    # ------------------------------------------------------------------
    def build_messages(self, user_content: str) -> list[ChatMessage]:
        """Return [system (+summary)], [un-summarized turns], [current user turn]."""

        messages: list[ChatMessage] = []
        system_content = system_with_summary(self._system_prompt, self._summary)
        if system_content:
            messages.append(ChatMessage.system(system_content))
        messages.extend(self._unsummarized_tail())
        messages.append(ChatMessage.user(user_content))
        return messages

    def record_turn(self, user_content: str, assistant_content: str) -> None:
        """Append one completed exchange to the history."""

        self._history.append(ChatMessage.user(user_content))
        self._history.append(ChatMessage.assistant(assistant_content))

    async def complete_turn(self, user_content: str, assistant_content: str) -> bool:
        """Record a completed exchange and summarize when the threshold is crossed."""

        self.record_turn(user_content, assistant_content)
        return await self.maybe_summarize()

    def reset(self) -> None:
        self._history.clear()
        self._summary = ""
        self._summarized_turns = 0
        self._last_attempt_turns = 0
        self._summary_count = 0
        self._generation += 1

    # ------------------------------------------------------------------
    # Summarization
    # ------------------------------------------------------------------
    def should_summarize(self) -> bool:
        if self._summarizing:
            return False
        completed = self.completed_turns
        pending = completed - self._summarized_turns
        since_attempt = completed - self._last_attempt_turns
        return pending >= self._turn_threshold and since_attempt >= self._turn_threshold

    async def maybe_summarize(self) -> bool:
        """Fold the un-summarized turns into the summary if due.

        Failures are logged and leave the history intact; the next attempt
        happens after another ``turn_threshold`` turns complete.
        """

        if not self.should_summarize():
            return False

        covered_turns = self.completed_turns
        turns = self._history[self._summarized_turns * 2 : covered_turns * 2]
        generation = self._generation
        self._last_attempt_turns = covered_turns
        self._summarizing = True
        LOGGER.debug(
            "Summarizing turns %s-%s of the conversation", self._summarized_turns + 1, covered_turns
        )
        try:
            request = self._client.build_request(
                summary_messages(self._system_prompt, self._summary, turns),
                stream=False,
            )
            result = await self._client.send(request)
        except AssistantError as exc:
            LOGGER.warning("Conversation summarization failed: %s", exc)
            return False
        finally:
            self._summarizing = False

        if generation != self._generation:
            LOGGER.debug("Discarding summary for a conversation that was reset")
            return False
        summary = result.strip()
        if not summary:
            LOGGER.warning("Conversation summarization returned an empty summary")
            return False
        self._summary = summary
        self._summarized_turns = covered_turns
        self._summary_count += 1
        return True

    def _unsummarized_tail(self) -> Sequence[ChatMessage]:
        return self._history[self._summarized_turns * 2 :]


__all__ = ["ConversationContextAssembler", "DEFAULT_TURN_THRESHOLD"]
