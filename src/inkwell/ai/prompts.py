"""Prompt text and message composition helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Mapping, Sequence

from ..chat.message_model import ChatMessage

DATETIME_PLACEHOLDER = "{{datetime}}"
DATETIME_FORMAT = "%Y-%m-%d %H:%M (%A)"

SUMMARY_INSTRUCTION = (
    "You maintain a running summary of this conversation. If a previous summary is "
    "provided, merge the new exchanges into it and remove duplication; otherwise write the "
    "summary from the conversation alone. Cover topics, key conclusions, action items and "
    "open questions. Keep it between 100 and 200 words and output only the summary text, "
    "with no preamble or heading."
)
SUMMARY_HEADER = "Summary of the earlier conversation:"
CONTEXT_PREAMBLE = "Answer using the following context:"

Clock = Callable[[], datetime]


def _local_now() -> datetime:
    return datetime.now().astimezone()


def resolve_placeholders(content: str, *, clock: Clock | None = None) -> str:
    """Replace the date/time placeholder with the time of the call."""

    if DATETIME_PLACEHOLDER not in content:
        return content
    now = (clock or _local_now)()
    return content.replace(DATETIME_PLACEHOLDER, now.strftime(DATETIME_FORMAT))


def instruction_messages(system_prompt: str, instruction: str, text: str) -> list[ChatMessage]:
    """Build the two-message request used by templates and quick actions."""

    user_content = f"{instruction.strip()}\n\n{text}" if instruction.strip() else text
    messages: list[ChatMessage] = []
    if system_prompt:
        messages.append(ChatMessage.system(system_prompt))
    messages.append(ChatMessage.user(user_content))
    return messages


def system_with_summary(system_prompt: str, summary: str) -> str:
    if not summary:
        return system_prompt
    if not system_prompt:
        return f"{SUMMARY_HEADER}\n{summary}"
    return f"{system_prompt}\n\n{SUMMARY_HEADER}\n{summary}"


def summary_messages(
    system_prompt: str, previous_summary: str, turns: Sequence[ChatMessage]
) -> list[ChatMessage]:
    """Build the request that folds ``turns`` into an updated summary."""

    transcript = "\n".join(
        f"{'User' if message.role == 'user' else 'Assistant'}: {message.content}" for message in turns
    )
    sections: list[str] = []
    if previous_summary:
        sections.append(f"Previous summary:\n{previous_summary}")
    sections.append(f"Conversation:\n{transcript}")
    sections.append("Task: output the updated summary.")
    system_content = f"{system_prompt}\n\n{SUMMARY_INSTRUCTION}" if system_prompt else SUMMARY_INSTRUCTION
    return [ChatMessage.system(system_content), ChatMessage.user("\n\n".join(sections))]


def contextual_question(
    question: str,
    *,
    selection: str = "",
    documents: Mapping[str, str] | None = None,
) -> str:
    """Frame a chat question with the current selection and attached documents."""

    parts: list[str] = []
    if selection.strip():
        parts.append(f"Current selection:\n{selection.strip()}")
    if documents:
        rendered = "\n\n---\n\n".join(f"# {title}\n{body}" for title, body in documents.items())
        parts.append(f"Attached documents:\n{rendered}")
    if not parts:
        return question
    context = "\n\n".join(parts)
    return f"{CONTEXT_PREAMBLE}\n\n{context}\n\nQuestion:\n{question}"


@dataclass(frozen=True, slots=True)
class QuickAction:
    """Built-in instruction offered next to the user's templates."""

    id: str
    label: str
    instruction: str
    icon: str


QUICK_ACTIONS: tuple[QuickAction, ...] = (
    QuickAction("improve", "Improve", "Improve the following text so it is clearer, more accurate and more fluent:", "edit"),
    QuickAction("shorten", "Shorten", "Shorten the following text while keeping its main information and points:", "minimize"),
    QuickAction("expand", "Expand", "Expand the following text with more detail and explanation:", "maximize"),
    QuickAction("translate", "Translate", "Translate the following text into {language}:", "globe"),
    QuickAction("summarize", "Summarize", "Summarize the main content of the following text:", "list"),
)


def quick_action_instruction(action_id: str, *, language: str = "English") -> str:
    for action in QUICK_ACTIONS:
        if action.id == action_id:
            return action.instruction.replace("{language}", language)
    raise KeyError(action_id)


__all__ = [
    "DATETIME_PLACEHOLDER",
    "SUMMARY_INSTRUCTION",
    "QUICK_ACTIONS",
    "QuickAction",
    "resolve_placeholders",
    "instruction_messages",
    "system_with_summary",
    "summary_messages",
    "contextual_question",
    "quick_action_instruction",
]
