"""Chat message data model shared by the client and the chat session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Literal, Mapping

ChatRole = Literal["system", "user", "assistant"]
_ROLES: frozenset[str] = frozenset({"system", "user", "assistant"})


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One turn of a conversation; immutable once constructed."""

    role: ChatRole
    content: str

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise ValueError(f"Unsupported chat role: {self.role!r}")
        if not isinstance(self.content, str):
            raise TypeError("Chat message content must be a string")

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls(role="assistant", content=content)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "ChatMessage":
        return cls(role=payload["role"], content=str(payload.get("content") or ""))

    def to_payload(self) -> Dict[str, str]:
        """Serialize for the ``messages`` array of a chat completion request."""

        return {"role": self.role, "content": self.content}
