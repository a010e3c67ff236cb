"""Chat sidebar models and session."""

from .message_model import ChatMessage, ChatRole

__all__ = ["ChatMessage", "ChatRole"]
