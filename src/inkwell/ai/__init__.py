"""Completion client, prompts and conversation assembly."""

from .client import ClientSettings, CompletionClient, CompletionRequest
from .errors import (
    AnchorInvalidError,
    AssistantError,
    ConfigurationError,
    NetworkError,
    ProtocolError,
    RequestTimeoutError,
)

__all__ = [
    "ClientSettings",
    "CompletionClient",
    "CompletionRequest",
    "AssistantError",
    "AnchorInvalidError",
    "ConfigurationError",
    "NetworkError",
    "ProtocolError",
    "RequestTimeoutError",
]
