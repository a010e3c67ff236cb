"""Error taxonomy for completion requests and review sessions.

Every failure surfaced by the core is an :class:`AssistantError` carrying a
machine-readable ``error_code`` plus a human-readable message that hosts can
forward to their notification collaborator unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ErrorCode:
    """Constants for error codes attached to :class:`AssistantError`."""

    CONFIGURATION = "configuration"
    PROTOCOL = "protocol"
    TIMEOUT = "timeout"
    ANCHOR_INVALID = "anchor_invalid"
    NETWORK = "network"


@dataclass
class AssistantError(Exception):
    """Base exception for all assistant failures.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured diagnostic information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for logs and host notices."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def user_message(self) -> str:
        """Return the text shown to the user in a notice."""
        if self.suggestion:
            return f"{self.message} {self.suggestion}"
        return self.message

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class ConfigurationError(AssistantError):
    """Raised when credentials or the endpoint are missing or invalid."""

    error_code: str = field(default=ErrorCode.CONFIGURATION)
    message: str = field(default="The assistant is not configured")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Check the API key and base URL in the assistant settings.")


@dataclass
class ProtocolError(AssistantError):
    """Raised for non-success HTTP responses or payloads without content."""

    error_code: str = field(default=ErrorCode.PROTOCOL)
    message: str = field(default="The completion endpoint returned an unusable response")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    status_code: int | None = None
    body: str = ""

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        if self.body:
            result["body"] = self.body
        return result

    def user_message(self) -> str:
        if self.status_code is None:
            return self.message
        body = self.body.strip()
        if body:
            return f"{self.message} (HTTP {self.status_code}): {body}"
        return f"{self.message} (HTTP {self.status_code})"


@dataclass
class RequestTimeoutError(AssistantError):
    """Raised when a completion request exceeds its configured time bound."""

    error_code: str = field(default=ErrorCode.TIMEOUT)
    message: str = field(default="The completion request timed out")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="The server is slow to respond; try again or raise the request timeout.")

    timeout_seconds: float | None = None


@dataclass
class NetworkError(AssistantError):
    """Raised when the transport fails before or during a response."""

    error_code: str = field(default=ErrorCode.NETWORK)
    message: str = field(default="Unable to reach the completion endpoint")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Check the network connection and the base URL.")


@dataclass
class AnchorInvalidError(AssistantError):
    """Raised when the document changed underneath a pending review."""

    error_code: str = field(default=ErrorCode.ANCHOR_INVALID)
    message: str = field(default="The selected text changed before the suggestion was applied")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="The document was left untouched; run the action again.")

    reason: str = ""


__all__ = [
    "ErrorCode",
    "AssistantError",
    "ConfigurationError",
    "ProtocolError",
    "RequestTimeoutError",
    "NetworkError",
    "AnchorInvalidError",
]
