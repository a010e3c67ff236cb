"""Shared test helpers and stub classes.

Reusable stand-ins for the host collaborators (notifier, diff surface,
viewport) and for the completion endpoint. Import from here instead of
redefining them in individual test files.
"""

from __future__ import annotations

import asyncio
import json
from collections import deque
from typing import Any, Callable, Iterable, Sequence

import httpx

from inkwell.ai.client import ClientSettings, CompletionClient, CompletionRequest
from inkwell.chat.message_model import ChatMessage
from inkwell.editor.geometry import Rect, Size
from inkwell.events import Event, EventBus
from inkwell.review.models import ReviewFrame

API_URL = "https://api.test/v1"


# =============================================================================
# HTTP
# =============================================================================


def delta_line(text: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": text}}]}) + "\n\n"


def sse_body(*deltas: str, done: bool = True, extra_lines: Sequence[str] = ()) -> bytes:
    """Encode ``deltas`` as an event stream, optionally followed by ``[DONE]``."""

    parts = [delta_line(text) for text in deltas]
    parts.extend(extra_lines)
    if done:
        parts.append("data: [DONE]\n\n")
    return "".join(parts).encode("utf-8")


def sse_response(*deltas: str, done: bool = True) -> httpx.Response:
    return httpx.Response(
        200,
        content=sse_body(*deltas, done=done),
        headers={"content-type": "text/event-stream"},
    )


class RecordingHandler:
    """``httpx.MockTransport`` handler that records requests and replays responses."""

    def __init__(self, *responses: httpx.Response | Callable[[httpx.Request], Any]) -> None:
        self._responses = deque(responses)
        self.requests: list[httpx.Request] = []

    def queue(self, *responses: httpx.Response | Callable[[httpx.Request], Any]) -> None:
        self._responses.extend(responses)

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            raise AssertionError(f"Unexpected request to {request.url}")
        response = self._responses.popleft()
        if callable(response) and not isinstance(response, httpx.Response):
            result = response(request)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        return response


def make_settings(**overrides: Any) -> ClientSettings:
    values: dict[str, Any] = {
        "base_url": API_URL,
        "api_key": "sk-test",
        "model": "test-model",
        "temperature": 0.5,
        "max_output_tokens": 0,
        "request_timeout": 5.0,
        "max_retries": 1,
        "retry_min_seconds": 0.0,
        "retry_max_seconds": 0.0,
    }
    values.update(overrides)
    return ClientSettings(**values)


def make_client(handler: Callable[[httpx.Request], Any], **overrides: Any) -> CompletionClient:
    return CompletionClient(make_settings(**overrides), transport=httpx.MockTransport(handler))


# =============================================================================
# Scripted completion client
# =============================================================================


class ScriptedClient:
    """Completion client stand-in that replays scripted replies.

    Each reply is a string (delivered as one delta), a list of deltas, or an
    exception to raise. ``gate`` lets a test hold a reply mid-stream.
    """

    def __init__(self, *replies: str | Sequence[str] | BaseException) -> None:
        self._replies = deque(replies)
        self.requests: list[CompletionRequest] = []
        self.gate: asyncio.Event | None = None
        self.settings = ClientSettings(base_url=API_URL, api_key="sk-test", model="test-model")

    def queue(self, *replies: str | Sequence[str] | BaseException) -> None:
        self._replies.extend(replies)

    def build_request(
        self,
        messages: Iterable[ChatMessage],
        *,
        stream: bool = True,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> CompletionRequest:
        return CompletionRequest(
            model="test-model",
            messages=tuple(messages),
            temperature=0.7 if temperature is None else temperature,
            max_output_tokens=max_output_tokens,
            stream=stream,
        )

    async def send(self, request: CompletionRequest, on_delta: Callable[[str], Any] | None = None) -> str:
        self.requests.append(request)
        if not self._replies:
            raise AssertionError("No scripted reply left")
        reply = self._replies.popleft()
        if isinstance(reply, BaseException):
            raise reply
        deltas = [reply] if isinstance(reply, str) else list(reply)
        for index, delta in enumerate(deltas):
            if on_delta is not None:
                on_delta(delta)
            if index == 0 and self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(0)
        return "".join(deltas)


# =============================================================================
# Host collaborators
# =============================================================================


class RecordingNotifier:
    def __init__(self) -> None:
        self.notices: list[tuple[str, str]] = []

    def notify(self, message: str, *, level: str = "info") -> None:
        self.notices.append((message, level))


class RecordingSurface:
    def __init__(self) -> None:
        self.frames: list[ReviewFrame] = []
        self.close_calls = 0

    def render(self, frame: ReviewFrame) -> None:
        self.frames.append(frame)

    def close(self) -> None:
        self.close_calls += 1

    @property
    def closed(self) -> bool:
        return self.close_calls > 0


class FakeViewport:
    def __init__(self, rect: Rect | None = None, size: Size = Size(800, 600)) -> None:
        self.rect = rect
        self.size = size

    def selection_rect(self) -> Rect | None:
        return self.rect

    def viewport_size(self) -> Size:
        return self.size


class EventRecorder:
    """Subscribe to ``event_types`` and keep every event published."""

    def __init__(self, bus: EventBus, *event_types: type[Event]) -> None:
        self.events: list[Event] = []
        for event_type in event_types:
            bus.subscribe(event_type, self.events.append)

    def of_type(self, event_type: type[Event]) -> list[Event]:
        return [event for event in self.events if isinstance(event, event_type)]


__all__ = [
    "API_URL",
    "EventRecorder",
    "FakeViewport",
    "RecordingHandler",
    "RecordingNotifier",
    "RecordingSurface",
    "ScriptedClient",
    "delta_line",
    "make_client",
    "make_settings",
    "sse_body",
    "sse_response",
]
