"""Incremental server-sent-event framing for chat completion streams."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, List, Mapping

LOGGER = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
_DATA_PREFIX = "data:"


class SSELineDecoder:
    """Rolling buffer that turns arbitrary text chunks into complete lines.

    Chunks may split a line (or a multi-byte character, which the transport
    already decodes) anywhere; only newline-terminated lines are released
    until :meth:`flush` hands back the trailing remainder.
    """

    __slots__ = ("_buffer",)

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> List[str]:
        if not chunk:
            return []
        self._buffer += chunk
        if "\n" not in self._buffer:
            return []
        *complete, remainder = self._buffer.split("\n")
        self._buffer = remainder
        return [line.rstrip("\r") for line in complete]

    def flush(self) -> List[str]:
        remainder = self._buffer.rstrip("\r")
        self._buffer = ""
        return [remainder] if remainder else []

    @property
    def pending(self) -> str:
        return self._buffer


def strip_data_marker(line: str) -> str:
    """Return the payload of ``line`` without a leading ``data:`` marker."""

    stripped = line.strip()
    if stripped.startswith(_DATA_PREFIX):
        return stripped[len(_DATA_PREFIX) :].strip()
    return stripped


def is_done(payload: str) -> bool:
    return payload == DONE_SENTINEL


def parse_payload(payload: str) -> Mapping[str, Any] | None:
    """Parse one SSE payload as a JSON object; malformed payloads yield ``None``."""

    if not payload:
        return None
    try:
        parsed = json.loads(payload)
    except ValueError:
        LOGGER.debug("Skipping non-JSON stream line: %.80s", payload)
        return None
    if not isinstance(parsed, Mapping):
        LOGGER.debug("Skipping non-object stream payload of type %s", type(parsed).__name__)
        return None
    return parsed


def extract_delta_text(chunk: Mapping[str, Any]) -> str:
    """Return the first choice's text from a stream chunk or a full response.

    Stream chunks carry ``choices[0].delta.content``; some providers send the
    final text as ``choices[0].message.content`` instead.
    """

    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, Mapping):
        return ""
    for key in ("delta", "message"):
        container = first.get(key)
        if isinstance(container, Mapping):
            content = container.get("content")
            if isinstance(content, str) and content:
                return content
    return ""


def iter_line_deltas(lines: Iterable[str]) -> tuple[list[str], bool]:
    """Decode already-framed lines into deltas.

    Returns the non-empty deltas in order and whether the ``[DONE]`` sentinel
    was reached; lines after the sentinel are ignored.
    """

    deltas: list[str] = []
    for line in lines:
        payload = strip_data_marker(line)
        if not payload:
            continue
        if is_done(payload):
            return deltas, True
        chunk = parse_payload(payload)
        if chunk is None:
            continue
        text = extract_delta_text(chunk)
        if text:
            deltas.append(text)
    return deltas, False


__all__ = [
    "DONE_SENTINEL",
    "SSELineDecoder",
    "strip_data_marker",
    "is_done",
    "parse_payload",
    "extract_delta_text",
    "iter_line_deltas",
]
