"""Host editor contract and an in-memory document implementing it."""

from __future__ import annotations

import bisect
import uuid
from dataclasses import dataclass, field
from typing import Protocol, Sequence, runtime_checkable


@dataclass(frozen=True, slots=True, order=True)
class TextPosition:
    """Zero-based line/column position in source coordinates."""

    line: int
    column: int

    def __post_init__(self) -> None:
        if self.line < 0 or self.column < 0:
            raise ValueError(f"Invalid text position ({self.line}, {self.column})")


@runtime_checkable
class EditorHost(Protocol):
    """Document/editor handle supplied by the host application.

    ``revision`` must advance on every document edit. Handles are passed in
    explicitly and revalidated at the moment of use.
    """

    @property
    def document_id(self) -> str:
        ...

    @property
    def revision(self) -> int:
        ...

    @property
    def is_closed(self) -> bool:
        ...

    def get_selection(self) -> str:
        ...

    def get_selection_range(self) -> tuple[TextPosition, TextPosition]:
        ...

    def get_cursor_position(self) -> TextPosition:
        ...

    def get_range_text(self, start: TextPosition, end: TextPosition) -> str:
        ...

    def get_line_text(self, line: int) -> str:
        ...

    def replace_range(self, start: TextPosition, end: TextPosition, text: str) -> None:
        ...


@dataclass(slots=True)
class TextBuffer:
    """Plain-text document with a selection, usable wherever an editor is expected."""

    text: str = ""
    document_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    revision: int = 0
    is_closed: bool = False
    _selection: tuple[int, int] = (0, 0)
    _line_offsets: tuple[int, ...] = field(default=(), init=False, repr=False)

    def __post_init__(self) -> None:
        self._line_offsets = _line_start_offsets(self.text)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def select(self, start: TextPosition, end: TextPosition) -> None:
        self._selection = _ordered(self.offset_of(start), self.offset_of(end))

    def select_offsets(self, start: int, end: int) -> None:
        length = len(self.text)
        start = max(0, min(int(start), length))
        end = max(0, min(int(end), length))
        self._selection = _ordered(start, end)

    def select_text(self, needle: str, *, occurrence: int = 0) -> None:
        """Select the ``occurrence``-th match of ``needle``."""

        index = -1
        for _ in range(occurrence + 1):
            index = self.text.find(needle, index + 1)
            if index < 0:
                raise ValueError(f"Text not found: {needle!r}")
        self._selection = (index, index + len(needle))

    def get_selection(self) -> str:
        start, end = self._selection
        return self.text[start:end]

    def get_selection_range(self) -> tuple[TextPosition, TextPosition]:
        start, end = self._selection
        return self.position_of(start), self.position_of(end)

    def get_cursor_position(self) -> TextPosition:
        return self.position_of(self._selection[1])

    # ------------------------------------------------------------------
    # Reads and edits
    # ------------------------------------------------------------------
    def get_range_text(self, start: TextPosition, end: TextPosition) -> str:
        begin, finish = _ordered(self.offset_of(start), self.offset_of(end))
        return self.text[begin:finish]

    def get_line_text(self, line: int) -> str:
        if line < 0 or line >= len(self._line_offsets):
            raise IndexError(f"Line {line} is out of range")
        begin = self._line_offsets[line]
        finish = self._line_offsets[line + 1] if line + 1 < len(self._line_offsets) else len(self.text)
        return self.text[begin:finish].rstrip("\r\n")

    def replace_range(self, start: TextPosition, end: TextPosition, text: str) -> None:
        if self.is_closed:
            raise RuntimeError("Cannot edit a closed document")
        begin, finish = _ordered(self.offset_of(start), self.offset_of(end))
        self.text = f"{self.text[:begin]}{text}{self.text[finish:]}"
        self._line_offsets = _line_start_offsets(self.text)
        self.revision += 1
        cursor = begin + len(text)
        self._selection = (cursor, cursor)

    def close(self) -> None:
        self.is_closed = True

    # ------------------------------------------------------------------
    # Coordinate conversion
    # ------------------------------------------------------------------
    def offset_of(self, position: TextPosition) -> int:
        if position.line >= len(self._line_offsets):
            raise ValueError(f"Line {position.line} is out of range")
        line_text = self.get_line_text(position.line)
        if position.column > len(line_text):
            raise ValueError(f"Column {position.column} is out of range on line {position.line}")
        return self._line_offsets[position.line] + position.column

    def position_of(self, offset: int) -> TextPosition:
        offset = max(0, min(int(offset), len(self.text)))
        line = bisect.bisect_right(self._line_offsets, offset) - 1
        return TextPosition(line=line, column=offset - self._line_offsets[line])


def _ordered(start: int, end: int) -> tuple[int, int]:
    return (start, end) if start <= end else (end, start)


def _line_start_offsets(text: str) -> tuple[int, ...]:
    offsets: list[int] = [0]
    cursor = 0
    for segment in text.splitlines(keepends=True):
        cursor += len(segment)
        if segment.endswith(("\n", "\r")):
            offsets.append(cursor)
    return tuple(_dedupe_non_decreasing(offsets))


def _dedupe_non_decreasing(values: Sequence[int]) -> list[int]:
    normalized: list[int] = []
    for value in values:
        if normalized and value <= normalized[-1]:
            continue
        normalized.append(value)
    return normalized or [0]


__all__ = ["EditorHost", "TextBuffer", "TextPosition"]
