"""Selection anchors captured when an assistant action begins."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..ai.errors import AnchorInvalidError
from .document_model import EditorHost, TextPosition
from .geometry import Point

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SelectionAnchor:
    """Snapshot of a selection plus the revision it was taken at.

    An anchor is only trusted when it is consumed: :meth:`check` confirms the
    same document is still open at the revision the anchor was taken at.
    Any edit since then fails closed with :class:`AnchorInvalidError`, the
    reason telling whether the anchored text itself changed.
    """

    document_id: str
    text: str
    start: TextPosition
    end: TextPosition
    revision: int
    view_revision: int = 0
    screen_position: Point | None = None

    @classmethod
    def capture(
        cls,
        editor: EditorHost,
        *,
        view_revision: int = 0,
        screen_position: Point | None = None,
    ) -> "SelectionAnchor":
        if editor.is_closed:
            raise AnchorInvalidError(
                message="The document is no longer open",
                reason="closed",
            )
        start, end = editor.get_selection_range()
        if end < start:
            start, end = end, start
        return cls(
            document_id=editor.document_id,
            text=editor.get_selection(),
            start=start,
            end=end,
            revision=editor.revision,
            view_revision=view_revision,
            screen_position=screen_position,
        )

    @classmethod
    def capture_line(cls, editor: EditorHost, line: int | None = None) -> "SelectionAnchor":
        """Anchor a whole line, the cursor line by default."""

        if editor.is_closed:
            raise AnchorInvalidError(message="The document is no longer open", reason="closed")
        if line is None:
            line = editor.get_cursor_position().line
        text = editor.get_line_text(line)
        return cls(
            document_id=editor.document_id,
            text=text,
            start=TextPosition(line, 0),
            end=TextPosition(line, len(text)),
            revision=editor.revision,
        )

    @property
    def is_empty(self) -> bool:
        return not self.text

    def check(self, editor: EditorHost) -> None:
        """Raise :class:`AnchorInvalidError` unless the anchor still applies to ``editor``."""

        if editor.is_closed:
            raise AnchorInvalidError(message="The document was closed", reason="closed")
        if editor.document_id != self.document_id:
            raise AnchorInvalidError(
                message="The active document changed",
                reason="document-mismatch",
                details={"expected": self.document_id, "actual": editor.document_id},
            )
        if editor.revision == self.revision:
            return
        # Positions are not rebased across edits, so any edit invalidates the anchor.
        details = {"revision": editor.revision, "anchored_revision": self.revision}
        try:
            current = editor.get_range_text(self.start, self.end)
        except (IndexError, ValueError) as exc:
            raise AnchorInvalidError(
                message="The selected range no longer exists",
                reason="range-missing",
                details={**details, "error": str(exc)},
            ) from exc
        if current != self.text:
            raise AnchorInvalidError(
                message="The selected text was edited",
                reason="text-changed",
                details=details,
            )
        LOGGER.debug(
            "Anchor for %s rejected after revision %s -> %s", self.document_id, self.revision, editor.revision
        )
        raise AnchorInvalidError(
            message="The document was edited after the selection was made",
            reason="document-edited",
            details=details,
        )

    def is_valid(self, editor: EditorHost) -> bool:
        try:
            self.check(editor)
        except AnchorInvalidError:
            return False
        return True


__all__ = ["SelectionAnchor"]
