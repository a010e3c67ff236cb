"""Tests for the in-memory editor and selection anchors."""

from __future__ import annotations

import pytest

from inkwell.ai.errors import AnchorInvalidError
from inkwell.editor.anchor import SelectionAnchor
from inkwell.editor.document_model import EditorHost, TextBuffer, TextPosition


# =============================================================================
# TextBuffer
# =============================================================================


class TestTextBuffer:
    def test_satisfies_editor_protocol(self, buffer: TextBuffer) -> None:
        assert isinstance(buffer, EditorHost)

    def test_selection_positions(self, buffer: TextBuffer) -> None:
        assert buffer.get_selection() == "quick brown"
        assert buffer.get_selection_range() == (TextPosition(0, 4), TextPosition(0, 15))
        assert buffer.get_cursor_position() == TextPosition(0, 15)

    def test_line_text(self, buffer: TextBuffer) -> None:
        assert buffer.get_line_text(1) == "jumps over the lazy dog."
        assert buffer.get_line_text(2) == ""
        with pytest.raises(IndexError):
            buffer.get_line_text(3)

    def test_replace_range_bumps_revision(self, buffer: TextBuffer) -> None:
        buffer.replace_range(TextPosition(1, 0), TextPosition(1, 5), "leaps")

        assert buffer.text == "The quick brown fox\nleaps over the lazy dog.\n"
        assert buffer.revision == 1
        assert buffer.get_cursor_position() == TextPosition(1, 5)

    def test_multiline_range(self, buffer: TextBuffer) -> None:
        assert buffer.get_range_text(TextPosition(0, 16), TextPosition(1, 5)) == "fox\njumps"

    def test_out_of_range_positions_raise(self, buffer: TextBuffer) -> None:
        with pytest.raises(ValueError):
            buffer.offset_of(TextPosition(0, 99))
        with pytest.raises(ValueError):
            TextPosition(-1, 0)

    def test_closed_buffer_rejects_edits(self, buffer: TextBuffer) -> None:
        buffer.close()

        with pytest.raises(RuntimeError):
            buffer.replace_range(TextPosition(0, 0), TextPosition(0, 1), "x")


# =============================================================================
# SelectionAnchor
# =============================================================================


class TestSelectionAnchor:
    def test_capture_records_selection(self, buffer: TextBuffer) -> None:
        anchor = SelectionAnchor.capture(buffer)

        assert anchor.text == "quick brown"
        assert anchor.document_id == "doc-1"
        assert anchor.revision == 0
        anchor.check(buffer)

    def test_capture_line(self, buffer: TextBuffer) -> None:
        buffer.select_offsets(22, 22)

        anchor = SelectionAnchor.capture_line(buffer)

        assert anchor.text == "jumps over the lazy dog."
        assert (anchor.start, anchor.end) == (TextPosition(1, 0), TextPosition(1, 24))

    def test_overlapping_edit_invalidates(self, buffer: TextBuffer) -> None:
        anchor = SelectionAnchor.capture(buffer)
        buffer.replace_range(TextPosition(0, 10), TextPosition(0, 15), "red")

        with pytest.raises(AnchorInvalidError) as excinfo:
            anchor.check(buffer)

        assert excinfo.value.reason == "text-changed"

    def test_edit_elsewhere_invalidates_anchor(self, buffer: TextBuffer) -> None:
        anchor = SelectionAnchor.capture(buffer)
        buffer.replace_range(TextPosition(1, 0), TextPosition(1, 5), "leaps")

        with pytest.raises(AnchorInvalidError) as excinfo:
            anchor.check(buffer)

        assert excinfo.value.reason == "document-edited"

    def test_inserted_line_above_identical_text_invalidates(self) -> None:
        buffer = TextBuffer("foo\nfoo\nbar\n", document_id="doc-1")
        buffer.select(TextPosition(1, 0), TextPosition(1, 3))
        anchor = SelectionAnchor.capture(buffer)
        buffer.replace_range(TextPosition(0, 0), TextPosition(0, 0), "foo\n")

        assert buffer.get_range_text(anchor.start, anchor.end) == "foo"
        assert not anchor.is_valid(buffer)

    def test_edit_before_anchor_shifts_text_and_invalidates(self, buffer: TextBuffer) -> None:
        anchor = SelectionAnchor.capture(buffer)
        buffer.replace_range(TextPosition(0, 0), TextPosition(0, 0), "See: ")

        assert not anchor.is_valid(buffer)

    def test_other_document_or_closed_view(self, buffer: TextBuffer) -> None:
        anchor = SelectionAnchor.capture(buffer)
        other = TextBuffer(buffer.text, document_id="doc-2")

        with pytest.raises(AnchorInvalidError) as excinfo:
            anchor.check(other)
        assert excinfo.value.reason == "document-mismatch"

        buffer.close()
        with pytest.raises(AnchorInvalidError) as excinfo:
            anchor.check(buffer)
        assert excinfo.value.reason == "closed"
