"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from inkwell.editor.document_model import TextBuffer
from inkwell.events import EventBus

from tests.helpers import RecordingNotifier, RecordingSurface


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def buffer() -> TextBuffer:
    doc = TextBuffer("The quick brown fox\njumps over the lazy dog.\n", document_id="doc-1")
    doc.select_text("quick brown")
    return doc


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def surface() -> RecordingSurface:
    return RecordingSurface()
