"""Editor-facing pieces: the host contract, anchors, geometry and selection tracking."""

from .anchor import SelectionAnchor
from .document_model import EditorHost, TextBuffer, TextPosition
from .geometry import AffordanceLayout, AffordancePlacement, Point, Rect, Size, place_affordance
from .selection_tracker import SelectionTrackingController, TrackerConfig, ViewportHost

__all__ = [
    "AffordanceLayout",
    "AffordancePlacement",
    "EditorHost",
    "Point",
    "Rect",
    "SelectionAnchor",
    "SelectionTrackingController",
    "Size",
    "TextBuffer",
    "TextPosition",
    "TrackerConfig",
    "ViewportHost",
    "place_affordance",
]
