"""Screen-space placement for the floating assistant affordance."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class Size:
    width: float
    height: float


@dataclass(frozen=True, slots=True)
class Rect:
    """Selection bounding box in viewport coordinates."""

    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 and self.height <= 0

    @classmethod
    def from_edges(cls, left: float, top: float, right: float, bottom: float) -> "Rect":
        return cls(left=left, top=top, width=max(0.0, right - left), height=max(0.0, bottom - top))


@dataclass(frozen=True, slots=True)
class AffordanceLayout:
    """Size of the affordance and spacing rules used when placing it."""

    width: float = 160.0
    height: float = 40.0
    gap: float = 8.0
    lift: float = 5.0
    margin: float = 10.0


@dataclass(frozen=True, slots=True)
class AffordancePlacement:
    position: Point
    flipped_left: bool = False
    flipped_below: bool = False


def place_affordance(
    selection: Rect,
    viewport: Size,
    layout: AffordanceLayout | None = None,
) -> AffordancePlacement:
    """Position the affordance beside ``selection`` without leaving ``viewport``.

    The preferred spot is just right of and above the selection. When that
    would overflow the right edge the affordance moves to the left of the
    selection, and when it would overflow the top it drops below the
    selection. The result is finally clamped so that at least ``margin``
    remains on every side.
    """

    layout = layout or AffordanceLayout()
    margin = layout.margin

    x = selection.right + layout.gap
    y = selection.top - (layout.height + layout.lift)
    flipped_left = False
    flipped_below = False

    if x + layout.width > viewport.width - margin:
        x = max(selection.left - layout.width - layout.gap, margin)
        flipped_left = True
    if y < margin:
        y = selection.bottom + layout.gap
        flipped_below = True

    x = _clamp(x, margin, viewport.width - layout.width - margin)
    y = _clamp(y, margin, viewport.height - layout.height - margin)
    return AffordancePlacement(Point(x, y), flipped_left=flipped_left, flipped_below=flipped_below)


def _clamp(value: float, low: float, high: float) -> float:
    # Viewports narrower than the affordance pin it to the leading margin.
    if high < low:
        return low
    return max(low, min(value, high))


__all__ = ["AffordanceLayout", "AffordancePlacement", "Point", "Rect", "Size", "place_affordance"]
