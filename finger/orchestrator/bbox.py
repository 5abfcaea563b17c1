from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Tuple


@dataclass(frozen=True)
class BBox:
    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height

    def as_dict(self) -> dict:
        return {"left": self.left, "top": self.top, "width": self.width, "height": self.height}


def bbox_from_rect(rect: Mapping[str, int]) -> BBox:
    """Build a BBox from a left/top/right/bottom mapping (Win32 GetWindowRect order)."""

    left = int(rect.get("left", 0))
    top = int(rect.get("top", 0))
    width = int(rect.get("width", int(rect.get("right", left)) - left))
    height = int(rect.get("height", int(rect.get("bottom", top)) - top))
    return BBox(left=left, top=top, width=max(0, width), height=max(0, height))


def check_ratio(value: float, axis: str) -> float:
    """Validate a window-relative ratio; both ends of [0, 1] are inclusive."""

    try:
        ratio = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{axis} ratio must be a number, got {value!r}") from exc
    if not 0.0 <= ratio <= 1.0:
        raise ValueError(f"{axis} ratio must be within [0, 1], got {ratio}")
    return ratio


def ratio_to_point(bbox: BBox, x_ratio: float, y_ratio: float) -> Tuple[int, int]:
    """Convert window-relative ratios into absolute screen pixels.

    A ratio of 1.0 maps onto the last pixel inside the window rather than the
    first pixel past its edge.
    """

    xr = check_ratio(x_ratio, "x")
    yr = check_ratio(y_ratio, "y")
    if bbox.width <= 0 or bbox.height <= 0:
        raise ValueError(f"Window has an empty rectangle: {bbox.as_dict()}")

    x = bbox.left + min(bbox.width - 1, int(round(xr * (bbox.width - 1))))
    y = bbox.top + min(bbox.height - 1, int(round(yr * (bbox.height - 1))))
    return x, y


def capture_rect(bbox: BBox, left: int, top: int, width: int, height: int) -> BBox:
    """Absolute rectangle of a window-relative sub-region, clamped to the window."""

    abs_left = bbox.left + max(0, int(left))
    abs_top = bbox.top + max(0, int(top))
    right = min(bbox.right, abs_left + int(width))
    bottom = min(bbox.bottom, abs_top + int(height))
    return BBox(left=abs_left, top=abs_top, width=max(1, right - abs_left), height=max(1, bottom - abs_top))
