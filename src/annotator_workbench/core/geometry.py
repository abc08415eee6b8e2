"""Conversion between canvas space and normalized image coordinates."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from PyQt6.QtCore import QPointF, QSizeF

from .errors import FrameNotReadyError, ValidationError


@dataclass(frozen=True)
class Point:
    """
    A position normalized to [0, 1] relative to the image dimensions.

    Independent of the display scale; always embedded in an annotation.
    """

    x: float
    y: float

    def __post_init__(self) -> None:
        for axis, value in (("x", self.x), ("y", self.y)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"Point {axis} must be a number, got {value!r}")
            if not math.isfinite(value) or not 0.0 <= value <= 1.0:
                raise ValidationError(f"Point {axis} must be within [0, 1], got {value}")
        object.__setattr__(self, "x", float(self.x))
        object.__setattr__(self, "y", float(self.y))

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: dict) -> Point:
        return cls(x=data["x"], y=data["y"])


def clamp_unit(value: float) -> float:
    """Clamp a value to the closed unit interval."""
    return min(max(value, 0.0), 1.0)


def ensure_frame(canvas_size: QSizeF) -> None:
    """
    Reject a canvas size that cannot be used for a transform.

    Args:
        canvas_size: Currently rendered extent of the canvas

    Raises:
        FrameNotReadyError: If the size is missing, empty or not finite
    """
    if canvas_size is None:
        raise FrameNotReadyError("Canvas size is not known yet")
    width, height = canvas_size.width(), canvas_size.height()
    if not (math.isfinite(width) and math.isfinite(height)) or width <= 0 or height <= 0:
        raise FrameNotReadyError(f"Canvas size {width}x{height} is not usable")


def to_normalized(point: QPointF, canvas_size: QSizeF) -> Point:
    """
    Convert a canvas-space position to normalized coordinates.

    Positions outside the canvas are clamped onto its border.

    Args:
        point: Device-space position
        canvas_size: Currently rendered extent of the canvas

    Returns:
        Normalized Point
    """
    ensure_frame(canvas_size)
    return Point(
        x=clamp_unit(point.x() / canvas_size.width()),
        y=clamp_unit(point.y() / canvas_size.height()),
    )


def to_canvas(point: Point, canvas_size: QSizeF) -> QPointF:
    """Convert a normalized point back to canvas space."""
    ensure_frame(canvas_size)
    return QPointF(point.x * canvas_size.width(), point.y * canvas_size.height())


def normalized_rect(first: Point, second: Point) -> Tuple[float, float, float, float]:
    """
    Build an (x, y, width, height) rectangle from two opposite corners.

    The corners may be given in any order; the result never leaves
    the unit square.
    """
    x = min(first.x, second.x)
    y = min(first.y, second.y)
    width = min(max(first.x, second.x) - x, 1.0 - x)
    height = min(max(first.y, second.y) - y, 1.0 - y)
    return (x, y, width, height)
