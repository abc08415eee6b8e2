"""Data models for annotations."""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Tuple, Union

from .errors import ValidationError
from .geometry import Point

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Absorbs float rounding in x + width / y + height checks
EPSILON = 1e-9


class AnnotationType(str, Enum):
    """Discriminator of the annotation union, also the persisted type tag."""

    BOUNDING_BOX = "boundingBox"
    POLYGON = "polygon"
    KEYPOINT = "keypoint"


class Visibility(int, Enum):
    """Visibility flag of a single keypoint."""

    NOT_VISIBLE = 0
    VISIBLE = 1
    OCCLUDED = 2


def to_millis(moment: datetime) -> int:
    """Convert an aware datetime to milliseconds since the epoch."""
    return (moment - EPOCH) // timedelta(milliseconds=1)


def from_millis(millis: int) -> datetime:
    """Convert milliseconds since the epoch to an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=millis)


def utc_now() -> datetime:
    """Current UTC time truncated to millisecond precision."""
    return from_millis(to_millis(datetime.now(timezone.utc)))


def new_annotation_id() -> str:
    """Generate a new unique annotation id."""
    return str(uuid.uuid4())


def _require_text(name: str, value: Any) -> None:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{name} must be a non-empty string")


def _require_number(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(f"{name} must be a finite number, got {value!r}")


@dataclass(frozen=True)
class Keypoint:
    """A named point of a keypoint annotation."""

    name: str
    point: Point
    visibility: int = Visibility.VISIBLE

    def __post_init__(self) -> None:
        _require_text("Keypoint name", self.name)
        if not isinstance(self.point, Point):
            raise ValidationError("Keypoint point must be a Point")
        if isinstance(self.visibility, bool) or self.visibility not in (0, 1, 2):
            raise ValidationError(f"Keypoint visibility must be 0, 1 or 2, got {self.visibility!r}")
        object.__setattr__(self, "visibility", int(self.visibility))


@dataclass(frozen=True)
class _AnnotationBase:
    """
    Fields shared by every annotation variant.

    Instances are immutable: use with_changes() or touch() to derive
    a new value with the same id.
    """

    id: str
    label_id: str
    image_id: str
    project_id: str
    created_at: datetime
    updated_at: datetime
    notes: Optional[str] = field(default=None, kw_only=True)

    def __post_init__(self) -> None:
        _require_text("id", self.id)
        _require_text("label_id", self.label_id)
        _require_text("image_id", self.image_id)
        _require_text("project_id", self.project_id)
        for name in ("created_at", "updated_at"):
            moment = getattr(self, name)
            if not isinstance(moment, datetime) or moment.tzinfo is None:
                raise ValidationError(f"{name} must be a timezone-aware datetime")
        if self.updated_at < self.created_at:
            raise ValidationError("updated_at must not precede created_at")
        if self.notes is not None and not isinstance(self.notes, str):
            raise ValidationError("notes must be a string")
        self._validate()

    def _validate(self) -> None:
        """Check the variant-specific invariants."""

    @property
    def type(self) -> AnnotationType:
        raise NotImplementedError

    def with_changes(self, **changes: Any) -> Annotation:
        """
        Return a validated copy with some fields replaced.

        Raises:
            ValidationError: If the id is changed or an invariant is violated
        """
        if "id" in changes and changes["id"] != self.id:
            raise ValidationError("Annotation id is immutable")
        return replace(self, **changes)

    def touch(self, now: Optional[datetime] = None) -> Annotation:
        """Return a copy with a refreshed updated_at."""
        now = now or utc_now()
        return replace(self, updated_at=max(now, self.created_at))


@dataclass(frozen=True)
class BoundingBoxAnnotation(_AnnotationBase):
    """Axis-aligned rectangle with its top-left corner at (x, y)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def type(self) -> AnnotationType:
        return AnnotationType.BOUNDING_BOX

    def _validate(self) -> None:
        for name in ("x", "y", "width", "height"):
            _require_number(name, getattr(self, name))
        if not (0.0 <= self.x <= 1.0 and 0.0 <= self.y <= 1.0):
            raise ValidationError(f"Bounding box origin ({self.x}, {self.y}) is outside the image")
        if self.width <= 0 or self.height <= 0:
            raise ValidationError("Bounding box must have a positive width and height")
        if self.x + self.width > 1.0 + EPSILON or self.y + self.height > 1.0 + EPSILON:
            raise ValidationError("Bounding box extends beyond the image")

    @property
    def corners(self) -> Tuple[Point, Point]:
        """Top-left and bottom-right corners."""
        return (
            Point(self.x, self.y),
            Point(min(self.x + self.width, 1.0), min(self.y + self.height, 1.0)),
        )


@dataclass(frozen=True)
class PolygonAnnotation(_AnnotationBase):
    """Closed polygon given by its ordered vertices."""

    points: Tuple[Point, ...]

    MIN_POINTS = 3

    @property
    def type(self) -> AnnotationType:
        return AnnotationType.POLYGON

    def _validate(self) -> None:
        object.__setattr__(self, "points", tuple(self.points))
        if any(not isinstance(p, Point) for p in self.points):
            raise ValidationError("Polygon vertices must be Points")
        if len(self.points) < self.MIN_POINTS:
            raise ValidationError(
                f"Polygon requires at least {self.MIN_POINTS} points, got {len(self.points)}"
            )


@dataclass(frozen=True)
class KeypointAnnotation(_AnnotationBase):
    """Set of named keypoints."""

    keypoints: Tuple[Keypoint, ...]

    MIN_POINTS = 1

    @property
    def type(self) -> AnnotationType:
        return AnnotationType.KEYPOINT

    def _validate(self) -> None:
        object.__setattr__(self, "keypoints", tuple(self.keypoints))
        if any(not isinstance(k, Keypoint) for k in self.keypoints):
            raise ValidationError("Keypoint annotation entries must be Keypoints")
        if len(self.keypoints) < self.MIN_POINTS:
            raise ValidationError("Keypoint annotation requires at least 1 keypoint")

    @property
    def points(self) -> Tuple[Point, ...]:
        return tuple(k.point for k in self.keypoints)


Annotation = Union[BoundingBoxAnnotation, PolygonAnnotation, KeypointAnnotation]

ANNOTATION_CLASSES = {
    AnnotationType.BOUNDING_BOX: BoundingBoxAnnotation,
    AnnotationType.POLYGON: PolygonAnnotation,
    AnnotationType.KEYPOINT: KeypointAnnotation,
}
