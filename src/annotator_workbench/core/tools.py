"""Drawing tools and the minimum number of points each one needs."""

from __future__ import annotations

from enum import Enum
from typing import Dict

from .errors import ValidationError
from .models import AnnotationType, KeypointAnnotation, PolygonAnnotation


class ToolKind(str, Enum):
    """Tool selected on the canvas."""

    NONE = "none"
    BOUNDING_BOX = "boundingBox"
    POLYGON = "polygon"
    KEYPOINT = "keypoint"


# Raw gesture points required before a drawing may be committed.
# Shared by the interaction reducer and the annotation service.
MIN_POINTS: Dict[ToolKind, int] = {
    ToolKind.BOUNDING_BOX: 2,
    ToolKind.POLYGON: PolygonAnnotation.MIN_POINTS,
    ToolKind.KEYPOINT: KeypointAnnotation.MIN_POINTS,
}

TOOL_TO_TYPE: Dict[ToolKind, AnnotationType] = {
    ToolKind.BOUNDING_BOX: AnnotationType.BOUNDING_BOX,
    ToolKind.POLYGON: AnnotationType.POLYGON,
    ToolKind.KEYPOINT: AnnotationType.KEYPOINT,
}

TYPE_TO_TOOL: Dict[AnnotationType, ToolKind] = {v: k for k, v in TOOL_TO_TYPE.items()}


def annotation_type_for(tool: ToolKind) -> AnnotationType:
    """
    Map a drawing tool to the annotation variant it produces.

    Raises:
        ValidationError: For ToolKind.NONE or an unknown tool
    """
    try:
        return TOOL_TO_TYPE[ToolKind(tool)]
    except (KeyError, ValueError):
        raise ValidationError(f"Cannot create an annotation with tool {tool!r}") from None


def min_points_for(tool: ToolKind) -> int:
    """Minimum raw points for a tool; raises ValidationError for NONE."""
    return MIN_POINTS[TYPE_TO_TOOL[annotation_type_for(tool)]]
