"""Encoding of annotation variants to and from storage records."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from .errors import CorruptionError
from .geometry import Point
from .models import (
    Annotation,
    AnnotationType,
    BoundingBoxAnnotation,
    Keypoint,
    KeypointAnnotation,
    PolygonAnnotation,
    from_millis,
    to_millis,
)

logger = logging.getLogger(__name__)

# Fields that must be present and non-empty for a record to be decodable
REQUIRED_FIELDS = ("id", "type", "label_id", "image_id", "project_id", "payload")


@dataclass(frozen=True)
class AnnotationRecord:
    """
    Storage-agnostic shape of a persisted annotation.

    Timestamps are milliseconds since the epoch; payload is a JSON object
    holding the variant's fields (and its type tag again).
    """

    id: Optional[str]
    type: Optional[str]
    label_id: Optional[str]
    image_id: Optional[str]
    project_id: Optional[str]
    created_at: Optional[int]
    updated_at: Optional[int]
    notes: Optional[str]
    payload: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "label_id": self.label_id,
            "image_id": self.image_id,
            "project_id": self.project_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "notes": self.notes,
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AnnotationRecord:
        return cls(**{name: data.get(name) for name in cls.__dataclass_fields__})


# === Variant payloads ===

def _point_from(data: Any) -> Point:
    return Point(x=data["x"], y=data["y"])


def _box_fields(annotation: BoundingBoxAnnotation) -> Dict[str, Any]:
    return {
        "x": annotation.x,
        "y": annotation.y,
        "width": annotation.width,
        "height": annotation.height,
    }


def _box_kwargs(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "x": data["x"],
        "y": data["y"],
        "width": data["width"],
        "height": data["height"],
    }


def _polygon_fields(annotation: PolygonAnnotation) -> Dict[str, Any]:
    return {"points": [p.to_dict() for p in annotation.points]}


def _polygon_kwargs(data: Dict[str, Any]) -> Dict[str, Any]:
    return {"points": tuple(_point_from(p) for p in data["points"])}


def _keypoint_fields(annotation: KeypointAnnotation) -> Dict[str, Any]:
    return {
        "keypoints": [
            {"name": k.name, "point": k.point.to_dict(), "visibility": k.visibility}
            for k in annotation.keypoints
        ]
    }


def _keypoint_kwargs(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "keypoints": tuple(
            Keypoint(name=k["name"], point=_point_from(k["point"]), visibility=k.get("visibility", 1))
            for k in data["keypoints"]
        )
    }


# Single variant -> concrete type mapping. Must cover every AnnotationType.
_VARIANT_CODECS: Dict[AnnotationType, Tuple[type, Callable, Callable]] = {
    AnnotationType.BOUNDING_BOX: (BoundingBoxAnnotation, _box_fields, _box_kwargs),
    AnnotationType.POLYGON: (PolygonAnnotation, _polygon_fields, _polygon_kwargs),
    AnnotationType.KEYPOINT: (KeypointAnnotation, _keypoint_fields, _keypoint_kwargs),
}


def supported_types() -> Tuple[AnnotationType, ...]:
    """Annotation types the codec can encode and decode."""
    return tuple(_VARIANT_CODECS)


def _codec_for(annotation_type: AnnotationType) -> Tuple[type, Callable, Callable]:
    try:
        return _VARIANT_CODECS[annotation_type]
    except KeyError:
        raise TypeError(f"Unhandled annotation variant: {annotation_type!r}") from None


def to_payload(annotation: Annotation) -> Dict[str, Any]:
    """
    Convert an annotation to its self-describing payload dictionary.

    Args:
        annotation: Any annotation variant

    Returns:
        Dictionary with the common fields, the type tag and the variant fields
    """
    cls, fields_of, _ = _codec_for(annotation.type)
    if not isinstance(annotation, cls):
        raise TypeError(f"{type(annotation).__name__} does not match type tag {annotation.type.value}")

    payload = {
        "type": annotation.type.value,
        "id": annotation.id,
        "labelId": annotation.label_id,
        "imageId": annotation.image_id,
        "projectId": annotation.project_id,
        "createdAt": to_millis(annotation.created_at),
        "updatedAt": to_millis(annotation.updated_at),
        "notes": annotation.notes,
    }
    payload.update(fields_of(annotation))
    return payload


def from_payload(data: Dict[str, Any]) -> Annotation:
    """
    Build an annotation from a payload dictionary.

    Raises:
        ValidationError: If the decoded values violate a model invariant
        KeyError, TypeError, ValueError: If the payload is malformed
    """
    annotation_type = AnnotationType(data["type"])
    cls, _, kwargs_of = _codec_for(annotation_type)
    return cls(
        id=data["id"],
        label_id=data["labelId"],
        image_id=data["imageId"],
        project_id=data["projectId"],
        created_at=from_millis(data["createdAt"]),
        updated_at=from_millis(data["updatedAt"]),
        notes=data.get("notes"),
        **kwargs_of(data),
    )


def encode(annotation: Annotation) -> AnnotationRecord:
    """Encode an annotation into a storage record."""
    return AnnotationRecord(
        id=annotation.id,
        type=annotation.type.value,
        label_id=annotation.label_id,
        image_id=annotation.image_id,
        project_id=annotation.project_id,
        created_at=to_millis(annotation.created_at),
        updated_at=to_millis(annotation.updated_at),
        notes=annotation.notes,
        payload=json.dumps(to_payload(annotation), ensure_ascii=False),
    )


def is_structurally_complete(record: AnnotationRecord) -> bool:
    """Check that every required field of a record is present and non-empty."""
    return all(getattr(record, name) not in (None, "") for name in REQUIRED_FIELDS)


def decode(record: AnnotationRecord) -> Annotation:
    """
    Decode a storage record into an annotation.

    The record's columns are authoritative for the common fields; the
    payload supplies the variant fields and must carry the same type tag.

    Raises:
        CorruptionError: If the record is incomplete or cannot be decoded
    """
    if not is_structurally_complete(record):
        missing = [name for name in REQUIRED_FIELDS if getattr(record, name) in (None, "")]
        raise CorruptionError(f"Record is missing {', '.join(missing)}", record.id)

    try:
        data = json.loads(record.payload)
    except (TypeError, ValueError) as e:
        raise CorruptionError(f"Payload is not valid JSON: {e}", record.id) from e

    if not isinstance(data, dict):
        raise CorruptionError("Payload is not a JSON object", record.id)
    if data.get("type") != record.type:
        raise CorruptionError(
            f"Payload type {data.get('type')!r} does not match record type {record.type!r}",
            record.id,
        )

    data = dict(data)
    data.update({
        "id": record.id,
        "labelId": record.label_id,
        "imageId": record.image_id,
        "projectId": record.project_id,
        "createdAt": record.created_at if record.created_at is not None else data.get("createdAt"),
        "updatedAt": record.updated_at if record.updated_at is not None else data.get("updatedAt"),
        "notes": record.notes,
    })

    try:
        return from_payload(data)
    except (KeyError, TypeError, ValueError, OverflowError) as e:
        raise CorruptionError(f"Payload could not be decoded: {e}", record.id) from e
