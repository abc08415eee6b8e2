"""Annotation service: builds, validates and persists annotations."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from PyQt6.QtCore import QPointF, QSizeF

from .errors import NoLabelSelectedError, ValidationError
from .geometry import ensure_frame, normalized_rect, to_canvas, to_normalized
from .models import (
    Annotation,
    AnnotationType,
    BoundingBoxAnnotation,
    Keypoint,
    KeypointAnnotation,
    PolygonAnnotation,
    Visibility,
    new_annotation_id,
    utc_now,
)
from .registries import ImageRegistry, Label, LabelRegistry, ProjectRegistry
from .store import AnnotationStore
from .tools import MIN_POINTS, TYPE_TO_TOOL, ToolKind, annotation_type_for

logger = logging.getLogger(__name__)

_TYPE_NAMES = {
    AnnotationType.BOUNDING_BOX: "Bounding box",
    AnnotationType.POLYGON: "Polygon",
    AnnotationType.KEYPOINT: "Keypoint annotation",
}


def _canvas_points_of_box(annotation: BoundingBoxAnnotation, canvas_size: QSizeF) -> List[QPointF]:
    return [to_canvas(corner, canvas_size) for corner in annotation.corners]


def _canvas_points_of_polygon(annotation: PolygonAnnotation, canvas_size: QSizeF) -> List[QPointF]:
    return [to_canvas(p, canvas_size) for p in annotation.points]


def _canvas_points_of_keypoints(annotation: KeypointAnnotation, canvas_size: QSizeF) -> List[QPointF]:
    return [to_canvas(k.point, canvas_size) for k in annotation.keypoints]


# Must cover every AnnotationType
_CANVAS_POINTS: Dict[AnnotationType, Callable[..., List[QPointF]]] = {
    AnnotationType.BOUNDING_BOX: _canvas_points_of_box,
    AnnotationType.POLYGON: _canvas_points_of_polygon,
    AnnotationType.KEYPOINT: _canvas_points_of_keypoints,
}


class AnnotationService:
    """
    Orchestrates annotation creation, updates and deletion.

    The only place that enforces the minimum point rules. After every
    write the owning image's annotation count and flag are re-derived
    from the store and pushed to the image registry.
    """

    def __init__(
        self,
        store: AnnotationStore,
        images: ImageRegistry,
        labels: Optional[LabelRegistry] = None,
        projects: Optional[ProjectRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize the service.

        Args:
            store: Open annotation store
            images: Image registry receiving annotation status updates
            labels: Optional label registry used to check label existence
            projects: Optional project registry used to check project ids
            clock: Source of creation/update timestamps
        """
        self.store = store
        self.images = images
        self.labels = labels
        self.projects = projects
        self._clock = clock

    # === Commands ===

    def create(
        self,
        image_id: str,
        project_id: str,
        label: Optional[Label],
        tool: ToolKind,
        raw_points: Sequence[QPointF],
        frame_size: QSizeF,
        notes: Optional[str] = None,
    ) -> Annotation:
        """
        Create and persist an annotation from a committed gesture.

        Args:
            image_id: Image the annotation belongs to
            project_id: Project the annotation belongs to
            label: Currently selected label
            tool: Tool the gesture was drawn with
            raw_points: Gesture points in canvas space
            frame_size: Rendered canvas size the points refer to
            notes: Optional free-form notes

        Returns:
            The persisted annotation

        Raises:
            ValidationError: If no label is selected, the tool is NONE, there
                are too few points, the frame is empty or the shape is invalid
            StorageUnavailableError: If the store cannot be written
        """
        if label is None:
            raise NoLabelSelectedError()
        if self.labels is not None and not self.labels.exists(label.id):
            raise ValidationError(f"Label {label.id} does not exist")
        if self.projects is not None and not self.projects.exists(project_id):
            raise ValidationError(f"Project {project_id} does not exist")

        annotation_type = annotation_type_for(tool)
        required = MIN_POINTS[TYPE_TO_TOOL[annotation_type]]
        if len(raw_points) < required:
            raise ValidationError(
                f"{_TYPE_NAMES[annotation_type]} requires at least {required} "
                f"point{'s' if required > 1 else ''}, got {len(raw_points)}"
            )

        ensure_frame(frame_size)
        points = [to_normalized(p, frame_size) for p in raw_points]
        now = self._clock()
        common = dict(
            id=new_annotation_id(),
            label_id=label.id,
            image_id=image_id,
            project_id=project_id,
            created_at=now,
            updated_at=now,
            notes=notes,
        )

        if annotation_type == AnnotationType.BOUNDING_BOX:
            x, y, width, height = normalized_rect(points[0], points[-1])
            annotation = BoundingBoxAnnotation(x=x, y=y, width=width, height=height, **common)
        elif annotation_type == AnnotationType.POLYGON:
            annotation = PolygonAnnotation(points=tuple(points), **common)
        elif annotation_type == AnnotationType.KEYPOINT:
            annotation = KeypointAnnotation(
                keypoints=tuple(
                    Keypoint(name=f"keypoint_{i}", point=p, visibility=Visibility.VISIBLE)
                    for i, p in enumerate(points, start=1)
                ),
                **common,
            )
        else:
            raise TypeError(f"Unhandled annotation variant: {annotation_type!r}")

        self.store.insert(annotation)
        self.refresh_image_status(image_id)
        logger.info(f"Created {annotation.type.value} {annotation.id} on image {image_id}")
        return annotation

    def update(self, annotation: Annotation) -> Annotation:
        """
        Persist a modified annotation with a refreshed updated_at.

        Raises:
            ValidationError: If the annotation is invalid or does not exist
        """
        previous = self.store.get_record(annotation.id)
        if previous is None:
            raise ValidationError(f"Annotation {annotation.id} does not exist")

        updated = annotation.touch(self._clock())
        self.store.update(updated)

        self.refresh_image_status(updated.image_id)
        if previous.image_id and previous.image_id != updated.image_id:
            self.refresh_image_status(previous.image_id)
        logger.info(f"Updated {updated.type.value} {updated.id}")
        return updated

    def delete(self, annotation_id: str, image_id: str) -> bool:
        """
        Delete an annotation and re-derive its image's status.

        Returns:
            True if the annotation existed
        """
        existed = self.store.delete(annotation_id)
        self.refresh_image_status(image_id)
        if existed:
            logger.info(f"Deleted annotation {annotation_id} from image {image_id}")
        else:
            logger.warning(f"Annotation {annotation_id} not found for deletion")
        return existed

    def delete_by_image(self, image_id: str) -> int:
        removed = self.store.delete_by_image(image_id)
        self.refresh_image_status(image_id)
        return removed

    def delete_by_label(self, label_id: str) -> int:
        """Delete every annotation of a label and re-derive the affected images."""
        image_ids = self.store.image_ids_for_label(label_id)
        removed = self.store.delete_by_label(label_id)
        for image_id in image_ids:
            self.refresh_image_status(image_id)
        logger.info(f"Deleted {removed} annotations of label {label_id}")
        return removed

    def refresh_image_status(self, image_id: str) -> int:
        """Recount an image's annotations and push the result to the image registry."""
        count = self.store.count_by_image(image_id)
        self.images.set_annotation_status(image_id, count > 0, count)
        return count

    def repair_corrupted(self) -> int:
        """Delete unreadable records and return how many were removed."""
        return self.store.repair_corrupted()

    # === Queries ===

    def get(self, annotation_id: str) -> Optional[Annotation]:
        return self.store.get(annotation_id)

    def list_by_image(self, image_id: str) -> List[Annotation]:
        return self.store.list_by_image(image_id)

    def list_by_project(self, project_id: str) -> List[Annotation]:
        return self.store.list_by_project(project_id)

    def list_by_label(self, label_id: str) -> List[Annotation]:
        return self.store.list_by_label(label_id)

    def list_by_type(self, project_id: str, annotation_type: AnnotationType) -> List[Annotation]:
        return self.store.list_by_type(project_id, annotation_type)

    def count_by_image(self, image_id: str) -> int:
        return self.store.count_by_image(image_id)

    def count_by_project(self, project_id: str) -> int:
        return self.store.count_by_project(project_id)

    def count_by_label(self, label_id: str) -> int:
        return self.store.count_by_label(label_id)

    def type_statistics(self, project_id: str) -> Dict[AnnotationType, int]:
        return self.store.type_statistics(project_id)

    # === Canvas helpers ===

    @staticmethod
    def to_canvas_points(annotation: Annotation, canvas_size: QSizeF) -> List[QPointF]:
        """
        Denormalize an annotation's defining points for display.

        Bounding boxes yield their two corners, polygons their vertices
        and keypoint annotations one point per keypoint.
        """
        try:
            convert = _CANVAS_POINTS[annotation.type]
        except KeyError:
            raise TypeError(f"Unhandled annotation variant: {annotation.type!r}") from None
        return convert(annotation, canvas_size)
