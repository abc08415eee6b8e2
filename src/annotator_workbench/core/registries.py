"""Interfaces of the label, image and project collaborators."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Label:
    """Label owned by the label registry."""

    id: str
    name: str
    color: str = ""


@dataclass(frozen=True)
class ImageInfo:
    """Image dimensions and derived annotation status."""

    id: str
    width: int
    height: int
    is_annotated: bool = False
    annotation_count: int = 0


@runtime_checkable
class LabelRegistry(Protocol):
    def current_label(self) -> Optional[Label]: ...

    def exists(self, label_id: str) -> bool: ...


@runtime_checkable
class ImageRegistry(Protocol):
    def get_image(self, image_id: str) -> Optional[ImageInfo]: ...

    def set_annotation_status(self, image_id: str, is_annotated: bool, count: int) -> None: ...


@runtime_checkable
class ProjectRegistry(Protocol):
    def exists(self, project_id: str) -> bool: ...


class InMemoryLabelRegistry:
    """Label registry kept in memory with a current selection."""

    def __init__(self, labels: Iterable[Label] = ()) -> None:
        self._labels: Dict[str, Label] = {label.id: label for label in labels}
        self._current: Optional[str] = None

    def add(self, label: Label) -> None:
        self._labels[label.id] = label

    def remove(self, label_id: str) -> None:
        self._labels.pop(label_id, None)
        if self._current == label_id:
            self._current = None

    def select(self, label_id: Optional[str]) -> None:
        """Make a label current, or clear the selection with None."""
        if label_id is not None and label_id not in self._labels:
            raise KeyError(f"Unknown label: {label_id}")
        self._current = label_id

    def current_label(self) -> Optional[Label]:
        if self._current is None:
            return None
        return self._labels.get(self._current)

    def exists(self, label_id: str) -> bool:
        return label_id in self._labels


class InMemoryImageRegistry:
    """Image registry kept in memory; stores the status pushed to it."""

    def __init__(self, images: Iterable[ImageInfo] = ()) -> None:
        self._images: Dict[str, ImageInfo] = {image.id: image for image in images}

    def add(self, image: ImageInfo) -> None:
        self._images[image.id] = image

    def get_image(self, image_id: str) -> Optional[ImageInfo]:
        return self._images.get(image_id)

    def set_annotation_status(self, image_id: str, is_annotated: bool, count: int) -> None:
        image = self._images.get(image_id)
        if image is None:
            logger.warning(f"Annotation status for unknown image {image_id} ignored")
            return
        self._images[image_id] = replace(image, is_annotated=is_annotated, annotation_count=count)


class InMemoryProjectRegistry:
    def __init__(self, project_ids: Iterable[str] = ()) -> None:
        self._project_ids = set(project_ids)

    def add(self, project_id: str) -> None:
        self._project_ids.add(project_id)

    def exists(self, project_id: str) -> bool:
        return project_id in self._project_ids
