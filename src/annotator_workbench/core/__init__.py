"""Core business logic modules for Annotator Workbench."""

from .errors import (
    AnnotationError,
    CorruptionError,
    NoLabelSelectedError,
    StorageUnavailableError,
    ValidationError,
)
from .geometry import Point
from .models import (
    Annotation,
    AnnotationType,
    BoundingBoxAnnotation,
    Keypoint,
    KeypointAnnotation,
    PolygonAnnotation,
)
from .config import AppConfig, ConfigManager
from .store import AnnotationStore
from .service import AnnotationService
from .tools import ToolKind

__all__ = [
    "AnnotationError",
    "CorruptionError",
    "NoLabelSelectedError",
    "StorageUnavailableError",
    "ValidationError",
    "Point",
    "Annotation",
    "AnnotationType",
    "BoundingBoxAnnotation",
    "Keypoint",
    "KeypointAnnotation",
    "PolygonAnnotation",
    "AppConfig",
    "ConfigManager",
    "AnnotationStore",
    "AnnotationService",
    "ToolKind",
]
