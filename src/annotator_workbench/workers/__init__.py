"""Background workers for Annotator Workbench."""

from .annotation_worker import AnnotationTask, AnnotationTaskRunner

__all__ = ["AnnotationTask", "AnnotationTaskRunner"]
