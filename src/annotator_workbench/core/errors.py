"""Exception hierarchy for the annotation subsystem."""

from __future__ import annotations

from typing import Optional


class AnnotationError(Exception):
    """Base class for all annotation subsystem errors."""


class ValidationError(AnnotationError, ValueError):
    """
    Input rejected before anything is persisted.

    Raised for bad point counts, invalid tools, violated geometry
    invariants and missing labels. Never retried automatically.
    """


class NoLabelSelectedError(ValidationError):
    """A gesture was committed while no label was selected."""

    def __init__(self, message: str = "Select a label before drawing") -> None:
        super().__init__(message)


class FrameNotReadyError(ValidationError):
    """The canvas has no usable size yet (not laid out)."""


class CorruptionError(AnnotationError):
    """A stored record could not be decoded."""

    def __init__(self, message: str, record_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class StorageUnavailableError(AnnotationError):
    """The underlying store could not be reached."""
