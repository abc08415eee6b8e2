"""Qt session object driving the interaction reducer for one image."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from PyQt6.QtCore import QObject, QPointF, QSizeF, pyqtSignal

from .errors import AnnotationError, StorageUnavailableError, ValidationError
from .hit_test import KEYPOINT_HIT_RADIUS
from .interaction import (
    Cancel,
    ClearSelection,
    CommitGesture,
    DiscardGesture,
    InteractionEvent,
    InteractionState,
    PointerDown,
    PointerMove,
    PointerUp,
    Selected,
    SelectTool,
    Transition,
    initial_state,
    reduce,
)
from .models import Annotation
from .registries import LabelRegistry
from .service import AnnotationService
from .tools import ToolKind

if TYPE_CHECKING:
    from ..workers.annotation_worker import AnnotationTaskRunner

logger = logging.getLogger(__name__)


class InteractionController(QObject):
    """
    Holds the interaction state of one image and executes its effects.

    Pointer positions are in canvas space. Committed gestures are handed
    to the annotation service, inline or through a background runner.
    Failures are reported through the message signal; they never end
    the session.
    """

    state_changed = pyqtSignal(object)
    selection_changed = pyqtSignal(object)  # Annotation or None
    annotation_committed = pyqtSignal(object)
    annotations_changed = pyqtSignal()
    message = pyqtSignal(str)

    NO_LABEL_MESSAGE = "Select a label before drawing"
    FAILURE_MESSAGE = "Operation failed"

    def __init__(
        self,
        service: AnnotationService,
        labels: LabelRegistry,
        image_id: str,
        project_id: str,
        canvas_size: Optional[QSizeF] = None,
        hit_radius: float = KEYPOINT_HIT_RADIUS,
        runner: Optional[AnnotationTaskRunner] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.service = service
        self.labels = labels
        self.image_id = image_id
        self.project_id = project_id
        self.canvas_size = canvas_size
        self.hit_radius = hit_radius
        self.runner = runner

        self._state: InteractionState = initial_state()
        self._annotations: Tuple[Annotation, ...] = ()
        self.last_message: Optional[str] = None

    # === Properties ===

    @property
    def state(self) -> InteractionState:
        return self._state

    @property
    def annotations(self) -> Tuple[Annotation, ...]:
        return self._annotations

    @property
    def selected_annotation(self) -> Optional[Annotation]:
        return self._state.annotation if isinstance(self._state, Selected) else None

    def set_canvas_size(self, size: QSizeF) -> None:
        self.canvas_size = QSizeF(size)

    def set_annotations(self, annotations: Sequence[Annotation]) -> None:
        """Replace the annotations shown on the canvas (insertion order)."""
        self._annotations = tuple(annotations)
        self.annotations_changed.emit()

    def reload(self) -> None:
        """Load the image's annotations from the store."""
        if self.runner is not None:
            self.runner.list_by_image(self.image_id, on_result=self.set_annotations)
            return
        try:
            self.set_annotations(self.service.list_by_image(self.image_id))
        except StorageUnavailableError as e:
            self._report_failure(e)

    # === Events ===

    def select_tool(self, tool: ToolKind) -> Transition:
        return self._dispatch(SelectTool(ToolKind(tool)))

    def pointer_down(self, position: QPointF) -> Transition:
        return self._dispatch(PointerDown(
            position=position,
            annotations=self._annotations,
            canvas_size=self.canvas_size,
            radius=self.hit_radius,
        ))

    def pointer_move(self, position: QPointF) -> Transition:
        return self._dispatch(PointerMove(position))

    def pointer_up(self) -> Transition:
        return self._dispatch(PointerUp())

    def cancel(self) -> Transition:
        return self._dispatch(Cancel())

    def clear_selection(self) -> Transition:
        return self._dispatch(ClearSelection())

    def delete_selected(self) -> bool:
        """Delete the selected annotation, if any."""
        annotation = self.selected_annotation
        if annotation is None:
            return False
        try:
            self.service.delete(annotation.id, annotation.image_id)
        except StorageUnavailableError as e:
            self._report_failure(e)
            return False
        self.set_annotations([a for a in self._annotations if a.id != annotation.id])
        self._dispatch(ClearSelection())
        return True

    def _dispatch(self, event: InteractionEvent) -> Transition:
        previous = self._state
        transition = reduce(previous, event)
        self._state = transition.state

        if transition.state != previous:
            self.state_changed.emit(transition.state)
        previous_selection = previous.annotation if isinstance(previous, Selected) else None
        if self.selected_annotation != previous_selection:
            self.selection_changed.emit(self.selected_annotation)

        if isinstance(transition.effect, CommitGesture):
            self._commit(transition.effect)
        elif isinstance(transition.effect, DiscardGesture):
            logger.debug(
                f"Discarded {transition.effect.tool.value} gesture with {len(transition.effect.points)} points"
            )
        return transition

    # === Effects ===

    def _commit(self, effect: CommitGesture) -> None:
        label = self.labels.current_label()
        if label is None:
            self._report(self.NO_LABEL_MESSAGE)
            return

        args = (self.image_id, self.project_id, label, effect.tool, list(effect.points), self.canvas_size)
        if self.runner is not None:
            self.runner.submit(
                None,
                self.service.create,
                *args,
                on_result=self._on_committed,
                on_error=self._on_commit_failed,
            )
            return

        try:
            annotation = self.service.create(*args)
        except AnnotationError as e:
            self._on_commit_failed(e)
            return
        self._on_committed(annotation)

    def _on_committed(self, annotation: Annotation) -> None:
        self.set_annotations(self._annotations + (annotation,))
        self.annotation_committed.emit(annotation)

    def _on_commit_failed(self, error: Exception) -> None:
        if isinstance(error, ValidationError):
            self._report(str(error))
        else:
            self._report_failure(error)

    def _report_failure(self, error: Exception) -> None:
        logger.error(f"Annotation operation failed: {error}")
        self._report(self.FAILURE_MESSAGE)

    def _report(self, text: str) -> None:
        self.last_message = text
        self.message.emit(text)
