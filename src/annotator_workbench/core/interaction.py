"""
Drawing and selection state machine.

The canvas interaction is modelled as a pure reducer: every pointer or
toolbar event maps the current state to a new state plus an optional
effect that the caller carries out (persisting a committed gesture).
States and events are immutable and hold no reference to any widget.

    Idle --select_tool(t)--> ToolArmed(t) --pointer_down--> Drawing(t, [p])
    Drawing --pointer_up (enough points)--> ToolArmed(t) + CommitGesture
    any --pointer_down on a shape--> Selected(a)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from PyQt6.QtCore import QPointF, QSizeF

from .hit_test import KEYPOINT_HIT_RADIUS, hit_test
from .models import Annotation
from .tools import MIN_POINTS, ToolKind

logger = logging.getLogger(__name__)


# === States ===

@dataclass(frozen=True)
class Idle:
    """No tool selected."""

    @property
    def tool(self) -> ToolKind:
        return ToolKind.NONE


@dataclass(frozen=True)
class ToolArmed:
    """A tool is selected and no gesture is in progress."""

    tool: ToolKind


@dataclass(frozen=True)
class Drawing:
    """A gesture is accumulating canvas-space points."""

    tool: ToolKind
    points: Tuple[QPointF, ...]


@dataclass(frozen=True)
class Selected:
    """An existing annotation is selected; tool is the one that was armed."""

    annotation: Annotation
    tool: ToolKind = ToolKind.NONE


InteractionState = Union[Idle, ToolArmed, Drawing, Selected]


# === Events ===

@dataclass(frozen=True)
class SelectTool:
    tool: ToolKind


@dataclass(frozen=True)
class PointerDown:
    """Pointer pressed at a canvas position over the given annotations."""

    position: QPointF
    annotations: Sequence[Annotation] = ()
    canvas_size: Optional[QSizeF] = None
    radius: float = KEYPOINT_HIT_RADIUS


@dataclass(frozen=True)
class PointerMove:
    position: QPointF


@dataclass(frozen=True)
class PointerUp:
    pass


@dataclass(frozen=True)
class ClearSelection:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


InteractionEvent = Union[SelectTool, PointerDown, PointerMove, PointerUp, ClearSelection, Cancel]


# === Effects ===

@dataclass(frozen=True)
class CommitGesture:
    """A finished gesture that should become an annotation."""

    tool: ToolKind
    points: Tuple[QPointF, ...]


@dataclass(frozen=True)
class DiscardGesture:
    """A gesture that ended without enough points."""

    tool: ToolKind
    points: Tuple[QPointF, ...]


Effect = Union[CommitGesture, DiscardGesture]


@dataclass(frozen=True)
class Transition:
    state: InteractionState
    effect: Optional[Effect] = None


def _armed(tool: ToolKind) -> InteractionState:
    return Idle() if tool == ToolKind.NONE else ToolArmed(tool)


# === Reducer ===

def _select_tool(state: InteractionState, event: SelectTool) -> Transition:
    tool = ToolKind(event.tool)
    if tool == ToolKind.NONE or tool == state.tool:
        return Transition(Idle())
    return Transition(ToolArmed(tool))


def _pointer_down(state: InteractionState, event: PointerDown) -> Transition:
    hit = None
    # No hit testing before the canvas is laid out
    laid_out = event.canvas_size is not None and not event.canvas_size.isEmpty()
    if event.annotations and laid_out:
        hit = hit_test(event.position, event.annotations, event.canvas_size, event.radius)
    if hit is not None:
        return Transition(Selected(hit, state.tool))

    if isinstance(state, (ToolArmed, Selected)) and state.tool != ToolKind.NONE:
        return Transition(Drawing(state.tool, (QPointF(event.position),)))
    return Transition(state)


def _pointer_move(state: InteractionState, event: PointerMove) -> Transition:
    if not isinstance(state, Drawing):
        return Transition(state)

    position = QPointF(event.position)
    if state.tool == ToolKind.BOUNDING_BOX:
        return Transition(Drawing(state.tool, (state.points[0], position)))
    return Transition(Drawing(state.tool, state.points + (position,)))


def _pointer_up(state: InteractionState, event: PointerUp) -> Transition:
    if not isinstance(state, Drawing):
        return Transition(state)

    if len(state.points) >= MIN_POINTS[state.tool]:
        return Transition(ToolArmed(state.tool), CommitGesture(state.tool, state.points))
    return Transition(ToolArmed(state.tool), DiscardGesture(state.tool, state.points))


def _clear_selection(state: InteractionState, event: ClearSelection) -> Transition:
    if isinstance(state, Selected):
        return Transition(_armed(state.tool))
    return Transition(state)


def _cancel(state: InteractionState, event: Cancel) -> Transition:
    if isinstance(state, Drawing):
        return Transition(ToolArmed(state.tool), DiscardGesture(state.tool, state.points))
    return Transition(state)


_HANDLERS = {
    SelectTool: _select_tool,
    PointerDown: _pointer_down,
    PointerMove: _pointer_move,
    PointerUp: _pointer_up,
    ClearSelection: _clear_selection,
    Cancel: _cancel,
}


def reduce(state: InteractionState, event: InteractionEvent) -> Transition:
    """
    Apply one event to an interaction state.

    Args:
        state: Current state
        event: Toolbar or pointer event

    Returns:
        Transition with the new state and an optional effect
    """
    try:
        handler = _HANDLERS[type(event)]
    except KeyError:
        raise TypeError(f"Unhandled interaction event: {event!r}") from None

    transition = handler(state, event)
    if transition.state != state or transition.effect is not None:
        logger.debug(
            f"{type(event).__name__}: {type(state).__name__} -> {type(transition.state).__name__}"
        )
    return transition


def initial_state() -> InteractionState:
    return Idle()
