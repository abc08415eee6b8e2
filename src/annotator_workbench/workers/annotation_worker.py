"""Background execution of annotation store calls."""

from __future__ import annotations

import itertools
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from PyQt6.QtCore import QCoreApplication, QObject, QRunnable, QThreadPool, pyqtSignal, pyqtSlot

from ..core.service import AnnotationService

logger = logging.getLogger(__name__)

ResultCallback = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]


class _TaskSignals(QObject):
    """Signals emitted from pool threads; delivered on the runner's thread."""

    succeeded = pyqtSignal(str, int, object)  # channel, generation, result
    failed = pyqtSignal(str, int, object)  # channel, generation, exception


class AnnotationTask(QRunnable):
    """Runs a single store call on a pool thread."""

    def __init__(
        self,
        channel: str,
        generation: int,
        fn: Callable[..., Any],
        args: Tuple[Any, ...],
        kwargs: Dict[str, Any],
        signals: _TaskSignals,
    ) -> None:
        super().__init__()
        self.channel = channel
        self.generation = generation
        self._fn = fn
        self._args = args
        self._kwargs = kwargs
        self._signals = signals

    def run(self) -> None:
        try:
            result = self._fn(*self._args, **self._kwargs)
        except Exception as e:
            logger.error(f"Annotation task {self.channel}#{self.generation} failed: {e}")
            self._signals.failed.emit(self.channel, self.generation, e)
            return
        self._signals.succeeded.emit(self.channel, self.generation, result)


class AnnotationTaskRunner(QObject):
    """
    Runs annotation service calls off the interaction thread.

    Every submission belongs to a channel. Submitting again on a channel
    supersedes the earlier request: its result is dropped when it arrives.
    Calls already running are never interrupted.
    """

    result_ready = pyqtSignal(str, object)  # channel, result
    error_occurred = pyqtSignal(str, object)  # channel, exception

    def __init__(
        self,
        service: AnnotationService,
        pool: Optional[QThreadPool] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        """
        Initialize the runner.

        Args:
            service: Service whose methods are executed
            pool: Thread pool to use (a private single-thread pool by default)
            parent: Optional Qt parent
        """
        super().__init__(parent)
        self.service = service
        if pool is None:
            pool = QThreadPool(self)
            # One writer: keep store calls in submission order
            pool.setMaxThreadCount(1)
        self._pool = pool
        self._signals = _TaskSignals(self)
        self._signals.succeeded.connect(self._on_succeeded)
        self._signals.failed.connect(self._on_failed)

        self._generations: Dict[str, int] = {}
        self._callbacks: Dict[Tuple[str, int], Tuple[Optional[ResultCallback], Optional[ErrorCallback]]] = {}
        # Generations are unique per runner so a pruned channel can be reused
        self._counter = itertools.count(1)

    def submit(
        self,
        channel: Optional[str],
        fn: Callable[..., Any],
        *args: Any,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        **kwargs: Any,
    ) -> int:
        """
        Queue a call on the thread pool.

        Args:
            channel: Supersession key, or None for a call that is never superseded
            fn: Callable to run
            on_result: Called on this thread with the result
            on_error: Called on this thread with the exception

        Returns:
            Generation number of the submission
        """
        generation = next(self._counter)
        if channel is None:
            channel = f"task-{generation}"

        self._generations[channel] = generation
        for key in [k for k in self._callbacks if k[0] == channel]:
            del self._callbacks[key]
        self._callbacks[(channel, generation)] = (on_result, on_error)

        self._pool.start(AnnotationTask(channel, generation, fn, args, kwargs, self._signals))
        return generation

    def is_current(self, channel: str, generation: int) -> bool:
        return self._generations.get(channel) == generation

    # === Convenience wrappers ===

    def list_by_image(self, image_id: str, on_result: Optional[ResultCallback] = None) -> int:
        return self.submit(f"list:image:{image_id}", self.service.list_by_image, image_id, on_result=on_result)

    def list_by_project(self, project_id: str, on_result: Optional[ResultCallback] = None) -> int:
        return self.submit(
            f"list:project:{project_id}", self.service.list_by_project, project_id, on_result=on_result
        )

    def repair_corrupted(self, on_result: Optional[ResultCallback] = None) -> int:
        return self.submit("repair", self.service.repair_corrupted, on_result=on_result)

    def wait_for_done(self, msecs: int = -1) -> bool:
        """Block until queued calls finish, then deliver their results."""
        done = self._pool.waitForDone(msecs)
        QCoreApplication.processEvents()
        return done

    # === Result delivery ===

    def _take_callbacks(self, channel: str, generation: int):
        callbacks = self._callbacks.pop((channel, generation), None)
        if callbacks is None or not self.is_current(channel, generation):
            logger.debug(f"Dropping stale result for {channel}#{generation}")
            return None
        # Delivered: nothing newer is pending on this channel
        del self._generations[channel]
        return callbacks

    @pyqtSlot(str, int, object)
    def _on_succeeded(self, channel: str, generation: int, result: object) -> None:
        callbacks = self._take_callbacks(channel, generation)
        if callbacks is None:
            return
        on_result, _ = callbacks
        if on_result is not None:
            on_result(result)
        self.result_ready.emit(channel, result)

    @pyqtSlot(str, int, object)
    def _on_failed(self, channel: str, generation: int, error: object) -> None:
        callbacks = self._take_callbacks(channel, generation)
        if callbacks is None:
            return
        _, on_error = callbacks
        if on_error is not None:
            on_error(error)
        self.error_occurred.emit(channel, error)
