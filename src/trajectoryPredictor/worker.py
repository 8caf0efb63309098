# Licensed under the PolyForm Noncommercial License 1.0.0
"""Background worker running prediction cycles off the host thread."""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional, Tuple

from .core import Trajectory
from .models import Patch, PredictionCancelled, WorldSnapshot

logger = logging.getLogger(__name__)


class EventType(enum.Enum):
    PERCENTAGE = "percentage"
    CANCELLED = "cancelled"


class PredictionWorker:
    """
    Runs `Trajectory.compute_patches` on a single background thread.

    Only one prediction cycle runs at a time. Callbacks are invoked on the worker
    thread.

    Args:
        trajectory: Trajectory the patches are published to
        on_update: Called with the new patches when a cycle completes
        on_error: Called with the exception when a cycle fails
        on_report: Called with (EventType, value) for progress and cancellation
    """

    def __init__(self, trajectory: Trajectory,
                 on_update: Optional[Callable[[Tuple[Patch, ...]], None]] = None,
                 on_error: Optional[Callable[[BaseException], None]] = None,
                 on_report: Optional[Callable[[EventType, Optional[int]], None]] = None):
        self.trajectory = trajectory
        self.on_update = on_update
        self.on_error = on_error
        self.on_report = on_report

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="trajectory-prediction")
        self._lock = threading.Lock()
        self._future: Optional[Future] = None
        self._cancel_event: Optional[threading.Event] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.shutdown()

    @property
    def busy(self) -> bool:
        future = self._future
        return future is not None and not future.done()

    def submit(self, snapshot: WorldSnapshot) -> Future:
        """
        Start a prediction cycle for a snapshot.

        Returns:
            Future resolving to the new patches, or None if the cycle was cancelled

        Raises:
            RuntimeError: A cycle is already running
        """
        with self._lock:
            if self.busy:
                raise RuntimeError("a trajectory prediction is already running")
            logger.debug("Submitting prediction for %s at %.1f", snapshot.vessel.name, snapshot.state.time)
            self._cancel_event = threading.Event()
            self._future = self._executor.submit(self._run, snapshot, self._cancel_event)
            return self._future

    def cancel(self) -> None:
        """Request the running cycle to stop at its next cancellation point."""
        with self._lock:
            if self._cancel_event is not None:
                self._cancel_event.set()

    def shutdown(self, wait: bool = True) -> None:
        logger.debug("Shutting down prediction worker")
        self.cancel()
        self._executor.shutdown(wait=wait)

    def _report(self, event_type: EventType, value: Optional[int] = None) -> None:
        if self.on_report is not None:
            self.on_report(event_type, value)

    def _run(self, snapshot: WorldSnapshot, cancel_event: threading.Event) -> Optional[Tuple[Patch, ...]]:
        try:
            patches = self.trajectory.compute_patches(
                snapshot, cancel_event=cancel_event,
                progress=lambda percent: self._report(EventType.PERCENTAGE, percent))
        except PredictionCancelled:
            logger.debug("Prediction for %s cancelled", snapshot.vessel.name)
            self._report(EventType.CANCELLED)
            return None
        except Exception as exc:
            if self.on_error is not None:
                self.on_error(exc)
            raise

        if self.on_update is not None:
            self.on_update(patches)
        return patches
