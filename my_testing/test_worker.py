"""Unit tests for the background prediction worker."""

import threading

import numpy as np
import pytest

from trajectoryPredictor import EventType, PredictionWorker, SnapshotError, Trajectory, VesselState

from conftest import circular_state, suborbital_state

TIMEOUT = 60


def test_prediction_runs_in_the_background(body, capsule, settings):
    trajectory = Trajectory(settings)
    updates, reports = [], []

    with PredictionWorker(trajectory, on_update=updates.append,
                          on_report=lambda event, value: reports.append((event, value))) as worker:
        future = worker.submit(trajectory.capture(capsule, suborbital_state(body)))
        patches = future.result(timeout=TIMEOUT)

    assert len(patches) == 2
    assert updates == [patches]
    assert trajectory.patches == patches
    assert reports and all(event is EventType.PERCENTAGE for event, _ in reports)


def test_cancel_a_running_prediction(body, capsule, settings):
    trajectory = Trajectory(settings)
    started = threading.Event()
    release = threading.Event()
    reports = []

    def on_report(event, value):
        reports.append(event)
        if event is EventType.PERCENTAGE:
            started.set()
            release.wait(TIMEOUT)

    with PredictionWorker(trajectory, on_report=on_report) as worker:
        future = worker.submit(trajectory.capture(capsule, suborbital_state(body)))
        assert started.wait(TIMEOUT)

        assert worker.busy
        with pytest.raises(RuntimeError):
            worker.submit(trajectory.capture(capsule, suborbital_state(body)))

        worker.cancel()
        release.set()
        assert future.result(timeout=TIMEOUT) is None

    assert reports[-1] is EventType.CANCELLED
    assert trajectory.patches == ()
    assert trajectory.error_count == 0


def test_worker_reports_errors(body, capsule, settings):
    trajectory = Trajectory(settings)
    errors = []
    state = VesselState(body, 0.0, (np.inf, 0.0, 0.0), (0.0, 0.0, 0.0))

    with PredictionWorker(trajectory, on_error=errors.append) as worker:
        future = worker.submit(trajectory.capture(capsule, state))
        assert isinstance(future.exception(timeout=TIMEOUT), SnapshotError)

        assert not worker.busy
        # the worker accepts a new prediction after a failure
        patches = worker.submit(trajectory.capture(capsule, circular_state(body, 100000.0))).result(timeout=TIMEOUT)

    assert len(errors) == 1 and isinstance(errors[0], SnapshotError)
    assert trajectory.error_count == 1
    assert len(patches) == 1
