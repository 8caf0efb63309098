"""Tests for the plotting helper and the command-line entry point."""

from trajectoryPredictor import Trajectory
from trajectoryPredictor.__main__ import main
from trajectoryPredictor.plotting import patch_samples, plot_patches

from conftest import suborbital_state


def test_patch_samples(body, capsule, settings):
    patches = Trajectory(settings).update(capsule, suborbital_state(body))

    times, positions = patch_samples(patches[0], samples=50)
    assert times.shape == (50,) and positions.shape == (50, 3)
    assert times[0] == patches[0].start_time and times[-1] == patches[0].end_time

    times, positions = patch_samples(patches[1])
    assert len(times) == len(patches[1].atmospheric_trajectory)


def test_plot_patches(body, capsule, settings, tmp_path):
    patches = Trajectory(settings).update(capsule, suborbital_state(body))
    path = tmp_path / "trajectory.png"
    plot_patches(patches, body, show=False, save_path=str(path))
    assert path.exists()


def test_command_line(capsys, tmp_path):
    path = tmp_path / "reentry.png"
    main(["--step", "0.5", "--model", "simple", "--periapsis", "-20", "--target", "0", "90", "--save", str(path)])

    output = capsys.readouterr().out
    assert "Trajectory Predictor" in output
    assert "Time till impact" in output
    assert "Target distance" in output
    assert path.exists()
