# Licensed under the PolyForm Noncommercial License 1.0.0
"""Plotting functions for predicted trajectories."""

from typing import Optional, Sequence

import numpy as np
import matplotlib.pyplot as plt

from .models import CelestialBody, Patch

ORBIT_SAMPLES = 200


def patch_samples(patch: Patch, samples: int = ORBIT_SAMPLES):
    """
    Sample a patch as arrays of times and body-relative positions.

    Returns:
        Tuple of (times, positions with shape (n, 3))
    """
    if patch.is_atmospheric:
        times = np.array([point.time for point in patch.atmospheric_trajectory])
        positions = np.array([point.position for point in patch.atmospheric_trajectory])
        return times, positions

    end = patch.end_time
    if not np.isfinite(end):
        # open orbit without a sphere of influence, show the first hours
        end = patch.start_time + 6 * 3600.0
    times = np.linspace(patch.start_time, end, samples)
    positions = np.array([patch.space_orbit.position_at(t) for t in times])
    return times, positions


def plot_patches(patches: Sequence[Patch], body: CelestialBody, show: bool = True,
                 save_path: Optional[str] = None) -> None:
    """
    Plot predicted patches.

    Args:
        patches: Patches of a prediction
        body: Body the prediction starts around
        show: Whether to display the plot
        save_path: If provided, save the plot to this path
    """
    fig, axes = plt.subplots(1, 2, figsize=(15, 7))
    colors = plt.cm.viridis(np.linspace(0, 1, max(1, len(patches))))

    # 1. Ground track in the orbital plane projection
    for index, (patch, color) in enumerate(zip(patches, colors)):
        times, positions = patch_samples(patch)
        kind = "atmosphere" if patch.is_atmospheric else "space"
        axes[0].plot(positions[:, 0] / 1000, positions[:, 1] / 1000, color=color,
                     label=f"Patch {index + 1} ({kind})")

        # 2. Altitude vs Time
        altitude = np.linalg.norm(positions, axis=1) - body.radius
        axes[1].plot(times - patches[0].start_time, altitude / 1000, color=color, label=f"Patch {index + 1}")

    circle = plt.Circle((0, 0), body.radius / 1000, color='green', alpha=0.3)
    axes[0].add_artist(circle)
    if body.has_atmosphere:
        atmosphere = plt.Circle((0, 0), (body.radius + body.atmosphere_depth) / 1000,
                                color='blue', alpha=0.1)
        axes[0].add_artist(atmosphere)

    impact = patches[-1].raw_impact_position if patches else None
    if impact is not None:
        axes[0].plot(impact[0] / 1000, impact[1] / 1000, 'rx', markersize=10, label="Impact")

    axes[0].set_aspect('equal')
    axes[0].set_title(f"Trajectory Around {body.name}")
    axes[0].set_xlabel("x [km]")
    axes[0].set_ylabel("y [km]")
    axes[0].legend()

    axes[1].set_title("Altitude vs Time")
    axes[1].set_xlabel("Time [s]")
    axes[1].set_ylabel("Altitude [km]")
    axes[1].legend()

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')
    if show:
        plt.show()

    plt.close(fig)
