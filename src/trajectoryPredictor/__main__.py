# Licensed under the PolyForm Noncommercial License 1.0.0
"""
Command-line interface for the trajectory predictor.
"""

import argparse
import logging


def example_vessel():
    from .models import Part, Vessel

    return Vessel(
        name="Reentry capsule",
        parts=(
            Part("Command pod", mass=840.0, area=1.2, drag_coefficient=0.6, cross_drag_coefficient=1.1,
                 lift_coefficient=0.3),
            Part("Heat shield", mass=300.0, area=1.4, drag_coefficient=0.9, cross_drag_coefficient=0.4),
        ),
        reference_area=1.5,
    )


def main(argv=None):
    """Predict the reentry of a capsule from a low Kerbin orbit."""
    from . import Settings, Trajectory, VesselState, g0, kerbin
    from .plotting import plot_patches

    parser = argparse.ArgumentParser(prog="trajectoryPredictor", description=main.__doc__)
    parser.add_argument("--step", type=float, default=0.1, help="atmospheric integration step (s)")
    parser.add_argument("--patches", type=int, default=3, help="maximal number of patches")
    parser.add_argument("--model", choices=("parts", "simple"), default="parts", help="aerodynamic model")
    parser.add_argument("--retrograde", action="store_true", help="fly heat shield first")
    parser.add_argument("--periapsis", type=float, default=30.0, help="periapsis altitude (km)")
    parser.add_argument("--target", nargs=2, type=float, metavar=("LAT", "LON"), help="landing target (degrees)")
    parser.add_argument("--plot", action="store_true", help="show the predicted trajectory")
    parser.add_argument("--save", metavar="PATH", help="save the plot to PATH")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    print("Trajectory Predictor")
    print("====================")

    body = kerbin()
    settings = Settings(integration_step_size=args.step, max_patch_count=args.patches,
                        aerodynamic_model=args.model, default_descent_is_retro=args.retrograde)
    trajectory = Trajectory(settings)
    if args.target:
        trajectory.set_target(body, *args.target)

    # 100 km apoapsis, periapsis inside the atmosphere (vis-viva)
    apoapsis = body.radius + 100000.0
    periapsis = body.radius + args.periapsis * 1000.0
    semi_major_axis = 0.5 * (apoapsis + periapsis)
    speed = (body.gravitational_parameter * (2.0 / apoapsis - 1.0 / semi_major_axis)) ** 0.5
    state = VesselState(body, 0.0, (apoapsis, 0.0, 0.0), (0.0, speed, 0.0))

    print("Running prediction...")
    patches = trajectory.update(example_vessel(), state)

    for index, patch in enumerate(patches):
        kind = "atmosphere" if patch.is_atmospheric else "space"
        samples = len(patch.atmospheric_trajectory)
        print(f"Patch {index + 1}: {kind:10s} {patch.start_time:9.1f} s -> {patch.end_time:9.1f} s"
              + (f" ({samples} samples)" if patch.is_atmospheric else ""))

    impact = trajectory.get_impact_position()
    if impact is None:
        print("\nNo impact predicted")
    else:
        impact_speed = float((trajectory.get_impact_velocity() ** 2).sum() ** 0.5)
        print(f"\nPrediction Complete!")
        print(f"Time till impact: {trajectory.get_time_till_impact(state.time):.1f} s")
        print(f"Impact position: {impact / 1000} km")
        print(f"Impact speed: {impact_speed:.1f} m/s")
        offset = trajectory.get_target_distance()
        if offset is not None:
            print(f"Target distance: {offset.distance / 1000:.2f} km "
                  f"(N {offset.north / 1000:.2f} km, E {offset.east / 1000:.2f} km)")
    print(f"Max aerodynamic acceleration: {trajectory.max_accel:.1f} m/s^2 ({trajectory.max_accel / g0:.1f} g)")
    print(f"Computation time: {trajectory.computation_time:.1f} ms")

    if args.plot or args.save:
        print("Plotting results...")
        plot_patches(patches, body, show=args.plot, save_path=args.save)


if __name__ == "__main__":
    main()
