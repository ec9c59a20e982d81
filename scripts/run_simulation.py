"""
Main simulation runner script.

Usage:
    python scripts/run_simulation.py configs/binary_star.yaml

This script:
1. Loads configuration from YAML file
2. Builds the unit system and bodies
3. Runs the simulation with progress bar (or frame by frame with --frames)
4. Prints a summary of the final state
"""

import sys
import argparse
import time
from pathlib import Path

# Add src to path so we can import relsim package
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from relsim.config import SimulationParameters
from relsim.diagnostics import (
    calculate_total_energy,
    calculate_total_momentum,
    check_state,
    validate_initial_conditions,
)
from relsim.evolution import build_simulation, evolve_system


def main():
    parser = argparse.ArgumentParser(
        description='Run relativistic N-body simulation'
    )
    parser.add_argument(
        'config',
        type=str,
        help='Path to YAML configuration file'
    )
    parser.add_argument(
        '--steps',
        type=int,
        default=None,
        help='Number of steps (default: n_steps from config)'
    )
    parser.add_argument(
        '--frames',
        type=int,
        default=None,
        help='Run this many frames of frame_budget_seconds each instead of fixed steps'
    )
    parser.add_argument(
        '--no-progress',
        action='store_true',
        help='Disable the progress bar'
    )
    parser.add_argument(
        '--profile',
        action='store_true',
        help='Enable profiling'
    )

    args = parser.parse_args()

    # Load configuration
    print(f"Loading configuration from {args.config}...")
    params = SimulationParameters.from_yaml(args.config)
    params.configure_logging()

    issues = params.validate()
    errors = [issue for issue in issues if issue.startswith("ERROR")]
    if errors:
        for error in errors:
            print(f"  {error}")
        print("Configuration has ERRORS; run scripts/validate_config.py for details.")
        sys.exit(1)

    n_steps = args.steps if args.steps is not None else params.n_steps

    # Print configuration summary
    print("=" * 70)
    print(f"SIMULATION: {params.simulation_name}")
    print("=" * 70)
    print(f"Units: {params.space_unit} / {params.time_unit} / {params.mass_unit} / {params.charge_unit}")
    print(f"Precision: {params.precision_digits} digits")
    print(f"Bodies: {params.n_bodies}")
    print(f"Default timestep: {params.default_timestep} {params.time_unit}")
    if args.frames:
        print(f"Frames: {args.frames} x {params.frame_budget_seconds} s")
    else:
        print(f"Steps: {n_steps}")
    print("=" * 70)
    print()

    # Initialize simulation
    print("Initializing simulation...")
    sim = build_simulation(params)
    print(f"Initialized {sim.n_bodies} bodies")
    for issue in validate_initial_conditions(sim.bodies):
        print(f"  {issue}")
    print()

    energy_start = calculate_total_energy(sim.bodies, sim.units)
    momentum_start = calculate_total_momentum(sim.bodies)

    # Run simulation
    print("Starting simulation...")
    start_time = time.time()

    if args.profile:
        import cProfile
        import pstats
        profiler = cProfile.Profile()
        profiler.enable()

    with sim:
        if args.frames:
            total_steps = 0
            for _ in range(args.frames):
                total_steps += sim.run_for(params.frame_budget_seconds)
            stats = {
                'total_merges': sim.total_merges,
                'final_time': sim.time,
                'final_step': sim.step_count,
                'n_bodies': sim.n_bodies,
            }
            print(f"Ran {total_steps} steps in {args.frames} frames")
        else:
            stats = evolve_system(sim, n_steps, show_progress=not args.no_progress)

    if args.profile:
        profiler.disable()
        profile_stats = pstats.Stats(profiler)
        profile_stats.sort_stats('cumulative')
        print("\n" + "=" * 70)
        print("PROFILING RESULTS (Top 20 functions)")
        print("=" * 70)
        profile_stats.print_stats(20)

    elapsed_time = time.time() - start_time

    print()
    print("=" * 70)
    print(f"Simulation completed in {elapsed_time:.1f} seconds")
    print("=" * 70)
    print()

    energy_end = calculate_total_energy(sim.bodies, sim.units)
    momentum_end = calculate_total_momentum(sim.bodies)
    health = check_state(sim)

    print("=" * 70)
    print("QUICK RESULTS SUMMARY")
    print("=" * 70)
    print(f"Coordinate time: {stats['final_time']:.6e} {params.time_unit}")
    print(f"Steps: {stats['final_step']}")
    print(f"Merges: {stats['total_merges']}")
    print(f"Remaining bodies: {stats['n_bodies']}")
    if energy_start != 0.0:
        print(f"Energy change: {100.0 * (energy_end - energy_start) / abs(energy_start):.4f}%")
    print(f"Momentum change: {momentum_end - momentum_start}")
    print(f"State stable: {health['is_stable']}")
    for warning in health['warnings']:
        print(f"  {warning}")
    print("=" * 70)
    print()
    print(sim.snapshot())
    print()
    print("Done!")


if __name__ == '__main__':
    main()
