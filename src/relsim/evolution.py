"""
Time evolution engine for the relativistic N-body simulation.

The Simulation class owns the body collection and drives the per-step
pipeline. One call to `Simulation.step()` runs exactly one logical tick:

  1. Reset every body's accumulated field, potential and force
  2. Accumulate gravitational and electric interactions for every pair
  3. Calibrate every body (escape and infalling frames)
  4. Compute every body's acceleration
  5. Choose the global timestep from the per-pair bounds
  6. Integrate every body and advance coordinate time
  7. Detect collisions and merge bodies (absorbed bodies are only marked)
  8. Compact the collection, dropping bodies marked for removal

PARALLELISM:
When there are at least twice as many bodies as workers, phases 1-4 are
split into contiguous index ranges, one per worker thread. Each worker only
writes to the bodies in its own range and reads the full list, so there is
no shared accumulator to race on; the join at the end of each phase orders
the phases. Timestep selection, integration and collisions stay on the
control thread.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from relsim import constants as const
from relsim.body import Body, recalibrate
from relsim.config import BodyRequest, SimulationParameters
from relsim.diagnostics import assert_finite_state
from relsim.initialization import create_body, initialize_bodies
from relsim.state import BodySnapshot, FrameSnapshot
from relsim.units import UnitSystem

logger = logging.getLogger(__name__)


def select_timestep(
    bounds: Iterable[Optional[Tuple[float, float]]],
    default_timestep: float = const.DEFAULT_TIMESTEP
) -> float:
    """
    Choose the global timestep from per-pair (min, max) bounds.

    Tracks the largest pair minimum and the smallest pair maximum. As soon as
    the running maximum drops to or below the running minimum, that maximum
    is returned: the tightest constraint wins. Otherwise the largest minimum
    is used, or default_timestep if there were no positive bounds. Pairs
    whose bounds are None constrain nothing and are skipped.

    Args:
        bounds: Iterable of (min_timestep, max_timestep) or None per body pair
        default_timestep: Fallback timestep

    Returns:
        float: Timestep for this step
    """
    global_min = 0.0
    global_max = np.inf
    for pair in bounds:
        if pair is None:
            continue
        min_timestep, max_timestep = pair
        global_min = max(global_min, min_timestep)
        global_max = min(global_max, max_timestep)
        if global_max <= global_min:
            return global_max
    if global_min > 0.0:
        return global_min
    return default_timestep


def partition(n_items: int, n_parts: int) -> List[Tuple[int, int]]:
    """
    Split range(n_items) into at most n_parts contiguous (start, end) ranges.

    Range sizes differ by at most one.
    """
    n_parts = max(1, min(n_parts, n_items))
    base, extra = divmod(n_items, n_parts)
    ranges = []
    start = 0
    for part in range(n_parts):
        end = start + base + (1 if part < extra else 0)
        ranges.append((start, end))
        start = end
    return ranges


class Simulation:
    """
    Owner of the live bodies and driver of the step pipeline.

    Args:
        units: Unit system shared by every body
        bodies: Initial bodies (must use `units`)
        default_timestep: Timestep used when no pair constrains the step
        worker_count: Worker threads (None or 0 = hardware parallelism)
        parallel: Allow the partitioned multi-threaded phases
        check_finite_state: Raise NonFiniteStateError if integration
            produces a NaN or infinite position or velocity
    """

    def __init__(
        self,
        units: UnitSystem,
        bodies: Optional[Sequence[Body]] = None,
        default_timestep: float = const.DEFAULT_TIMESTEP,
        worker_count: Optional[int] = None,
        parallel: bool = True,
        check_finite_state: bool = True
    ):
        if not default_timestep > 0:
            raise ValueError(f"default_timestep must be positive, got {default_timestep}")

        self.units = units
        self.default_timestep = default_timestep
        self.worker_count = worker_count or os.cpu_count() or 1
        self.parallel = parallel
        self.check_finite_state = check_finite_state

        self.bodies: List[Body] = []
        self.time = 0.0  # coordinate time [active time unit]
        self.step_count = 0
        self.last_timestep = 0.0
        self.total_merges = 0

        self._executor: Optional[ThreadPoolExecutor] = None

        for body in bodies or ():
            self.add_body(body)

    # ------------------------------------------------------------------
    # Collection management
    # ------------------------------------------------------------------

    @property
    def n_bodies(self) -> int:
        """Number of live bodies."""
        return len(self.bodies)

    def add_body(self, body: Body) -> Body:
        """
        Add a body to the live set.

        Raises:
            ValueError: If the body was built with a different unit system
        """
        if body.units is not self.units:
            raise ValueError(
                f"Body '{body.label}' was created with a different unit system"
            )
        self.bodies.append(body)
        return body

    def create_body(self, request: BodyRequest) -> Body:
        """Convert a body-creation request and add the resulting body."""
        return self.add_body(create_body(request, self.units))

    def get_body(self, label: str) -> Body:
        """Live body with the given label."""
        for body in self.bodies:
            if body.label == label:
                return body
        raise KeyError(label)

    # ------------------------------------------------------------------
    # Worker pool
    # ------------------------------------------------------------------

    def _use_workers(self) -> bool:
        return self.parallel and self.worker_count > 1 and self.n_bodies >= 2 * self.worker_count

    def _run_phase(self, work: Callable[[int, int], None]):
        """Run `work(start, end)` over all bodies, partitioned when worthwhile."""
        n = self.n_bodies
        if not self._use_workers():
            work(0, n)
            return

        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.worker_count, thread_name_prefix='relsim'
            )
        futures = [
            self._executor.submit(work, start, end)
            for start, end in partition(n, self.worker_count)
        ]
        # Join before the next phase; re-raises worker exceptions
        for future in futures:
            future.result()

    def close(self):
        """Shut down the worker pool (it is recreated on demand)."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ------------------------------------------------------------------
    # Pipeline phases
    # ------------------------------------------------------------------

    def _reset_range(self, start: int, end: int):
        for body in self.bodies[start:end]:
            body.reset_interactions()

    def _accumulate_range(self, start: int, end: int):
        # One-directional: each worker only writes to bodies[start:end]
        bodies = self.bodies
        for i in range(start, end):
            target = bodies[i]
            for j, source in enumerate(bodies):
                if i != j:
                    target.accumulate_interaction_with(source)

    def _accumulate_pairs(self):
        bodies = self.bodies
        n = len(bodies)
        for i in range(n):
            for j in range(i + 1, n):
                bodies[i].accumulate_interaction_with(bodies[j])
                bodies[j].accumulate_interaction_with(bodies[i])

    def _calibrate_range(self, start: int, end: int):
        for body in self.bodies[start:end]:
            body.apply_calibration(recalibrate(body))

    def _accelerate_range(self, start: int, end: int):
        for body in self.bodies[start:end]:
            body.calc_acceleration()

    def accumulate_interactions(self):
        """Phases 1-2: reset and re-sum all pairwise fields and forces."""
        self._run_phase(self._reset_range)
        if self._use_workers():
            self._run_phase(self._accumulate_range)
        else:
            self._accumulate_pairs()

    def pair_bounds(self):
        """Yield the (min, max) timestep bounds, or None, of every unordered live pair."""
        bodies = self.bodies
        n = len(bodies)
        for i in range(n):
            for j in range(i + 1, n):
                yield bodies[i].calc_timestep_bounds(bodies[j])

    def compute_timestep(self) -> float:
        """Phase 5: global timestep from all pair bounds."""
        return select_timestep(self.pair_bounds(), self.default_timestep)

    def _integrate(self, timestep: float):
        for body in self.bodies:
            body.move(timestep)
            if self.check_finite_state:
                assert_finite_state(body)

    def resolve_collisions(self) -> int:
        """
        Phase 7: merge every colliding pair.

        The body with the larger total mass absorbs the other (ties go to the
        earlier body). Absorbed bodies are only marked here; `compact` removes
        them.

        Returns:
            Number of merges
        """
        bodies = self.bodies
        n = len(bodies)
        merges = 0
        for i in range(n):
            first = bodies[i]
            if first.marked_for_removal:
                continue
            for j in range(i + 1, n):
                second = bodies[j]
                if second.marked_for_removal:
                    continue
                if not first.is_colliding_with(second):
                    continue

                if first.total_mass >= second.total_mass:
                    absorber, absorbed = first, second
                else:
                    absorber, absorbed = second, first
                was_black_hole = absorber.is_black_hole
                absorber.absorb(absorbed)
                merges += 1
                logger.info(
                    "t=%.6e: '%s' absorbed '%s' (mass %.4e)",
                    self.time, absorber.label, absorbed.label, absorber.total_mass
                )
                if absorber.is_black_hole and not was_black_hole:
                    logger.info("'%s' collapsed into a black hole", absorber.label)

                if first.marked_for_removal:
                    break
        return merges

    def compact(self) -> int:
        """Phase 8: drop bodies marked for removal. Returns how many were dropped."""
        before = len(self.bodies)
        self.bodies = [body for body in self.bodies if not body.marked_for_removal]
        return before - len(self.bodies)

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def step(self) -> float:
        """
        Run one complete step of the pipeline.

        Returns:
            float: The timestep that was taken
        """
        self.accumulate_interactions()
        self._run_phase(self._calibrate_range)
        self._run_phase(self._accelerate_range)

        timestep = self.compute_timestep()
        self._integrate(timestep)
        self.time += timestep

        merges = self.resolve_collisions()
        self.compact()

        self.total_merges += merges
        self.step_count += 1
        self.last_timestep = timestep

        logger.debug(
            "step %d: dt=%.4e t=%.6e bodies=%d merges=%d",
            self.step_count, timestep, self.time, self.n_bodies, merges
        )
        return timestep

    def run(self, n_steps: int) -> float:
        """Run `n_steps` steps. Returns the coordinate time elapsed."""
        start_time = self.time
        for _ in range(n_steps):
            self.step()
        return self.time - start_time

    def run_for(self, budget_seconds: float, max_steps: Optional[int] = None) -> int:
        """
        Run whole steps until a wall-clock frame budget is used up.

        At least one step is always taken; a step is never interrupted.

        Args:
            budget_seconds: Real-time budget for this frame
            max_steps: Optional cap on the number of steps

        Returns:
            int: Number of steps taken
        """
        started = time.perf_counter()
        steps = 0
        while True:
            self.step()
            steps += 1
            if max_steps is not None and steps >= max_steps:
                break
            if time.perf_counter() - started >= budget_seconds:
                break
        return steps

    def snapshot(self) -> FrameSnapshot:
        """Current render state for the visualization shell."""
        return FrameSnapshot(
            time=self.time,
            timestep=self.last_timestep,
            step_count=self.step_count,
            bodies=tuple(BodySnapshot.from_body(body) for body in self.bodies),
        )

    def __repr__(self) -> str:
        return (f"Simulation(t={self.time:.6e} {self.units.time_unit}, "
                f"step={self.step_count}, bodies={self.n_bodies}, "
                f"merges={self.total_merges})")


def evolve_system(
    sim: Simulation,
    n_steps: int,
    show_progress: bool = True,
    on_step: Optional[Callable[[FrameSnapshot], None]] = None
) -> dict:
    """
    Evolve the simulation forward for n_steps steps.

    Args:
        sim: Simulation (modified in place)
        n_steps: Number of steps to run
        show_progress: Whether to show progress bar (tqdm)
        on_step: Optional callback receiving a FrameSnapshot after each step

    Returns:
        Dictionary with simulation statistics:
        - total_merges: Merges during this call
        - final_time: Final coordinate time
        - final_step: Final step number
        - n_bodies: Live bodies at the end
        - min_timestep / max_timestep: Extremes of the chosen timesteps
    """
    merges_before = sim.total_merges
    timesteps = []

    if show_progress:
        pbar = tqdm(total=n_steps, desc="Evolving system", unit="steps")

    for _ in range(n_steps):
        n_before = sim.n_bodies
        timesteps.append(sim.step())

        if on_step is not None:
            on_step(sim.snapshot())

        if show_progress:
            pbar.update(1)
            if sim.n_bodies != n_before:
                pbar.set_postfix({
                    'merges': sim.total_merges - merges_before,
                    'bodies': sim.n_bodies
                })

    if show_progress:
        pbar.close()

    return {
        'total_merges': sim.total_merges - merges_before,
        'final_time': sim.time,
        'final_step': sim.step_count,
        'n_bodies': sim.n_bodies,
        'min_timestep': min(timesteps) if timesteps else 0.0,
        'max_timestep': max(timesteps) if timesteps else 0.0,
    }


def build_simulation(params: SimulationParameters) -> Simulation:
    """Create the unit system, bodies and Simulation described by `params`."""
    units = params.build_units()
    bodies = initialize_bodies(params, units)
    return Simulation(
        units,
        bodies,
        default_timestep=params.default_timestep,
        worker_count=params.worker_count or None,
        parallel=params.parallel,
        check_finite_state=params.check_finite_state,
    )


def run_simulation(params: SimulationParameters, show_progress: bool = True) -> tuple:
    """
    Run a complete simulation from initialization to completion.

    Args:
        params: SimulationParameters object
        show_progress: Whether to show progress bar

    Returns:
        (sim, stats) tuple:
        - sim: Final Simulation object
        - stats: Dictionary with simulation statistics
    """
    sim = build_simulation(params)
    logger.info(
        "Running %s: %d steps, %d bodies, units %r",
        params.simulation_name, params.n_steps, sim.n_bodies, sim.units
    )

    with sim:
        stats = evolve_system(sim, params.n_steps, show_progress=show_progress)

    logger.info(
        "Simulation complete: t=%.6e %s, %d bodies, %d merges",
        sim.time, sim.units.time_unit, sim.n_bodies, stats['total_merges']
    )
    return sim, stats
