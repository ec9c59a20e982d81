"""
Free-roaming observer.

The observer flies through the coordinate space independently of the
bodies. Its position wraps around the simulation box (the space is toroidal
for the observer only) and it can map body events into its own rest frame.
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from relsim.body import as_vector
from relsim.relativity import (
    clamp_speed,
    lorentz_reciprocal,
    lorentz_transform_space,
    lorentz_transform_time,
    velocity_add,
    wrap_around_pos,
)
from relsim.units import UnitSystem


@dataclass(frozen=True, eq=False)
class ObservedEvent:
    """A body event expressed in the observer's rest frame."""

    label: str
    position: np.ndarray  # relative to the observer
    time: float


class Observer:
    """
    Camera-like observer moving through the coordinate frame.

    Args:
        units: Active unit system
        position: Initial coordinate position
        velocity: Initial coordinate velocity (clamped below max_speed)
    """

    def __init__(
        self,
        units: UnitSystem,
        position: Sequence[float] = (0.0, 0.0, 0.0),
        velocity: Sequence[float] = (0.0, 0.0, 0.0)
    ):
        self.units = units
        self.position = _wrap(as_vector(position, 'position'), units)
        self.velocity = clamp_speed(as_vector(velocity, 'velocity'), units.max_speed)
        self.proper_time = 0.0

    @property
    def lorentz_reciprocal(self) -> float:
        return lorentz_reciprocal(self.velocity, self.units.c, self.units.max_speed)

    def accelerate(self, delta_velocity: Sequence[float]):
        """Compose a velocity change (measured in the observer's frame)."""
        delta = as_vector(delta_velocity, 'delta_velocity')
        self.velocity = velocity_add(self.velocity, delta, self.units.c, self.units.max_speed)

    def advance(self, timestep: float):
        """Move for `timestep` of coordinate time, wrapping at the box edges."""
        self.proper_time += timestep * self.lorentz_reciprocal
        self.position = _wrap(self.position + self.velocity * timestep, self.units)

    def observe_event(self, position: Sequence[float], time: float) -> Tuple[np.ndarray, float]:
        """
        Boost a coordinate event into the observer's rest frame.

        The event is first taken relative to the observer's current position.

        Returns:
            (position, time) in the observer frame
        """
        relative = as_vector(position, 'position') - self.position
        units = self.units
        boosted = lorentz_transform_space(relative, time, self.velocity, units.c, units.max_speed)
        boosted_time = lorentz_transform_time(relative, time, self.velocity, units.c, units.max_speed)
        return boosted, boosted_time

    def observe(self, body, time: float) -> ObservedEvent:
        """Where and when `body` is, at coordinate time `time`, for this observer."""
        position, event_time = self.observe_event(body.position, time)
        return ObservedEvent(label=body.label, position=position, time=event_time)

    def __repr__(self):
        return f"Observer(pos={self.position}, v={self.velocity})"


def _wrap(position: np.ndarray, units: UnitSystem) -> np.ndarray:
    """Wrap a position into the box of `units` (see wrap_around_pos)."""
    return wrap_around_pos(position, units.max_axis_distance)
