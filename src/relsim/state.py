"""
Per-step output handed to the visualization shell.

A FrameSnapshot is an immutable copy of what a renderer needs after a step:
each live body's position, length-contraction scale factors, colour and
black-hole flag, plus the coordinate time and the timestep just taken.
Snapshots hold copies, so the simulation can keep stepping while a frame is
being drawn.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True, eq=False)
class BodySnapshot:
    """Render state of one body."""

    label: str
    position: np.ndarray  # coordinate position [active length unit]
    length_scale: np.ndarray  # per-axis contraction factors in (0, 1]
    color: Tuple[float, float, float]
    is_black_hole: bool
    rest_radius: float
    proper_time: float

    @classmethod
    def from_body(cls, body) -> 'BodySnapshot':
        return cls(
            label=body.label,
            position=body.position.copy(),
            length_scale=body.length_scale.copy(),
            color=tuple(body.display_color),
            is_black_hole=body.is_black_hole,
            rest_radius=body.rest_radius,
            proper_time=body.proper_time,
        )


@dataclass(frozen=True, eq=False)
class FrameSnapshot:
    """Render state of the whole simulation after a step."""

    time: float  # accumulated coordinate time
    timestep: float  # last chosen timestep
    step_count: int
    bodies: Tuple[BodySnapshot, ...]

    @property
    def n_bodies(self) -> int:
        """Number of live bodies in the frame."""
        return len(self.bodies)

    @property
    def n_black_holes(self) -> int:
        """Number of black holes in the frame."""
        return sum(1 for body in self.bodies if body.is_black_hole)

    @property
    def positions(self) -> np.ndarray:
        """All body positions, shape (N, 3)."""
        if not self.bodies:
            return np.zeros((0, 3))
        return np.array([body.position for body in self.bodies])

    @property
    def length_scales(self) -> np.ndarray:
        """All length-contraction scales, shape (N, 3)."""
        if not self.bodies:
            return np.zeros((0, 3))
        return np.array([body.length_scale for body in self.bodies])

    def get(self, label: str) -> BodySnapshot:
        """Snapshot of the body with the given label."""
        for body in self.bodies:
            if body.label == label:
                return body
        raise KeyError(label)

    def __repr__(self) -> str:
        lines = [
            f"FrameSnapshot(time={self.time:.6e}, timestep={self.timestep:.3e}, "
            f"step={self.step_count})",
            f"  Bodies: {self.n_bodies} ({self.n_black_holes} black holes)",
        ]
        for body in self.bodies:
            kind = "BH" if body.is_black_hole else "  "
            lines.append(f"    {kind} {body.label}: {body.position}")
        return "\n".join(lines)
