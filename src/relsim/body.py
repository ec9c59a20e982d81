"""
Massive, charged, finite-radius bodies.

A Body owns its physical state (mass, charge, rest radius, coordinate
position and velocity, proper time) and knows how to:
- exert gravitational and electric fields on a point
- accumulate the fields of other bodies
- calibrate its escape and infalling frames (via the pure `recalibrate`)
- compute its acceleration and its timestep bounds against another body
- integrate its own motion
- detect collisions and absorb another body

All quantities are in the units of the UnitSystem the body was created with.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Tuple

import numpy as np

from relsim import constants as const
from relsim.exceptions import InvalidMassError
from relsim.physics import (
    em_field_mass,
    horizon_radius,
    sphere_field_and_potential,
    transverse_correction,
    traversal_time,
)
from relsim.relativity import (
    clamp_speed,
    dot,
    length_contraction_scale,
    lorentz_factor,
    lorentz_reciprocal,
    velocity_add,
    vector_norm,
)
from relsim.units import UnitSystem


def as_vector(value, name: str = 'vector') -> np.ndarray:
    """Convert a 3-component array-like to a float64 array of shape (3,)."""
    vector = np.array(value, dtype=np.float64)
    if vector.shape != (3,):
        raise ValueError(f"{name} must have exactly 3 components, got shape {vector.shape}")
    return vector


def _direction(vector: np.ndarray) -> np.ndarray:
    """Unit vector along `vector`, tolerating infinite components."""
    if np.all(np.isfinite(vector)):
        length = vector_norm(vector)
        if length > 0.0:
            return vector / length
        return np.zeros(3)
    signs = np.where(np.isinf(vector), np.sign(vector), 0.0)
    length = vector_norm(signs)
    if length > 0.0:
        return signs / length
    return np.zeros(3)


@dataclass(frozen=True, eq=False)
class DerivedState:
    """
    Calibration snapshot of a body for one step.

    Attributes:
        coord_recip: 1/γ of the coordinate velocity
        length_scale: Per-axis length-contraction scale (for rendering)
        grav_field: Gravitational field to integrate with (zeroed at a horizon)
        escape_velocity: Local escape velocity (away from the field)
        escape_recip: 1/γ of the escape velocity
        infall_velocity: Coordinate velocity seen from the infalling frame
        infall_recip: 1/γ of the infall velocity
    """

    coord_recip: float = 1.0
    length_scale: np.ndarray = field(default_factory=lambda: np.ones(3))
    grav_field: np.ndarray = field(default_factory=lambda: np.zeros(3))
    escape_velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    escape_recip: float = 1.0
    infall_velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    infall_recip: float = 1.0


def recalibrate(body: 'Body') -> DerivedState:
    """
    Compute the escape and infalling frames of a body from its summed fields.

    Must be called after all pairwise field accumulation for the step.

    Escape speed is sqrt(2|potential|), directed against the net field (or
    against the body's velocity if the field vanishes, or along +x if the
    body is also at rest). At or beyond max_speed the escape speed is capped
    and the field is zeroed: this is what keeps a body at a horizon from
    producing NaNs. The infalling frame is the coordinate velocity composed
    onto -escape_velocity.

    Args:
        body: Body whose field, potential and velocity have been accumulated

    Returns:
        DerivedState: New snapshot; the body itself is not modified
    """
    units = body.units
    c = units.c
    max_speed = units.max_speed
    velocity = body.coord_velocity

    coord_recip = lorentz_reciprocal(velocity, c, max_speed)
    length_scale = length_contraction_scale(velocity, c, max_speed)

    net_field = body.field.copy()
    field_finite = bool(np.all(np.isfinite(net_field)))
    field_strength = vector_norm(net_field) if field_finite else 0.0
    speed = vector_norm(velocity)

    if field_strength > 0.0:
        direction = -net_field / field_strength
    elif speed > 0.0:
        direction = -velocity / speed
    else:
        direction = np.array(const.DEFAULT_ESCAPE_AXIS, dtype=np.float64)

    escape_speed = np.sqrt(2.0 * abs(body.potential))
    if not np.isfinite(escape_speed) or escape_speed >= max_speed or not field_finite:
        # Horizon reached: freeze the field rather than let it diverge
        escape_speed = max_speed
        net_field = np.zeros(3)

    escape_velocity = clamp_speed(direction * escape_speed, max_speed)
    escape_recip = lorentz_reciprocal(escape_velocity, c, max_speed)

    infall_velocity = velocity_add(-escape_velocity, velocity, c, max_speed)
    infall_recip = lorentz_reciprocal(infall_velocity, c, max_speed)

    return DerivedState(
        coord_recip=coord_recip,
        length_scale=length_scale,
        grav_field=net_field,
        escape_velocity=escape_velocity,
        escape_recip=escape_recip,
        infall_velocity=infall_velocity,
        infall_recip=infall_recip,
    )


class Body:
    """
    A massive, charged sphere moving through the coordinate frame.

    Args:
        units: Active unit system
        mass: Rest mass (>= 0)
        charge: Electric charge
        rest_radius: Proper radius (>= 0)
        position: Coordinate position (shape: (3,))
        velocity: Coordinate velocity (shape: (3,)), clamped below max_speed
        label: Display name
        color: RGB display colour
        is_collidable: Whether ordinary collisions are registered
        proper_time: Initial proper time

    Notes:
        - On creation the black-hole transition rule is applied: a body whose
          rest radius is within 1.5× its horizon radius collapses to that
          radius and becomes a black hole.
    """

    def __init__(
        self,
        units: UnitSystem,
        mass: float,
        charge: float = 0.0,
        rest_radius: float = 0.0,
        position: Sequence[float] = (0.0, 0.0, 0.0),
        velocity: Sequence[float] = (0.0, 0.0, 0.0),
        label: str = '',
        color: Optional[Sequence[float]] = None,
        is_collidable: bool = True,
        proper_time: float = 0.0
    ):
        if not mass >= 0.0:
            raise ValueError(f"Body mass must be non-negative, got {mass}")
        if not rest_radius >= 0.0:
            raise ValueError(f"Body radius must be non-negative, got {rest_radius}")

        self.units = units
        self.label = label
        self.mass = float(mass)
        self.charge = float(charge)
        self.rest_radius = float(rest_radius)
        self.position = as_vector(position, 'position')
        self.coord_velocity = clamp_speed(as_vector(velocity, 'velocity'), units.max_speed)
        self.proper_time = float(proper_time)
        self.color = tuple(color) if color is not None else const.DEFAULT_COLOR

        self.is_black_hole = False
        self.is_collidable = bool(is_collidable)
        self.marked_for_removal = False

        # Per-step accumulators
        self.field = np.zeros(3)
        self.potential = 0.0
        self.net_force = np.zeros(3)
        self.acceleration = np.zeros(3)

        self.derived = DerivedState()
        self._refresh_kinematics(initial=True)

        self.em_field_mass = 0.0
        self._update_em_field_mass()
        self.apply_black_hole_rule()

    # ------------------------------------------------------------------
    # Derived quantities
    # ------------------------------------------------------------------

    @property
    def total_mass(self) -> float:
        """Rest mass plus electromagnetic self-energy mass."""
        return self.mass + self.em_field_mass

    @property
    def horizon_radius(self) -> float:
        """(Charged) Schwarzschild radius of this body's total mass."""
        units = self.units
        return horizon_radius(self.total_mass, self.charge, units.G, units.coulomb_const, units.c)

    @property
    def coord_lorentz_reciprocal(self) -> float:
        return self.derived.coord_recip

    @property
    def length_scale(self) -> np.ndarray:
        """Anisotropic length-contraction scale factors, for rendering."""
        return self.derived.length_scale

    @property
    def escape_velocity(self) -> np.ndarray:
        return self.derived.escape_velocity

    @property
    def escape_lorentz_reciprocal(self) -> float:
        return self.derived.escape_recip

    @property
    def infall_lorentz_reciprocal(self) -> float:
        return self.derived.infall_recip

    @property
    def display_color(self) -> Tuple[float, float, float]:
        """Colour to draw the body with; black holes are black."""
        if self.is_black_hole:
            return const.BLACK_HOLE_COLOR
        return self.color

    @property
    def momentum(self) -> np.ndarray:
        """Coordinate momentum γ m v."""
        gamma = lorentz_factor(self.coord_velocity, self.units.c, self.units.max_speed)
        return gamma * self.total_mass * self.coord_velocity

    @property
    def kinetic_energy(self) -> float:
        """Relativistic kinetic energy (γ - 1) m c²."""
        gamma = lorentz_factor(self.coord_velocity, self.units.c, self.units.max_speed)
        return (gamma - 1.0) * self.total_mass * self.units.c_squared

    def _update_em_field_mass(self):
        self.em_field_mass = em_field_mass(
            self.charge, self.rest_radius, self.units.coulomb_const, self.units.c
        )

    def _refresh_kinematics(self, initial: bool = False):
        """Recompute the velocity-only parts of the derived state."""
        units = self.units
        coord_recip = lorentz_reciprocal(self.coord_velocity, units.c, units.max_speed)
        length_scale = length_contraction_scale(self.coord_velocity, units.c, units.max_speed)
        if initial:
            # No fields yet: the infalling frame is the coordinate frame
            self.derived = DerivedState(
                coord_recip=coord_recip,
                length_scale=length_scale,
                infall_velocity=self.coord_velocity.copy(),
                infall_recip=coord_recip,
            )
        else:
            self.derived = replace(self.derived, coord_recip=coord_recip, length_scale=length_scale)

    def apply_black_hole_rule(self) -> bool:
        """
        Collapse the body if its radius is within 1.5× its horizon radius.

        The rest radius snaps to exactly the horizon radius, the body becomes
        a black hole and is made collidable. The electromagnetic self-energy
        is kept at its value from before the collapse.

        Returns:
            bool: True if the body collapsed on this call
        """
        horizon = self.horizon_radius
        if self.rest_radius <= const.BLACK_HOLE_RADIUS_FACTOR * horizon:
            collapsed = not self.is_black_hole
            self.rest_radius = horizon
            self.is_black_hole = True
            self.is_collidable = True
            return collapsed
        return False

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def radius_towards(self, point) -> float:
        """
        Apparent radius of this body in the direction of `point`.

        The body is an ellipsoid contracted by 1/γ along its velocity and
        unchanged orthogonal to it.
        """
        if self.rest_radius == 0.0:
            return 0.0
        offset = point - self.position
        distance = vector_norm(offset)
        speed = vector_norm(self.coord_velocity)
        if distance == 0.0 or speed == 0.0:
            return self.rest_radius

        recip = self.coord_lorentz_reciprocal
        cosine = dot(offset, self.coord_velocity) / (distance * speed)
        cos_squared = min(cosine * cosine, 1.0)
        return self.rest_radius / np.sqrt(cos_squared / (recip * recip) + (1.0 - cos_squared))

    def field_and_potential_at(self, point) -> Tuple[np.ndarray, float]:
        """
        Gravitational field and potential this body induces at `point`.

        Uses the total mass, an exterior inverse-square field outside the
        body's directional radius and a uniform-sphere interior inside it,
        then contracts the components orthogonal to this body's velocity.

        Returns:
            (field, potential): field points towards this body, potential <= 0
        """
        units = self.units
        radius = self.radius_towards(point)
        grav_field, potential = sphere_field_and_potential(
            self.position, point, units.G * self.total_mass, radius
        )
        grav_field = transverse_correction(grav_field, self.coord_velocity, self.coord_lorentz_reciprocal)
        return grav_field, potential

    def electromagnetic_field_at(self, point) -> np.ndarray:
        """Electric field this body induces at `point` (zero when uncharged)."""
        if abs(self.charge) < const.CHARGE_EPSILON:
            return np.zeros(3)
        radius = self.radius_towards(point)
        # Negative coupling: a positive charge pushes away from itself
        electric_field, _ = sphere_field_and_potential(
            self.position, point, -self.units.coulomb_const * self.charge, radius
        )
        return transverse_correction(electric_field, self.coord_velocity, self.coord_lorentz_reciprocal)

    def reset_interactions(self):
        """Zero the accumulated field, potential and force before a new pass."""
        self.field = np.zeros(3)
        self.potential = 0.0
        self.net_force = np.zeros(3)

    def accumulate_interaction_with(self, other: 'Body'):
        """Add the gravitational and electric influence of `other` on this body."""
        grav_field, potential = other.field_and_potential_at(self.position)
        self.field += grav_field
        self.potential += potential
        if abs(self.charge) >= const.CHARGE_EPSILON:
            self.net_force += self.charge * other.electromagnetic_field_at(self.position)

    # ------------------------------------------------------------------
    # Calibration and dynamics
    # ------------------------------------------------------------------

    def apply_calibration(self, derived: DerivedState):
        """Store a calibration snapshot produced by `recalibrate`."""
        self.derived = derived
        self.field = derived.grav_field.copy()

    def calibrate(self):
        """Recalibrate the escape and infalling frames from the summed fields."""
        self.apply_calibration(recalibrate(self))

    def calc_acceleration(self) -> np.ndarray:
        """
        Acceleration from the accumulated (electromagnetic) net force.

        Raises:
            InvalidMassError: If the total mass is zero or negative
        """
        if not self.total_mass > 0.0:
            raise InvalidMassError(
                f"Body '{self.label}' has total mass {self.total_mass}; cannot compute acceleration"
            )
        self.acceleration = self.net_force / self.total_mass
        return self.acceleration

    def _motion_bound(self) -> Tuple[float, float]:
        """Speed and acceleration magnitude used to bound the timestep."""
        combined = self.acceleration + self.field
        if not np.all(np.isfinite(combined)):
            return self.units.max_speed, 0.0
        return vector_norm(self.coord_velocity), vector_norm(combined)

    def calc_timestep_bounds(self, other: 'Body') -> Optional[Tuple[float, float]]:
        """
        Timestep bounds for the pair (self, other).

        Over the minimum timestep the faster of the two bodies covers the
        pair's resolvable distance (max_space_error × separation, floored at
        max_space_error); over the maximum it covers ten times that.

        Returns:
            (min_timestep, max_timestep), or None when the pair constrains
            nothing (coincident, or neither body moving nor accelerating)
        """
        units = self.units
        separation = vector_norm(other.position - self.position)
        if separation == 0.0:
            return None

        floor = max(units.max_space_error * separation, units.max_space_error)

        min_timestep = np.inf
        max_timestep = np.inf
        for body in (self, other):
            speed, acceleration = body._motion_bound()
            min_timestep = min(min_timestep, traversal_time(floor, speed, acceleration))
            max_timestep = min(max_timestep, traversal_time(const.MAX_TRAVERSAL_FLOORS * floor, speed, acceleration))

        if not (np.isfinite(min_timestep) and np.isfinite(max_timestep)) or min_timestep <= 0.0:
            return None
        return min_timestep, max_timestep

    def move(self, timestep: float):
        """
        Advance position, velocity and proper time by one coordinate timestep.

        1. local_dt = timestep × escape-frame 1/γ
        2. position += velocity × local_dt
        3. velocity ⊕= acceleration × local_dt  (or snap to max_speed along
           the net force if the acceleration is not finite)
        4. velocity ⊕= field × timestep
        5. proper_time += timestep × infall-frame 1/γ
        """
        units = self.units
        c = units.c
        max_speed = units.max_speed
        derived = self.derived

        local_timestep = timestep * derived.escape_recip
        self.position = self.position + self.coord_velocity * local_timestep

        if np.all(np.isfinite(self.acceleration)):
            velocity = velocity_add(self.coord_velocity, self.acceleration * local_timestep, c, max_speed)
        else:
            direction = _direction(self.net_force)
            if not np.any(direction):
                direction = _direction(self.coord_velocity)
            velocity = clamp_speed(direction * max_speed, max_speed)

        self.coord_velocity = velocity_add(velocity, self.field * timestep, c, max_speed)
        self.proper_time += timestep * derived.infall_recip
        self._refresh_kinematics()

    # ------------------------------------------------------------------
    # Collisions
    # ------------------------------------------------------------------

    def is_colliding_with(self, other: 'Body') -> bool:
        """
        True if the two bodies overlap.

        Non-collidable bodies only collide with black holes; black holes
        collide with everything.
        """
        if not (self.is_collidable or other.is_black_hole):
            return False
        if not (other.is_collidable or self.is_black_hole):
            return False
        distance = vector_norm(other.position - self.position)
        reach = self.radius_towards(other.position) + other.radius_towards(self.position)
        return distance <= reach

    def absorb(self, other: 'Body'):
        """
        Merge `other` into this body and mark `other` for removal.

        - mass and charge add
        - position: centre of relativistic mass (total_mass / infall 1/γ)
        - velocity: centre-of-momentum velocity Σγmv / Σγm, capped
        - radius: (r1³ + r2³)^(1/3), unless either body is a black hole or
          that radius is inside the sum of the two horizon radii, in which
          case the result is a black hole with radius equal to that sum
        """
        units = self.units
        c = units.c
        max_speed = units.max_speed

        weight_self = self.total_mass / self.infall_lorentz_reciprocal
        weight_other = other.total_mass / other.infall_lorentz_reciprocal
        total_weight = weight_self + weight_other
        if total_weight > 0.0:
            position = (weight_self * self.position + weight_other * other.position) / total_weight
        else:
            position = 0.5 * (self.position + other.position)

        energy_self = self.total_mass * lorentz_factor(self.coord_velocity, c, max_speed)
        energy_other = other.total_mass * lorentz_factor(other.coord_velocity, c, max_speed)
        total_energy = energy_self + energy_other
        if total_energy > 0.0:
            momentum = energy_self * self.coord_velocity + energy_other * other.coord_velocity
            velocity = clamp_speed(momentum / total_energy, max_speed)
        else:
            velocity = np.zeros(3)

        horizon_sum = self.horizon_radius + other.horizon_radius
        merged_radius = np.cbrt(self.rest_radius**3 + other.rest_radius**3)
        becomes_black_hole = self.is_black_hole or other.is_black_hole or merged_radius < horizon_sum

        self.mass += other.mass
        self.charge += other.charge
        self.position = position
        self.coord_velocity = velocity

        if becomes_black_hole:
            self.rest_radius = horizon_sum
            self._update_em_field_mass()
            self.rest_radius = max(self.rest_radius, self.horizon_radius)
            self.is_black_hole = True
            self.is_collidable = True
        else:
            self.rest_radius = float(merged_radius)
            self._update_em_field_mass()
            self.apply_black_hole_rule()

        other.marked_for_removal = True
        self._refresh_kinematics()

    def __repr__(self):
        kind = "BlackHole" if self.is_black_hole else "Body"
        return (f"{kind}('{self.label}', m={self.total_mass:.4e}, q={self.charge:.4e}, "
                f"r={self.rest_radius:.4e}, pos={self.position}, v={self.coord_velocity})")
