"""
Special-relativistic kinematics.

Lorentz factors, relativistic velocity composition, Lorentz boosts and the
toroidal wrap-around of coordinates. Every function here is pure and
JIT-compiled with Numba; vectors are float64 NumPy arrays of shape (3,).

The speed of light c and the speed cap max_speed are passed in explicitly
(they come from the active UnitSystem). Speeds are always clamped to
max_speed before a Lorentz factor is evaluated, so no function here can
divide by zero or take the square root of a negative number.
"""

import numpy as np
from numba import jit

from relsim import constants as const


@jit(nopython=True, nogil=True)
def dot(a, b):
    """Dot product of two 3-vectors."""
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


@jit(nopython=True, nogil=True)
def vector_norm(v):
    """Magnitude of a 3-vector."""
    return np.sqrt(v[0] * v[0] + v[1] * v[1] + v[2] * v[2])


@jit(nopython=True, nogil=True)
def clamp_speed(velocity, max_speed):
    """
    Return a copy of `velocity` whose magnitude is strictly below max_speed.

    Velocities already below the cap are returned unchanged (as a copy).
    """
    speed = vector_norm(velocity)
    limit = max_speed * (1.0 - const.SPEED_CLAMP_MARGIN)
    if speed > limit and speed > 0.0:
        return velocity * (limit / speed)
    return velocity.copy()


@jit(nopython=True, nogil=True)
def lorentz_reciprocal_speed(speed, c, max_speed):
    """
    Calculate 1/γ for a scalar speed.

    1/γ(v) = sqrt(1 - v²/c²), with v clamped to max_speed first.

    Returns:
        float: Lorentz reciprocal in (0, 1]
    """
    if speed > max_speed:
        speed = max_speed
    beta = speed / c
    return np.sqrt(1.0 - beta * beta)


@jit(nopython=True, nogil=True)
def lorentz_reciprocal(velocity, c, max_speed):
    """
    Calculate the Lorentz reciprocal 1/γ for a 3D velocity vector.

    Args:
        velocity: 3D velocity array [vx, vy, vz] (shape: (3,))
        c: Speed of light in active units
        max_speed: Speed cap strictly below c

    Returns:
        float: 1/γ in (0, 1]; 1.0 at rest, → 0 as |v| → max_speed
    """
    return lorentz_reciprocal_speed(vector_norm(velocity), c, max_speed)


@jit(nopython=True, nogil=True)
def lorentz_factor(velocity, c, max_speed):
    """
    Calculate the Lorentz factor γ for a 3D velocity vector.

    γ(v) = 1 / sqrt(1 - v²/c²)

    Returns:
        float: γ >= 1.0, finite for every input because of the speed clamp
    """
    return 1.0 / lorentz_reciprocal(velocity, c, max_speed)


@jit(nopython=True, nogil=True)
def velocity_add(v1, v2, c, max_speed):
    """
    Compose a velocity v2 measured in a frame moving at v1 into the base frame.

        u = (v2_∥ + v1 + v2_⊥/γ(v1)) / (1 + v2·v1/c²)

    where v2_∥ and v2_⊥ are the components of v2 parallel and orthogonal to v1.
    The order of arguments matters: v1 defines the boosted frame.

    Args:
        v1: Velocity of the moving frame (shape: (3,))
        v2: Velocity measured in that frame (shape: (3,))
        c: Speed of light
        max_speed: Speed cap

    Returns:
        np.ndarray: Composed velocity, magnitude strictly below max_speed
    """
    speed1 = vector_norm(v1)
    if speed1 == 0.0:
        return clamp_speed(v2, max_speed)

    direction = v1 / speed1
    parallel = dot(v2, direction) * direction
    orthogonal = v2 - parallel
    recip = lorentz_reciprocal_speed(speed1, c, max_speed)

    denominator = 1.0 + dot(v2, v1) / (c * c)
    composed = (parallel + v1 + orthogonal * recip) / denominator

    return clamp_speed(composed, max_speed)


@jit(nopython=True, nogil=True)
def lorentz_transform_space(position, time, velocity, c, max_speed):
    """
    Spatial part of a Lorentz boost into a frame moving at `velocity`.

        x' = x + (γ - 1)(x·n̂)n̂ - γ t v

    Args:
        position: Event position in the base frame (shape: (3,))
        time: Event time in the base frame
        velocity: Velocity of the target frame (shape: (3,))

    Returns:
        np.ndarray: Event position in the moving frame
    """
    speed = vector_norm(velocity)
    if speed == 0.0:
        return position.copy()
    gamma = 1.0 / lorentz_reciprocal_speed(speed, c, max_speed)
    direction = velocity / speed
    return position + (gamma - 1.0) * dot(position, direction) * direction - gamma * time * velocity


@jit(nopython=True, nogil=True)
def lorentz_transform_time(position, time, velocity, c, max_speed):
    """
    Temporal part of a Lorentz boost into a frame moving at `velocity`.

        t' = γ (t - v·x / c²)
    """
    gamma = 1.0 / lorentz_reciprocal(velocity, c, max_speed)
    return gamma * (time - dot(velocity, position) / (c * c))


@jit(nopython=True, nogil=True)
def length_contraction_scale(velocity, c, max_speed):
    """
    Per-axis scale factors of a unit sphere contracted along `velocity`.

    The axis along the velocity shrinks by 1/γ, orthogonal axes keep 1.
    Components are mixed by the squared direction cosines, so a velocity
    along x gives (1/γ, 1, 1).
    """
    scale = np.ones(3)
    speed = vector_norm(velocity)
    if speed == 0.0:
        return scale
    recip = lorentz_reciprocal_speed(speed, c, max_speed)
    for axis in range(3):
        cosine = velocity[axis] / speed
        scale[axis] = 1.0 + (recip - 1.0) * cosine * cosine
    return scale


@jit(nopython=True, nogil=True)
def wrap_around_pos(position, max_axis_distance):
    """
    Wrap a coordinate back into the simulation box from the opposite side.

    Any axis beyond ±max_axis_distance re-enters from the other boundary,
    making the coordinate space toroidal. Used for free-roaming observer
    movement, not for body dynamics.
    """
    wrapped = position.copy()
    span = 2.0 * max_axis_distance
    for axis in range(3):
        x = wrapped[axis]
        if x > max_axis_distance or x < -max_axis_distance:
            wrapped[axis] = (x + max_axis_distance) % span - max_axis_distance
    return wrapped
