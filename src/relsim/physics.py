"""
Field and horizon kernels for the relativistic N-body simulation.

All functions are JIT-compiled with Numba and operate on float64 NumPy
arrays of shape (3,) and plain floats, in the units of the active UnitSystem.
The Body class (relsim.body) combines them into per-body operations.
"""

import numpy as np
from numba import jit

from relsim.relativity import dot, vector_norm


@jit(nopython=True, nogil=True)
def sphere_field_and_potential(source_position, point, coupling, radius):
    """
    Field and potential of a uniform sphere evaluated at `point`.

    Exterior (d > R):
        field = coupling × r_vec / d³,  potential = -|field| × d
    Interior (d <= R):
        field = coupling × r_vec / R³,  potential = -coupling × (3R² - d²) / (2R³)

    where r_vec points from `point` to the source centre, so a positive
    coupling (G × M) gives an attractive field and a negative potential.
    The two potentials agree at the surface d = R.

    Args:
        source_position: Centre of the source body (shape: (3,))
        point: Evaluation point (shape: (3,))
        coupling: G × M for gravity, -k × Q for the electric field
        radius: Radius of the source towards `point`

    Returns:
        (field, potential) tuple
    """
    r_vec = source_position - point
    distance = vector_norm(r_vec)

    if distance > radius:
        field = coupling * r_vec / (distance * distance * distance)
        potential = -vector_norm(field) * distance
        return field, potential

    # Inside the body (or exactly at a point source)
    if radius <= 0.0:
        return np.zeros(3), 0.0

    radius_cubed = radius * radius * radius
    field = coupling * r_vec / radius_cubed
    potential = -coupling * (3.0 * radius * radius - distance * distance) / (2.0 * radius_cubed)
    return field, potential


@jit(nopython=True, nogil=True)
def transverse_correction(field, source_velocity, source_recip):
    """
    Correct a field for the motion of its source.

    Components parallel to the source velocity pass through unchanged;
    orthogonal components are scaled by the source's Lorentz reciprocal.
    """
    speed = vector_norm(source_velocity)
    if speed == 0.0:
        return field.copy()
    direction = source_velocity / speed
    parallel = dot(field, direction) * direction
    return parallel + (field - parallel) * source_recip


@jit(nopython=True, nogil=True)
def horizon_radius(total_mass, charge, G, coulomb_const, c):
    """
    Outer horizon radius of a (possibly charged) mass.

        r = GM/c² + sqrt((GM/c²)² - G k Q²/c⁴)

    For Q = 0 this is the Schwarzschild radius 2GM/c². Over-extremal charge
    (negative discriminant) is treated as extremal, r = GM/c².
    """
    c_squared = c * c
    mass_length = G * total_mass / c_squared
    charge_length_squared = G * coulomb_const * charge * charge / (c_squared * c_squared)
    discriminant = mass_length * mass_length - charge_length_squared
    if discriminant < 0.0:
        discriminant = 0.0
    return mass_length + np.sqrt(discriminant)


@jit(nopython=True, nogil=True)
def em_field_mass(charge, radius, coulomb_const, c):
    """
    Mass equivalent of the electrostatic self-energy of a charged sphere.

        m_em = k Q² / (2 R c²)

    Zero for an uncharged body or a body without extent.
    """
    if radius <= 0.0 or charge == 0.0:
        return 0.0
    return coulomb_const * charge * charge / (2.0 * radius * c * c)


@jit(nopython=True, nogil=True)
def traversal_time(distance, speed, acceleration):
    """
    Time to cover `distance` starting at `speed` under constant `acceleration`.

    Positive root of d = v t + ½ a t², written as t = 2d / (v + sqrt(v² + 2ad))
    so that a = 0 and v = 0 are both handled without cancellation.

    Returns:
        float: Traversal time, or inf when neither speed nor acceleration is positive
    """
    denominator = speed + np.sqrt(speed * speed + 2.0 * acceleration * distance)
    if denominator <= 0.0:
        return np.inf
    return 2.0 * distance / denominator
