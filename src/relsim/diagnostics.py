"""
Runtime diagnostics for simulation health checks.

This module provides functions to detect:
- Non-finite positions, velocities or accelerations (numerical blow-up)
- Bodies reaching the speed limit
- Overlapping or degenerate initial conditions

and to sum the system's energy and momentum for monitoring.
"""

import warnings
from typing import Sequence

import numpy as np

from relsim import constants as const
from relsim.exceptions import NonFiniteStateError
from relsim.relativity import vector_norm


def assert_finite_state(body, check_acceleration: bool = False):
    """
    Raise if a body's position or velocity has gone NaN or infinite.

    Args:
        body: Body to check
        check_acceleration: Also check the last computed acceleration

    Raises:
        NonFiniteStateError: With the body label and offending quantity
    """
    quantities = [('position', body.position), ('velocity', body.coord_velocity)]
    if check_acceleration:
        quantities.append(('acceleration', body.acceleration))

    for name, value in quantities:
        if not np.all(np.isfinite(value)):
            raise NonFiniteStateError(
                f"Body '{body.label}' has non-finite {name}: {value}"
            )


def calculate_total_energy(bodies: Sequence, units) -> float:
    """
    Calculate total energy (kinetic + potential) of the system.

    E_total = Σ (γ_i - 1) m_i c² + Σ_{i<j} (-G m_i m_j + k q_i q_j) / r_ij

    Coincident pairs are skipped.

    Args:
        bodies: Live bodies
        units: Active unit system

    Returns:
        float: Total energy in active units
    """
    E_kinetic = sum(body.kinetic_energy for body in bodies)

    E_potential = 0.0
    n = len(bodies)
    for i in range(n):
        for j in range(i + 1, n):
            r = vector_norm(bodies[j].position - bodies[i].position)
            if r == 0.0:
                continue
            E_potential += (
                -units.G * bodies[i].total_mass * bodies[j].total_mass
                + units.coulomb_const * bodies[i].charge * bodies[j].charge
            ) / r

    return E_kinetic + E_potential


def calculate_total_momentum(bodies: Sequence) -> np.ndarray:
    """Total coordinate momentum Σ γ m v, shape (3,)."""
    total = np.zeros(3)
    for body in bodies:
        total += body.momentum
    return total


def check_state(sim) -> dict:
    """
    Check the current simulation state for obvious problems.

    Args:
        sim: Simulation

    Returns:
        dict with:
            - is_stable: bool
            - max_speed_fraction: float (fastest speed / max_speed)
            - warnings: list of warning messages
    """
    messages = []
    units = sim.units

    for body in sim.bodies:
        if not (np.all(np.isfinite(body.position)) and np.all(np.isfinite(body.coord_velocity))):
            messages.append(f"CRITICAL: Body '{body.label}' has a NaN or Inf position or velocity!")

    if messages:
        for message in messages:
            warnings.warn(message)
        return {
            'is_stable': False,
            'max_speed_fraction': np.nan,
            'warnings': messages
        }

    max_v = max((vector_norm(body.coord_velocity) for body in sim.bodies), default=0.0)
    fraction = max_v / units.max_speed

    if max_v >= units.max_speed:
        messages.append(f"WARNING: Body speed ({fraction:.6f} of the limit) reached the speed limit!")
        for message in messages:
            warnings.warn(message)
        return {
            'is_stable': False,
            'max_speed_fraction': fraction,
            'warnings': messages
        }

    if max_v > 0.99 * units.c:
        messages.append(f"CAUTION: Body velocity ({max_v / units.c:.3f}c) approaching speed of light.")

    return {
        'is_stable': True,
        'max_speed_fraction': fraction,
        'warnings': messages
    }


def validate_initial_conditions(bodies: Sequence) -> list:
    """
    Check freshly created bodies for suspicious initial conditions.

    Returns:
        list of "ERROR:/WARNING:/INFO:" strings (empty if all good)
    """
    issues = []

    labels = [body.label for body in bodies]
    duplicates = sorted({label for label in labels if labels.count(label) > 1})
    for label in duplicates:
        issues.append(f"WARNING: Label '{label}' is used by more than one body")

    for body in bodies:
        if body.total_mass <= 0.0:
            issues.append(f"ERROR: Body '{body.label}' has no mass; its acceleration is undefined")
        if body.is_black_hole:
            issues.append(f"INFO: Body '{body.label}' starts as a black hole")

    n = len(bodies)
    for i in range(n):
        for j in range(i + 1, n):
            first, second = bodies[i], bodies[j]
            distance = vector_norm(second.position - first.position)
            if distance == 0.0:
                issues.append(
                    f"WARNING: Bodies '{first.label}' and '{second.label}' are coincident"
                )
            elif distance <= first.rest_radius + second.rest_radius:
                issues.append(
                    f"INFO: Bodies '{first.label}' and '{second.label}' overlap and "
                    f"will merge on the first step if collidable"
                )

    if n == 1 and not np.any(bodies[0].coord_velocity):
        issues.append("INFO: A single body at rest will not move")

    charged = [body for body in bodies if abs(body.charge) >= const.CHARGE_EPSILON]
    if len(charged) == 1 and n > 1:
        issues.append(
            f"INFO: Only '{charged[0].label}' is charged; electric forces act on no body"
        )

    return issues
