"""
Initialization functions for the relativistic N-body simulation.

Body-creation requests arrive with physical quantities in arbitrary named
units. This module converts them through the active UnitSystem (the only
path by which outside quantities enter the kernel) and constructs Body
objects.
"""

import logging
from typing import List

from relsim import constants as const
from relsim.body import Body
from relsim.config import BodyRequest, SimulationParameters
from relsim.units import UnitSystem

logger = logging.getLogger(__name__)


def create_body(request: BodyRequest, units: UnitSystem) -> Body:
    """
    Convert a body-creation request into a Body in the active units.

    Args:
        request: Quantities and their unit names
        units: Active unit system

    Returns:
        Body: New body; may already be a black hole if its radius is within
        1.5× its horizon radius

    Raises:
        UnknownUnitError: If the request names a unit not in the tables
        ValueError: If mass or radius are negative
    """
    mass = units.convert(request.mass, request.mass_unit or units.mass_unit, const.MASS)
    charge = units.convert(request.charge, request.charge_unit or units.charge_unit, const.CHARGE)
    radius = units.convert(request.radius, request.radius_unit or units.space_unit, const.LENGTH)
    position = units.convert_vector(request.position, request.position_unit or units.space_unit)
    velocity = units.convert_velocity(
        request.velocity,
        request.velocity_space_unit or units.space_unit,
        request.velocity_time_unit or units.time_unit,
    )

    body = Body(
        units,
        mass=mass,
        charge=charge,
        rest_radius=radius,
        position=position,
        velocity=velocity,
        label=request.label,
        color=request.color,
        is_collidable=request.collidable,
    )

    if body.is_black_hole:
        logger.info(
            "Body '%s' created as a black hole (radius %.4e %s)",
            body.label, body.rest_radius, units.space_unit
        )
    return body


def initialize_bodies(params: SimulationParameters, units: UnitSystem) -> List[Body]:
    """
    Create every body requested by a configuration, in order.

    Args:
        params: Simulation parameters holding the body requests
        units: Unit system built from the same parameters

    Returns:
        List of bodies
    """
    bodies = [create_body(request, units) for request in params.bodies]
    logger.info(
        "Initialized %d bodies (%d black holes)",
        len(bodies), sum(1 for body in bodies if body.is_black_hole)
    )
    return bodies
