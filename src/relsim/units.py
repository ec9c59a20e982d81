"""
Unit system and scaled physical constants.

A UnitSystem fixes, for each physical dimension (length, time, mass, charge),
which named unit the simulation works in, and derives the fundamental
constants G, k and c in those units:

    G_scaled = G_SI × s⁻³ × m × t²
    k_scaled = k_SI × m⁻¹ × s⁻³ × q² × t²
    c_scaled = c_SI × t / s

where s, t, m, q are the SI sizes of the chosen space, time, mass and charge
units. It also fixes the numerical precision of the run:

    max_space_error  = 10^-digits        (smallest resolvable relative distance)
    max_sim_distance = 10^(15 - digits)  (largest representable coordinate)
    max_speed        = (1 - max_space_error) × c

UnitSystem instances are immutable. Reconfiguring (new precision or new
units) returns a new instance, so every derived value always matches the
current choice of units and precision.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional

import numpy as np

from relsim import constants as const
from relsim.exceptions import UnknownUnitError

logger = logging.getLogger(__name__)


def _copy_tables(tables: Mapping[str, Mapping[str, float]]) -> Dict[str, Dict[str, float]]:
    copied = {dimension: dict(const.DEFAULT_UNIT_TABLES[dimension]) for dimension in const.DIMENSIONS}
    for dimension, units in tables.items():
        if dimension not in copied:
            raise UnknownUnitError(dimension)
        copied[dimension].update((name, float(scale)) for name, scale in units.items())
    return copied


@dataclass(frozen=True, eq=False)
class UnitSystem:
    """
    Immutable unit and constant configuration shared by all bodies.

    Args:
        space_unit: Name of the active length unit
        time_unit: Name of the active time unit
        mass_unit: Name of the active mass unit
        charge_unit: Name of the active charge unit
        precision_digits: Digits of spatial resolution, clamped to [0, 15]
        unit_tables: dimension → {unit name → SI scale factor}, added to the
            default tables

    Raises:
        UnknownUnitError: If a chosen unit is absent from its table
    """

    space_unit: str = const.DEFAULT_SCALES[const.LENGTH]
    time_unit: str = const.DEFAULT_SCALES[const.TIME]
    mass_unit: str = const.DEFAULT_SCALES[const.MASS]
    charge_unit: str = const.DEFAULT_SCALES[const.CHARGE]
    precision_digits: int = const.DEFAULT_PRECISION_DIGITS
    unit_tables: Mapping[str, Mapping[str, float]] = field(default_factory=dict)

    # Derived values, filled in by __post_init__
    G: float = field(init=False)
    coulomb_const: float = field(init=False)
    c: float = field(init=False)
    max_space_error: float = field(init=False)
    max_sim_distance: float = field(init=False)
    max_axis_distance: float = field(init=False)
    max_speed: float = field(init=False)

    def __post_init__(self):
        tables = _copy_tables(self.unit_tables)
        object.__setattr__(self, 'unit_tables', tables)

        space_scale = self._scale(const.LENGTH, self.space_unit)
        time_scale = self._scale(const.TIME, self.time_unit)
        mass_scale = self._scale(const.MASS, self.mass_unit)
        charge_scale = self._scale(const.CHARGE, self.charge_unit)

        digits = int(self.precision_digits)
        clamped = min(max(digits, const.MIN_PRECISION_DIGITS), const.MAX_PRECISION_DIGITS)
        if clamped != digits:
            logger.debug("Precision %d out of range, clamped to %d", digits, clamped)
        object.__setattr__(self, 'precision_digits', clamped)

        G = const.G_SI * space_scale**-3 * mass_scale * time_scale**2
        coulomb = const.COULOMB_SI / mass_scale * space_scale**-3 * charge_scale**2 * time_scale**2
        c = const.C_SI * time_scale / space_scale

        max_space_error = 10.0 ** -clamped
        max_sim_distance = 10.0 ** (15 - clamped)

        object.__setattr__(self, 'G', G)
        object.__setattr__(self, 'coulomb_const', coulomb)
        object.__setattr__(self, 'c', c)
        object.__setattr__(self, 'max_space_error', max_space_error)
        object.__setattr__(self, 'max_sim_distance', max_sim_distance)
        object.__setattr__(self, 'max_axis_distance', max_sim_distance / math.sqrt(3.0))
        object.__setattr__(self, 'max_speed', (1.0 - max_space_error) * c)

    def _scale(self, dimension: str, unit: str) -> float:
        if dimension not in self.unit_tables:
            raise UnknownUnitError(dimension)
        table = self.unit_tables[dimension]
        if unit not in table:
            raise UnknownUnitError(unit, dimension)
        return table[unit]

    @property
    def c_squared(self) -> float:
        """c² in the active units."""
        return self.c * self.c

    def active_unit(self, dimension: str) -> str:
        """Name of the unit currently used for a dimension."""
        active = {
            const.LENGTH: self.space_unit,
            const.TIME: self.time_unit,
            const.MASS: self.mass_unit,
            const.CHARGE: self.charge_unit,
        }
        if dimension not in active:
            raise UnknownUnitError(dimension)
        return active[dimension]

    def has_unit(self, name: str, dimension: str) -> bool:
        """True if `name` is a known unit of `dimension`."""
        return name in self.unit_tables.get(dimension, {})

    def with_precision(self, digits: int) -> 'UnitSystem':
        """Return a copy with a new precision (clamped to [0, 15])."""
        return replace(self, precision_digits=digits)

    def with_scales(
        self,
        space_unit: str,
        time_unit: str,
        mass_unit: str,
        charge_unit: str
    ) -> 'UnitSystem':
        """
        Return a copy working in a different set of units.

        Raises:
            UnknownUnitError: If any unit name is absent from its table
        """
        return replace(
            self,
            space_unit=space_unit,
            time_unit=time_unit,
            mass_unit=mass_unit,
            charge_unit=charge_unit,
        )

    def convert(self, amount: float, from_unit: str, dimension: str) -> float:
        """
        Convert an amount expressed in `from_unit` into the active unit.

        Args:
            amount: Quantity in `from_unit`
            from_unit: Unit name the amount is expressed in
            dimension: One of 'length', 'time', 'mass', 'charge'

        Returns:
            float: Quantity in the active unit for `dimension`

        Raises:
            UnknownUnitError: If the unit or dimension is unknown
        """
        ratio = self._scale(dimension, from_unit) / self._scale(dimension, self.active_unit(dimension))
        return amount * ratio

    def convert_to(self, amount: float, to_unit: str, dimension: str) -> float:
        """Convert an amount in the active unit into `to_unit`."""
        ratio = self._scale(dimension, self.active_unit(dimension)) / self._scale(dimension, to_unit)
        return amount * ratio

    def convert_vector(self, vector, from_unit: str, dimension: str = const.LENGTH) -> np.ndarray:
        """Convert every component of a vector into the active unit."""
        return np.asarray(vector, dtype=np.float64) * self.convert(1.0, from_unit, dimension)

    def convert_velocity(self, vector, space_unit: str, time_unit: str) -> np.ndarray:
        """Convert a velocity given in space_unit/time_unit into active units."""
        factor = self.convert(1.0, space_unit, const.LENGTH) / self.convert(1.0, time_unit, const.TIME)
        return np.asarray(vector, dtype=np.float64) * factor

    @classmethod
    def from_config(
        cls,
        scales: Optional[Mapping[str, str]] = None,
        precision_digits: int = const.DEFAULT_PRECISION_DIGITS,
        unit_tables: Optional[Mapping[str, Mapping[str, float]]] = None
    ) -> 'UnitSystem':
        """
        Build a unit system from a dimension → unit-name mapping.

        Dimensions missing from `scales` keep their SI default.
        """
        chosen = dict(const.DEFAULT_SCALES)
        for dimension, unit in (scales or {}).items():
            if dimension not in chosen:
                raise UnknownUnitError(dimension)
            chosen[dimension] = unit

        return cls(
            space_unit=chosen[const.LENGTH],
            time_unit=chosen[const.TIME],
            mass_unit=chosen[const.MASS],
            charge_unit=chosen[const.CHARGE],
            precision_digits=precision_digits,
            unit_tables=unit_tables or {},
        )

    def __repr__(self):
        return (f"UnitSystem({self.space_unit}, {self.time_unit}, {self.mass_unit}, "
                f"{self.charge_unit}, precision={self.precision_digits}, "
                f"G={self.G:.4e}, k={self.coulomb_const:.4e}, c={self.c:.4e})")
