"""
Configuration management for the relativistic N-body simulation.

This module handles loading and parsing YAML configuration files: the unit
system (tables, chosen units, precision), simulation control parameters,
diagnostics options and the list of body-creation requests. Physical
quantities stay in the units they were written in; they are converted when
the bodies are created (see relsim.initialization).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from pathlib import Path
import logging

import numpy as np
import yaml

from relsim import constants as const
from relsim.exceptions import UnknownUnitError
from relsim.units import UnitSystem

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def to_float(value: Any) -> float:
    """Convert value to float, handling YAML quirks with scientific notation."""
    if isinstance(value, str):
        return float(value)
    return float(value)


def to_int(value: Any) -> int:
    """Convert value to int."""
    if isinstance(value, str):
        return int(value)
    return int(value)


def to_bool(value: Any) -> bool:
    """Convert value to bool."""
    if isinstance(value, str):
        return value.lower() in ('true', 'yes', '1')
    return bool(value)


def to_vector(value: Any, name: str) -> Tuple[float, float, float]:
    """Convert a 3-element YAML list to a float tuple."""
    if not isinstance(value, (list, tuple)) or len(value) != 3:
        raise ValueError(f"{name} must be a list of 3 numbers, got {value!r}")
    return tuple(to_float(v) for v in value)


def _quantity(value: Any, name: str) -> Tuple[float, Optional[str]]:
    """Parse `{amount, unit}` (or a bare number in the active unit)."""
    if isinstance(value, dict):
        if 'amount' not in value:
            raise ValueError(f"{name} is missing 'amount'")
        return to_float(value['amount']), value.get('unit')
    return to_float(value), None


@dataclass
class BodyRequest:
    """
    Request to create one body, with quantities in named units.

    A unit of None means the active unit of that dimension.
    """

    label: str
    mass: float
    mass_unit: Optional[str] = None
    charge: float = 0.0
    charge_unit: Optional[str] = None
    radius: float = 0.0
    radius_unit: Optional[str] = None
    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    position_unit: Optional[str] = None
    velocity: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    velocity_space_unit: Optional[str] = None
    velocity_time_unit: Optional[str] = None
    color: Optional[Tuple[float, float, float]] = None
    collidable: bool = True

    def named_units(self) -> List[Tuple[str, Optional[str]]]:
        """(dimension, unit) pairs used by this request."""
        return [
            (const.MASS, self.mass_unit),
            (const.CHARGE, self.charge_unit),
            (const.LENGTH, self.radius_unit),
            (const.LENGTH, self.position_unit),
            (const.LENGTH, self.velocity_space_unit),
            (const.TIME, self.velocity_time_unit),
        ]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BodyRequest':
        """
        Parse one entry of the `bodies` list.

        Raises:
            ValueError: If a required field is missing or malformed
        """
        if 'label' not in data:
            raise ValueError(f"Body entry is missing 'label': {data!r}")
        label = str(data['label'])

        if 'mass' not in data:
            raise ValueError(f"Body '{label}' is missing 'mass'")
        mass, mass_unit = _quantity(data['mass'], f"{label}.mass")
        charge, charge_unit = _quantity(data.get('charge', 0.0), f"{label}.charge")
        radius, radius_unit = _quantity(data.get('radius', 0.0), f"{label}.radius")

        position = data.get('position', {'vector': [0.0, 0.0, 0.0]})
        velocity = data.get('velocity', {'vector': [0.0, 0.0, 0.0]})
        if not isinstance(position, dict) or 'vector' not in position:
            raise ValueError(f"{label}.position must be a mapping with a 'vector' entry")
        if not isinstance(velocity, dict) or 'vector' not in velocity:
            raise ValueError(f"{label}.velocity must be a mapping with a 'vector' entry")

        color = data.get('color')

        return cls(
            label=label,
            mass=mass,
            mass_unit=mass_unit,
            charge=charge,
            charge_unit=charge_unit,
            radius=radius,
            radius_unit=radius_unit,
            position=to_vector(position['vector'], f"{label}.position"),
            position_unit=position.get('unit'),
            velocity=to_vector(velocity['vector'], f"{label}.velocity"),
            velocity_space_unit=velocity.get('space_unit'),
            velocity_time_unit=velocity.get('time_unit'),
            color=to_vector(color, f"{label}.color") if color is not None else None,
            collidable=to_bool(data.get('collidable', True)),
        )


@dataclass
class SimulationParameters:
    """
    Container for all simulation parameters.

    Unit choices and precision define the UnitSystem; default_timestep is in
    the active time unit; bodies keep the units they were requested in.
    """

    # Metadata
    simulation_name: str

    # Unit system
    space_unit: str = const.DEFAULT_SCALES[const.LENGTH]
    time_unit: str = const.DEFAULT_SCALES[const.TIME]
    mass_unit: str = const.DEFAULT_SCALES[const.MASS]
    charge_unit: str = const.DEFAULT_SCALES[const.CHARGE]
    precision_digits: int = const.DEFAULT_PRECISION_DIGITS
    unit_tables: Dict[str, Dict[str, float]] = field(default_factory=dict)

    # Simulation control
    default_timestep: float = const.DEFAULT_TIMESTEP
    n_steps: int = 1000
    frame_budget_seconds: float = 0.0  # 0 = no wall-clock budget
    worker_count: int = 0  # 0 = hardware parallelism
    parallel: bool = True

    # Diagnostics
    check_finite_state: bool = True
    log_level: str = "INFO"

    # Bodies
    bodies: List[BodyRequest] = field(default_factory=list)

    @property
    def n_bodies(self) -> int:
        """Number of requested bodies."""
        return len(self.bodies)

    def build_units(self) -> UnitSystem:
        """
        Create the UnitSystem described by this configuration.

        Raises:
            UnknownUnitError: If a chosen unit is not in its table
        """
        return UnitSystem.from_config(
            scales={
                const.LENGTH: self.space_unit,
                const.TIME: self.time_unit,
                const.MASS: self.mass_unit,
                const.CHARGE: self.charge_unit,
            },
            precision_digits=self.precision_digits,
            unit_tables=self.unit_tables,
        )

    def validate(self) -> list:
        """
        Perform sanity checks on configuration parameters.

        Returns:
            List of warning/error messages. Empty list if all checks pass.
        """
        warnings = []

        if not const.MIN_PRECISION_DIGITS <= self.precision_digits <= const.MAX_PRECISION_DIGITS:
            warnings.append(
                f"WARNING: precision_digits ({self.precision_digits}) outside "
                f"[{const.MIN_PRECISION_DIGITS}, {const.MAX_PRECISION_DIGITS}], will be clamped"
            )

        if self.default_timestep <= 0:
            warnings.append(f"ERROR: default_timestep must be positive, got {self.default_timestep}")

        if self.n_steps <= 0:
            warnings.append(f"ERROR: n_steps must be positive, got {self.n_steps}")

        if self.frame_budget_seconds < 0:
            warnings.append(f"ERROR: frame_budget_seconds must be >= 0, got {self.frame_budget_seconds}")

        if self.worker_count < 0:
            warnings.append(f"ERROR: worker_count must be >= 0, got {self.worker_count}")

        if self.log_level.upper() not in LOG_LEVELS:
            warnings.append(f"WARNING: unknown log_level '{self.log_level}', INFO will be used")

        try:
            units = self.build_units()
        except UnknownUnitError as e:
            warnings.append(f"ERROR: {e}")
            return warnings

        if not self.bodies:
            warnings.append("WARNING: no bodies configured")

        labels = [body.label for body in self.bodies]
        duplicates = sorted({label for label in labels if labels.count(label) > 1})
        for label in duplicates:
            warnings.append(f"WARNING: body label '{label}' is used more than once")

        converted = []
        for body in self.bodies:
            name = f"Body '{body.label}'"

            unknown = [
                (dimension, unit) for dimension, unit in body.named_units()
                if unit is not None and not units.has_unit(unit, dimension)
            ]
            if unknown:
                for dimension, unit in unknown:
                    warnings.append(f"ERROR: {name} uses unknown {dimension} unit '{unit}'")
                continue

            mass = units.convert(body.mass, body.mass_unit or units.mass_unit, const.MASS)
            charge = units.convert(body.charge, body.charge_unit or units.charge_unit, const.CHARGE)
            radius = units.convert(body.radius, body.radius_unit or units.space_unit, const.LENGTH)
            position = units.convert_vector(body.position, body.position_unit or units.space_unit)
            velocity = units.convert_velocity(
                body.velocity,
                body.velocity_space_unit or units.space_unit,
                body.velocity_time_unit or units.time_unit,
            )

            if mass < 0:
                warnings.append(f"ERROR: {name} mass must be non-negative, got {body.mass}")
            elif mass == 0 and (charge == 0 or radius <= 0):
                # A point charge carries no self-energy, so it stays massless
                warnings.append(f"ERROR: {name} has zero total mass; its acceleration is undefined")

            if radius < 0:
                warnings.append(f"ERROR: {name} radius must be non-negative, got {body.radius}")

            speed = float(np.linalg.norm(velocity))
            if speed >= units.c:
                warnings.append(
                    f"ERROR: {name} speed ({speed / units.c:.3f}c) must be < c"
                )
            elif speed >= units.max_speed:
                warnings.append(
                    f"WARNING: {name} speed is above the precision speed cap and will be clamped"
                )

            if np.any(np.abs(position) > units.max_axis_distance):
                warnings.append(
                    f"WARNING: {name} position exceeds max axis distance "
                    f"({units.max_axis_distance:.3e} {units.space_unit}) for precision "
                    f"{units.precision_digits}"
                )

            # Schwarzschild radius of the rest mass
            r_schwarzschild = 2.0 * units.G * max(mass, 0.0) / units.c_squared
            if 0 <= radius <= const.BLACK_HOLE_RADIUS_FACTOR * r_schwarzschild:
                warnings.append(
                    f"INFO: {name} radius ({radius:.3e} {units.space_unit}) is within "
                    f"{const.BLACK_HOLE_RADIUS_FACTOR}x its Schwarzschild radius "
                    f"({r_schwarzschild:.3e}); it will start as a black hole"
                )

            converted.append((body.label, position, max(radius, 0.0)))

        # Check for bodies that start overlapping (they merge on the first step)
        for i, (label1, pos1, r1) in enumerate(converted):
            for label2, pos2, r2 in converted[i + 1:]:
                if np.linalg.norm(pos1 - pos2) <= r1 + r2:
                    warnings.append(
                        f"WARNING: bodies '{label1}' and '{label2}' overlap and will merge on the first step"
                    )

        return warnings

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'SimulationParameters':
        """
        Build parameters from an already-parsed configuration mapping.

        Raises:
            ValueError: If a required section is missing or malformed
        """
        if 'simulation_name' not in config:
            raise ValueError("Configuration is missing 'simulation_name'")

        # Unit system
        units_cfg = config.get('units', {})
        unit_tables = {}
        for dimension, table in units_cfg.get('tables', {}).items():
            if dimension not in const.DIMENSIONS:
                raise ValueError(
                    f"units.tables: unknown dimension '{dimension}', expected one of {const.DIMENSIONS}"
                )
            unit_tables[dimension] = {name: to_float(scale) for name, scale in table.items()}

        # Simulation control
        control = config.get('simulation_control', {})

        # Diagnostics
        diagnostics = config.get('diagnostics', {})

        # Bodies
        bodies_cfg = config.get('bodies', []) or []
        if not isinstance(bodies_cfg, list):
            raise ValueError("'bodies' must be a list")
        bodies = [BodyRequest.from_dict(entry) for entry in bodies_cfg]

        return cls(
            simulation_name=config['simulation_name'],
            space_unit=units_cfg.get('space', const.DEFAULT_SCALES[const.LENGTH]),
            time_unit=units_cfg.get('time', const.DEFAULT_SCALES[const.TIME]),
            mass_unit=units_cfg.get('mass', const.DEFAULT_SCALES[const.MASS]),
            charge_unit=units_cfg.get('charge', const.DEFAULT_SCALES[const.CHARGE]),
            precision_digits=to_int(units_cfg.get('precision_digits', const.DEFAULT_PRECISION_DIGITS)),
            unit_tables=unit_tables,
            default_timestep=to_float(control.get('default_timestep', const.DEFAULT_TIMESTEP)),
            n_steps=to_int(control.get('n_steps', 1000)),
            frame_budget_seconds=to_float(control.get('frame_budget_seconds', 0.0)),
            worker_count=to_int(control.get('worker_count', 0)),
            parallel=to_bool(control.get('parallel', True)),
            check_finite_state=to_bool(diagnostics.get('check_finite_state', True)),
            log_level=str(diagnostics.get('log_level', 'INFO')),
            bodies=bodies,
        )

    @classmethod
    def from_yaml(cls, filepath: str) -> 'SimulationParameters':
        """
        Load configuration from YAML file.

        Args:
            filepath: Path to YAML configuration file

        Returns:
            SimulationParameters object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        config_path = Path(filepath)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {filepath}")

        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)

        if not isinstance(config, dict):
            raise ValueError(f"Configuration file {filepath} does not contain a mapping")

        return cls.from_dict(config)

    def configure_logging(self):
        """Apply log_level to the root logger."""
        level = self.log_level.upper()
        if level not in LOG_LEVELS:
            level = 'INFO'
        logging.basicConfig(
            level=getattr(logging, level),
            format='%(asctime)s %(levelname)s %(name)s: %(message)s'
        )

    def __repr__(self):
        """Human-readable representation."""
        lines = [
            f"Simulation: {self.simulation_name}",
            f"Units: {self.space_unit}, {self.time_unit}, {self.mass_unit}, {self.charge_unit} "
            f"(precision {self.precision_digits} digits)",
            f"Bodies: {self.n_bodies} configured",
        ]
        for body in self.bodies:
            lines.append(f"  {body.label}: {body.mass:.3e} {body.mass_unit or self.mass_unit}")
        lines.extend([
            f"Steps: {self.n_steps}",
            f"Default timestep: {self.default_timestep} {self.time_unit}",
            f"Parallel: {self.parallel} (workers: {self.worker_count or 'auto'})",
        ])
        return "\n".join(lines)
