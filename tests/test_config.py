"""
Unit tests for configuration loading and parsing.
"""

from pathlib import Path

import pytest

from relsim import constants as const
from relsim.config import BodyRequest, SimulationParameters, to_bool, to_float

CONFIG_DIR = Path(__file__).parent.parent / 'configs'

MINIMAL_CONFIG = """
simulation_name: yaml_pair
units:
  precision_digits: 6
  space: km
  time: s
  mass: kg
  charge: C
  tables:
    length:
      megametre: 1.0e6
simulation_control:
  default_timestep: "1e-3"
  n_steps: 50
  frame_budget_seconds: 0.02
  worker_count: 2
  parallel: "false"
diagnostics:
  check_finite_state: false
  log_level: debug
bodies:
  - label: alpha
    mass: {amount: 2.0, unit: earth_mass}
    charge: {amount: 5.0, unit: e}
    radius: {amount: 1.0, unit: earth_radius}
    position: {vector: [1.0, 0.0, 0.0], unit: megametre}
    velocity: {vector: [0.0, 3.0, 0.0], space_unit: km, time_unit: s}
    color: [1.0, 0.5, 0.0]
  - label: beta
    mass: 1.0e20
    collidable: false
"""


def write_config(tmp_path, text, name='config.yaml'):
    path = tmp_path / name
    path.write_text(text)
    return str(path)


def test_load_binary_star_config():
    """Test loading the bundled Sun-Earth configuration."""
    params = SimulationParameters.from_yaml(str(CONFIG_DIR / 'binary_star.yaml'))

    assert params.simulation_name == "binary_star"
    assert params.space_unit == 'au'
    assert params.time_unit == 'day'
    assert params.mass_unit == 'solar_mass'
    assert params.precision_digits == 4
    assert params.n_bodies == 2

    earth = params.bodies[1]
    assert earth.label == 'earth'
    assert earth.mass_unit == 'earth_mass'
    assert earth.velocity == (0.0, 29.78, 0.0)
    assert earth.velocity_space_unit == 'km'
    assert earth.velocity_time_unit == 's'

    issues = params.validate()
    assert not [issue for issue in issues if issue.startswith("ERROR")]


def test_load_charged_merger_config():
    """Test that extra unit tables are merged into the defaults."""
    params = SimulationParameters.from_yaml(str(CONFIG_DIR / 'charged_merger.yaml'))
    units = params.build_units()
    assert units.has_unit('neutron_star_radius', const.LENGTH)
    assert units.has_unit('au', const.LENGTH)
    assert params.bodies[2].collidable is False

    issues = params.validate()
    assert not [issue for issue in issues if issue.startswith("ERROR")]
    assert any("black hole" in issue for issue in issues if issue.startswith("INFO"))


def test_load_yaml_sections(tmp_path):
    """Test every section of a configuration file is parsed."""
    params = SimulationParameters.from_yaml(write_config(tmp_path, MINIMAL_CONFIG))

    assert params.simulation_name == 'yaml_pair'
    assert params.precision_digits == 6
    assert params.space_unit == 'km'
    assert params.unit_tables == {'length': {'megametre': 1.0e6}}

    assert params.default_timestep == 1.0e-3
    assert params.n_steps == 50
    assert params.frame_budget_seconds == 0.02
    assert params.worker_count == 2
    assert params.parallel is False

    assert params.check_finite_state is False
    assert params.log_level == 'debug'

    alpha, beta = params.bodies
    assert alpha.mass == 2.0 and alpha.mass_unit == 'earth_mass'
    assert alpha.charge == 5.0 and alpha.charge_unit == 'e'
    assert alpha.position == (1.0, 0.0, 0.0) and alpha.position_unit == 'megametre'
    assert alpha.color == (1.0, 0.5, 0.0)
    assert alpha.collidable is True

    # Bare numbers are in the active unit
    assert beta.mass == 1.0e20 and beta.mass_unit is None
    assert beta.position == (0.0, 0.0, 0.0)
    assert beta.collidable is False


def test_build_units(tmp_path):
    params = SimulationParameters.from_yaml(write_config(tmp_path, MINIMAL_CONFIG))
    units = params.build_units()
    assert units.space_unit == 'km'
    assert units.precision_digits == 6
    assert units.convert(1.0, 'megametre', const.LENGTH) == pytest.approx(1000.0)


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        SimulationParameters.from_yaml('does/not/exist.yaml')


def test_not_a_mapping(tmp_path):
    with pytest.raises(ValueError):
        SimulationParameters.from_yaml(write_config(tmp_path, "- just\n- a list\n"))


def test_missing_name(tmp_path):
    with pytest.raises(ValueError):
        SimulationParameters.from_yaml(write_config(tmp_path, "bodies: []\n"))


def test_malformed_body():
    with pytest.raises(ValueError):
        BodyRequest.from_dict({'label': 'x'})
    with pytest.raises(ValueError):
        BodyRequest.from_dict({'label': 'x', 'mass': 1.0, 'position': {'vector': [1.0, 2.0]}})
    with pytest.raises(ValueError):
        BodyRequest.from_dict({'mass': 1.0})


def test_unknown_table_dimension():
    with pytest.raises(ValueError):
        SimulationParameters.from_dict({
            'simulation_name': 'bad',
            'units': {'tables': {'temperature': {'K': 1.0}}},
        })


def test_coercion_helpers():
    assert to_float("1e-3") == 1.0e-3
    assert to_bool("yes") is True
    assert to_bool("False") is False
    assert to_bool(1) is True


class TestValidation:
    """Test configuration sanity checks."""

    def make_params(self, **kwargs):
        defaults = dict(
            simulation_name='check',
            bodies=[BodyRequest(label='a', mass=1.0, radius=1.0)],
        )
        defaults.update(kwargs)
        return SimulationParameters(**defaults)

    def errors(self, params):
        return [issue for issue in params.validate() if issue.startswith("ERROR")]

    def test_valid_configuration(self):
        assert self.errors(self.make_params()) == []

    def test_non_positive_timestep(self):
        assert self.errors(self.make_params(default_timestep=0.0))

    def test_unknown_active_unit(self):
        errors = self.errors(self.make_params(space_unit='furlong'))
        assert len(errors) == 1
        assert 'furlong' in errors[0]

    def test_unknown_body_unit(self):
        params = self.make_params(bodies=[BodyRequest(label='a', mass=1.0, mass_unit='stone')])
        errors = self.errors(params)
        assert any('stone' in error for error in errors)

    def test_negative_mass(self):
        params = self.make_params(bodies=[BodyRequest(label='a', mass=-1.0, radius=1.0)])
        assert any('mass' in error for error in self.errors(params))

    def test_negative_radius(self):
        params = self.make_params(bodies=[BodyRequest(label='a', mass=1.0, radius=-1.0)])
        assert any('radius' in error for error in self.errors(params))

    def test_massless_point_charge(self):
        """A charge without extent has no field mass to stand in for its mass."""
        params = self.make_params(bodies=[BodyRequest(label='a', mass=0.0, charge=1.0, radius=0.0)])
        assert any('zero total mass' in error for error in self.errors(params))

    def test_massless_charged_sphere(self):
        params = self.make_params(bodies=[BodyRequest(label='a', mass=0.0, charge=1.0, radius=1.0)])
        assert self.errors(params) == []

    def test_speed_at_least_c(self):
        params = self.make_params(bodies=[
            BodyRequest(label='a', mass=1.0, radius=1.0, velocity=(2.0, 0.0, 0.0),
                        velocity_space_unit='ly', velocity_time_unit='yr'),
        ])
        assert any('speed' in error for error in self.errors(params))

    def test_position_beyond_box(self):
        params = self.make_params(
            precision_digits=12,
            bodies=[BodyRequest(label='a', mass=1.0, radius=1.0, position=(1.0e4, 0.0, 0.0))],
        )
        assert any('max axis distance' in issue for issue in params.validate())

    def test_overlapping_bodies(self):
        params = self.make_params(bodies=[
            BodyRequest(label='a', mass=1.0, radius=1.0),
            BodyRequest(label='b', mass=1.0, radius=1.0, position=(1.0, 0.0, 0.0)),
        ])
        assert any('overlap' in issue for issue in params.validate())

    def test_duplicate_labels(self):
        params = self.make_params(bodies=[
            BodyRequest(label='a', mass=1.0, radius=1.0),
            BodyRequest(label='a', mass=1.0, radius=1.0, position=(10.0, 0.0, 0.0)),
        ])
        assert any('more than once' in issue for issue in params.validate())

    def test_precision_out_of_range_warns(self):
        issues = self.make_params(precision_digits=40).validate()
        assert any(issue.startswith("WARNING") and 'precision' in issue for issue in issues)


def test_configure_logging_unknown_level():
    """An unknown log level falls back to INFO instead of failing."""
    params = SimulationParameters(simulation_name='log', log_level='chatty')
    params.configure_logging()
    assert any('log_level' in issue for issue in params.validate())
