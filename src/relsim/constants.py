"""
Physical constants and default unit tables used throughout the simulation.

SI REFERENCE SYSTEM:
- Distance: metres (m)
- Time: seconds (s)
- Mass: kilograms (kg)
- Charge: coulombs (C)

Every named unit is stored as its size in SI, so that converting between two
units of the same dimension is a ratio of scale factors. The constants below
are only ever used after being rescaled into the active unit system
(see relsim.units).
"""

# Fundamental constants [SI]
G_SI = 6.67430e-11  # Gravitational constant [m³/(kg·s²)]
COULOMB_SI = 8.9875517923e9  # Coulomb constant k = 1/(4πε₀) [N·m²/C²]
C_SI = 299792458.0  # Speed of light [m/s]

# Dimension names, in the order setScales expects them
LENGTH = 'length'
TIME = 'time'
MASS = 'mass'
CHARGE = 'charge'
DIMENSIONS = (LENGTH, TIME, MASS, CHARGE)

# Named units → SI scale factor
LENGTH_UNITS = {
    'm': 1.0,
    'km': 1.0e3,
    'earth_radius': 6.371e6,
    'solar_radius': 6.957e8,
    'au': 1.495978707e11,
    'ly': 9.4607304725808e15,
    'pc': 3.0856775814913673e16,
}

TIME_UNITS = {
    's': 1.0,
    'min': 60.0,
    'h': 3600.0,
    'day': 86400.0,
    'yr': 3.15576e7,  # Julian year
}

MASS_UNITS = {
    'kg': 1.0,
    'g': 1.0e-3,
    'earth_mass': 5.9722e24,
    'jupiter_mass': 1.89813e27,
    'solar_mass': 1.98892e30,
}

CHARGE_UNITS = {
    'C': 1.0,
    'e': 1.602176634e-19,  # Elementary charge
}

DEFAULT_UNIT_TABLES = {
    LENGTH: LENGTH_UNITS,
    TIME: TIME_UNITS,
    MASS: MASS_UNITS,
    CHARGE: CHARGE_UNITS,
}

DEFAULT_SCALES = {
    LENGTH: 'm',
    TIME: 's',
    MASS: 'kg',
    CHARGE: 'C',
}

# Precision: digits of relative spatial resolution
MIN_PRECISION_DIGITS = 0
MAX_PRECISION_DIGITS = 15
DEFAULT_PRECISION_DIGITS = 8

# Fallback timestep [active time unit] when no pair constrains the step
DEFAULT_TIMESTEP = 1.0

# The max timestep bound lets a body cover this many resolvable distances
MAX_TRAVERSAL_FLOORS = 10.0

# Black-hole transition happens at this multiple of the horizon radius
BLACK_HOLE_RADIUS_FACTOR = 1.5

# Charges with smaller magnitude produce no electromagnetic field
CHARGE_EPSILON = 1.0e-300

# Speeds are capped this far (relative) below max_speed so |v| < max_speed
SPEED_CLAMP_MARGIN = 1.0e-12

# Escape direction used when neither field nor velocity defines one
DEFAULT_ESCAPE_AXIS = (1.0, 0.0, 0.0)

# Display colour of black holes
BLACK_HOLE_COLOR = (0.0, 0.0, 0.0)
DEFAULT_COLOR = (1.0, 1.0, 1.0)
