"""
Exception types raised by the simulation kernel.
"""


class UnknownUnitError(KeyError):
    """A unit (or dimension) name is not present in the unit tables."""

    def __init__(self, name, dimension=None):
        self.name = name
        self.dimension = dimension
        if dimension is None:
            message = f"Unknown dimension '{name}'"
        else:
            message = f"Unknown {dimension} unit '{name}'"
        super().__init__(message)

    def __str__(self):
        return self.args[0]


class InvalidMassError(ValueError):
    """Total mass is zero or negative where an acceleration is required."""


class NonFiniteStateError(ArithmeticError):
    """Position, velocity or acceleration of a body became NaN or infinite."""
