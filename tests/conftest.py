"""
Pytest configuration for the relativistic N-body simulation tests.

This file ensures the relsim package is importable from tests.
"""

import sys
from pathlib import Path

import pytest

# Add the src directory to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / 'src'))

from relsim.units import UnitSystem  # noqa: E402


@pytest.fixture
def si_units():
    """SI unit system at the default precision (8 digits)."""
    return UnitSystem()
