"""
Validate a configuration file and report any issues.

Usage:
    python scripts/validate_config.py configs/binary_star.yaml
"""

import sys
from pathlib import Path

# Add src to path so we can import relsim package
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from relsim.config import SimulationParameters
from relsim.exceptions import UnknownUnitError


def main():
    if len(sys.argv) < 2:
        print("Usage: python scripts/validate_config.py <config_file.yaml>")
        sys.exit(1)

    config_path = sys.argv[1]

    print(f"Validating configuration: {config_path}")
    print("=" * 70)

    try:
        params = SimulationParameters.from_yaml(config_path)
        print("[OK] Configuration loaded successfully")
        print()

        # Run validation
        warnings = params.validate()

        if not warnings:
            print("[OK] All validation checks passed!")
            print()
        else:
            # Categorize warnings
            errors = [w for w in warnings if w.startswith("ERROR")]
            warns = [w for w in warnings if w.startswith("WARNING")]
            infos = [w for w in warnings if w.startswith("INFO")]

            if errors:
                print(f"[ERROR] {len(errors)} ERROR(S) found:")
                for error in errors:
                    print(f"  {error}")
                print()

            if warns:
                print(f"[WARN] {len(warns)} WARNING(S):")
                for warn in warns:
                    print(f"  {warn}")
                print()

            if infos:
                print(f"[INFO] {len(infos)} INFO message(s):")
                for info in infos:
                    print(f"  {info}")
                print()

            if errors:
                print("Configuration has ERRORS and should not be used for simulation.")
                sys.exit(1)

        units = params.build_units()
        print("Resolved unit system:")
        print(f"  {units!r}")
        print(f"  G = {units.G:.6e}  k = {units.coulomb_const:.6e}  c = {units.c:.6e}")
        print(f"  max_space_error = {units.max_space_error:.1e}, "
              f"max_axis_distance = {units.max_axis_distance:.3e} {units.space_unit}")
        print()
        print("Configuration summary:")
        print(params)

        if warnings:
            print("Configuration has warnings but may be usable.")
            print("Review warnings carefully before running simulation.")
        sys.exit(0)

    except FileNotFoundError as e:
        print(f"[ERROR] {e}")
        sys.exit(1)
    except UnknownUnitError as e:
        print(f"[ERROR] {e}")
        sys.exit(1)
    except ValueError as e:
        print(f"[ERROR] Malformed configuration: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
