"""Command-line entry: regenerate a backend tree from its configuration document.

Usage:
    python -m app.generators.backend_gen path/to/backend-config.json out_dir [--enforce-unique]
"""
import argparse
import sys
from pathlib import Path
from app.generators.backend_gen.generator import generate_backend


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Generate a backend from backend-config.json")
    parser.add_argument("config_path", type=Path)
    parser.add_argument("out_dir", type=Path)
    parser.add_argument("--enforce-unique", action="store_true", help="Emit unique constraints")
    args = parser.parse_args(argv)

    if not args.config_path.exists():
        print(f"Error: configuration not found: {args.config_path}", file=sys.stderr)
        return 1

    try:
        files = generate_backend(args.config_path, args.out_dir, enforce_unique=args.enforce_unique)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Generated {len(files)} files in {args.out_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
