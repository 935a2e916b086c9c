"""SpiralVase CLI entry point.

Usage:
    python -m spiralvase.app.main <gcode_file>
    python -m spiralvase.app.main <gcode_file> --start-layer <N>
    python -m spiralvase.app.main <gcode_file> --start-z <mm> --smooth

Options:
    --start-layer   Start spiraling at this layer number (int)
    --start-z       Start spiraling at this Z height (float, mm)
    --smooth        Blend each loop toward the previous one in XY
    --no-transition Do not ramp extrusion up on the first spiral layer
    --output        Output directory (default: same as input)
    --profile       Spiral profile filename (default: default.json)
    --verbose       Debug logging
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .controller import Controller, SpiralRequest


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="spiralvase",
        description="SpiralVase: turn stacked G-code loops into a continuous spiral.",
    )
    p.add_argument(
        "gcode_file",
        type=str,
        help="Path to the sliced G-code file.",
    )

    group = p.add_mutually_exclusive_group()
    group.add_argument(
        "--start-layer",
        type=int,
        default=None,
        help="Start spiraling at this layer number (default: after the bottom layers).",
    )
    group.add_argument(
        "--start-z",
        type=float,
        default=None,
        help="Start spiraling at this Z height (mm).",
    )

    p.add_argument(
        "--smooth",
        action="store_true",
        default=None,
        help="Smooth the XY path toward the previous layer.",
    )
    p.add_argument(
        "--no-transition",
        action="store_false",
        dest="transition",
        help="Do not taper extrusion in on the first spiral layer.",
    )
    p.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output directory (default: same as input file).",
    )
    p.add_argument(
        "--profile",
        type=str,
        default=None,
        help="Spiral profile filename (default: default.json).",
    )
    p.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    input_path = Path(args.gcode_file)
    if not input_path.is_file():
        print(f"Error: file not found: {input_path}", file=sys.stderr)
        return 1

    request = SpiralRequest(
        input_path=input_path,
        start_layer=args.start_layer,
        start_z=args.start_z,
        smooth=args.smooth,
        transition=args.transition,
        output_dir=args.output,
        profile_name=args.profile,
    )

    controller = Controller()

    try:
        result = controller.run(request)
    except (RuntimeError, KeyError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    # Report
    print(f"✓ Spiral file saved: {result.output_path}")
    print(f"  Start layer: {result.start.layer.number} (Z {result.start.layer.z_height:.3f} mm)")
    print(f"  Spiral layers: {result.spiral_layers} of {result.total_layers}")
    print(f"  Lines: {result.line_count}")

    if result.warnings:
        print("  Warnings:")
        for w in result.warnings:
            print(f"    ⚠ {w}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
