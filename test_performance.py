"""Performance check: spiralize a ~20MB synthetic G-code file."""
import math
import sys
import tempfile
import time
from pathlib import Path

from spiralvase.app.controller import Controller, SpiralRequest


def generate_large_gcode(target_mb: float = 20.0) -> str:
    """Generate a ~target_mb synthetic cylinder, one 60-segment loop per layer."""
    lines = []
    lines.append("; synthetic large file")
    lines.append("M104 S210")
    lines.append("M109 S210")
    lines.append("G21")
    lines.append("G90")
    lines.append("M83")
    lines.append("G28")
    lines.append("G92 E0")

    z = 0.2
    layer = 0
    target_bytes = int(target_mb * 1024 * 1024)
    total = 0

    while total < target_bytes:
        lines.append(";LAYER_CHANGE")
        lines.append(f"G1 Z{z:.3f} F600")
        total += 30
        for i in range(1, 61):
            a = 2 * math.pi * i / 60
            line = f"G1 X{100 + 40 * math.cos(a):.3f} Y{100 + 40 * math.sin(a):.3f} E0.16 F1200"
            lines.append(line)
            total += len(line) + 1
        z += 0.2
        layer += 1

    lines.append("M104 S0")
    lines.append("M84")
    lines.append("; bottom_solid_layers = 3")
    return "\n".join(lines) + "\n"


def main() -> int:
    print("Generating ~20MB synthetic G-code...")
    t0 = time.perf_counter()
    text = generate_large_gcode(20.0)
    gen_time = time.perf_counter() - t0
    size_mb = len(text.encode()) / (1024 * 1024)
    print(f"  Generated {size_mb:.1f} MB in {gen_time:.2f}s")

    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "large.gcode"
        path.write_text(text, encoding="utf-8")
        del text  # free memory

        for smooth in (False, True):
            t0 = time.perf_counter()
            result = Controller().run(SpiralRequest(input_path=path, smooth=smooth))
            run_time = time.perf_counter() - t0
            print(
                f"  smooth={smooth}: {result.spiral_layers} layers, "
                f"{result.line_count} lines in {run_time:.2f}s"
            )
            if not result.validation.ok:
                print(f"  {result.validation.summary()}")
                return 1

    print("Performance run finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
