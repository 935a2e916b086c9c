"""G-code validator for SpiralVase.

Validates transformed G-code to ensure:
  - No non-finite numbers (NaN / Inf) were written
  - Z never drops between extruding moves inside the spiral region, nor
    below the height the region is entered at
  - The spiral region actually contains extrusion
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .gcode_reader import GCodeLine, GCodeReader


class Severity(Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ValidationIssue:
    """A single validation finding."""

    severity: Severity
    line_number: int      # 1-based for human display
    message: str
    code: str             # machine-readable short code


@dataclass
class ValidationResult:
    """Aggregate validation result."""

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(i.severity == Severity.ERROR for i in self.issues)

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    def summary(self) -> str:
        if self.ok and not self.warnings:
            return "Validation passed with no issues."
        parts: list[str] = []
        if self.errors:
            parts.append(f"{len(self.errors)} error(s)")
        if self.warnings:
            parts.append(f"{len(self.warnings)} warning(s)")
        return "Validation: " + ", ".join(parts) + "."


# Compiled patterns
_RE_NON_FINITE = re.compile(r"\b[XYZEF]\s*[-+]?(?:NAN|INF)", re.IGNORECASE)

# Z may wobble by float formatting (3 decimals) without being a real drop
_Z_EPSILON = 0.0015


class Validator:
    """Validate a list of transformed G-code lines."""

    def validate(
        self,
        lines: list[str],
        spiral_start_line: int = 0,
        spiral_end_line: Optional[int] = None,
    ) -> ValidationResult:
        """Check *lines*; the spiral region is ``[start, end)`` (0-based)."""
        result = ValidationResult()
        end = len(lines) if spiral_end_line is None else spiral_end_line

        reader = GCodeReader()
        entry_z: Optional[float] = None
        last_extrude_z: Optional[float] = None
        spiral_extrusions = 0

        for idx, raw_line in enumerate(lines):
            line_num = idx + 1
            if idx == spiral_start_line:
                entry_z = reader.z
            stripped = raw_line.strip()

            # Skip blanks / pure comments
            if not stripped or stripped.startswith(";"):
                continue

            cmd = stripped.split(";", 1)[0].strip()
            if _RE_NON_FINITE.search(cmd):
                result.issues.append(ValidationIssue(
                    severity=Severity.ERROR,
                    line_number=line_num,
                    message=f"Non-finite coordinate written: {cmd}",
                    code="NON_FINITE",
                ))
                continue

            gline = GCodeLine(raw_line)
            in_spiral = spiral_start_line <= idx < end

            if in_spiral and gline.extruding(reader) and gline.dist_xy(reader) > 0:
                spiral_extrusions += 1
                new_z = gline.new_z(reader)
                if entry_z is not None and new_z < entry_z - _Z_EPSILON:
                    result.issues.append(ValidationIssue(
                        severity=Severity.ERROR,
                        line_number=line_num,
                        message=(
                            f"Extruding at Z {new_z:.3f} mm, below the spiral "
                            f"entry height {entry_z:.3f} mm."
                        ),
                        code="Z_BELOW_ENTRY",
                    ))
                elif last_extrude_z is not None and new_z < last_extrude_z - _Z_EPSILON:
                    result.issues.append(ValidationIssue(
                        severity=Severity.WARNING,
                        line_number=line_num,
                        message=(
                            f"Z drops from {last_extrude_z:.3f} mm to {new_z:.3f} mm "
                            f"inside the spiral."
                        ),
                        code="Z_DROP",
                    ))
                last_extrude_z = new_z

            reader.update(gline)

        if spiral_start_line < end and spiral_extrusions == 0:
            result.issues.append(ValidationIssue(
                severity=Severity.WARNING,
                line_number=spiral_start_line + 1,
                message="No extruding moves found in the spiral region.",
                code="EMPTY_SPIRAL",
            ))

        return result
