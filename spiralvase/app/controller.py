"""Pipeline controller for SpiralVase.

Orchestrates: load → parse → resolve start layer → spiral each layer →
validate → save.

Exposes two APIs:
  - Controller.run(SpiralRequest): low-level, used by CLI
  - SpiralVaseController.process(...): high-level, used by UI
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..core.gcode_parser import GCodeParser, ParsedGCode
from ..core.geometry import make_finder
from ..core.layer_mapper import LayerMapper, LayerMatch
from ..core.profiles import ProfileLoader, SpiralProfile
from ..core.spiral_vase import SpiralVase
from ..core.validator import ValidationResult, Validator

logger = logging.getLogger(__name__)


@dataclass
class SpiralRequest:
    """Everything needed to produce a spiralized file."""

    input_path: str | Path
    start_layer: Optional[int] = None        # layer number where spiraling starts
    start_z: Optional[float] = None          # ... or its Z height (mm)
    smooth: Optional[bool] = None            # None = use the profile setting
    transition: bool = True                  # ramp extrusion up on the first spiral layer
    output_dir: str | Path | None = None     # defaults to same dir as input
    output_path: str | Path | None = None    # exact target, overrides output_dir
    profile_name: str | None = None          # profile filename or None for default


@dataclass
class SpiralResult:
    """What the pipeline returns."""

    output_path: Path
    start: LayerMatch
    validation: ValidationResult
    line_count: int
    total_layers: int
    spiral_layers: int
    warnings: list[str] = field(default_factory=list)


class Controller:
    """High-level orchestrator for the spiral pipeline."""

    def __init__(self, profiles_dir: str | Path | None = None) -> None:
        self._parser = GCodeParser()
        self._validator = Validator()
        self._profile_loader = ProfileLoader(profiles_dir)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, request: SpiralRequest) -> SpiralResult:
        """Execute the full pipeline and return a *SpiralResult*."""
        warnings: list[str] = []

        # 1. Parse
        input_path = Path(request.input_path)
        parsed = self._parser.parse_file(input_path)
        logger.info(
            "Parsed %s: %d lines, %d layers (%s)",
            parsed.source_filename, len(parsed.lines), len(parsed.layers),
            parsed.detection_method,
        )

        # 2. Load profile
        profile = self._profile_loader.load(request.profile_name)

        if not parsed.layers:
            raise RuntimeError(
                "No layers detected in the G-code file. "
                "Cannot spiralize it."
            )

        # 3. Resolve where spiraling starts
        mapper = LayerMapper(parsed.layers, tolerance_mm=profile.tolerance_mm)
        start = self._resolve_start(mapper, request, parsed, profile)
        if start.warning:
            warnings.append(start.warning)

        # 4. Sanity warnings
        relative_e = parsed.state.relative_e or bool(parsed.metadata.use_relative_e_distances)
        if not relative_e:
            warnings.append(
                "Absolute extrusion (M82) detected: extrusion tapering and "
                "E rescaling are disabled."
            )
        if parsed.state.positioning == "G91":
            warnings.append(
                "Relative positioning (G91) detected: spiral Z values assume absolute XYZ."
            )
        if parsed.metadata.spiral_vase:
            warnings.append("File was already sliced in spiral vase mode.")

        smooth = profile.smooth_spiral if request.smooth is None else request.smooth

        # 5. Transform
        spiral = SpiralVase(
            smooth=smooth,
            relative_e=relative_e,
            max_xy_smoothing=profile.max_xy_smoothing,
            finder=make_finder(profile.reference_search),
        )
        lines, spiral_start_line, spiral_end_line = self._transform(
            parsed, spiral, start.index, request.transition
        )

        # 6. Validate
        validation = self._validator.validate(
            lines,
            spiral_start_line=spiral_start_line,
            spiral_end_line=spiral_end_line,
        )
        for issue in validation.warnings:
            warnings.append(f"[{issue.code}] line {issue.line_number}: {issue.message}")

        if not validation.ok:
            error_msgs = "; ".join(
                f"[{e.code}] line {e.line_number}: {e.message}"
                for e in validation.errors
            )
            raise RuntimeError(f"Validation failed: {error_msgs}")

        # 7. Save
        output_path = self._build_output_path(
            input_path, request.output_dir, request.output_path
        )
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8", newline="\n") as fh:
            for line in lines:
                fh.write(line)
                fh.write("\n")
        logger.info("Wrote %s (%d lines)", output_path, len(lines))

        return SpiralResult(
            output_path=output_path,
            start=start,
            validation=validation,
            line_count=len(lines),
            total_layers=len(parsed.layers),
            spiral_layers=len(parsed.layers) - start.index,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_start(
        mapper: LayerMapper,
        request: SpiralRequest,
        parsed: ParsedGCode,
        profile: SpiralProfile,
    ) -> LayerMatch:
        if request.start_layer is not None and request.start_z is not None:
            raise ValueError("Give either a start layer or a start Z, not both.")
        if request.start_layer is not None:
            return mapper.by_layer_number(request.start_layer)
        if request.start_z is not None:
            return mapper.by_z_height(request.start_z)

        bottom = parsed.metadata.bottom_solid_layers
        if bottom is None:
            bottom = profile.bottom_layers
        if bottom >= mapper.layer_count:
            raise RuntimeError(
                f"All {mapper.layer_count} layers are bottom layers "
                f"(bottom layers = {bottom}); nothing to spiralize."
            )
        return mapper.by_index(bottom)

    @staticmethod
    def _transform(
        parsed: ParsedGCode,
        spiral: SpiralVase,
        start_index: int,
        transition: bool,
    ) -> tuple[list[str], int, int]:
        """Run every layer through *spiral*.

        Returns the output lines and the ``[start, end)`` line range of the
        spiral region within them.
        """
        out: list[str] = []

        # Preamble only updates the tracked position
        spiral.enable(False)
        preamble = "".join(f"{line}\n" for line in parsed.preamble_lines)
        out.extend(spiral.process_layer(preamble).splitlines())

        last_index = len(parsed.layers) - 1
        spiral_start_line = len(out)
        for i, layer in enumerate(parsed.layers):
            if i == start_index:
                spiral_start_line = len(out)
            spiral.enable(i >= start_index)
            text = spiral.process_layer(
                parsed.layer_text(layer),
                transition_layer=transition and i == start_index,
                last_layer=i == last_index,
            )
            m = spiral.last_measurement
            if m is not None and m.total_xy_length > 0 and not m.has_z_move:
                raise RuntimeError(
                    f"Layer {layer.number} has no Z move; cannot place it "
                    f"on the spiral."
                )
            out.extend(text.splitlines())
        spiral_end_line = len(out)

        out.extend(parsed.footer_lines)
        return out, spiral_start_line, spiral_end_line

    @staticmethod
    def _build_output_path(
        input_path: Path,
        output_dir: str | Path | None,
        output_path: str | Path | None,
    ) -> Path:
        if output_path is not None:
            return Path(output_path)
        stem = input_path.stem
        suffix = input_path.suffix or ".gcode"
        name = f"{stem}_spiral{suffix}"
        if output_dir is not None:
            return Path(output_dir) / name
        return input_path.parent / name


# ======================================================================
# High-level UI-facing controller
# ======================================================================


@dataclass
class ProcessResult:
    """UI-friendly result from SpiralVaseController.process()."""

    output_path: Path
    total_layers: int
    start_layer: int
    start_z: float
    spiral_layers: int
    line_count: int
    warnings: list[str]


class SpiralVaseController:
    """Convenience wrapper used by the PyQt6 UI.

    Translates the UI's keyword-argument style into the core
    Controller's SpiralRequest/SpiralResult API.
    """

    def __init__(self, profiles_dir: str | Path | None = None) -> None:
        self._core = Controller(profiles_dir)

    def process(
        self,
        gcode_path: str,
        start_layer: Optional[int] = None,
        start_z: Optional[float] = None,
        smooth: Optional[bool] = None,
        transition: bool = True,
        profile: str = "default",
        output_path: Optional[str] = None,
    ) -> ProcessResult:
        """Run the full pipeline and return a *ProcessResult*.

        Leaving both *start_layer* and *start_z* unset starts spiraling
        after the file's bottom solid layers.
        """
        profile_name = profile if profile.endswith(".json") else f"{profile}.json"

        request = SpiralRequest(
            input_path=gcode_path,
            start_layer=start_layer,
            start_z=start_z,
            smooth=smooth,
            transition=transition,
            output_path=output_path,
            profile_name=profile_name,
        )

        result = self._core.run(request)

        return ProcessResult(
            output_path=result.output_path,
            total_layers=result.total_layers,
            start_layer=result.start.layer.number,
            start_z=result.start.layer.z_height,
            spiral_layers=result.spiral_layers,
            line_count=result.line_count,
            warnings=result.warnings,
        )
