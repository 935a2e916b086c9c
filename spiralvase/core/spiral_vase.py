"""Spiral vase layer transformer.

Rewrites one layer of G-code at a time so that Z rises continuously along
the extrusion path instead of stepping once per layer.  Each call runs two
scans over the layer text:

  1. ``measure_layer``: read-only; total XY length of extruding moves,
     total Z rise and the Z the layer is entered at.
  2. ``process_layer``: the rewrite; ramps Z, optionally tapers the
     extrusion on the transition / final layer and optionally pulls XY
     toward the previous layer's path.

The instance is stateful: it shares one ``GCodeReader`` with the caller's
stream and keeps the previous layer's points.  Layers must be fed in print
order, including the ones that are not transformed (disable the instance
for those so positions keep being tracked).

Assumptions about every transformed layer:
  - it is a complete layer with a single Z move at the beginning,
  - its geometry is one continuous loop,
  - XYZ positioning is absolute (G90).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .gcode_reader import Axis, GCodeLine, GCodeReader
from .geometry import Point, ReferenceFinder, SegmentProjectionFinder, distance, lerp

logger = logging.getLogger(__name__)

# Not derived from the extrusion width; a fixed bound that keeps the blend
# from pulling toward unrelated geometry.
DEFAULT_MAX_XY_SMOOTHING = 2.0

# Linear moves; slicers differ on which one carries the layer change
_MOVES = ("G0", "G1")


@dataclass(frozen=True)
class LayerMeasurement:
    """Scalars gathered by the read-only first scan of a layer."""

    total_xy_length: float
    total_z_height: float
    start_z: float              # entry Z (already lowered by total_z_height)
    has_z_move: bool = True


class _LayerRewrite:
    """Per-call state of the second scan.  Used as the reader callback."""

    def __init__(
        self,
        measurement: LayerMeasurement,
        previous_layer: Sequence[Point],
        last_point: Point,
        finder: Optional[ReferenceFinder],
        max_xy_smoothing: float,
        transition: bool,
        ramp_down: bool,
        rescale_e: bool,
    ) -> None:
        self.m = measurement
        self.previous_layer = previous_layer
        self.last_point = last_point
        self.finder = finder
        self.max_xy_smoothing = max_xy_smoothing
        self.transition = transition
        self.ramp_down = ramp_down
        self.rescale_e = rescale_e

        self.length = 0.0
        self.out: list[str] = []
        self.tail: list[str] = []       # ramp-down pass, emitted after the layer
        self.points: list[Point] = []
        self.smoothed = 0

    def __call__(self, reader: GCodeReader, line: GCodeLine) -> None:
        if line.cmd in _MOVES:
            dist_xy = line.dist_xy(reader)
            if line.has_z() and dist_xy == 0:
                # Initial Z move, bare or on a G0 that repeats the current XY:
                # go to where the previous layer ended
                line.set(Axis.Z, self.m.start_z)
                self.out.append(line.raw)
                return
            if dist_xy > 0:
                if line.extruding(reader):
                    self._extrude(reader, line, dist_xy)
                # Travel moves are dropped: the move to the first perimeter
                # point would leave a seam when loops are not aligned in XY.
                return

        self.out.append(line.raw)
        if self.ramp_down:
            self.tail.append(line.raw)

    def _extrude(self, reader: GCodeReader, line: GCodeLine, dist_xy: float) -> None:
        self.length += dist_xy
        factor = self.length / self.m.total_xy_length

        if self.transition:
            line.set(Axis.E, line.e() * factor)
        elif self.ramp_down:
            # Cloned before the Z ramp: the trailing pass keeps the top height
            tail_line = line.copy()
            tail_line.set(Axis.E, line.e() * (1.0 - factor))
            self.tail.append(tail_line.raw)

        line.set(Axis.Z, self.m.start_z + factor * self.m.total_z_height)

        target = Point(line.new_x(reader), line.new_y(reader))
        self.points.append(target)
        emitted = target

        if self.finder is not None and self.previous_layer:
            ref = self.finder.find_reference(target, self.previous_layer)
            if ref is not None and ref[1] < self.max_xy_smoothing:
                nearest, _ = ref
                emitted = lerp(nearest, target, factor)
                line.set(Axis.X, emitted.x)
                line.set(Axis.Y, emitted.y)
                if self.rescale_e and line.has_e():
                    new_dist = distance(self.last_point, emitted)
                    line.set(Axis.E, line.e() * new_dist / dist_xy)
                self.smoothed += 1

        self.last_point = emitted
        self.out.append(line.raw)


class SpiralVase:
    """Stateful per-layer spiral vase rewriter.

    *relative_e* states whether the stream uses relative extrusion (M83).
    Extrusion tapering and E rescaling only make sense for relative E and
    are switched off otherwise.  A reader created here starts in the same
    extruder mode; with ``relative_e=None`` the mode is read from the
    reader on every layer instead.
    """

    def __init__(
        self,
        enabled: bool = False,
        smooth: bool = False,
        relative_e: Optional[bool] = True,
        max_xy_smoothing: float = DEFAULT_MAX_XY_SMOOTHING,
        finder: Optional[ReferenceFinder] = None,
        reader: Optional[GCodeReader] = None,
    ) -> None:
        self._enabled = enabled
        self._smooth = smooth
        self._relative_e = relative_e
        self._max_xy_smoothing = max_xy_smoothing
        self._finder: ReferenceFinder = finder or SegmentProjectionFinder()
        if reader is None:
            reader = GCodeReader()
            if relative_e is not None:
                reader.set_relative_e(relative_e)
        self._reader = reader
        self._previous_layer: tuple[Point, ...] = ()
        self._last_measurement: Optional[LayerMeasurement] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self, enabled: bool) -> None:
        self._enabled = enabled

    @property
    def smooth(self) -> bool:
        return self._smooth

    @property
    def reader(self) -> GCodeReader:
        return self._reader

    @property
    def relative_e(self) -> bool:
        if self._relative_e is None:
            return self._reader.relative_e
        return self._relative_e

    @property
    def previous_layer(self) -> tuple[Point, ...]:
        """Points of the last processed layer (original, un-smoothed targets)."""
        return self._previous_layer

    @property
    def last_measurement(self) -> Optional[LayerMeasurement]:
        """Measurement of the last transformed layer (None while disabled)."""
        return self._last_measurement

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def measure_layer(self, gcode: str) -> LayerMeasurement:
        """Read-only scan of *gcode* on a clone of the reader."""
        total_xy_length = 0.0
        total_z_height = 0.0
        # Without a Z move the layer stays at the height it is entered at
        start_z = self._reader.z
        found_z = False

        def scan(reader: GCodeReader, line: GCodeLine) -> None:
            nonlocal total_xy_length, total_z_height, start_z, found_z
            if line.cmd not in _MOVES:
                return
            if line.extruding(reader):
                total_xy_length += line.dist_xy(reader)
            elif line.has_z():
                total_z_height += line.dist_z(reader)
                if not found_z:
                    start_z = line.new_z(reader)
                    found_z = True

        self._reader.copy().parse_buffer(gcode, scan)

        # The stream carries the top of the layer, the ramp starts at the bottom
        return LayerMeasurement(
            total_xy_length=total_xy_length,
            total_z_height=total_z_height,
            start_z=start_z - total_z_height,
            has_z_move=found_z,
        )

    def process_layer(
        self,
        gcode: str,
        transition_layer: bool = False,
        last_layer: bool = False,
    ) -> str:
        """Transform one layer and return the new G-code.

        *transition_layer* marks the first spiral layer (extrusion ramps up
        from zero); *last_layer* marks the final one (a trailing pass ramps
        extrusion down to zero at constant height).
        """
        if not self._enabled:
            self._last_measurement = None
            self._reader.parse_buffer(gcode)
            return gcode

        measurement = self.measure_layer(gcode)
        self._last_measurement = measurement

        if measurement.total_xy_length <= 0.0:
            logger.warning("Layer has no extruding XY moves; passing it through unchanged.")
            self._reader.parse_buffer(gcode)
            self._previous_layer = ()
            return gcode

        if not measurement.has_z_move:
            logger.warning(
                "Layer has no Z move; holding it at Z %.3f.", measurement.start_z
            )

        relative_e = self.relative_e
        transition = transition_layer and relative_e
        if transition_layer and not relative_e:
            logger.warning("Transition tapering needs relative extrusion (M83); skipped.")
        ramp_down = last_layer and not transition and relative_e

        previous = self._previous_layer
        last_point = previous[-1] if previous else Point(self._reader.x, self._reader.y)

        rewrite = _LayerRewrite(
            measurement=measurement,
            previous_layer=previous,
            last_point=last_point,
            finder=self._finder if self._smooth else None,
            max_xy_smoothing=self._max_xy_smoothing,
            transition=transition,
            ramp_down=ramp_down,
            rescale_e=relative_e,
        )
        self._reader.parse_buffer(gcode, rewrite)

        logger.debug(
            "Spiral layer: start_z=%.3f height=%.3f length=%.3f points=%d smoothed=%d",
            measurement.start_z,
            measurement.total_z_height,
            measurement.total_xy_length,
            len(rewrite.points),
            rewrite.smoothed,
        )

        self._previous_layer = tuple(rewrite.points)
        return "".join(f"{raw}\n" for raw in rewrite.out + rewrite.tail)
