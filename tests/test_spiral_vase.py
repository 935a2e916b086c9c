"""Tests for the spiral vase layer transformer.

Covers:
  - measure_layer: XY length, Z rise, entry Z, reader untouched
  - process_layer: Z ramp, travel suppression, transition taper,
    final-layer ramp-down, smoothing (segment / point search),
    point-set handoff, disabled pass-through, degenerate layers
  - extruder mode: reader seeding, following the reader
"""

from __future__ import annotations

import dataclasses
import math

import pytest

from spiralvase.core.gcode_reader import Axis, GCodeLine, GCodeReader
from spiralvase.core.geometry import NearestPointFinder, Point
from spiralvase.core.spiral_vase import SpiralVase


# ======================================================================
# Fixtures & helpers
# ======================================================================

SQUARE_LAYER = """\
G1 Z0.4
;TYPE:External perimeter
G1 F1200
G1 X10 Y0 E1
G1 X10 Y10 E1
G1 X0 Y10 E1
G1 X0 Y0 E1
"""

SQUARE_LAYER_ABSOLUTE_E = """\
G1 Z0.4
G1 X10 Y0 E1
G1 X10 Y10 E2
G1 X0 Y10 E3
G1 X0 Y0 E4
"""

# Square entered from (0, 0); serves as the previous layer when smoothing
PREVIOUS_SQUARE = """\
G1 Z0.4
G1 X10 Y0 E1
G1 X10 Y10 E1
G1 X0 Y10 E1
G1 X0 Y0 E1
"""

# Next layer, first point half a millimetre outside the previous square
SHIFTED_LAYER = """\
G1 Z0.8
G1 X10.5 Y5 E1
G1 X0 Y5 E1
"""


def _spiral_at(z: float, **kwargs) -> SpiralVase:
    """An enabled transformer whose reader already sits at height *z*."""
    spiral = SpiralVase(**kwargs)
    spiral.process_layer(f"G1 Z{z}\n")
    spiral.enable(True)
    return spiral


def _extrusions(text: str) -> list[GCodeLine]:
    result = []
    for raw in text.splitlines():
        line = GCodeLine(raw)
        if line.has_e() and (line.has_x() or line.has_y()):
            result.append(line)
    return result


# ======================================================================
# 1. Measurement
# ======================================================================

class TestMeasureLayer:

    def test_square_layer(self):
        spiral = _spiral_at(0.2)
        m = spiral.measure_layer(SQUARE_LAYER)
        assert m.total_xy_length == pytest.approx(40.0)
        assert m.total_z_height == pytest.approx(0.2)
        assert m.start_z == pytest.approx(0.2)
        assert m.has_z_move

    def test_reader_not_advanced(self):
        spiral = _spiral_at(0.2)
        spiral.measure_layer(SQUARE_LAYER)
        assert spiral.reader.z == pytest.approx(0.2)
        assert spiral.reader.x == 0.0

    def test_travel_not_counted(self):
        spiral = _spiral_at(0.2)
        m = spiral.measure_layer("G1 Z0.4\nG1 X50 Y50 F9000\nG1 X53 Y54 E0.2\n")
        assert m.total_xy_length == pytest.approx(5.0)

    def test_only_first_z_move_sets_start(self):
        spiral = _spiral_at(0.2)
        m = spiral.measure_layer("G1 Z0.4\nG1 X10 E1\nG1 Z0.5\n")
        assert m.total_z_height == pytest.approx(0.3)
        # 0.4 - 0.3, not 0.5 - 0.3
        assert m.start_z == pytest.approx(0.1)

    def test_no_extrusion(self):
        spiral = _spiral_at(0.2)
        m = spiral.measure_layer("G1 Z0.4\nG1 X10 Y10 F9000\n")
        assert m.total_xy_length == 0.0


# ======================================================================
# 2. Z ramp
# ======================================================================

class TestZRamp:

    def test_worked_example(self):
        spiral = _spiral_at(5.0)
        out = spiral.process_layer("G1 Z7.0\nG1 X3 Y0 E0.3\nG1 X10 Y0 E0.7\n")
        assert out.splitlines() == [
            "G1 Z5",
            "G1 X3 Y0 E0.3 Z5.6",
            "G1 X10 Y0 E0.7 Z7",
        ]

    def test_monotonic_and_reaches_top(self):
        spiral = _spiral_at(0.2)
        out = spiral.process_layer(SQUARE_LAYER)
        zs = [l.value(Axis.Z) for l in _extrusions(out)]
        assert zs == pytest.approx([0.25, 0.3, 0.35, 0.4])
        assert zs == sorted(zs)
        assert zs[-1] == pytest.approx(0.4)

    def test_initial_z_move_lowered_to_entry(self):
        spiral = _spiral_at(0.2)
        out = spiral.process_layer(SQUARE_LAYER)
        assert out.splitlines()[0] == "G1 Z0.2"

    def test_layer_change_on_travel_move(self):
        # Cura puts the new Z on a G0 that repeats the layer's start point
        spiral = _spiral_at(0.2)
        out = spiral.process_layer(
            "G0 F3600 X0 Y0 Z0.4\n"
            "G1 X10 Y0 E1\nG1 X10 Y10 E1\nG1 X0 Y10 E1\nG1 X0 Y0 E1\n"
        )
        assert out.splitlines()[0] == "G0 F3600 X0 Y0 Z0.2"
        zs = [l.value(Axis.Z) for l in _extrusions(out)]
        assert zs == pytest.approx([0.25, 0.3, 0.35, 0.4])

    def test_consecutive_layers_join(self):
        spiral = _spiral_at(0.2)
        spiral.process_layer(SQUARE_LAYER)
        out = spiral.process_layer(SQUARE_LAYER.replace("Z0.4", "Z0.6"))
        lines = out.splitlines()
        assert GCodeLine(lines[0]).value(Axis.Z) == pytest.approx(0.4)
        zs = [l.value(Axis.Z) for l in _extrusions(out)]
        assert zs == pytest.approx([0.45, 0.5, 0.55, 0.6])

    def test_travel_moves_dropped(self):
        spiral = _spiral_at(0.2)
        out = spiral.process_layer("G1 Z0.4\nG1 X0 Y5 F9000\nG1 X10 Y5 E1\n")
        assert "G1 X0 Y5 F9000" not in out.splitlines()
        assert len(out.splitlines()) == 2

    def test_other_lines_pass_through(self):
        spiral = _spiral_at(0.2)
        out = spiral.process_layer(SQUARE_LAYER)
        lines = out.splitlines()
        assert ";TYPE:External perimeter" in lines
        assert "G1 F1200" in lines

    def test_extrusion_unchanged_on_steady_layer(self):
        spiral = _spiral_at(0.2)
        out = spiral.process_layer(SQUARE_LAYER)
        assert [l.e() for l in _extrusions(out)] == [1.0, 1.0, 1.0, 1.0]


# ======================================================================
# 3. Transition / final layer tapering
# ======================================================================

class TestTransitionLayer:

    def test_extrusion_ramps_up(self):
        spiral = _spiral_at(0.2)
        out = spiral.process_layer(SQUARE_LAYER, transition_layer=True)
        es = [l.e() for l in _extrusions(out)]
        assert es == pytest.approx([0.25, 0.5, 0.75, 1.0])

    def test_first_extrusion_near_zero_for_fine_segments(self):
        segments = "".join(f"G1 X{i} Y0 E0.1\n" for i in range(1, 101))
        spiral = _spiral_at(0.2)
        out = spiral.process_layer("G1 Z0.4\n" + segments, transition_layer=True)
        es = [l.e() for l in _extrusions(out)]
        assert es[0] == pytest.approx(0.001)
        assert es[-1] == pytest.approx(0.1)

    def test_absolute_e_disables_taper(self):
        spiral = _spiral_at(0.2, relative_e=False)
        out = spiral.process_layer(SQUARE_LAYER_ABSOLUTE_E, transition_layer=True)
        assert [l.e() for l in _extrusions(out)] == [1.0, 2.0, 3.0, 4.0]


class TestFinalLayer:

    def test_ramp_down_pass_appended(self):
        spiral = _spiral_at(0.2)
        out = spiral.process_layer(SQUARE_LAYER, last_layer=True)
        lines = out.splitlines()
        assert len(lines) == 13
        assert lines[7:] == [
            ";TYPE:External perimeter",
            "G1 F1200",
            "G1 X10 Y0 E0.75",
            "G1 X10 Y10 E0.5",
            "G1 X0 Y10 E0.25",
            "G1 X0 Y0 E0",
        ]

    def test_main_ramp_unaffected(self):
        spiral = _spiral_at(0.2)
        out = spiral.process_layer(SQUARE_LAYER, last_layer=True)
        main = "\n".join(out.splitlines()[:7])
        extrusions = _extrusions(main)
        assert [l.value(Axis.Z) for l in extrusions] == pytest.approx([0.25, 0.3, 0.35, 0.4])
        assert [l.e() for l in extrusions] == [1.0, 1.0, 1.0, 1.0]

    def test_ramp_down_keeps_top_height(self):
        spiral = _spiral_at(0.2)
        out = spiral.process_layer(SQUARE_LAYER, last_layer=True)
        tail = out.splitlines()[7:]
        assert not any(GCodeLine(l).has_z() for l in tail)

    def test_transition_wins_over_final(self):
        spiral = _spiral_at(0.2)
        out = spiral.process_layer(SQUARE_LAYER, transition_layer=True, last_layer=True)
        assert len(out.splitlines()) == 7
        es = [l.e() for l in _extrusions(out)]
        assert es == pytest.approx([0.25, 0.5, 0.75, 1.0])

    def test_absolute_e_disables_ramp_down(self):
        spiral = _spiral_at(0.2, relative_e=False)
        out = spiral.process_layer(SQUARE_LAYER_ABSOLUTE_E, last_layer=True)
        assert len(out.splitlines()) == 5


# ======================================================================
# 4. Smoothing
# ======================================================================

class TestSmoothing:

    def _expected_first(self):
        d1 = math.hypot(10.5, 5.0)
        f1 = d1 / (d1 + 10.5)
        x = 10.0 + 0.5 * f1
        return d1, f1, x

    def test_first_layer_not_smoothed(self):
        spiral = SpiralVase(enabled=True, smooth=True)
        out = spiral.process_layer(PREVIOUS_SQUARE)
        assert [l.value(Axis.X) for l in _extrusions(out)] == [10.0, 10.0, 0.0, 0.0]

    def test_point_blended_toward_previous_path(self):
        spiral = SpiralVase(enabled=True, smooth=True)
        spiral.process_layer(PREVIOUS_SQUARE)
        out = spiral.process_layer(SHIFTED_LAYER)
        first, second = _extrusions(out)
        d1, f1, x = self._expected_first()
        assert first.value(Axis.X) == pytest.approx(x, abs=1e-3)
        assert first.value(Axis.Y) == pytest.approx(5.0)
        assert second.value(Axis.X) == pytest.approx(0.0)
        assert second.value(Axis.Y) == pytest.approx(5.0)

    def test_extrusion_rescaled_by_length_ratio(self):
        spiral = SpiralVase(enabled=True, smooth=True)
        spiral.process_layer(PREVIOUS_SQUARE)
        out = spiral.process_layer(SHIFTED_LAYER)
        first, second = _extrusions(out)
        d1, f1, x = self._expected_first()
        # First segment starts where the previous layer ended, (0, 0)
        assert first.e() == pytest.approx(math.hypot(x, 5.0) / d1, abs=1e-5)
        assert second.e() == pytest.approx(x / 10.5, abs=1e-5)

    def test_rescale_applies_on_top_of_transition_taper(self):
        spiral = SpiralVase(enabled=True, smooth=True)
        spiral.process_layer(PREVIOUS_SQUARE)
        out = spiral.process_layer(SHIFTED_LAYER, transition_layer=True)
        first, second = _extrusions(out)
        d1, f1, x = self._expected_first()
        assert first.e() == pytest.approx(f1 * math.hypot(x, 5.0) / d1, abs=2e-5)
        # factor reaches 1 on the last move, so only the length ratio remains
        assert second.e() == pytest.approx(x / 10.5, abs=2e-5)

    def test_factor_slightly_past_one(self, monkeypatch):
        spiral = SpiralVase(enabled=True, smooth=True)
        spiral.process_layer(PREVIOUS_SQUARE)
        measure = spiral.measure_layer

        def short_by_rounding(gcode):
            m = measure(gcode)
            return dataclasses.replace(
                m, total_xy_length=m.total_xy_length * (1.0 - 1e-9)
            )

        monkeypatch.setattr(spiral, "measure_layer", short_by_rounding)
        out = spiral.process_layer("G1 Z0.8\nG1 X10.5 Y5 E1\nG1 X0.5 Y5 E1\n")
        last = _extrusions(out)[-1]
        assert last.value(Axis.X) == pytest.approx(0.5, abs=1e-3)
        assert last.value(Axis.Y) == pytest.approx(5.0)
        assert last.value(Axis.Z) == pytest.approx(0.8, abs=1e-3)
        assert math.isfinite(last.e())
        assert spiral.previous_layer[-1] == Point(0.5, 5)

    def test_threshold_blocks_smoothing(self):
        spiral = SpiralVase(enabled=True, smooth=True, max_xy_smoothing=0.4)
        spiral.process_layer(PREVIOUS_SQUARE)
        out = spiral.process_layer(SHIFTED_LAYER)
        first = _extrusions(out)[0]
        assert first.value(Axis.X) == 10.5
        assert first.e() == 1.0

    def test_smoothing_disabled(self):
        spiral = SpiralVase(enabled=True)
        spiral.process_layer(PREVIOUS_SQUARE)
        out = spiral.process_layer(SHIFTED_LAYER)
        first = _extrusions(out)[0]
        assert first.value(Axis.X) == 10.5
        assert first.e() == 1.0

    def test_point_search_finds_only_vertices(self):
        spiral = SpiralVase(enabled=True, smooth=True, finder=NearestPointFinder())
        spiral.process_layer(PREVIOUS_SQUARE)
        out = spiral.process_layer(SHIFTED_LAYER)
        # Nearest vertices are ~5 mm away, beyond the 2 mm bound
        assert [l.value(Axis.X) for l in _extrusions(out)] == [10.5, 0.0]

    def test_reader_tracks_original_targets(self):
        spiral = SpiralVase(enabled=True, smooth=True)
        spiral.process_layer(PREVIOUS_SQUARE)
        spiral.process_layer("G1 Z0.8\nG1 X10.5 Y5 E1\n")
        assert spiral.reader.x == 10.5
        assert spiral.reader.y == 5.0


# ======================================================================
# 5. Point-set handoff
# ======================================================================

class TestPointSetHandoff:

    def test_one_point_per_extrusion_in_order(self):
        spiral = SpiralVase(enabled=True)
        spiral.process_layer(PREVIOUS_SQUARE)
        assert spiral.previous_layer == (
            Point(10, 0), Point(10, 10), Point(0, 10), Point(0, 0),
        )

    def test_stores_unsmoothed_targets(self):
        spiral = SpiralVase(enabled=True, smooth=True)
        spiral.process_layer(PREVIOUS_SQUARE)
        spiral.process_layer(SHIFTED_LAYER)
        assert spiral.previous_layer == (Point(10.5, 5), Point(0, 5))

    def test_replaced_every_layer(self):
        spiral = SpiralVase(enabled=True)
        spiral.process_layer(PREVIOUS_SQUARE)
        spiral.process_layer(SHIFTED_LAYER)
        assert len(spiral.previous_layer) == 2


# ======================================================================
# 6. Pass-through and degenerate layers
# ======================================================================

class TestPassThrough:

    def test_disabled_is_identity(self):
        text = "G1 Z0.4 F720\r\nG1 X1 Y1 E1 ; perimeter\nM106 S255\nG1 X5 Y5 F9000"
        spiral = SpiralVase()
        assert spiral.process_layer(text) == text

    def test_disabled_still_tracks_position(self):
        spiral = SpiralVase()
        spiral.process_layer("G1 Z0.4\nG1 X12 Y7 E1\n")
        assert (spiral.reader.x, spiral.reader.y, spiral.reader.z) == (12.0, 7.0, 0.4)

    def test_no_extrusion_layer_unchanged(self):
        spiral = _spiral_at(0.2)
        spiral.process_layer(PREVIOUS_SQUARE)
        text = "G1 Z0.6\nG1 X5 Y5 F9000\n"
        assert spiral.process_layer(text) == text
        assert spiral.previous_layer == ()
        assert spiral.reader.x == 5.0

    def test_missing_z_move_holds_entry_height(self):
        spiral = _spiral_at(0.6)
        out = spiral.process_layer("G1 X10 Y0 E1\nG1 X10 Y10 E1\n")
        zs = [l.value(Axis.Z) for l in _extrusions(out)]
        assert zs == pytest.approx([0.6, 0.6])
        assert not spiral.last_measurement.has_z_move
        assert spiral.last_measurement.start_z == pytest.approx(0.6)

    def test_last_measurement_cleared_while_disabled(self):
        spiral = _spiral_at(0.2)
        spiral.process_layer(SQUARE_LAYER)
        assert spiral.last_measurement.total_xy_length == pytest.approx(40.0)
        spiral.enable(False)
        spiral.process_layer("G1 Z0.6\n")
        assert spiral.last_measurement is None

    def test_output_is_newline_terminated(self):
        spiral = _spiral_at(0.2)
        out = spiral.process_layer(SQUARE_LAYER.rstrip("\n"))
        assert out.endswith("G1 X0 Y0 E1 Z0.4\n")


# ======================================================================
# 7. Extruder mode
# ======================================================================

class TestExtruderMode:

    def test_own_reader_seeded_from_relative_e(self):
        assert SpiralVase().reader.relative_e
        assert not SpiralVase(relative_e=False).reader.relative_e

    def test_given_reader_left_alone(self):
        reader = GCodeReader()
        spiral = SpiralVase(relative_e=True, reader=reader)
        assert spiral.reader is reader
        assert not reader.relative_e

    def test_none_follows_reader(self):
        spiral = SpiralVase(relative_e=None, reader=GCodeReader())
        assert not spiral.relative_e
        spiral.process_layer("M83\n")
        assert spiral.relative_e

    def test_none_with_absolute_stream_skips_taper(self):
        spiral = SpiralVase(relative_e=None, reader=GCodeReader())
        spiral.process_layer("M82\nG1 Z0.2\n")
        spiral.enable(True)
        out = spiral.process_layer(SQUARE_LAYER_ABSOLUTE_E, transition_layer=True)
        assert [l.e() for l in _extrusions(out)] == [1.0, 2.0, 3.0, 4.0]
