"""G-code parser for SpiralVase.

Splits a whole G-code file into layers, with layer detection priority:
  1. ;LAYER:<n> comment markers
  2. ;LAYER_CHANGE or similar patterns
  3. Fallback: Z increases via G0/G1 Z moves

Detects printer state (units, positioning mode, extruder mode) and the
slicer metadata that matters for spiraling (bottom solid layers, relative
E distances, spiral vase flag).  Everything after the last extruding move
is treated as footer and never assigned to a layer.
"""

from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Optional

from .gcode_reader import GCodeLine, GCodeReader


# ---------------------------------------------------------------------------
# Compiled regexes, built once at module level for speed
# ---------------------------------------------------------------------------

_RE_LAYER_NUM = re.compile(r";\s*LAYER\s*:\s*(-?\d+)", re.IGNORECASE)
_RE_LAYER_CHANGE = re.compile(r";\s*LAYER_CHANGE", re.IGNORECASE)
_RE_Z_MOVE = re.compile(
    r"^G0?[01]\s.*Z\s*([+-]?(?:\d+\.?\d*|\.\d+))", re.IGNORECASE
)
_RE_G_NUMBER = re.compile(r"^G(\d+)")
_RE_UNIT = re.compile(r"^G(20|21)\b", re.IGNORECASE)
_RE_POS_MODE = re.compile(r"^G(90|91)\b", re.IGNORECASE)
_RE_EXT_MODE = re.compile(r"^M(82|83)\b", re.IGNORECASE)
# Slicer config dump (PrusaSlicer / SuperSlicer / Orca style)
_RE_COMMENT_BOTTOM_LAYERS = re.compile(
    r";\s*(?:bottom_solid_layers|bottom_shell_layers)\s*=\s*(\d+)", re.IGNORECASE
)
_RE_COMMENT_SPIRAL = re.compile(
    r";\s*(?:spiral_vase|spiral_mode)\s*=\s*(\d)", re.IGNORECASE
)
_RE_COMMENT_RELATIVE_E = re.compile(
    r";\s*use_relative_e_distances\s*=\s*(\d)", re.IGNORECASE
)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class PrinterState:
    """Detected printer state from the G-code preamble / body."""

    units: str = "G21"           # G20 = inches, G21 = mm
    positioning: str = "G90"     # G90 = absolute, G91 = relative
    extruder_mode: str = "M82"   # M82 = absolute, M83 = relative

    @property
    def relative_e(self) -> bool:
        return self.extruder_mode == "M83"


@dataclass
class SlicerMetadata:
    """Settings recovered from the slicer's comment dump, if any."""

    bottom_solid_layers: Optional[int] = None
    spiral_vase: Optional[bool] = None
    use_relative_e_distances: Optional[bool] = None


@dataclass
class LayerInfo:
    """Describes a single detected layer."""

    number: int                   # 0-based layer index
    z_height: float               # Z height in mm
    start_line: int               # first line index (0-based) of layer
    end_line: int = -1            # last line index (inclusive, set during finalization)


@dataclass
class ParsedGCode:
    """Result of parsing a G-code file."""

    lines: list[str]                        # raw lines (no trailing newlines)
    layers: list[LayerInfo] = field(default_factory=list)
    state: PrinterState = field(default_factory=PrinterState)
    metadata: SlicerMetadata = field(default_factory=SlicerMetadata)
    footer_start_line: int = 0              # first line after the last extrusion
    detection_method: str = "none"          # "comment_layer", "layer_change", "z_move"
    source_filename: str = "unknown"        # original filename (basename)

    @property
    def preamble_lines(self) -> list[str]:
        if not self.layers:
            return list(self.lines)
        return self.lines[:self.layers[0].start_line]

    @property
    def footer_lines(self) -> list[str]:
        if not self.layers:
            return []
        return self.lines[self.layers[-1].end_line + 1:]

    def layer_text(self, layer: LayerInfo) -> str:
        """Lines of *layer* joined into one newline-terminated buffer."""
        chunk = self.lines[layer.start_line:layer.end_line + 1]
        return "".join(f"{line}\n" for line in chunk)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class GCodeParser:
    """Streaming G-code parser."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse_file(self, path: str | Path) -> ParsedGCode:
        """Parse a G-code file on disk and return *ParsedGCode*."""
        path = Path(path)
        with open(path, "r", encoding="utf-8", errors="replace") as fh:
            result = self._parse_stream(fh)
        result.source_filename = path.name
        return result

    def parse_string(self, text: str) -> ParsedGCode:
        """Parse G-code from a string (convenience for tests)."""
        return self._parse_stream(io.StringIO(text))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _parse_stream(self, stream: IO[str]) -> ParsedGCode:
        lines: list[str] = []
        state = PrinterState()
        meta = SlicerMetadata()
        reader = GCodeReader()
        layer_markers: list[tuple[int, int]] = []                 # (line_idx, layer_num)
        layer_change_markers: list[int] = []                      # line indices
        z_changes: list[tuple[int, float]] = []                   # (line_idx, z)
        current_z: float = 0.0
        last_extrusion: int = -1

        lines_append = lines.append
        re_layer_num_search = _RE_LAYER_NUM.search
        re_layer_change_search = _RE_LAYER_CHANGE.search
        re_z_move_match = _RE_Z_MOVE.match

        for idx, raw in enumerate(stream):
            line = raw.rstrip("\n\r")
            lines_append(line)
            stripped = line.strip()

            if not stripped:
                continue

            first_char = stripped[0]

            # --- Comment-only lines (fast path) ---
            if first_char == ";":
                upper5 = stripped[1:7].upper()
                if "LAYER" in upper5:
                    m = re_layer_num_search(stripped)
                    if m:
                        layer_markers.append((idx, int(m.group(1))))
                    elif re_layer_change_search(stripped):
                        layer_change_markers.append(idx)
                elif "=" in stripped:
                    self._read_metadata(stripped, meta)
                continue

            # --- Command lines ---
            semi = stripped.find(";")
            cmd = stripped[:semi].rstrip() if semi >= 0 else stripped
            if not cmd:
                continue
            cmd_upper = cmd.upper()
            fc = first_char.upper()

            if fc == "G":
                m_g = _RE_G_NUMBER.match(cmd_upper)
                if m_g and int(m_g.group(1)) in (0, 1):
                    if "Z" in cmd_upper:
                        m_z = re_z_move_match(cmd_upper)
                        if m_z:
                            new_z = float(m_z.group(1))
                            if new_z != current_z:
                                z_changes.append((idx, new_z))
                                current_z = new_z
                else:
                    m_unit = _RE_UNIT.match(cmd_upper)
                    if m_unit:
                        state.units = f"G{m_unit.group(1)}"
                    m_pos = _RE_POS_MODE.match(cmd_upper)
                    if m_pos:
                        state.positioning = f"G{m_pos.group(1)}"
            elif fc == "M":
                m_ext = _RE_EXT_MODE.match(cmd_upper)
                if m_ext:
                    state.extruder_mode = f"M{m_ext.group(1)}"
            else:
                continue

            gline = GCodeLine(line)
            if gline.extruding(reader) and gline.dist_xy(reader) > 0:
                last_extrusion = idx
            reader.update(gline)

        # --- Build layer list from best available source ---
        result = ParsedGCode(lines=lines, state=state, metadata=meta)
        result.footer_start_line = last_extrusion + 1 if last_extrusion >= 0 else len(lines)

        if layer_markers:
            result.detection_method = "comment_layer"
            result.layers = self._layers_from_markers(layer_markers, len(lines))
            self._backfill_z(result.layers, z_changes)
        elif layer_change_markers:
            result.detection_method = "layer_change"
            result.layers = self._layers_from_change_markers(
                layer_change_markers, z_changes, len(lines)
            )
        elif z_changes:
            result.detection_method = "z_move"
            result.layers = self._layers_from_z_changes(z_changes, len(lines))
        # else: no layers detected (tiny / empty file)

        self._clip_to_footer(result)
        return result

    @staticmethod
    def _read_metadata(comment: str, meta: SlicerMetadata) -> None:
        m_bottom = _RE_COMMENT_BOTTOM_LAYERS.search(comment)
        if m_bottom:
            meta.bottom_solid_layers = int(m_bottom.group(1))
            return
        m_spiral = _RE_COMMENT_SPIRAL.search(comment)
        if m_spiral:
            meta.spiral_vase = m_spiral.group(1) == "1"
            return
        m_rel = _RE_COMMENT_RELATIVE_E.search(comment)
        if m_rel:
            meta.use_relative_e_distances = m_rel.group(1) == "1"

    @staticmethod
    def _clip_to_footer(result: ParsedGCode) -> None:
        """Drop layers that start in the footer and end the last one before it."""
        footer = result.footer_start_line
        layers = [l for l in result.layers if l.start_line < footer]
        if layers:
            layers[-1].end_line = min(layers[-1].end_line, footer - 1)
        result.layers = layers

    # ------------------------------------------------------------------
    # Layer building helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _layers_from_markers(
        markers: list[tuple[int, int]],
        total_lines: int,
    ) -> list[LayerInfo]:
        """Build layers from ;LAYER:<n> markers."""
        layers: list[LayerInfo] = []
        for line_idx, num in markers:
            info = LayerInfo(number=num, z_height=0.0, start_line=line_idx)
            if layers:
                layers[-1].end_line = line_idx - 1
            layers.append(info)
        if layers:
            layers[-1].end_line = total_lines - 1
        return layers

    @staticmethod
    def _backfill_z(
        layers: list[LayerInfo],
        z_changes: list[tuple[int, float]],
    ) -> None:
        """Fill in z_height for layers that came from comment markers."""
        if not z_changes:
            return
        zi = 0
        for layer in layers:
            # Find the first Z change at or after the layer start
            while zi < len(z_changes) and z_changes[zi][0] < layer.start_line:
                zi += 1
            if zi < len(z_changes):
                layer.z_height = z_changes[zi][1]
            elif zi > 0:
                layer.z_height = z_changes[zi - 1][1]

    @staticmethod
    def _layers_from_change_markers(
        markers: list[int],
        z_changes: list[tuple[int, float]],
        total_lines: int,
    ) -> list[LayerInfo]:
        """Build layers from ;LAYER_CHANGE markers, pairing with Z changes."""
        layers: list[LayerInfo] = []
        zi = 0
        for i, line_idx in enumerate(markers):
            # Advance Z index to the nearest Z change at or after this marker
            while zi < len(z_changes) and z_changes[zi][0] < line_idx:
                zi += 1
            z = z_changes[zi][1] if zi < len(z_changes) else (
                z_changes[-1][1] if z_changes else 0.0
            )
            info = LayerInfo(number=i, z_height=z, start_line=line_idx)
            if layers:
                layers[-1].end_line = line_idx - 1
            layers.append(info)
        if layers:
            layers[-1].end_line = total_lines - 1
        return layers

    @staticmethod
    def _layers_from_z_changes(
        z_changes: list[tuple[int, float]],
        total_lines: int,
    ) -> list[LayerInfo]:
        """Fallback: each Z increase = new layer."""
        layers: list[LayerInfo] = []
        prev_z: float = -1.0
        layer_num = 0
        for line_idx, z in z_changes:
            if z > prev_z:
                info = LayerInfo(number=layer_num, z_height=z, start_line=line_idx)
                if layers:
                    layers[-1].end_line = line_idx - 1
                layers.append(info)
                layer_num += 1
                prev_z = z
        if layers:
            layers[-1].end_line = total_lines - 1
        return layers
