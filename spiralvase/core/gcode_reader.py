"""G-code line reader for SpiralVase.

Tokenises one motion line at a time into typed fields and tracks the
absolute machine position across lines, so that displacements can be
derived even when the stream uses relative positioning.

Position tracking deliberately follows the lines *as parsed*: a callback
passed to ``parse_buffer`` may rewrite a line, but the reader advances
from the original values.
"""

from __future__ import annotations

import logging
import math
import re
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Axis(Enum):
    X = "X"
    Y = "Y"
    Z = "Z"
    E = "E"
    F = "F"


# Compiled patterns
_RE_WORD = re.compile(r"([A-Za-z])\s*([-+]?(?:\d+\.?\d*|\.\d+))")
_RE_COMMAND = re.compile(r"^([GMT])\s*(\d+(?:\.\d+)?)", re.IGNORECASE)

# Decimal places used when a field is rewritten
_DEFAULT_DECIMALS = {Axis.X: 3, Axis.Y: 3, Axis.Z: 3, Axis.E: 5, Axis.F: 3}


def format_number(value: float, decimals: int) -> str:
    """Fixed-point rendering with trailing zeros trimmed (``5.600`` → ``5.6``)."""
    text = f"{value:.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return text


class GCodeLine:
    """One line of G-code with field-level access and in-place mutation."""

    __slots__ = ("_raw", "cmd", "comment", "_words", "_dirty")

    def __init__(self, raw: str) -> None:
        self._raw = raw
        self.cmd: str = ""
        self.comment: str = ""
        # Ordered (letter, text) pairs after the command word
        self._words: list[list[str]] = []
        self._dirty = False
        self._parse(raw)

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def _parse(self, raw: str) -> None:
        semi = raw.find(";")
        if semi >= 0:
            code = raw[:semi]
            # Keep the whitespace that separated code from comment
            stripped_code = code.rstrip()
            self.comment = raw[len(stripped_code):]
            code = stripped_code
        else:
            code = raw.rstrip()
        code = code.strip()
        if not code:
            return

        m_cmd = _RE_COMMAND.match(code)
        if m_cmd is None:
            # Firmware macros (SET_VELOCITY_LIMIT …) are carried verbatim
            self.cmd = code.split(None, 1)[0].upper()
            return

        number = m_cmd.group(2)
        if "." not in number:
            number = str(int(number))  # G01 → G1
        self.cmd = f"{m_cmd.group(1).upper()}{number}"
        for m_word in _RE_WORD.finditer(code, m_cmd.end()):
            letter = m_word.group(1).upper()
            self._words.append([letter, m_word.group(2)])

    # ------------------------------------------------------------------
    # Field access
    # ------------------------------------------------------------------

    @property
    def raw(self) -> str:
        if self._dirty:
            parts = [self.cmd] + [f"{k}{v}" for k, v in self._words]
            self._raw = " ".join(parts) + self.comment
            self._dirty = False
        return self._raw

    def cmd_is(self, code: str) -> bool:
        return self.cmd == code.upper()

    def has(self, axis: Axis) -> bool:
        return any(k == axis.value for k, _ in self._words)

    def has_x(self) -> bool:
        return self.has(Axis.X)

    def has_y(self) -> bool:
        return self.has(Axis.Y)

    def has_z(self) -> bool:
        return self.has(Axis.Z)

    def has_e(self) -> bool:
        return self.has(Axis.E)

    def value(self, axis: Axis) -> float:
        """Raw numeric value of *axis* as written on the line (0.0 if absent)."""
        for k, v in self._words:
            if k == axis.value:
                try:
                    return float(v)
                except ValueError:
                    logger.debug("Unparseable %s word in %r", k, self._raw)
                    return 0.0
        return 0.0

    def e(self) -> float:
        return self.value(Axis.E)

    def set(self, axis: Axis, value: float, decimals: Optional[int] = None) -> None:
        """Replace (or append) the *axis* field and re-serialise the line."""
        if decimals is None:
            decimals = _DEFAULT_DECIMALS[axis]
        text = format_number(value, decimals)
        for word in self._words:
            if word[0] == axis.value:
                word[1] = text
                break
        else:
            self._words.append([axis.value, text])
        self._dirty = True

    def copy(self) -> GCodeLine:
        clone = GCodeLine.__new__(GCodeLine)
        clone._raw = self._raw
        clone.cmd = self.cmd
        clone.comment = self.comment
        clone._words = [list(w) for w in self._words]
        clone._dirty = self._dirty
        return clone

    # ------------------------------------------------------------------
    # Position-derived values
    # ------------------------------------------------------------------

    def _new(self, axis: Axis, current: float, relative: bool) -> float:
        if not self.has(axis):
            return current
        v = self.value(axis)
        return current + v if relative else v

    def new_x(self, reader: GCodeReader) -> float:
        return self._new(Axis.X, reader.x, reader.relative_xyz)

    def new_y(self, reader: GCodeReader) -> float:
        return self._new(Axis.Y, reader.y, reader.relative_xyz)

    def new_z(self, reader: GCodeReader) -> float:
        return self._new(Axis.Z, reader.z, reader.relative_xyz)

    def new_e(self, reader: GCodeReader) -> float:
        return self._new(Axis.E, reader.e, reader.relative_e)

    def dist_xy(self, reader: GCodeReader) -> float:
        if not (self.has_x() or self.has_y()):
            return 0.0
        return math.hypot(self.new_x(reader) - reader.x, self.new_y(reader) - reader.y)

    def dist_z(self, reader: GCodeReader) -> float:
        return self.new_z(reader) - reader.z

    def dist_e(self, reader: GCodeReader) -> float:
        return self.new_e(reader) - reader.e

    def extruding(self, reader: GCodeReader) -> bool:
        return self.cmd in ("G1", "G2", "G3") and self.dist_e(reader) > 0

    def __repr__(self) -> str:
        return f"GCodeLine({self.raw!r})"


class GCodeReader:
    """Tracks absolute machine position while G-code is fed through it."""

    def __init__(self) -> None:
        self.x: float = 0.0
        self.y: float = 0.0
        self.z: float = 0.0
        self.e: float = 0.0
        self.f: float = 0.0
        self.relative_xyz: bool = False
        self.relative_e: bool = False
        self._m83: bool = False  # extruder mode last set by M82/M83

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def copy(self) -> GCodeReader:
        clone = GCodeReader()
        clone.__dict__.update(self.__dict__)
        return clone

    def set_relative_e(self, relative: bool) -> None:
        """Switch the extruder mode as M83 (*relative*) or M82 would."""
        self._m83 = relative
        self.relative_e = relative

    @staticmethod
    def parse_line(raw: str) -> GCodeLine:
        return GCodeLine(raw)

    def parse_buffer(
        self,
        text: str,
        callback: Optional[Callable[[GCodeReader, GCodeLine], None]] = None,
    ) -> None:
        """Feed *text* line by line, invoking *callback* before each update."""
        for raw in text.splitlines():
            line = GCodeLine(raw)
            original = line.copy() if callback is not None else line
            if callback is not None:
                callback(self, line)
            self.update(original)

    def update(self, line: GCodeLine) -> None:
        """Advance the tracked position by *line* (as originally parsed)."""
        cmd = line.cmd
        if cmd in ("G0", "G1", "G2", "G3"):
            self.x = line.new_x(self)
            self.y = line.new_y(self)
            self.z = line.new_z(self)
            self.e = line.new_e(self)
            if line.has(Axis.F):
                self.f = line.value(Axis.F)
        elif cmd == "G92":
            if not any(line.has(a) for a in (Axis.X, Axis.Y, Axis.Z, Axis.E)):
                self.x = self.y = self.z = self.e = 0.0
            if line.has_x():
                self.x = line.value(Axis.X)
            if line.has_y():
                self.y = line.value(Axis.Y)
            if line.has_z():
                self.z = line.value(Axis.Z)
            if line.has_e():
                self.e = line.value(Axis.E)
        elif cmd == "G90":
            self.relative_xyz = False
            self.relative_e = self._m83
        elif cmd == "G91":
            self.relative_xyz = True
            self.relative_e = True
        elif cmd == "M82":
            self.set_relative_e(False)
        elif cmd == "M83":
            self.set_relative_e(True)
