"""Spiral profile loader for SpiralVase.

Loads spiral settings from JSON files. Falls back to built-in
defaults if no profile file is found.
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path

from .geometry import make_finder
from .spiral_vase import DEFAULT_MAX_XY_SMOOTHING


@dataclass
class SpiralProfile:
    """A spiral vase configuration profile."""

    smooth_spiral: bool = False
    max_xy_smoothing: float = DEFAULT_MAX_XY_SMOOTHING
    reference_search: str = "segment"     # "segment" or "point"
    bottom_layers: int = 3                # used when the file has no metadata
    tolerance_mm: float = 0.15

    @classmethod
    def from_dict(cls, data: dict) -> SpiralProfile:
        profile = cls(
            smooth_spiral=bool(data.get("smooth_spiral", False)),
            max_xy_smoothing=float(data.get("max_xy_smoothing", DEFAULT_MAX_XY_SMOOTHING)),
            reference_search=str(data.get("reference_search", "segment")),
            bottom_layers=int(data.get("bottom_layers", 3)),
            tolerance_mm=float(data.get("tolerance_mm", 0.15)),
        )
        # Fail early on a typo rather than mid-run
        make_finder(profile.reference_search)
        if profile.max_xy_smoothing < 0:
            raise ValueError("max_xy_smoothing must not be negative.")
        if profile.bottom_layers < 0:
            raise ValueError("bottom_layers must not be negative.")
        return profile


def _default_profiles_dir() -> Path:
    """Resolve profiles dir for source and PyInstaller runtimes."""
    candidates: list[Path] = []

    # PyInstaller onefile extraction root
    if hasattr(sys, "_MEIPASS"):
        root = Path(getattr(sys, "_MEIPASS"))
        candidates.extend([
            root / "profiles",
            root / "spiralvase" / "profiles",
        ])

    # Source fallback
    candidates.append(Path(__file__).resolve().parent.parent / "profiles")

    for p in candidates:
        if p.is_dir():
            return p
    return candidates[0]


class ProfileLoader:
    """Loads *SpiralProfile* from JSON files."""

    _DEFAULT_PROFILE_NAME = "default.json"

    def __init__(self, profiles_dir: str | Path | None = None) -> None:
        if profiles_dir is not None:
            self._dir = Path(profiles_dir)
        else:
            self._dir = _default_profiles_dir()

    @property
    def profiles_dir(self) -> Path:
        return self._dir

    def list_profiles(self) -> list[str]:
        """Return the names of available profile JSON files."""
        if not self._dir.is_dir():
            return []
        return sorted(p.name for p in self._dir.glob("*.json"))

    def load(self, name: str | None = None) -> SpiralProfile:
        """Load a profile by filename (within *profiles_dir*).

        Returns the built-in default if the file doesn't exist.
        """
        target = name or self._DEFAULT_PROFILE_NAME
        if not target.endswith(".json"):
            target = f"{target}.json"
        path = self._dir / target

        if not path.is_file():
            return SpiralProfile()  # built-in defaults

        return self.load_path(path)

    def load_path(self, path: str | Path) -> SpiralProfile:
        """Load a profile from an arbitrary path."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        return SpiralProfile.from_dict(data)
