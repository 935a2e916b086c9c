"""Layer mapper for SpiralVase.

Resolves the layer where spiraling begins.  Supports lookup by:
  - layer number (int)
  - Z height (float)

A Z lookup within ±tolerance of a layer snaps to it with a warning.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .gcode_parser import LayerInfo


@dataclass
class LayerMatch:
    """Result of a layer lookup."""

    layer: LayerInfo
    index: int                  # position in the file's layer list
    exact: bool = True
    delta_mm: float = 0.0       # signed distance from nearest layer Z
    warning: str | None = None  # human-readable warning if fuzzy match


class LayerMapper:
    """Layer number / Z height → layer position."""

    def __init__(
        self,
        layers: Sequence[LayerInfo],
        tolerance_mm: float = 0.15,
    ) -> None:
        if not layers:
            raise ValueError("Layer list is empty, cannot build mapper.")
        self._layers = list(layers)
        self._tolerance = tolerance_mm
        self._index_by_number: dict[int, int] = {
            l.number: i for i, l in enumerate(self._layers)
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def layer_count(self) -> int:
        return len(self._layers)

    @property
    def min_layer(self) -> int:
        return self._layers[0].number

    @property
    def max_layer(self) -> int:
        return self._layers[-1].number

    def by_index(self, index: int) -> LayerMatch:
        """Layer at *index* in print order (clamped to the last layer)."""
        index = max(0, min(index, len(self._layers) - 1))
        return LayerMatch(layer=self._layers[index], index=index)

    def by_layer_number(self, number: int) -> LayerMatch:
        """Look up a layer by its number.

        Raises *KeyError* if the layer number doesn't exist.
        """
        index = self._index_by_number.get(number)
        if index is None:
            raise KeyError(
                f"Layer {number} not found. "
                f"Valid range: {self.min_layer}–{self.max_layer}"
            )
        return LayerMatch(layer=self._layers[index], index=index)

    def by_z_height(self, z_mm: float) -> LayerMatch:
        """Find the layer closest to *z_mm*.

        Raises *ValueError* if *z_mm* is further than *tolerance_mm*
        from every known layer.
        """
        best_index = -1
        best_delta: float = float("inf")

        for i, layer in enumerate(self._layers):
            delta = z_mm - layer.z_height
            if abs(delta) < abs(best_delta):
                best_delta = delta
                best_index = i

        best = self._layers[best_index]

        if best_delta == 0.0:
            return LayerMatch(layer=best, index=best_index)

        if abs(best_delta) <= self._tolerance:
            warning = (
                f"Z {z_mm:.3f} mm is {best_delta:+.3f} mm from "
                f"layer {best.number} (Z {best.z_height:.3f} mm). "
                f"Spiraling from layer {best.number}."
            )
            return LayerMatch(
                layer=best,
                index=best_index,
                exact=False,
                delta_mm=best_delta,
                warning=warning,
            )

        raise ValueError(
            f"Z {z_mm:.3f} mm is {abs(best_delta):.3f} mm away from "
            f"the nearest layer (layer {best.number} @ Z {best.z_height:.3f} mm). "
            f"This exceeds the tolerance of ±{self._tolerance} mm."
        )

    def all_layers(self) -> list[LayerInfo]:
        """Return all layers in print order."""
        return list(self._layers)
