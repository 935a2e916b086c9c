"""XY geometry for spiral smoothing.

Two interchangeable reference searches are provided.  Both answer the
same question: where on the previous layer's path is the point closest
to a target point on the current layer?

  - ``SegmentProjectionFinder`` projects onto the polyline through the
    stored points (default, more accurate).
  - ``NearestPointFinder`` only considers the stored points themselves.

Both build their shapely index once per previous layer and reuse it for
every query against that same point tuple.
"""

from __future__ import annotations

import math
from typing import NamedTuple, Optional, Protocol, Sequence

import shapely


class Point(NamedTuple):
    """A 2-D coordinate in the XY plane."""

    x: float
    y: float


def distance(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def lerp(a: Point, b: Point, t: float) -> Point:
    """Linear blend ``(1 - t) * a + t * b``.  *t* is not clamped."""
    return Point((1.0 - t) * a.x + t * b.x, (1.0 - t) * a.y + t * b.y)


Reference = tuple[Point, float]


class ReferenceFinder(Protocol):
    def find_reference(
        self, point: Point, previous_layer: Sequence[Point]
    ) -> Optional[Reference]:
        ...


class NearestPointFinder:
    """Closest stored point of the previous layer (STR-tree lookup)."""

    name = "point"

    def __init__(self) -> None:
        self._layer: Sequence[Point] = ()
        self._tree: Optional[shapely.STRtree] = None

    def _tree_for(self, previous_layer: Sequence[Point]) -> shapely.STRtree:
        if previous_layer is not self._layer or self._tree is None:
            self._layer = previous_layer
            self._tree = shapely.STRtree(shapely.points(list(previous_layer)))
        return self._tree

    def find_reference(
        self, point: Point, previous_layer: Sequence[Point]
    ) -> Optional[Reference]:
        if not previous_layer:
            return None
        index = self._tree_for(previous_layer).nearest(shapely.Point(point))
        best = previous_layer[int(index)]
        return best, distance(point, best)


class SegmentProjectionFinder:
    """Closest point on the polyline through the previous layer's points."""

    name = "segment"

    def __init__(self) -> None:
        self._layer: Sequence[Point] = ()
        self._path: Optional[shapely.LineString] = None

    def _path_for(self, previous_layer: Sequence[Point]) -> Optional[shapely.LineString]:
        if previous_layer is not self._layer:
            self._layer = previous_layer
            self._path = (
                shapely.LineString(list(previous_layer))
                if len(previous_layer) > 1 else None
            )
        return self._path

    def find_reference(
        self, point: Point, previous_layer: Sequence[Point]
    ) -> Optional[Reference]:
        if not previous_layer:
            return None
        path = self._path_for(previous_layer)
        if path is None:
            only = previous_layer[0]
            return only, distance(point, only)

        on_path = path.interpolate(path.project(shapely.Point(point)))
        best = Point(on_path.x, on_path.y)
        return best, distance(point, best)


_FINDERS = {
    SegmentProjectionFinder.name: SegmentProjectionFinder,
    NearestPointFinder.name: NearestPointFinder,
}


def make_finder(name: str) -> ReferenceFinder:
    """Build a reference finder by name (``"segment"`` or ``"point"``)."""
    try:
        return _FINDERS[name.strip().lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown reference search {name!r}. "
            f"Valid choices: {', '.join(sorted(_FINDERS))}"
        ) from None
