"""Clipping of Voronoi cells to the territory boundary.

Every cell is intersected with the boundary polygon. The rings of the
clipped cell are stored with one origin tag per segment so the dissolve step
can tell Voronoi edges (candidate borders) from edges that follow the
territory rim.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Sequence

import numpy as np
import shapely
from shapely.geometry import MultiPolygon, Polygon

from .polygon_ops import Coord, PolygonLike, frame_scale, iter_polygons, oriented_rings
from .tessellator import Cell

logger = logging.getLogger(__name__)


class EdgeOrigin(Enum):
    """Where a segment of a clipped cell ring comes from."""

    VORONOI = "voronoi"
    BOUNDARY = "boundary"


@dataclass(frozen=True)
class TaggedRing:
    """Open ring of a clipped cell with per-segment origins.

    ``origins[i]`` describes the segment ``coords[i] -> coords[i + 1]``
    (wrapping around). Exteriors run counter-clockwise, holes clockwise.
    """

    coords: tuple[Coord, ...]
    origins: tuple[EdgeOrigin, ...]
    is_hole: bool = False

    def segments(self) -> Iterator[tuple[Coord, Coord, EdgeOrigin]]:
        n = len(self.coords)
        for i in range(n):
            yield self.coords[i], self.coords[(i + 1) % n], self.origins[i]


@dataclass(frozen=True)
class ClippedCell:
    """A cell after clipping; empty when its site's region misses the territory."""

    point_id: str
    polygon: PolygonLike
    rings: tuple[TaggedRing, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.rings

    @property
    def area(self) -> float:
        return 0.0 if self.polygon.is_empty else self.polygon.area


@dataclass(frozen=True)
class ClippedDiagram:
    """Immutable clipped tessellation shared by all dissolve passes."""

    cells: tuple[ClippedCell, ...]
    boundary: PolygonLike
    frame: Polygon
    tolerance: float

    def cell(self, point_id: str) -> ClippedCell | None:
        for cell in self.cells:
            if cell.point_id == point_id:
                return cell
        return None

    @property
    def empty_point_ids(self) -> list[str]:
        return [cell.point_id for cell in self.cells if cell.is_empty]


def clip_cells(
    cells: Sequence[Cell],
    boundary: PolygonLike,
    frame: Polygon,
    snap_tolerance: float = 1e-9,
) -> ClippedDiagram:
    """Intersect every cell with the boundary and tag the resulting edges.

    Args:
        cells: Unclipped Voronoi cells
        boundary: Territory polygon (may be a MultiPolygon, may have holes)
        frame: Enclosing rectangle the cells were built in
        snap_tolerance: Relative distance for deciding that a segment lies on the rim

    Returns:
        ClippedDiagram with one ClippedCell per input cell, in input order
    """
    tolerance = frame_scale(frame) * snap_tolerance
    rim = boundary.boundary
    shapely.prepare(boundary)

    clipped = []
    for cell in cells:
        if boundary.contains(cell.polygon):
            geometry: PolygonLike = cell.polygon
        else:
            geometry = _as_polygonal(cell.polygon.intersection(boundary))

        rings = []
        for polygon in iter_polygons(geometry):
            for coords, is_hole in oriented_rings(polygon):
                rings.append(TaggedRing(
                    coords=tuple(coords),
                    origins=_tag_segments(coords, rim, tolerance),
                    is_hole=is_hole,
                ))
        clipped.append(ClippedCell(cell.point_id, geometry, tuple(rings)))

    empty = sum(1 for c in clipped if c.is_empty)
    if empty:
        logger.debug(f"{empty} of {len(clipped)} cells fall outside the boundary")

    return ClippedDiagram(
        cells=tuple(clipped),
        boundary=boundary,
        frame=frame,
        tolerance=tolerance,
    )


def _as_polygonal(geometry) -> PolygonLike:
    """Drop line/point debris of an intersection, keeping only polygons."""
    polygons = list(iter_polygons(geometry))
    if not polygons:
        return Polygon()
    if len(polygons) == 1:
        return polygons[0]
    return MultiPolygon(polygons)


def _tag_segments(coords: list[Coord], rim, tolerance: float) -> tuple[EdgeOrigin, ...]:
    """A segment is inherited from the boundary when both ends and its midpoint lie on the rim."""
    ring = np.asarray(coords, dtype=float)
    midpoints = (ring + np.roll(ring, -1, axis=0)) / 2.0
    vertex_dist = shapely.distance(rim, shapely.points(ring))
    mid_dist = shapely.distance(rim, shapely.points(midpoints))

    on_rim = vertex_dist <= tolerance
    segment_on_rim = on_rim & np.roll(on_rim, -1) & (mid_dist <= tolerance)
    return tuple(
        EdgeOrigin.BOUNDARY if flag else EdgeOrigin.VORONOI
        for flag in segment_on_rim.tolist()
    )
