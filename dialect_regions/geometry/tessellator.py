"""Voronoi tessellation of the site set.

The primary backend is the GEOS Voronoi builder exposed by Shapely. When
GEOS rejects the input or returns cells that do not match the sites one to
one, every cell is rebuilt by intersecting the frame with the half-planes
closer to its site than to each other site. The half-plane path is O(n^2)
but has no degenerate configurations besides coincident sites.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import shapely
from shapely.errors import GEOSException
from shapely.geometry import MultiPoint, Polygon
from shapely.ops import voronoi_diagram
from shapely.strtree import STRtree

from ..errors import TessellationFailure
from .point_index import Site
from .polygon_ops import frame_scale, iter_polygons

logger = logging.getLogger(__name__)

BACKENDS = ("geos", "halfplane")


@dataclass(frozen=True)
class Cell:
    """Voronoi region of one site before clipping."""

    point_id: str
    polygon: Polygon


def tessellate(
    sites: Sequence[Site],
    frame: Polygon,
    backend: str = "geos",
) -> list[Cell]:
    """Build one Voronoi cell per site, bounded by the frame rectangle.

    Args:
        sites: Distinct sites (at least one)
        frame: Enclosing rectangle; all cells are clipped to it
        backend: "geos" (with half-plane fallback) or "halfplane"

    Returns:
        Cells in the order of ``sites``

    Raises:
        ValueError: If no sites are given or the backend is unknown
        TessellationFailure: If the half-plane construction fails as well
    """
    if not sites:
        raise ValueError("Cannot tessellate an empty site set")
    if backend not in BACKENDS:
        raise ValueError(f"Unknown tessellation backend '{backend}', expected one of {BACKENDS}")

    if len(sites) == 1:
        return [Cell(sites[0].point_id, frame)]

    if backend == "geos":
        try:
            return _tessellate_geos(sites, frame)
        except (GEOSException, TessellationFailure) as e:
            logger.warning(f"GEOS Voronoi failed ({e}), falling back to half-plane intersection")

    return _tessellate_halfplane(sites, frame)


def _tessellate_geos(sites: Sequence[Site], frame: Polygon) -> list[Cell]:
    """Voronoi cells from GEOS, matched back to their sites by containment."""
    diagram = voronoi_diagram(MultiPoint([site.xy for site in sites]), envelope=frame)
    raw_cells = [frame.intersection(geom) for geom in diagram.geoms]

    tree = STRtree(raw_cells)
    points = shapely.points(np.array([site.xy for site in sites]))
    site_idx, cell_idx = tree.query(points, predicate="within")

    owner: dict[int, int] = {}
    for s, c in zip(site_idx.tolist(), cell_idx.tolist()):
        if s in owner:
            raise TessellationFailure(f"Site '{sites[s].point_id}' lies in more than one cell")
        owner[s] = c

    if len(owner) != len(sites) or len(set(owner.values())) != len(sites):
        raise TessellationFailure(
            f"GEOS produced {len(raw_cells)} cells for {len(sites)} sites, "
            f"{len(owner)} sites matched"
        )

    cells = []
    for i, site in enumerate(sites):
        polygons = list(iter_polygons(raw_cells[owner[i]]))
        if len(polygons) != 1:
            raise TessellationFailure(f"Cell of site '{site.point_id}' is not a single polygon")
        cells.append(Cell(site.point_id, polygons[0]))

    _check_coverage(cells, frame)
    return cells


def _tessellate_halfplane(sites: Sequence[Site], frame: Polygon) -> list[Cell]:
    """Voronoi cells by clipping the frame with one bisector half-plane per neighbour.

    Neighbours are visited nearest first; once a site is more than twice as
    far away as the farthest vertex of the current cell it can no longer cut
    the cell and the loop stops.
    """
    coords = np.array([site.xy for site in sites], dtype=float)
    frame_ring = np.array(frame.exterior.coords[:-1], dtype=float)
    eps = frame_scale(frame) * 1e-14

    cells = []
    for i, site in enumerate(sites):
        origin = coords[i]
        distances = np.hypot(*(coords - origin).T)
        ring = frame_ring
        for j in np.argsort(distances, kind="stable"):
            if j == i:
                continue
            reach = np.max(np.hypot(*(ring - origin).T))
            if distances[j] > 2.0 * reach:
                break
            if distances[j] <= eps:
                raise TessellationFailure(
                    f"Sites '{site.point_id}' and '{sites[j].point_id}' coincide"
                )
            other = coords[j]
            normal = other - origin
            ring = _clip_ring(ring, normal, float(normal @ ((origin + other) / 2.0)), eps)
            if len(ring) < 3:
                raise TessellationFailure(f"Cell of site '{site.point_id}' collapsed")
        cells.append(Cell(site.point_id, Polygon(ring)))

    _check_coverage(cells, frame)
    return cells


def _clip_ring(ring: np.ndarray, normal: np.ndarray, offset: float, eps: float) -> np.ndarray:
    """Keep the part of a convex ring where ``p . normal <= offset`` (Sutherland-Hodgman)."""
    side = ring @ normal - offset
    inside = side <= eps
    if inside.all():
        return ring

    out = []
    n = len(ring)
    for k in range(n):
        a, b = ring[k], ring[(k + 1) % n]
        sa, sb = side[k], side[(k + 1) % n]
        if inside[k]:
            out.append(a)
        if inside[k] != inside[(k + 1) % n]:
            t = min(max(sa / (sa - sb), 0.0), 1.0)
            out.append(a + t * (b - a))
    return np.array(out, dtype=float).reshape(-1, 2)


def _check_coverage(cells: list[Cell], frame: Polygon) -> None:
    """Cells must tile the frame: their areas add up to the frame area."""
    total = sum(cell.polygon.area for cell in cells)
    if abs(total - frame.area) > frame.area * 1e-9:
        raise TessellationFailure(
            f"Cells cover {total:.6g} of a frame of area {frame.area:.6g}"
        )
