"""Dissolve: merge the cells of a layer's member sites into regions and borders.

Edges shared by two member cells cancel out; the remaining member
half-edges form the region rings. Of those, the edges shared with a
non-member cell are the layer's border lines. Edges inherited from the
territory rim never become borders unless ``include_territory_rim`` is set.

When the traced rings do not close, or do not cover the member cells, the
region is rebuilt from the Shapely union of those cells and flagged.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable

import networkx as nx
import shapely
from shapely.geometry import MultiLineString, MultiPolygon, Point, Polygon
from shapely.ops import linemerge

from .clipper import ClippedDiagram, EdgeOrigin
from .edges import EdgeIndex, HalfEdge
from .polygon_ops import Coord, Ring, close_ring, iter_polygons, oriented_rings, signed_area

logger = logging.getLogger(__name__)

Polyline = tuple[Coord, ...]

# Relative to the territory area
AREA_TOLERANCE = 1e-7


@dataclass(frozen=True)
class RegionPolygon:
    """One connected piece of a region: closed exterior ring plus closed holes."""

    exterior: Ring
    holes: tuple[Ring, ...] = ()

    def to_shapely(self) -> Polygon:
        return Polygon(self.exterior, self.holes)


@dataclass
class Region:
    """Merged territory of a layer; several polygons when members form clusters."""

    polygons: list[RegionPolygon] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.polygons

    @property
    def rings(self) -> list[Ring]:
        """All rings, each exterior followed by its holes."""
        rings: list[Ring] = []
        for polygon in self.polygons:
            rings.append(polygon.exterior)
            rings.extend(polygon.holes)
        return rings

    @property
    def area(self) -> float:
        return sum(p.to_shapely().area for p in self.polygons)

    def to_shapely(self) -> MultiPolygon:
        return MultiPolygon([p.to_shapely() for p in self.polygons])


@dataclass
class DissolveResult:
    """Region and border lines of one layer."""

    layer_id: str
    region: Region = field(default_factory=Region)
    border_lines: list[Polyline] = field(default_factory=list)
    member_count: int = 0
    cluster_count: int = 0
    rebuilt: bool = False

    @property
    def is_empty(self) -> bool:
        return self.region.is_empty and not self.border_lines


def dissolve(
    diagram: ClippedDiagram,
    index: EdgeIndex,
    members: Iterable[str],
    layer_id: str = "",
    include_territory_rim: bool = False,
    adjacency: nx.Graph | None = None,
) -> DissolveResult:
    """Dissolve the member cells of one layer.

    Args:
        diagram: Clipped diagram (read only)
        index: Half-edge table built from the diagram (read only)
        members: Point ids where the layer is active
        layer_id: Identifier carried into the result
        include_territory_rim: Also report rim edges of the region as borders
        adjacency: Optional site adjacency graph for cluster counting

    Returns:
        DissolveResult; empty when no member has a non-empty cell
    """
    present = {cell.point_id for cell in diagram.cells if not cell.is_empty}
    member_set = set(members) & present
    result = DissolveResult(layer_id=layer_id, member_count=len(member_set))
    if not member_set:
        return result

    surviving: list[int] = []
    border: list[HalfEdge] = []
    for key, indices in index.by_key.items():
        member_idx = [i for i in indices if index.half_edges[i].point_id in member_set]
        if not member_idx:
            continue
        # Opposite member half-edges cancel pairwise; what is left is region boundary
        forward = [i for i in member_idx if index.half_edges[i].origin == key[0]]
        backward = [i for i in member_idx if index.half_edges[i].origin != key[0]]
        net = len(forward) - len(backward)
        if net == 0:
            continue
        survivor = forward[0] if net > 0 else backward[0]
        half_edge = index.half_edges[survivor]
        surviving.append(survivor)

        shared_with_other = len(indices) > len(member_idx)
        if half_edge.tag is EdgeOrigin.BOUNDARY:
            if include_territory_rim:
                border.append(half_edge)
        elif shared_with_other:
            border.append(half_edge)

    region, complete = _assemble_region(index, sorted(surviving))
    expected_area = sum(cell.area for cell in diagram.cells if cell.point_id in member_set)
    if not complete or not _region_matches(region, expected_area, diagram.boundary.area):
        logger.warning(
            f"Layer '{layer_id}': traced region is inconsistent with its cells, "
            f"rebuilding it from the union of {len(member_set)} member cells"
        )
        region = _union_region(diagram, member_set)
        result.rebuilt = True

    result.region = region
    result.border_lines = _chain_borders(index, border)

    if adjacency is not None:
        result.cluster_count = nx.number_connected_components(adjacency.subgraph(member_set))
    else:
        result.cluster_count = len(result.region.polygons)

    logger.debug(
        f"Layer '{layer_id}': {len(member_set)} members, {len(result.region.polygons)} polygons, "
        f"{len(result.border_lines)} border lines"
    )
    return result


def _assemble_region(index: EdgeIndex, surviving: list[int]) -> tuple[Region, bool]:
    """Trace surviving half-edges into closed rings and nest holes into exteriors.

    Returns:
        Tuple of (region, complete); ``complete`` is False when a ring could
        not be closed or a hole found no enclosing ring
    """
    outgoing: dict[int, list[int]] = {}
    for i in surviving:
        outgoing.setdefault(index.half_edges[i].origin, []).append(i)

    complete = True
    used: set[int] = set()
    exteriors: list[list[Coord]] = []
    holes: list[list[Coord]] = []

    for start in surviving:
        if start in used:
            continue
        ring = _trace_ring(index, start, outgoing, used)
        if ring is None:
            complete = False
            continue
        if len(ring) < 3:
            continue
        area = signed_area(ring)
        if area > 0:
            exteriors.append(ring)
        elif area < 0:
            holes.append(ring)

    shells = [Polygon(ring) for ring in exteriors]
    hole_lists: list[list[Ring]] = [[] for _ in exteriors]
    for hole in holes:
        inner = Polygon(hole).representative_point()
        containing = [i for i, shell in enumerate(shells) if shell.covers(inner)]
        if not containing:
            complete = False
            continue
        owner = min(containing, key=lambda i: shells[i].area)
        hole_lists[owner].append(close_ring(hole))

    region = Region(polygons=[
        RegionPolygon(exterior=close_ring(ring), holes=tuple(hole_lists[i]))
        for i, ring in enumerate(exteriors)
    ])
    return region, complete


def _region_matches(region: Region, expected_area: float, territory_area: float) -> bool:
    """Traced polygons are valid and cover the same area as the member cells."""
    shapes = [p.to_shapely() for p in region.polygons]
    if not all(shape.is_valid for shape in shapes):
        return False
    area = sum(shape.area for shape in shapes)
    return abs(area - expected_area) <= AREA_TOLERANCE * territory_area


def _union_region(diagram: ClippedDiagram, member_set: set[str]) -> Region:
    """Region straight from the Shapely union of the member cells."""
    merged = shapely.union_all([
        cell.polygon for cell in diagram.cells if cell.point_id in member_set and not cell.is_empty
    ])
    polygons = []
    for polygon in iter_polygons(merged):
        rings = oriented_rings(polygon)
        if not rings or rings[0][1]:
            continue
        polygons.append(RegionPolygon(
            exterior=close_ring(rings[0][0]),
            holes=tuple(close_ring(coords) for coords, _ in rings[1:]),
        ))
    return Region(polygons=polygons)


def _trace_ring(
    index: EdgeIndex,
    start: int,
    outgoing: dict[int, list[int]],
    used: set[int],
) -> list[Coord] | None:
    """Follow half-edges from ``start``, always taking the leftmost turn.

    The leftmost turn keeps pieces that only touch at a vertex in separate rings.
    """
    ring: list[Coord] = []
    current = start
    while True:
        used.add(current)
        half_edge = index.half_edges[current]
        ring.append(index.coord(half_edge.origin))

        candidates = [i for i in outgoing.get(half_edge.target, ()) if i not in used]
        if half_edge.target == index.half_edges[start].origin:
            candidates.append(start)
        if not candidates:
            logger.debug(f"Open region boundary at vertex {index.coord(half_edge.target)}")
            return None

        chosen = min(candidates, key=lambda i: _clockwise_turn(index, half_edge, index.half_edges[i]))
        if chosen == start:
            return ring
        current = chosen


def _clockwise_turn(index: EdgeIndex, incoming: HalfEdge, outgoing: HalfEdge) -> float:
    """Clockwise angle from the reversed incoming direction to the outgoing one."""
    vx, vy = index.coord(incoming.target)
    px, py = index.coord(incoming.origin)
    nx_, ny_ = index.coord(outgoing.target)
    back = math.atan2(py - vy, px - vx)
    out = math.atan2(ny_ - vy, nx_ - vx)
    turn = (back - out) % (2.0 * math.pi)
    return turn if turn > 0.0 else 2.0 * math.pi


def _chain_borders(index: EdgeIndex, border: list[HalfEdge]) -> list[Polyline]:
    """Merge border segments into maximal polylines."""
    if not border:
        return []
    segments = [(index.coord(h.origin), index.coord(h.target)) for h in border]
    merged = linemerge(MultiLineString(segments))
    lines = merged.geoms if hasattr(merged, "geoms") else [merged]
    return [tuple((float(x), float(y)) for x, y in line.coords) for line in lines if not line.is_empty]


def point_in_region(region: Region, xy: Coord) -> bool:
    """Whether a coordinate lies inside (or on) a dissolved region."""
    point = Point(xy)
    return any(p.to_shapely().covers(point) for p in region.polygons)
