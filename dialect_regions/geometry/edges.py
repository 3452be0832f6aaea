"""Half-edge table of a clipped diagram.

Cell vertices are snapped once to canonical vertex ids with a tolerance,
and segments are split where another cell's vertex lies on them, so that
an edge shared by two cells has the same undirected key ``(u, v)`` from both
sides. Dissolve passes then work purely on integer keys.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterator

import networkx as nx
from shapely.geometry import LineString, Point
from shapely.strtree import STRtree

from .clipper import ClippedDiagram, EdgeOrigin
from .polygon_ops import Coord

logger = logging.getLogger(__name__)

EdgeKey = tuple[int, int]


@dataclass(frozen=True)
class HalfEdge:
    """Directed segment of one cell ring, interior of the cell on its left."""

    origin: int
    target: int
    point_id: str
    tag: EdgeOrigin

    @property
    def key(self) -> EdgeKey:
        return (self.origin, self.target) if self.origin < self.target else (self.target, self.origin)


class EdgeIndex:
    """Canonical vertices and half-edges of all non-empty clipped cells."""

    def __init__(self, diagram: ClippedDiagram):
        self.tolerance = diagram.tolerance
        self.vertices: list[Coord] = []
        self.half_edges: list[HalfEdge] = []
        self.by_key: dict[EdgeKey, list[int]] = {}
        self._grid: dict[tuple[int, int], list[int]] = {}
        self._build(diagram)

    def _build(self, diagram: ClippedDiagram) -> None:
        # Pass 1: snap every ring vertex to a canonical vertex
        snapped_rings = []
        for cell in diagram.cells:
            for ring in cell.rings:
                ids = [self._snap(xy) for xy in ring.coords]
                snapped_rings.append((cell.point_id, ids, ring.origins))

        # Pass 2: split segments at vertices lying on them, then record half-edges
        tree = STRtree([Point(xy) for xy in self.vertices])
        spikes = 0
        for point_id, ids, origins in snapped_rings:
            n = len(ids)
            noded: list[tuple[int, EdgeOrigin]] = []
            for i in range(n):
                u, v = ids[i], ids[(i + 1) % n]
                if u == v:
                    continue
                noded.extend((vid, origins[i]) for vid in [u, *self._vertices_on_segment(tree, u, v)])

            ring = remove_spikes(noded)
            spikes += len(noded) - len(ring)
            if len(ring) < 3:
                continue
            for k, (a, tag) in enumerate(ring):
                self._add(HalfEdge(a, ring[(k + 1) % len(ring)][0], point_id, tag))

        if spikes:
            logger.debug(f"Removed {spikes} backtracking vertices from noded cell rings")
        logger.debug(
            f"Edge index: {len(self.vertices)} vertices, {len(self.half_edges)} half-edges, "
            f"{len(self.by_key)} distinct edges"
        )

    def _snap(self, xy: Coord) -> int:
        """Return the id of the canonical vertex within tolerance of xy, creating one if needed."""
        gx, gy = math.floor(xy[0] / self.tolerance), math.floor(xy[1] / self.tolerance)
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for vid in self._grid.get((gx + dx, gy + dy), ()):
                    vx, vy = self.vertices[vid]
                    if math.hypot(vx - xy[0], vy - xy[1]) <= self.tolerance:
                        return vid
        vid = len(self.vertices)
        self.vertices.append(xy)
        self._grid.setdefault((gx, gy), []).append(vid)
        return vid

    def _vertices_on_segment(self, tree: STRtree, u: int, v: int) -> list[int]:
        """Canonical vertices strictly inside segment u-v, ordered from u to v."""
        (ax, ay), (bx, by) = self.vertices[u], self.vertices[v]
        dx, dy = bx - ax, by - ay
        length_sq = dx * dx + dy * dy
        hits = []
        for vid in tree.query(LineString([(ax, ay), (bx, by)]).buffer(self.tolerance)).tolist():
            if vid in (u, v):
                continue
            px, py = self.vertices[vid]
            t = ((px - ax) * dx + (py - ay) * dy) / length_sq
            if t <= 0.0 or t >= 1.0:
                continue
            if math.hypot(ax + t * dx - px, ay + t * dy - py) <= self.tolerance:
                hits.append((t, vid))
        return [vid for _, vid in sorted(hits)]

    def _add(self, half_edge: HalfEdge) -> None:
        self.by_key.setdefault(half_edge.key, []).append(len(self.half_edges))
        self.half_edges.append(half_edge)

    def edges(self) -> Iterator[tuple[EdgeKey, list[HalfEdge]]]:
        """Undirected edges with the half-edges that share them."""
        for key, indices in self.by_key.items():
            yield key, [self.half_edges[i] for i in indices]

    def coord(self, vid: int) -> Coord:
        return self.vertices[vid]

    def adjacency_graph(self) -> nx.Graph:
        """Graph of sites whose clipped cells share a Voronoi edge.

        Every non-empty cell is a node; edge attribute ``length`` is the
        total length of the shared boundary.
        """
        graph = nx.Graph()
        for half_edge in self.half_edges:
            graph.add_node(half_edge.point_id)

        for key, half_edges in self.edges():
            owners = sorted({h.point_id for h in half_edges if h.tag is EdgeOrigin.VORONOI})
            if len(owners) < 2:
                continue
            (ax, ay), (bx, by) = self.vertices[key[0]], self.vertices[key[1]]
            length = math.hypot(bx - ax, by - ay)
            for i, a in enumerate(owners):
                for b in owners[i + 1:]:
                    if graph.has_edge(a, b):
                        graph[a][b]["length"] += length
                    else:
                        graph.add_edge(a, b, length=length)
        return graph


def remove_spikes(ring: list[tuple[int, EdgeOrigin]]) -> list[tuple[int, EdgeOrigin]]:
    """Drop repeated vertices and zero-area backtracks ``a -> b -> a`` from a closed ring.

    Entries are ``(vertex id, origin of the segment leaving it)``. A sliver
    cell whose apex lies within tolerance of a neighbour's vertex gets both
    legs split at that vertex; the resulting spike would otherwise give one
    cell the same edge in both directions.
    """
    stack: list[tuple[int, EdgeOrigin]] = []
    for vid, tag in ring:
        if stack and stack[-1][0] == vid:
            stack[-1] = (vid, tag)
        elif len(stack) >= 2 and stack[-2][0] == vid:
            stack.pop()
            stack[-1] = (vid, tag)
        else:
            stack.append((vid, tag))

    changed = True
    while changed and len(stack) >= 3:
        changed = False
        if stack[0][0] == stack[-1][0]:
            stack.pop()
            changed = True
        elif stack[-2][0] == stack[0][0]:
            # tip at the end: drop it and the duplicate of the first vertex
            stack.pop()
            stack.pop()
            changed = True
        elif stack[1][0] == stack[-1][0]:
            # tip at the start
            stack.pop(0)
            stack.pop()
            changed = True
    return stack if len(stack) >= 3 else []
