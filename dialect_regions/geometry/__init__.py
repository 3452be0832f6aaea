"""Geometry of the regionalization engine using Shapely, numpy and networkx."""

from .clipper import ClippedCell, ClippedDiagram, EdgeOrigin, TaggedRing, clip_cells
from .dissolver import DissolveResult, Region, RegionPolygon, dissolve
from .edges import EdgeIndex, HalfEdge
from .point_index import PointIndex, Site, build_point_index, parse_coordinate
from .polygon_ops import (
    boundary_from_geojson,
    boundary_from_rings,
    coerce_boundary,
    enclosing_frame,
)
from .tessellator import Cell, tessellate

__all__ = [
    # Point index
    "Site",
    "PointIndex",
    "build_point_index",
    "parse_coordinate",
    # Boundary
    "boundary_from_rings",
    "boundary_from_geojson",
    "coerce_boundary",
    "enclosing_frame",
    # Tessellation and clipping
    "Cell",
    "tessellate",
    "ClippedCell",
    "ClippedDiagram",
    "EdgeOrigin",
    "TaggedRing",
    "clip_cells",
    # Dissolve
    "EdgeIndex",
    "HalfEdge",
    "DissolveResult",
    "Region",
    "RegionPolygon",
    "dissolve",
]
