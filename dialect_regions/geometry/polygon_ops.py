"""Polygon helpers shared by the tessellation, clipping and dissolve steps.

Builds and validates the boundary polygon from ring lists or GeoJSON
mappings, and converts between Shapely geometry and plain coordinate rings.
"""

from __future__ import annotations

import logging
from functools import reduce
from typing import Any, Iterable, Iterator

from shapely.geometry import GeometryCollection, MultiPolygon, Polygon, box, shape
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient
from shapely.validation import explain_validity

from ..errors import DegenerateBoundary

logger = logging.getLogger(__name__)

# Type aliases
Coord = tuple[float, float]
Coords = list[Coord]
Ring = tuple[Coord, ...]
PolygonLike = Polygon | MultiPolygon


def open_ring(coords: Iterable[Coord]) -> Coords:
    """Drop the closing vertex and consecutive duplicates from a ring."""
    ring: Coords = []
    for x, y in coords:
        point = (float(x), float(y))
        if not ring or ring[-1] != point:
            ring.append(point)
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring.pop()
    return ring


def close_ring(ring: Iterable[Coord]) -> Ring:
    """Return ring as a closed tuple (first vertex repeated at the end)."""
    coords = list(ring)
    if coords and coords[0] != coords[-1]:
        coords.append(coords[0])
    return tuple(coords)


def signed_area(ring: Iterable[Coord]) -> float:
    """Shoelace area of an open or closed ring; positive when counter-clockwise."""
    coords = list(ring)
    total = 0.0
    for (x1, y1), (x2, y2) in zip(coords, coords[1:] + coords[:1]):
        total += x1 * y2 - x2 * y1
    return total / 2.0


def iter_polygons(geometry: BaseGeometry | None) -> Iterator[Polygon]:
    """Yield the non-empty polygonal parts of any geometry.

    Lines and points produced by touching intersections are skipped.
    """
    if geometry is None or geometry.is_empty:
        return
    if isinstance(geometry, Polygon):
        if geometry.area > 0:
            yield geometry
    elif isinstance(geometry, (MultiPolygon, GeometryCollection)):
        for part in geometry.geoms:
            yield from iter_polygons(part)


def oriented_rings(polygon: Polygon) -> list[tuple[Coords, bool]]:
    """Open rings of a polygon, exterior counter-clockwise and holes clockwise.

    Returns:
        List of (ring coords, is_hole) tuples, exterior first
    """
    polygon = orient(polygon, sign=1.0)
    rings = [(open_ring(polygon.exterior.coords), False)]
    for interior in polygon.interiors:
        rings.append((open_ring(interior.coords), True))
    return [(ring, is_hole) for ring, is_hole in rings if len(ring) >= 3]


def boundary_from_rings(rings: Iterable[Iterable[Iterable[float]]]) -> PolygonLike:
    """Build the territory polygon from a flat list of rings.

    Rings are combined with the even-odd rule: a ring inside another ring
    cuts a hole, a ring inside that hole is an island again. Disjoint rings
    become separate parts of a MultiPolygon.

    Raises:
        DegenerateBoundary: If no ring is given, a ring has fewer than three
            distinct vertices, or a ring self-intersects
    """
    polygons = []
    for index, raw_ring in enumerate(rings):
        ring = open_ring((float(x), float(y)) for x, y in raw_ring)
        if len(set(ring)) < 3:
            raise DegenerateBoundary(
                f"Boundary ring {index} has {len(set(ring))} distinct vertices, need at least 3"
            )
        polygon = Polygon(ring)
        if not polygon.is_valid:
            raise DegenerateBoundary(
                f"Boundary ring {index} is invalid: {explain_validity(polygon)}"
            )
        if polygon.area <= 0:
            raise DegenerateBoundary(f"Boundary ring {index} has zero area")
        polygons.append(polygon)

    if not polygons:
        raise DegenerateBoundary("Boundary has no rings")

    return validate_boundary(reduce(lambda a, b: a.symmetric_difference(b), polygons))


def boundary_from_geojson(data: dict[str, Any]) -> PolygonLike:
    """Build the territory polygon from a GeoJSON mapping.

    Accepts a FeatureCollection (first feature is used), a Feature, or a bare
    Polygon/MultiPolygon geometry.

    Raises:
        DegenerateBoundary: If the mapping holds no usable polygon
    """
    geojson_type = data.get("type")
    if geojson_type == "FeatureCollection":
        features = data.get("features") or []
        if not features:
            raise DegenerateBoundary("Boundary FeatureCollection has no features")
        if len(features) > 1:
            logger.warning(f"Boundary has {len(features)} features, using the first one")
        data = features[0]
        geojson_type = data.get("type")
    if geojson_type == "Feature":
        data = data.get("geometry") or {}
        geojson_type = data.get("type")

    if geojson_type not in ("Polygon", "MultiPolygon"):
        raise DegenerateBoundary(f"Boundary geometry must be a Polygon or MultiPolygon, got {geojson_type!r}")

    try:
        geometry = shape(data)
    except (ValueError, TypeError, IndexError) as e:
        raise DegenerateBoundary(f"Boundary geometry could not be read: {e}") from e
    return validate_boundary(geometry)


def validate_boundary(geometry: BaseGeometry) -> PolygonLike:
    """Check that a geometry can serve as the clipping boundary.

    Raises:
        DegenerateBoundary: If the geometry is empty, invalid or not polygonal
    """
    if geometry is None or geometry.is_empty:
        raise DegenerateBoundary("Boundary polygon is empty")
    if not isinstance(geometry, (Polygon, MultiPolygon)):
        raise DegenerateBoundary(f"Boundary must be polygonal, got {geometry.geom_type}")
    if not geometry.is_valid:
        raise DegenerateBoundary(f"Boundary polygon is invalid: {explain_validity(geometry)}")
    if geometry.area <= 0:
        raise DegenerateBoundary("Boundary polygon has zero area")
    return geometry


def coerce_boundary(value: Any) -> PolygonLike:
    """Accept a Shapely geometry, a GeoJSON mapping or a list of rings."""
    if isinstance(value, BaseGeometry):
        return validate_boundary(value)
    if isinstance(value, dict):
        return boundary_from_geojson(value)
    return boundary_from_rings(value)


def enclosing_frame(
    points: Iterable[Coord],
    boundary: PolygonLike,
    margin: float = 0.5,
) -> Polygon:
    """Rectangle enclosing all points and the boundary with a relative margin.

    Args:
        points: Site coordinates
        boundary: Territory polygon
        margin: Padding as a fraction of the larger bounding box side

    Returns:
        Axis-aligned rectangle polygon
    """
    min_x, min_y, max_x, max_y = boundary.bounds
    for x, y in points:
        min_x, min_y = min(min_x, x), min(min_y, y)
        max_x, max_y = max(max_x, x), max(max_y, y)

    size = max(max_x - min_x, max_y - min_y)
    pad = size * margin
    return box(min_x - pad, min_y - pad, max_x + pad, max_y + pad)


def frame_scale(frame: Polygon) -> float:
    """Largest side of a frame's bounding box, used to scale tolerances."""
    min_x, min_y, max_x, max_y = frame.bounds
    return max(max_x - min_x, max_y - min_y, 1e-12)
