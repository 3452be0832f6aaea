"""Packaging of dissolve results into renderable geometry records."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..geometry.dissolver import DissolveResult, Polyline, RegionPolygon
from ..geometry.polygon_ops import Ring
from ..models.sites import LayerRequest


class GeometryKind(Enum):
    """Kind of an emitted geometry record."""

    AREA_FILL = "area_fill"
    BORDER = "border"


@dataclass(frozen=True)
class GeometryRecord:
    """A single ring or polyline tagged with its layer for lookup and toggling."""

    kind: GeometryKind
    layer_id: str
    coordinates: tuple
    style: str | None = None


@dataclass
class EmittedLayer:
    """Everything the display surface needs to draw one layer."""

    layer_id: str
    name: str | None = None
    area_fill_rings: list[Ring] = field(default_factory=list)
    area_fill_polygons: list[RegionPolygon] = field(default_factory=list)
    border_lines: list[Polyline] = field(default_factory=list)
    area_fill_style: str | None = None
    border_style: str | None = None
    member_count: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.area_fill_rings and not self.border_lines

    def records(self) -> list[GeometryRecord]:
        """Flat list of area-fill rings followed by border polylines."""
        records = [
            GeometryRecord(GeometryKind.AREA_FILL, self.layer_id, ring, self.area_fill_style)
            for ring in self.area_fill_rings
        ]
        records.extend(
            GeometryRecord(GeometryKind.BORDER, self.layer_id, line, self.border_style)
            for line in self.border_lines
        )
        return records

    def to_dict(self) -> dict[str, Any]:
        """Plain mapping of the two geometry lists."""
        return {
            "area_fill_rings": [[list(xy) for xy in ring] for ring in self.area_fill_rings],
            "border_lines": [[list(xy) for xy in line] for line in self.border_lines],
        }

    def to_geojson_features(self) -> list[dict[str, Any]]:
        """GeoJSON features: one Polygon per region piece, one LineString per border."""
        features = []
        for polygon in self.area_fill_polygons:
            features.append({
                "type": "Feature",
                "geometry": {
                    "type": "Polygon",
                    "coordinates": [
                        [list(xy) for xy in ring] for ring in (polygon.exterior, *polygon.holes)
                    ],
                },
                "properties": {
                    "kind": GeometryKind.AREA_FILL.value,
                    "layer_id": self.layer_id,
                    "name": self.name,
                    "style": self.area_fill_style,
                },
            })
        for line in self.border_lines:
            features.append({
                "type": "Feature",
                "geometry": {
                    "type": "LineString",
                    "coordinates": [list(xy) for xy in line],
                },
                "properties": {
                    "kind": GeometryKind.BORDER.value,
                    "layer_id": self.layer_id,
                    "name": self.name,
                    "style": self.border_style,
                },
            })
        return features


def emit_layer(result: DissolveResult | None, layer: LayerRequest) -> EmittedLayer:
    """Package one layer's dissolve output according to its requested decorations.

    A layer that asks for neither an area fill nor a border emits nothing,
    even if it has members.
    """
    emitted = EmittedLayer(
        layer_id=layer.layer_id,
        name=layer.name,
        area_fill_style=layer.area_fill_style,
        border_style=layer.border_style,
    )
    if result is None:
        return emitted

    emitted.member_count = result.member_count
    if layer.wants_area_fill:
        emitted.area_fill_polygons = list(result.region.polygons)
        emitted.area_fill_rings = result.region.rings
    if layer.wants_border:
        emitted.border_lines = list(result.border_lines)
    return emitted
