"""GeoJSON hand-off of engine results to the display surface."""

from typing import TYPE_CHECKING, Any, Iterable

from shapely.geometry import mapping

from ..geometry.polygon_ops import PolygonLike
from .emitter import EmittedLayer

if TYPE_CHECKING:
    from ..pipeline import EngineResult


def result_to_geojson(
    result: "EngineResult",
    boundary: PolygonLike | None = None,
    layer_order: Iterable[str] | None = None,
    point_features: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Convert an engine result to a GeoJSON FeatureCollection.

    Args:
        result: EngineResult to export
        boundary: Optional territory polygon, added as a 'boundary' feature
        layer_order: Layer ids in legend order (defaults to the result's order)
        point_features: Optional point features (see membership.build_point_features)

    Returns:
        GeoJSON FeatureCollection dict
    """
    features = []

    if boundary is not None:
        features.append({
            "type": "Feature",
            "geometry": mapping(boundary),
            "properties": {"kind": "boundary"},
        })

    order = list(layer_order) if layer_order is not None else list(result.layers)
    for layer_id in order:
        layer = result.layers.get(layer_id)
        if layer is not None:
            features.extend(layer.to_geojson_features())

    if point_features:
        features.extend(point_features)

    return {
        "type": "FeatureCollection",
        "features": features,
        "properties": {
            "ok": result.ok,
            "fatal_error": result.fatal_error,
            "diagnostics": [d.to_dict() for d in result.diagnostics],
        },
    }


def layers_by_kind(layers: Iterable[EmittedLayer]) -> dict[str, dict[str, list[dict[str, Any]]]]:
    """Group features per layer id into 'borders' and 'area_fills' for toggling."""
    grouped: dict[str, dict[str, list[dict[str, Any]]]] = {}
    for layer in layers:
        entry = grouped.setdefault(layer.layer_id, {"borders": [], "area_fills": []})
        for feature in layer.to_geojson_features():
            if feature["properties"]["kind"] == "border":
                entry["borders"].append(feature)
            else:
                entry["area_fills"].append(feature)
    return grouped
