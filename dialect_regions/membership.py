"""Layer membership from the atlas data table.

The data table has one row per point (``point_id``) and one column per map
layer, named ``"{map_id}/{layer_id}"``. A non-empty, non-zero cell marks the
layer as active for that point.
"""

import logging
from typing import Any, Iterable

from .geometry.point_index import parse_coordinate
from .errors import MalformedCoordinate
from .models.sites import LayerRequest, LayerSpec, RawPoint

logger = logging.getLogger(__name__)


def column_key(map_id: str, layer_id: str) -> str:
    """Data table column holding one layer of one map."""
    return f"{map_id}/{layer_id}"


def is_active_value(value: Any) -> bool:
    """Whether a data cell marks its layer as active.

    Missing values, zero and blank text are inactive; anything else is active.
    """
    if value is None:
        return False
    if isinstance(value, str):
        text = value.strip()
        return text != "" and text != "0"
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return True


def index_rows(data_rows: Iterable[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Index data rows by their ``point_id`` (later rows win)."""
    rows: dict[str, dict[str, Any]] = {}
    for row in data_rows:
        if "point_id" not in row:
            logger.warning(f"Data row without point_id ignored: {row}")
            continue
        rows[str(row["point_id"]).strip()] = row
    return rows


def layer_members(
    map_id: str,
    layer_id: str,
    rows: dict[str, dict[str, Any]],
) -> set[str]:
    """Point ids where one layer is active."""
    key = column_key(map_id, layer_id)
    return {point_id for point_id, row in rows.items() if is_active_value(row.get(key))}


def derive_layer_requests(
    map_id: str,
    legend: Iterable[LayerSpec | dict[str, Any]],
    data_rows: Iterable[dict[str, Any]],
) -> list[LayerRequest]:
    """Build engine layer requests for every legend entry of a map, in legend order.

    Args:
        map_id: Map whose columns are read
        legend: Legend entries (layer_id, name, symbol/border/area_fill style names)
        data_rows: Rows of the data table

    Returns:
        One LayerRequest per legend entry
    """
    rows = index_rows(data_rows)
    requests = []
    for entry in legend:
        layer = entry if isinstance(entry, LayerSpec) else LayerSpec(**entry)
        requests.append(layer.to_request(layer_members(map_id, layer.layer_id, rows)))
    return requests


def build_point_features(
    points: Iterable[RawPoint],
    map_id: str = "",
    legend: Iterable[LayerSpec] = (),
    data_rows: Iterable[dict[str, Any]] = (),
) -> list[dict[str, Any]]:
    """GeoJSON point features with the active decorations of each point.

    Points without a data row are skipped, as are points whose coordinate
    text cannot be parsed.
    """
    rows = index_rows(data_rows)
    legend = list(legend)
    features = []

    for point in points:
        row = rows.get(point.point_id)
        if row is None:
            continue
        try:
            x, y = parse_coordinate(point.point_id, point.coordinates)
        except MalformedCoordinate as e:
            logger.warning(str(e))
            continue

        active_symbols = []
        border_groups = []
        area_fill_groups = []
        for layer in legend:
            if not is_active_value(row.get(column_key(map_id, layer.layer_id))):
                continue
            if layer.symbol:
                active_symbols.append({"name": layer.name, "symbol": layer.symbol})
            if layer.border:
                border_groups.append(layer.layer_id)
            if layer.area_fill:
                area_fill_groups.append(layer.layer_id)

        features.append({
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [x, y]},
            "properties": {
                "id": point.point_id,
                "place_name": point.place_name,
                "active_symbols": active_symbols,
                "active_border_groups": border_groups,
                "active_area_fill_groups": area_fill_groups,
            },
        })

    return features
