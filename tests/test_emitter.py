"""Tests for layer packaging and GeoJSON export."""

import pytest
from shapely.geometry import box, shape

from dialect_regions.emit import GeometryKind, emit_layer, layers_by_kind, result_to_geojson
from dialect_regions.geometry.point_index import build_point_index
from dialect_regions.models.sites import LayerRequest
from dialect_regions.pipeline import Diagnostic, EngineResult, regionalize

CORNERS = [("p1", "0, 0"), ("p2", "0, 1"), ("p3", "1, 0"), ("p4", "1, 1")]
SQUARE = box(0, 0, 1, 1)


@pytest.fixture
def left_layer():
    """Layer covering the left half of the unit square (p1 and p3 sit at x=0)."""
    request = LayerRequest(
        layer_id="L1",
        name="Left",
        members={"p1", "p3"},
        wants_area_fill=True,
        wants_border=True,
        area_fill_style="hatch-blue",
        border_style="dashed",
    )
    sites = build_point_index(CORNERS).sites
    return regionalize(sites, SQUARE, [request])["L1"]


class TestEmitLayer:
    """Test decoration flags and record packaging."""

    def test_both_outputs(self, left_layer):
        assert len(left_layer.area_fill_rings) == 1
        assert len(left_layer.border_lines) == 1
        assert left_layer.member_count == 2

    def test_records_tagged_with_layer_and_style(self, left_layer):
        records = left_layer.records()

        assert [r.kind for r in records] == [GeometryKind.AREA_FILL, GeometryKind.BORDER]
        assert {r.layer_id for r in records} == {"L1"}
        assert records[0].style == "hatch-blue"
        assert records[1].style == "dashed"

    def test_rings_are_closed(self, left_layer):
        ring = left_layer.area_fill_rings[0]
        assert ring[0] == ring[-1]

    def test_no_result_is_empty(self):
        emitted = emit_layer(None, LayerRequest(layer_id="L2", wants_border=True))

        assert emitted.is_empty
        assert emitted.records() == []
        assert emitted.to_dict() == {"area_fill_rings": [], "border_lines": []}

    def test_flags_filter_outputs(self):
        sites = build_point_index(CORNERS).sites
        layers = regionalize(sites, SQUARE, [
            LayerRequest(layer_id="fill", members={"p1"}, wants_area_fill=True),
            LayerRequest(layer_id="border", members={"p1"}, wants_border=True),
        ])

        assert layers["fill"].area_fill_rings and not layers["fill"].border_lines
        assert layers["border"].border_lines and not layers["border"].area_fill_rings


class TestGeoJSON:
    """Test feature export for the display surface."""

    def test_layer_features(self, left_layer):
        features = left_layer.to_geojson_features()

        kinds = [f["properties"]["kind"] for f in features]
        assert kinds == ["area_fill", "border"]
        polygon = shape(features[0]["geometry"])
        assert polygon.symmetric_difference(box(0, 0, 0.5, 1)).area < 1e-12
        assert features[1]["geometry"]["type"] == "LineString"
        assert features[1]["properties"]["style"] == "dashed"

    def test_result_to_geojson(self, left_layer):
        result = EngineResult(
            ok=True,
            layers={"L1": left_layer},
            diagnostics=[Diagnostic("unknown_member", "ghost", point_id="ghost", layer_id="L1")],
        )
        point = {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}, "properties": {}}

        collection = result_to_geojson(result, boundary=SQUARE, point_features=[point])

        assert collection["type"] == "FeatureCollection"
        kinds = [f["properties"].get("kind") for f in collection["features"]]
        assert kinds == ["boundary", "area_fill", "border", None]
        assert collection["properties"]["ok"] is True
        assert collection["properties"]["diagnostics"][0]["point_id"] == "ghost"

    def test_layer_order_respected(self, left_layer):
        other = emit_layer(None, LayerRequest(layer_id="L0"))
        result = EngineResult(ok=True, layers={"L1": left_layer, "L0": other})

        collection = result_to_geojson(result, layer_order=["L0", "missing", "L1"])

        assert [f["properties"]["layer_id"] for f in collection["features"]] == ["L1", "L1"]

    def test_failed_result(self):
        collection = result_to_geojson(EngineResult(ok=False, fatal_error="bad boundary"))

        assert collection["features"] == []
        assert collection["properties"]["fatal_error"] == "bad boundary"

    def test_layers_by_kind(self, left_layer):
        grouped = layers_by_kind([left_layer])

        assert len(grouped["L1"]["area_fills"]) == 1
        assert len(grouped["L1"]["borders"]) == 1
