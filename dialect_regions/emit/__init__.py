"""Packaging of layer geometry for the map display."""

from .emitter import EmittedLayer, GeometryKind, GeometryRecord, emit_layer
from .geojson import layers_by_kind, result_to_geojson

__all__ = [
    "EmittedLayer",
    "GeometryKind",
    "GeometryRecord",
    "emit_layer",
    "result_to_geojson",
    "layers_by_kind",
]
