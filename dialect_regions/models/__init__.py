"""Pydantic models for dialect-regions."""

from .config import EngineConfig
from .request import EngineRequest
from .sites import LayerRequest, LayerSpec, RawPoint

__all__ = [
    # Points and layers
    "RawPoint",
    "LayerSpec",
    "LayerRequest",
    # Engine
    "EngineConfig",
    "EngineRequest",
]
