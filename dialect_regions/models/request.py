"""Engine request/response schemas."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from .config import EngineConfig
from .sites import LayerRequest, RawPoint


class EngineRequest(BaseModel):
    """Everything one engine invocation needs."""

    points: list[RawPoint] = Field(default_factory=list, description="Raw point records")
    boundary: list[list[tuple[float, float]]] | dict[str, Any] = Field(
        ...,
        description="Territory as a list of rings [[x, y], ...] or a GeoJSON mapping",
    )
    layers: list[LayerRequest] = Field(
        default_factory=list, description="Layers to regionalize, in legend order"
    )
    config_override: dict[str, Any] | None = Field(
        default=None, description="Field values replacing those of the context configuration"
    )

    @field_validator("layers")
    @classmethod
    def validate_unique_layers(cls, v: list[LayerRequest]) -> list[LayerRequest]:
        """Validate that layer ids are unique."""
        seen: set[str] = set()
        for layer in v:
            if layer.layer_id in seen:
                raise ValueError(f"Duplicate layer id '{layer.layer_id}'")
            seen.add(layer.layer_id)
        return v

    def effective_config(self, base: EngineConfig | None = None) -> EngineConfig:
        """Context configuration with this request's override applied."""
        config = base or EngineConfig()
        if self.config_override:
            config = config.merge_override(self.config_override)
        return config
