"""Engine configuration."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class EngineConfig(BaseModel):
    """Tunables of the regionalization engine.

    Tolerances are relative to the size of the enclosing frame so the same
    configuration works for metric and lon/lat coordinates.
    Can be overridden at request time with a flat mapping of field values;
    unknown keys are rejected.
    """

    model_config = ConfigDict(extra="forbid")

    backend: Literal["geos", "halfplane"] = Field(
        default="geos",
        description="Voronoi backend; 'halfplane' skips GEOS and intersects half-planes per site",
    )
    frame_margin: float = Field(
        default=0.5, gt=0.0, le=10.0,
        description="Padding of the enclosing rectangle as a fraction of the data extent",
    )
    snap_tolerance: float = Field(
        default=1e-9, gt=0.0, lt=1e-3,
        description="Relative distance under which cell vertices are treated as identical",
    )
    jitter_magnitude: float = Field(
        default=1e-7, gt=0.0, lt=1e-2,
        description="Relative offset applied to sites with coincident coordinates",
    )
    include_territory_rim: bool = Field(
        default=False,
        description="Let edges inherited from the boundary polygon become border lines",
    )
    max_workers: int = Field(
        default=4, ge=1, le=64,
        description="Threads used for per-layer dissolve passes (1 = sequential)",
    )
    cache_size: int = Field(
        default=8, ge=0,
        description="Number of clipped diagrams kept by a tessellation cache",
    )

    def tessellation_key(self) -> tuple:
        """Settings that change the clipped diagram (part of the cache key)."""
        return (self.backend, self.frame_margin, self.snap_tolerance)

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "EngineConfig":
        """Load configuration from YAML string."""
        import yaml
        data = yaml.safe_load(yaml_content) or {}
        return cls(**data)

    def merge_override(self, override: dict[str, Any]) -> "EngineConfig":
        """Copy of this configuration with the override's fields replaced and revalidated."""
        return EngineConfig(**{**self.model_dump(), **override})
