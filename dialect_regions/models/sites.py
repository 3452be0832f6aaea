"""Point records and legend layer definitions."""

from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator


class RawPoint(BaseModel):
    """A data point as read from the point table.

    Coordinate text is ``"lat, lon"`` as stored in the atlas data.
    """

    point_id: str = Field(..., description="Unique point identifier")
    coordinates: str = Field(
        ...,
        validation_alias=AliasChoices("coordinates", "Coordinates"),
        description="Coordinate text 'lat, lon'",
    )
    original_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("original_name", "Original City Name"),
        description="Historical place name",
    )
    modern_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("modern_name", "City Name Today"),
        description="Present-day place name",
    )

    @field_validator("point_id", mode="before")
    @classmethod
    def coerce_point_id(cls, v: Any) -> str:
        return str(v).strip()

    @field_validator("coordinates", mode="before")
    @classmethod
    def coerce_coordinates(cls, v: Any) -> str:
        """Keep the raw text; parsing happens in the point index."""
        if isinstance(v, (list, tuple)):
            return ",".join(str(c) for c in v)
        return "" if v is None else str(v)

    @property
    def place_name(self) -> str | None:
        """Modern name when present, otherwise the historical one."""
        if self.modern_name and self.modern_name.strip():
            return self.modern_name
        return self.original_name


class LayerSpec(BaseModel):
    """Legend entry of a map: one layer with its decorator style names."""

    layer_id: str = Field(..., description="Layer identifier, unique within a map")
    name: str | None = Field(default=None, description="Display name")
    symbol: str | None = Field(default=None, description="Symbol decorator name")
    border: str | None = Field(default=None, description="Border style name")
    area_fill: str | None = Field(default=None, description="Area fill style name")

    @field_validator("layer_id", mode="before")
    @classmethod
    def coerce_layer_id(cls, v: Any) -> str:
        return str(v).strip()

    @property
    def wants_border(self) -> bool:
        return bool(self.border)

    @property
    def wants_area_fill(self) -> bool:
        return bool(self.area_fill)

    def to_request(self, members: set[str]) -> "LayerRequest":
        """Build an engine layer request for this legend entry."""
        return LayerRequest(
            layer_id=self.layer_id,
            name=self.name,
            members=members,
            wants_border=self.wants_border,
            wants_area_fill=self.wants_area_fill,
            border_style=self.border,
            area_fill_style=self.area_fill,
        )


class LayerRequest(BaseModel):
    """Per-invocation layer input: membership plus the requested outputs."""

    layer_id: str = Field(..., description="Layer identifier")
    members: set[str] = Field(default_factory=set, description="Point ids where the layer is active")
    wants_area_fill: bool = Field(default=False, description="Emit the merged region polygons")
    wants_border: bool = Field(default=False, description="Emit the border polylines")
    name: str | None = Field(default=None, description="Display name")
    area_fill_style: str | None = Field(default=None, description="Area fill style reference")
    border_style: str | None = Field(default=None, description="Border style reference")

    @field_validator("layer_id", mode="before")
    @classmethod
    def coerce_layer_id(cls, v: Any) -> str:
        return str(v).strip()

    @field_validator("members", mode="before")
    @classmethod
    def coerce_members(cls, v: Any) -> set[str]:
        if v is None:
            return set()
        return {str(m).strip() for m in v}

    @property
    def wants_geometry(self) -> bool:
        return self.wants_area_fill or self.wants_border
