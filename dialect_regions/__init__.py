"""dialect-regions - Regionalization engine for historical dialect maps.

Turns a set of data points with per-point layer membership into area-fill
polygons and border lines:
- Voronoi tessellation of the points (GEOS, with a half-plane fallback)
- Clipping of the cells to the territory boundary
- Dissolving member cells per layer into regions and borders
- GeoJSON-ready packaging for the map display

Typical use:
    from dialect_regions import EngineContext, EngineRequest, run_engine
    result = run_engine(EngineRequest(points=..., boundary=..., layers=...), EngineContext())
"""

from .errors import DegenerateBoundary, MalformedCoordinate, RegionEngineError, TessellationFailure
from .models import EngineConfig, EngineRequest, LayerRequest, LayerSpec, RawPoint
from .pipeline import EngineContext, EngineResult, regionalize, run_engine

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "run_engine",
    "regionalize",
    "EngineContext",
    "EngineResult",
    # Models
    "EngineConfig",
    "EngineRequest",
    "LayerRequest",
    "LayerSpec",
    "RawPoint",
    # Errors
    "RegionEngineError",
    "MalformedCoordinate",
    "DegenerateBoundary",
    "TessellationFailure",
    "__version__",
]
