"""Regionalization pipeline.

Orchestrates one engine invocation:
1. Validate the boundary polygon
2. Index points into sites (malformed coordinates become diagnostics)
3. Tessellate and clip (reused from the caller's cache when possible)
4. Dissolve every requested layer, in parallel across layers
5. Package the per-layer geometry for the display surface
"""

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Sequence

import networkx as nx
import structlog

from .cache import TessellationCache, diagram_key
from .config import load_config
from .emit.emitter import EmittedLayer, emit_layer
from .errors import DegenerateBoundary, TessellationFailure
from .geometry.clipper import ClippedDiagram, clip_cells
from .geometry.dissolver import DissolveResult, dissolve
from .geometry.edges import EdgeIndex
from .geometry.point_index import Site, build_point_index
from .geometry.polygon_ops import PolygonLike, coerce_boundary, enclosing_frame
from .geometry.tessellator import tessellate
from .models.config import EngineConfig
from .models.request import EngineRequest
from .models.sites import LayerRequest

logger = logging.getLogger(__name__)
log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PreparedDiagram:
    """Clipped diagram plus the derived read-only structures every dissolve pass uses."""

    diagram: ClippedDiagram
    edges: EdgeIndex
    adjacency: nx.Graph


@dataclass
class Diagnostic:
    """Non-fatal problem found during an invocation."""

    code: str
    message: str
    point_id: str | None = None
    layer_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "point_id": self.point_id,
            "layer_id": self.layer_id,
        }


@dataclass
class EngineResult:
    """Full output of one invocation: all layers, or nothing plus a fatal error."""

    ok: bool
    layers: dict[str, EmittedLayer] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    fatal_error: str | None = None
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def skipped_point_ids(self) -> list[str]:
        return [d.point_id for d in self.diagnostics if d.code == "malformed_coordinate"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "layers": {layer_id: layer.to_dict() for layer_id, layer in self.layers.items()},
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "fatal_error": self.fatal_error,
        }


@dataclass
class EngineContext:
    """Caller-owned state carried between invocations: configuration and diagram cache."""

    config: EngineConfig = field(default_factory=EngineConfig)
    cache: TessellationCache | None = None

    def __post_init__(self):
        if self.cache is None and self.config.cache_size > 0:
            self.cache = TessellationCache(self.config.cache_size)

    @classmethod
    def from_config(
        cls,
        name: str = "default",
        override: dict[str, Any] | None = None,
        directory: Path | None = None,
    ) -> "EngineContext":
        """Context for a named YAML configuration (see ``dialect_regions/configs``)."""
        return cls(config=load_config(name, override, directory))


def prepare_diagram(
    sites: Sequence[Site],
    boundary: PolygonLike,
    config: EngineConfig,
    cache: TessellationCache | None = None,
) -> tuple[PreparedDiagram, bool]:
    """Tessellate, clip and index the sites, or fetch the result from the cache.

    Returns:
        Tuple of (prepared diagram, cache hit)

    Raises:
        TessellationFailure: If no backend can build the diagram
    """
    key = diagram_key(sites, boundary, config) if cache is not None else None
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached, True

    frame = enclosing_frame((s.xy for s in sites), boundary, config.frame_margin)
    cells = tessellate(sites, frame, backend=config.backend)
    diagram = clip_cells(cells, boundary, frame, config.snap_tolerance)
    edges = EdgeIndex(diagram)
    prepared = PreparedDiagram(diagram=diagram, edges=edges, adjacency=edges.adjacency_graph())

    if cache is not None:
        cache.put(key, prepared)
    return prepared, False


def dissolve_layers(
    prepared: PreparedDiagram,
    layers: Sequence[LayerRequest],
    config: EngineConfig,
) -> dict[str, DissolveResult]:
    """Dissolve every layer that asks for geometry.

    Passes only read the prepared diagram, so they run on a thread pool when
    ``config.max_workers > 1``. The returned mapping has no defined order.
    """
    todo = [layer for layer in layers if layer.wants_geometry]

    def run(layer: LayerRequest) -> DissolveResult:
        return dissolve(
            prepared.diagram,
            prepared.edges,
            layer.members,
            layer_id=layer.layer_id,
            include_territory_rim=config.include_territory_rim,
            adjacency=prepared.adjacency,
        )

    if config.max_workers <= 1 or len(todo) <= 1:
        return {layer.layer_id: run(layer) for layer in todo}

    results: dict[str, DissolveResult] = {}
    with ThreadPoolExecutor(max_workers=min(config.max_workers, len(todo))) as pool:
        futures = {pool.submit(run, layer): layer.layer_id for layer in todo}
        for future in as_completed(futures):
            results[futures[future]] = future.result()
    return results


def regionalize(
    sites: Sequence[Site],
    boundary: Any,
    layers: Iterable[LayerRequest | dict[str, Any]],
    config: EngineConfig | None = None,
    cache: TessellationCache | None = None,
) -> dict[str, EmittedLayer]:
    """Compute area fills and borders for every layer.

    Args:
        sites: Distinct sites (see geometry.point_index.build_point_index)
        boundary: Shapely polygon, GeoJSON mapping or list of rings
        layers: Layer requests (models or dicts)
        config: Engine configuration (defaults apply when None)
        cache: Optional caller-owned tessellation cache

    Returns:
        Mapping of layer id to EmittedLayer; every requested layer is present

    Raises:
        DegenerateBoundary: If the boundary cannot be used for clipping
        TessellationFailure: If the Voronoi diagram cannot be built
    """
    config = config or EngineConfig()
    boundary = coerce_boundary(boundary)
    layers = [layer if isinstance(layer, LayerRequest) else LayerRequest(**layer) for layer in layers]

    if not sites:
        return {layer.layer_id: emit_layer(None, layer) for layer in layers}

    prepared, _ = prepare_diagram(sites, boundary, config, cache)
    results = dissolve_layers(prepared, layers, config)
    return {layer.layer_id: emit_layer(results.get(layer.layer_id), layer) for layer in layers}


def run_engine(
    request: EngineRequest,
    context: EngineContext | None = None,
) -> EngineResult:
    """Request/response entry point used by the surrounding application.

    Per-point problems are returned as diagnostics next to the geometry.
    Boundary and tessellation failures return ``ok=False`` with no layers,
    so the caller can keep its previous drawing.

    Args:
        request: Points, boundary and layers of the current map
        context: Caller-owned configuration and cache

    Returns:
        EngineResult
    """
    context = context or EngineContext.from_config()
    run_id = str(uuid.uuid4())[:8]
    start_time = time.time()
    stats: dict[str, Any] = {"run_id": run_id, "num_layers": len(request.layers)}
    diagnostics: list[Diagnostic] = []

    try:
        config = request.effective_config(context.config)
    except ValueError as e:
        log.error("engine_run_failed", run_id=run_id, reason="invalid_config", error=str(e))
        return EngineResult(ok=False, fatal_error=f"Invalid configuration override: {e}", stats=stats)

    log.info("engine_run_started", run_id=run_id, points=len(request.points), layers=len(request.layers))

    try:
        boundary = coerce_boundary(request.boundary)
    except DegenerateBoundary as e:
        log.error("engine_run_failed", run_id=run_id, reason="degenerate_boundary", error=str(e))
        return EngineResult(ok=False, fatal_error=str(e), stats=stats)

    index = build_point_index(request.points, config.jitter_magnitude)
    for error in index.skipped:
        diagnostics.append(Diagnostic("malformed_coordinate", str(error), point_id=error.point_id))
    for point_id in index.duplicate_ids:
        diagnostics.append(Diagnostic(
            "duplicate_point_id", f"Point '{point_id}' appears more than once", point_id=point_id,
        ))
    for site in index.sites:
        if site.jittered:
            diagnostics.append(Diagnostic(
                "coincident_site", f"Point '{site.point_id}' shares its coordinate with another point",
                point_id=site.point_id,
            ))
    stats["num_sites"] = len(index.sites)
    stats["num_skipped"] = len(index.skipped)

    # Malformed points are already reported once above
    known = set(index.coordinates) | set(index.skipped_ids)
    for layer in request.layers:
        for point_id in sorted(layer.members - known):
            diagnostics.append(Diagnostic(
                "unknown_member", f"Layer member '{point_id}' is not a valid point",
                point_id=point_id, layer_id=layer.layer_id,
            ))

    if index.is_empty:
        diagnostics.append(Diagnostic("empty_site_set", "No valid points, all layers are empty"))
        log.warning("engine_empty_site_set", run_id=run_id)
        return EngineResult(
            ok=True,
            layers={layer.layer_id: emit_layer(None, layer) for layer in request.layers},
            diagnostics=diagnostics,
            stats=stats,
        )

    try:
        prepared, cache_hit = prepare_diagram(index.sites, boundary, config, context.cache)
        results = dissolve_layers(prepared, request.layers, config)
    except TessellationFailure as e:
        log.error("engine_run_failed", run_id=run_id, reason="tessellation_failure", error=str(e))
        return EngineResult(ok=False, diagnostics=diagnostics, fatal_error=str(e), stats=stats)

    for point_id in prepared.diagram.empty_point_ids:
        diagnostics.append(Diagnostic(
            "outside_boundary", f"Point '{point_id}' has no territory inside the boundary",
            point_id=point_id,
        ))
    for layer in request.layers:
        result = results.get(layer.layer_id)
        if result is not None and result.rebuilt:
            diagnostics.append(Diagnostic(
                "region_rebuilt",
                f"Region of layer '{layer.layer_id}' was rebuilt from the union of its cells",
                layer_id=layer.layer_id,
            ))

    layers = {
        layer.layer_id: emit_layer(results.get(layer.layer_id), layer)
        for layer in request.layers
    }

    stats["cache_hit"] = cache_hit
    stats["elapsed_ms"] = round((time.time() - start_time) * 1000.0, 2)
    log.info(
        "engine_run_finished",
        run_id=run_id,
        sites=len(index.sites),
        diagnostics=len(diagnostics),
        cache_hit=cache_hit,
        elapsed_ms=stats["elapsed_ms"],
    )
    logger.debug(f"[{run_id}] emitted {sum(len(l.records()) for l in layers.values())} geometry records")

    return EngineResult(ok=True, layers=layers, diagnostics=diagnostics, stats=stats)
