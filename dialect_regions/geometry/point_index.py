"""Point index: turns raw point records into tessellation sites.

Parses the ``"lat, lon"`` coordinate text of each record, drops records
that cannot be parsed, and separates coincident coordinates with a small
deterministic jitter so the Voronoi construction never sees duplicate sites.
"""

import hashlib
import logging
import math
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np

from ..errors import MalformedCoordinate
from ..models.sites import RawPoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Site:
    """Tessellation input point derived from one data point.

    ``x``/``y`` may differ from ``reported`` by the coincidence jitter;
    ``reported`` always keeps the coordinate from the data.
    """

    point_id: str
    x: float
    y: float
    reported: tuple[float, float]

    @property
    def xy(self) -> tuple[float, float]:
        return (self.x, self.y)

    @property
    def jittered(self) -> bool:
        return (self.x, self.y) != self.reported


@dataclass
class PointIndex:
    """Result of indexing raw point records."""

    sites: list[Site] = field(default_factory=list)
    coordinates: dict[str, tuple[float, float]] = field(default_factory=dict)
    skipped: list[MalformedCoordinate] = field(default_factory=list)
    duplicate_ids: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.sites

    @property
    def skipped_ids(self) -> list[str]:
        return [error.point_id for error in self.skipped]

    def get(self, point_id: str) -> Site | None:
        for site in self.sites:
            if site.point_id == point_id:
                return site
        return None


def parse_coordinate(point_id: str, text: str) -> tuple[float, float]:
    """Parse ``"lat, lon"`` text into a planar ``(x, y) = (lon, lat)`` pair.

    Raises:
        MalformedCoordinate: If the text does not hold exactly two finite numbers
    """
    if text is None:
        raise MalformedCoordinate(point_id, text, "missing")

    parts = str(text).split(",")
    if len(parts) != 2:
        raise MalformedCoordinate(point_id, text, f"expected 2 components, got {len(parts)}")

    try:
        lat, lon = (float(part.strip()) for part in parts)
    except ValueError:
        raise MalformedCoordinate(point_id, text, "non-numeric component") from None

    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise MalformedCoordinate(point_id, text, "non-finite component")

    return (lon, lat)


def build_point_index(
    records: Iterable[RawPoint | tuple[str, str]],
    jitter_magnitude: float = 1e-7,
) -> PointIndex:
    """Validate raw records and build the site list.

    Args:
        records: RawPoint models or (point_id, coordinate text) tuples
        jitter_magnitude: Jitter radius relative to the extent of all sites

    Returns:
        PointIndex with sites in input order, the validated coordinate
        mapping and the records that were skipped
    """
    index = PointIndex()

    for record in records:
        if isinstance(record, RawPoint):
            point_id, text = record.point_id, record.coordinates
        else:
            point_id, text = str(record[0]), record[1]

        if point_id in index.coordinates or point_id in index.skipped_ids:
            logger.warning(f"Duplicate point id '{point_id}', keeping the first record")
            index.duplicate_ids.append(point_id)
            continue

        try:
            index.coordinates[point_id] = parse_coordinate(point_id, text)
        except MalformedCoordinate as e:
            logger.warning(str(e))
            index.skipped.append(e)

    index.sites = _separate_coincident(index.coordinates, jitter_magnitude)

    logger.debug(
        f"Indexed {len(index.sites)} sites, skipped {len(index.skipped)}, "
        f"jittered {sum(1 for s in index.sites if s.jittered)}"
    )
    return index


def _separate_coincident(
    coordinates: dict[str, tuple[float, float]],
    jitter_magnitude: float,
) -> list[Site]:
    """Create sites, moving every repeat of a coordinate off the first one.

    The first point at a coordinate keeps it. Each later point is shifted by
    ``rank * jitter`` in a direction seeded from its id, so the same input
    always yields the same sites.
    """
    if not coordinates:
        return []

    xs = [c[0] for c in coordinates.values()]
    ys = [c[1] for c in coordinates.values()]
    extent = max(max(xs) - min(xs), max(ys) - min(ys))
    if extent == 0.0:
        # all sites at one coordinate
        extent = 1.0
    radius = extent * jitter_magnitude

    sites: list[Site] = []
    occupied: set[tuple[float, float]] = set()
    repeats: dict[tuple[float, float], int] = {}

    for point_id, reported in coordinates.items():
        xy = reported
        if xy in occupied:
            rng = np.random.default_rng(_seed_for(point_id))
            angle = rng.uniform(0.0, 2.0 * math.pi)
            rank = repeats.get(reported, 0) + 1
            while xy in occupied:
                xy = (
                    reported[0] + rank * radius * math.cos(angle),
                    reported[1] + rank * radius * math.sin(angle),
                )
                rank += 1
            repeats[reported] = rank - 1
            logger.debug(f"Site '{point_id}' coincides with another site, jittered to {xy}")
        occupied.add(xy)
        sites.append(Site(point_id=point_id, x=xy[0], y=xy[1], reported=reported))

    return sites


def _seed_for(point_id: str) -> int:
    digest = hashlib.sha256(point_id.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")
