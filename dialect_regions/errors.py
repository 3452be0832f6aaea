"""Error taxonomy for the regionalization engine.

Per-site problems (``MalformedCoordinate``) are recovered locally and reported
as diagnostics. ``DegenerateBoundary`` and ``TessellationFailure`` abort the
whole invocation.
"""


class RegionEngineError(Exception):
    """Base class for all engine errors."""


class MalformedCoordinate(RegionEngineError, ValueError):
    """A point's coordinate text cannot be split into two numeric components."""

    def __init__(self, point_id: str, raw: object, reason: str = "unparsable"):
        self.point_id = point_id
        self.raw = raw
        self.reason = reason
        super().__init__(f"Point '{point_id}': cannot parse coordinate {raw!r} ({reason})")


class DegenerateBoundary(RegionEngineError, ValueError):
    """The boundary polygon cannot be used for clipping."""


class TessellationFailure(RegionEngineError, RuntimeError):
    """The Voronoi construction failed for the given sites."""
