"""Ground Bounded Context - Error Hierarchy.

Custom exceptions for ground elevation operations.

Per-file and per-cell problems (corrupt tiles, bad elevation values, missing
data) are absorbed by callers; only structural violations are fatal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.ground.value_objects import GlobalPoint, PlanarPoint, PlanarRect


class GroundDataError(Exception):
    """Base error for ground elevation operations."""


class UnsupportedLocationError(GroundDataError):
    """Location is outside every supported region envelope.

    Attributes:
        point: The offending GlobalPoint or PlanarPoint
    """

    def __init__(self, point: "GlobalPoint | PlanarPoint", region: str = "") -> None:
        self.point = point
        self.region = region
        where = f" by region {region}" if region else ""
        super().__init__(f"Location {point} is not supported{where}")


class UnsupportedRegionError(GroundDataError):
    """No region strategy is registered for the requested tag."""


class ProjectionSelfTestError(GroundDataError):
    """Projection round trip failed at start up - the constants are wrong."""


class CorruptTileError(GroundDataError):
    """Raster tile is missing, unreadable, or lacks required tags."""


class InvalidGridError(GroundDataError):
    """Grid bounds or persisted grid metadata are inconsistent."""


class IndexOverflowError(GroundDataError):
    """Grid row x col arithmetic exceeds the representable index range."""


class GridIndexError(GroundDataError):
    """Zero-based (row, col) outside the grid - a programming error."""


class PointOutOfBoundsError(GroundDataError):
    """Planar point is outside the grid bounds.

    Attributes:
        point: The offending PlanarPoint
        bounds: The grid's PlanarRect
    """

    def __init__(self, point: "PlanarPoint", bounds: "PlanarRect") -> None:
        self.point = point
        self.bounds = bounds
        super().__init__(
            f"Point (N {point.northing:.2f}, E {point.easting:.2f}) outside bounds "
            f"[N: {bounds.min_northing:.0f} to {bounds.max_northing:.0f}, "
            f"E: {bounds.min_easting:.0f} to {bounds.max_easting:.0f}]"
        )


class RoundTripMismatchError(GroundDataError):
    """Reloaded grid differs from the saved grid beyond tolerance."""
