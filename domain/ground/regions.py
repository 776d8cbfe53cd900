"""Ground Bounded Context - Region strategies.

A region bundles everything that is specific to one country's ground data:
the projection into its local planar system, the envelope where that
projection is valid, the coordinate-system tag its tiles carry, and the range
of plausible elevations.

Only New Zealand (NZTM2000) is implemented. Other tags raise
UnsupportedRegionError.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from domain.ground.errors import UnsupportedLocationError, UnsupportedRegionError
from domain.ground.projection import TransverseMercator, assert_round_trip
from domain.ground.value_objects import (
    GlobalBounds,
    GlobalPoint,
    PlanarPoint,
    PlanarRect,
)

logger = logging.getLogger(__name__)


class RegionStrategy(Protocol):
    """Port describing a supported country/region."""

    name: str
    catalog_tag: str  # Must appear in a tile's CRS name for the tile to be used
    envelope: GlobalBounds
    y_axis_positive: bool  # True when tile origins are lower-left corners
    max_plausible_elevation_m: float

    def supports(self, point: GlobalPoint) -> bool: ...

    def to_planar(self, point: GlobalPoint) -> PlanarPoint: ...

    def to_global(self, point: PlanarPoint) -> GlobalPoint: ...

    def to_planar_rect(self, bounds: GlobalBounds) -> PlanarRect: ...


# ---------------------------------------------------------------------------
# New Zealand
# ---------------------------------------------------------------------------
# NZTM2000 on the GRS80 ellipsoid
NZTM_SEMI_MAJOR_AXIS = 6378137.0
NZTM_INVERSE_FLATTENING = 298.257222101
NZTM_CENTRAL_MERIDIAN = 173.0
NZTM_ORIGIN_LATITUDE = 0.0
NZTM_SCALE_FACTOR = 0.9996
NZTM_FALSE_EASTING = 1600000.0
NZTM_FALSE_NORTHING = 10000000.0

# Highest point in New Zealand (Aoraki / Mount Cook), rounded up
NZ_MAX_PLAUSIBLE_ELEVATION_M = 3725.0

# Box over the Hauraki Gulf used for the start-up round trip
_SELF_TEST_POINTS = (
    GlobalPoint(latitude=-36.02306055654798, longitude=174.15686794873625),
    GlobalPoint(latitude=-37.057123653801554, longitude=175.55578930011853),
)


class NewZealand:
    """New Zealand mainland and near islands, projected to NZTM2000.

    Construction runs the projection self-test and raises
    ProjectionSelfTestError if the constants do not round trip.
    """

    name = "NZ"
    catalog_tag = "NZGD2000"
    y_axis_positive = False
    max_plausible_elevation_m = NZ_MAX_PLAUSIBLE_ELEVATION_M

    envelope = GlobalBounds(
        south_west=GlobalPoint(latitude=-50.0, longitude=165.0),
        north_east=GlobalPoint(latitude=-34.0, longitude=179.0),
    )
    # Planar extents of any NZTM coordinate that can be inverted sensibly
    planar_extents = PlanarRect(
        min_easting=100000.0,
        min_northing=1000000.0,
        max_easting=3000000.0,
        max_northing=9000000.0,
    )

    def __init__(self) -> None:
        self.projection = TransverseMercator(
            semi_major_axis=NZTM_SEMI_MAJOR_AXIS,
            inverse_flattening=NZTM_INVERSE_FLATTENING,
            central_meridian_deg=NZTM_CENTRAL_MERIDIAN,
            scale_factor=NZTM_SCALE_FACTOR,
            origin_latitude_deg=NZTM_ORIGIN_LATITUDE,
            false_easting=NZTM_FALSE_EASTING,
            false_northing=NZTM_FALSE_NORTHING,
        )
        assert_round_trip(self.projection, _SELF_TEST_POINTS)
        logger.debug("Region %s: projection self-test passed", self.name)

    def supports(self, point: GlobalPoint) -> bool:
        return self.envelope.contains(point)

    def supports_planar(self, point: PlanarPoint) -> bool:
        ext = self.planar_extents
        return (
            ext.min_easting <= point.easting <= ext.max_easting
            and ext.min_northing <= point.northing <= ext.max_northing
        )

    def to_planar(self, point: GlobalPoint) -> PlanarPoint:
        if not self.supports(point):
            raise UnsupportedLocationError(point, self.name)
        return self.projection.to_planar(point)

    def to_global(self, point: PlanarPoint) -> GlobalPoint:
        if not self.supports_planar(point):
            raise UnsupportedLocationError(point, self.name)
        return self.projection.to_global(point)

    def to_planar_rect(self, bounds: GlobalBounds) -> PlanarRect:
        """Planar box enclosing the projected corners of a global box."""
        corners = [
            self.to_planar(bounds.south_west),
            self.to_planar(bounds.north_east),
            self.to_planar(
                GlobalPoint(
                    latitude=bounds.south_west.latitude,
                    longitude=bounds.north_east.longitude,
                )
            ),
            self.to_planar(
                GlobalPoint(
                    latitude=bounds.north_east.latitude,
                    longitude=bounds.south_west.longitude,
                )
            ),
        ]
        return PlanarRect(
            min_easting=min(c.easting for c in corners),
            min_northing=min(c.northing for c in corners),
            max_easting=max(c.easting for c in corners),
            max_northing=max(c.northing for c in corners),
        )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
_REGIONS: dict[str, Callable[[], RegionStrategy]] = {
    "NZ": NewZealand,
}


def get_region(tag: str) -> RegionStrategy:
    """Return the region registered under tag (case-insensitive).

    Raises:
        UnsupportedRegionError: If no region is registered for tag
    """
    factory = _REGIONS.get(tag.strip().upper())
    if factory is None:
        raise UnsupportedRegionError(
            f"Region '{tag}' is not supported (known: {', '.join(sorted(_REGIONS))})"
        )
    return factory()


def region_for(point: GlobalPoint) -> RegionStrategy:
    """Return the first region whose envelope contains point.

    Raises:
        UnsupportedLocationError: If no region supports the point
    """
    for factory in _REGIONS.values():
        region = factory()
        if region.supports(point):
            return region
    raise UnsupportedLocationError(point)
