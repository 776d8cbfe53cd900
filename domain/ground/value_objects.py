"""Ground Bounded Context - Value Objects.

Immutable data structures representing geographic and planar concepts.
All validation occurs at construction time via Pydantic.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class GroundLayer(str, Enum):
    """Layers of ground data held for an area."""

    DSM = "dsm"  # Surface (tree-top) elevations
    DEM = "dem"  # Ground (earth) elevations
    SWATHE = "swathe"  # Area seen by the sensor


# ---------------------------------------------------------------------------
# Global (angular) coordinates
# ---------------------------------------------------------------------------
class GlobalPoint(BaseModel):
    """Geographic coordinate in degrees (Value Object).

    Invariants:
        latitude in [-90, 90]
        longitude in [-180, 180]

    Region envelopes are narrower; those are checked by the region guard.
    """

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"({self.latitude:.6f}, {self.longitude:.6f})"


class GlobalBounds(BaseModel):
    """Geographic box defined by its south-west and north-east corners."""

    south_west: GlobalPoint
    north_east: GlobalPoint

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_corners(self) -> "GlobalBounds":
        if not (self.south_west.latitude < self.north_east.latitude):
            raise ValueError(
                f"Invalid latitude ordering: south={self.south_west.latitude} "
                f">= north={self.north_east.latitude}"
            )
        if not (self.south_west.longitude < self.north_east.longitude):
            raise ValueError(
                f"Invalid longitude ordering: west={self.south_west.longitude} "
                f">= east={self.north_east.longitude}"
            )
        return self

    @classmethod
    def from_points(cls, points: Iterable[GlobalPoint]) -> "GlobalBounds":
        """Smallest box enclosing all points."""
        pts = list(points)
        if not pts:
            raise ValueError("Points collection cannot be empty")
        return cls(
            south_west=GlobalPoint(
                latitude=min(p.latitude for p in pts),
                longitude=min(p.longitude for p in pts),
            ),
            north_east=GlobalPoint(
                latitude=max(p.latitude for p in pts),
                longitude=max(p.longitude for p in pts),
            ),
        )

    @classmethod
    def around(cls, point: GlobalPoint, margin_deg: float) -> "GlobalBounds":
        """Square box of +/- margin_deg around a point."""
        return cls(
            south_west=GlobalPoint(
                latitude=point.latitude - margin_deg,
                longitude=point.longitude - margin_deg,
            ),
            north_east=GlobalPoint(
                latitude=point.latitude + margin_deg,
                longitude=point.longitude + margin_deg,
            ),
        )

    def moved_inside(self, outer: "GlobalBounds") -> "GlobalBounds":
        """Same-sized box shifted the least distance needed to lie within outer.

        A box wider or taller than outer is clipped to it on that axis.
        """

        def shift(low: float, high: float, outer_low: float, outer_high: float):
            if high - low >= outer_high - outer_low:
                return outer_low, outer_high
            if low < outer_low:
                return outer_low, outer_low + (high - low)
            if high > outer_high:
                return outer_high - (high - low), outer_high
            return low, high

        south, north = shift(
            self.south_west.latitude,
            self.north_east.latitude,
            outer.south_west.latitude,
            outer.north_east.latitude,
        )
        west, east = shift(
            self.south_west.longitude,
            self.north_east.longitude,
            outer.south_west.longitude,
            outer.north_east.longitude,
        )
        return GlobalBounds(
            south_west=GlobalPoint(latitude=south, longitude=west),
            north_east=GlobalPoint(latitude=north, longitude=east),
        )

    def contains(self, point: GlobalPoint) -> bool:
        """Inclusive containment check."""
        return (
            self.south_west.latitude <= point.latitude <= self.north_east.latitude
            and self.south_west.longitude
            <= point.longitude
            <= self.north_east.longitude
        )


# ---------------------------------------------------------------------------
# Planar (projected, metric) coordinates
# ---------------------------------------------------------------------------
class PlanarPoint(BaseModel):
    """Northing/easting in metres in the local projected system."""

    northing: float
    easting: float

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"(N {self.northing:.2f}, E {self.easting:.2f})"


class PlanarRect(BaseModel):
    """Axis-aligned rectangle in planar coordinates (Value Object)."""

    min_easting: float
    min_northing: float
    max_easting: float
    max_northing: float

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_ordering(self) -> "PlanarRect":
        if self.min_easting > self.max_easting:
            raise ValueError(
                f"Invalid easting ordering: {self.min_easting} > {self.max_easting}"
            )
        if self.min_northing > self.max_northing:
            raise ValueError(
                f"Invalid northing ordering: {self.min_northing} > {self.max_northing}"
            )
        return self

    @property
    def width(self) -> float:
        return self.max_easting - self.min_easting

    @property
    def height(self) -> float:
        return self.max_northing - self.min_northing

    def intersects(self, other: "PlanarRect") -> bool:
        """True when the overlap has positive width AND positive height.

        Rectangles that only share an edge or a corner do not intersect.
        """
        overlap_w = min(self.max_easting, other.max_easting) - max(
            self.min_easting, other.min_easting
        )
        overlap_h = min(self.max_northing, other.max_northing) - max(
            self.min_northing, other.min_northing
        )
        return overlap_w > 0 and overlap_h > 0


# ---------------------------------------------------------------------------
# Tile descriptor
# ---------------------------------------------------------------------------
class TileDescriptor(BaseModel):
    """Footprint and format parameters of one raster tile on disk.

    ``origin_x``/``origin_y`` is the lower-left corner for y-axis-positive
    sources, else the GeoTIFF tie point (upper-left corner).

    Invariants:
        num_cols > 0, num_rows > 0, cell_size > 0
    """

    folder: str  # Relative to the catalog directory, "." for the directory itself
    file_name: str
    is_ground_layer: bool  # DEM (ground) when True, else DSM (surface)
    coordinate_system: str  # e.g. "NZGD2000"
    num_cols: int = Field(gt=0)
    num_rows: int = Field(gt=0)
    origin_x: float
    origin_y: float
    cell_size: float = Field(default=1.0, gt=0)
    no_data_value: float = -999

    model_config = ConfigDict(frozen=True)

    @field_validator("coordinate_system")
    @classmethod
    def upper_case_tag(cls, value: str) -> str:
        return value.upper()

    @property
    def layer(self) -> GroundLayer:
        return GroundLayer.DEM if self.is_ground_layer else GroundLayer.DSM

    def area(self, y_axis_positive: bool) -> PlanarRect:
        """World rectangle covered by this tile."""
        width = self.num_cols * self.cell_size
        height = self.num_rows * self.cell_size
        min_northing = self.origin_y if y_axis_positive else self.origin_y - height
        return PlanarRect(
            min_easting=self.origin_x,
            min_northing=min_northing,
            max_easting=self.origin_x + width,
            max_northing=min_northing + height,
        )


# ---------------------------------------------------------------------------
# Grid metadata block
# ---------------------------------------------------------------------------
class GridSettings(BaseModel):
    """Metadata persisted ahead of an encoded grid layer.

    Enough to rebuild the grid geometry without reading the encoded rows.
    """

    source: str = ""
    min_easting: int
    min_northing: int
    max_easting: int
    max_northing: int
    elevation_accuracy_m: float
    max_quantized: int
    min_quantized: int
    num_stored: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_bounds(self) -> "GridSettings":
        if not (self.min_northing < self.max_northing):
            raise ValueError(
                f"Invalid northing ordering: {self.min_northing} >= {self.max_northing}"
            )
        if not (self.min_easting < self.max_easting):
            raise ValueError(
                f"Invalid easting ordering: {self.min_easting} >= {self.max_easting}"
            )
        return self


class TileCatalogIndex(BaseModel):
    """Tiles found in one directory, sorted by file name.

    ``file_count`` is the number of raster files seen on disk when the index
    was built, qualifying or not. A cached index is stale when it differs.
    """

    directory: str
    tiles: tuple[TileDescriptor, ...] = ()
    file_count: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    def __len__(self) -> int:
        return len(self.tiles)
