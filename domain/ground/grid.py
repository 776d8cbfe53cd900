"""Ground Bounded Context - Elevation and swathe grids.

ElevationGrid holds one elevation per 1 m x 1 m cell over a rectangular
planar area, quantized to VERTICAL_UNIT_M and stored as int16. Cell (row, col)
covers northing ``min_northing + row`` and easting ``min_easting + col``, so
row 0 is the southernmost row.

Which cells hold a value is tracked by a separate boolean mask; a stored
value of 0 is sea level, not "unknown".
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np

from domain.ground.errors import (
    GridIndexError,
    IndexOverflowError,
    InvalidGridError,
    PointOutOfBoundsError,
)
from domain.ground.regions import RegionStrategy, get_region
from domain.ground.value_objects import (
    GlobalPoint,
    GridSettings,
    PlanarPoint,
    PlanarRect,
)

logger = logging.getLogger(__name__)

# Marker for "no value" at the API boundary, and the bad-data threshold
UNKNOWN_VALUE = -999
# Vertical resolution of stored elevations
VERTICAL_UNIT_M = 0.25
SCALE_FACTOR = 4
# Margin added on every side of the requested area
DEFAULT_BUFFER_M = 50
# Largest cell count addressable by a signed 32-bit index
MAX_GRID_CELLS = 2**31 - 1
# Minimum stored samples for a grid to be usable
MIN_SAMPLES = 4

# Vertical accuracy of lidar derived tiles, metres
LIDAR_ACCURACY_M = 0.2


def quantize(elevation_m: float) -> int:
    """Nearest whole number of vertical units for an elevation in metres."""
    return int(round(elevation_m * SCALE_FACTOR))


def dequantize(units: int) -> float:
    return units * VERTICAL_UNIT_M


class ElevationGrid:
    """Dense grid of quantized elevations with first-write-wins insertion.

    Parameters
    ----------
    min_planar, max_planar: PlanarPoint
        Corners of the area of interest (south-west and north-east).
    buffer_margin: float
        Metres added on every side; bounds are floored to whole metres.
    region: RegionStrategy | None
        Supplies the projection for global queries and the plausible
        elevation maximum. Defaults to New Zealand.
    """

    def __init__(
        self,
        min_planar: PlanarPoint,
        max_planar: PlanarPoint,
        buffer_margin: float = DEFAULT_BUFFER_M,
        *,
        region: RegionStrategy | None = None,
    ) -> None:
        self.region = region if region is not None else get_region("NZ")
        self.source = ""
        self.elevation_accuracy_m: float = UNKNOWN_VALUE

        self.min_northing = int(math.floor(min_planar.northing - buffer_margin))
        self.min_easting = int(math.floor(min_planar.easting - buffer_margin))
        self.max_northing = int(math.floor(max_planar.northing + buffer_margin))
        self.max_easting = int(math.floor(max_planar.easting + buffer_margin))

        self._allocate()

    def _allocate(self) -> None:
        if not (self.min_northing < self.max_northing):
            raise InvalidGridError(
                f"Invalid northing ordering: {self.min_northing} >= {self.max_northing}"
            )
        if not (self.min_easting < self.max_easting):
            raise InvalidGridError(
                f"Invalid easting ordering: {self.min_easting} >= {self.max_easting}"
            )
        if self.num_rows * self.num_cols > MAX_GRID_CELLS:
            raise IndexOverflowError(
                f"Grid of {self.num_rows} x {self.num_cols} cells exceeds "
                f"{MAX_GRID_CELLS} cells"
            )

        shape = (self.num_rows, self.num_cols)
        self._values = np.zeros(shape, dtype=np.int16)
        self._known = np.zeros(shape, dtype=bool)
        self.num_stored = 0
        self.num_bad_values = 0
        self.min_quantized: int = UNKNOWN_VALUE
        self.max_quantized: int = UNKNOWN_VALUE

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------
    @property
    def num_rows(self) -> int:
        return self.max_northing - self.min_northing + 1

    @property
    def num_cols(self) -> int:
        return self.max_easting - self.min_easting + 1

    @property
    def num_cells(self) -> int:
        return self.num_rows * self.num_cols

    @property
    def percent_available(self) -> int:
        """Whole percentage of cells holding an observed value."""
        if self.num_stored <= 0:
            return 0
        return int(round(100.0 * self.num_stored / self.num_cells))

    def target_area(self) -> PlanarRect:
        """Planar rectangle covered by the grid cells."""
        return PlanarRect(
            min_easting=self.min_easting,
            min_northing=self.min_northing,
            max_easting=self.min_easting + self.num_cols,
            max_northing=self.min_northing + self.num_rows,
        )

    def _locate(self, point: PlanarPoint) -> tuple[int, int] | None:
        row = int(math.floor(point.northing)) - self.min_northing
        col = int(math.floor(point.easting)) - self.min_easting
        if 0 <= row < self.num_rows and 0 <= col < self.num_cols:
            return row, col
        return None

    def _check_index(self, row: int, col: int) -> None:
        if not (0 <= row < self.num_rows and 0 <= col < self.num_cols):
            raise GridIndexError(
                f"Cell ({row}, {col}) outside grid of {self.num_rows} x {self.num_cols}"
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def is_bad_value(self, elevation_m: float) -> bool:
        return (
            math.isnan(elevation_m)
            or elevation_m > self.region.max_plausible_elevation_m
            or elevation_m <= UNKNOWN_VALUE
        )

    def _store(self, row: int, col: int, elevation_m: float) -> bool:
        if self._known[row, col]:
            return False

        if self.is_bad_value(elevation_m):
            self.num_bad_values += 1
            logger.debug(
                "Bad elevation %.2f at cell (%d, %d) ignored", elevation_m, row, col
            )
            return False

        units = quantize(elevation_m)
        self._values[row, col] = units
        self._known[row, col] = True
        self.num_stored += 1

        if self.num_stored == 1:
            self.min_quantized = units
            self.max_quantized = units
        else:
            self.min_quantized = min(self.min_quantized, units)
            self.max_quantized = max(self.max_quantized, units)
        return True

    def insert(self, planar_point: PlanarPoint, elevation_m: float) -> bool:
        """Store an elevation unless the cell already holds one.

        Returns:
            True if the value was stored

        Raises:
            PointOutOfBoundsError: If the point lies outside the grid
        """
        cell = self._locate(planar_point)
        if cell is None:
            raise PointOutOfBoundsError(planar_point, self.target_area())
        return self._store(cell[0], cell[1], elevation_m)

    def set_by_grid_index(self, row: int, col: int, elevation_m: float) -> bool:
        """Store an elevation by zero-based (row, col). Used when reloading."""
        self._check_index(row, col)
        return self._store(row, col, elevation_m)

    def fill_gaps(self) -> int:
        """Give every unknown cell the minimum observed elevation.

        Gaps are usually water the lidar could not see, so the lowest value of
        the layer is the safest guess. Returns the number of cells filled.
        """
        if self.num_stored == 0:
            return 0
        gaps = ~self._known
        filled = int(gaps.sum())
        self._values[gaps] = self.min_quantized
        self._known[gaps] = True
        if filled:
            logger.debug(
                "Filled %d gap cells with %.2f m", filled, dequantize(self.min_quantized)
            )
        return filled

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def has_data(self) -> bool:
        return self.num_stored > 0

    def assert_enough_data(self) -> None:
        if self.num_stored < MIN_SAMPLES:
            raise InvalidGridError(
                f"Not enough ground data points: {self.num_stored} < {MIN_SAMPLES}"
            )

    def min_max_elevation_m(self) -> tuple[float, float]:
        """Lowest and highest stored elevations, UNKNOWN_VALUE when empty."""
        if self.num_stored == 0:
            return float(UNKNOWN_VALUE), float(UNKNOWN_VALUE)
        return dequantize(self.min_quantized), dequantize(self.max_quantized)

    def query_by_grid_index(self, row: int, col: int) -> float:
        """Elevation at zero-based (row, col); UNKNOWN_VALUE for unknown cells."""
        self._check_index(row, col)
        if not self._known[row, col]:
            return float(UNKNOWN_VALUE)
        return dequantize(int(self._values[row, col]))

    def is_known(self, row: int, col: int) -> bool:
        self._check_index(row, col)
        return bool(self._known[row, col])

    def query_by_planar(self, point: PlanarPoint) -> float | None:
        cell = self._locate(point)
        if cell is None or not self._known[cell]:
            return None
        return dequantize(int(self._values[cell]))

    def query_by_global(self, point: GlobalPoint) -> float | None:
        """Elevation at a global point.

        Raises:
            UnsupportedLocationError: If the region cannot project the point
        """
        return self.query_by_planar(self.region.to_planar(point))

    def quantized_rows(self) -> np.ndarray:
        """Copy of the stored units, unknown cells as 0."""
        return np.where(self._known, self._values, 0).astype(np.int32)

    def known_mask(self) -> np.ndarray:
        return self._known.copy()

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def settings(self) -> GridSettings:
        return GridSettings(
            source=self.source,
            min_easting=self.min_easting,
            min_northing=self.min_northing,
            max_easting=self.max_easting,
            max_northing=self.max_northing,
            elevation_accuracy_m=self.elevation_accuracy_m,
            max_quantized=self.max_quantized,
            min_quantized=self.min_quantized,
            num_stored=self.num_stored,
        )

    @classmethod
    def from_settings(
        cls, settings: GridSettings, *, region: RegionStrategy | None = None
    ) -> "ElevationGrid":
        """Empty grid with the geometry and labels of a persisted settings block."""
        grid = cls.__new__(cls)
        grid.region = region if region is not None else get_region("NZ")
        grid.source = settings.source
        grid.elevation_accuracy_m = settings.elevation_accuracy_m
        grid.min_northing = settings.min_northing
        grid.min_easting = settings.min_easting
        grid.max_northing = settings.max_northing
        grid.max_easting = settings.max_easting
        grid._allocate()
        return grid

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(N {self.min_northing}..{self.max_northing}, "
            f"E {self.min_easting}..{self.max_easting}, stored={self.num_stored})"
        )


class SwatheGrid(ElevationGrid):
    """Cells seen by the sensor. A known cell is a seen cell (stored value 1)."""

    @classmethod
    def like(cls, grid: ElevationGrid) -> "SwatheGrid":
        """Swathe with exactly the geometry of grid."""
        return cls.from_settings(grid.settings(), region=grid.region)

    @property
    def seen_m2(self) -> int:
        return self.num_stored

    def is_seen(self, row: int, col: int) -> bool:
        return self.is_known(row, col)

    def set_seen(self, row: int, col: int) -> bool:
        self._check_index(row, col)
        return self._store(row, col, 1 * VERTICAL_UNIT_M)

    def _mark_point(self, northing: int, easting: int) -> None:
        row = northing - self.min_northing
        col = easting - self.min_easting
        # Oblique footprints can extend well past the grid
        if 0 <= row < self.num_rows and 0 <= col < self.num_cols:
            self._store(row, col, 1 * VERTICAL_UNIT_M)

    def mark_seen(self, footprint: Sequence[PlanarPoint]) -> int:
        """Mark every lattice point inside a (possibly rotated) quadrilateral.

        Args:
            footprint: Four planar corners in drawing order

        Returns:
            Number of newly seen cells
        """
        if len(footprint) != 4:
            raise ValueError(f"Footprint needs 4 corners, got {len(footprint)}")

        before = self.num_stored
        min_n = int(math.floor(min(p.northing for p in footprint))) - 1
        max_n = int(math.ceil(max(p.northing for p in footprint))) + 1
        min_e = int(math.floor(min(p.easting for p in footprint))) - 1
        max_e = int(math.ceil(max(p.easting for p in footprint))) + 1

        for northing in range(min_n, max_n + 1):
            for easting in range(min_e, max_e + 1):
                if point_in_polygon(northing, easting, footprint):
                    self._mark_point(northing, easting)
        return self.num_stored - before


def point_in_polygon(
    northing: float, easting: float, polygon: Sequence[PlanarPoint]
) -> bool:
    """Even-odd ray casting test towards increasing easting."""
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        pi, pj = polygon[i], polygon[j]
        if (pi.northing <= northing < pj.northing) or (
            pj.northing <= northing < pi.northing
        ):
            cross = (pj.easting - pi.easting) * (northing - pi.northing) / (
                pj.northing - pi.northing
            ) + pi.easting
            if easting < cross:
                inside = not inside
        j = i
    return inside
