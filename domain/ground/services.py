"""Ground Bounded Context - Domain services.

GroundData is the aggregate returned to callers: the requested global box and
the DEM, DSM and swathe grids built for it. The helpers below merge decoded
tile samples into a layer and finish the layer once all tiles are read.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable

from domain.ground.grid import LIDAR_ACCURACY_M, UNKNOWN_VALUE, ElevationGrid, SwatheGrid
from domain.ground.value_objects import (
    GlobalBounds,
    GlobalPoint,
    GroundLayer,
    PlanarPoint,
    TileDescriptor,
)

logger = logging.getLogger(__name__)


class GroundData:
    """Ground and surface elevations for one requested area (Aggregate)."""

    def __init__(
        self,
        bounds: GlobalBounds | None = None,
        *,
        dem: ElevationGrid | None = None,
        dsm: ElevationGrid | None = None,
        swathe: SwatheGrid | None = None,
    ) -> None:
        self.bounds = bounds
        self.dem = dem
        self.dsm = dsm
        self.swathe = swathe

    def layer(self, layer: GroundLayer) -> ElevationGrid | None:
        if layer is GroundLayer.DEM:
            return self.dem
        if layer is GroundLayer.DSM:
            return self.dsm
        return self.swathe

    def has_layer(self, layer: GroundLayer) -> bool:
        return self.layer(layer) is not None

    def elevation_at(self, point: GlobalPoint, layer: GroundLayer) -> float:
        """Elevation in metres, NaN when the layer or the cell has no data.

        Raises:
            UnsupportedLocationError: If the point is outside the grid's region
        """
        grid = self.layer(layer)
        if grid is None:
            return math.nan
        value = grid.query_by_global(point)
        return math.nan if value is None else value

    def create_swathe(self) -> SwatheGrid | None:
        """Start an empty swathe over the DSM area (or the DEM area)."""
        template = self.dsm if self.dsm is not None else self.dem
        if template is None:
            return None
        self.swathe = SwatheGrid.like(template)
        return self.swathe

    def min_max_elevation_m(self) -> tuple[float, float]:
        """Lowest and highest elevations over the DEM and DSM layers."""
        low, high = math.inf, -math.inf
        for grid in (self.dem, self.dsm):
            if grid is None or not grid.has_data():
                continue
            grid_low, grid_high = grid.min_max_elevation_m()
            low = min(low, grid_low)
            high = max(high, grid_high)
        if low == math.inf:
            return float(UNKNOWN_VALUE), float(UNKNOWN_VALUE)
        return low, high

    def __repr__(self) -> str:
        return f"GroundData(dem={self.dem!r}, dsm={self.dsm!r}, swathe={self.swathe!r})"


def merge_tile_samples(
    grid: ElevationGrid,
    descriptor: TileDescriptor,
    samples: Iterable[tuple[PlanarPoint, float]],
) -> int:
    """Insert one tile's samples into grid, first write wins.

    The first merged tile fixes the grid's source label. Tiles encoded in a
    different coordinate system are skipped so a layer never mixes sources.

    Returns:
        Number of cells newly stored
    """
    if grid.source == "":
        grid.source = descriptor.coordinate_system
        grid.elevation_accuracy_m = LIDAR_ACCURACY_M
    elif grid.source != descriptor.coordinate_system:
        logger.info(
            "Tile %s: source %s differs from %s, skipped",
            descriptor.file_name,
            descriptor.coordinate_system,
            grid.source,
        )
        return 0

    bad_before = grid.num_bad_values
    stored = 0
    for point, elevation_m in samples:
        if grid.insert(point, elevation_m):
            stored += 1

    bad = grid.num_bad_values - bad_before
    logger.debug(
        "Tile %s: %d cells stored, %d bad values", descriptor.file_name, stored, bad
    )
    return stored


def finish_layer(grid: ElevationGrid, layer: GroundLayer) -> ElevationGrid | None:
    """Fill gaps in a populated layer; None when no tile contributed data."""
    if not grid.has_data():
        logger.info("Layer %s: no elevation data found", layer.value)
        return None
    grid.fill_gaps()
    low, high = grid.min_max_elevation_m()
    logger.info(
        "Layer %s: %d%% of %d cells observed, %.2f..%.2f m",
        layer.value,
        grid.percent_available,
        grid.num_cells,
        low,
        high,
    )
    return grid
