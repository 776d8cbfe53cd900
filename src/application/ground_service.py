"""Ground data application service.

Answers "what is the ground (DEM) or tree-top (DSM) elevation here?" for
areas covered by a library of GeoTIFF tiles under one data directory.

Each immediate sub-directory of the data directory (and the directory itself)
is a separate catalog with its own cache file. Loading an area:
1) Guard the area against the region envelope and project it to planar
2) Allocate DEM and DSM grids over the buffered planar box
3) Collect the overlapping tiles from every catalog, in catalog then file order
4) Decode tiles (optionally in a thread pool) and merge them in that order,
   so the first tile to cover a cell wins regardless of decode timing
5) Fill gaps in each layer that received data
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from domain.ground.codec import verify_round_trip
from domain.ground.errors import (
    CorruptTileError,
    RoundTripMismatchError,
    UnsupportedLocationError,
)
from domain.ground.grid import ElevationGrid
from domain.ground.regions import get_region
from domain.ground.repositories import (
    ElevationSampleSource,
    GroundDataRepository,
    TileCatalog,
)
from domain.ground.services import GroundData, finish_layer, merge_tile_samples
from domain.ground.value_objects import (
    GlobalBounds,
    GlobalPoint,
    GroundLayer,
    PlanarPoint,
    PlanarRect,
    TileDescriptor,
)
from infrastructure.ground.geoid import QuasigeoidModel
from infrastructure.ground.geotiff_catalog import GeoTiffTileCatalog
from infrastructure.ground.geotiff_decoder import GeoTiffSampleDecoder
from infrastructure.ground.sqlite_store import GridStore

from .options import GroundDataOptions

logger = logging.getLogger(__name__)

Samples = list[tuple[PlanarPoint, float]]


class GroundDataService:
    """Query surface over the tiles under ``options.data_directory``.

    Parameters
    ----------
    options: GroundDataOptions
        Validated configuration.
    catalog, decoder:
        Optional port implementations; default to the GeoTIFF adapters.
    """

    def __init__(
        self,
        options: GroundDataOptions,
        *,
        catalog: TileCatalog | None = None,
        decoder: ElevationSampleSource | None = None,
    ) -> None:
        self.options = options
        self.region = get_region(options.region_tag)
        self.catalog: TileCatalog = catalog or GeoTiffTileCatalog(
            self.region, options.index_file_name
        )
        self.decoder: ElevationSampleSource = decoder or GeoTiffSampleDecoder()
        self.geoid = QuasigeoidModel(
            Path(options.data_directory) / options.geoid_relative_path
        )
        self.ground_data: GroundData | None = None

        self._locks_guard = threading.Lock()
        self._directory_locks: dict[Path, threading.Lock] = {}

    # ------------------------------------------------------------------
    # Catalogs
    # ------------------------------------------------------------------
    def catalog_directories(self) -> list[Path]:
        """Directories indexed as separate catalogs, root last."""
        root = Path(self.options.data_directory)
        if self.options.recursive_scan:
            return [root]
        subdirs = sorted(
            (p for p in root.iterdir() if p.is_dir() and not p.name.startswith(".")),
            key=lambda p: p.name.lower(),
        )
        return [*subdirs, root]

    def _lock_for(self, directory: Path) -> threading.Lock:
        key = directory.resolve()
        with self._locks_guard:
            lock = self._directory_locks.get(key)
            if lock is None:
                lock = self._directory_locks[key] = threading.Lock()
            return lock

    def rebuild_index(self, directory: Path | str | None = None) -> int:
        """Force a rescan of one catalog directory, or all of them.

        Call after adding tiles whose count matches a removed tile's, which a
        cache freshness check cannot notice. Returns the number of tiles indexed.
        """
        directories = (
            [Path(directory)] if directory is not None else self.catalog_directories()
        )
        total = 0
        for path in directories:
            with self._lock_for(path):
                index = self.catalog.rebuild(path, self.options.recursive_scan)
            total += len(index.tiles)
        return total

    def _candidates(self, target: PlanarRect) -> list[tuple[Path, TileDescriptor]]:
        candidates = []
        for directory in self.catalog_directories():
            with self._lock_for(directory):
                index = self.catalog.build_or_load(directory, self.options.recursive_scan)
            tiles = self.catalog.overlapping(
                index, target, self.region.catalog_tag, self.region.y_axis_positive
            )
            candidates.extend((directory, tile) for tile in tiles)
        return candidates

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def _decode(
        self, directory: Path, tile: TileDescriptor, target: PlanarRect
    ) -> Samples | None:
        try:
            return list(self.decoder.extract(tile, target, directory))
        except CorruptTileError as e:
            logger.warning("Skipping tile %s: %s", tile.file_name, e)
            return None

    def load_ground_data(self, bounds: GlobalBounds) -> GroundData:
        """Build DEM and DSM grids for a global box.

        Layers without any tile data are None on the result.

        Raises:
            UnsupportedLocationError: If either corner is outside the region
        """
        for corner in (bounds.south_west, bounds.north_east):
            if not self.region.supports(corner):
                raise UnsupportedLocationError(corner, self.region.name)

        rect = self.region.to_planar_rect(bounds)
        min_planar = PlanarPoint(northing=rect.min_northing, easting=rect.min_easting)
        max_planar = PlanarPoint(northing=rect.max_northing, easting=rect.max_easting)
        grids = {
            GroundLayer.DEM: ElevationGrid(
                min_planar, max_planar, self.options.buffer_m, region=self.region
            ),
            GroundLayer.DSM: ElevationGrid(
                min_planar, max_planar, self.options.buffer_m, region=self.region
            ),
        }
        target = grids[GroundLayer.DEM].target_area()

        candidates = self._candidates(target)
        logger.info(
            "Loading %s to %s: %d candidate tiles",
            bounds.south_west,
            bounds.north_east,
            len(candidates),
        )

        if self.options.max_workers > 1 and len(candidates) > 1:
            with ThreadPoolExecutor(max_workers=self.options.max_workers) as executor:
                decoded = list(
                    executor.map(
                        lambda item: self._decode(item[0], item[1], target), candidates
                    )
                )
        else:
            decoded = [self._decode(d, tile, target) for d, tile in candidates]

        for (_, tile), samples in zip(candidates, decoded):
            if samples is None:
                continue
            merge_tile_samples(grids[tile.layer], tile, samples)

        data = GroundData(
            bounds,
            dem=finish_layer(grids[GroundLayer.DEM], GroundLayer.DEM),
            dsm=finish_layer(grids[GroundLayer.DSM], GroundLayer.DSM),
        )
        self.ground_data = data
        return data

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def elevation_at(
        self, point: GlobalPoint, layer: GroundLayer = GroundLayer.DEM
    ) -> float:
        """Elevation in metres at a point, NaN when no data is available.

        Reuses the loaded area when it contains the point, else loads a small
        box around it, moved inside the region envelope near its edges.

        Raises:
            UnsupportedLocationError: If the point is outside the region
        """
        if not self.region.supports(point):
            raise UnsupportedLocationError(point, self.region.name)

        data = self.ground_data
        if data is None or data.bounds is None or not data.bounds.contains(point):
            box = GlobalBounds.around(point, self.options.point_margin_deg)
            data = self.load_ground_data(box.moved_inside(self.region.envelope))
        return data.elevation_at(point, layer)

    def has_layer(self, layer: GroundLayer) -> bool:
        """True when the loaded ground data holds this layer."""
        return self.ground_data is not None and self.ground_data.has_layer(layer)

    def orthometric_height(self, point: GlobalPoint, ellipsoidal_height_m: float) -> float:
        """Convert a GNSS ellipsoidal height to height above the vertical datum."""
        if math.isnan(ellipsoidal_height_m):
            return math.nan
        return self.geoid.to_orthometric(point, ellipsoidal_height_m)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save(
        self, path: Path | str, data: GroundData | None = None, verify: bool = False
    ) -> None:
        """Persist ground data (default: the loaded data) to a SQLite file.

        With verify, the file is reloaded and every layer compared.

        Raises:
            RoundTripMismatchError: If verification finds a difference
        """
        data = data if data is not None else self.ground_data
        if data is None:
            raise ValueError("No ground data loaded to save")
        store: GroundDataRepository = GridStore(path, self.region)
        store.save(data)
        logger.info("Saved ground data to %s", Path(path).name)

        if verify:
            reloaded = store.load()
            for layer in GroundLayer:
                original = data.layer(layer)
                if original is None:
                    continue
                copy = reloaded.layer(layer) if reloaded is not None else None
                if copy is None:
                    raise RoundTripMismatchError(f"Layer {layer.value} missing after reload")
                max_error = verify_round_trip(original, copy)
                logger.debug("Layer %s: max round trip error %.2f m", layer.value, max_error)

    def load(self, path: Path | str) -> GroundData | None:
        """Load previously saved ground data and make it the active data."""
        data = GridStore(path, self.region).load()
        if data is not None:
            self.ground_data = data
        return data

    def close(self) -> None:
        self.geoid.close()
