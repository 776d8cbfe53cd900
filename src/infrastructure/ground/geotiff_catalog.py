"""GeoTIFF tile catalog.

Indexes the GeoTIFF elevation tiles in a directory so that the tiles covering
an area can be found without opening every file. Only headers are read: size,
geotransform, CRS and nodata.

Lifecycle:
1) List raster files (``*.tif`` / ``*.tiff``), sorted by name
2) If the cache file exists and recorded the same file count, use it
3) Otherwise probe each file, keep those in the region's CRS, and rewrite the cache
4) A directory with no qualifying tiles has its cache deleted
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import rasterio
from affine import Affine

from domain.ground.regions import RegionStrategy
from domain.ground.value_objects import PlanarRect, TileCatalogIndex, TileDescriptor

from .sqlite_store import CatalogCacheStore

logger = logging.getLogger(__name__)

DEFAULT_INDEX_FILE_NAME = "ground_index.sqlite"
RASTER_SUFFIXES = (".tif", ".tiff")
DEFAULT_NO_DATA = -999.0

# Name of the geographic CRS in WKT1 ("GEOGCS") or WKT2 ("BASEGEOGCRS"/"GEOGCRS")
_GEOG_NAME = re.compile(r'(?:BASEGEOGCRS|GEOGCRS|GEOGCS)\["([^"]+)"')


def is_ground_file(file_name: str) -> bool:
    """DEM (bare earth) tiles are named ``dem_*`` or ``*_dem*``; all else is DSM."""
    name = file_name.lower()
    return "dem_" in name or "_dem" in name


def geographic_crs_name(wkt: str) -> str:
    match = _GEOG_NAME.search(wkt)
    return match.group(1) if match else ""


def list_raster_files(directory: Path, recursive: bool = False) -> list[Path]:
    """GeoTIFF files in directory, sorted by file name."""
    candidates = directory.rglob("*") if recursive else directory.glob("*")
    files = [
        p for p in candidates if p.is_file() and p.suffix.lower() in RASTER_SUFFIXES
    ]
    return sorted(files, key=lambda p: (p.name.lower(), str(p)))


def probe_tile(
    path: Path, directory: Path, region: RegionStrategy
) -> TileDescriptor | None:
    """Read one GeoTIFF header into a TileDescriptor.

    Returns None (and logs why) when the file cannot be opened, is not in
    the region's coordinate system, or has unusable dimensions.
    """
    try:
        with rasterio.Env():
            with rasterio.open(path) as src:
                wkt = src.crs.to_wkt() if src.crs is not None else ""
                if region.catalog_tag not in wkt.upper().replace("_", ""):
                    logger.debug(
                        "Tile %s: CRS is not %s, skipped", path.name, region.catalog_tag
                    )
                    return None

                if not src.crs.is_projected:
                    logger.debug("Tile %s: geographic CRS, skipped", path.name)
                    return None

                transform: Affine = src.transform
                if transform.b != 0 or transform.d != 0:
                    logger.warning("Tile %s: rotated geotransform, skipped", path.name)
                    return None

                coordinate_system = geographic_crs_name(wkt) or region.catalog_tag
                folder = path.parent.relative_to(directory).as_posix()
                return TileDescriptor(
                    folder=folder,
                    file_name=path.name,
                    is_ground_layer=is_ground_file(path.name),
                    coordinate_system=coordinate_system,
                    num_cols=src.width,
                    num_rows=src.height,
                    origin_x=transform.c,
                    origin_y=transform.f,
                    cell_size=abs(transform.a),
                    no_data_value=(
                        src.nodata if src.nodata is not None else DEFAULT_NO_DATA
                    ),
                )
    except (rasterio.errors.RasterioError, OSError) as e:
        logger.warning("Tile %s: unreadable (%s), skipped", path.name, e)
        return None
    except ValueError as e:
        # Header values rejected by TileDescriptor validation
        logger.warning("Tile %s: invalid header (%s), skipped", path.name, e)
        return None


class GeoTiffTileCatalog:
    """Infrastructure adapter implementing the TileCatalog port.

    Parameters
    ----------
    region: RegionStrategy
        Supplies the CRS tag tiles must carry.
    index_file_name: str
        Name of the cache file written into each indexed directory.
    """

    def __init__(
        self, region: RegionStrategy, index_file_name: str = DEFAULT_INDEX_FILE_NAME
    ) -> None:
        self.region = region
        self.index_file_name = index_file_name

    def _store(self, directory: Path) -> CatalogCacheStore:
        return CatalogCacheStore(directory / self.index_file_name)

    def build_or_load(
        self, directory: Path | str, recursive: bool = False
    ) -> TileCatalogIndex:
        """Cached index when fresh, else a rebuilt one.

        Raises:
            FileNotFoundError: If directory does not exist
        """
        path = Path(directory)
        if not path.is_dir():
            raise FileNotFoundError(str(path))

        raster_files = list_raster_files(path, recursive)
        cached = self._store(path).read(path)
        if cached is not None:
            if cached.file_count == len(raster_files):
                logger.debug(
                    "Catalog %s: %d tiles from cache", path.name, len(cached.tiles)
                )
                return cached
            logger.info(
                "Catalog %s: stale cache (%d files recorded, %d on disk), rebuilding",
                path.name,
                cached.file_count,
                len(raster_files),
            )
        return self._build(path, raster_files)

    def rebuild(self, directory: Path | str, recursive: bool = False) -> TileCatalogIndex:
        """Rescan directory and replace its cache."""
        path = Path(directory)
        if not path.is_dir():
            raise FileNotFoundError(str(path))
        return self._build(path, list_raster_files(path, recursive))

    def _build(self, directory: Path, raster_files: list[Path]) -> TileCatalogIndex:
        tiles = []
        for raster in raster_files:
            descriptor = probe_tile(raster, directory, self.region)
            if descriptor is not None:
                tiles.append(descriptor)

        index = TileCatalogIndex(
            directory=str(directory), tiles=tuple(tiles), file_count=len(raster_files)
        )
        store = self._store(directory)
        if not tiles:
            store.delete()
            logger.info(
                "Catalog %s: no %s tiles among %d files",
                directory.name,
                self.region.catalog_tag,
                len(raster_files),
            )
            return index

        store.write(index)
        logger.info(
            "Catalog %s: indexed %d of %d files", directory.name, len(tiles), len(raster_files)
        )
        return index

    def overlapping(
        self,
        index: TileCatalogIndex,
        target: PlanarRect,
        coordinate_system_tag: str,
        y_axis_positive: bool,
    ) -> list[TileDescriptor]:
        """Tiles in the tag's coordinate system overlapping target with positive area."""
        tag = coordinate_system_tag.upper()
        return [
            tile
            for tile in index.tiles
            if tag in tile.coordinate_system.replace("_", "")
            and tile.area(y_axis_positive).intersects(target)
        ]
