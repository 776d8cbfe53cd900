"""Infrastructure adapters for the ground bounded context.

GeoTIFF tile catalog and sample decoder (rasterio), SQLite stores for
catalog caches and ground grids, and the quasigeoid raster handle.
"""

from .geoid import QuasigeoidModel
from .geotiff_catalog import GeoTiffTileCatalog
from .geotiff_decoder import GeoTiffSampleDecoder
from .sqlite_store import CatalogCacheStore, GridStore

__all__ = [
    "CatalogCacheStore",
    "GeoTiffSampleDecoder",
    "GeoTiffTileCatalog",
    "GridStore",
    "QuasigeoidModel",
]
