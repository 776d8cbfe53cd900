"""Shared test helpers.

- write_tile: writes a real tiled GeoTIFF with rasterio (integration tests)
- FakeCRS / FakeDataset: stand-ins for rasterio datasets, installed with
  ``monkeypatch.setattr("rasterio.open", ...)`` in unit tests

These helpers are used by:
- tests/infrastructure/
- tests/application/
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any

import numpy as np
from numpy.typing import NDArray
from affine import Affine
from rasterio.windows import Window

# WKT fragments with the names the catalog looks for
NZTM_WKT = (
    'PROJCS["NZGD2000 / New Zealand Transverse Mercator 2000",'
    'GEOGCS["NZGD2000",DATUM["New_Zealand_Geodetic_Datum_2000"]]]'
)
UTM_WKT = 'PROJCS["WGS 84 / UTM zone 60S",GEOGCS["WGS 84",DATUM["WGS_1984"]]]'
NZ_GEOGRAPHIC_WKT = 'GEOGCS["NZGD2000",DATUM["New_Zealand_Geodetic_Datum_2000"]]'


def write_tile(
    path: Path,
    data: NDArray[Any],
    origin_x: float,
    origin_y: float,
    *,
    cell_size: float = 1.0,
    crs: str = "EPSG:2193",
    nodata: float | None = -9999.0,
    block_size: int = 16,
) -> Path:
    """Write a single band, internally tiled float32 GeoTIFF.

    (origin_x, origin_y) is the top-left corner; rows run south.
    """
    import rasterio
    from rasterio.crs import CRS
    from rasterio.transform import from_origin

    height, width = data.shape
    path.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype="float32",
        crs=CRS.from_string(crs),
        transform=from_origin(origin_x, origin_y, cell_size, cell_size),
        nodata=nodata,
        tiled=True,
        blockxsize=block_size,
        blockysize=block_size,
    ) as dst:
        dst.write(data.astype(np.float32), 1)
    return path


class FakeCRS:
    def __init__(self, wkt: str, projected: bool = True):
        self._wkt = wkt
        self.is_projected = projected

    def to_wkt(self) -> str:
        return self._wkt

    def __str__(self) -> str:
        return self._wkt


class FakeDataset:
    """Minimal dataset: header fields plus block reads over an in-memory array."""

    def __init__(
        self,
        *,
        data: NDArray[Any] | None = None,
        width: int = 4,
        height: int = 4,
        crs: FakeCRS | None = None,
        transform: Affine | None = None,
        nodata: float | None = None,
        block_shape: tuple[int, int] = (2, 2),
    ):
        if data is not None:
            height, width = data.shape
        self.data = data
        self.width = width
        self.height = height
        self.crs = crs
        self.transform = transform if transform is not None else Affine.identity()
        self.nodata = nodata
        self.block_shapes = [block_shape]

    def block_windows(self, bidx: int = 0):
        block_h, block_w = self.block_shapes[0]
        for block_row in range(math.ceil(self.height / block_h)):
            for block_col in range(math.ceil(self.width / block_w)):
                col_off = block_col * block_w
                row_off = block_row * block_h
                yield (block_row, block_col), Window(
                    col_off,
                    row_off,
                    min(block_w, self.width - col_off),
                    min(block_h, self.height - row_off),
                )

    def read(self, band: int, *, window: Window, out_dtype: str = "float32"):
        assert self.data is not None
        row_off, col_off = int(window.row_off), int(window.col_off)
        return self.data[
            row_off : row_off + int(window.height), col_off : col_off + int(window.width)
        ].astype(out_dtype)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False
