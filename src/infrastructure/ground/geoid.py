"""Quasigeoid separation raster.

Converts GNSS (ellipsoidal) heights to orthometric heights above the vertical
datum: ``H = h - N`` where N is the geoid separation bilinearly interpolated
from the NZ Quasigeoid 2016 raster (geographic, north-up).

The raster is opened on first use and kept open; reads are serialized with a
lock because a GDAL dataset handle is not safe to share between threads.
"""

from __future__ import annotations

import logging
import math
import threading
from pathlib import Path
from typing import Any

import numpy as np
import rasterio
from affine import Affine
from rasterio.windows import Window

from domain.ground.errors import CorruptTileError, UnsupportedLocationError
from domain.ground.value_objects import GlobalPoint

logger = logging.getLogger(__name__)

DEFAULT_GEOID_RELATIVE_PATH = (
    "nz-quasigeoid-2016-raster/new_zealand_quasigeoid_2016_raster.tif"
)


class QuasigeoidModel:
    """Handle on a geoid separation raster.

    Parameters
    ----------
    path: Path | str
        GeoTIFF whose band 1 holds the separation N in metres.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._dataset: Any = None
        self._inverse: Affine | None = None
        self._nodata: float | None = None

    def _open(self) -> Any:
        # Caller holds self._lock
        if self._dataset is None:
            if not self.path.is_file():
                raise CorruptTileError(f"Geoid raster {self.path.name} is missing")
            try:
                dataset = rasterio.open(self.path)
            except (rasterio.errors.RasterioError, OSError) as e:
                raise CorruptTileError(
                    f"Geoid raster {self.path.name} could not be opened: {e}"
                ) from e
            transform: Affine = dataset.transform
            if transform.b != 0 or transform.d != 0:
                dataset.close()
                raise CorruptTileError(
                    f"Geoid raster {self.path.name} has a rotated geotransform"
                )
            self._dataset = dataset
            self._inverse = ~transform
            self._nodata = dataset.nodata
            logger.debug(
                "Geoid raster %s opened (%dx%d)",
                self.path.name,
                dataset.width,
                dataset.height,
            )
        return self._dataset

    def separation_at(self, point: GlobalPoint) -> float:
        """Geoid separation N (metres) at a point, bilinear between pixel centres.

        Raises:
            UnsupportedLocationError: If the point is outside the raster
            CorruptTileError: If the raster is missing or has nodata nearby
        """
        with self._lock:
            dataset = self._open()
            col_f, row_f = self._inverse @ (point.longitude, point.latitude)
            # Shift so integer positions are pixel centres
            col_f -= 0.5
            row_f -= 0.5
            col0 = int(math.floor(col_f))
            row0 = int(math.floor(row_f))
            if (
                col0 < 0
                or row0 < 0
                or col0 + 1 >= dataset.width
                or row0 + 1 >= dataset.height
            ):
                raise UnsupportedLocationError(point, "geoid")

            values = dataset.read(
                1, window=Window(col0, row0, 2, 2), out_dtype="float64"
            )

        if self._nodata is not None and np.any(values == self._nodata):
            raise CorruptTileError(f"Geoid raster has NoData near {point}")
        if np.any(np.isnan(values)):
            raise CorruptTileError(f"Geoid raster has NoData near {point}")

        dx = col_f - col0
        dy = row_f - row0
        top = values[0, 0] * (1 - dx) + values[0, 1] * dx
        bottom = values[1, 0] * (1 - dx) + values[1, 1] * dx
        return float(top * (1 - dy) + bottom * dy)

    def to_orthometric(self, point: GlobalPoint, ellipsoidal_height_m: float) -> float:
        """Height above the vertical datum for a GNSS ellipsoidal height."""
        return ellipsoidal_height_m - self.separation_at(point)

    def close(self) -> None:
        with self._lock:
            if self._dataset is not None:
                self._dataset.close()
                self._dataset = None
                self._inverse = None

    def __enter__(self) -> "QuasigeoidModel":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()
