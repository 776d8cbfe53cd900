"""GeoTIFF elevation sample decoder.

Implements the ElevationSampleSource port: yields (pixel centre, elevation)
for every pixel of a tile whose centre lies inside a planar window.

Lifecycle (to avoid resource leaks):
1) Open dataset with context manager (rasterio.open) inside rasterio.Env
2) Read every internal block, padded to the full block shape, into one
   float32 buffer laid out block after block
3) Exit contexts to release GDAL handles
4) Walk rows/columns whose centres fall in the window and yield samples
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Iterator

import numpy as np
import rasterio
from affine import Affine

from domain.ground.errors import CorruptTileError
from domain.ground.value_objects import PlanarPoint, PlanarRect, TileDescriptor

logger = logging.getLogger(__name__)

# Warn when most of a tile's window is nodata
NODATA_WARN_PERCENT = 80.0


def read_block_buffer(src: Any) -> tuple[np.ndarray, int, int, int]:
    """Read band 1 block by block into a flat float32 buffer.

    Partial edge blocks are padded with NaN to the full block shape, so the
    sample for pixel (row, col) sits at
    ``block_index * block_h * block_w + (row % block_h) * block_w + col % block_w``.

    Returns:
        (buffer, block_h, block_w, blocks_per_row)
    """
    block_h, block_w = src.block_shapes[0]
    blocks_per_row = math.ceil(src.width / block_w)
    blocks_per_col = math.ceil(src.height / block_h)
    block_size = block_h * block_w

    buffer = np.full(blocks_per_row * blocks_per_col * block_size, np.nan, dtype=np.float32)
    for (block_row, block_col), window in src.block_windows(1):
        data = src.read(1, window=window, out_dtype="float32")
        padded = np.full((block_h, block_w), np.nan, dtype=np.float32)
        padded[: data.shape[0], : data.shape[1]] = data
        start = (block_row * blocks_per_row + block_col) * block_size
        buffer[start : start + block_size] = padded.ravel()
    return buffer, block_h, block_w, blocks_per_row


class GeoTiffSampleDecoder:
    """Infrastructure adapter reading elevation samples from tiled GeoTIFFs."""

    def extract(
        self, descriptor: TileDescriptor, bounds: PlanarRect, directory: Path | str
    ) -> Iterator[tuple[PlanarPoint, float]]:
        """Lazily yield samples whose pixel centre is inside bounds.

        The window is half-open: ``min <= coordinate < max``. Nodata samples
        are yielded as NaN.

        Raises:
            CorruptTileError: If the file is missing or cannot be decoded
        """
        path = Path(directory) / descriptor.folder / descriptor.file_name
        if not path.is_file():
            raise CorruptTileError(f"Tile {descriptor.file_name} is missing")

        try:
            with rasterio.Env():
                with rasterio.open(path) as src:
                    transform: Affine = src.transform
                    width, height = src.width, src.height
                    nodata = src.nodata
                    buffer, block_h, block_w, blocks_per_row = read_block_buffer(src)
        except (rasterio.errors.RasterioError, OSError, ValueError) as e:
            raise CorruptTileError(
                f"Tile {descriptor.file_name} could not be decoded: {e}"
            ) from e

        if nodata is None:
            nodata = descriptor.no_data_value

        # Pixel centres; row 0 is the top row of a north-up tile
        xs = [(transform @ (col + 0.5, 0.5))[0] for col in range(width)]
        ys = [(transform @ (0.5, row + 0.5))[1] for row in range(height)]
        cols = [c for c, x in enumerate(xs) if bounds.min_easting <= x < bounds.max_easting]
        if not cols:
            return

        block_size = block_h * block_w
        yielded = 0
        missing = 0
        for row, y in enumerate(ys):
            if not (bounds.min_northing <= y < bounds.max_northing):
                continue
            row_base = (row // block_h) * blocks_per_row
            row_offset = (row % block_h) * block_w
            for col in cols:
                block_index = row_base + col // block_w
                offset = row_offset + col % block_w
                value = float(buffer[block_index * block_size + offset])
                if value == nodata:
                    value = math.nan
                if math.isnan(value):
                    missing += 1
                yielded += 1
                yield PlanarPoint(northing=y, easting=xs[col]), value

        if yielded:
            nodata_pct = 100.0 * missing / yielded
            if nodata_pct > NODATA_WARN_PERCENT:
                logger.warning(
                    "Tile %s: %.1f%% NoData pixels in window",
                    descriptor.file_name,
                    nodata_pct,
                )
        logger.debug("Tile %s: %d samples in window", descriptor.file_name, yielded)
