"""Tests for GeoTiffSampleDecoder and the block buffer layout."""

from __future__ import annotations

import math
import warnings

import numpy as np
import pytest
from affine import Affine

from domain.ground.errors import CorruptTileError
from domain.ground.value_objects import PlanarRect, TileDescriptor
from infrastructure.ground.geotiff_decoder import GeoTiffSampleDecoder, read_block_buffer
from tests.conftest_utils import NZTM_WKT, FakeCRS, FakeDataset, write_tile

ORIGIN_E = 1_757_000.0
ORIGIN_N = 5_917_000.0


def _descriptor(file_name: str, width: int, height: int, nodata: float = -9999.0):
    return TileDescriptor(
        folder=".",
        file_name=file_name,
        is_ground_layer=True,
        coordinate_system="NZGD2000",
        num_cols=width,
        num_rows=height,
        origin_x=ORIGIN_E,
        origin_y=ORIGIN_N,
        no_data_value=nodata,
    )


def _everything() -> PlanarRect:
    return PlanarRect(
        min_easting=ORIGIN_E - 1000,
        min_northing=ORIGIN_N - 1000,
        max_easting=ORIGIN_E + 1000,
        max_northing=ORIGIN_N + 1000,
    )


def _gradient(height: int, width: int) -> np.ndarray:
    return np.arange(height * width, dtype=np.float32).reshape(height, width)


# ---------------------------------------------------------------------------
# Block buffer
# ---------------------------------------------------------------------------
def test_block_buffer_pads_edge_blocks():
    data = _gradient(3, 5)
    ds = FakeDataset(data=data, block_shape=(2, 2))

    buffer, block_h, block_w, blocks_per_row = read_block_buffer(ds)

    assert (block_h, block_w, blocks_per_row) == (2, 2, 3)
    assert buffer.size == 2 * 3 * 4
    for row in range(3):
        for col in range(5):
            index = (row // 2) * blocks_per_row + col // 2
            offset = (row % 2) * 2 + col % 2
            assert buffer[index * 4 + offset] == data[row, col]
    # Right-hand column of the last block column is padding
    assert math.isnan(buffer[2 * 4 + 1])


# ---------------------------------------------------------------------------
# Extraction with a fake dataset
# ---------------------------------------------------------------------------
def test_extract_with_fake_dataset(monkeypatch, tmp_path, no_rasterio_env):
    data = _gradient(3, 5)
    data[1, 1] = -9999.0
    ds = FakeDataset(
        data=data,
        crs=FakeCRS(NZTM_WKT),
        transform=Affine(1.0, 0, ORIGIN_E, 0, -1.0, ORIGIN_N),
        nodata=-9999.0,
    )
    (tmp_path / "dem.tif").write_bytes(b"")
    monkeypatch.setattr("rasterio.open", lambda path: ds)

    samples = list(
        GeoTiffSampleDecoder().extract(_descriptor("dem.tif", 5, 3), _everything(), tmp_path)
    )

    assert len(samples) == 15
    first_point, first_value = samples[0]
    assert first_point.easting == ORIGIN_E + 0.5
    assert first_point.northing == ORIGIN_N - 0.5
    assert first_value == 0.0
    by_cell = {
        (round(ORIGIN_N - p.northing - 0.5), round(p.easting - ORIGIN_E - 0.5)): v
        for p, v in samples
    }
    assert math.isnan(by_cell[(1, 1)])
    assert by_cell[(2, 4)] == data[2, 4]


def test_missing_file(tmp_path):
    decoder = GeoTiffSampleDecoder()
    with pytest.raises(CorruptTileError, match="missing"):
        list(decoder.extract(_descriptor("gone.tif", 4, 4), _everything(), tmp_path))


# ---------------------------------------------------------------------------
# Real GeoTIFFs
# ---------------------------------------------------------------------------
@pytest.mark.integration
class TestRealTiles:
    def test_every_pixel_at_its_centre(self, tmp_path):
        # Not a multiple of the 16 x 16 block size in either direction
        data = _gradient(24, 40)
        write_tile(tmp_path / "dem.tif", data, ORIGIN_E, ORIGIN_N, block_size=16)

        samples = list(
            GeoTiffSampleDecoder().extract(_descriptor("dem.tif", 40, 24), _everything(), tmp_path)
        )

        assert len(samples) == 24 * 40
        for point, value in samples:
            col = int(point.easting - ORIGIN_E)
            row = int(ORIGIN_N - point.northing)
            assert point.easting == ORIGIN_E + col + 0.5
            assert point.northing == ORIGIN_N - row - 0.5
            assert value == data[row, col]

    def test_window_is_half_open(self, tmp_path):
        write_tile(tmp_path / "dem.tif", _gradient(16, 16), ORIGIN_E, ORIGIN_N)
        window = PlanarRect(
            min_easting=ORIGIN_E + 0.5,
            min_northing=ORIGIN_N - 4.5,
            max_easting=ORIGIN_E + 4.5,
            max_northing=ORIGIN_N,
        )

        samples = list(
            GeoTiffSampleDecoder().extract(_descriptor("dem.tif", 16, 16), window, tmp_path)
        )

        eastings = sorted({p.easting for p, _ in samples})
        northings = sorted({p.northing for p, _ in samples})
        assert eastings == [ORIGIN_E + 0.5, ORIGIN_E + 1.5, ORIGIN_E + 2.5, ORIGIN_E + 3.5]
        assert northings == [ORIGIN_N - 4.5, ORIGIN_N - 3.5, ORIGIN_N - 2.5, ORIGIN_N - 1.5, ORIGIN_N - 0.5]

    def test_nodata_becomes_nan(self, tmp_path, caplog):
        data = np.full((16, 16), -9999.0)
        data[0, 0] = 3.0
        write_tile(tmp_path / "dsm.tif", data, ORIGIN_E, ORIGIN_N, nodata=-9999.0)

        samples = list(
            GeoTiffSampleDecoder().extract(_descriptor("dsm.tif", 16, 16), _everything(), tmp_path)
        )

        values = [v for _, v in samples]
        assert values[0] == 3.0
        assert sum(math.isnan(v) for v in values) == 255
        assert "NoData" in caplog.text

    def test_window_outside_tile_yields_nothing(self, tmp_path):
        write_tile(tmp_path / "dem.tif", _gradient(16, 16), ORIGIN_E, ORIGIN_N)
        far = PlanarRect(
            min_easting=ORIGIN_E + 100,
            min_northing=ORIGIN_N,
            max_easting=ORIGIN_E + 200,
            max_northing=ORIGIN_N + 100,
        )
        assert list(GeoTiffSampleDecoder().extract(_descriptor("dem.tif", 16, 16), far, tmp_path)) == []

    def test_garbage_file_is_corrupt(self, tmp_path):
        (tmp_path / "dem.tif").write_bytes(b"\x00" * 64)
        with pytest.raises(CorruptTileError, match="could not be decoded"):
            list(GeoTiffSampleDecoder().extract(_descriptor("dem.tif", 4, 4), _everything(), tmp_path))

    def test_pixel_centres_without_affine_warnings(self, tmp_path):
        write_tile(tmp_path / "dem.tif", _gradient(16, 16), ORIGIN_E, ORIGIN_N)
        with warnings.catch_warnings():
            warnings.simplefilter("error", PendingDeprecationWarning)
            samples = list(
                GeoTiffSampleDecoder().extract(
                    _descriptor("dem.tif", 16, 16), _everything(), tmp_path
                )
            )
        assert len(samples) == 16 * 16
