"""Tests for the hex row codec and round trip verification."""

from __future__ import annotations

import pytest

from domain.ground.codec import (
    CHUNK_CHARS,
    decode,
    decode_row,
    encode,
    encode_row,
    verify_round_trip,
)
from domain.ground.errors import InvalidGridError, RoundTripMismatchError
from domain.ground.grid import ElevationGrid, SwatheGrid
from domain.ground.value_objects import GroundLayer, PlanarPoint

BASE_N = 5_916_000
BASE_E = 1_757_000


def make_grid(rows: int, cols: int) -> ElevationGrid:
    return ElevationGrid(
        PlanarPoint(northing=BASE_N, easting=BASE_E),
        PlanarPoint(northing=BASE_N + rows - 1, easting=BASE_E + cols - 1),
        buffer_margin=0,
    )


def put(grid: ElevationGrid, row: int, col: int, metres: float) -> None:
    grid.insert(PlanarPoint(northing=BASE_N + row + 0.5, easting=BASE_E + col + 0.5), metres)


class TestEncodeRow:
    def test_four_upper_case_hex_digits(self):
        assert encode_row([493, 0, 1, 0xFFFF]) == ["01ED00000001FFFF"]

    def test_clamps_to_sixteen_bits(self):
        assert encode_row([-4, 70000]) == ["0000FFFF"]

    def test_long_rows_split_into_chunks(self):
        chunks = encode_row(list(range(100)))
        assert [len(c) for c in chunks] == [CHUNK_CHARS, 100]
        assert chunks[1][:4] == "004B"  # value 75 starts the second chunk


def test_encode_rows_south_first():
    grid = make_grid(2, 3)
    put(grid, 0, 0, 123.37)
    put(grid, 1, 2, -2.0)
    encoded = encode(grid)
    assert encoded == [["01ED00000000"], ["000000000000"]]


def test_encode_swathe_marks_seen_cells():
    swathe = SwatheGrid.like(make_grid(2, 2))
    swathe.set_seen(1, 0)
    assert encode(swathe) == [["00000000"], ["00010000"]]


class TestDecode:
    def test_row_width_mismatch(self):
        with pytest.raises(InvalidGridError, match="expected 12"):
            decode_row(["01ED0000"], 3)

    def test_non_hex_text(self):
        with pytest.raises(InvalidGridError, match="not hex"):
            decode_row(["01EDZZZZ"], 2)

    def test_row_count_mismatch(self):
        grid = make_grid(2, 2)
        with pytest.raises(InvalidGridError, match="encoded rows"):
            decode([["00000000"]], grid.settings(), GroundLayer.DEM)

    def test_every_cell_known_after_decode(self):
        grid = make_grid(2, 2)
        put(grid, 0, 0, 10.0)
        reloaded = decode(encode(grid), grid.settings(), GroundLayer.DEM)
        assert reloaded.query_by_grid_index(0, 0) == 10.0
        # Unknown cells come back as sea level
        assert reloaded.is_known(1, 1)
        assert reloaded.query_by_grid_index(1, 1) == 0.0

    def test_swathe_layer_decodes_seen(self):
        swathe = SwatheGrid.like(make_grid(2, 2))
        swathe.set_seen(0, 1)
        reloaded = decode(encode(swathe), swathe.settings(), GroundLayer.SWATHE)
        assert isinstance(reloaded, SwatheGrid)
        assert reloaded.is_seen(0, 1)
        assert reloaded.seen_m2 == 1


class TestVerifyRoundTrip:
    def test_filled_grid_verifies(self):
        grid = make_grid(3, 4)
        put(grid, 0, 0, 5.0)
        put(grid, 2, 3, 17.3)
        grid.fill_gaps()
        reloaded = decode(encode(grid), grid.settings(), GroundLayer.DSM)
        assert verify_round_trip(grid, reloaded) == 0.0

    def test_negative_values_expected_as_sea_level(self):
        grid = make_grid(2, 2)
        put(grid, 0, 0, -3.0)
        put(grid, 0, 1, 4.0)
        reloaded = decode(encode(grid), grid.settings(), GroundLayer.DEM)
        verify_round_trip(grid, reloaded)
        assert reloaded.min_max_elevation_m() == (0.0, 4.0)

    def test_tampered_cell_detected(self):
        grid = make_grid(2, 2)
        put(grid, 0, 0, 5.0)
        grid.fill_gaps()
        rows = encode(grid)
        assert rows[1] == ["00140014"]
        rows[1] = ["00140050"]  # 20 m where 5 m was saved
        reloaded = decode(rows, grid.settings(), GroundLayer.DEM)
        with pytest.raises(RoundTripMismatchError):
            verify_round_trip(grid, reloaded)

    def test_geometry_mismatch(self):
        a = make_grid(2, 2)
        b = make_grid(3, 2)
        with pytest.raises(RoundTripMismatchError, match="max_northing"):
            verify_round_trip(a, b)

    def test_swathe_mismatch(self):
        swathe = SwatheGrid.like(make_grid(2, 2))
        swathe.set_seen(0, 0)
        other = SwatheGrid.like(swathe)
        with pytest.raises(RoundTripMismatchError, match="Swathe"):
            verify_round_trip(swathe, other)
