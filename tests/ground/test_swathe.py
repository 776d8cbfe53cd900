"""Tests for SwatheGrid footprint marking."""

from __future__ import annotations

import math

import pytest

from domain.ground.grid import ElevationGrid, SwatheGrid, point_in_polygon
from domain.ground.value_objects import PlanarPoint

BASE_N = 5_916_000
BASE_E = 1_757_000


@pytest.fixture
def swathe() -> SwatheGrid:
    dsm = ElevationGrid(
        PlanarPoint(northing=BASE_N, easting=BASE_E),
        PlanarPoint(northing=BASE_N + 40, easting=BASE_E + 40),
        buffer_margin=0,
    )
    return SwatheGrid.like(dsm)


def square(north: float, east: float, side: float) -> list[PlanarPoint]:
    return [
        PlanarPoint(northing=north, easting=east),
        PlanarPoint(northing=north, easting=east + side),
        PlanarPoint(northing=north + side, easting=east + side),
        PlanarPoint(northing=north + side, easting=east),
    ]


def test_like_copies_geometry_exactly(swathe):
    assert swathe.min_northing == BASE_N
    assert swathe.max_easting == BASE_E + 40
    assert swathe.seen_m2 == 0


def test_axis_aligned_square_marks_its_area(swathe):
    marked = swathe.mark_seen(square(BASE_N + 10, BASE_E + 10, 10))
    assert marked == 100
    assert swathe.seen_m2 == 100
    assert swathe.is_seen(10, 10)
    assert swathe.is_seen(19, 19)
    assert not swathe.is_seen(20, 20)
    assert not swathe.is_seen(9, 10)


def test_overlapping_footprints_count_once(swathe):
    swathe.mark_seen(square(BASE_N + 10, BASE_E + 10, 10))
    marked = swathe.mark_seen(square(BASE_N + 15, BASE_E + 10, 10))
    assert marked == 50
    assert swathe.seen_m2 == 150


def test_rotated_footprint_close_to_its_area(swathe):
    cn, ce = BASE_N + 20, BASE_E + 20
    half_diag = 10 / math.sqrt(2)
    diamond = [
        PlanarPoint(northing=cn - half_diag, easting=ce),
        PlanarPoint(northing=cn, easting=ce + half_diag),
        PlanarPoint(northing=cn + half_diag, easting=ce),
        PlanarPoint(northing=cn, easting=ce - half_diag),
    ]
    marked = swathe.mark_seen(diamond)
    assert 85 <= marked <= 115
    assert swathe.is_seen(20, 20)
    assert not swathe.is_seen(20, 30)


def test_points_outside_grid_ignored(swathe):
    marked = swathe.mark_seen(square(BASE_N - 5, BASE_E - 5, 10))
    # Only the quadrant inside the grid is stored
    assert marked == 25


def test_footprint_needs_four_corners(swathe):
    with pytest.raises(ValueError, match="4 corners"):
        swathe.mark_seen(square(BASE_N, BASE_E, 5)[:3])


def test_point_in_polygon_even_odd():
    poly = square(0, 0, 10)
    assert point_in_polygon(5, 5, poly)
    assert point_in_polygon(0, 0, poly)
    assert not point_in_polygon(10, 5, poly)
    assert not point_in_polygon(5, -0.1, poly)
