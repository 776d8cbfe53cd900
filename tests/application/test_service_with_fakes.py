"""GroundDataService driven through in-memory catalog and decoder ports.

No raster I/O: the fake catalog hands out descriptors and the fake decoder
returns constant samples over the requested window.
"""

from __future__ import annotations

import math
import time

import pytest

from application.ground_service import GroundDataService
from application.options import GroundDataOptions
from domain.ground.errors import CorruptTileError
from domain.ground.value_objects import (
    GlobalBounds,
    GlobalPoint,
    GroundLayer,
    PlanarPoint,
    TileCatalogIndex,
    TileDescriptor,
)


class FakeCatalog:
    def __init__(self, tiles):
        self.tiles = tuple(tiles)
        self.rebuilds = 0

    def build_or_load(self, directory, recursive=False):
        return TileCatalogIndex(
            directory=str(directory), tiles=self.tiles, file_count=len(self.tiles)
        )

    def rebuild(self, directory, recursive=False):
        self.rebuilds += 1
        return self.build_or_load(directory, recursive)

    def overlapping(self, index, target, coordinate_system_tag, y_axis_positive):
        return [t for t in index.tiles if coordinate_system_tag in t.coordinate_system]


class FakeDecoder:
    """Fills the whole window with the value encoded in the file name.

    Earlier tiles sleep longer, so a thread pool finishes them last.
    """

    def extract(self, descriptor, bounds, directory):
        value = float(descriptor.file_name.split("_")[1].split(".")[0])
        if value < 0:
            raise CorruptTileError(f"Tile {descriptor.file_name} could not be decoded")
        time.sleep(0.05 / (1 + value))
        northing = bounds.min_northing + 0.5
        while northing < bounds.max_northing:
            easting = bounds.min_easting + 0.5
            while easting < bounds.max_easting:
                yield PlanarPoint(northing=northing, easting=easting), value
                easting += 1
            northing += 1


def _tile(file_name: str) -> TileDescriptor:
    return TileDescriptor(
        folder=".",
        file_name=file_name,
        is_ground_layer=file_name.startswith("dem"),
        coordinate_system="NZGD2000",
        num_cols=1,
        num_rows=1,
        origin_x=0.0,
        origin_y=0.0,
    )


def _service(tmp_path, tiles, **overrides):
    options = GroundDataOptions(data_directory=tmp_path, **overrides)
    return GroundDataService(options, catalog=FakeCatalog(tiles), decoder=FakeDecoder())


@pytest.mark.parametrize("workers", [1, 4])
def test_catalog_order_wins_regardless_of_decode_timing(tmp_path, auckland, workers):
    tiles = [_tile("dem_1.tif"), _tile("dem_2.tif"), _tile("dsm_3.tif")]
    service = _service(tmp_path, tiles, max_workers=workers)
    data = service.load_ground_data(GlobalBounds.around(auckland, 0.0002))

    assert data.elevation_at(auckland, GroundLayer.DEM) == 1.0
    assert data.elevation_at(auckland, GroundLayer.DSM) == 3.0
    assert data.dem.percent_available == 100


def test_failed_tile_does_not_abort(tmp_path, auckland):
    service = _service(tmp_path, [_tile("dem_-1.tif"), _tile("dem_4.tif")])
    data = service.load_ground_data(GlobalBounds.around(auckland, 0.0002))
    assert data.elevation_at(auckland, GroundLayer.DEM) == 4.0
    assert math.isnan(data.elevation_at(auckland, GroundLayer.DSM))


def test_rebuild_every_catalog(tmp_path):
    (tmp_path / "one").mkdir()
    (tmp_path / "two").mkdir()
    service = _service(tmp_path, [_tile("dem_1.tif")])
    assert service.rebuild_index() == 3
    assert service.catalog.rebuilds == 3


def test_point_near_envelope_edge_loads(tmp_path):
    service = _service(tmp_path, [_tile("dem_2.tif")])
    point = GlobalPoint(latitude=-34.0005, longitude=173.0)
    assert service.region.supports(point)

    assert service.elevation_at(point) == 2.0
    assert service.ground_data.bounds.north_east.latitude == -34.0
