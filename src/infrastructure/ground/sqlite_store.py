"""SQLite persistence for tile catalogs and ground grids.

Two stores share this module:

- CatalogCacheStore: one file per tile directory caching its TileCatalogIndex
  (table ``tiles``) and the raster file count it was built from (table
  ``catalog_info``).
- GridStore: a GroundData aggregate. Table ``ground_settings`` holds one
  metadata block per layer, ``ground_bounds`` the requested global box, and
  ``dem_data`` / ``dsm_data`` / ``swathe_data`` the hex encoded rows as
  (row_index, chunk_index, chunk).

Connections are opened per operation so stores can be shared across threads.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from contextlib import closing
from pathlib import Path

from domain.ground.codec import decode, encode
from domain.ground.errors import InvalidGridError
from domain.ground.regions import RegionStrategy
from domain.ground.services import GroundData
from domain.ground.value_objects import (
    GlobalBounds,
    GlobalPoint,
    GridSettings,
    GroundLayer,
    TileCatalogIndex,
    TileDescriptor,
)

logger = logging.getLogger(__name__)

_TILE_COLUMNS = (
    "folder",
    "file_name",
    "is_ground_layer",
    "coordinate_system",
    "num_cols",
    "num_rows",
    "origin_x",
    "origin_y",
    "cell_size",
    "no_data_value",
)

_SETTINGS_COLUMNS = (
    "source",
    "min_easting",
    "min_northing",
    "max_easting",
    "max_northing",
    "elevation_accuracy_m",
    "max_quantized",
    "min_quantized",
    "num_stored",
)

_LAYER_TABLES = {
    GroundLayer.DEM: "dem_data",
    GroundLayer.DSM: "dsm_data",
    GroundLayer.SWATHE: "swathe_data",
}


def _connect(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    return conn


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone()
    return row is not None


# ---------------------------------------------------------------------------
# Catalog cache
# ---------------------------------------------------------------------------
class CatalogCacheStore:
    """Cached TileCatalogIndex for a single directory."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def write(self, index: TileCatalogIndex) -> None:
        with closing(_connect(self.path)) as conn, conn:
            conn.execute("DROP TABLE IF EXISTS tiles")
            conn.execute("DROP TABLE IF EXISTS catalog_info")
            conn.execute(
                """
                CREATE TABLE tiles (
                    position INTEGER NOT NULL,
                    folder TEXT NOT NULL,
                    file_name TEXT NOT NULL,
                    is_ground_layer INTEGER NOT NULL,
                    coordinate_system TEXT NOT NULL,
                    num_cols INTEGER NOT NULL,
                    num_rows INTEGER NOT NULL,
                    origin_x REAL NOT NULL,
                    origin_y REAL NOT NULL,
                    cell_size REAL NOT NULL,
                    no_data_value REAL NOT NULL,
                    PRIMARY KEY (folder, file_name)
                )
                """
            )
            conn.execute("CREATE TABLE catalog_info (file_count INTEGER NOT NULL)")
            conn.executemany(
                f"INSERT INTO tiles (position, {', '.join(_TILE_COLUMNS)}) "
                f"VALUES (?, {', '.join('?' for _ in _TILE_COLUMNS)})",
                [
                    (position, *(getattr(tile, column) for column in _TILE_COLUMNS))
                    for position, tile in enumerate(index.tiles)
                ],
            )
            conn.execute(
                "INSERT INTO catalog_info (file_count) VALUES (?)", (index.file_count,)
            )
        logger.debug(
            "Catalog cache %s: wrote %d tiles", self.path.name, len(index.tiles)
        )

    def read(self, directory: Path | str) -> TileCatalogIndex | None:
        """Cached index, or None when the cache is missing or unreadable.

        Tiles come back in the order they were written, which is the order
        a fresh scan produces.
        """
        if not self.exists():
            return None
        try:
            with closing(_connect(self.path)) as conn:
                info = conn.execute("SELECT file_count FROM catalog_info").fetchone()
                rows = conn.execute(
                    f"SELECT {', '.join(_TILE_COLUMNS)} FROM tiles ORDER BY position"
                ).fetchall()
            if info is None:
                return None
            tiles = tuple(
                TileDescriptor(**{column: row[column] for column in _TILE_COLUMNS})
                for row in rows
            )
        except (sqlite3.DatabaseError, ValueError) as e:
            # ValueError covers rows rejected by TileDescriptor validation
            logger.warning("Catalog cache %s unreadable: %s", self.path.name, e)
            return None

        return TileCatalogIndex(
            directory=str(directory), tiles=tiles, file_count=info["file_count"]
        )

    def delete(self) -> None:
        if self.exists():
            self.path.unlink()
            logger.debug("Catalog cache %s deleted", self.path.name)


# ---------------------------------------------------------------------------
# Grid store
# ---------------------------------------------------------------------------
class GridStore:
    """GroundData persisted to a single SQLite file."""

    def __init__(self, path: Path | str, region: RegionStrategy | None = None) -> None:
        self.path = Path(path)
        self.region = region

    def save(self, data: GroundData) -> None:
        """Replace the stored aggregate with data."""
        with closing(_connect(self.path)) as conn, conn:
            self._create_schema(conn)

            if data.bounds is not None:
                conn.execute(
                    "INSERT INTO ground_bounds VALUES (?, ?, ?, ?)",
                    (
                        data.bounds.south_west.latitude,
                        data.bounds.south_west.longitude,
                        data.bounds.north_east.latitude,
                        data.bounds.north_east.longitude,
                    ),
                )

            for layer, table in _LAYER_TABLES.items():
                grid = data.layer(layer)
                if grid is None:
                    continue
                settings = grid.settings()
                conn.execute(
                    f"INSERT INTO ground_settings (layer, {', '.join(_SETTINGS_COLUMNS)}) "
                    f"VALUES (?, {', '.join('?' for _ in _SETTINGS_COLUMNS)})",
                    (layer.value, *(getattr(settings, c) for c in _SETTINGS_COLUMNS)),
                )
                conn.executemany(
                    f"INSERT INTO {table} (row_index, chunk_index, chunk) VALUES (?, ?, ?)",
                    (
                        (row_index, chunk_index, chunk)
                        for row_index, chunks in enumerate(encode(grid))
                        for chunk_index, chunk in enumerate(chunks)
                    ),
                )
                logger.debug(
                    "Saved %s layer (%d x %d) to %s",
                    layer.value,
                    grid.num_rows,
                    grid.num_cols,
                    self.path.name,
                )

    def load(self) -> GroundData | None:
        """Stored aggregate, or None when nothing was saved.

        Raises:
            InvalidGridError: If settings and encoded rows disagree
        """
        if not self.path.is_file():
            return None

        with closing(_connect(self.path)) as conn:
            if not _table_exists(conn, "ground_settings"):
                return None

            bounds = None
            row = conn.execute("SELECT * FROM ground_bounds").fetchone()
            if row is not None:
                bounds = GlobalBounds(
                    south_west=GlobalPoint(
                        latitude=row["min_latitude"], longitude=row["min_longitude"]
                    ),
                    north_east=GlobalPoint(
                        latitude=row["max_latitude"], longitude=row["max_longitude"]
                    ),
                )

            data = GroundData(bounds)
            for settings_row in conn.execute("SELECT * FROM ground_settings").fetchall():
                layer = GroundLayer(settings_row["layer"])
                try:
                    settings = GridSettings(
                        **{c: settings_row[c] for c in _SETTINGS_COLUMNS}
                    )
                except ValueError as e:
                    raise InvalidGridError(
                        f"{layer.value} settings are invalid: {e}"
                    ) from e
                rows = self._read_rows(conn, _LAYER_TABLES[layer])
                grid = decode(rows, settings, layer, region=self.region)
                if layer is GroundLayer.DEM:
                    data.dem = grid
                elif layer is GroundLayer.DSM:
                    data.dsm = grid
                else:
                    data.swathe = grid

        logger.info("Loaded ground data from %s", self.path.name)
        return data

    @staticmethod
    def _read_rows(conn: sqlite3.Connection, table: str) -> list[list[str]]:
        chunks: dict[int, list[str]] = defaultdict(list)
        for row in conn.execute(
            f"SELECT row_index, chunk FROM {table} ORDER BY row_index, chunk_index"
        ):
            chunks[row["row_index"]].append(row["chunk"])
        return [chunks[i] for i in range(len(chunks))]

    @staticmethod
    def _create_schema(conn: sqlite3.Connection) -> None:
        for table in ("ground_settings", "ground_bounds", *_LAYER_TABLES.values()):
            conn.execute(f"DROP TABLE IF EXISTS {table}")
        conn.execute(
            """
            CREATE TABLE ground_settings (
                layer TEXT PRIMARY KEY,
                source TEXT NOT NULL,
                min_easting INTEGER NOT NULL,
                min_northing INTEGER NOT NULL,
                max_easting INTEGER NOT NULL,
                max_northing INTEGER NOT NULL,
                elevation_accuracy_m REAL NOT NULL,
                max_quantized INTEGER NOT NULL,
                min_quantized INTEGER NOT NULL,
                num_stored INTEGER NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE ground_bounds (
                min_latitude REAL NOT NULL,
                min_longitude REAL NOT NULL,
                max_latitude REAL NOT NULL,
                max_longitude REAL NOT NULL
            )
            """
        )
        for table in _LAYER_TABLES.values():
            conn.execute(
                f"""
                CREATE TABLE {table} (
                    row_index INTEGER NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    chunk TEXT NOT NULL,
                    PRIMARY KEY (row_index, chunk_index)
                )
                """
            )
