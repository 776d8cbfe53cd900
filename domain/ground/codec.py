"""Ground Bounded Context - Compact hex encoding of grid layers.

Each cell becomes four upper-case hex digits of its quantized value
(VERTICAL_UNIT_M units). A grid row becomes a list of chunks holding
CHUNK_VALUES cells each, so no stored string exceeds CHUNK_CHARS characters.

Lossy at the edges of the 16-bit range: unknown cells and negative
values are written as ``0000`` (sea level), values above 0xFFFF as ``FFFF``.
Swathe cells are ``0001`` when seen and ``0000`` otherwise.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from domain.ground.errors import InvalidGridError, RoundTripMismatchError
from domain.ground.grid import (
    VERTICAL_UNIT_M,
    ElevationGrid,
    SwatheGrid,
)
from domain.ground.regions import RegionStrategy
from domain.ground.value_objects import GridSettings, GroundLayer

logger = logging.getLogger(__name__)

HEX_DIGITS = 4
CHUNK_VALUES = 75
CHUNK_CHARS = CHUNK_VALUES * HEX_DIGITS
MAX_ENCODED = 0xFFFF

# Largest tolerated per-cell difference after a save/load cycle
MAX_ROUND_TRIP_ERROR_M = 0.5


def encode_row(units: Sequence[int]) -> list[str]:
    """Encode one row of quantized values into chunk strings."""
    text = "".join(f"{min(max(int(u), 0), MAX_ENCODED):04X}" for u in units)
    return [text[i : i + CHUNK_CHARS] for i in range(0, len(text), CHUNK_CHARS)]


def encode(grid: ElevationGrid) -> list[list[str]]:
    """Encode every grid row, southernmost row first."""
    units = grid.quantized_rows()
    if isinstance(grid, SwatheGrid):
        units = grid.known_mask().astype(np.int32)

    clamped = int((units < 0).sum())
    if clamped:
        logger.debug("Encoding clamped %d negative cells to sea level", clamped)
    return [encode_row(row) for row in units]


def decode_row(chunks: Sequence[str], num_cols: int) -> list[int]:
    """Decode one row's chunks into num_cols quantized values.

    Raises:
        InvalidGridError: If the text is not whole hex groups or has the wrong width
    """
    text = "".join(chunks)
    if len(text) != num_cols * HEX_DIGITS:
        raise InvalidGridError(
            f"Row holds {len(text)} characters, expected {num_cols * HEX_DIGITS}"
        )
    try:
        return [int(text[i : i + HEX_DIGITS], 16) for i in range(0, len(text), HEX_DIGITS)]
    except ValueError as e:
        raise InvalidGridError(f"Row is not hex encoded: {e}") from e


def decode(
    rows: Sequence[Sequence[str]],
    settings: GridSettings,
    layer: GroundLayer,
    *,
    region: RegionStrategy | None = None,
) -> ElevationGrid:
    """Rebuild a grid from its settings block and encoded rows.

    Elevation layers: every value becomes a known cell (``0000`` is 0.0 m).
    Swathe layers: non-zero values are seen cells.

    Raises:
        InvalidGridError: If the row count or any row width disagrees with settings
    """
    grid_cls = SwatheGrid if layer is GroundLayer.SWATHE else ElevationGrid
    grid = grid_cls.from_settings(settings, region=region)

    if len(rows) != grid.num_rows:
        raise InvalidGridError(
            f"{layer.value}: {len(rows)} encoded rows, expected {grid.num_rows}"
        )

    for row_index, chunks in enumerate(rows):
        values = decode_row(chunks, grid.num_cols)
        for col_index, units in enumerate(values):
            if isinstance(grid, SwatheGrid):
                if units != 0:
                    grid.set_seen(row_index, col_index)
            else:
                grid.set_by_grid_index(row_index, col_index, units * VERTICAL_UNIT_M)

    logger.debug(
        "Decoded %s layer: %d x %d, %d cells stored",
        layer.value,
        grid.num_rows,
        grid.num_cols,
        grid.num_stored,
    )
    return grid


def verify_round_trip(
    original: ElevationGrid,
    reloaded: ElevationGrid,
    max_error_m: float = MAX_ROUND_TRIP_ERROR_M,
) -> float:
    """Check a reloaded grid against the grid that was saved.

    Negative and unknown cells were written as sea level, so expectations are
    clamped the same way before comparing.

    Returns:
        The largest per-cell error in metres

    Raises:
        RoundTripMismatchError: On any geometry, range or cell mismatch
    """
    for name in ("min_northing", "max_northing", "min_easting", "max_easting"):
        if getattr(original, name) != getattr(reloaded, name):
            raise RoundTripMismatchError(
                f"{name} mismatch: {getattr(original, name)} != {getattr(reloaded, name)}"
            )

    known = original.known_mask()

    if isinstance(original, SwatheGrid):
        if not np.array_equal(known, reloaded.known_mask()):
            raise RoundTripMismatchError(
                f"Swathe mismatch: {original.seen_m2} seen, {reloaded.num_stored} reloaded"
            )
        return 0.0

    if original.has_data():
        has_gaps = not bool(known.all())
        expected_max = max(original.max_quantized, 0)
        expected_min = 0 if has_gaps else max(original.min_quantized, 0)
        if reloaded.max_quantized != expected_max:
            raise RoundTripMismatchError(
                f"Max mismatch: {expected_max} != {reloaded.max_quantized}"
            )
        if reloaded.min_quantized != expected_min:
            raise RoundTripMismatchError(
                f"Min mismatch: {expected_min} != {reloaded.min_quantized}"
            )

    expected = np.clip(original.quantized_rows(), 0, MAX_ENCODED)
    diff_m = np.abs(expected - reloaded.quantized_rows()) * VERTICAL_UNIT_M
    diff_m[~known] = 0.0
    max_error = float(diff_m.max())
    if max_error > max_error_m:
        rows, cols = np.nonzero(diff_m > max_error_m)
        raise RoundTripMismatchError(
            f"Elevation mismatch at ({rows[0]}, {cols[0]}): error {max_error:.2f} m "
            f"> {max_error_m:.2f} m"
        )
    return max_error


__all__ = [
    "CHUNK_CHARS",
    "CHUNK_VALUES",
    "decode",
    "decode_row",
    "encode",
    "encode_row",
    "verify_round_trip",
]
