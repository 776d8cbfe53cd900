"""Domain Port(s) for Ground I/O.

Defines interfaces (Protocols) that infrastructure adapters must implement.
No concrete I/O here.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Protocol

from .value_objects import PlanarPoint, PlanarRect, TileCatalogIndex, TileDescriptor

if TYPE_CHECKING:
    from .services import GroundData


class TileCatalog(Protocol):
    """Port for indexing the raster tiles held in a directory.

    Implementations live in infrastructure (e.g., GeoTIFF catalog).
    """

    def build_or_load(
        self, directory: Path | str, recursive: bool = False
    ) -> TileCatalogIndex:
        """Return the cached index, rebuilding it when missing or stale."""
        ...

    def rebuild(self, directory: Path | str, recursive: bool = False) -> TileCatalogIndex:
        """Rescan the directory and replace the cached index."""
        ...

    def overlapping(
        self,
        index: TileCatalogIndex,
        target: PlanarRect,
        coordinate_system_tag: str,
        y_axis_positive: bool,
    ) -> list[TileDescriptor]:
        """Tiles whose footprint overlaps target with positive area."""
        ...


class ElevationSampleSource(Protocol):
    """Port for reading planar elevation samples out of one tile."""

    def extract(
        self, descriptor: TileDescriptor, bounds: PlanarRect, directory: Path | str
    ) -> Iterator[tuple[PlanarPoint, float]]:
        """Yield (pixel centre, elevation) for pixels inside bounds."""
        ...


class GroundDataRepository(Protocol):
    """Port for persisting a GroundData aggregate."""

    def save(self, data: "GroundData") -> None: ...

    def load(self) -> "GroundData | None":
        """Return the stored aggregate, or None when nothing was saved."""
        ...
