"""Configuration for the ground data service."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, DirectoryPath, Field

from infrastructure.ground.geoid import DEFAULT_GEOID_RELATIVE_PATH
from infrastructure.ground.geotiff_catalog import DEFAULT_INDEX_FILE_NAME


class GroundDataOptions(BaseModel):
    """Options validated once, when the service is constructed.

    Attributes:
        data_directory: Root holding tile folders (must exist)
        region_tag: Region strategy to use, e.g. "NZ"
        buffer_m: Margin added around every requested area
        max_workers: Tiles decoded in parallel; 1 decodes on the calling thread
        recursive_scan: Index the whole tree as one catalog instead of one
            catalog per immediate sub-directory
        index_file_name: Catalog cache written into each indexed directory
        geoid_relative_path: Quasigeoid raster, relative to data_directory
        point_margin_deg: Half-size of the box loaded for a single point query
    """

    data_directory: DirectoryPath
    region_tag: str = "NZ"
    buffer_m: float = Field(default=50, ge=0)
    max_workers: int = Field(default=1, ge=1)
    recursive_scan: bool = False
    index_file_name: str = Field(default=DEFAULT_INDEX_FILE_NAME, min_length=1)
    geoid_relative_path: str = DEFAULT_GEOID_RELATIVE_PATH
    point_margin_deg: float = Field(default=0.001, gt=0, le=0.1)

    model_config = ConfigDict(frozen=True)
