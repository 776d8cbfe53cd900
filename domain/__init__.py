"""Ground Elevation Domain Layer.

This package contains the core business logic organized by bounded contexts:
- ground: Projection, elevation grids, swathes, grid encoding
"""

from domain import ground

__all__ = ["ground"]
