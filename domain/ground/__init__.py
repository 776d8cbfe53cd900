"""Ground Bounded Context.

Responsible for ground and surface elevations over an area of interest:
- Value Objects: GlobalPoint, PlanarPoint, PlanarRect, TileDescriptor
- Projection and regions: TransverseMercator, NewZealand
- Grids: ElevationGrid, SwatheGrid and their compact hex encoding
- Aggregate: GroundData
"""
