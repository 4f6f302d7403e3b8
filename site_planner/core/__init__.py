"""Core foundation classes for geometry and terrain analysis.

- CoordinateSystem: Coordinate conversion, precision and geodesic math
- PlanarFrame: Local metric frame for polygon operations
- PolygonGeometryEngine: Ring validation, measurement and boolean/offset operations
- ElevationGridAnalyzer: Grid-based slope/aspect analysis
- Elevation samplers: DEM GeoTIFF and HTTP lookup services
"""

from site_planner.core.coordinate_system import (
    EARTH_RADIUS_M,
    CoordinateSystem,
    PlanarFrame,
    PrecisionKind,
    Vector3,
)

# PolygonGeometryEngine, ElevationGridAnalyzer and the samplers have a circular
# import with site_planner.model. Import directly, e.g.:
# from site_planner.core.polygon_engine import PolygonGeometryEngine

__all__ = [
    "EARTH_RADIUS_M",
    "CoordinateSystem",
    "PlanarFrame",
    "PrecisionKind",
    "Vector3",
]
