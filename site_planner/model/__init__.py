"""Data model classes for site geometry.

- GeoPoint: Geometry atom (lat, lng)
- Shape: Ring plus kind tag and per-kind metadata (boundary, zone, buffer, ...)
- ShapeCollection: Immutable snapshot of all shapes with cascading buffer updates
- ElevationGrid: Classified slope/aspect grid for one shape
- ZoneIssue: Reasons a proposed zone cannot be committed
"""

from site_planner.model.geo_point import GeoPoint
from site_planner.model.shape import (
    AssetMeta,
    BoundaryMeta,
    BufferMeta,
    DifferenceMeta,
    Shape,
    ShapeKind,
    ShapeMeta,
    UnionMeta,
    ZoneMeta,
)
from site_planner.model.elevation_grid import (
    ElevationGrid,
    ElevationGridCell,
    SlopeStatistics,
    is_steep,
)
from site_planner.model.zone_issue import (
    AreaTooLarge,
    AreaTooSmall,
    HolesNotAllowed,
    OutsideBoundary,
    SelfIntersection,
    TooFewVertices,
    ZoneIssue,
    ZoneOverlap,
    ZoneTooClose,
)
from site_planner.model.shape_collection import ShapeCollection

__all__ = [
    "GeoPoint",
    "Shape",
    "ShapeKind",
    "ShapeMeta",
    "BoundaryMeta",
    "ZoneMeta",
    "BufferMeta",
    "AssetMeta",
    "UnionMeta",
    "DifferenceMeta",
    "ShapeCollection",
    "ElevationGrid",
    "ElevationGridCell",
    "SlopeStatistics",
    "is_steep",
    "ZoneIssue",
    "TooFewVertices",
    "SelfIntersection",
    "OutsideBoundary",
    "AreaTooSmall",
    "AreaTooLarge",
    "ZoneOverlap",
    "ZoneTooClose",
    "HolesNotAllowed",
]
