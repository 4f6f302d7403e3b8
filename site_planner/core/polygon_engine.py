"""Polygon geometry engine for ring-level computation.

Provides:
- Ring normalization and simplicity checks
- Geodesic area (spherical excess) and perimeter (haversine)
- Bounds, centroid, elongation (aspect ratio) and translation
- Containment with a small tolerance
- Buffer (offset), union and difference producing new Shapes

Measurements are geodesic. Boolean and offset operations run in a local
frame (pyproj) with shapely and are converted back to WGS84. All outputs are
rounded through CoordinateSystem.round_to_precision.

Operations whose result splits into several disjoint polygons keep the
largest polygon and log the discarded parts.
"""

import logging
from contextlib import contextmanager
from math import atan2, isfinite, pi, radians, tan
from typing import Iterator, Mapping, Optional, Sequence

import shapely
from pyproj.exceptions import ProjError
from shapely import affinity
from shapely.errors import GEOSException
from shapely.geometry import LinearRing, MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import polylabel

from site_planner.constants import GeometryConfig
from site_planner.core.coordinate_system import EARTH_RADIUS_M, CoordinateSystem, PlanarFrame, PrecisionKind
from site_planner.errors import GeometryError
from site_planner.model.geo_point import GeoPoint
from site_planner.model.shape import BufferMeta, DifferenceMeta, Shape, UnionMeta

logger = logging.getLogger(__name__)

# Raw vertex input accepted by normalize_ring: GeoPoint, {"lat", "lng"} mapping or (lng, lat) tuple
RawVertex = GeoPoint | Mapping[str, float] | tuple[float, float]
Ring = tuple[GeoPoint, ...]


@contextmanager
def _library_errors(operation: str, shape_id: Optional[str] = None) -> Iterator[None]:
    """Re-raise shapely/pyproj failures as GeometryError."""
    try:
        yield
    except (GEOSException, ProjError, ValueError) as e:
        raise GeometryError(operation=operation, detail=str(e), shape_id=shape_id) from e


class PolygonGeometryEngine:
    """Ring validation, measurement and boolean/offset operations.

    Example:
        engine = PolygonGeometryEngine()
        ring = engine.normalize_ring(points=raw_points)
        print(engine.area(ring=ring), engine.perimeter(ring=ring))
        inner = engine.buffer(shape=boundary, signed_distance_m=-10.0)
    """

    def __init__(
        self,
        contains_tolerance_m: float = GeometryConfig.CONTAINS_TOLERANCE_M,
        quad_segs: int = GeometryConfig.BUFFER_QUAD_SEGS,
        join_style: str = GeometryConfig.BUFFER_JOIN_STYLE,
        mitre_limit: float = GeometryConfig.BUFFER_MITRE_LIMIT,
    ) -> None:
        self.contains_tolerance_m = contains_tolerance_m
        self.quad_segs = quad_segs
        self.join_style = join_style
        self.mitre_limit = mitre_limit

    # =========================================================================
    # Ring normalization and validation
    # =========================================================================

    @staticmethod
    def normalize_ring(
        points: Sequence[RawVertex],
        operation: str = "normalize_ring",
        shape_id: Optional[str] = None,
    ) -> Ring:
        """Clean raw vertices into a ring.

        Drops non-finite coordinates, wraps/clamps into WGS84 ranges, rounds to
        coordinate precision, removes consecutive duplicates and an explicit
        closing vertex.

        Args:
            points: Raw vertices (GeoPoint, {"lat", "lng"} mapping or (lng, lat) tuple)
            operation: Operation name reported in a GeometryError
            shape_id: Shape reported in a GeometryError

        Returns:
            Tuple of at least 3 GeoPoints.

        Raises:
            GeometryError: If fewer than 3 distinct vertices remain.
        """
        cleaned: list[GeoPoint] = []
        for raw in points:
            if isinstance(raw, GeoPoint):
                lat, lng = raw.lat, raw.lng
            elif isinstance(raw, Mapping):
                lat, lng = float(raw["lat"]), float(raw["lng"])
            else:
                lng, lat = float(raw[0]), float(raw[1])
            if not (isfinite(lat) and isfinite(lng)):
                continue

            lng, lat = CoordinateSystem.normalize_coordinate(lng=lng, lat=lat)
            point = GeoPoint(
                lat=CoordinateSystem.round_to_precision(lat, PrecisionKind.COORDINATE),
                lng=CoordinateSystem.round_to_precision(lng, PrecisionKind.COORDINATE),
            )
            if cleaned and cleaned[-1] == point:
                continue
            cleaned.append(point)

        # Drop explicit closing vertex (and any run of them)
        while len(cleaned) > 1 and cleaned[-1] == cleaned[0]:
            cleaned.pop()

        if len(cleaned) < GeometryConfig.MIN_RING_VERTICES:
            raise GeometryError(
                operation=operation,
                detail=f"ring must have at least {GeometryConfig.MIN_RING_VERTICES} distinct points, got {len(cleaned)}",
                shape_id=shape_id,
            )
        return tuple(cleaned)

    @staticmethod
    def is_simple(ring: Sequence[GeoPoint]) -> bool:
        """Check that a ring has >=3 vertices, no self-intersections and non-zero area."""
        if len(ring) < GeometryConfig.MIN_RING_VERTICES:
            return False
        coords = PlanarFrame.lng_lat(ring)
        if not LinearRing(coords).is_simple:
            return False
        return Polygon(coords).area > 0

    def validate_ring(self, ring: Sequence[GeoPoint], operation: str, shape_id: Optional[str] = None) -> None:
        """Raise GeometryError if the ring is degenerate or self-intersecting."""
        if len(ring) < GeometryConfig.MIN_RING_VERTICES:
            raise GeometryError(operation=operation, detail="ring has fewer than 3 vertices", shape_id=shape_id)
        if not self.is_simple(ring=ring):
            raise GeometryError(
                operation=operation, detail="ring is degenerate or self-intersecting", shape_id=shape_id
            )

    # =========================================================================
    # Measurements
    # =========================================================================

    @staticmethod
    def area(ring: Sequence[GeoPoint]) -> float:
        """Geodesic area of a ring in square meters.

        Sums the signed spherical excess of the triangles formed by each edge
        and the pole (great-circle edges). The absolute value is returned, so
        winding order does not matter.

        Returns:
            Area in m², 0 for fewer than 3 vertices.
        """
        n = len(ring)
        if n < 3:
            return 0.0

        total = 0.0
        for i in range(n):
            p1 = ring[i]
            p2 = ring[(i + 1) % n]
            dlng = radians(p2.lng - p1.lng)
            # Shortest way round for edges crossing the antimeridian
            if dlng > pi:
                dlng -= 2 * pi
            elif dlng < -pi:
                dlng += 2 * pi
            t1 = tan(radians(p1.lat) / 2)
            t2 = tan(radians(p2.lat) / 2)
            total += 2 * atan2(tan(dlng / 2) * (t1 + t2), 1 + t1 * t2)

        area = abs(total) * EARTH_RADIUS_M**2
        return CoordinateSystem.round_to_precision(area, PrecisionKind.MEASUREMENT)

    @staticmethod
    def perimeter(ring: Sequence[GeoPoint]) -> float:
        """Closed-ring perimeter in meters (haversine per edge)."""
        n = len(ring)
        if n < 2:
            return 0.0
        if n == 2:
            total = CoordinateSystem.distance_m(a=ring[0], b=ring[1])
        else:
            total = sum(CoordinateSystem.distance_m(a=ring[i], b=ring[(i + 1) % n]) for i in range(n))
        return CoordinateSystem.round_to_precision(total, PrecisionKind.MEASUREMENT)

    @staticmethod
    def bounds(ring: Sequence[GeoPoint]) -> tuple[float, float, float, float]:
        """Return (min_lng, min_lat, max_lng, max_lat)."""
        if not ring:
            raise ValueError("bounds() requires at least one point")
        lngs = [p.lng for p in ring]
        lats = [p.lat for p in ring]
        return min(lngs), min(lats), max(lngs), max(lats)

    def centroid(self, ring: Sequence[GeoPoint]) -> GeoPoint:
        """Area-weighted centroid, computed in the local planar frame."""
        with _library_errors("centroid"):
            frame = PlanarFrame.for_points(ring)
            planar = frame.project(Polygon(PlanarFrame.lng_lat(ring)))
            c = planar.centroid if planar.area > 0 else planar.exterior.centroid
            lng, lat = frame.to_lng_lat(c.x, c.y)
        return GeoPoint(
            lat=CoordinateSystem.round_to_precision(lat, PrecisionKind.COORDINATE),
            lng=CoordinateSystem.round_to_precision(lng, PrecisionKind.COORDINATE),
        )

    def aspect_ratio(self, ring: Sequence[GeoPoint]) -> float:
        """Elongation: long side / short side of the minimum rotated rectangle.

        Returns:
            Ratio >= 1, or infinity for a degenerate (zero-width) ring.
        """
        with _library_errors("aspect_ratio"):
            frame = PlanarFrame.for_points(ring)
            planar = frame.project(Polygon(PlanarFrame.lng_lat(ring)))
            rect = planar.minimum_rotated_rectangle
        if not isinstance(rect, Polygon):
            return float("inf")
        corners = list(rect.exterior.coords)
        side_a = shapely.Point(corners[0]).distance(shapely.Point(corners[1]))
        side_b = shapely.Point(corners[1]).distance(shapely.Point(corners[2]))
        short_side, long_side = sorted((side_a, side_b))
        if short_side <= 0:
            return float("inf")
        return CoordinateSystem.round_to_precision(long_side / short_side, PrecisionKind.MEASUREMENT)

    def overlap_area_m2(self, ring_a: Sequence[GeoPoint], ring_b: Sequence[GeoPoint]) -> float:
        """Area of the intersection of two rings in m² (0 if disjoint)."""
        frame = PlanarFrame.for_points(list(ring_a) + list(ring_b))
        with _library_errors("overlap_area"):
            pa = self._to_planar(ring=ring_a, frame=frame)
            pb = self._to_planar(ring=ring_b, frame=frame)
            area = pa.intersection(pb).area
        return CoordinateSystem.round_to_precision(area, PrecisionKind.MEASUREMENT)

    def distance_m(self, ring_a: Sequence[GeoPoint], ring_b: Sequence[GeoPoint]) -> float:
        """Shortest distance between two polygons in meters (0 if they touch or overlap)."""
        frame = PlanarFrame.for_points(list(ring_a) + list(ring_b))
        with _library_errors("distance"):
            pa = self._to_planar(ring=ring_a, frame=frame)
            pb = self._to_planar(ring=ring_b, frame=frame)
            distance = pa.distance(pb)
        return CoordinateSystem.round_to_precision(distance, PrecisionKind.MEASUREMENT)

    def boundary_distance_m(self, ring_a: Sequence[GeoPoint], ring_b: Sequence[GeoPoint]) -> float:
        """Shortest distance between the two outlines in meters."""
        frame = PlanarFrame.for_points(list(ring_a) + list(ring_b))
        with _library_errors("boundary_distance"):
            pa = self._to_planar(ring=ring_a, frame=frame)
            pb = self._to_planar(ring=ring_b, frame=frame)
            distance = pa.exterior.distance(pb.exterior)
        return CoordinateSystem.round_to_precision(distance, PrecisionKind.MEASUREMENT)

    # =========================================================================
    # Predicates
    # =========================================================================

    def contains(self, outer_ring: Sequence[GeoPoint], inner_ring: Sequence[GeoPoint]) -> bool:
        """Whether every point and edge of inner lies within or on outer.

        The outer ring is grown by contains_tolerance_m to absorb projection
        and rounding noise, so an inner ring sharing edges with outer counts
        as contained.
        """
        if len(outer_ring) < 3 or len(inner_ring) < 3:
            return False
        frame = PlanarFrame.for_points(list(outer_ring) + list(inner_ring))
        with _library_errors("contains"):
            outer = self._to_planar(ring=outer_ring, frame=frame)
            inner = self._to_planar(ring=inner_ring, frame=frame)
            return outer.buffer(self.contains_tolerance_m, quad_segs=self.quad_segs).covers(inner)

    # =========================================================================
    # Transformations
    # =========================================================================

    def translate(self, ring: Sequence[GeoPoint], east_m: float, north_m: float) -> Ring:
        """Move a ring by a metric offset in its local planar frame."""
        frame = PlanarFrame.for_points(ring)
        with _library_errors("move"):
            planar = self._to_planar(ring=ring, frame=frame)
            moved = affinity.translate(planar, xoff=east_m, yoff=north_m)
            return self._from_planar(polygon=moved, frame=frame, operation="move")

    def buffer(self, shape: Shape, signed_distance_m: float, buffer_id: Optional[str] = None) -> Shape:
        """Offset a shape's ring outward (positive) or inward (negative).

        Corners are re-joined with the configured join style (round by
        default). Inward offsets must stay below the shape's half-width, the
        radius of its largest inscribed circle.

        Args:
            shape: Shape to offset
            signed_distance_m: Offset distance in meters
            buffer_id: ID for the resulting shape (defaults to "<shape.id>-buffer");
                pass the existing buffer's ID when recomputing it

        Returns:
            New Shape tagged as buffer, referencing shape.id.

        Raises:
            GeometryError: Degenerate input ring, non-finite distance, inward
                distance exceeding the half-width, or an empty result.
        """
        if not isfinite(signed_distance_m):
            raise GeometryError(operation="buffer", detail="distance must be finite", shape_id=shape.id)
        self.validate_ring(ring=shape.ring, operation="buffer", shape_id=shape.id)

        frame = PlanarFrame.for_points(shape.ring)
        with _library_errors("buffer", shape_id=shape.id):
            planar = self._to_planar(ring=shape.ring, frame=frame)

            if signed_distance_m < 0:
                half_width = self.half_width_m(polygon=planar)
                if abs(signed_distance_m) >= half_width:
                    raise GeometryError(
                        operation="buffer",
                        detail=(
                            f"inward distance {abs(signed_distance_m):g} m reaches the shape's "
                            f"half-width of {half_width:.2f} m"
                        ),
                        shape_id=shape.id,
                    )

            result = planar.buffer(
                signed_distance_m,
                quad_segs=self.quad_segs,
                cap_style="round",
                join_style=self.join_style,
                mitre_limit=self.mitre_limit,
            )
            polygon = self._largest_polygon(geometry=result, operation="buffer", shape_id=shape.id)
            if polygon is None:
                raise GeometryError(operation="buffer", detail="offset produced an empty ring", shape_id=shape.id)
            ring = self._from_planar(polygon=polygon, frame=frame, operation="buffer", shape_id=shape.id)

        buffered = Shape(
            id=buffer_id or f"{shape.id}-buffer",
            ring=ring,
            meta=BufferMeta(original_shape_id=shape.id, signed_distance_m=signed_distance_m),
            area_m2=self.area(ring=ring),
        )
        logger.info(f"Buffered {shape.id} by {signed_distance_m:+.2f}m -> {buffered.id} ({buffered.area_m2:.1f}m²)")
        return buffered

    def union(self, shape_a: Shape, shape_b: Shape, union_id: Optional[str] = None) -> Optional[Shape]:
        """Boolean union of two shapes.

        Returns:
            New Shape tagged union_result, or None if the shapes neither touch
            nor overlap.
        """
        self.validate_ring(ring=shape_a.ring, operation="union", shape_id=shape_a.id)
        self.validate_ring(ring=shape_b.ring, operation="union", shape_id=shape_b.id)

        frame = PlanarFrame.for_points(shape_a.ring + shape_b.ring)
        with _library_errors("union", shape_id=shape_a.id):
            pa = self._to_planar(ring=shape_a.ring, frame=frame)
            pb = self._to_planar(ring=shape_b.ring, frame=frame)
            if pa.disjoint(pb):
                logger.info(f"Union of {shape_a.id} and {shape_b.id}: shapes do not touch")
                return None

            polygon = self._largest_polygon(geometry=pa.union(pb), operation="union", shape_id=shape_a.id)
            if polygon is None:
                return None
            if polygon.interiors:
                logger.warning(f"Union of {shape_a.id} and {shape_b.id}: discarded {len(polygon.interiors)} hole(s)")
            ring = self._from_planar(polygon=polygon, frame=frame, operation="union", shape_id=shape_a.id)

        return Shape(
            id=union_id or f"{shape_a.id}+{shape_b.id}",
            ring=ring,
            meta=UnionMeta(source_ids=(shape_a.id, shape_b.id)),
            area_m2=self.area(ring=ring),
        )

    def difference(self, minuend: Shape, subtrahend: Shape, difference_id: Optional[str] = None) -> Optional[Shape]:
        """Boolean subtraction of subtrahend from minuend.

        Returns:
            New Shape tagged difference_result, or None if nothing remains
            (minuend completely covered by subtrahend).

        Raises:
            GeometryError: If the result would have a hole (subtrahend strictly
                inside minuend), which a single-ring Shape cannot represent.
        """
        self.validate_ring(ring=minuend.ring, operation="difference", shape_id=minuend.id)
        self.validate_ring(ring=subtrahend.ring, operation="difference", shape_id=subtrahend.id)

        frame = PlanarFrame.for_points(minuend.ring + subtrahend.ring)
        with _library_errors("difference", shape_id=minuend.id):
            pa = self._to_planar(ring=minuend.ring, frame=frame)
            pb = self._to_planar(ring=subtrahend.ring, frame=frame)
            polygon = self._largest_polygon(
                geometry=pa.difference(pb), operation="difference", shape_id=minuend.id
            )
            if polygon is None:
                logger.info(f"Difference {minuend.id} - {subtrahend.id}: nothing remains")
                return None
            if polygon.interiors:
                raise GeometryError(
                    operation="difference",
                    detail=f"subtracting {subtrahend.id} would leave a hole; shapes with holes are not supported",
                    shape_id=minuend.id,
                )
            ring = self._from_planar(polygon=polygon, frame=frame, operation="difference", shape_id=minuend.id)

        return Shape(
            id=difference_id or f"{minuend.id}-{subtrahend.id}",
            ring=ring,
            meta=DifferenceMeta(minuend_id=minuend.id, subtrahend_id=subtrahend.id),
            area_m2=self.area(ring=ring),
        )

    # =========================================================================
    # Planar helpers
    # =========================================================================

    @staticmethod
    def half_width_m(polygon: Polygon) -> float:
        """Radius of the largest inscribed circle of a planar polygon."""
        center = polylabel(polygon, tolerance=GeometryConfig.HALF_WIDTH_TOLERANCE_M)
        return center.distance(polygon.exterior)

    @staticmethod
    def _to_planar(ring: Sequence[GeoPoint], frame: PlanarFrame) -> Polygon:
        return frame.project(Polygon(PlanarFrame.lng_lat(ring)))

    def _from_planar(
        self,
        polygon: Polygon,
        frame: PlanarFrame,
        operation: str,
        shape_id: Optional[str] = None,
    ) -> Ring:
        exterior = frame.unproject(polygon.exterior)
        return self.normalize_ring(points=list(exterior.coords), operation=operation, shape_id=shape_id)

    @staticmethod
    def _largest_polygon(geometry: BaseGeometry, operation: str, shape_id: Optional[str]) -> Optional[Polygon]:
        """Pick the largest polygon of a result, logging the discarded parts."""
        if geometry.is_empty:
            return None

        if isinstance(geometry, Polygon):
            parts = [geometry]
        elif isinstance(geometry, MultiPolygon):
            parts = list(geometry.geoms)
        else:
            parts = [g for g in getattr(geometry, "geoms", []) if isinstance(g, Polygon)]

        parts = [p for p in parts if p.area >= GeometryConfig.MIN_COMPONENT_AREA_M2]
        if not parts:
            return None

        parts.sort(key=lambda p: p.area, reverse=True)
        if len(parts) > 1:
            discarded = ", ".join(f"{p.area:.1f}m²" for p in parts[1:])
            logger.warning(
                f"{operation} on {shape_id}: result has {len(parts)} parts; "
                f"kept largest ({parts[0].area:.1f}m²), discarded {discarded}"
            )
        return parts[0]
