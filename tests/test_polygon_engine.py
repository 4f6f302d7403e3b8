"""Tests for PolygonGeometryEngine.

Focus on:
- Ring normalization and simplicity checks
- Geodesic area / perimeter against known rectangles
- Containment with shared edges
- Buffer, union and difference results and their failure modes
- Edge cases with Hypothesis property-based testing
"""

from math import pi

import pytest
from hypothesis import given, settings, strategies as st

from site_planner.core.polygon_engine import PolygonGeometryEngine
from site_planner.errors import GeometryError
from site_planner.model.geo_point import GeoPoint
from site_planner.model.shape import BufferMeta, DifferenceMeta, ShapeKind, UnionMeta, ZoneMeta
from tests.conftest import METERS_PER_DEGREE, make_shape, rect


def zone(shape_id: str, ring: tuple[GeoPoint, ...]):
    return make_shape(shape_id=shape_id, ring=ring, meta=ZoneMeta(name=shape_id, kind="residential"))


# =============================================================================
# RING NORMALIZATION
# =============================================================================


class TestNormalizeRing:
    """Raw vertex cleanup."""

    def test_drops_closing_vertex(self) -> None:
        ring = rect(0, 0, 10, 10)
        normalized = PolygonGeometryEngine.normalize_ring(points=[*ring, ring[0]])
        assert len(normalized) == 4
        assert normalized[0] != normalized[-1]

    def test_drops_consecutive_duplicates(self) -> None:
        a, b, c, d = rect(0, 0, 10, 10)
        normalized = PolygonGeometryEngine.normalize_ring(points=[a, a, b, c, c, c, d])
        assert normalized == (a, b, c, d)

    def test_drops_non_finite_coordinates(self) -> None:
        points = [(0.0, 0.0), (0.001, 0.0), (float("nan"), 0.0005), (0.001, 0.001), (0.0, 0.001)]
        assert len(PolygonGeometryEngine.normalize_ring(points=points)) == 4

    def test_accepts_mappings_and_tuples(self) -> None:
        """Mappings carry lat/lng keys, tuples are (lng, lat)."""
        ring = PolygonGeometryEngine.normalize_ring(
            points=[{"lat": 0.0, "lng": 0.0}, (0.001, 0.0), {"lat": 0.001, "lng": 0.001}]
        )
        assert ring[1] == GeoPoint(lat=0.0, lng=0.001)

    def test_rounds_to_coordinate_precision(self) -> None:
        ring = PolygonGeometryEngine.normalize_ring(points=[(0.123456789123, 0.0), (0.2, 0.0), (0.2, 0.1)])
        assert ring[0].lng == 0.12345679

    def test_wraps_longitude(self) -> None:
        ring = PolygonGeometryEngine.normalize_ring(points=[(190.0, 0.0), (190.001, 0.0), (190.001, 0.001)])
        assert ring[0].lng == pytest.approx(-170.0)

    @pytest.mark.parametrize(
        "points",
        [
            [],
            [(0.0, 0.0), (0.001, 0.0)],
            [(0.0, 0.0), (0.001, 0.0), (0.0, 0.0)],
            [(0.0, 0.0), (0.0, 0.0), (0.0, 0.0), (0.0, 0.0)],
        ],
    )
    def test_fewer_than_three_points_raises(self, points: list) -> None:
        with pytest.raises(GeometryError, match="normalize_ring"):
            PolygonGeometryEngine.normalize_ring(points=points)


class TestSimplicity:
    """Self-intersection and degeneracy detection."""

    def test_square_is_simple(self) -> None:
        assert PolygonGeometryEngine.is_simple(ring=rect(0, 0, 10, 10)) is True

    def test_bowtie_is_not_simple(self) -> None:
        sw, se, ne, nw = rect(0, 0, 10, 10)
        assert PolygonGeometryEngine.is_simple(ring=(sw, ne, se, nw)) is False

    def test_collinear_ring_is_not_simple(self) -> None:
        ring = (GeoPoint(lat=0, lng=0), GeoPoint(lat=0, lng=0.001), GeoPoint(lat=0, lng=0.002))
        assert PolygonGeometryEngine.is_simple(ring=ring) is False

    def test_validate_ring_names_operation_and_shape(self, engine: PolygonGeometryEngine) -> None:
        sw, se, ne, nw = rect(0, 0, 10, 10)
        with pytest.raises(GeometryError) as excinfo:
            engine.validate_ring(ring=(sw, ne, se, nw), operation="edit", shape_id="Z7")
        assert excinfo.value.operation == "edit"
        assert excinfo.value.shape_id == "Z7"
        assert "Z7" in str(excinfo.value)


# =============================================================================
# MEASUREMENTS
# =============================================================================


class TestMeasurements:
    """Geodesic area and perimeter."""

    def test_rectangle_area_within_one_percent(self) -> None:
        """A 100m x 50m rectangle has ~5000 m²."""
        assert PolygonGeometryEngine.area(ring=rect(0, 0, 100, 50)) == pytest.approx(5000.0, rel=0.01)

    def test_area_independent_of_winding(self) -> None:
        ring = rect(0, 0, 100, 50)
        assert PolygonGeometryEngine.area(ring=ring) == PolygonGeometryEngine.area(ring=tuple(reversed(ring)))

    def test_area_at_high_latitude(self) -> None:
        """Area is geodesic, not degrees squared."""
        origin = GeoPoint(lat=64.0, lng=-21.0)
        east = origin.offset(bearing_deg=90, distance_m=100)
        ring = (origin, east, east.offset(bearing_deg=0, distance_m=100), origin.offset(bearing_deg=0, distance_m=100))
        assert PolygonGeometryEngine.area(ring=ring) == pytest.approx(10_000.0, rel=0.01)

    def test_area_of_degenerate_input_is_zero(self) -> None:
        assert PolygonGeometryEngine.area(ring=rect(0, 0, 10, 10)[:2]) == 0.0

    def test_perimeter_of_rectangle(self) -> None:
        assert PolygonGeometryEngine.perimeter(ring=rect(0, 0, 100, 50)) == pytest.approx(300.0, abs=0.01)

    def test_bounds(self) -> None:
        min_lng, min_lat, max_lng, max_lat = PolygonGeometryEngine.bounds(ring=rect(0, 0, 100, 50))
        assert (min_lng, min_lat) == (0.0, 0.0)
        assert max_lng == pytest.approx(100 / METERS_PER_DEGREE)
        assert max_lat == pytest.approx(50 / METERS_PER_DEGREE)

    def test_centroid_of_rectangle(self, engine: PolygonGeometryEngine) -> None:
        center = engine.centroid(ring=rect(0, 0, 100, 50))
        assert center.lng == pytest.approx(50 / METERS_PER_DEGREE, abs=1e-7)
        assert center.lat == pytest.approx(25 / METERS_PER_DEGREE, abs=1e-7)

    @pytest.mark.parametrize("width,height,expected", [(100, 100, 1.0), (100, 25, 4.0), (20, 100, 5.0)])
    def test_aspect_ratio(self, engine: PolygonGeometryEngine, width: float, height: float, expected: float) -> None:
        assert engine.aspect_ratio(ring=rect(0, 0, width, height)) == pytest.approx(expected, rel=1e-3)

    @given(
        width=st.floats(min_value=10, max_value=2000),
        height=st.floats(min_value=10, max_value=2000),
    )
    @settings(max_examples=50, deadline=None)
    def test_area_property_rectangles(self, width: float, height: float) -> None:
        """Area is non-negative and matches width x height for site-sized rectangles."""
        area = PolygonGeometryEngine.area(ring=rect(0, 0, width, height))
        assert area >= 0
        assert area == pytest.approx(width * height, rel=1e-3)


class TestPairwiseMeasurements:
    """Overlap area and distance between rings."""

    def test_overlap_area(self, engine: PolygonGeometryEngine) -> None:
        overlap = engine.overlap_area_m2(ring_a=rect(0, 0, 100, 100), ring_b=rect(50, 0, 150, 100))
        assert overlap == pytest.approx(5000.0, rel=1e-3)

    def test_disjoint_overlap_is_zero(self, engine: PolygonGeometryEngine) -> None:
        assert engine.overlap_area_m2(ring_a=rect(0, 0, 10, 10), ring_b=rect(20, 0, 30, 10)) == 0.0

    def test_distance(self, engine: PolygonGeometryEngine) -> None:
        assert engine.distance_m(ring_a=rect(0, 0, 10, 10), ring_b=rect(15, 0, 25, 10)) == pytest.approx(5.0, abs=0.01)

    def test_touching_distance_is_zero(self, engine: PolygonGeometryEngine) -> None:
        assert engine.distance_m(ring_a=rect(0, 0, 10, 10), ring_b=rect(10, 0, 20, 10)) == pytest.approx(0.0, abs=0.01)


# =============================================================================
# CONTAINMENT
# =============================================================================


class TestContains:
    """Containment with tolerance for shared edges."""

    def test_inner_ring_contained(self, engine: PolygonGeometryEngine) -> None:
        assert engine.contains(outer_ring=rect(0, 0, 200, 200), inner_ring=rect(10, 10, 60, 60)) is True

    def test_shared_edge_counts_as_contained(self, engine: PolygonGeometryEngine) -> None:
        assert engine.contains(outer_ring=rect(0, 0, 200, 200), inner_ring=rect(0, 0, 50, 50)) is True

    def test_identical_rings_contained(self, engine: PolygonGeometryEngine) -> None:
        ring = rect(0, 0, 200, 200)
        assert engine.contains(outer_ring=ring, inner_ring=ring) is True

    def test_partially_outside(self, engine: PolygonGeometryEngine) -> None:
        assert engine.contains(outer_ring=rect(0, 0, 200, 200), inner_ring=rect(150, 150, 250, 250)) is False

    def test_beyond_tolerance_not_contained(self, engine: PolygonGeometryEngine) -> None:
        """1m outside is far more than the 5cm tolerance."""
        assert engine.contains(outer_ring=rect(0, 0, 200, 200), inner_ring=rect(-1, 0, 50, 50)) is False

    def test_degenerate_input_is_false(self, engine: PolygonGeometryEngine) -> None:
        assert engine.contains(outer_ring=rect(0, 0, 200, 200), inner_ring=rect(0, 0, 5, 5)[:2]) is False


# =============================================================================
# BUFFER
# =============================================================================


class TestBuffer:
    """Offset operations."""

    def test_inward_buffer_of_square(self, engine: PolygonGeometryEngine) -> None:
        square = zone("Z1", rect(0, 0, 100, 100))
        inner = engine.buffer(shape=square, signed_distance_m=-5.0)
        assert inner.area_m2 == pytest.approx(90 * 90, rel=1e-3)

    def test_outward_buffer_has_round_corners(self, engine: PolygonGeometryEngine) -> None:
        square = zone("Z1", rect(0, 0, 100, 100))
        outer = engine.buffer(shape=square, signed_distance_m=10.0)
        expected = 100 * 100 + 4 * 100 * 10 + pi * 10**2
        assert outer.area_m2 == pytest.approx(expected, rel=5e-3)

    @pytest.mark.parametrize("distance", [1.0, 5.0, 10.0])
    def test_inward_then_outward_approximates_original(self, engine: PolygonGeometryEngine, distance: float) -> None:
        """Corner rounding loses at most (4 - pi) * d² plus polygonization error."""
        square = zone("Z1", rect(0, 0, 100, 100))
        shrunk = engine.buffer(shape=square, signed_distance_m=-distance)
        regrown = engine.buffer(shape=shrunk, signed_distance_m=distance)
        tolerance = (4 - pi) * distance**2 + 0.001 * square.area_m2
        assert abs(regrown.area_m2 - square.area_m2) <= tolerance

    def test_result_is_tagged_buffer(self, engine: PolygonGeometryEngine) -> None:
        square = zone("Z1", rect(0, 0, 100, 100))
        result = engine.buffer(shape=square, signed_distance_m=-5.0)
        assert result.kind is ShapeKind.BUFFER
        assert result.meta == BufferMeta(original_shape_id="Z1", signed_distance_m=-5.0)
        assert result.id == "Z1-buffer"
        assert result.cascades_from == "Z1"

    def test_explicit_buffer_id(self, engine: PolygonGeometryEngine) -> None:
        square = zone("Z1", rect(0, 0, 100, 100))
        assert engine.buffer(shape=square, signed_distance_m=2.0, buffer_id="BUF3").id == "BUF3"

    @pytest.mark.parametrize("distance", [-25.0, -30.0, -1000.0])
    def test_inward_beyond_half_width_raises(self, engine: PolygonGeometryEngine, distance: float) -> None:
        """A 100m x 50m rectangle has a half-width of 25m."""
        shape = zone("Z1", rect(0, 0, 100, 50))
        with pytest.raises(GeometryError, match="buffer"):
            engine.buffer(shape=shape, signed_distance_m=distance)

    def test_small_inward_buffer_of_narrow_shape(self, engine: PolygonGeometryEngine) -> None:
        shape = zone("Z1", rect(0, 0, 100, 50))
        assert engine.buffer(shape=shape, signed_distance_m=-10.0).area_m2 == pytest.approx(80 * 30, rel=1e-3)

    def test_non_finite_distance_raises(self, engine: PolygonGeometryEngine) -> None:
        with pytest.raises(GeometryError):
            engine.buffer(shape=zone("Z1", rect(0, 0, 100, 100)), signed_distance_m=float("nan"))

    def test_degenerate_input_raises(self, engine: PolygonGeometryEngine) -> None:
        sw, se, ne, nw = rect(0, 0, 10, 10)
        bowtie = make_shape(shape_id="Z9", ring=(sw, ne, se, nw), meta=ZoneMeta(name="x", kind="amenity"))
        with pytest.raises(GeometryError) as excinfo:
            engine.buffer(shape=bowtie, signed_distance_m=1.0)
        assert excinfo.value.shape_id == "Z9"


# =============================================================================
# UNION / DIFFERENCE
# =============================================================================


class TestUnion:
    """Boolean union."""

    def test_disjoint_shapes_return_none(self, engine: PolygonGeometryEngine) -> None:
        assert engine.union(shape_a=zone("A", rect(0, 0, 10, 10)), shape_b=zone("B", rect(20, 0, 30, 10))) is None

    def test_overlapping_area_at_least_max(self, engine: PolygonGeometryEngine) -> None:
        a = zone("A", rect(0, 0, 100, 100))
        b = zone("B", rect(50, 0, 150, 100))
        result = engine.union(shape_a=a, shape_b=b)
        assert result is not None
        assert result.area_m2 >= max(a.area_m2, b.area_m2)
        assert result.area_m2 == pytest.approx(15_000.0, rel=1e-3)

    def test_touching_shapes_merge(self, engine: PolygonGeometryEngine) -> None:
        result = engine.union(shape_a=zone("A", rect(0, 0, 100, 100)), shape_b=zone("B", rect(100, 0, 200, 100)))
        assert result is not None
        assert result.area_m2 == pytest.approx(20_000.0, rel=1e-3)

    def test_result_metadata(self, engine: PolygonGeometryEngine) -> None:
        result = engine.union(shape_a=zone("A", rect(0, 0, 100, 100)), shape_b=zone("B", rect(50, 50, 150, 150)))
        assert result.kind is ShapeKind.UNION_RESULT
        assert result.meta == UnionMeta(source_ids=("A", "B"))
        assert result.id == "A+B"

    def test_union_enclosing_a_hole_keeps_outline(self, engine: PolygonGeometryEngine) -> None:
        """A C-shape closed by a bar encloses a hole; the hole is dropped."""
        c_shape = engine.normalize_ring(
            points=[
                GeoPoint(lat=0, lng=0),
                GeoPoint(lat=0, lng=30 / METERS_PER_DEGREE),
                GeoPoint(lat=10 / METERS_PER_DEGREE, lng=30 / METERS_PER_DEGREE),
                GeoPoint(lat=10 / METERS_PER_DEGREE, lng=10 / METERS_PER_DEGREE),
                GeoPoint(lat=20 / METERS_PER_DEGREE, lng=10 / METERS_PER_DEGREE),
                GeoPoint(lat=20 / METERS_PER_DEGREE, lng=30 / METERS_PER_DEGREE),
                GeoPoint(lat=30 / METERS_PER_DEGREE, lng=30 / METERS_PER_DEGREE),
                GeoPoint(lat=30 / METERS_PER_DEGREE, lng=0),
            ]
        )
        bar = rect(25, 0, 35, 30)
        result = engine.union(shape_a=zone("C", c_shape), shape_b=zone("BAR", bar))
        assert result is not None
        assert result.area_m2 == pytest.approx(35 * 30, rel=1e-3)


class TestDifference:
    """Boolean subtraction."""

    def test_area_matches_minuend_minus_intersection(self, engine: PolygonGeometryEngine) -> None:
        a = zone("A", rect(0, 0, 100, 100))
        b = zone("B", rect(50, 0, 150, 100))
        result = engine.difference(minuend=a, subtrahend=b)
        overlap = engine.overlap_area_m2(ring_a=a.ring, ring_b=b.ring)
        assert result is not None
        assert result.area_m2 == pytest.approx(a.area_m2 - overlap, rel=1e-3)

    def test_contained_minuend_returns_none(self, engine: PolygonGeometryEngine) -> None:
        assert engine.difference(minuend=zone("A", rect(10, 10, 20, 20)), subtrahend=zone("B", rect(0, 0, 100, 100))) is None

    def test_identical_shapes_return_none(self, engine: PolygonGeometryEngine) -> None:
        ring = rect(0, 0, 50, 50)
        assert engine.difference(minuend=zone("A", ring), subtrahend=zone("B", ring)) is None

    def test_hole_raises(self, engine: PolygonGeometryEngine) -> None:
        with pytest.raises(GeometryError, match="hole"):
            engine.difference(minuend=zone("A", rect(0, 0, 100, 100)), subtrahend=zone("B", rect(40, 40, 60, 60)))

    def test_split_keeps_largest_part(self, engine: PolygonGeometryEngine) -> None:
        """A strip through the middle splits the minuend; the larger part (50m wide) is kept."""
        result = engine.difference(minuend=zone("A", rect(0, 0, 100, 100)), subtrahend=zone("B", rect(40, -10, 50, 110)))
        assert result is not None
        assert result.area_m2 == pytest.approx(50 * 100, rel=1e-3)

    def test_result_metadata(self, engine: PolygonGeometryEngine) -> None:
        result = engine.difference(minuend=zone("A", rect(0, 0, 100, 100)), subtrahend=zone("B", rect(50, 0, 150, 100)))
        assert result.kind is ShapeKind.DIFFERENCE_RESULT
        assert result.meta == DifferenceMeta(minuend_id="A", subtrahend_id="B")
        assert result.id == "A-B"


class TestTranslate:
    """Metric moves."""

    def test_translate_preserves_area_and_moves_centroid(self, engine: PolygonGeometryEngine) -> None:
        ring = rect(0, 0, 100, 50)
        moved = engine.translate(ring=ring, east_m=30.0, north_m=-20.0)
        assert engine.area(ring=moved) == pytest.approx(engine.area(ring=ring), rel=1e-4)
        before = engine.centroid(ring=ring)
        after = engine.centroid(ring=moved)
        assert (after.lng - before.lng) * METERS_PER_DEGREE == pytest.approx(30.0, abs=0.01)
        assert (after.lat - before.lat) * METERS_PER_DEGREE == pytest.approx(-20.0, abs=0.01)
