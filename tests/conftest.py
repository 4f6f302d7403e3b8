"""Shared pytest fixtures for site_planner tests.

Provides MockElevationSampler and reusable rings/shapes for all unit tests.

COORDINATE SYSTEM:
    Tests use coordinates near the equator (lat~0) and prime meridian (lng~0)
    where the math is simple: 1 degree = pi * R / 180 ≈ 111,195 meters in both
    directions on the R = 6,371 km sphere used by the geodesic formulas.
    rect() builds rings from metric offsets relative to (0, 0).
"""

from math import pi
from typing import Optional, Sequence

import pytest

from site_planner.core.coordinate_system import EARTH_RADIUS_M
from site_planner.core.elevation_service import ElevationSample
from site_planner.core.polygon_engine import PolygonGeometryEngine
from site_planner.errors import ElevationServiceError
from site_planner.model.geo_point import GeoPoint
from site_planner.model.shape import BoundaryMeta, Shape, ShapeMeta, ZoneMeta

METERS_PER_DEGREE = pi * EARTH_RADIUS_M / 180


def rect(west_m: float, south_m: float, east_m: float, north_m: float) -> tuple[GeoPoint, ...]:
    """Axis-aligned rectangle ring (SW, SE, NE, NW) from metric offsets to (0, 0)."""
    return (
        GeoPoint(lat=south_m / METERS_PER_DEGREE, lng=west_m / METERS_PER_DEGREE),
        GeoPoint(lat=south_m / METERS_PER_DEGREE, lng=east_m / METERS_PER_DEGREE),
        GeoPoint(lat=north_m / METERS_PER_DEGREE, lng=east_m / METERS_PER_DEGREE),
        GeoPoint(lat=north_m / METERS_PER_DEGREE, lng=west_m / METERS_PER_DEGREE),
    )


def make_shape(shape_id: str, ring: Sequence[GeoPoint], meta: ShapeMeta) -> Shape:
    return Shape(id=shape_id, ring=tuple(ring), meta=meta, area_m2=PolygonGeometryEngine.area(ring=ring))


# =============================================================================
# MOCK ELEVATION SAMPLER
# =============================================================================


class MockElevationSampler:
    """Sampler returning synthetic elevation from a simple linear formula.

    Elevation formula:
        elevation = base_elev + (lat * METERS_PER_DEGREE * slope_ns_pct / 100)
                              - (lng * METERS_PER_DEGREE * slope_ew_pct / 100)

    At lat=0, lng=0: elevation = base_elev
    Going south (negative lat): elevation drops if slope_ns > 0
    Going east (positive lng): elevation drops if slope_ew > 0

    Failure injection:
        fail_calls: Number of initial calls that raise ElevationServiceError
        retryable: Whether injected failures are retryable
        missing_if: Predicate selecting points returned without elevation
    """

    def __init__(
        self,
        base_elevation: float = 1000.0,
        slope_ns_pct: float = 0.0,
        slope_ew_pct: float = 0.0,
        fail_calls: int = 0,
        retryable: bool = True,
        missing_if=None,
    ) -> None:
        self.base_elevation = base_elevation
        self.slope_ns_pct = slope_ns_pct
        self.slope_ew_pct = slope_ew_pct
        self.fail_calls = fail_calls
        self.retryable = retryable
        self.missing_if = missing_if
        self.calls = 0
        self.points_requested = 0

    def elevation_at(self, point: GeoPoint) -> float:
        north_m = point.lat * METERS_PER_DEGREE
        east_m = point.lng * METERS_PER_DEGREE
        return self.base_elevation + north_m * self.slope_ns_pct / 100 - east_m * self.slope_ew_pct / 100

    def sample_elevations(self, points: Sequence[GeoPoint]) -> list[ElevationSample]:
        self.calls += 1
        if self.calls <= self.fail_calls:
            raise ElevationServiceError("mock service unavailable", retryable=self.retryable)
        self.points_requested += len(points)

        samples = []
        for point in points:
            elevation: Optional[float] = self.elevation_at(point=point)
            if self.missing_if is not None and self.missing_if(point):
                elevation = None
            samples.append(ElevationSample(point=point, elevation_m=elevation))
        return samples


class RecordingSleep:
    """Injectable sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def engine() -> PolygonGeometryEngine:
    return PolygonGeometryEngine()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def flat_sampler() -> MockElevationSampler:
    """Flat terrain at 1000m."""
    return MockElevationSampler(base_elevation=1000.0)


@pytest.fixture
def south_facing_sampler() -> MockElevationSampler:
    """Terrain dropping 10% towards the south."""
    return MockElevationSampler(base_elevation=1000.0, slope_ns_pct=10.0)


@pytest.fixture
def boundary_ring() -> tuple[GeoPoint, ...]:
    """200m x 200m square, SW corner at (0, 0)."""
    return rect(0, 0, 200, 200)


@pytest.fixture
def boundary(boundary_ring: tuple[GeoPoint, ...]) -> Shape:
    return make_shape(shape_id="B1", ring=boundary_ring, meta=BoundaryMeta())


@pytest.fixture
def residential_zone() -> Shape:
    """50m x 50m residential zone in the SW corner of the boundary."""
    return make_shape(shape_id="Z1", ring=rect(10, 10, 60, 60), meta=ZoneMeta(name="Lots", kind="residential"))
