"""Coordinate conversions, precision handling and geodesic helpers.

Provides:
- World-space projection (Web-Mercator style) for 3D viewers
- Coordinate validation and normalization (total, never raises)
- Precision rounding per value kind (coordinate / elevation / measurement)
- Great-circle distance, initial bearing and destination point (R = 6,371 km)
- Local planar frames (transverse Mercator via pyproj) for metric polygon operations

Coordinates are WGS84 decimal degrees. Functions that take points accept any
object with ``lat`` and ``lng`` attributes (GeoPoint in practice).
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from math import asin, atan, atan2, cos, degrees, isfinite, log, pi, radians, sin, sinh, sqrt, tan
from typing import Iterable, Protocol, Sequence

import pyproj
from shapely.ops import transform as shapely_transform

from site_planner.constants import PrecisionConfig, WorldConfig

# Earth's radius in meters (WGS84 spherical approximation)
EARTH_RADIUS_M = 6_371_000


class LatLng(Protocol):
    """Anything carrying a latitude and longitude in decimal degrees."""

    lat: float
    lng: float


class PrecisionKind(str, Enum):
    """Value kinds with their own rounding precision."""

    COORDINATE = "coordinate"
    ELEVATION = "elevation"
    MEASUREMENT = "measurement"


_DECIMAL_PLACES = {
    PrecisionKind.COORDINATE: PrecisionConfig.COORDINATE_DP,
    PrecisionKind.ELEVATION: PrecisionConfig.ELEVATION_DP,
    PrecisionKind.MEASUREMENT: PrecisionConfig.MEASUREMENT_DP,
}
assert set(_DECIMAL_PLACES) == set(PrecisionKind)


@dataclass(frozen=True)
class Vector3:
    """World-space position. ``y`` carries elevation, ``x``/``z`` the projected plane."""

    x: float
    y: float
    z: float


class CoordinateSystem:
    """Static methods for coordinate conversion and geodesic math.

    Example:
        world = CoordinateSystem.lng_lat_to_world(lng=10.3, lat=46.98, elevation=2400.0)
        lng, lat, elevation = CoordinateSystem.world_to_lng_lat(world)
    """

    CRS = WorldConfig.CRS
    WORLD_SIZE = WorldConfig.WORLD_SIZE
    EARTH_RADIUS_M = EARTH_RADIUS_M

    # =========================================================================
    # Precision
    # =========================================================================

    @staticmethod
    def round_to_precision(value: float, kind: PrecisionKind | str) -> float:
        """Round a value to the fixed number of decimals for its kind.

        Non-finite values are passed through unchanged.

        Args:
            value: Value to round
            kind: "coordinate" (8 dp), "elevation" (2 dp) or "measurement" (3 dp)

        Returns:
            Rounded value.
        """
        if not isfinite(value):
            return value
        return round(value, _DECIMAL_PLACES[PrecisionKind(kind)])

    # =========================================================================
    # Validation and normalization
    # =========================================================================

    @staticmethod
    def validate_coordinate(lng: float, lat: float) -> bool:
        """Check that a coordinate is finite and inside the WGS84 ranges."""
        if not (isfinite(lng) and isfinite(lat)):
            return False
        return -180 <= lng <= 180 and -90 <= lat <= 90

    @staticmethod
    def normalize_coordinate(lng: float, lat: float) -> tuple[float, float]:
        """Wrap longitude into [-180, 180) and clamp latitude into [-90, 90].

        Returns:
            Tuple (lng, lat).
        """
        lng = ((lng + 180) % 360) - 180
        lat = max(-90.0, min(90.0, lat))
        return lng, lat

    # =========================================================================
    # World space
    # =========================================================================

    @classmethod
    def lng_lat_to_world(cls, lng: float, lat: float, elevation: float = 0.0) -> Vector3:
        """Project (lng, lat) into world space with elevation on the vertical axis.

        Args:
            lng: Longitude in decimal degrees
            lat: Latitude in decimal degrees
            elevation: Elevation in meters, passed through on ``y``

        Returns:
            Vector3 with x/z in [0, WORLD_SIZE]. Latitudes beyond
            WorldConfig.MAX_MERCATOR_LAT are clamped to the edge of the plane.
        """
        lng, lat = cls.normalize_coordinate(lng=lng, lat=lat)
        lat = max(-WorldConfig.MAX_MERCATOR_LAT, min(WorldConfig.MAX_MERCATOR_LAT, lat))
        lat_rad = radians(lat)

        x = (lng + 180) / 360
        z = (1 - log(tan(lat_rad) + 1 / cos(lat_rad)) / pi) / 2
        # The limit latitude rounds a hair past the plane edge
        z = max(0.0, min(1.0, z))

        return Vector3(
            x=cls.round_to_precision(x * cls.WORLD_SIZE, PrecisionKind.COORDINATE),
            y=cls.round_to_precision(elevation, PrecisionKind.ELEVATION),
            z=cls.round_to_precision(z * cls.WORLD_SIZE, PrecisionKind.COORDINATE),
        )

    @classmethod
    def world_to_lng_lat(cls, position: Vector3) -> tuple[float, float, float]:
        """Inverse of lng_lat_to_world.

        Returns:
            Tuple (lng, lat, elevation).
        """
        x = position.x / cls.WORLD_SIZE
        z = position.z / cls.WORLD_SIZE

        lng = x * 360 - 180
        lat = degrees(atan(sinh(pi * (1 - 2 * z))))

        return (
            cls.round_to_precision(lng, PrecisionKind.COORDINATE),
            cls.round_to_precision(lat, PrecisionKind.COORDINATE),
            cls.round_to_precision(position.y, PrecisionKind.ELEVATION),
        )

    # =========================================================================
    # Geodesic helpers
    # =========================================================================

    @staticmethod
    def distance_m(a: LatLng, b: LatLng) -> float:
        """Great-circle (haversine) distance between two points in meters."""
        dlat = radians(b.lat - a.lat)
        dlng = radians(b.lng - a.lng)
        h = sin(dlat / 2) ** 2 + cos(radians(a.lat)) * cos(radians(b.lat)) * sin(dlng / 2) ** 2
        return EARTH_RADIUS_M * 2 * atan2(sqrt(h), sqrt(1 - h))

    @staticmethod
    def initial_bearing_deg(a: LatLng, b: LatLng) -> float:
        """Compass bearing from a to b (0-360, clockwise from North)."""
        lat1, lat2 = radians(a.lat), radians(b.lat)
        dlng = radians(b.lng - a.lng)
        y = sin(dlng) * cos(lat2)
        x = cos(lat1) * sin(lat2) - sin(lat1) * cos(lat2) * cos(dlng)
        return (degrees(atan2(y, x)) + 360) % 360

    @staticmethod
    def destination(origin: LatLng, bearing_deg: float, distance_m: float) -> tuple[float, float]:
        """Point reached from origin after distance_m along bearing_deg.

        Returns:
            Tuple (lng, lat) in decimal degrees.
        """
        brng = radians(bearing_deg)
        lat1 = radians(origin.lat)
        lng1 = radians(origin.lng)
        d_r = distance_m / EARTH_RADIUS_M

        lat2 = asin(sin(lat1) * cos(d_r) + cos(lat1) * sin(d_r) * cos(brng))
        lng2 = lng1 + atan2(sin(brng) * sin(d_r) * cos(lat1), cos(d_r) - sin(lat1) * sin(lat2))
        return degrees(lng2), degrees(lat2)


# Geographic and local projections share the spherical earth used by the
# geodesic helpers, so planar lengths agree with haversine distances.
_SPHERE_GEOGRAPHIC = f"+proj=longlat +R={EARTH_RADIUS_M} +no_defs"


@lru_cache(maxsize=64)
def _transformers(origin_lng: float, origin_lat: float) -> tuple[pyproj.Transformer, pyproj.Transformer]:
    geographic = pyproj.CRS.from_proj4(_SPHERE_GEOGRAPHIC)
    local = pyproj.CRS.from_proj4(
        f"+proj=tmerc +lat_0={origin_lat} +lon_0={origin_lng} +k=1 +x_0=0 +y_0=0 "
        f"+R={EARTH_RADIUS_M} +units=m +no_defs"
    )
    forward = pyproj.Transformer.from_crs(geographic, local, always_xy=True)
    inverse = pyproj.Transformer.from_crs(local, geographic, always_xy=True)
    return forward, inverse


class PlanarFrame:
    """Local metric frame shared by all geometries of one operation.

    A transverse Mercator projection centered on the geometry, with unit
    scale at its origin. Distortion stays far below the rounding precision
    for site-sized geometries. All rings taking part in a boolean or offset
    operation must be projected through the same frame.

    Example:
        frame = PlanarFrame.for_points(ring)
        polygon_xy = frame.project(Polygon(frame.lng_lat(ring)))
    """

    def __init__(self, origin_lng: float, origin_lat: float) -> None:
        self.origin_lng = round(origin_lng, 6)
        self.origin_lat = round(origin_lat, 6)
        self._forward, self._inverse = _transformers(self.origin_lng, self.origin_lat)

    @classmethod
    def for_points(cls, points: Iterable[LatLng]) -> "PlanarFrame":
        """Frame centered on the mean position of the points."""
        pts = list(points)
        if not pts:
            raise ValueError("PlanarFrame.for_points requires at least one point")
        mean_lng = sum(p.lng for p in pts) / len(pts)
        mean_lat = sum(p.lat for p in pts) / len(pts)
        return cls(origin_lng=mean_lng, origin_lat=mean_lat)

    @staticmethod
    def lng_lat(points: Sequence[LatLng]) -> list[tuple[float, float]]:
        """(lng, lat) tuples in shapely/GeoJSON order."""
        return [(p.lng, p.lat) for p in points]

    def to_xy(self, lng: float, lat: float) -> tuple[float, float]:
        """Project a single coordinate into the frame (meters east, meters north)."""
        return self._forward.transform(lng, lat)

    def to_lng_lat(self, x: float, y: float) -> tuple[float, float]:
        """Unproject a single planar coordinate back to (lng, lat)."""
        return self._inverse.transform(x, y)

    def project(self, geometry):
        """Project a shapely geometry in (lng, lat) into the frame."""
        return shapely_transform(self._forward.transform, geometry)

    def unproject(self, geometry):
        """Unproject a planar shapely geometry back to (lng, lat)."""
        return shapely_transform(self._inverse.transform, geometry)

    def __repr__(self) -> str:
        return f"PlanarFrame(origin=({self.origin_lng}, {self.origin_lat}))"
