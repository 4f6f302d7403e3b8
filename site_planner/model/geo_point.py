"""GeoPoint - The fundamental geometry atom for site planning.

A GeoPoint is a single WGS84 coordinate. Rings, shape outlines and grid cell
centers are all built from GeoPoints.

Used by:
- Shape (ring of GeoPoints)
- ElevationGridCell (cell ring and center)
- ZoneDrawSession (in-progress path)
"""

from dataclasses import dataclass
from math import isfinite

from site_planner.core.coordinate_system import CoordinateSystem


@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 coordinate in decimal degrees.

    Longitude is wrapped into [-180, 180) and latitude clamped into [-90, 90]
    on construction, so every GeoPoint satisfies the coordinate ranges.

    Attributes:
        lat: Latitude in decimal degrees
        lng: Longitude in decimal degrees

    Example:
        point = GeoPoint(lat=46.985, lng=10.295)
    """

    lat: float
    lng: float

    def __post_init__(self) -> None:
        """Reject non-finite values and normalize into the WGS84 ranges."""
        if not (isfinite(self.lat) and isfinite(self.lng)):
            raise ValueError(f"GeoPoint requires finite coordinates, got lat={self.lat}, lng={self.lng}")
        lng, lat = CoordinateSystem.normalize_coordinate(lng=self.lng, lat=self.lat)
        object.__setattr__(self, "lat", float(lat))
        object.__setattr__(self, "lng", float(lng))

    @property
    def lng_lat(self) -> tuple[float, float]:
        """Return (lng, lat) tuple - GeoJSON/Shapely order."""
        return (self.lng, self.lat)

    def distance_to(self, other: "GeoPoint") -> float:
        """Great-circle distance to another point in meters."""
        return CoordinateSystem.distance_m(a=self, b=other)

    def bearing_to(self, other: "GeoPoint") -> float:
        """Initial compass bearing towards another point (0-360)."""
        return CoordinateSystem.initial_bearing_deg(a=self, b=other)

    def offset(self, bearing_deg: float, distance_m: float) -> "GeoPoint":
        """Point reached after moving distance_m along bearing_deg."""
        lng, lat = CoordinateSystem.destination(origin=self, bearing_deg=bearing_deg, distance_m=distance_m)
        return GeoPoint(lat=lat, lng=lng)

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: dict) -> "GeoPoint":
        return cls(lat=float(data["lat"]), lng=float(data["lng"]))

    def __repr__(self) -> str:
        return f"GeoPoint(lat={self.lat:.6f}, lng={self.lng:.6f})"
