"""Configuration constants for Site Planner.

All configurable parameters are centralized here for easy tuning.

Classes:
    EntityPrefixes: ID prefixes per shape kind
    PrecisionConfig: Rounding precision per value kind
    WorldConfig: Planar world-space projection parameters
    GeometryConfig: Ring validation, containment and buffer parameters
    ElevationConfig: Grid resolution, sampling batches and retry policy
    SlopeConfig: Steepness classification
    ZoneConfig: Zone placement rules and default zone-kind taxonomy
    DrawingConfig: Interactive drawing parameters
    StyleConfig: Display colors per shape kind
    DEMConfig: Elevation data file paths
    UnitConfig: Unit conversion factors for measurement formatting
    UndoConfig: Undo stack limits
"""

from pathlib import Path

# Package root directory (where site_planner/ lives)
PACKAGE_DIR = Path(__file__).parent

# Project root directory (parent of site_planner/)
PROJECT_ROOT = PACKAGE_DIR.parent

# Data directory outside package (DEM files, not shipped with package)
DATA_DIR = PROJECT_ROOT / "data"

# Output directory for saved projects and backups
OUTPUT_DIR = PROJECT_ROOT / "output"


class EntityPrefixes:
    """ID prefixes for shapes, one per shape kind."""

    BOUNDARY = "B"
    ZONE = "Z"
    BUFFER = "BUF"
    ASSET = "A"
    UNION_RESULT = "U"
    DIFFERENCE_RESULT = "D"


class PrecisionConfig:
    """Decimal places used when rounding geometry outputs."""

    COORDINATE_DP = 8  # ~1.1 mm at the equator
    ELEVATION_DP = 2  # 1 cm
    MEASUREMENT_DP = 3  # 1 mm


class WorldConfig:
    """Web-Mercator style world space used by 3D viewers."""

    WORLD_SIZE = 1_000_000  # 1M units across the full longitude range
    CRS = "EPSG:4326"

    # Latitudes beyond this map outside the square Web-Mercator plane
    MAX_MERCATOR_LAT = 85.05112878

    assert 0 < MAX_MERCATOR_LAT < 90, f"Invalid Mercator latitude limit {MAX_MERCATOR_LAT}."


class GeometryConfig:
    """Ring validation, containment and offset parameters."""

    MIN_RING_VERTICES = 3

    # Slack absorbed by contains() for projection and rounding noise
    CONTAINS_TOLERANCE_M = 0.05

    # Buffers are computed in a local UTM frame with shapely
    BUFFER_JOIN_STYLE = "round"
    BUFFER_QUAD_SEGS = 8
    BUFFER_MITRE_LIMIT = 5.0

    # Precision of the pole-of-inaccessibility search used for half-width (meters)
    HALF_WIDTH_TOLERANCE_M = 0.01

    # Components smaller than this are treated as slivers and ignored
    MIN_COMPONENT_AREA_M2 = 0.01


class ElevationConfig:
    """Elevation grid and sampling service parameters."""

    DEFAULT_RESOLUTION_M = 30.0
    MIN_RESOLUTION_M = 5.0
    MAX_RESOLUTION_M = 50.0

    # Extent overshoot ignored when counting cells (coordinate rounding is ~1 mm)
    GRID_EDGE_TOLERANCE_M = 0.01

    # Hard cap to keep sampling requests bounded
    MAX_GRID_CELLS = 40_000

    # Points per sampling request (Google Elevation API accepts 512)
    BATCH_SIZE = 256

    # Bounded exponential backoff for retryable sampling failures
    MAX_ATTEMPTS = 4
    BACKOFF_BASE_S = 0.5
    BACKOFF_FACTOR = 2.0
    MAX_TOTAL_WAIT_S = 10.0

    # HTTP sampler
    HTTP_TIMEOUT_S = 15.0
    OPEN_ELEVATION_URL = "https://api.open-elevation.com/api/v1/lookup"


class SlopeConfig:
    """Slope classification."""

    DEFAULT_STEEPNESS_THRESHOLD_PCT = 8.0
    MIN_STEEPNESS_THRESHOLD_PCT = 0.0
    MAX_STEEPNESS_THRESHOLD_PCT = 100.0


class ZoneConfig:
    """Zone placement rules and the default zone-kind taxonomy."""

    MIN_AREA_M2 = 100.0
    MIN_SEPARATION_M = 10.0
    OVERLAP_TOLERANCE_M2 = 1.0
    ALLOW_HOLES = False

    # Elongation (long side / short side of the minimum rotated rectangle)
    # at or above which a zone counts as narrow
    NARROW_ASPECT_RATIO = 3.0

    # Default taxonomy; replaceable via ZoneTaxonomy.from_yaml()
    DEFAULT_KINDS = {
        "residential": {
            "name": "Residential",
            "min_area_m2": 100.0,
            "max_aspect_ratio": NARROW_ASPECT_RATIO,
            "description": "Housing and residential development",
        },
        "commercial": {
            "name": "Commercial",
            "min_area_m2": 200.0,
            "max_aspect_ratio": NARROW_ASPECT_RATIO,
            "description": "Business and commercial development",
        },
        "green_space": {
            "name": "Green Space",
            "min_area_m2": 500.0,
            "description": "Parks, recreation, and natural areas",
        },
        "amenity": {
            "name": "Amenity",
            "min_area_m2": 100.0,
            "description": "Community facilities and public services",
        },
        "solar": {
            "name": "Solar",
            "min_area_m2": 1000.0,
            "max_aspect_ratio": 4.0,
            "description": "Solar panel installations",
        },
    }


assert all(
    kind["min_area_m2"] >= 0 for kind in ZoneConfig.DEFAULT_KINDS.values()
), "Zone kind minimum areas must be non-negative"


class DrawingConfig:
    """Interactive zone drawing parameters."""

    # Live metrics refresh cadence while drawing
    LIVE_METRICS_INTERVAL_S = 0.1


class StyleConfig:
    """Display colors per shape kind, consumed by the rendering layer."""

    SHAPE_COLORS = {
        "boundary": "#3B82F6",  # Blue
        "zone": "#8B5CF6",  # Violet
        "buffer": "#F59E0B",  # Amber
        "asset": "#6B7280",  # Gray
        "union_result": "#10B981",  # Emerald
        "difference_result": "#EF4444",  # Red
    }

    STEEP_CELL_COLOR = "#DC2626"
    FLAT_CELL_COLOR = "#16A34A"
    MISSING_CELL_COLOR = "#9CA3AF"


class DEMConfig:
    """Elevation data file paths."""

    # Any single-band GeoTIFF DEM; reprojected on the fly if not EPSG:4326
    DEM_PATH = DATA_DIR / "dem.tif"


class UnitConfig:
    """Unit conversion factors used when formatting measurements."""

    M2_PER_ACRE = 4046.86
    M2_PER_HECTARE = 10_000.0
    SQFT_PER_ACRE = 43_560.0
    FEET_PER_METER = 3.28084
    FEET_PER_MILE = 5280.0


class UndoConfig:
    """Undo stack limits."""

    MAX_UNDO_STACK_SIZE = 50
