"""Digital Elevation Model (DEM) service for terrain elevation queries.

Provides singleton access to a local GeoTIFF DEM:
- Fast O(1) elevation lookup using pre-loaded NumPy array
- Automatic coordinate transformation from WGS84 to DEM's native CRS
- Batch sampling for the elevation grid analyzer
- Thread-safe lazy loading

Any single-band GeoTIFF works, e.g. SRTM, Copernicus GLO-30 or EuroDEM tiles.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import rasterio
from rasterio.warp import transform

from site_planner.constants import DEMConfig, WorldConfig
from site_planner.core.elevation_service import ElevationSample
from site_planner.model.geo_point import GeoPoint

logger = logging.getLogger(__name__)


class DEMService:
    """Singleton service for elevation sampling from a GeoTIFF DEM.

    Uses the singleton pattern to ensure only one DEM file is loaded into memory.
    The DEM array is loaded on first access and cached for fast subsequent queries.

    Example:
        dem = DEMService(dem_path=Path("data/dem.tif"))
        elevation = dem.get_elevation(lon=10.295, lat=46.985)
        samples = dem.sample_elevations(points=ring)
    """

    _instance: Optional["DEMService"] = None
    _load_lock = threading.Lock()
    _dem = None
    _dem_crs: Optional[str] = None
    _dem_array: Optional[np.ndarray] = None
    _dem_transform = None
    _dem_nodata = None

    def __new__(cls, dem_path: Optional[Path] = None) -> "DEMService":
        """Create or return the singleton instance.

        Args:
            dem_path: Optional path to DEM file (uses DEMConfig.DEM_PATH by default)

        Returns:
            The singleton DEMService instance.
        """
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._dem_path = Path(dem_path) if dem_path else DEMConfig.DEM_PATH
        elif dem_path is not None and Path(dem_path) != cls._instance._dem_path:
            logger.warning(
                f"DEMService already uses {cls._instance._dem_path}; ignoring requested DEM {dem_path}"
            )
        return cls._instance

    @property
    def is_loaded(self) -> bool:
        """Check if DEM data has been fully loaded into memory."""
        return self._dem_transform is not None

    def _ensure_loaded(self) -> None:
        """Load DEM into memory on first access (thread-safe)."""
        if self.is_loaded:
            return

        with self._load_lock:
            # Double-check after acquiring lock
            if self.is_loaded:
                return

            dem_path = self._dem_path
            if not dem_path.exists():
                raise FileNotFoundError(f"DEM file not found at {dem_path}")

            logger.info(f"Loading DEM from {dem_path}...")
            start_time = time.time()

            self._dem = rasterio.open(dem_path)
            self._dem_crs = self._dem.crs.to_string() if self._dem.crs else WorldConfig.CRS
            self._dem_array = self._dem.read(1)
            self._dem_nodata = self._dem.nodata
            # Set _dem_transform LAST - this is what is_loaded checks
            self._dem_transform = self._dem.transform

            elapsed = time.time() - start_time
            logger.info(f"DEM loaded in {elapsed:.2f}s (shape: {self._dem_array.shape}, CRS: {self._dem_crs})")

    def _lookup(self, x: float, y: float) -> float | None:
        """Read the array cell under a DEM-CRS coordinate."""
        col, row = ~self._dem_transform * (x, y)
        col, row = int(np.floor(col)), int(np.floor(row))

        if row < 0 or row >= self._dem_array.shape[0] or col < 0 or col >= self._dem_array.shape[1]:
            return None

        elev = self._dem_array[row, col]
        if self._dem_nodata is not None and elev == self._dem_nodata:
            return None
        if np.isnan(elev):
            return None
        return float(elev)

    def get_elevation(self, lon: float, lat: float) -> float | None:
        """Get elevation at a single point using direct NumPy array lookup.

        Args:
            lon: Longitude in decimal degrees (WGS84)
            lat: Latitude in decimal degrees (WGS84)

        Returns:
            Elevation in meters, or None if outside coverage or invalid.
        """
        self._ensure_loaded()

        if self._dem_crs != WorldConfig.CRS:
            proj_coords = transform(WorldConfig.CRS, self._dem_crs, [lon], [lat])
            x, y = proj_coords[0][0], proj_coords[1][0]
        else:
            x, y = lon, lat

        elev = self._lookup(x=x, y=y)
        if elev is None:
            logger.warning(f"No DEM elevation at lon={lon}, lat={lat}")
        return elev

    def sample_elevations(self, points: Sequence[GeoPoint]) -> list[ElevationSample]:
        """Sample a batch of points with one CRS transformation.

        Points outside coverage or on no-data cells are returned as missing.
        """
        self._ensure_loaded()
        if not points:
            return []

        lons = [p.lng for p in points]
        lats = [p.lat for p in points]
        if self._dem_crs != WorldConfig.CRS:
            xs, ys = transform(WorldConfig.CRS, self._dem_crs, lons, lats)
        else:
            xs, ys = lons, lats

        samples = [
            ElevationSample(point=point, elevation_m=self._lookup(x=x, y=y)) for point, x, y in zip(points, xs, ys)
        ]
        missing = sum(1 for s in samples if s.is_missing)
        if missing:
            logger.warning(f"DEM has no value for {missing}/{len(points)} sampled point(s)")
        return samples

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Return (west, south, east, north) bounds in WGS84.

        Returns:
            Tuple of (min_lon, min_lat, max_lon, max_lat) in decimal degrees.
        """
        self._ensure_loaded()
        b = self._dem.bounds

        if self._dem_crs != WorldConfig.CRS:
            corners_x = [b.left, b.right, b.left, b.right]
            corners_y = [b.bottom, b.bottom, b.top, b.top]
            lons, lats = transform(self._dem_crs, WorldConfig.CRS, corners_x, corners_y)
            return min(lons), min(lats), max(lons), max(lats)

        return b.left, b.bottom, b.right, b.top
