"""Grid-based terrain analysis for site planning.

Partitions the planar bounding box of one shape into square cells and
derives per-cell slope and aspect from sampled elevations:
- Lattice sampling: cell corners are shared between neighbours, plus one center per cell
- Slope: maximum percent grade between any two of a cell's five sample points
- Aspect: compass bearing from the higher to the lower point of that steepest pair
- Missing samples mark the cell non-finite instead of aborting the grid

The grid stays rectangular: cells outside the shape's ring are kept and left
to the renderer.
"""

import logging
import time
from dataclasses import dataclass, field
from itertools import combinations
from math import ceil, isfinite
from typing import Callable, Optional, Sequence

import numpy as np

from site_planner.constants import ElevationConfig, SlopeConfig
from site_planner.core.coordinate_system import CoordinateSystem, PlanarFrame, PrecisionKind
from site_planner.core.elevation_service import ElevationSampler, RetryPolicy, sample_with_retry
from site_planner.core.polygon_engine import PolygonGeometryEngine
from site_planner.errors import AnalysisCancelled, ElevationServiceError
from site_planner.model.elevation_grid import ElevationGrid, ElevationGridCell, is_steep
from site_planner.model.geo_point import GeoPoint
from site_planner.model.shape import Shape

logger = logging.getLogger(__name__)

# Cell sample points as (x, y) offsets in units of resolution from the SW corner
# Order: NW, NE, SE, SW, center
_CELL_POINT_OFFSETS = np.array([(0.0, 1.0), (1.0, 1.0), (1.0, 0.0), (0.0, 0.0), (0.5, 0.5)])
_CELL_POINT_PAIRS = list(combinations(range(len(_CELL_POINT_OFFSETS)), 2))


@dataclass(frozen=True)
class GridAnalysisConfig:
    """Parameters of an elevation grid computation.

    Attributes:
        resolution_m: Default cell edge length
        max_cells: Upper bound on cells per grid
        batch_size: Points per sampling request
        retry_policy: Backoff for retryable sampling failures
    """

    resolution_m: float = ElevationConfig.DEFAULT_RESOLUTION_M
    max_cells: int = ElevationConfig.MAX_GRID_CELLS
    batch_size: int = ElevationConfig.BATCH_SIZE
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)


class ElevationGridAnalyzer:
    """Turns one shape plus an elevation sampler into a classified grid.

    Example:
        analyzer = ElevationGridAnalyzer(sampler=DEMService())
        grid = analyzer.analyze(shape=boundary, resolution_m=10.0)
        stats = grid.statistics(threshold_pct=8.0)
    """

    def __init__(
        self,
        sampler: ElevationSampler,
        config: GridAnalysisConfig = GridAnalysisConfig(),
        engine: Optional[PolygonGeometryEngine] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.sampler = sampler
        self.config = config
        self.engine = engine or PolygonGeometryEngine()
        self._sleep = sleep

    @staticmethod
    def classify_steep(slope_pct: float, threshold_pct: float = SlopeConfig.DEFAULT_STEEPNESS_THRESHOLD_PCT) -> bool:
        """Pure steep/flat classification; non-finite slopes are never steep."""
        return is_steep(slope_pct=slope_pct, threshold_pct=threshold_pct)

    @staticmethod
    def grid_dimensions(width_m: float, height_m: float, resolution_m: float) -> tuple[int, int]:
        """Columns and rows needed to cover a width x height box.

        An overshoot below GRID_EDGE_TOLERANCE_M (coordinate rounding) does not
        add a row or column.
        """
        tolerance = ElevationConfig.GRID_EDGE_TOLERANCE_M
        columns = max(1, ceil((width_m - tolerance) / resolution_m))
        rows = max(1, ceil((height_m - tolerance) / resolution_m))
        return columns, rows

    def analyze(
        self,
        shape: Shape,
        resolution_m: Optional[float] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> ElevationGrid:
        """Compute the elevation grid for a shape.

        Args:
            shape: Shape whose bounding box is analyzed
            resolution_m: Cell edge length in meters (defaults to config)
            is_cancelled: Polled between sampling batches; returning True abandons the computation

        Returns:
            ElevationGrid with cells in row-major order (row 0 at the north edge).

        Raises:
            ValueError: Resolution outside the allowed range or too many cells.
            GeometryError: Degenerate shape ring.
            AnalysisCancelled: is_cancelled() returned True.
        """
        resolution = self.config.resolution_m if resolution_m is None else resolution_m
        if not (
            isfinite(resolution)
            and ElevationConfig.MIN_RESOLUTION_M <= resolution <= ElevationConfig.MAX_RESOLUTION_M
        ):
            raise ValueError(
                f"Resolution must be between {ElevationConfig.MIN_RESOLUTION_M:g} and "
                f"{ElevationConfig.MAX_RESOLUTION_M:g} m, got {resolution}"
            )
        self.engine.validate_ring(ring=shape.ring, operation="analyze", shape_id=shape.id)

        frame = PlanarFrame.for_points(shape.ring)
        xy = np.array([frame.to_xy(lng=p.lng, lat=p.lat) for p in shape.ring])
        min_x, min_y = xy.min(axis=0)
        max_x, max_y = xy.max(axis=0)
        columns, rows = self.grid_dimensions(
            width_m=max_x - min_x, height_m=max_y - min_y, resolution_m=resolution
        )
        if columns * rows > self.config.max_cells:
            raise ValueError(
                f"Grid of {columns}x{rows} cells exceeds the limit of {self.config.max_cells}; "
                f"use a coarser resolution than {resolution:g} m"
            )

        logger.info(f"Analyzing {shape.id}: {rows}x{columns} cells at {resolution:g}m")

        # Corner lattice (rows+1 x columns+1), row 0 at the north edge
        top = min_y + rows * resolution
        lattice_x = min_x + np.arange(columns + 1) * resolution
        lattice_y = top - np.arange(rows + 1) * resolution
        corner_points = [
            [self._to_point(frame=frame, x=x, y=y) for x in lattice_x] for y in lattice_y
        ]
        center_points = [
            [self._to_point(frame=frame, x=x + resolution / 2, y=y - resolution / 2) for x in lattice_x[:-1]]
            for y in lattice_y[:-1]
        ]

        requested = [p for row in corner_points for p in row] + [p for row in center_points for p in row]
        elevations = self._sample(points=requested, is_cancelled=is_cancelled)

        corner_elev = np.array([[elevations[p] for p in row] for row in corner_points], dtype=float)
        center_elev = np.array([[elevations[p] for p in row] for row in center_points], dtype=float)

        slope, aspect = self._slope_and_aspect(
            corner_elev=corner_elev, center_elev=center_elev, resolution_m=resolution
        )

        cells = []
        for r in range(rows):
            for c in range(columns):
                cells.append(
                    ElevationGridCell(
                        row=r,
                        col=c,
                        ring=(
                            corner_points[r][c],
                            corner_points[r][c + 1],
                            corner_points[r + 1][c + 1],
                            corner_points[r + 1][c],
                        ),
                        center=center_points[r][c],
                        slope_pct=CoordinateSystem.round_to_precision(float(slope[r, c]), PrecisionKind.MEASUREMENT),
                        aspect_deg=CoordinateSystem.round_to_precision(
                            float(aspect[r, c]), PrecisionKind.MEASUREMENT
                        ),
                        elevation_m=CoordinateSystem.round_to_precision(
                            float(center_elev[r, c]), PrecisionKind.ELEVATION
                        ),
                    )
                )

        finite_slopes = slope[np.isfinite(slope)]
        all_elev = np.concatenate([corner_elev.ravel(), center_elev.ravel()])
        finite_elev = all_elev[np.isfinite(all_elev)]

        grid = ElevationGrid(
            shape_id=shape.id,
            resolution_m=resolution,
            columns=columns,
            rows=rows,
            cells=tuple(cells),
            min_slope=self._rounded_extreme(finite_slopes, np.min, default=0.0),
            max_slope=self._rounded_extreme(finite_slopes, np.max, default=0.0),
            min_elevation=self._rounded_extreme(finite_elev, np.min, default=float("nan")),
            max_elevation=self._rounded_extreme(finite_elev, np.max, default=float("nan")),
        )

        missing = len(cells) - int(finite_slopes.size)
        if missing:
            logger.warning(f"Grid for {shape.id}: {missing}/{len(cells)} cell(s) without complete elevation data")
        logger.info(f"Grid for {shape.id} complete: slope {grid.min_slope:.1f}-{grid.max_slope:.1f}%")
        return grid

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _to_point(frame: PlanarFrame, x: float, y: float) -> GeoPoint:
        lng, lat = frame.to_lng_lat(x=float(x), y=float(y))
        return GeoPoint(
            lat=CoordinateSystem.round_to_precision(lat, PrecisionKind.COORDINATE),
            lng=CoordinateSystem.round_to_precision(lng, PrecisionKind.COORDINATE),
        )

    @staticmethod
    def _rounded_extreme(values: np.ndarray, reducer, default: float) -> float:
        if values.size == 0:
            return default
        return CoordinateSystem.round_to_precision(float(reducer(values)), PrecisionKind.MEASUREMENT)

    def _sample(
        self,
        points: Sequence[GeoPoint],
        is_cancelled: Optional[Callable[[], bool]],
    ) -> dict[GeoPoint, float]:
        """Sample points in batches. Failed batches and missing values become NaN."""
        elevations: dict[GeoPoint, float] = {}
        batch_size = self.config.batch_size

        for start in range(0, len(points), batch_size):
            if is_cancelled is not None and is_cancelled():
                raise AnalysisCancelled(f"Grid computation cancelled after {start}/{len(points)} points")

            batch = points[start : start + batch_size]
            try:
                samples = sample_with_retry(
                    sampler=self.sampler, points=batch, policy=self.config.retry_policy, sleep=self._sleep
                )
            except ElevationServiceError as e:
                logger.warning(f"Marking {len(batch)} point(s) as missing after sampling failure: {e}")
                samples = []

            for sample in samples:
                if sample.elevation_m is not None and isfinite(sample.elevation_m):
                    elevations[sample.point] = float(sample.elevation_m)

        if is_cancelled is not None and is_cancelled():
            raise AnalysisCancelled("Grid computation cancelled after sampling")

        return {p: elevations.get(p, float("nan")) for p in points}

    @staticmethod
    def _slope_and_aspect(
        corner_elev: np.ndarray,
        center_elev: np.ndarray,
        resolution_m: float,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Per-cell maximum pairwise grade and its descent bearing.

        Args:
            corner_elev: (rows+1, columns+1) corner elevations
            center_elev: (rows, columns) center elevations
            resolution_m: Cell edge length

        Returns:
            (slope_pct, aspect_deg) arrays of shape (rows, columns). Cells with
            any missing sample are NaN in both; flat cells have aspect 0.
        """
        # Stack the five points per cell in _CELL_POINT_OFFSETS order
        points = np.stack(
            [
                corner_elev[:-1, :-1],  # NW
                corner_elev[:-1, 1:],  # NE
                corner_elev[1:, 1:],  # SE
                corner_elev[1:, :-1],  # SW
                center_elev,
            ]
        )

        grades = []
        bearings = []
        for i, j in _CELL_POINT_PAIRS:
            dx, dy = (_CELL_POINT_OFFSETS[j] - _CELL_POINT_OFFSETS[i]) * resolution_m
            run = float(np.hypot(dx, dy))
            rise = points[i] - points[j]
            grades.append(np.abs(rise) / run * 100)
            # Descent direction points from i to j when i is higher, else from j to i
            sign = np.where(rise >= 0, 1.0, -1.0)
            bearings.append((np.degrees(np.arctan2(sign * dx, sign * dy)) + 360) % 360)

        grades = np.stack(grades)
        bearings = np.stack(bearings)

        missing = ~np.all(np.isfinite(points), axis=0)
        safe_grades = np.where(np.isfinite(grades), grades, -1.0)
        steepest = np.argmax(safe_grades, axis=0)

        slope = np.take_along_axis(safe_grades, steepest[np.newaxis], axis=0)[0]
        aspect = np.take_along_axis(bearings, steepest[np.newaxis], axis=0)[0]
        aspect = np.where(slope > 0, aspect, 0.0)

        slope = np.where(missing, np.nan, slope)
        aspect = np.where(missing, np.nan, aspect)
        return slope, aspect
