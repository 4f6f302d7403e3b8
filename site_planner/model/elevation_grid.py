"""ElevationGrid - Classified terrain grid computed for one shape.

The grid is rectangular and index-addressable: it covers the bounding box of
the analyzed shape, including cells that fall outside its ring. Cells whose
samples are missing keep their position with a non-finite slope and are left
out of all aggregates.

Steep/flat classification is a pure function of (slope, threshold) and is
never stored in a cell, so changing the threshold needs no recomputation.
"""

from dataclasses import dataclass
from math import isfinite

import numpy as np

from site_planner.constants import StyleConfig
from site_planner.model.geo_point import GeoPoint


def is_steep(slope_pct: float, threshold_pct: float) -> bool:
    """Classify a slope against a steepness threshold.

    Flat means slope <= threshold. Non-finite slopes are neither steep nor flat.
    """
    if not isfinite(slope_pct):
        return False
    return slope_pct > threshold_pct


@dataclass(frozen=True)
class ElevationGridCell:
    """One grid cell.

    Attributes:
        row: Row index, 0 at the northern edge
        col: Column index, 0 at the western edge
        ring: Cell rectangle corners (NW, NE, SE, SW)
        center: Cell center point
        slope_pct: Maximum percent grade inside the cell, NaN if samples are missing
        aspect_deg: Compass bearing of steepest descent (0-360), NaN if undefined
        elevation_m: Center elevation in meters, NaN if missing
    """

    row: int
    col: int
    ring: tuple[GeoPoint, ...]
    center: GeoPoint
    slope_pct: float
    aspect_deg: float
    elevation_m: float

    @property
    def has_data(self) -> bool:
        return isfinite(self.slope_pct)

    def is_steep(self, threshold_pct: float) -> bool:
        return is_steep(slope_pct=self.slope_pct, threshold_pct=threshold_pct)

    def color(self, threshold_pct: float) -> str:
        """Display color for the renderer."""
        if not self.has_data:
            return StyleConfig.MISSING_CELL_COLOR
        if self.is_steep(threshold_pct=threshold_pct):
            return StyleConfig.STEEP_CELL_COLOR
        return StyleConfig.FLAT_CELL_COLOR


@dataclass(frozen=True)
class SlopeStatistics:
    """Aggregate slope classification for one threshold.

    Percentages are relative to cells with data. All values are 0 when no
    cell has data.
    """

    threshold_pct: float
    total_count: int
    finite_count: int
    missing_count: int
    steep_count: int
    flat_count: int
    steep_pct: float
    flat_pct: float
    mean_slope_pct: float

    @property
    def is_empty(self) -> bool:
        return self.finite_count == 0


@dataclass(frozen=True)
class ElevationGrid:
    """Elevation and slope grid over the bounding box of one shape.

    Attributes:
        shape_id: ID of the analyzed shape
        resolution_m: Cell edge length in meters
        columns: Number of cells west to east
        rows: Number of cells north to south
        cells: Cells in row-major order
        min_slope: Minimum finite slope (0 if none)
        max_slope: Maximum finite slope (0 if none)
        min_elevation: Minimum sampled elevation (NaN if none)
        max_elevation: Maximum sampled elevation (NaN if none)
    """

    shape_id: str
    resolution_m: float
    columns: int
    rows: int
    cells: tuple[ElevationGridCell, ...]
    min_slope: float
    max_slope: float
    min_elevation: float
    max_elevation: float

    def __post_init__(self) -> None:
        if len(self.cells) != self.columns * self.rows:
            raise ValueError(f"Grid has {len(self.cells)} cells, expected {self.columns} x {self.rows}")

    def cell_at(self, row: int, col: int) -> ElevationGridCell:
        if not (0 <= row < self.rows and 0 <= col < self.columns):
            raise IndexError(f"Cell ({row}, {col}) outside {self.rows} x {self.columns} grid")
        return self.cells[row * self.columns + col]

    def steep_cells(self, threshold_pct: float) -> list[ElevationGridCell]:
        return [cell for cell in self.cells if cell.is_steep(threshold_pct=threshold_pct)]

    def statistics(self, threshold_pct: float) -> SlopeStatistics:
        """Classify all cells against a threshold and aggregate the result."""
        slopes = np.array([cell.slope_pct for cell in self.cells], dtype=float)
        finite = slopes[np.isfinite(slopes)]
        finite_count = int(finite.size)
        steep_count = int(np.count_nonzero(finite > threshold_pct))
        flat_count = finite_count - steep_count

        if finite_count == 0:
            return SlopeStatistics(
                threshold_pct=threshold_pct,
                total_count=len(self.cells),
                finite_count=0,
                missing_count=len(self.cells),
                steep_count=0,
                flat_count=0,
                steep_pct=0.0,
                flat_pct=0.0,
                mean_slope_pct=0.0,
            )

        return SlopeStatistics(
            threshold_pct=threshold_pct,
            total_count=len(self.cells),
            finite_count=finite_count,
            missing_count=len(self.cells) - finite_count,
            steep_count=steep_count,
            flat_count=flat_count,
            steep_pct=steep_count / finite_count * 100,
            flat_pct=flat_count / finite_count * 100,
            mean_slope_pct=float(finite.mean()),
        )

    def __repr__(self) -> str:
        return (
            f"ElevationGrid(shape={self.shape_id!r}, {self.rows}x{self.columns} @ {self.resolution_m}m, "
            f"slope {self.min_slope:.1f}-{self.max_slope:.1f}%)"
        )
