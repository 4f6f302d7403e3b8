"""Automatic terrain analysis of the selected shape.

The elevation grid is recomputed when exactly one analyzable shape (not an
asset) is selected, and again when that shape changes. Every trigger bumps a
generation counter; a computation still running for an older generation is
abandoned between sampling batches and its result discarded.

The steepness threshold is applied at read time (statistics(), steep cells),
so changing it never re-samples elevations.
"""

import logging
import threading
from typing import Optional, Sequence

from site_planner.constants import ElevationConfig, SlopeConfig
from site_planner.core.terrain_analyzer import ElevationGridAnalyzer
from site_planner.errors import AnalysisCancelled
from site_planner.model.elevation_grid import ElevationGrid, ElevationGridCell, SlopeStatistics
from site_planner.model.shape import Shape
from site_planner.model.shape_collection import ShapeCollection

logger = logging.getLogger(__name__)


class TerrainAnalysisCoordinator:
    """Keeps the elevation grid in sync with the selection.

    Example:
        coordinator = TerrainAnalysisCoordinator(analyzer=analyzer)
        grid = coordinator.on_selection_changed(snapshot=project.collection, selected_ids=["B1"])
        coordinator.set_threshold(threshold_pct=20.0)
        stats = coordinator.statistics()
    """

    def __init__(
        self,
        analyzer: ElevationGridAnalyzer,
        resolution_m: float = ElevationConfig.DEFAULT_RESOLUTION_M,
        threshold_pct: float = SlopeConfig.DEFAULT_STEEPNESS_THRESHOLD_PCT,
    ) -> None:
        self.analyzer = analyzer
        self.resolution_m = resolution_m
        self.threshold_pct = threshold_pct
        self.grid: Optional[ElevationGrid] = None
        self.analyzed_shape_id: Optional[str] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def invalidate(self) -> int:
        """Abandon any computation in flight (new drawing session, user cancel).

        Returns:
            The new generation.
        """
        with self._lock:
            self._generation += 1
            return self._generation

    # =========================================================================
    # Triggers
    # =========================================================================

    def on_selection_changed(self, snapshot: ShapeCollection, selected_ids: Sequence[str]) -> Optional[ElevationGrid]:
        """Recompute for a new selection.

        Returns:
            The new grid, or None if the selection is not exactly one
            analyzable shape or the computation was superseded.
        """
        generation = self.invalidate()
        shape = self._single_analyzable(snapshot=snapshot, selected_ids=selected_ids)
        if shape is None:
            self._clear()
            return None
        return self._analyze(shape=shape, generation=generation)

    def on_shape_changed(self, snapshot: ShapeCollection, shape_id: str) -> Optional[ElevationGrid]:
        """Recompute if the changed shape is the analyzed one; clear it if it was deleted."""
        if shape_id != self.analyzed_shape_id:
            return self.grid
        generation = self.invalidate()
        if shape_id not in snapshot:
            self._clear()
            return None
        return self._analyze(shape=snapshot.get(shape_id=shape_id), generation=generation)

    def set_resolution(self, resolution_m: float, snapshot: ShapeCollection) -> Optional[ElevationGrid]:
        self.resolution_m = resolution_m
        if self.analyzed_shape_id is None:
            return None
        return self.on_shape_changed(snapshot=snapshot, shape_id=self.analyzed_shape_id)

    def set_threshold(self, threshold_pct: float) -> None:
        """Change the steepness threshold (no recomputation)."""
        low, high = SlopeConfig.MIN_STEEPNESS_THRESHOLD_PCT, SlopeConfig.MAX_STEEPNESS_THRESHOLD_PCT
        if not low <= threshold_pct <= high:
            raise ValueError(f"Threshold must be within {low:g}-{high:g}%, got {threshold_pct}")
        self.threshold_pct = threshold_pct

    # =========================================================================
    # Results
    # =========================================================================

    def statistics(self) -> Optional[SlopeStatistics]:
        if self.grid is None:
            return None
        return self.grid.statistics(threshold_pct=self.threshold_pct)

    def steep_cells(self) -> list[ElevationGridCell]:
        if self.grid is None:
            return []
        return self.grid.steep_cells(threshold_pct=self.threshold_pct)

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _single_analyzable(snapshot: ShapeCollection, selected_ids: Sequence[str]) -> Optional[Shape]:
        if len(selected_ids) != 1 or selected_ids[0] not in snapshot:
            return None
        shape = snapshot.get(shape_id=selected_ids[0])
        return shape if shape.is_analyzable else None

    def _clear(self) -> None:
        self.grid = None
        self.analyzed_shape_id = None

    def _analyze(self, shape: Shape, generation: int) -> Optional[ElevationGrid]:
        # The old grid never outlives a failed or superseded recomputation
        with self._lock:
            self._clear()
            self.analyzed_shape_id = shape.id
        try:
            grid = self.analyzer.analyze(
                shape=shape,
                resolution_m=self.resolution_m,
                is_cancelled=lambda: self._generation != generation,
            )
        except AnalysisCancelled:
            logger.info(f"Terrain analysis of {shape.id} superseded (generation {generation})")
            return None

        with self._lock:
            if generation != self._generation:
                logger.info(f"Discarding stale terrain analysis of {shape.id} (generation {generation})")
                return None
            self.grid = grid
        logger.info(f"Terrain analysis of {shape.id}: {grid!r}")
        return grid
