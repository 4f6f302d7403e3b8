"""Live metrics of the in-progress drawing path.

Cosmetic only: the values shown while drawing never feed into validation.
Updates are throttled to DrawingConfig.LIVE_METRICS_INTERVAL_S so rapid
pointer moves do not recompute on every event.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from site_planner.constants import DrawingConfig
from site_planner.core.measurement import area_acres, format_area, format_distance
from site_planner.core.polygon_engine import PolygonGeometryEngine
from site_planner.model.geo_point import GeoPoint


@dataclass(frozen=True)
class LiveMetrics:
    """Area and perimeter of an open drawing path (treated as closed from 3 vertices)."""

    vertex_count: int
    area_m2: float
    perimeter_m: float

    @property
    def area_acres(self) -> float:
        return area_acres(area_m2=self.area_m2)

    @property
    def label(self) -> str:
        """Display text, e.g. "0.62 acres (2500 m²) - 200.00 m"."""
        if self.vertex_count < 3:
            return f"{self.vertex_count} point(s)"
        return (
            f"{self.area_acres:.2f} acres ({self.area_m2:.0f} m²) - "
            f"{format_distance(distance_m=self.perimeter_m)}"
        )

    @property
    def area_label(self) -> str:
        return format_area(area_m2=self.area_m2)


class LiveMetricsTracker:
    """Throttled recomputation of LiveMetrics.

    Example:
        tracker = LiveMetricsTracker(engine=engine)
        metrics = tracker.update(path=points)  # None if throttled
        latest = tracker.latest
    """

    def __init__(
        self,
        engine: PolygonGeometryEngine,
        interval_s: float = DrawingConfig.LIVE_METRICS_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine
        self.interval_s = interval_s
        self._clock = clock
        self._last_refresh: Optional[float] = None
        self.latest: Optional[LiveMetrics] = None

    def compute(self, path: Sequence[GeoPoint]) -> LiveMetrics:
        return LiveMetrics(
            vertex_count=len(path),
            area_m2=self.engine.area(ring=path),
            perimeter_m=self.engine.perimeter(ring=path),
        )

    def update(self, path: Sequence[GeoPoint], force: bool = False) -> Optional[LiveMetrics]:
        """Recompute unless the last refresh was less than interval_s ago.

        Returns:
            Fresh metrics, or None if throttled (latest keeps the previous value).
        """
        now = self._clock()
        if not force and self._last_refresh is not None and now - self._last_refresh < self.interval_s:
            return None
        self._last_refresh = now
        self.latest = self.compute(path=path)
        return self.latest

    def reset(self) -> None:
        self._last_refresh = None
        self.latest = None
