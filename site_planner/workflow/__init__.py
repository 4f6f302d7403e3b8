"""Interactive workflow: project snapshot owner, zone drawing, live metrics and terrain triggers."""

from site_planner.workflow.live_metrics import LiveMetrics, LiveMetricsTracker
from site_planner.workflow.site_project import SiteProject
from site_planner.workflow.terrain_trigger import TerrainAnalysisCoordinator
from site_planner.workflow.zone_state_machine import (
    TransitionLogger,
    ZoneDrawContext,
    ZoneDrawEvent,
    ZoneDrawingStateMachine,
    ZoneDrawSession,
    ZoneDrawState,
)

__all__ = [
    "LiveMetrics",
    "LiveMetricsTracker",
    "SiteProject",
    "TerrainAnalysisCoordinator",
    "TransitionLogger",
    "ZoneDrawContext",
    "ZoneDrawEvent",
    "ZoneDrawingStateMachine",
    "ZoneDrawSession",
    "ZoneDrawState",
]
