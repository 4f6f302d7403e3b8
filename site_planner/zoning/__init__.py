"""Zone-kind taxonomy and zone placement validation."""

from site_planner.zoning.taxonomy import ZoneKindConfig, ZoneTaxonomy
from site_planner.zoning.validation import (
    ZoneStatistics,
    ZoneValidationConfig,
    ZoneValidationEngine,
    ZoneValidationResult,
)

__all__ = [
    "ZoneKindConfig",
    "ZoneTaxonomy",
    "ZoneStatistics",
    "ZoneValidationConfig",
    "ZoneValidationEngine",
    "ZoneValidationResult",
]
