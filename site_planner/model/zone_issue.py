"""ZoneIssue - Reasons a proposed zone cannot be committed.

Issues are values, not exceptions. ZoneValidationEngine collects every
failing rule as an issue; the result's reason strings are the issues'
messages in rule order.

Reference: site_planner/zoning/validation.py
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from site_planner.constants import UnitConfig


@dataclass(frozen=True)
class ZoneIssue(ABC):
    """Abstract base class for zone validation issues.

    Subclasses store specific parameters and compute message as property.
    Each subclass has an issue_type field for serialization.
    """

    @property
    @abstractmethod
    def message(self) -> str:
        """Human-readable reason string."""

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class TooFewVertices(ZoneIssue):
    vertex_count: int
    min_vertices: int
    issue_type: str = "TooFewVertices"

    @property
    def message(self) -> str:
        return f"Zone must have at least {self.min_vertices} vertices"


@dataclass(frozen=True)
class SelfIntersection(ZoneIssue):
    issue_type: str = "SelfIntersection"

    @property
    def message(self) -> str:
        return "Zone cannot have self-intersections"


@dataclass(frozen=True)
class OutsideBoundary(ZoneIssue):
    issue_type: str = "OutsideBoundary"

    @property
    def message(self) -> str:
        return "Zone must be completely within the project boundary"


@dataclass(frozen=True)
class AreaTooSmall(ZoneIssue):
    """Zone area below the applicable minimum.

    Attributes:
        area_m2: Actual zone area
        min_area_m2: Minimum required area (global or per-kind, whichever is larger)
    """

    area_m2: float
    min_area_m2: float
    issue_type: str = "AreaTooSmall"

    @property
    def message(self) -> str:
        acres = self.min_area_m2 / UnitConfig.M2_PER_ACRE
        return f"Zone area must be at least {self.min_area_m2:g} m² ({acres:.3f} acres)"


@dataclass(frozen=True)
class AreaTooLarge(ZoneIssue):
    area_m2: float
    max_area_m2: float
    issue_type: str = "AreaTooLarge"

    @property
    def message(self) -> str:
        acres = self.max_area_m2 / UnitConfig.M2_PER_ACRE
        return f"Zone area cannot exceed {self.max_area_m2:g} m² ({acres:.3f} acres)"


@dataclass(frozen=True)
class ZoneOverlap(ZoneIssue):
    """Zone overlaps an existing zone by more than the tolerance.

    Attributes:
        other_kind: Zone kind of the existing zone
        overlap_area_m2: Area of the intersection
    """

    other_kind: str
    overlap_area_m2: float
    issue_type: str = "ZoneOverlap"

    @property
    def message(self) -> str:
        return f"Zone overlaps with existing {self.other_kind} zone"


@dataclass(frozen=True)
class ZoneTooClose(ZoneIssue):
    other_kind: str
    distance_m: float
    min_separation_m: float
    issue_type: str = "ZoneTooClose"

    @property
    def message(self) -> str:
        return (
            f"Zone is {self.distance_m:.1f} m from an existing {self.other_kind} zone; "
            f"keep at least {self.min_separation_m:g} m separation"
        )


@dataclass(frozen=True)
class HolesNotAllowed(ZoneIssue):
    hole_count: int
    issue_type: str = "HolesNotAllowed"

    @property
    def message(self) -> str:
        return "Holes are not allowed in zones"
