"""Zone validation - Decides whether a proposed zone ring may be committed.

Rules are evaluated in order and every failing rule is collected:
0. Geometry: at least 3 vertices and no self-intersections. A failing ring
   skips rules 1-3, which are undefined for it.
1. Containment: the zone lies within the project boundary.
2. Area: at least the global minimum, plus per-kind limits when a kind is given.
3. Separation: with holes disallowed, the zone must not overlap an existing
   zone beyond the overlap tolerance, and zones that do not touch must keep
   the minimum separation. Touching zones are adjacent and allowed.

Design Principles:
- No exceptions for expected validation failures
- Rule checks return Optional[ZoneIssue]; the engine turns issues into reasons
- Kind suggestions are advisory and never affect validity
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from site_planner.constants import GeometryConfig, ZoneConfig
from site_planner.core.measurement import area_acres, area_hectares
from site_planner.core.polygon_engine import PolygonGeometryEngine
from site_planner.model.geo_point import GeoPoint
from site_planner.model.shape import Shape, ZoneMeta
from site_planner.model.zone_issue import (
    AreaTooLarge,
    AreaTooSmall,
    HolesNotAllowed,
    OutsideBoundary,
    SelfIntersection,
    TooFewVertices,
    ZoneIssue,
    ZoneOverlap,
    ZoneTooClose,
)
from site_planner.zoning.taxonomy import ZoneKindConfig, ZoneTaxonomy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ZoneValidationConfig:
    """Placement rule parameters.

    Attributes:
        min_area_m2: Global minimum zone area
        min_separation_m: Minimum gap between zones that do not touch
        overlap_tolerance_m2: Overlap area still treated as adjacency
        allow_holes: When True, holes are accepted and the separation rule is skipped
    """

    min_area_m2: float = ZoneConfig.MIN_AREA_M2
    min_separation_m: float = ZoneConfig.MIN_SEPARATION_M
    overlap_tolerance_m2: float = ZoneConfig.OVERLAP_TOLERANCE_M2
    allow_holes: bool = ZoneConfig.ALLOW_HOLES


@dataclass(frozen=True)
class ZoneValidationResult:
    """Outcome of one validation call.

    Attributes:
        is_valid: True iff no rule failed
        reasons: Human-readable reasons in rule order
        suggested_kinds: Advisory zone kinds fitting the zone's area and shape
        issues: Structured issues behind the reasons
        suggestions: Hints for fixing the failures
        area_m2: Zone area (0 if the ring is degenerate)
        kind: Zone kind validated against, if any
    """

    is_valid: bool
    reasons: tuple[str, ...]
    suggested_kinds: frozenset[str]
    issues: tuple[ZoneIssue, ...] = ()
    suggestions: tuple[str, ...] = ()
    area_m2: float = 0.0
    kind: Optional[str] = None


@dataclass(frozen=True)
class ZoneStatistics:
    """Reporting figures for a zone."""

    area_m2: float
    area_acres: float
    area_hectares: float
    perimeter_m: float
    centroid: GeoPoint
    bounds: tuple[float, float, float, float]
    kind: Optional[str] = None


# =============================================================================
# Rule checks
# =============================================================================


def check_ring_geometry(engine: PolygonGeometryEngine, zone_ring: Sequence[GeoPoint]) -> ZoneIssue | None:
    """Check vertex count and simplicity.

    Returns:
        None if valid, TooFewVertices or SelfIntersection otherwise.
    """
    if len(zone_ring) < GeometryConfig.MIN_RING_VERTICES:
        return TooFewVertices(vertex_count=len(zone_ring), min_vertices=GeometryConfig.MIN_RING_VERTICES)
    if not engine.is_simple(ring=zone_ring):
        return SelfIntersection()
    return None


def check_containment(
    engine: PolygonGeometryEngine,
    zone_ring: Sequence[GeoPoint],
    boundary_ring: Optional[Sequence[GeoPoint]],
) -> ZoneIssue | None:
    """Check that the zone lies within the boundary.

    Returns:
        None if contained, OutsideBoundary otherwise (also when there is no boundary).
    """
    if not boundary_ring or not engine.contains(outer_ring=boundary_ring, inner_ring=zone_ring):
        return OutsideBoundary()
    return None


def check_area(
    area_m2: float,
    config: ZoneValidationConfig,
    kind: Optional[ZoneKindConfig],
) -> ZoneIssue | None:
    """Check the global minimum and the kind's area limits.

    Returns:
        None if valid, AreaTooSmall or AreaTooLarge otherwise.
    """
    min_area = config.min_area_m2
    if kind is not None:
        min_area = max(min_area, kind.min_area_m2)
    if area_m2 < min_area:
        return AreaTooSmall(area_m2=area_m2, min_area_m2=min_area)
    if kind is not None and kind.max_area_m2 is not None and area_m2 > kind.max_area_m2:
        return AreaTooLarge(area_m2=area_m2, max_area_m2=kind.max_area_m2)
    return None


def check_separation(
    engine: PolygonGeometryEngine,
    zone_ring: Sequence[GeoPoint],
    existing_zone: Shape,
    config: ZoneValidationConfig,
) -> ZoneIssue | None:
    """Check overlap and spacing against one existing zone.

    Returns:
        None if the zones are adjacent or far enough apart, ZoneOverlap or
        ZoneTooClose otherwise.
    """
    other_kind = existing_zone.meta.kind if isinstance(existing_zone.meta, ZoneMeta) else existing_zone.kind.value

    overlap = engine.overlap_area_m2(ring_a=zone_ring, ring_b=existing_zone.ring)
    if overlap > config.overlap_tolerance_m2:
        return ZoneOverlap(other_kind=other_kind, overlap_area_m2=overlap)
    if overlap > 0:
        # Slight overlap within tolerance counts as shared edge
        return None

    distance = engine.distance_m(ring_a=zone_ring, ring_b=existing_zone.ring)
    if 0 < distance < config.min_separation_m:
        return ZoneTooClose(other_kind=other_kind, distance_m=distance, min_separation_m=config.min_separation_m)
    return None


# =============================================================================
# Engine
# =============================================================================


@dataclass
class ZoneValidationEngine:
    """Validates proposed zones against the boundary and existing zones.

    Example:
        validator = ZoneValidationEngine()
        result = validator.validate(zone_ring=ring, boundary_ring=boundary.ring, existing_zones=zones)
        if not result.is_valid:
            print("\\n".join(result.reasons))
    """

    taxonomy: ZoneTaxonomy = field(default_factory=ZoneTaxonomy.default)
    config: ZoneValidationConfig = field(default_factory=ZoneValidationConfig)
    engine: PolygonGeometryEngine = field(default_factory=PolygonGeometryEngine)

    def validate(
        self,
        zone_ring: Sequence[GeoPoint],
        boundary_ring: Optional[Sequence[GeoPoint]],
        existing_zones: Sequence[Shape] = (),
        kind: Optional[str] = None,
        holes: Sequence[Sequence[GeoPoint]] = (),
    ) -> ZoneValidationResult:
        """Run all placement rules on a proposed zone.

        Args:
            zone_ring: Outline of the proposed zone
            boundary_ring: Project boundary outline (None if no boundary exists)
            existing_zones: Committed zones to check overlap and spacing against
            kind: Zone kind key; applies the kind's area limits when given
            holes: Interior rings of the proposed zone, if the input had any

        Returns:
            ZoneValidationResult with every failing reason collected.

        Raises:
            KeyError: If kind is not part of the taxonomy.
        """
        kind_config = self.taxonomy.get(kind) if kind is not None else None
        issues: list[ZoneIssue] = []
        area = 0.0
        suggested: frozenset[str] = frozenset()

        geometry_issue = check_ring_geometry(engine=self.engine, zone_ring=zone_ring)
        if geometry_issue is not None:
            issues.append(geometry_issue)
        else:
            area = self.engine.area(ring=zone_ring)
            suggested = self.taxonomy.suggest(area_m2=area, aspect_ratio=self.engine.aspect_ratio(ring=zone_ring))

            containment_issue = check_containment(engine=self.engine, zone_ring=zone_ring, boundary_ring=boundary_ring)
            if containment_issue is not None:
                issues.append(containment_issue)

            area_issue = check_area(area_m2=area, config=self.config, kind=kind_config)
            if area_issue is not None:
                issues.append(area_issue)

            if not self.config.allow_holes:
                for existing in existing_zones:
                    separation_issue = check_separation(
                        engine=self.engine, zone_ring=zone_ring, existing_zone=existing, config=self.config
                    )
                    if separation_issue is not None:
                        issues.append(separation_issue)

        if holes and not self.config.allow_holes:
            issues.append(HolesNotAllowed(hole_count=len(holes)))

        result = ZoneValidationResult(
            is_valid=not issues,
            reasons=tuple(issue.message for issue in issues),
            suggested_kinds=suggested,
            issues=tuple(issues),
            suggestions=self._suggestions(issues=issues, kind=kind_config),
            area_m2=area,
            kind=kind,
        )
        if result.is_valid:
            logger.info(f"Zone valid ({area:.1f}m²), suggested kinds: {sorted(suggested)}")
        else:
            logger.info(f"Zone invalid: {'; '.join(result.reasons)}")
        return result

    def _suggestions(self, issues: list[ZoneIssue], kind: Optional[ZoneKindConfig]) -> tuple[str, ...]:
        """Hints for fixing the failures, one per issue type."""
        kind_label = kind.name.lower() if kind is not None else "these"
        suggestions: list[str] = []
        for issue in issues:
            if isinstance(issue, AreaTooSmall):
                hint = f"Try drawing a larger area for {kind_label} zones"
            elif isinstance(issue, AreaTooLarge):
                hint = f"Try drawing a smaller area for {kind_label} zones"
            elif isinstance(issue, OutsideBoundary):
                hint = "Ensure the entire zone is within the project boundary"
            elif isinstance(issue, SelfIntersection):
                hint = "Try drawing a simpler shape without crossing lines"
            elif isinstance(issue, TooFewVertices):
                hint = "Add more points to close the zone"
            elif isinstance(issue, ZoneOverlap):
                hint = "Avoid overlapping with existing zones"
            elif isinstance(issue, ZoneTooClose):
                hint = f"Leave at least {self.config.min_separation_m:g} m between zones, or draw them edge to edge"
            elif isinstance(issue, HolesNotAllowed):
                hint = "Draw the zone as a single outline without holes"
            else:
                raise TypeError(f"Unhandled zone issue: {type(issue).__name__}")
            if hint not in suggestions:
                suggestions.append(hint)
        return tuple(suggestions)

    def statistics(self, zone_ring: Sequence[GeoPoint], kind: Optional[str] = None) -> ZoneStatistics:
        """Area, perimeter, centroid and bounds for reporting."""
        area = self.engine.area(ring=zone_ring)
        return ZoneStatistics(
            area_m2=area,
            area_acres=area_acres(area_m2=area),
            area_hectares=area_hectares(area_m2=area),
            perimeter_m=self.engine.perimeter(ring=zone_ring),
            centroid=self.engine.centroid(ring=zone_ring),
            bounds=self.engine.bounds(ring=zone_ring),
            kind=kind,
        )
