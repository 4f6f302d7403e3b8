"""Shared pytest fixtures for site_planner workflow tests.

Workflow tests drive SiteProject, ZoneDrawingStateMachine and
TerrainAnalysisCoordinator together, the way an interactive front end would.
Keep this file minimal: geometry helpers and the mock sampler come from
tests/conftest.py.

COORDINATE SYSTEM:
    Same as the unit tests: metric offsets from (0, 0) via rect(). The project
    boundary is a 200m x 200m square with its SW corner at the origin.
"""

import pytest

from site_planner.core.terrain_analyzer import ElevationGridAnalyzer
from site_planner.workflow.site_project import SiteProject
from site_planner.workflow.terrain_trigger import TerrainAnalysisCoordinator
from site_planner.workflow.zone_state_machine import ZoneDrawingStateMachine
from tests.conftest import MockElevationSampler, RecordingSleep, rect

# Type alias for the drawing fixture return value
SMAndProject = tuple[ZoneDrawingStateMachine, SiteProject]


@pytest.fixture
def empty_project() -> SiteProject:
    """Project without a boundary."""
    return SiteProject()


@pytest.fixture
def project() -> SiteProject:
    """Project with a 200m x 200m boundary (B1)."""
    site = SiteProject()
    site.set_boundary(points=rect(0, 0, 200, 200))
    return site


@pytest.fixture
def sm_and_project(project: SiteProject) -> SMAndProject:
    """Drawing state machine wired to the project, validating synchronously."""
    return ZoneDrawingStateMachine.create(project=project, add_logger=False), project


@pytest.fixture
def manual_sm_and_project(project: SiteProject) -> SMAndProject:
    """Drawing state machine whose validation results are delivered by the test."""
    return ZoneDrawingStateMachine.create(project=project, add_logger=False, auto_validate=False), project


@pytest.fixture
def south_sampler() -> MockElevationSampler:
    """Terrain rising 10% to the north."""
    return MockElevationSampler(base_elevation=500.0, slope_ns_pct=10.0)


@pytest.fixture
def coordinator(south_sampler: MockElevationSampler) -> TerrainAnalysisCoordinator:
    analyzer = ElevationGridAnalyzer(sampler=south_sampler, sleep=RecordingSleep())
    return TerrainAnalysisCoordinator(analyzer=analyzer, resolution_m=20.0)
