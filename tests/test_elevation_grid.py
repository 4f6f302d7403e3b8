"""Tests for ElevationGridAnalyzer and ElevationGrid.

Uses MockElevationSampler planes with known grade and direction, so slope and
aspect can be checked exactly. Sampling failures are injected through the
mock and the recording sleep.
"""

from math import isnan, nan

import pytest
from hypothesis import given, settings, strategies as st

from site_planner.constants import StyleConfig
from site_planner.core.terrain_analyzer import ElevationGridAnalyzer, GridAnalysisConfig
from site_planner.errors import AnalysisCancelled, GeometryError
from site_planner.model.elevation_grid import ElevationGrid
from site_planner.model.shape import BoundaryMeta, ZoneMeta
from tests.conftest import METERS_PER_DEGREE, MockElevationSampler, make_shape, rect


@pytest.fixture
def square():
    """100m x 100m analyzable shape."""
    return make_shape(shape_id="Z1", ring=rect(0, 0, 100, 100), meta=ZoneMeta(name="Square", kind="residential"))


class BowlSampler(MockElevationSampler):
    """Paraboloid terrain: flat in the middle, steeper towards the edges."""

    def elevation_at(self, point) -> float:
        north_m = point.lat * METERS_PER_DEGREE - 100
        east_m = point.lng * METERS_PER_DEGREE - 100
        return self.base_elevation + (north_m**2 + east_m**2) / 500


@pytest.fixture(scope="module")
def bowl_grid() -> ElevationGrid:
    shape = make_shape(shape_id="B1", ring=rect(0, 0, 200, 200), meta=BoundaryMeta())
    return ElevationGridAnalyzer(sampler=BowlSampler()).analyze(shape=shape, resolution_m=20.0)


# =============================================================================
# GRID LAYOUT
# =============================================================================


class TestGridLayout:
    """Cell count, ordering and geometry."""

    def test_square_at_10m_has_100_cells(self, flat_sampler, square) -> None:
        grid = ElevationGridAnalyzer(sampler=flat_sampler).analyze(shape=square, resolution_m=10.0)
        assert (grid.columns, grid.rows) == (10, 10)
        assert len(grid.cells) == 100

    def test_partial_cells_round_up(self, flat_sampler) -> None:
        shape = make_shape(shape_id="Z2", ring=rect(0, 0, 95, 41), meta=ZoneMeta(name="Odd", kind="residential"))
        grid = ElevationGridAnalyzer(sampler=flat_sampler).analyze(shape=shape, resolution_m=10.0)
        assert (grid.columns, grid.rows) == (10, 5)

    @pytest.mark.parametrize(
        "width,height,resolution,expected",
        [
            (100.0, 100.0, 10.0, (10, 10)),
            (100.004, 99.996, 10.0, (10, 10)),
            (100.5, 30.0, 10.0, (11, 3)),
            (3.0, 3.0, 10.0, (1, 1)),
        ],
    )
    def test_grid_dimensions(self, width: float, height: float, resolution: float, expected: tuple) -> None:
        assert ElevationGridAnalyzer.grid_dimensions(width_m=width, height_m=height, resolution_m=resolution) == expected

    def test_row_zero_is_north(self, south_facing_sampler, square) -> None:
        grid = ElevationGridAnalyzer(sampler=south_facing_sampler).analyze(shape=square, resolution_m=10.0)
        north = grid.cell_at(row=0, col=0)
        south = grid.cell_at(row=grid.rows - 1, col=0)
        assert north.center.lat > south.center.lat
        assert north.elevation_m > south.elevation_m

    def test_cells_are_row_major(self, flat_sampler, square) -> None:
        grid = ElevationGridAnalyzer(sampler=flat_sampler).analyze(shape=square, resolution_m=10.0)
        assert [(c.row, c.col) for c in grid.cells[:11]] == [(0, i) for i in range(10)] + [(1, 0)]
        assert grid.cell_at(row=3, col=7) is grid.cells[37]

    def test_cell_at_out_of_range(self, flat_sampler, square) -> None:
        grid = ElevationGridAnalyzer(sampler=flat_sampler).analyze(shape=square, resolution_m=10.0)
        with pytest.raises(IndexError):
            grid.cell_at(row=10, col=0)

    def test_cell_ring_spans_resolution(self, flat_sampler, square) -> None:
        grid = ElevationGridAnalyzer(sampler=flat_sampler).analyze(shape=square, resolution_m=10.0)
        nw, ne, se, sw = grid.cell_at(row=0, col=0).ring
        assert nw.distance_to(ne) == pytest.approx(10.0, abs=0.01)
        assert ne.distance_to(se) == pytest.approx(10.0, abs=0.01)

    def test_shared_corners_sampled_once(self, flat_sampler, square) -> None:
        """(columns+1) x (rows+1) corners plus one center per cell."""
        ElevationGridAnalyzer(sampler=flat_sampler).analyze(shape=square, resolution_m=10.0)
        assert flat_sampler.points_requested == 11 * 11 + 100


# =============================================================================
# SLOPE AND ASPECT
# =============================================================================


class TestSlopeAndAspect:
    """Per-cell grade and descent direction."""

    def test_flat_terrain(self, flat_sampler, square) -> None:
        grid = ElevationGridAnalyzer(sampler=flat_sampler).analyze(shape=square, resolution_m=10.0)
        assert grid.min_slope == 0.0
        assert grid.max_slope == 0.0
        assert all(cell.aspect_deg == 0.0 for cell in grid.cells)
        assert grid.min_elevation == grid.max_elevation == 1000.0

    def test_south_facing_plane(self, south_facing_sampler, square) -> None:
        """Terrain rising 10% to the north descends towards 180 degrees."""
        grid = ElevationGridAnalyzer(sampler=south_facing_sampler).analyze(shape=square, resolution_m=10.0)
        for cell in grid.cells:
            assert cell.slope_pct == pytest.approx(10.0, abs=0.05)
            assert cell.aspect_deg == pytest.approx(180.0, abs=1.0)

    def test_east_facing_plane(self, square) -> None:
        sampler = MockElevationSampler(slope_ew_pct=20.0)
        grid = ElevationGridAnalyzer(sampler=sampler).analyze(shape=square, resolution_m=10.0)
        cell = grid.cell_at(row=4, col=4)
        assert cell.slope_pct == pytest.approx(20.0, abs=0.05)
        assert cell.aspect_deg == pytest.approx(90.0, abs=1.0)

    def test_slope_independent_of_resolution_on_a_plane(self, south_facing_sampler, square) -> None:
        analyzer = ElevationGridAnalyzer(sampler=south_facing_sampler)
        coarse = analyzer.analyze(shape=square, resolution_m=50.0)
        fine = analyzer.analyze(shape=square, resolution_m=5.0)
        assert coarse.max_slope == pytest.approx(fine.max_slope, abs=0.05)

    def test_bowl_is_flat_in_the_middle(self, bowl_grid: ElevationGrid) -> None:
        assert bowl_grid.min_slope < bowl_grid.max_slope
        center = bowl_grid.cell_at(row=4, col=4)
        corner = bowl_grid.cell_at(row=0, col=0)
        assert center.slope_pct < corner.slope_pct


# =============================================================================
# CLASSIFICATION AND STATISTICS
# =============================================================================


class TestClassification:
    """Steep/flat classification is a pure function of slope and threshold."""

    @pytest.mark.parametrize(
        "slope,threshold,expected",
        [
            (8.0, 8.0, False),
            (8.01, 8.0, True),
            (0.0, 0.0, False),
            (25.0, 30.0, False),
            (nan, 8.0, False),
            (float("inf"), 8.0, False),
        ],
    )
    def test_classify_steep(self, slope: float, threshold: float, expected: bool) -> None:
        assert ElevationGridAnalyzer.classify_steep(slope_pct=slope, threshold_pct=threshold) is expected

    def test_raising_threshold_reclassifies_without_recompute(self, south_facing_sampler, square) -> None:
        grid = ElevationGridAnalyzer(sampler=south_facing_sampler).analyze(shape=square, resolution_m=10.0)
        calls = south_facing_sampler.calls
        assert grid.statistics(threshold_pct=8.0).steep_count == 100
        assert grid.statistics(threshold_pct=20.0).steep_count == 0
        assert south_facing_sampler.calls == calls

    @given(
        low=st.floats(min_value=0, max_value=100, allow_nan=False),
        high=st.floats(min_value=0, max_value=100, allow_nan=False),
    )
    @settings(max_examples=50, deadline=None)
    def test_steep_count_never_increases_with_threshold(self, bowl_grid: ElevationGrid, low: float, high: float) -> None:
        low, high = sorted((low, high))
        assert bowl_grid.statistics(threshold_pct=high).steep_count <= bowl_grid.statistics(threshold_pct=low).steep_count

    def test_statistics_percentages(self, bowl_grid: ElevationGrid) -> None:
        stats = bowl_grid.statistics(threshold_pct=20.0)
        assert stats.steep_count + stats.flat_count == stats.finite_count == stats.total_count
        assert stats.steep_pct + stats.flat_pct == pytest.approx(100.0)
        assert len(bowl_grid.steep_cells(threshold_pct=20.0)) == stats.steep_count

    def test_cell_colors(self, south_facing_sampler, square) -> None:
        grid = ElevationGridAnalyzer(sampler=south_facing_sampler).analyze(shape=square, resolution_m=10.0)
        cell = grid.cells[0]
        assert cell.color(threshold_pct=8.0) == StyleConfig.STEEP_CELL_COLOR
        assert cell.color(threshold_pct=15.0) == StyleConfig.FLAT_CELL_COLOR


# =============================================================================
# MISSING DATA
# =============================================================================


class TestMissingData:
    """Missing samples mark cells, never abort the grid."""

    def test_all_missing(self, square) -> None:
        sampler = MockElevationSampler(missing_if=lambda point: True)
        grid = ElevationGridAnalyzer(sampler=sampler).analyze(shape=square, resolution_m=10.0)
        stats = grid.statistics(threshold_pct=8.0)

        assert len(grid.cells) == 100
        assert (stats.steep_count, stats.flat_count) == (0, 0)
        assert stats.missing_count == 100
        assert stats.is_empty
        assert stats.steep_pct == stats.mean_slope_pct == 0.0
        assert (grid.min_slope, grid.max_slope) == (0.0, 0.0)
        assert isnan(grid.min_elevation)
        assert all(cell.color(threshold_pct=8.0) == StyleConfig.MISSING_CELL_COLOR for cell in grid.cells)

    def test_partial_coverage(self, square) -> None:
        """Points east of 55m have no data, so columns 5-9 are missing."""
        sampler = MockElevationSampler(missing_if=lambda point: point.lng * METERS_PER_DEGREE > 55)
        grid = ElevationGridAnalyzer(sampler=sampler).analyze(shape=square, resolution_m=10.0)
        stats = grid.statistics(threshold_pct=8.0)
        assert stats.missing_count == 50
        assert stats.finite_count == 50
        assert grid.cell_at(row=0, col=4).has_data
        missing = grid.cell_at(row=0, col=5)
        assert isnan(missing.slope_pct) and isnan(missing.aspect_deg)
        assert not missing.is_steep(threshold_pct=0.0)

    def test_retryable_failure_is_retried(self, square, recording_sleep) -> None:
        sampler = MockElevationSampler(fail_calls=1, retryable=True)
        grid = ElevationGridAnalyzer(sampler=sampler, sleep=recording_sleep).analyze(shape=square, resolution_m=10.0)
        assert recording_sleep.delays == [0.5]
        assert grid.statistics(threshold_pct=8.0).missing_count == 0

    def test_failed_batch_becomes_missing(self, square, recording_sleep) -> None:
        sampler = MockElevationSampler(fail_calls=1, retryable=False)
        grid = ElevationGridAnalyzer(sampler=sampler, sleep=recording_sleep).analyze(shape=square, resolution_m=10.0)
        assert recording_sleep.delays == []
        assert grid.statistics(threshold_pct=8.0).missing_count == 100

    def test_only_failed_batch_is_missing(self, square, recording_sleep) -> None:
        config = GridAnalysisConfig(batch_size=121)
        sampler = MockElevationSampler(fail_calls=1, retryable=False)
        grid = ElevationGridAnalyzer(sampler=sampler, config=config, sleep=recording_sleep).analyze(
            shape=square, resolution_m=10.0
        )
        # The first batch holds all corners, the second all centers
        assert sampler.calls == 2
        assert grid.statistics(threshold_pct=8.0).missing_count == 100
        assert all(not isnan(cell.elevation_m) for cell in grid.cells)


# =============================================================================
# ERRORS AND CANCELLATION
# =============================================================================


class TestErrors:
    """Invalid parameters and cancellation."""

    @pytest.mark.parametrize("resolution", [4.9, 50.1, 0.0, -10.0, nan])
    def test_resolution_out_of_range(self, flat_sampler, square, resolution: float) -> None:
        with pytest.raises(ValueError, match="Resolution"):
            ElevationGridAnalyzer(sampler=flat_sampler).analyze(shape=square, resolution_m=resolution)

    @pytest.mark.parametrize("resolution", [5.0, 50.0])
    def test_resolution_bounds_inclusive(self, flat_sampler, square, resolution: float) -> None:
        grid = ElevationGridAnalyzer(sampler=flat_sampler).analyze(shape=square, resolution_m=resolution)
        assert grid.resolution_m == resolution

    def test_too_many_cells(self, flat_sampler, square) -> None:
        analyzer = ElevationGridAnalyzer(sampler=flat_sampler, config=GridAnalysisConfig(max_cells=50))
        with pytest.raises(ValueError, match="exceeds"):
            analyzer.analyze(shape=square, resolution_m=10.0)
        assert flat_sampler.calls == 0

    def test_degenerate_shape(self, flat_sampler) -> None:
        sw, se, ne, nw = rect(0, 0, 100, 100)
        shape = make_shape(shape_id="Z9", ring=(sw, ne, se, nw), meta=ZoneMeta(name="Bowtie", kind="amenity"))
        with pytest.raises(GeometryError):
            ElevationGridAnalyzer(sampler=flat_sampler).analyze(shape=shape, resolution_m=10.0)

    def test_cancelled_before_sampling(self, flat_sampler, square) -> None:
        with pytest.raises(AnalysisCancelled):
            ElevationGridAnalyzer(sampler=flat_sampler).analyze(shape=square, resolution_m=10.0, is_cancelled=lambda: True)
        assert flat_sampler.calls == 0

    def test_cancelled_between_batches(self, flat_sampler, square) -> None:
        polls = []

        def is_cancelled() -> bool:
            polls.append(1)
            return len(polls) > 1

        analyzer = ElevationGridAnalyzer(sampler=flat_sampler, config=GridAnalysisConfig(batch_size=50))
        with pytest.raises(AnalysisCancelled):
            analyzer.analyze(shape=square, resolution_m=10.0, is_cancelled=is_cancelled)
        assert flat_sampler.calls == 1

    def test_default_resolution_from_config(self, flat_sampler, square) -> None:
        analyzer = ElevationGridAnalyzer(sampler=flat_sampler, config=GridAnalysisConfig(resolution_m=25.0))
        grid = analyzer.analyze(shape=square)
        assert (grid.columns, grid.rows) == (4, 4)
