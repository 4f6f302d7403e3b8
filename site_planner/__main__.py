"""Command line entry point.

Usage:
    python -m site_planner measure site.geojson --units imperial
    python -m site_planner analyze site.geojson --dem data/dem.tif --resolution 10 --threshold 8
    python -m site_planner analyze site.geojson --elevation-url https://api.open-elevation.com/api/v1/lookup
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from site_planner.constants import DEMConfig, ElevationConfig, SlopeConfig
from site_planner.core.dem_service import DEMService
from site_planner.core.elevation_service import ElevationSampler, HTTPElevationSampler
from site_planner.core.measurement import format_area, format_distance
from site_planner.core.polygon_engine import PolygonGeometryEngine
from site_planner.core.terrain_analyzer import ElevationGridAnalyzer
from site_planner.errors import SitePlannerError
from site_planner.model.shape import BoundaryMeta, Shape

logger = logging.getLogger(__name__)


def load_polygon(path: Path) -> list[tuple[float, float]]:
    """Exterior ring of the first polygon in a GeoJSON file, as (lng, lat) pairs.

    Accepts a FeatureCollection, a Feature or a bare Polygon geometry.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if data.get("type") == "FeatureCollection":
        if not data.get("features"):
            raise ValueError(f"{path}: FeatureCollection has no features")
        data = data["features"][0]
    if data.get("type") == "Feature":
        data = data["geometry"]
    if data.get("type") != "Polygon":
        raise ValueError(f"{path}: expected a Polygon geometry, got {data.get('type')}")
    return [(float(c[0]), float(c[1])) for c in data["coordinates"][0]]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="site_planner", description="Site geometry and terrain analysis")
    subparsers = parser.add_subparsers(dest="command", required=True)

    measure = subparsers.add_parser("measure", help="Area and perimeter of a GeoJSON polygon")
    measure.add_argument("geojson", type=Path, help="GeoJSON file with a polygon")
    measure.add_argument("--units", choices=["metric", "imperial"], default="metric")

    analyze = subparsers.add_parser("analyze", help="Slope grid statistics of a GeoJSON polygon")
    analyze.add_argument("geojson", type=Path, help="GeoJSON file with a polygon")
    source = analyze.add_mutually_exclusive_group()
    source.add_argument("--dem", type=Path, default=None, help=f"DEM GeoTIFF (default: {DEMConfig.DEM_PATH})")
    source.add_argument("--elevation-url", default=None, help="Open-Elevation style lookup endpoint")
    analyze.add_argument("--resolution", type=float, default=ElevationConfig.DEFAULT_RESOLUTION_M, help="Cell size (m)")
    analyze.add_argument(
        "--threshold",
        type=float,
        default=SlopeConfig.DEFAULT_STEEPNESS_THRESHOLD_PCT,
        help="Steepness threshold (percent grade)",
    )
    return parser


def run_measure(args: argparse.Namespace, engine: PolygonGeometryEngine) -> None:
    ring = engine.normalize_ring(points=load_polygon(path=args.geojson), operation="measure")
    engine.validate_ring(ring=ring, operation="measure")
    centroid = engine.centroid(ring=ring)
    print(f"Vertices:  {len(ring)}")
    print(f"Area:      {format_area(area_m2=engine.area(ring=ring), units=args.units)}")
    print(f"Perimeter: {format_distance(distance_m=engine.perimeter(ring=ring), units=args.units)}")
    print(f"Centroid:  {centroid.lat:.6f}, {centroid.lng:.6f}")


def run_analyze(args: argparse.Namespace, engine: PolygonGeometryEngine) -> None:
    ring = engine.normalize_ring(points=load_polygon(path=args.geojson), operation="analyze")
    shape = Shape(id="CLI", ring=ring, meta=BoundaryMeta(name=args.geojson.stem), area_m2=engine.area(ring=ring))

    sampler: ElevationSampler
    if args.elevation_url:
        sampler = HTTPElevationSampler(url=args.elevation_url)
    else:
        sampler = DEMService(dem_path=args.dem)

    grid = ElevationGridAnalyzer(sampler=sampler, engine=engine).analyze(shape=shape, resolution_m=args.resolution)
    stats = grid.statistics(threshold_pct=args.threshold)
    print(f"Grid:       {grid.columns} x {grid.rows} cells at {grid.resolution_m:g} m")
    print(f"Elevation:  {grid.min_elevation:.1f} - {grid.max_elevation:.1f} m")
    print(f"Slope:      {grid.min_slope:.1f} - {grid.max_slope:.1f} % (mean {stats.mean_slope_pct:.1f} %)")
    print(f"Steep:      {stats.steep_count} cells ({stats.steep_pct:.1f} %) above {args.threshold:g} %")
    print(f"Flat:       {stats.flat_count} cells ({stats.flat_pct:.1f} %)")
    print(f"No data:    {stats.missing_count} cells")


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)
    engine = PolygonGeometryEngine()
    try:
        if args.command == "measure":
            run_measure(args=args, engine=engine)
        elif args.command == "analyze":
            run_analyze(args=args, engine=engine)
    except (SitePlannerError, ValueError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
