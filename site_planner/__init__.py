"""Site Planner - Site geometry and terrain analysis engine.

Turns raw vertex paths drawn on a map into validated, measured and
classified spatial data:
- core: coordinate handling, polygon geometry, elevation sampling and grid analysis
- model: plain data (GeoPoint, Shape, ElevationGrid, ShapeCollection)
- zoning: zone-kind taxonomy and zone placement validation
- workflow: interactive zone drawing state machine and analysis triggers

Rendering, persistence backends and map SDK bindings live outside this package.
"""
