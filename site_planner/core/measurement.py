"""Human-readable formatting of areas and distances.

Inputs are always SI (m², m). The unit system picks the display units:
- metric: m² below one hectare, ha above; m below one kilometer, km above
- imperial: sq ft below one acre, acres above; ft below one mile, mi above
"""

from typing import Literal

from site_planner.constants import UnitConfig

UnitSystem = Literal["metric", "imperial"]


def format_area(area_m2: float, units: UnitSystem = "metric", precision: int = 2) -> str:
    """Format an area, e.g. "4567.00 m²", "1.23 ha", "950.00 sq ft", "2.10 acres"."""
    if area_m2 <= 0:
        return "0"

    if units == "imperial":
        acres = area_m2 / UnitConfig.M2_PER_ACRE
        if acres < 1:
            return f"{acres * UnitConfig.SQFT_PER_ACRE:.{precision}f} sq ft"
        return f"{acres:.{precision}f} acres"
    if units == "metric":
        if area_m2 < UnitConfig.M2_PER_HECTARE:
            return f"{area_m2:.{precision}f} m²"
        return f"{area_m2 / UnitConfig.M2_PER_HECTARE:.{precision}f} ha"
    raise ValueError(f"Unknown unit system: {units}")


def format_distance(distance_m: float, units: UnitSystem = "metric", precision: int = 2) -> str:
    """Format a distance, e.g. "567.00 m", "1.89 km", "1234.00 ft", "1.23 mi"."""
    if distance_m <= 0:
        return "0"

    if units == "imperial":
        feet = distance_m * UnitConfig.FEET_PER_METER
        if feet < UnitConfig.FEET_PER_MILE:
            return f"{feet:.{precision}f} ft"
        return f"{feet / UnitConfig.FEET_PER_MILE:.{precision}f} mi"
    if units == "metric":
        if distance_m < 1000:
            return f"{distance_m:.{precision}f} m"
        return f"{distance_m / 1000:.{precision}f} km"
    raise ValueError(f"Unknown unit system: {units}")


def area_acres(area_m2: float) -> float:
    return area_m2 / UnitConfig.M2_PER_ACRE


def area_hectares(area_m2: float) -> float:
    return area_m2 / UnitConfig.M2_PER_HECTARE
