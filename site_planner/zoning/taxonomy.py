"""Zone-kind taxonomy.

The set of zone kinds is configuration, not code: the default comes from
ZoneConfig.DEFAULT_KINDS and can be replaced with a YAML file, e.g.

    zone_kinds:
      residential:
        name: Residential
        min_area_m2: 100
        max_aspect_ratio: 3.0
        description: Housing and residential development
      parking:
        name: Parking
        min_area_m2: 250
        max_area_m2: 20000
"""

import logging
from dataclasses import dataclass
from math import isfinite
from pathlib import Path
from typing import Iterator, Optional

import yaml

from site_planner.constants import ZoneConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ZoneKindConfig:
    """Rules and display data for one zone kind.

    Attributes:
        key: Identifier stored in ZoneMeta.kind (e.g. "green_space")
        name: Display name
        min_area_m2: Minimum zone area for this kind
        max_area_m2: Optional maximum zone area
        max_aspect_ratio: Optional elongation limit used for kind suggestions
        description: Free text
    """

    key: str
    name: str
    min_area_m2: float
    max_area_m2: Optional[float] = None
    max_aspect_ratio: Optional[float] = None
    description: str = ""

    def __post_init__(self) -> None:
        if self.min_area_m2 < 0:
            raise ValueError(f"Zone kind '{self.key}': min_area_m2 must be >= 0")
        if self.max_area_m2 is not None and self.max_area_m2 < self.min_area_m2:
            raise ValueError(f"Zone kind '{self.key}': max_area_m2 below min_area_m2")

    def accepts(self, area_m2: float, aspect_ratio: float) -> bool:
        """Whether a zone of this area and elongation fits the kind."""
        if area_m2 < self.min_area_m2:
            return False
        if self.max_area_m2 is not None and area_m2 > self.max_area_m2:
            return False
        if self.max_aspect_ratio is not None and not (isfinite(aspect_ratio) and aspect_ratio <= self.max_aspect_ratio):
            return False
        return True


class ZoneTaxonomy:
    """Ordered, externally configurable set of zone kinds.

    Example:
        taxonomy = ZoneTaxonomy.from_yaml(path=Path("zone_kinds.yaml"))
        kinds = taxonomy.suggest(area_m2=1500.0, aspect_ratio=1.2)
    """

    def __init__(self, kinds: list[ZoneKindConfig]) -> None:
        if not kinds:
            raise ValueError("A zone taxonomy needs at least one zone kind")
        self._kinds = {kind.key: kind for kind in kinds}
        if len(self._kinds) != len(kinds):
            raise ValueError("Zone kind keys must be unique")

    @classmethod
    def default(cls) -> "ZoneTaxonomy":
        return cls.from_dict(data=ZoneConfig.DEFAULT_KINDS)

    @classmethod
    def from_dict(cls, data: dict) -> "ZoneTaxonomy":
        """Build from a mapping of kind key -> kind settings."""
        kinds = []
        for key, settings in data.items():
            kinds.append(
                ZoneKindConfig(
                    key=str(key),
                    name=str(settings.get("name", str(key).replace("_", " ").title())),
                    min_area_m2=float(settings.get("min_area_m2", ZoneConfig.MIN_AREA_M2)),
                    max_area_m2=_optional_float(settings.get("max_area_m2")),
                    max_aspect_ratio=_optional_float(settings.get("max_aspect_ratio")),
                    description=str(settings.get("description", "")),
                )
            )
        return cls(kinds=kinds)

    @classmethod
    def from_yaml(cls, path: Path) -> "ZoneTaxonomy":
        """Load from a YAML file with a top-level "zone_kinds" mapping."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict) or not isinstance(data.get("zone_kinds"), dict):
            raise ValueError(f"{path}: expected a top-level 'zone_kinds' mapping")
        taxonomy = cls.from_dict(data=data["zone_kinds"])
        logger.info(f"Loaded {len(taxonomy)} zone kind(s) from {path}")
        return taxonomy

    def get(self, key: str) -> ZoneKindConfig:
        if key not in self._kinds:
            raise KeyError(f"Unknown zone kind '{key}'. Known kinds: {', '.join(self._kinds)}")
        return self._kinds[key]

    @property
    def keys(self) -> list[str]:
        return list(self._kinds)

    def suggest(self, area_m2: float, aspect_ratio: float) -> frozenset[str]:
        """Kinds whose area and elongation limits the zone satisfies.

        Narrow zones drop out of kinds with an aspect ratio limit (residential,
        commercial and solar by default), leaving e.g. amenity and green space.
        """
        return frozenset(kind.key for kind in self._kinds.values() if kind.accepts(area_m2, aspect_ratio))

    def rank(self, keys: frozenset[str]) -> list[str]:
        """Order kind keys by minimum area (smallest first), then taxonomy order."""
        order = {key: i for i, key in enumerate(self._kinds)}
        return sorted(keys, key=lambda k: (self._kinds[k].min_area_m2, order[k]))

    def __contains__(self, key: object) -> bool:
        return key in self._kinds

    def __iter__(self) -> Iterator[ZoneKindConfig]:
        return iter(self._kinds.values())

    def __len__(self) -> int:
        return len(self._kinds)


def _optional_float(value) -> Optional[float]:
    return None if value is None else float(value)
