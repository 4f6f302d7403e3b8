"""Shape - A ring plus a tagged kind with per-kind metadata.

Each Shape carries exactly one metadata object whose type is the discriminant:
- BoundaryMeta: the project boundary (at most one per collection)
- ZoneMeta: a named zone of a given zone kind
- BufferMeta: offset of another shape, recomputed when its parent changes
- AssetMeta: placed asset footprint (e.g. a building)
- UnionMeta / DifferenceMeta: results of boolean operations

Behavior that depends on the kind (editability, cascade eligibility, display
color) is matched exhaustively over the metadata types.
"""

from dataclasses import dataclass, replace
from enum import Enum

from site_planner.constants import StyleConfig
from site_planner.model.geo_point import GeoPoint


class ShapeKind(str, Enum):
    """Discriminant of a Shape."""

    BOUNDARY = "boundary"
    ZONE = "zone"
    BUFFER = "buffer"
    ASSET = "asset"
    UNION_RESULT = "union_result"
    DIFFERENCE_RESULT = "difference_result"


assert set(StyleConfig.SHAPE_COLORS) == {kind.value for kind in ShapeKind}, "Every ShapeKind needs a display color"


@dataclass(frozen=True)
class BoundaryMeta:
    """Project boundary. Zones, buffers and assets live inside it."""

    name: str = "Project Boundary"


@dataclass(frozen=True)
class ZoneMeta:
    """Named zone of a configured zone kind (e.g. "residential")."""

    name: str
    kind: str


@dataclass(frozen=True)
class BufferMeta:
    """Offset of another shape.

    Attributes:
        original_shape_id: ID of the shape this buffer was derived from
        signed_distance_m: Positive grows outward, negative shrinks inward
    """

    original_shape_id: str
    signed_distance_m: float


@dataclass(frozen=True)
class AssetMeta:
    """Placed asset footprint such as a building."""

    asset_type: str
    key: str
    floors: int = 1
    rotation_deg: float = 0.0
    width_m: float = 10.0
    depth_m: float = 10.0


@dataclass(frozen=True)
class UnionMeta:
    source_ids: tuple[str, ...]


@dataclass(frozen=True)
class DifferenceMeta:
    minuend_id: str
    subtrahend_id: str


ShapeMeta = BoundaryMeta | ZoneMeta | BufferMeta | AssetMeta | UnionMeta | DifferenceMeta


def kind_of(meta: ShapeMeta) -> ShapeKind:
    """Map a metadata object to its ShapeKind."""
    if isinstance(meta, BoundaryMeta):
        return ShapeKind.BOUNDARY
    if isinstance(meta, ZoneMeta):
        return ShapeKind.ZONE
    if isinstance(meta, BufferMeta):
        return ShapeKind.BUFFER
    if isinstance(meta, AssetMeta):
        return ShapeKind.ASSET
    if isinstance(meta, UnionMeta):
        return ShapeKind.UNION_RESULT
    if isinstance(meta, DifferenceMeta):
        return ShapeKind.DIFFERENCE_RESULT
    raise TypeError(f"Unknown shape metadata: {type(meta).__name__}")


@dataclass(frozen=True)
class Shape:
    """A ring with a kind tag, cached area and kind-specific metadata.

    Shapes are immutable. Edits produce a new Shape via with_ring(), and the
    caller replaces it in the ShapeCollection.

    Attributes:
        id: Opaque unique identifier
        ring: Vertices of the outline, logically closed (first != last)
        meta: Kind-specific metadata (see module docstring)
        area_m2: Cached geodesic area in square meters

    Example:
        shape = Shape(id="B1", ring=ring, meta=BoundaryMeta(), area_m2=10_000.0)
    """

    id: str
    ring: tuple[GeoPoint, ...]
    meta: ShapeMeta
    area_m2: float

    @property
    def kind(self) -> ShapeKind:
        return kind_of(meta=self.meta)

    @property
    def is_editable(self) -> bool:
        """Whether vertex edits and moves are allowed.

        Buffers are derived from their parent and follow it instead.
        """
        kind = self.kind
        if kind is ShapeKind.BUFFER:
            return False
        if kind in (
            ShapeKind.BOUNDARY,
            ShapeKind.ZONE,
            ShapeKind.ASSET,
            ShapeKind.UNION_RESULT,
            ShapeKind.DIFFERENCE_RESULT,
        ):
            return True
        raise TypeError(f"Unhandled shape kind: {kind}")

    @property
    def cascades_from(self) -> str | None:
        """ID of the parent whose edits must recompute this shape, if any."""
        if isinstance(self.meta, BufferMeta):
            return self.meta.original_shape_id
        return None

    @property
    def is_analyzable(self) -> bool:
        """Whether terrain analysis applies to this shape (assets are excluded)."""
        return self.kind is not ShapeKind.ASSET

    @property
    def color(self) -> str:
        return StyleConfig.SHAPE_COLORS[self.kind.value]

    @property
    def display_name(self) -> str:
        meta = self.meta
        if isinstance(meta, (BoundaryMeta, ZoneMeta)):
            return meta.name
        if isinstance(meta, BufferMeta):
            return f"Buffer {meta.signed_distance_m:+.1f}m of {meta.original_shape_id}"
        if isinstance(meta, AssetMeta):
            return f"{meta.asset_type.capitalize()} {meta.key}"
        if isinstance(meta, UnionMeta):
            return f"Union of {' + '.join(meta.source_ids)}"
        if isinstance(meta, DifferenceMeta):
            return f"{meta.minuend_id} minus {meta.subtrahend_id}"
        raise TypeError(f"Unknown shape metadata: {type(meta).__name__}")

    def with_ring(self, ring: tuple[GeoPoint, ...], area_m2: float) -> "Shape":
        """Return a copy with a new outline and its recomputed area."""
        return replace(self, ring=tuple(ring), area_m2=area_m2)

    def with_meta(self, meta: ShapeMeta) -> "Shape":
        return replace(self, meta=meta)

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict with a "kind" discriminant."""
        meta = self.meta
        if isinstance(meta, UnionMeta):
            meta_data = {"source_ids": list(meta.source_ids)}
        else:
            meta_data = dict(meta.__dict__)
        return {
            "id": self.id,
            "kind": self.kind.value,
            "ring": [point.to_dict() for point in self.ring],
            "area_m2": self.area_m2,
            "meta": meta_data,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Shape":
        kind = ShapeKind(data["kind"])
        meta_data = data.get("meta", {})
        if kind is ShapeKind.BOUNDARY:
            meta = BoundaryMeta(**meta_data)
        elif kind is ShapeKind.ZONE:
            meta = ZoneMeta(**meta_data)
        elif kind is ShapeKind.BUFFER:
            meta = BufferMeta(**meta_data)
        elif kind is ShapeKind.ASSET:
            meta = AssetMeta(**meta_data)
        elif kind is ShapeKind.UNION_RESULT:
            meta = UnionMeta(source_ids=tuple(meta_data["source_ids"]))
        elif kind is ShapeKind.DIFFERENCE_RESULT:
            meta = DifferenceMeta(**meta_data)
        else:
            raise TypeError(f"Unhandled shape kind: {kind}")
        return cls(
            id=data["id"],
            ring=tuple(GeoPoint.from_dict(data=p) for p in data["ring"]),
            meta=meta,
            area_m2=float(data["area_m2"]),
        )

    def __repr__(self) -> str:
        return f"Shape(id={self.id!r}, kind={self.kind.value}, vertices={len(self.ring)}, area={self.area_m2:.1f}m²)"
