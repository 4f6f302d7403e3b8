"""ShapeCollection - Immutable snapshot of all shapes in a project.

Every operation returns a new collection; a snapshot is never mutated, so a
computation running on one snapshot cannot observe a half-applied edit. The
owner (SiteProject) installs the returned snapshot in a single assignment.

Buffers follow their parent: after a parent's ring changes,
recompute_dependents() rebuilds every buffer derived from it (transitively,
keeping the buffer IDs). Deleting a parent deletes its buffers.

Persistence format is a flat ordered list of shapes keyed by opaque IDs.
"""

import logging
from typing import TYPE_CHECKING, Iterable, Iterator, Optional, Sequence

from site_planner.errors import GeometryError
from site_planner.model.geo_point import GeoPoint
from site_planner.model.shape import BufferMeta, Shape, ShapeKind

if TYPE_CHECKING:
    from site_planner.core.polygon_engine import PolygonGeometryEngine

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"


class ShapeCollection:
    """Ordered, immutable mapping from shape ID to Shape.

    Invariants:
        - IDs are unique
        - At most one shape is tagged boundary

    Example:
        shapes = ShapeCollection().with_shape(boundary).with_shape(zone)
        shapes = shapes.replace_ring(shape_id="B1", ring=new_ring, engine=engine)
    """

    def __init__(self, shapes: Iterable[Shape] = ()) -> None:
        ordered = tuple(shapes)
        index = {shape.id: shape for shape in ordered}
        if len(index) != len(ordered):
            raise ValueError("Shape IDs must be unique")
        boundaries = [shape.id for shape in ordered if shape.kind is ShapeKind.BOUNDARY]
        if len(boundaries) > 1:
            raise ValueError(f"A project has at most one boundary, got {boundaries}")
        self._shapes = ordered
        self._index = index

    # =========================================================================
    # Queries
    # =========================================================================

    def __iter__(self) -> Iterator[Shape]:
        return iter(self._shapes)

    def __len__(self) -> int:
        return len(self._shapes)

    def __contains__(self, shape_id: object) -> bool:
        return shape_id in self._index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ShapeCollection):
            return NotImplemented
        return self._shapes == other._shapes

    def get(self, shape_id: str) -> Shape:
        if shape_id not in self._index:
            raise KeyError(f"No shape with ID '{shape_id}'")
        return self._index[shape_id]

    @property
    def ids(self) -> list[str]:
        return [shape.id for shape in self._shapes]

    @property
    def boundary(self) -> Optional[Shape]:
        for shape in self._shapes:
            if shape.kind is ShapeKind.BOUNDARY:
                return shape
        return None

    @property
    def zones(self) -> list[Shape]:
        return self.of_kind(kind=ShapeKind.ZONE)

    def of_kind(self, kind: ShapeKind) -> list[Shape]:
        return [shape for shape in self._shapes if shape.kind is kind]

    def dependents_of(self, shape_id: str) -> list[str]:
        """IDs of buffers derived from shape_id, directly or through other buffers."""
        result: list[str] = []
        frontier = [shape_id]
        while frontier:
            parent = frontier.pop(0)
            for shape in self._shapes:
                if shape.cascades_from == parent and shape.id not in result:
                    result.append(shape.id)
                    frontier.append(shape.id)
        return result

    # =========================================================================
    # Snapshot operations (each returns a new collection)
    # =========================================================================

    def with_shape(self, shape: Shape) -> "ShapeCollection":
        """Append a shape, or replace the shape with the same ID in place."""
        if shape.id in self._index:
            return ShapeCollection(shape if s.id == shape.id else s for s in self._shapes)
        return ShapeCollection(self._shapes + (shape,))

    def without(self, shape_id: str) -> "ShapeCollection":
        """Remove a shape together with every buffer derived from it."""
        self.get(shape_id=shape_id)
        removed = {shape_id, *self.dependents_of(shape_id=shape_id)}
        if len(removed) > 1:
            logger.info(f"Deleting {shape_id} also removes dependent buffer(s) {sorted(removed - {shape_id})}")
        return ShapeCollection(s for s in self._shapes if s.id not in removed)

    def replace_ring(
        self,
        shape_id: str,
        ring: Sequence[GeoPoint],
        engine: "PolygonGeometryEngine",
    ) -> "ShapeCollection":
        """Replace a shape's outline, recompute its area and cascade to its buffers.

        Raises:
            KeyError: Unknown shape ID.
            GeometryError: Shape is not editable, the ring is invalid, or a
                dependent buffer cannot be recomputed. This collection is
                unchanged in every case.
        """
        shape = self.get(shape_id=shape_id)
        if not shape.is_editable:
            raise GeometryError(
                operation="edit",
                detail=f"{shape.kind.value} shapes follow their parent and cannot be edited",
                shape_id=shape_id,
            )
        engine.validate_ring(ring=ring, operation="edit", shape_id=shape_id)
        updated = shape.with_ring(ring=tuple(ring), area_m2=engine.area(ring=ring))
        return self.with_shape(shape=updated).recompute_dependents(parent_id=shape_id, engine=engine)

    def recompute_dependents(self, parent_id: str, engine: "PolygonGeometryEngine") -> "ShapeCollection":
        """Rebuild every buffer derived from parent_id from the current parent rings.

        Buffers keep their IDs and signed distances. Buffers of buffers are
        rebuilt after their own parent.

        Raises:
            GeometryError: If a buffer can no longer be computed (e.g. the
                parent shrank below the inward distance).
        """
        collection = self
        for buffer_id in self.dependents_of(shape_id=parent_id):
            buffer_shape = collection.get(shape_id=buffer_id)
            meta = buffer_shape.meta
            assert isinstance(meta, BufferMeta), f"{buffer_id} is listed as dependent but is not a buffer"
            parent = collection.get(shape_id=meta.original_shape_id)
            rebuilt = engine.buffer(shape=parent, signed_distance_m=meta.signed_distance_m, buffer_id=buffer_id)
            collection = collection.with_shape(shape=rebuilt)
            logger.info(f"Recomputed buffer {buffer_id} after change to {meta.original_shape_id}")
        return collection

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict (flat ordered shape list)."""
        return {
            "version": SCHEMA_VERSION,
            "shapes": [shape.to_dict() for shape in self._shapes],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ShapeCollection":
        return cls(Shape.from_dict(data=item) for item in data["shapes"])

    def to_geojson(self) -> dict:
        """Export as a GeoJSON FeatureCollection of closed polygons."""
        features = []
        for shape in self._shapes:
            coordinates = [list(p.lng_lat) for p in shape.ring]
            coordinates.append(coordinates[0])
            features.append(
                {
                    "type": "Feature",
                    "id": shape.id,
                    "geometry": {"type": "Polygon", "coordinates": [coordinates]},
                    "properties": {
                        "kind": shape.kind.value,
                        "name": shape.display_name,
                        "area_m2": shape.area_m2,
                        "color": shape.color,
                        "meta": shape.to_dict()["meta"],
                    },
                }
            )
        return {"type": "FeatureCollection", "features": features}

    def __repr__(self) -> str:
        return f"ShapeCollection({len(self._shapes)} shapes: {', '.join(self.ids)})"
