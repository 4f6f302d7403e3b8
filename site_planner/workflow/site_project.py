"""SiteProject - Owner of the current ShapeCollection snapshot.

Provides operations for:
- Setting the project boundary
- Adding zones and asset footprints
- Moving, editing and deleting shapes (buffers follow their parent)
- Buffer, union and difference
- Undo (previous snapshots)
- Serialization (JSON, GeoJSON) and auto-backup

Every operation computes a complete new snapshot first and then installs it
with a single assignment, so a failing operation (GeometryError, KeyError)
leaves the project unchanged.
"""

import json
import logging
from math import cos, radians, sin
from pathlib import Path
from typing import Optional, Sequence

from site_planner.constants import OUTPUT_DIR, EntityPrefixes, UndoConfig
from site_planner.core.coordinate_system import PlanarFrame
from site_planner.core.polygon_engine import PolygonGeometryEngine, RawVertex
from site_planner.model.geo_point import GeoPoint
from site_planner.model.shape import AssetMeta, BoundaryMeta, Shape, ShapeKind, ZoneMeta
from site_planner.model.shape_collection import ShapeCollection

logger = logging.getLogger(__name__)


class SiteProject:
    """Site plan: the boundary, zones, buffers, assets and boolean results.

    Example:
        project = SiteProject()
        project.set_boundary(points=boundary_points)
        zone = project.add_zone(points=zone_points, name="North Lots", kind="residential")
        project.buffer_shape(shape_id=zone.id, signed_distance_m=-5.0)
        project.undo_last()
    """

    def __init__(self, engine: Optional[PolygonGeometryEngine] = None) -> None:
        self.engine = engine or PolygonGeometryEngine()
        self.collection = ShapeCollection()
        self.undo_stack: list[ShapeCollection] = []
        self._counters: dict[ShapeKind, int] = {kind: 0 for kind in ShapeKind}

    def next_id(self, kind: ShapeKind) -> str:
        """Allocate the next free ID for a shape kind, e.g. "Z3" or "BUF1"."""
        prefix = getattr(EntityPrefixes, kind.name)
        while True:
            self._counters[kind] += 1
            shape_id = f"{prefix}{self._counters[kind]}"
            if shape_id not in self.collection:
                return shape_id

    def _push_undo(self, snapshot: ShapeCollection) -> None:
        """Push snapshot to undo stack with size limiting.

        Discards oldest snapshots when stack exceeds MAX_UNDO_STACK_SIZE.
        """
        self.undo_stack.append(snapshot)
        while len(self.undo_stack) > UndoConfig.MAX_UNDO_STACK_SIZE:
            self.undo_stack.pop(0)

    def _commit(self, collection: ShapeCollection, action: str) -> None:
        """Install a new snapshot, keeping the previous one for undo."""
        self._push_undo(snapshot=self.collection)
        self.collection = collection
        logger.info(f"{action} ({len(collection)} shapes)")

    # =========================================================================
    # Shape creation
    # =========================================================================

    def set_boundary(self, points: Sequence[RawVertex], name: str = "Project Boundary") -> Shape:
        """Create the project boundary, or replace the existing boundary's outline.

        Replacing the outline recomputes buffers derived from the boundary.

        Raises:
            GeometryError: Degenerate or self-intersecting ring.
        """
        ring = self.engine.normalize_ring(points=points, operation="set_boundary")
        existing = self.collection.boundary
        if existing is None:
            self.engine.validate_ring(ring=ring, operation="set_boundary")
            boundary = Shape(
                id=self.next_id(kind=ShapeKind.BOUNDARY),
                ring=ring,
                meta=BoundaryMeta(name=name),
                area_m2=self.engine.area(ring=ring),
            )
            self._commit(collection=self.collection.with_shape(shape=boundary), action=f"Set boundary {boundary.id}")
            return boundary

        collection = self.collection.replace_ring(shape_id=existing.id, ring=ring, engine=self.engine)
        boundary = collection.get(shape_id=existing.id).with_meta(meta=BoundaryMeta(name=name))
        self._commit(collection=collection.with_shape(shape=boundary), action=f"Replaced boundary {boundary.id}")
        return boundary

    def add_zone(self, points: Sequence[RawVertex], name: str, kind: str) -> Shape:
        """Add a zone without placement checks (see ZoneValidationEngine for those).

        An empty name falls back to "Zone <id>".
        """
        ring = self.engine.normalize_ring(points=points, operation="add_zone")
        self.engine.validate_ring(ring=ring, operation="add_zone")
        zone_id = self.next_id(kind=ShapeKind.ZONE)
        zone = Shape(
            id=zone_id,
            ring=ring,
            meta=ZoneMeta(name=name.strip() or f"Zone {zone_id}", kind=kind),
            area_m2=self.engine.area(ring=ring),
        )
        return self.add_shape(shape=zone)

    def add_shape(self, shape: Shape) -> Shape:
        """Add a fully built shape (e.g. a zone committed by the drawing workflow).

        Raises:
            ValueError: Duplicate ID or a second boundary.
        """
        if shape.id in self.collection:
            raise ValueError(f"Shape ID '{shape.id}' already exists")
        self._commit(collection=self.collection.with_shape(shape=shape), action=f"Added {shape.kind.value} {shape.id}")
        return shape

    def add_asset(
        self,
        center: GeoPoint,
        asset_type: str,
        key: str,
        width_m: float,
        depth_m: float,
        rotation_deg: float = 0.0,
        floors: int = 1,
    ) -> Shape:
        """Place a rectangular asset footprint centred on a point.

        Args:
            center: Footprint center
            asset_type: Asset category (e.g. "building")
            key: Catalog key of the asset (e.g. "townhouse")
            width_m: East-west extent before rotation
            depth_m: North-south extent before rotation
            rotation_deg: Clockwise rotation in compass degrees
            floors: Number of floors (display only)
        """
        if width_m <= 0 or depth_m <= 0:
            raise ValueError(f"Asset footprint must have positive size, got {width_m}x{depth_m}m")
        frame = PlanarFrame(origin_lng=center.lng, origin_lat=center.lat)
        cx, cy = frame.to_xy(lng=center.lng, lat=center.lat)
        theta = radians(rotation_deg)
        corners = []
        for dx, dy in ((-1, 1), (1, 1), (1, -1), (-1, -1)):
            x, y = dx * width_m / 2, dy * depth_m / 2
            corners.append(frame.to_lng_lat(x=cx + x * cos(theta) + y * sin(theta), y=cy - x * sin(theta) + y * cos(theta)))
        ring = self.engine.normalize_ring(points=corners, operation="add_asset")

        asset = Shape(
            id=self.next_id(kind=ShapeKind.ASSET),
            ring=ring,
            meta=AssetMeta(
                asset_type=asset_type,
                key=key,
                floors=floors,
                rotation_deg=rotation_deg,
                width_m=width_m,
                depth_m=depth_m,
            ),
            area_m2=self.engine.area(ring=ring),
        )
        return self.add_shape(shape=asset)

    # =========================================================================
    # Shape edits
    # =========================================================================

    def delete_shape(self, shape_id: str) -> list[str]:
        """Delete a shape and the buffers derived from it.

        Returns:
            IDs of all removed shapes.
        """
        removed = [shape_id, *self.collection.dependents_of(shape_id=shape_id)]
        self._commit(collection=self.collection.without(shape_id=shape_id), action=f"Deleted {', '.join(removed)}")
        return removed

    def move_shape(self, shape_id: str, east_m: float, north_m: float) -> Shape:
        """Translate a shape by a metric offset; its buffers follow."""
        shape = self.collection.get(shape_id=shape_id)
        ring = self.engine.translate(ring=shape.ring, east_m=east_m, north_m=north_m)
        collection = self.collection.replace_ring(shape_id=shape_id, ring=ring, engine=self.engine)
        self._commit(collection=collection, action=f"Moved {shape_id} by ({east_m:+.1f}m E, {north_m:+.1f}m N)")
        return collection.get(shape_id=shape_id)

    def edit_vertices(self, shape_id: str, points: Sequence[RawVertex]) -> Shape:
        """Replace a shape's vertices; its buffers are recomputed."""
        ring = self.engine.normalize_ring(points=points, operation="edit", shape_id=shape_id)
        collection = self.collection.replace_ring(shape_id=shape_id, ring=ring, engine=self.engine)
        self._commit(collection=collection, action=f"Edited vertices of {shape_id}")
        return collection.get(shape_id=shape_id)

    def rename_zone(self, shape_id: str, name: str, kind: Optional[str] = None) -> Shape:
        zone = self.collection.get(shape_id=shape_id)
        if not isinstance(zone.meta, ZoneMeta):
            raise ValueError(f"{shape_id} is a {zone.kind.value}, not a zone")
        renamed = zone.with_meta(meta=ZoneMeta(name=name.strip() or zone.meta.name, kind=kind or zone.meta.kind))
        self._commit(collection=self.collection.with_shape(shape=renamed), action=f"Renamed zone {shape_id}")
        return renamed

    # =========================================================================
    # Derived shapes
    # =========================================================================

    def buffer_shape(self, shape_id: str, signed_distance_m: float) -> Shape:
        """Add a buffer of a shape; the buffer is recomputed whenever the shape changes."""
        shape = self.collection.get(shape_id=shape_id)
        buffered = self.engine.buffer(
            shape=shape,
            signed_distance_m=signed_distance_m,
            buffer_id=self.next_id(kind=ShapeKind.BUFFER),
        )
        return self.add_shape(shape=buffered)

    def union_shapes(self, shape_id_a: str, shape_id_b: str) -> Optional[Shape]:
        """Add the union of two shapes. Returns None (nothing added) if they do not touch."""
        result = self.engine.union(
            shape_a=self.collection.get(shape_id=shape_id_a),
            shape_b=self.collection.get(shape_id=shape_id_b),
            union_id=self.next_id(kind=ShapeKind.UNION_RESULT),
        )
        if result is None:
            return None
        return self.add_shape(shape=result)

    def difference_shapes(self, minuend_id: str, subtrahend_id: str) -> Optional[Shape]:
        """Add minuend minus subtrahend. Returns None (nothing added) if nothing remains."""
        result = self.engine.difference(
            minuend=self.collection.get(shape_id=minuend_id),
            subtrahend=self.collection.get(shape_id=subtrahend_id),
            difference_id=self.next_id(kind=ShapeKind.DIFFERENCE_RESULT),
        )
        if result is None:
            return None
        return self.add_shape(shape=result)

    # =========================================================================
    # Undo
    # =========================================================================

    def undo_last(self) -> ShapeCollection:
        """Restore the previous snapshot.

        Returns:
            The restored snapshot.

        Raises:
            RuntimeError: If undo stack is empty (caller should check first).
        """
        if not self.undo_stack:
            raise RuntimeError("undo_last called with empty undo_stack")

        self.collection = self.undo_stack.pop()
        logger.info(f"Undo: restored snapshot with {len(self.collection)} shapes")
        return self.collection

    def get_stats(self) -> dict:
        """Get project statistics."""
        zones = self.collection.zones
        boundary = self.collection.boundary
        return {
            "total_shapes": len(self.collection),
            "total_zones": len(zones),
            "total_buffers": len(self.collection.of_kind(kind=ShapeKind.BUFFER)),
            "total_assets": len(self.collection.of_kind(kind=ShapeKind.ASSET)),
            "boundary_area_m2": boundary.area_m2 if boundary is not None else 0.0,
            "zoned_area_m2": sum(zone.area_m2 for zone in zones),
        }

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict:
        """Serialize the current snapshot plus ID counters to a JSON-compatible dict."""
        data = self.collection.to_dict()
        data["counters"] = {kind.value: count for kind, count in self._counters.items()}
        return data

    @classmethod
    def from_dict(cls, data: dict, engine: Optional[PolygonGeometryEngine] = None) -> "SiteProject":
        project = cls(engine=engine)
        project.collection = ShapeCollection.from_dict(data=data)
        for kind_value, count in data.get("counters", {}).items():
            project._counters[ShapeKind(kind_value)] = int(count)
        return project

    def save_json(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Saved {len(self.collection)} shapes to {path}")

    def load_json(self, path: Path) -> None:
        """Replace the current collection with the one stored at path.

        The undo history is cleared; loading starts a new editing session.
        """
        with open(path, "r", encoding="utf-8") as f:
            loaded = SiteProject.from_dict(data=json.load(f), engine=self.engine)
        self.collection = loaded.collection
        self._counters = loaded._counters
        self.undo_stack.clear()
        logger.info(f"Loaded {len(self.collection)} shapes from {path}")

    def to_geojson(self) -> dict:
        return self.collection.to_geojson()

    # =========================================================================
    # Cleanup and Maintenance
    # =========================================================================

    def cleanup_orphan_buffers(self) -> int:
        """Remove buffers whose parent shape no longer exists.

        Returns:
            Number of buffers removed.
        """
        orphans = [
            shape.id
            for shape in self.collection.of_kind(kind=ShapeKind.BUFFER)
            if shape.cascades_from not in self.collection
        ]
        if orphans:
            self.collection = ShapeCollection(s for s in self.collection if s.id not in orphans)
        return len(orphans)

    def create_auto_backup(self) -> None:
        """Create automatic backup of the project.

        Saves a JSON file without timestamp to overwrite an existing backup
        in output/site_planner/backups/.
        """
        backup_dir = Path(OUTPUT_DIR) / "site_planner" / "backups"
        backup_dir.mkdir(parents=True, exist_ok=True)
        backup_path = backup_dir / "site_backup.json"

        try:
            with open(backup_path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            logger.info(f"Auto-backup created: {backup_path.name}")
        except OSError as e:
            logger.error(f"Failed to create auto-backup: {e}")

    def perform_cleanup(self) -> None:
        """Perform maintenance tasks after a workflow transition.

        Current cleanup tasks:
        - Remove buffers whose parent was removed outside the project API
        - Create automatic backup (JSON file)
        """
        removed_count = self.cleanup_orphan_buffers()
        if removed_count > 0:
            logger.info(f"Cleanup: removed {removed_count} orphan buffer(s)")

        if len(self.collection) > 0:
            self.create_auto_backup()

    def __repr__(self) -> str:
        return f"SiteProject({self.collection!r}, undo={len(self.undo_stack)})"
