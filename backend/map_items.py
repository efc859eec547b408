"""
GEOTIME Map Items Module - Tactical entities and timeline visibility

This module provides:
- MapItem model (markers, zones, routes) with a relative time window
- ItemStore, the ordered working set with CRUD and evidence gallery
- Visibility filtering against a timeline cursor
- Derived overlays (range ring, view cone, targeting vector) computed on read
- Tactical icon catalog and the demo scenario seed data
"""

import uuid
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Dict, List, Optional

from geo import GeoPoint, is_finite_point, project, to_finite_float, view_cone_polygon
from logger import setup_logger

logger = setup_logger("map_items")


# =============================================================================
# ENUMS & CATALOG
# =============================================================================

class ItemKind(Enum):
    """Geometry kinds of a map item."""
    MARKER = "marker"
    POLYGON = "polygon"
    POLYLINE = "polyline"
    CIRCLE = "circle"  # reserved


class OverlayKind(Enum):
    """Derived overlays emitted for visible markers."""
    RANGE_RING = "range_ring"
    VIEW_CONE = "view_cone"
    TARGETING_VECTOR = "targeting_vector"


# icon type -> (label, default color)
TACTICAL_ICONS: Dict[str, tuple] = {
    "police": ("Police", "#3b82f6"),
    "army": ("Army", "#15803d"),
    "navy": ("Navy", "#1e40af"),
    "aircraft": ("Aircraft", "#60a5fa"),
    "helicopter": ("Heli", "#93c5fd"),
    "tanker": ("Tanker (Fuel)", "#d946ef"),
    "base_attack": ("Attack Base", "#be123c"),
    "antiair": ("Air Defense", "#059669"),
    "submarine": ("Submarine", "#172554"),
    "fire": ("Fire Brigade", "#ef4444"),
    "vehicle": ("Vehicle", "#6b7280"),
    "drone": ("Drone", "#a855f7"),
    "team": ("Team", "#eab308"),
    "media": ("Press", "#f97316"),
    "station": ("Station", "#1f2937"),
    "protest": ("Protest", "#dc2626"),
    "journalist": ("Journalist", "#f97316"),
    "target": ("Target", "#ef4444"),
    "poi": ("POI", "#10b981"),
}

PATH_KINDS = {ItemKind.POLYGON.value, ItemKind.POLYLINE.value}
IMMUTABLE_FIELDS = {"id", "kind"}


def new_item_id() -> str:
    return uuid.uuid4().hex


# =============================================================================
# DATA MODELS
# =============================================================================

@dataclass
class ViewCone:
    """Field-of-view fan parameters."""
    enabled: bool = False
    range: float = 100.0  # meters
    direction: float = 0.0  # azimuth, degrees
    spread: float = 60.0  # degrees

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ViewCone":
        """Known keys only; numbers must be finite."""
        if not isinstance(data, dict):
            raise TypeError(f"view_cone must be an object, got {data!r}")
        return cls(
            enabled=bool(data.get("enabled", False)),
            range=to_finite_float(data.get("range", 100.0)),
            direction=to_finite_float(data.get("direction", 0.0)),
            spread=to_finite_float(data.get("spread", 60.0)),
        )


@dataclass
class TargetingVector:
    """Direct line of fire/sight parameters."""
    enabled: bool = False
    range: float = 500.0  # meters
    direction: float = 0.0  # azimuth, degrees

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TargetingVector":
        if not isinstance(data, dict):
            raise TypeError(f"targeting_vector must be an object, got {data!r}")
        return cls(
            enabled=bool(data.get("enabled", False)),
            range=to_finite_float(data.get("range", 500.0)),
            direction=to_finite_float(data.get("direction", 0.0)),
        )


@dataclass
class MapItem:
    """An annotatable entity on the tactical map."""
    id: str
    kind: str  # ItemKind value
    name: str
    position: GeoPoint
    color: str
    sub_type: Optional[str] = None  # icon type, markers only
    description: str = ""
    path: Optional[List[GeoPoint]] = None  # polygons/polylines only
    visible: bool = True
    locked: bool = False

    # Relative timeline window (0-100)
    start_time: float = 0.0
    end_time: Optional[float] = None

    # Tactical visuals, stored as authoring parameters only
    range_radius: float = 0.0
    view_cone: Optional[ViewCone] = None
    targeting_vector: Optional[TargetingVector] = None

    # Calendar dates, descriptive only
    date_start: Optional[str] = None
    date_end: Optional[str] = None

    images: List[str] = field(default_factory=list)
    custom_icon_url: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MapItem":
        """Build from a saved document. Raises TypeError/ValueError on mistyped fields."""
        data = dict(data)  # Copy to avoid mutation
        data['position'] = GeoPoint.from_dict(data['position'])
        if data.get('path') is not None:
            data['path'] = [GeoPoint.from_dict(p) for p in data['path']]
        if data.get('view_cone') is not None:
            data['view_cone'] = ViewCone.from_dict(data['view_cone'])
        if data.get('targeting_vector') is not None:
            data['targeting_vector'] = TargetingVector.from_dict(data['targeting_vector'])
        data['start_time'] = to_finite_float(data.get('start_time', 0.0))
        if data.get('end_time') is not None:
            data['end_time'] = to_finite_float(data['end_time'])
        data['range_radius'] = to_finite_float(data.get('range_radius') or 0.0)
        data.setdefault('color', '#ffffff')
        data.setdefault('images', [])
        if not isinstance(data['images'], list):
            raise TypeError("images must be a list")
        return cls(**data)

    def coordinates(self) -> List[GeoPoint]:
        """Every coordinate that must be finite for the item to render."""
        if self.kind in PATH_KINDS:
            return [self.position] + list(self.path or [])
        return [self.position]

    def has_finite_geometry(self) -> bool:
        return all(is_finite_point(p) for p in self.coordinates())

    def is_active(self, cursor: float) -> bool:
        if cursor < self.start_time:
            return False
        # end_time of None or 0 leaves the window open
        return not self.end_time or cursor <= self.end_time


@dataclass
class Overlay:
    """Render instruction derived from an item's authoring parameters."""
    kind: str  # OverlayKind value
    item_id: str
    color: str
    points: List[GeoPoint] = field(default_factory=list)
    radius: float = 0.0  # range rings only

    def to_dict(self) -> dict:
        return asdict(self)


NUMBER_FIELDS = {"start_time", "range_radius"}
BOOL_FIELDS = {"visible", "locked"}
NULLABLE_FIELDS = {
    "sub_type", "path", "end_time", "view_cone", "targeting_vector",
    "date_start", "date_end", "custom_icon_url",
}


def _coerce_point(value) -> GeoPoint:
    if isinstance(value, GeoPoint):
        return value
    if not isinstance(value, dict):
        raise TypeError(f"expected a point, got {value!r}")
    return GeoPoint.from_dict(value)


def _coerce_field(name: str, value):
    """Convert a JSON-shaped patch value into the model type.

    Raises TypeError/ValueError when the value cannot be stored in that field.
    """
    if value is None:
        if name in NULLABLE_FIELDS:
            return None
        raise TypeError(f"{name} cannot be null")
    if name in NUMBER_FIELDS or name == "end_time":
        return to_finite_float(value)
    if name in BOOL_FIELDS:
        if not isinstance(value, bool):
            raise TypeError(f"{name} must be a boolean")
        return value
    if name == "position":
        return _coerce_point(value)
    if name == "path":
        return [_coerce_point(p) for p in value]
    if name == "view_cone":
        return value if isinstance(value, ViewCone) else ViewCone.from_dict(value)
    if name == "targeting_vector":
        return value if isinstance(value, TargetingVector) else TargetingVector.from_dict(value)
    if name == "images" and not isinstance(value, list):
        raise TypeError("images must be a list")
    return value


# =============================================================================
# STORE
# =============================================================================

class ItemStore:
    """Ordered working set of map items. Insertion order is draw order."""

    def __init__(self, items: Optional[List[MapItem]] = None):
        self._items: List[MapItem] = list(items or [])

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    def all(self) -> List[MapItem]:
        return list(self._items)

    def get(self, item_id: str) -> Optional[MapItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def add(self, item: MapItem) -> MapItem:
        """Append an item. Ids are assigned by the caller."""
        self._items.append(item)
        logger.info(f"Item added: {item.id} ({item.kind} '{item.name}')")
        return item

    def extend(self, items: List[MapItem]) -> None:
        for item in items:
            self.add(item)

    def replace_all(self, items: List[MapItem]) -> None:
        self._items = list(items)
        logger.info(f"Item store replaced with {len(items)} items")

    def update(self, item_id: str, patch: dict) -> Optional[MapItem]:
        """Merge patch fields into the matching item. Unknown ids are ignored.

        Fields whose value cannot be stored (null, non-finite, wrong type) are
        skipped; the rest of the patch still applies.
        """
        item = self.get(item_id)
        if item is None:
            logger.debug(f"update ignored, no item {item_id}")
            return None

        for name, value in patch.items():
            if name in IMMUTABLE_FIELDS or name not in MapItem.__dataclass_fields__:
                logger.debug(f"update on {item_id} skipped field '{name}'")
                continue
            try:
                setattr(item, name, _coerce_field(name, value))
            except (TypeError, ValueError, KeyError) as e:
                logger.warning(f"update on {item_id} rejected field '{name}': {e}")

        if "path" in patch and item.kind in PATH_KINDS and item.path:
            item.position = item.path[0]

        logger.info(f"Item updated: {item_id} fields={sorted(patch)}")
        return item

    def move(self, item_id: str, point: GeoPoint) -> Optional[MapItem]:
        """Drag-end relocation of a marker. Locked items and bad points are ignored."""
        item = self.get(item_id)
        if item is None or item.kind != ItemKind.MARKER.value:
            return None
        if item.locked:
            logger.info(f"Move rejected, item {item_id} is locked")
            return None
        if not is_finite_point(point):
            logger.warning(f"Move rejected, non-finite point for {item_id}")
            return None
        item.position = point
        return item

    def remove(self, item_id: str) -> bool:
        """Delete the matching item. Returns False (no error) when absent."""
        before = len(self._items)
        self._items = [i for i in self._items if i.id != item_id]
        removed = len(self._items) < before
        if removed:
            logger.info(f"Item removed: {item_id}")
        return removed

    # Evidence gallery

    def add_image(self, item_id: str, blob: str) -> Optional[MapItem]:
        item = self.get(item_id)
        if item is None:
            return None
        item.images.append(blob)
        return item

    def remove_image(self, item_id: str, index: int) -> Optional[MapItem]:
        item = self.get(item_id)
        if item is None or not 0 <= index < len(item.images):
            return None
        del item.images[index]
        return item

    # Timeline queries

    def visible_at(self, cursor: float) -> List[MapItem]:
        """Items shown at the cursor, in insertion order."""
        return [
            item for item in self._items
            if item.visible and item.has_finite_geometry() and item.is_active(cursor)
        ]

    def overlays_at(self, cursor: float) -> List[Overlay]:
        """Range rings, view cones and targeting vectors for visible markers."""
        overlays: List[Overlay] = []
        for item in self.visible_at(cursor):
            if item.kind != ItemKind.MARKER.value:
                continue
            overlays.extend(derive_overlays(item))
        return overlays


def derive_overlays(item: MapItem) -> List[Overlay]:
    """Recompute overlay geometry from the item's current parameters."""
    overlays = []

    if item.range_radius and item.range_radius > 0:
        overlays.append(Overlay(
            kind=OverlayKind.RANGE_RING.value,
            item_id=item.id,
            color=item.color,
            points=[item.position],
            radius=item.range_radius,
        ))

    cone = item.view_cone
    if cone and cone.enabled and cone.range > 0:
        polygon = view_cone_polygon(item.position, cone.range, cone.direction, cone.spread)
        if polygon:
            overlays.append(Overlay(
                kind=OverlayKind.VIEW_CONE.value,
                item_id=item.id,
                color=item.color,
                points=polygon,
            ))

    vector = item.targeting_vector
    if vector and vector.enabled and vector.range > 0:
        endpoint = project(item.position, vector.range, vector.direction)
        if endpoint is not None:
            overlays.append(Overlay(
                kind=OverlayKind.TARGETING_VECTOR.value,
                item_id=item.id,
                color="#ffffff",
                points=[item.position, endpoint],
            ))

    return overlays


def new_marker(sub_type: str, position: GeoPoint, name: str = "", start_time: float = 0.0,
               **fields) -> MapItem:
    """Marker with the catalog's default label and color for its icon type."""
    label, color = TACTICAL_ICONS.get(sub_type, ("Item", "#ffffff"))
    fields.setdefault("color", color)
    return MapItem(
        id=new_item_id(),
        kind=ItemKind.MARKER.value,
        sub_type=sub_type,
        name=name or label,
        position=position,
        start_time=start_time,
        **fields,
    )


# =============================================================================
# SEED DATA - Demo scenario "Operation Storm" (Copacabana)
# =============================================================================

DEMO_CENTER = {"lat": -22.9673, "lng": -43.1788}
DEMO_ZOOM = 16

DEMO_ITEMS_SEED: List[dict] = [
    {
        "kind": "marker", "sub_type": "target", "name": "TARGET: VIP Hotel",
        "description": "Hostages confirmed. 4 armed hostiles in the lobby.",
        "position": {"lat": -22.9673, "lng": -43.1788},
        "color": "#ef4444", "locked": True, "start_time": 0, "range_radius": 50,
    },
    {
        "kind": "marker", "sub_type": "police", "name": "North Roadblock",
        "description": "Patrol car sealing Av. Atlantica.",
        "position": {"lat": -22.9660, "lng": -43.1775},
        "color": "#3b82f6", "start_time": 0,
    },
    {
        "kind": "marker", "sub_type": "police", "name": "South Roadblock",
        "description": "Patrol car sealing the side street.",
        "position": {"lat": -22.9685, "lng": -43.1800},
        "color": "#3b82f6", "start_time": 5,
    },
    {
        "kind": "marker", "sub_type": "army", "name": "Sniper Alpha",
        "description": "Rooftop of the neighbouring building. Clear line to the lobby.",
        "position": {"lat": -22.9670, "lng": -43.1795},
        "color": "#15803d", "start_time": 20, "range_radius": 300,
    },
    {
        "kind": "marker", "sub_type": "drone", "name": "Drone Eagle-1",
        "description": "Tactical overflight for thermal identification.",
        "position": {"lat": -22.9673, "lng": -43.1760},
        "color": "#a855f7", "start_time": 30, "range_radius": 100,
    },
    {
        "kind": "marker", "sub_type": "team", "name": "Assault Team",
        "description": "Advancing through the service entrance.",
        "position": {"lat": -22.9678, "lng": -43.1785},
        "color": "#eab308", "start_time": 60,
    },
    {
        "kind": "marker", "sub_type": "helicopter", "name": "Eagle 01 (Evac)",
        "description": "Approach for extraction at the helipad.",
        "position": {"lat": -22.9665, "lng": -43.1750},
        "color": "#93c5fd", "start_time": 85,
    },
    {
        "kind": "polyline", "name": "Escape Route (Hostiles)",
        "description": "Likely escape route towards the community.",
        "position": {"lat": -22.9673, "lng": -43.1788},
        "path": [
            {"lat": -22.9673, "lng": -43.1788},
            {"lat": -22.9660, "lng": -43.1810},
            {"lat": -22.9650, "lng": -43.1830},
        ],
        "color": "#ef4444", "start_time": 10,
    },
]

DEMO_SCENES_SEED: List[dict] = [
    {
        "title": "Phase 1: Isolation",
        "description": "Security perimeter established and critical area sealed.",
        "center": DEMO_CENTER, "zoom": 16, "timestamp": 10, "active_layer_ids": [],
    },
    {
        "title": "Phase 2: Positioning",
        "description": "Snipers and drones in position. Intelligence confirmed.",
        "center": DEMO_CENTER, "zoom": 17, "timestamp": 40, "active_layer_ids": [],
    },
    {
        "title": "Phase 3: Intervention",
        "description": "Tactical team entry and air extraction.",
        "center": DEMO_CENTER, "zoom": 18, "timestamp": 90, "active_layer_ids": [],
    },
]


def build_demo_items() -> List[MapItem]:
    """Fresh MapItems (new ids) from the demo seed."""
    return [MapItem.from_dict({**seed, "id": new_item_id()}) for seed in DEMO_ITEMS_SEED]
