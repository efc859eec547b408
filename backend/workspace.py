"""
GEOTIME Workspace Module - Single owner of the tactical session state

The workspace holds the item store, scene book, timeline, camera, command
hierarchy and security plan, and is the only path through which they are
mutated. It also applies results coming back from the intel service:
coordinates are re-validated, and results that belong to an earlier
session (the workspace was reset while the call was in flight) are dropped.
"""

import json
import threading
import uuid
from typing import List, Optional, Union

from geo import GeoPoint, coerce_point, is_finite_point
from hierarchy import HierarchyEditor, TemplateStore
from logger import setup_logger
from map_items import (
    DEMO_CENTER, DEMO_SCENES_SEED, DEMO_ZOOM, TACTICAL_ICONS,
    ItemKind, ItemStore, MapItem, build_demo_items, new_item_id, new_marker,
)
from scenes import Scene, SceneBook, ViewState
from security_plan import SecurityPlan
from timeline import SKIP_STEP, TimelineController, format_clock

logger = setup_logger("workspace")

SCENARIO_MOVE_THRESHOLD = 0.001  # degrees; smaller target shifts keep the camera
SCENARIO_ZOOM = 11
GEOCODE_ZOOM = 17
DRAWING_COLORS = {"polygon": "#ef4444", "polyline": "#fbbf24"}
DRAWING_NAMES = {"polygon": "Area", "polyline": "Route"}


class TacticalWorkspace:
    """Main session orchestrator - singleton pattern."""

    _instance = None
    _lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "TacticalWorkspace":
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton for testing."""
        with cls._lock:
            cls._instance = None

    def __init__(self, template_store: Optional[TemplateStore] = None):
        self.items = ItemStore()
        self.scenes = SceneBook()
        self.timeline = TimelineController()
        self.view = ViewState()
        self.hierarchy = HierarchyEditor(template_store)
        self.security_plan = SecurityPlan()
        self.ai_output: Optional[str] = None
        self.epoch: int = 0

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------

    def drop_marker(self, sub_type: str, point: GeoPoint, custom_icon_url: Optional[str] = None) -> dict:
        """Place a marker from the icon palette at the current cursor."""
        if not is_finite_point(point):
            return {"status": "error", "message": "Drop position must be a finite coordinate"}
        label = TACTICAL_ICONS.get(sub_type, ("Item", "#ffffff"))[0]
        item = new_marker(
            sub_type,
            point,
            name=f"{label} {len(self.items) + 1}",
            start_time=self.timeline.cursor,
            custom_icon_url=custom_icon_url,
        )
        self.items.add(item)
        return {"status": "success", "item": item.to_dict()}

    def finish_drawing(self, mode: str, path: List[dict]) -> dict:
        """Turn a clicked path into a zone (polygon) or route (polyline)."""
        kind = "polyline" if mode in ("line", "polyline") else mode
        if kind not in DRAWING_COLORS:
            return {"status": "error", "message": f"Unknown drawing mode: {mode}"}
        points = [coerce_point(p) for p in path]
        if any(p is None for p in points):
            return {"status": "error", "message": "Path contains invalid coordinates"}
        if len(points) < 2:
            return {"status": "error", "message": "A drawing needs at least two points"}

        item = MapItem(
            id=new_item_id(),
            kind=kind,
            name=f"{DRAWING_NAMES[kind]} {len(self.items) + 1}",
            position=points[0],
            path=points,
            color=DRAWING_COLORS[kind],
            start_time=self.timeline.cursor,
        )
        self.items.add(item)
        return {"status": "success", "item": item.to_dict()}

    def update_item(self, item_id: str, patch: dict) -> Optional[MapItem]:
        return self.items.update(item_id, patch)

    def move_item(self, item_id: str, point: GeoPoint) -> Optional[MapItem]:
        return self.items.move(item_id, point)

    def delete_item(self, item_id: str) -> bool:
        return self.items.remove(item_id)

    def render(self, cursor: Optional[float] = None) -> dict:
        """Everything the map surface draws at the cursor."""
        t = self.timeline.cursor if cursor is None else cursor
        return {
            "time": t,
            "clock": format_clock(t),
            "items": [i.to_dict() for i in self.items.visible_at(t)],
            "overlays": [o.to_dict() for o in self.items.overlays_at(t)],
            "view": self.view.to_dict(),
        }

    # -------------------------------------------------------------------------
    # Timeline & scenes
    # -------------------------------------------------------------------------

    def set_speed(self, speed: int) -> dict:
        try:
            self.timeline.set_speed(speed)
        except ValueError as e:
            return {"status": "error", "message": str(e)}
        return {"status": "success", **self.timeline.get_status()}

    def skip(self, forward: bool = True) -> float:
        return self.timeline.step(SKIP_STEP if forward else -SKIP_STEP)

    def capture_scene(self) -> Scene:
        cursor = self.timeline.cursor
        active_ids = [i.id for i in self.items.visible_at(cursor)]
        return self.scenes.capture(self.view, cursor, active_ids)

    def restore_scene(self, scene_id: str) -> dict:
        scene = self.scenes.get(scene_id)
        if scene is None:
            return {"status": "error", "message": f"Scene {scene_id} not found"}
        restored = self.scenes.restore(scene, self.view, self.timeline.set_cursor)
        return {
            "status": "success",
            "restored": restored,
            "view": self.view.to_dict(),
            "timeline": self.timeline.get_status(),
        }

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save_document(self) -> dict:
        return {
            "items": [i.to_dict() for i in self.items.all()],
            "scenes": [s.to_dict() for s in self.scenes.all()],
        }

    def load_document(self, document: Union[str, bytes, dict]) -> dict:
        """Replace items and/or scenes from a saved document.

        Both collections are parsed before anything is swapped in, so a bad
        file leaves the session untouched.
        """
        try:
            data = json.loads(document) if isinstance(document, (str, bytes)) else document
            if not isinstance(data, dict):
                raise ValueError("document root must be an object")
            items = [MapItem.from_dict(i) for i in data["items"]] if data.get("items") is not None else None
            scenes = [Scene.from_dict(s) for s in data["scenes"]] if data.get("scenes") is not None else None
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.error(f"Error loading map document: {e}")
            return {"status": "error", "message": "Could not read the map file."}

        if items is not None:
            self.items.replace_all(items)
        if scenes is not None:
            self.scenes.replace_all(scenes)
        logger.info(f"Map document loaded: {len(self.items)} items, {len(self.scenes)} scenes")
        return {"status": "success", "item_count": len(self.items), "scene_count": len(self.scenes)}

    def load_demo_scenario(self) -> dict:
        self.items.replace_all(build_demo_items())
        self.scenes.replace_all([
            Scene.from_dict({**seed, "id": uuid.uuid4().hex}) for seed in DEMO_SCENES_SEED
        ])
        self.timeline.set_cursor(0)
        self.view.fly_to(GeoPoint.from_dict(DEMO_CENTER), DEMO_ZOOM)
        self.ai_output = (
            "Simulation loaded: Operation Storm - Rio de Janeiro.\n"
            "Status: assets positioned. Tactical schedule ready.\n\n"
            "Tip: press Play on the timeline to watch the operation."
        )
        return {"status": "success", "message": self.ai_output}

    # -------------------------------------------------------------------------
    # Intel results
    # -------------------------------------------------------------------------

    def is_current(self, epoch: int) -> bool:
        if epoch != self.epoch:
            logger.info(f"Discarding intel result from stale session {epoch} (current {self.epoch})")
            return False
        return True

    def apply_report(self, result: dict, epoch: int) -> dict:
        if not self.is_current(epoch):
            return {"status": "discarded"}
        if result.get("status") == "success":
            self.ai_output = result.get("response")
        else:
            self.ai_output = "Error reaching the AI service. Check that ANTHROPIC_API_KEY is set in the .env file."
        return {"status": result.get("status", "error"), "output": self.ai_output}

    def apply_scenario(self, result: dict, epoch: int) -> dict:
        """Plot AI-generated assets and, when the mission area moved, fly there."""
        if not self.is_current(epoch):
            return {"status": "discarded"}

        if result.get("error") == "API_KEY_MISSING":
            self.ai_output = ("CRITICAL ERROR: API key missing or invalid.\n\n"
                              "Set ANTHROPIC_API_KEY=your_key in the .env file and restart the server.")
            return {"status": "error", "output": self.ai_output, "items": []}

        location_changed = False
        target = coerce_point(result.get("target_location"))
        if target is not None:
            center = self.view.center
            if (abs(target.lat - center.lat) > SCENARIO_MOVE_THRESHOLD
                    or abs(target.lng - center.lng) > SCENARIO_MOVE_THRESHOLD):
                self.view.fly_to(target, SCENARIO_ZOOM)
                location_changed = True

        new_items = []
        for raw in result.get("items") or []:
            if not isinstance(raw, dict):
                continue
            point = coerce_point(raw)
            if point is None:
                continue
            new_items.append(MapItem(
                id=new_item_id(),
                kind=ItemKind.MARKER.value,
                sub_type=raw.get("subType") or raw.get("sub_type") or "vehicle",
                name=raw.get("name") or "AI Unit",
                description=raw.get("description") or "Placed via tactical command",
                position=point,
                color=raw.get("color") or "#3b82f6",
                start_time=self.timeline.cursor,
            ))
        self.items.extend(new_items)

        if new_items:
            moved = " Map repositioned to the mission area." if location_changed else ""
            self.ai_output = f"Order executed: {len(new_items)} assets deployed.{moved}"
        elif location_changed:
            self.ai_output = ("The map moved to the requested place, but the AI plotted no assets. "
                              "Try refining the command (e.g. 'add 3 ships here').")
        else:
            self.ai_output = ("Command received, but no assets were generated. "
                              "Try rephrasing: 'Create a roadblock with 3 vehicles AT THIS position'.")
        return {
            "status": "success",
            "output": self.ai_output,
            "location_changed": location_changed,
            "items": [i.to_dict() for i in new_items],
        }

    def apply_geocode(self, point: Optional[GeoPoint], epoch: int) -> dict:
        if not self.is_current(epoch):
            return {"status": "discarded"}
        point = coerce_point(point) if point is not None else None
        if point is None:
            return {"status": "error", "message": "Location not found. Try a simpler address."}
        self.view.fly_to(point, GEOCODE_ZOOM)
        return {"status": "success", "view": self.view.to_dict()}

    def add_points_of_interest(self, results: list, query: str, epoch: int) -> dict:
        if not self.is_current(epoch):
            return {"status": "discarded"}
        added = []
        for raw in results:
            point = coerce_point(raw) if isinstance(raw, dict) else None
            if point is None:
                continue
            added.append(new_marker(
                "poi", point,
                name=raw.get("name") or query,
                start_time=self.timeline.cursor,
                description=raw.get("description") or "",
            ))
        self.items.extend(added)
        return {"status": "success", "items": [i.to_dict() for i in added]}

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def reset(self) -> dict:
        """Clear the map session. In-flight intel results become stale."""
        await self.timeline.shutdown()
        self.items = ItemStore()
        self.scenes = SceneBook()
        self.timeline = TimelineController()
        self.view = ViewState()
        self.ai_output = None
        self.epoch += 1
        logger.info(f"Workspace reset (session {self.epoch})")
        return {"status": "success", "epoch": self.epoch}

    async def shutdown(self):
        await self.timeline.shutdown()
        self.epoch += 1

    def get_status(self) -> dict:
        return {
            "status": "success",
            "timeline": self.timeline.get_status(),
            "view": self.view.to_dict(),
            "item_count": len(self.items),
            "scene_count": len(self.scenes),
            "ai_output": self.ai_output,
        }


def get_workspace() -> TacticalWorkspace:
    return TacticalWorkspace.get_instance()
