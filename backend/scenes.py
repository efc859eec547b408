"""
GEOTIME Scenes Module - Camera state and narrative bookmarks

A Scene freezes camera center, zoom and the timeline cursor so a briefing
can jump back to it. Restoring is a one-shot fly-to: the camera is free to
move afterwards.
"""

import math
import uuid
from dataclasses import dataclass, asdict, field
from typing import Callable, List, Optional

from geo import GeoPoint, is_finite_point, to_finite_float
from logger import setup_logger

logger = setup_logger("scenes")

INITIAL_CENTER = GeoPoint(-15.793889, -47.882778)  # Brasilia
INITIAL_ZOOM = 5


@dataclass
class ViewState:
    """Shared camera state read by the map surface."""
    center: GeoPoint = field(default_factory=lambda: GeoPoint(INITIAL_CENTER.lat, INITIAL_CENTER.lng))
    zoom: float = INITIAL_ZOOM
    fly_trigger: int = 0  # bumped on every programmatic camera move

    def move(self, center: GeoPoint) -> bool:
        """Follow a user drag. Does not request a fly animation."""
        if not is_finite_point(center):
            return False
        self.center = center
        return True

    def fly_to(self, center: GeoPoint, zoom: Optional[float] = None) -> bool:
        if not is_finite_point(center):
            return False
        self.center = center
        if zoom is not None:
            self.zoom = zoom
        self.fly_trigger += 1
        return True

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Scene:
    """Point-in-time bookmark of camera and cursor."""
    id: str
    title: str
    description: str
    center: GeoPoint
    zoom: float
    timestamp: float
    active_layer_ids: List[str] = field(default_factory=list)  # informational only

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Scene":
        data = dict(data)  # Copy to avoid mutation
        data['center'] = GeoPoint.from_dict(data['center'])
        data['zoom'] = to_finite_float(data['zoom'])
        data['timestamp'] = to_finite_float(data['timestamp'])
        data.setdefault('description', '')
        data.setdefault('active_layer_ids', [])
        return cls(**data)


class SceneBook:
    """Ordered list of captured scenes."""

    def __init__(self, scenes: Optional[List[Scene]] = None):
        self._scenes: List[Scene] = list(scenes or [])

    def __len__(self) -> int:
        return len(self._scenes)

    def all(self) -> List[Scene]:
        return list(self._scenes)

    def get(self, scene_id: str) -> Optional[Scene]:
        for scene in self._scenes:
            if scene.id == scene_id:
                return scene
        return None

    def replace_all(self, scenes: List[Scene]) -> None:
        self._scenes = list(scenes)

    def capture(self, view: ViewState, cursor: float, active_item_ids: List[str]) -> Scene:
        scene = Scene(
            id=uuid.uuid4().hex,
            title=f"Scene {len(self._scenes) + 1}",
            description=f"Tactical record at T-{math.floor(cursor)}",
            center=GeoPoint(view.center.lat, view.center.lng),
            zoom=view.zoom,
            timestamp=cursor,
            active_layer_ids=list(active_item_ids),
        )
        self._scenes.append(scene)
        logger.info(f"Scene captured: {scene.title} at cursor {cursor:.1f}")
        return scene

    def restore(self, scene: Scene, view: ViewState, set_cursor: Callable[[float], float]) -> bool:
        """Write the scene's camera and cursor back. Invalid centers are ignored.

        active_layer_ids is not applied; item visibility stays as it is.
        """
        if not is_finite_point(scene.center):
            logger.warning(f"Scene {scene.id} has an invalid center, restore skipped")
            return False
        view.fly_to(GeoPoint(scene.center.lat, scene.center.lng), scene.zoom)
        set_cursor(scene.timestamp)
        logger.info(f"Scene restored: {scene.title}")
        return True

    def remove(self, scene_id: str) -> bool:
        before = len(self._scenes)
        self._scenes = [s for s in self._scenes if s.id != scene_id]
        return len(self._scenes) < before
