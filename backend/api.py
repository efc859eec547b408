"""FastAPI server for the GEOTIME tactical map."""
import asyncio
import math
import re
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator

import intel
from geo import GeoPoint
from hierarchy import find_node
from logger import setup_logger
from security_plan import PRESET_LEVELS
from timeline import ALLOWED_SPEEDS
from workspace import get_workspace

logger = setup_logger("api")


# === Centralized Error Handling ===

class APIError(Exception):
    """Base API error with status code and message."""
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class NotFoundError(APIError):
    """Resource not found error."""
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class ValidationError(APIError):
    """Input validation error."""
    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, status_code=422)


# Entity ID validation pattern: alphanumeric, hyphens, underscores, 1-64 chars
ID_PATTERN = re.compile(r'^[a-zA-Z0-9_-]{1,64}$')


def validate_id(entity_id: str) -> str:
    """Validate an item/scene/node id. Raises ValidationError if invalid."""
    if not entity_id or not ID_PATTERN.match(entity_id):
        raise ValidationError(
            "Invalid id: must be 1-64 alphanumeric characters, hyphens, or underscores"
        )
    return entity_id


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_workspace().shutdown()
    logger.info("Workspace shut down")


# Create FastAPI app
api = FastAPI(title="GEOTIME Tactical API", version="1.0.0", lifespan=lifespan)

# Enable CORS for the map frontend
api.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === Global Exception Handler ===

@api.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    """Handle all APIError subclasses with consistent JSON response."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "message": exc.message}
    )


@api.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    """Handle unexpected errors with consistent JSON response."""
    logger.error(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal server error"}
    )


# Pydantic models for request/response

def _finite(value: float) -> float:
    if not math.isfinite(value):
        raise ValueError('must be a finite number')
    return value


class PointIn(BaseModel):
    lat: float
    lng: float

    @field_validator('lat', 'lng')
    @classmethod
    def validate_finite(cls, v: float) -> float:
        return _finite(v)

    def to_point(self) -> GeoPoint:
        return GeoPoint(self.lat, self.lng)


class MarkerDrop(PointIn):
    sub_type: str
    custom_icon_url: Optional[str] = None


class DrawingCreate(BaseModel):
    mode: str  # polygon | line
    path: List[Dict[str, Any]]


class ViewConeUpdate(BaseModel):
    enabled: bool = False
    range: float = 100.0
    direction: float = 0.0
    spread: float = 60.0

    @field_validator('range', 'direction', 'spread')
    @classmethod
    def validate_finite(cls, v: float) -> float:
        return _finite(v)


class TargetingVectorUpdate(BaseModel):
    enabled: bool = False
    range: float = 500.0
    direction: float = 0.0

    @field_validator('range', 'direction')
    @classmethod
    def validate_finite(cls, v: float) -> float:
        return _finite(v)


class ItemUpdate(BaseModel):
    """Partial item edit. Only the fields sent are applied; id and kind are fixed."""
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    sub_type: Optional[str] = None
    position: Optional[PointIn] = None
    path: Optional[List[PointIn]] = None
    visible: Optional[bool] = None
    locked: Optional[bool] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None  # null clears the end of the window
    range_radius: Optional[float] = None
    view_cone: Optional[ViewConeUpdate] = None
    targeting_vector: Optional[TargetingVectorUpdate] = None
    date_start: Optional[str] = None
    date_end: Optional[str] = None
    custom_icon_url: Optional[str] = None

    @field_validator('start_time', 'range_radius')
    @classmethod
    def validate_required_number(cls, v: Optional[float]) -> float:
        if v is None:
            raise ValueError('must be a number')
        return _finite(v)

    @field_validator('end_time')
    @classmethod
    def validate_end_time(cls, v: Optional[float]) -> Optional[float]:
        return v if v is None else _finite(v)


class ImageAdd(BaseModel):
    data: str


class CursorUpdate(BaseModel):
    cursor: float

    @field_validator('cursor')
    @classmethod
    def validate_cursor(cls, v: float) -> float:
        return _finite(v)


class SpeedUpdate(BaseModel):
    speed: int


class StepRequest(BaseModel):
    forward: bool = True


class DocumentUpload(BaseModel):
    text: str


class NodeUpdate(BaseModel):
    role: Optional[str] = None
    name: Optional[str] = None
    color: Optional[str] = None
    image_url: Optional[str] = None


class TemplateSelect(BaseModel):
    key: str
    custom: bool = False


class TemplateSave(BaseModel):
    name: str


class CheckToggle(BaseModel):
    section_id: str
    check_id: str


class CheckNote(CheckToggle):
    text: str


class PresetApply(BaseModel):
    level: str

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v not in PRESET_LEVELS:
            raise ValueError(f'level must be one of {", ".join(PRESET_LEVELS)}')
        return v


class TacticalCommand(BaseModel):
    command: str

    @field_validator('command')
    @classmethod
    def validate_command(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('command must not be empty')
        return v.strip()


class SearchQuery(BaseModel):
    query: str

    @field_validator('query')
    @classmethod
    def validate_query(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('query must not be empty')
        return v.strip()


# Routes

@api.get("/api/health")
def health():
    """API health check."""
    return {"status": "ok", "message": "GEOTIME Tactical API"}


@api.get("/status")
def get_status():
    """Timeline, camera and store counts."""
    return get_workspace().get_status()


# =============================================================================
# ITEM ENDPOINTS
# =============================================================================

@api.get("/items")
def list_items():
    """Get all items in draw order."""
    items = get_workspace().items.all()
    return {"status": "success", "count": len(items), "items": [i.to_dict() for i in items]}


@api.get("/items/{item_id}")
def get_item(item_id: str):
    validate_id(item_id)
    item = get_workspace().items.get(item_id)
    if not item:
        raise NotFoundError(f"Item {item_id} not found")
    return {"status": "success", "item": item.to_dict()}


@api.post("/items")
def drop_marker(drop: MarkerDrop):
    """Place a marker from the icon palette."""
    result = get_workspace().drop_marker(drop.sub_type, drop.to_point(), drop.custom_icon_url)
    if result["status"] == "error":
        raise ValidationError(result["message"])
    return result


@api.post("/drawings")
def create_drawing(drawing: DrawingCreate):
    """Finish a zone or route drawing."""
    result = get_workspace().finish_drawing(drawing.mode, drawing.path)
    if result["status"] == "error":
        raise ValidationError(result["message"])
    return result


@api.patch("/items/{item_id}")
def update_item(item_id: str, update: ItemUpdate):
    """Merge fields into an item."""
    validate_id(item_id)
    item = get_workspace().update_item(item_id, update.model_dump(exclude_unset=True))
    if not item:
        raise NotFoundError(f"Item {item_id} not found")
    return {"status": "success", "item": item.to_dict()}


@api.post("/items/{item_id}/move")
def move_item(item_id: str, point: PointIn):
    """Drag-end relocation. Locked items keep their position."""
    validate_id(item_id)
    workspace = get_workspace()
    if not workspace.items.get(item_id):
        raise NotFoundError(f"Item {item_id} not found")
    item = workspace.move_item(item_id, point.to_point())
    return {"status": "success", "moved": item is not None,
            "item": workspace.items.get(item_id).to_dict()}


@api.delete("/items/{item_id}")
def delete_item(item_id: str):
    validate_id(item_id)
    if not get_workspace().delete_item(item_id):
        raise NotFoundError(f"Item {item_id} not found")
    return {"status": "success", "message": f"Item {item_id} removed"}


@api.post("/items/{item_id}/images")
def add_image(item_id: str, image: ImageAdd):
    """Append an evidence image to the item's gallery."""
    validate_id(item_id)
    item = get_workspace().items.add_image(item_id, image.data)
    if not item:
        raise NotFoundError(f"Item {item_id} not found")
    return {"status": "success", "image_count": len(item.images)}


@api.delete("/items/{item_id}/images/{index}")
def remove_image(item_id: str, index: int):
    validate_id(item_id)
    item = get_workspace().items.remove_image(item_id, index)
    if not item:
        raise NotFoundError(f"Image {index} of item {item_id} not found")
    return {"status": "success", "image_count": len(item.images)}


@api.get("/render")
def render(t: Optional[float] = None):
    """Visible items and derived overlays at a cursor (defaults to the live cursor)."""
    if t is not None and not math.isfinite(t):
        raise ValidationError("t must be a finite number")
    return {"status": "success", **get_workspace().render(t)}


# =============================================================================
# TIMELINE ENDPOINTS
# =============================================================================

@api.get("/timeline")
def get_timeline():
    return {"status": "success", **get_workspace().timeline.get_status()}


@api.post("/timeline/play")
async def play():
    timeline = get_workspace().timeline
    await timeline.play()
    return {"status": "success", **timeline.get_status()}


@api.post("/timeline/pause")
async def pause():
    timeline = get_workspace().timeline
    await timeline.pause()
    return {"status": "success", **timeline.get_status()}


@api.put("/timeline/cursor")
def set_cursor(update: CursorUpdate):
    timeline = get_workspace().timeline
    timeline.set_cursor(update.cursor)
    return {"status": "success", **timeline.get_status()}


@api.put("/timeline/speed")
def set_speed(update: SpeedUpdate):
    """Set playback speed (1x, 5x or 20x)."""
    result = get_workspace().set_speed(update.speed)
    if result["status"] == "error":
        raise ValidationError(f"Speed must be one of {list(ALLOWED_SPEEDS)}")
    return result


@api.post("/timeline/step")
def step(request: StepRequest):
    """Rewind or fast-forward by a fixed step."""
    workspace = get_workspace()
    workspace.skip(request.forward)
    return {"status": "success", **workspace.timeline.get_status()}


# =============================================================================
# SCENE ENDPOINTS
# =============================================================================

@api.get("/scenes")
def list_scenes():
    scenes = get_workspace().scenes.all()
    return {"status": "success", "count": len(scenes), "scenes": [s.to_dict() for s in scenes]}


@api.post("/scenes")
def capture_scene():
    """Bookmark the current camera and cursor."""
    scene = get_workspace().capture_scene()
    return {"status": "success", "scene": scene.to_dict()}


@api.post("/scenes/{scene_id}/restore")
def restore_scene(scene_id: str):
    validate_id(scene_id)
    result = get_workspace().restore_scene(scene_id)
    if result["status"] == "error":
        raise NotFoundError(result["message"])
    return result


@api.delete("/scenes/{scene_id}")
def delete_scene(scene_id: str):
    validate_id(scene_id)
    if not get_workspace().scenes.remove(scene_id):
        raise NotFoundError(f"Scene {scene_id} not found")
    return {"status": "success", "message": f"Scene {scene_id} removed"}


@api.post("/camera")
def move_camera(point: PointIn):
    """Follow a user pan without triggering a fly animation."""
    view = get_workspace().view
    view.move(point.to_point())
    return {"status": "success", "view": view.to_dict()}


# =============================================================================
# DOCUMENT ENDPOINTS
# =============================================================================

@api.get("/document")
def save_document():
    """The {items, scenes} map file."""
    return get_workspace().save_document()


@api.post("/document")
def load_document(upload: DocumentUpload):
    result = get_workspace().load_document(upload.text)
    if result["status"] == "error":
        raise ValidationError(result["message"])
    return result


@api.post("/demo")
def load_demo():
    """Load the Operation Storm demo scenario."""
    return get_workspace().load_demo_scenario()


@api.post("/reset")
async def reset_workspace():
    return await get_workspace().reset()


# =============================================================================
# HIERARCHY ENDPOINTS
# =============================================================================

@api.get("/hierarchy")
def get_hierarchy():
    return {"status": "success", "tree": get_workspace().hierarchy.tree.to_dict()}


@api.post("/hierarchy/{node_id}/children")
def add_subordinate(node_id: str):
    validate_id(node_id)
    editor = get_workspace().hierarchy
    if find_node(editor.tree, node_id) is None:
        raise NotFoundError(f"Node {node_id} not found")
    return editor.add(node_id)


@api.delete("/hierarchy/{node_id}")
def remove_subordinate(node_id: str):
    validate_id(node_id)
    editor = get_workspace().hierarchy
    if node_id == editor.tree.id:
        raise ValidationError("The root node cannot be removed")
    if find_node(editor.tree, node_id) is None:
        raise NotFoundError(f"Node {node_id} not found")
    return editor.remove(node_id)


@api.patch("/hierarchy/{node_id}")
def update_node(node_id: str, update: NodeUpdate):
    validate_id(node_id)
    editor = get_workspace().hierarchy
    if find_node(editor.tree, node_id) is None:
        raise NotFoundError(f"Node {node_id} not found")
    return editor.update(node_id, update.model_dump(exclude_unset=True))


@api.get("/hierarchy/templates")
def list_templates():
    return get_workspace().hierarchy.list_templates()


@api.post("/hierarchy/templates/select")
def select_template(select: TemplateSelect):
    result = get_workspace().hierarchy.select_template(select.key, select.custom)
    if result["status"] == "error":
        raise NotFoundError(result["message"])
    return result


@api.post("/hierarchy/templates")
def save_template(save: TemplateSave):
    result = get_workspace().hierarchy.save_template(save.name)
    if result["status"] == "error":
        raise ValidationError(result["message"])
    return result


@api.delete("/hierarchy/templates/{name}")
def delete_template(name: str):
    result = get_workspace().hierarchy.delete_template(name)
    if result["status"] == "error":
        raise NotFoundError(result["message"])
    return result


# =============================================================================
# SECURITY PLAN ENDPOINTS
# =============================================================================

@api.get("/security-plan")
def get_security_plan():
    return {"status": "success", **get_workspace().security_plan.to_dict()}


@api.post("/security-plan/toggle")
def toggle_check(toggle: CheckToggle):
    plan = get_workspace().security_plan
    if not plan.toggle(toggle.section_id, toggle.check_id):
        raise NotFoundError(f"Check {toggle.section_id}/{toggle.check_id} not found")
    return {"status": "success", "progress": plan.progress()}


@api.put("/security-plan/note")
def set_note(note: CheckNote):
    plan = get_workspace().security_plan
    if not plan.set_note(note.section_id, note.check_id, note.text):
        raise NotFoundError(f"Check {note.section_id}/{note.check_id} not found")
    return {"status": "success"}


@api.post("/security-plan/preset")
def apply_preset(preset: PresetApply):
    plan = get_workspace().security_plan
    plan.apply_preset(preset.level)
    return {"status": "success", **plan.to_dict()}


# =============================================================================
# INTEL ENDPOINTS
# =============================================================================

@api.post("/intel/report")
async def generate_report():
    """SITREP for the current map."""
    workspace = get_workspace()
    epoch = workspace.epoch
    document = workspace.save_document()
    result = await asyncio.to_thread(intel.generate_report, document["items"], document["scenes"])
    return workspace.apply_report(result, epoch)


@api.post("/intel/scenario")
async def run_tactical_command(command: TacticalCommand):
    """Plot AI-generated assets from a natural-language order."""
    workspace = get_workspace()
    epoch = workspace.epoch
    center = workspace.view.center
    result = await asyncio.to_thread(intel.generate_scenario, command.command, center)
    return workspace.apply_scenario(result, epoch)


@api.post("/intel/geocode")
async def search_location(search: SearchQuery):
    """Fly the camera to an address or landmark."""
    workspace = get_workspace()
    epoch = workspace.epoch
    point = await asyncio.to_thread(intel.geocode, search.query)
    result = workspace.apply_geocode(point, epoch)
    if result["status"] == "error":
        raise NotFoundError(result["message"])
    return result


@api.post("/intel/poi")
async def search_points_of_interest(search: SearchQuery):
    workspace = get_workspace()
    epoch = workspace.epoch
    center = workspace.view.center
    results = await asyncio.to_thread(intel.find_points_of_interest, search.query, center)
    return workspace.add_points_of_interest(results, search.query, epoch)


@api.get("/intel/activity")
def get_intel_activity(limit: int = 50):
    return {"status": "success", "activity": intel.get_activity_log(limit)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(api, host="0.0.0.0", port=8000)
