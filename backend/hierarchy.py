"""
GEOTIME Hierarchy Module - Command chain (org chart) editing

The tree is treated as a value: add/remove/update return a new tree built
along the path to the changed node and never mutate their input. Built-in
and user-saved templates are handed out as deep copies.
"""

import json
import os
import uuid
from dataclasses import dataclass, asdict, field, replace
from pathlib import Path
from typing import Dict, List, Optional

from logger import setup_logger

logger = setup_logger("hierarchy")

DATA_DIR = Path(os.getenv("GEOTIME_DATA_DIR", Path(__file__).parent.parent / "data"))
TEMPLATES_FILE = DATA_DIR / "org_templates.json"

EDITABLE_FIELDS = {"role", "name", "color", "image_url"}


@dataclass
class CommandNode:
    """One position in the command chain."""
    id: str
    role: str
    name: str
    color: Optional[str] = None
    image_url: Optional[str] = None
    subordinates: List["CommandNode"] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CommandNode":
        return cls(
            id=data["id"],
            role=data.get("role", ""),
            name=data.get("name", ""),
            color=data.get("color"),
            image_url=data.get("image_url"),
            subordinates=[cls.from_dict(s) for s in data.get("subordinates") or []],
        )


def new_node() -> CommandNode:
    return CommandNode(id=uuid.uuid4().hex, role="New Role", name="New Name", color="#6b7280")


def copy_tree(tree: CommandNode) -> CommandNode:
    return CommandNode.from_dict(tree.to_dict())


def find_node(tree: CommandNode, node_id: str) -> Optional[CommandNode]:
    if tree.id == node_id:
        return tree
    for sub in tree.subordinates:
        found = find_node(sub, node_id)
        if found:
            return found
    return None


def add_child(tree: CommandNode, parent_id: str, child: Optional[CommandNode] = None) -> CommandNode:
    """Append a default subordinate under parent_id. Unknown parent returns the tree unchanged."""
    if tree.id == parent_id:
        return replace(tree, subordinates=tree.subordinates + [child or new_node()])
    if not tree.subordinates:
        return tree
    return replace(tree, subordinates=[add_child(sub, parent_id, child) for sub in tree.subordinates])


def remove_node(tree: CommandNode, node_id: str) -> CommandNode:
    """Drop node_id (with its descendants) wherever it appears below the root.

    Removing the root itself is refused by the caller, not here.
    """
    if not tree.subordinates:
        return tree
    return replace(tree, subordinates=[
        remove_node(sub, node_id) for sub in tree.subordinates if sub.id != node_id
    ])


def update_node(tree: CommandNode, node_id: str, patch: dict) -> CommandNode:
    """Merge editable fields of patch into node_id."""
    if tree.id == node_id:
        changes = {k: v for k, v in patch.items() if k in EDITABLE_FIELDS}
        return replace(tree, **changes)
    if not tree.subordinates:
        return tree
    return replace(tree, subordinates=[update_node(sub, node_id, patch) for sub in tree.subordinates])


def count_nodes(tree: CommandNode) -> int:
    return 1 + sum(count_nodes(sub) for sub in tree.subordinates)


# =============================================================================
# TEMPLATES
# =============================================================================

def _node(node_id: str, role: str, name: str, color: str, *subordinates: CommandNode) -> CommandNode:
    return CommandNode(id=node_id, role=role, name=name, color=color, subordinates=list(subordinates))


TEMPLATES: Dict[str, CommandNode] = {
    "DEFAULT": _node(
        "root", "Operation Commander", "Col. Reference", "#3b82f6",
        _node("sub1", "Alpha Leader", "Sgt. Point", "#10b981"),
        _node("sub2", "Bravo Leader", "Sgt. Rearguard", "#10b981"),
    ),
    "SWAT": _node(
        "swat-root", "Tactical Leader (TL)", "Element 01", "#1f2937",
        _node("scout", "Scout/Pointman", "Operator 02", "#ef4444"),
        _node("breacher", "Breacher", "Operator 03", "#f59e0b",
              _node("shield", "Shield Bearer", "Operator 04", "#3b82f6")),
        _node("sniper", "Sniper Overwatch", "Sierra 01", "#10b981"),
    ),
    "RIOT": _node(
        "riot-root", "Riot Commander", "Commanding Officer", "#1e40af",
        _node("gas", "Launchers (Chemical)", "Gas Team", "#f97316"),
        _node("shield-wall", "Shield Wall", "Platoon Alpha", "#374151",
              _node("s1", "Intervention", "Capture", "#ef4444")),
        _node("log", "Logistics/Reserve", "Support", "#6b7280"),
    ),
    "TARGET_ANALYSIS": _node(
        "target-root", "PRIMARY TARGET (01)", "Unknown Subject", "#ef4444",
        _node("finance", "Finance / Laundering", "Money Changer X", "#f59e0b",
              _node("front1", "Front", "Shell Company Ltd", "#9ca3af")),
        _node("routine", "Routine / Places", "Pattern of Life", "#8b5cf6",
              _node("home", "Overnight", "Luxury Condo", "#6b7280"),
              _node("gym", "Frequents", "Gym", "#6b7280")),
        _node("associates", "Right Hand", "Lieutenant", "#dc2626"),
    ),
}


class TemplateStore:
    """User-saved templates kept as a name -> tree JSON mapping on disk."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else TEMPLATES_FILE
        self._templates: Dict[str, dict] = {}
        self.load()

    def load(self):
        if not self.path.exists():
            logger.info("No org template file found, starting fresh")
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                self._templates = json.load(f)
            logger.info(f"Loaded {len(self._templates)} org templates")
        except (OSError, ValueError) as e:
            logger.error(f"Error loading org templates: {e}")
            self._templates = {}

    def _write(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._templates, f, indent=2, ensure_ascii=False)

    def names(self) -> List[str]:
        return sorted(self._templates)

    def save(self, name: str, tree: CommandNode) -> None:
        self._templates[name] = tree.to_dict()
        self._write()
        logger.info(f"Org template saved: {name}")

    def delete(self, name: str) -> bool:
        if self._templates.pop(name, None) is None:
            return False
        self._write()
        logger.info(f"Org template deleted: {name}")
        return True

    def get(self, name: str) -> Optional[CommandNode]:
        """A fresh copy of the stored tree."""
        data = self._templates.get(name)
        return CommandNode.from_dict(data) if data else None


class HierarchyEditor:
    """Owns the live command tree."""

    def __init__(self, store: Optional[TemplateStore] = None):
        self.store = store if store is not None else TemplateStore()
        self.tree: CommandNode = copy_tree(TEMPLATES["DEFAULT"])

    def add(self, parent_id: str) -> dict:
        """Unknown parent ids leave the tree as it is."""
        if find_node(self.tree, parent_id) is None:
            logger.debug(f"add ignored, no node {parent_id}")
        self.tree = add_child(self.tree, parent_id)
        return {"status": "success", "tree": self.tree.to_dict()}

    def remove(self, node_id: str) -> dict:
        if node_id == self.tree.id:
            logger.warning("Refused to remove the root node")
            return {"status": "error", "message": "The root node cannot be removed"}
        if find_node(self.tree, node_id) is None:
            logger.debug(f"remove ignored, no node {node_id}")
        self.tree = remove_node(self.tree, node_id)
        return {"status": "success", "tree": self.tree.to_dict()}

    def update(self, node_id: str, patch: dict) -> dict:
        if find_node(self.tree, node_id) is None:
            logger.debug(f"update ignored, no node {node_id}")
        self.tree = update_node(self.tree, node_id, patch)
        return {"status": "success", "tree": self.tree.to_dict()}

    def select_template(self, key: str, custom: bool = False) -> dict:
        template = self.store.get(key) if custom else TEMPLATES.get(key)
        if template is None:
            return {"status": "error", "message": f"Template {key} not found"}
        self.tree = copy_tree(template)
        logger.info(f"Hierarchy replaced from {'custom' if custom else 'built-in'} template {key}")
        return {"status": "success", "tree": self.tree.to_dict()}

    def save_template(self, name: str) -> dict:
        name = (name or "").strip()
        if not name:
            return {"status": "error", "message": "Template name is required"}
        self.store.save(name, self.tree)
        return {"status": "success", "templates": self.store.names()}

    def delete_template(self, name: str) -> dict:
        if not self.store.delete(name):
            return {"status": "error", "message": f"Template {name} not found"}
        return {"status": "success", "templates": self.store.names()}

    def list_templates(self) -> dict:
        return {"status": "success", "built_in": list(TEMPLATES), "custom": self.store.names()}
