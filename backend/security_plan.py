"""Security plan checklist for protective operations, with preset protection levels."""

import copy
from dataclasses import dataclass, asdict, field
from typing import List, Optional

from logger import setup_logger

logger = setup_logger("security_plan")

PRESET_LEVELS = ("MAX", "MED", "MIN", "CLEAR")
MED_SECTIONS = {"precursor", "perimeter", "med_evac"}
MED_CHECKS = {"cs1", "cs4"}
MIN_CHECKS = {"sec1", "evac1", "med1"}
PRESET_NOTES = {
    "MAX": "Level 1 protocol applied.",
    "MED": "Level 2 protocol applied.",
    "MIN": "Basic protocol applied.",
}


@dataclass
class Check:
    id: str
    label: str
    checked: bool = False
    notes: str = ""


@dataclass
class Section:
    id: str
    title: str
    checks: List[Check] = field(default_factory=list)


def _section(section_id: str, title: str, *checks: tuple) -> Section:
    return Section(section_id, title, [Check(cid, label) for cid, label in checks])


DEFAULT_SECTIONS: List[Section] = [
    _section(
        "precursor", "1. Advance Survey",
        ("p1", "High points (roofs/windows) within 1000m analysed?"),
        ("p2", "Anti-bomb sweep done on stage/podium?"),
        ("p3", "Choke points identified on the arrival route?"),
        ("p4", "Manholes and underground checked in the immediate perimeter?"),
    ),
    _section(
        "perimeter", "2. Perimeters",
        ("sec1", "Inner perimeter (restricted access/badge) established?"),
        ("sec2", "Middle perimeter (search/magnetometer) active?"),
        ("sec3", "Crowd control (physical barriers) installed?"),
    ),
    _section(
        "red_team", "3. RED TEAM (Hostile Analysis)",
        ("rt1", "ESCAPE: any building with line of sight AND fast unblocked access to highways?"),
        ("rt2", "SIGNATURE: windows or openings allowing a deep-room shot?"),
        ("rt3", "SUN: where will the sun be at event time, does it favour a shooter?"),
        ("rt4", "MATH: is the evacuation plan faster than a shooter's reload/adjust time?"),
    ),
    _section(
        "counter_sniper", "4. Counter-Sniper (CS)",
        ("cs1", "TERRAIN DENIAL: all rooftops with direct line of sight occupied by agents?"),
        ("cs2", "VISUAL BLOCK: banners/trucks placed to block unsecured buildings?"),
        ("cs3", "CS teams have a clean firing angle on elevated threats?"),
        ("cs4", "Open windows in the perimeter closed or monitored?"),
    ),
    _section(
        "long_range", "5. Ultra-Long Range",
        ("lr1", "High ground (tall buildings) mapped in extended radius (2km - 4km)?"),
        ("lr2", "Acoustic shot detection (triangulation) installed?"),
        ("lr3", "Air surveillance (helicopter/drone) watching distant rooftops?"),
        ("lr4", "Reverse line-of-sight analysis from the stage done?"),
    ),
    _section(
        "med_evac", "6. Medical and Evacuation",
        ("med1", "Level 1 trauma hospital mapped (route under 10min)?"),
        ("med2", "Trauma room reserved at destination?"),
        ("evac1", "Primary and secondary escape routes clear?"),
        ("evac2", "Armoured vehicle ready for immediate extraction (engine running)?"),
    ),
    _section(
        "intel", "7. Intelligence",
        ("int1", "Social media monitoring (confirmed hostiles)?"),
        ("int2", "Thermal surveillance drone active?"),
    ),
]


class SecurityPlan:
    """Checklist state with toggle, notes, presets and progress."""

    def __init__(self, sections: Optional[List[Section]] = None):
        self.sections: List[Section] = copy.deepcopy(sections or DEFAULT_SECTIONS)

    def _find(self, section_id: str, check_id: str) -> Optional[Check]:
        for section in self.sections:
            if section.id != section_id:
                continue
            for check in section.checks:
                if check.id == check_id:
                    return check
        return None

    def toggle(self, section_id: str, check_id: str) -> Optional[Check]:
        check = self._find(section_id, check_id)
        if check:
            check.checked = not check.checked
        return check

    def set_note(self, section_id: str, check_id: str, text: str) -> Optional[Check]:
        check = self._find(section_id, check_id)
        if check:
            check.notes = text
        return check

    def progress(self) -> int:
        checks = [c for s in self.sections for c in s.checks]
        if not checks:
            return 0
        return round(sum(1 for c in checks if c.checked) / len(checks) * 100)

    def apply_preset(self, level: str) -> None:
        if level not in PRESET_LEVELS:
            raise ValueError(f"Unknown preset level: {level}")
        for section in self.sections:
            for check in section.checks:
                if level == "CLEAR":
                    check.checked = False
                    check.notes = ""
                    continue
                if level == "MAX":
                    should_check = True
                elif level == "MED":
                    should_check = section.id in MED_SECTIONS or check.id in MED_CHECKS
                else:
                    should_check = check.id in MIN_CHECKS
                check.checked = should_check
                check.notes = check.notes or PRESET_NOTES[level]
        logger.info(f"Security plan preset applied: {level}")

    def to_dict(self) -> dict:
        return {
            "progress": self.progress(),
            "sections": [asdict(s) for s in self.sections],
        }
