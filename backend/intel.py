"""
GEOTIME Intel Module - Generative-AI collaborator

Wraps the Anthropic API for the four intelligence operations the map uses:
SITREP report, tactical scenario plotting, geocoding and point-of-interest
search. Every function reports failure as a status dict (or None / [] for
lookups) and never raises into the caller. Coordinates coming back from
here are untrusted; the workspace validates them before use.
"""

import json
import os
import re
import threading
import time
from datetime import datetime
from typing import List, Optional

import anthropic
import httpx
from dotenv import load_dotenv

from geo import GeoPoint, coerce_point
from logger import setup_logger

load_dotenv()

logger = setup_logger("intel")

DEFAULT_MODEL = os.getenv("GEOTIME_MODEL", "claude-sonnet-4-20250514")
NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
NOMINATIM_USER_AGENT = "GEOTIME_Tactical_App/1.0"
API_KEY_MISSING = "API_KEY_MISSING"
GENERATION_FAILED = "AI_GENERATION_FAILED"

ALLOWED_ICONS = [
    'police', 'army', 'navy', 'aircraft', 'helicopter', 'submarine', 'protest',
    'station', 'fire', 'vehicle', 'drone', 'team', 'journalist', 'media', 'target', 'poi',
    'tanker', 'base_attack', 'antiair'
]

# Activity log for the intel console (in-memory, max 200 entries)
_activity_log = []
_activity_lock = threading.Lock()
MAX_ACTIVITY_LOG = 200


def log_activity(action: str, details: str = "", duration_ms: int = None,
                 success: bool = True, error: str = None) -> None:
    """Record an AI call for the intel console."""
    with _activity_lock:
        _activity_log.append({
            "timestamp": datetime.now().isoformat(),
            "action": action,
            "details": details[:200] if details else "",
            "duration_ms": duration_ms,
            "success": success,
            "error": error,
        })
        if len(_activity_log) > MAX_ACTIVITY_LOG:
            _activity_log.pop(0)


def get_activity_log(limit: int = 50) -> list:
    with _activity_lock:
        return list(reversed(_activity_log[-limit:]))


def get_client() -> Optional[anthropic.Anthropic]:
    """Anthropic client, or None when no API key is configured."""
    api_key = os.getenv("ANTHROPIC_API_KEY")
    if not api_key:
        logger.error("ANTHROPIC_API_KEY is missing. Add it to the .env file.")
        return None
    return anthropic.Anthropic(api_key=api_key)


def clean_json(text: str) -> str:
    """Strip markdown code fences around a JSON payload."""
    if not text:
        return ""
    clean = text.strip()
    clean = re.sub(r'^```(?:json)?', '', clean)
    clean = re.sub(r'```$', '', clean)
    return clean.strip()


def parse_json(text: str):
    """Parse a model reply as JSON, falling back to the first {...} or [...] block."""
    clean = clean_json(text)
    try:
        return json.loads(clean)
    except json.JSONDecodeError:
        match = re.search(r'(\{[\s\S]*\}|\[[\s\S]*\])', clean)
        if not match:
            raise
        return json.loads(match.group())


def _ask(client: anthropic.Anthropic, prompt: str, max_tokens: int = 2048) -> str:
    response = client.messages.create(
        model=DEFAULT_MODEL,
        max_tokens=max_tokens,
        messages=[{"role": "user", "content": prompt}],
    )
    return response.content[0].text


REPORT_PROMPT = """Act as a geospatial and tactical intelligence (GEOINT) specialist.
Analyse the theatre-of-operations data below and write a concise situation report (SITREP).

ASSETS ON THE MAP:
{items}

RECORDED NARRATIVE SCENES:
{scenes}

The report must contain:
1. Summary of the current situation.
2. Potential threats.
3. Tactical recommendations.

Keep a professional military/police tone."""

SCENARIO_PROMPT = """You are a tactical scenario generation engine.

INPUT:
- Current map center: Lat {lat}, Lng {lng}
- Command: "{command}"

STEP 1: if the command explicitly names a different place (city, country, landmark),
use that place's coordinates as "targetLocation". Otherwise use the current map center.

STEP 2: generate the requested assets, each positioned around targetLocation
(urban offsets 0.002-0.01 degrees, naval offsets 0.05-0.5 degrees).

Allowed subType values: {icons}

Reply with JSON only:
{{"targetLocation": {{"lat": number, "lng": number}},
  "items": [{{"subType": str, "lat": number, "lng": number, "name": str, "description": str, "color": str}}]}}"""

GEOCODE_PROMPT = """Act as a high-precision geocoding system.
Give the exact latitude and longitude for: "{query}"
For an intersection, return the crossing point.
Reply with JSON only: {{"lat": number, "lng": number}}"""

POI_PROMPT = """The user is looking for "{query}" near Lat {lat}, Lng {lng}.
Generate 3 realistic nearby coordinates that could match this search for a tactical demo.
Reply with a JSON array only: [{{"name": str, "lat": number, "lng": number, "description": str}}]"""


def generate_report(items: List[dict], scenes: List[dict]) -> dict:
    """SITREP text for the visible items and captured scenes."""
    start_time = time.time()
    client = get_client()
    if client is None:
        return {"status": "error", "error": API_KEY_MISSING,
                "message": "API key not configured. Set ANTHROPIC_API_KEY in the .env file."}

    visible = [
        {k: i.get(k) for k in ("name", "kind", "sub_type", "position", "description")}
        for i in items if i.get("visible", True)
    ]
    narrative = [{"title": s.get("title"), "desc": s.get("description")} for s in scenes]
    prompt = REPORT_PROMPT.format(items=json.dumps(visible, indent=2),
                                  scenes=json.dumps(narrative, indent=2))
    try:
        report = _ask(client, prompt)
        duration_ms = int((time.time() - start_time) * 1000)
        log_activity("report", f"{len(visible)} items, {len(narrative)} scenes", duration_ms=duration_ms)
        logger.info(f"SITREP generated in {duration_ms}ms")
        return {"status": "success", "response": report}
    except Exception as e:
        logger.error(f"Error generating report: {e}")
        log_activity("report", success=False, error=str(e))
        return {"status": "error", "error": GENERATION_FAILED,
                "message": "Failed to generate the intelligence report. Check connection/key."}


def generate_scenario(command: str, center: GeoPoint) -> dict:
    """Ask the model to plot assets for a natural-language command.

    Returns {"status", "target_location", "items"}; items are raw dicts.
    """
    start_time = time.time()
    fallback = {"target_location": center.to_dict(), "items": []}
    client = get_client()
    if client is None:
        return {"status": "error", "error": API_KEY_MISSING, **fallback}

    prompt = SCENARIO_PROMPT.format(lat=center.lat, lng=center.lng, command=command,
                                    icons=", ".join(ALLOWED_ICONS))
    try:
        text = _ask(client, prompt)
        if not text:
            return {"status": "success", **fallback}
        data = parse_json(text)
        items = data.get("items") if isinstance(data, dict) else None
        duration_ms = int((time.time() - start_time) * 1000)
        log_activity("scenario", command, duration_ms=duration_ms)
        return {
            "status": "success",
            "target_location": data.get("targetLocation") if isinstance(data, dict) else None,
            "items": items if isinstance(items, list) else [],
        }
    except Exception as e:
        logger.error(f"Tactical scenario generation failed: {e}")
        log_activity("scenario", command, success=False, error=str(e))
        return {"status": "error", "error": GENERATION_FAILED, **fallback}


def geocode_with_ai(query: str) -> Optional[GeoPoint]:
    client = get_client()
    if client is None:
        return None
    try:
        data = parse_json(_ask(client, GEOCODE_PROMPT.format(query=query), max_tokens=256))
    except Exception as e:
        logger.error(f"AI geocoding error: {e}")
        return None
    return coerce_point(data) if isinstance(data, dict) else None


def geocode_with_nominatim(query: str) -> Optional[GeoPoint]:
    try:
        response = httpx.get(
            NOMINATIM_URL,
            params={"format": "json", "q": query, "limit": 1},
            headers={"User-Agent": NOMINATIM_USER_AGENT},
            timeout=10.0,
        )
        response.raise_for_status()
        results = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Nominatim lookup failed: {e}")
        return None
    if not results:
        return None
    first = results[0]
    try:
        return coerce_point({"lat": float(first["lat"]), "lng": float(first["lon"])})
    except (KeyError, TypeError, ValueError):
        return None


def geocode(query: str) -> Optional[GeoPoint]:
    """AI geocoding with an OpenStreetMap fallback. None when nothing usable comes back."""
    point = geocode_with_ai(query)
    if point is None:
        logger.warning("AI geocoding failed, trying OSM fallback")
        point = geocode_with_nominatim(query)
    log_activity("geocode", query, success=point is not None)
    return point


def find_points_of_interest(query: str, center: GeoPoint) -> list:
    client = get_client()
    if client is None:
        return []
    try:
        data = parse_json(_ask(client, POI_PROMPT.format(query=query, lat=center.lat, lng=center.lng)))
    except Exception as e:
        logger.error(f"POI search error: {e}")
        return []
    return data if isinstance(data, list) else []
