"""Validation and clean-up of canvas drawings and GeoGebra commands proposed by the model."""

from __future__ import annotations

import copy
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#22c55e"
DEFAULT_STROKE_WIDTH = 3
DEFAULT_FONT_SIZE = 16
DRAWING_TYPES = frozenset({"line", "arrow", "text", "circle", "highlight", "equation"})

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


@dataclass(frozen=True)
class DrawingBounds:
    coordinate_min: float
    coordinate_max: float
    radius_max: float
    size_max: float


# The whiteboard annotates a selection, the collaborative canvas spans the full board.
WHITEBOARD_BOUNDS = DrawingBounds(coordinate_min=-500, coordinate_max=1000, radius_max=300, size_max=500)
CANVAS_BOUNDS = DrawingBounds(coordinate_min=-500, coordinate_max=2000, radius_max=500, size_max=1000)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_point(value: Any) -> bool:
    return isinstance(value, Mapping) and _is_number(value.get("x")) and _is_number(value.get("y"))


def is_valid_drawing(drawing: Any) -> bool:
    if not isinstance(drawing, Mapping):
        return False
    kind = drawing.get("type")
    if kind not in DRAWING_TYPES:
        return False
    if kind in {"line", "arrow"}:
        return _is_point(drawing.get("start")) and _is_point(drawing.get("end"))
    if kind in {"text", "equation"}:
        return isinstance(drawing.get("text"), str) and _is_number(drawing.get("x")) and _is_number(drawing.get("y"))
    if kind == "circle":
        return _is_point(drawing.get("center")) and _is_number(drawing.get("radius"))
    return all(_is_number(drawing.get(key)) for key in ("x", "y", "width", "height"))


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def sanitize_drawing(drawing: Mapping[str, Any], bounds: DrawingBounds = CANVAS_BOUNDS) -> Dict[str, Any]:
    """Return a copy with colour, sizes and coordinates forced into range."""
    cleaned: Dict[str, Any] = copy.deepcopy(dict(drawing))
    color = cleaned.get("color")
    if not isinstance(color, str) or not _HEX_COLOR.match(color):
        cleaned["color"] = DEFAULT_COLOR
    stroke = cleaned.get("strokeWidth")
    if not _is_number(stroke) or not 1 <= stroke <= 20:
        cleaned["strokeWidth"] = DEFAULT_STROKE_WIDTH
    if cleaned.get("type") in {"text", "equation"}:
        font_size = cleaned.get("fontSize")
        if not _is_number(font_size) or not 8 <= font_size <= 48:
            cleaned["fontSize"] = DEFAULT_FONT_SIZE

    low, high = bounds.coordinate_min, bounds.coordinate_max
    for key in ("start", "end", "center"):
        point = cleaned.get(key)
        if _is_point(point):
            point["x"] = _clamp(point["x"], low, high)
            point["y"] = _clamp(point["y"], low, high)
    for key in ("x", "y"):
        if _is_number(cleaned.get(key)):
            cleaned[key] = _clamp(cleaned[key], low, high)
    if _is_number(cleaned.get("radius")):
        cleaned["radius"] = _clamp(cleaned["radius"], 1, bounds.radius_max)
    for key in ("width", "height"):
        if _is_number(cleaned.get(key)):
            cleaned[key] = _clamp(cleaned[key], 1, bounds.size_max)
    return cleaned


def sanitize_drawings(items: Any, bounds: DrawingBounds = CANVAS_BOUNDS) -> List[Dict[str, Any]]:
    if not isinstance(items, list):
        return []
    kept = [sanitize_drawing(item, bounds) for item in items if is_valid_drawing(item)]
    if len(kept) != len(items):
        logger.info("Dropped %d malformed drawing(s)", len(items) - len(kept))
    return kept


def sanitize_geogebra_commands(items: Any) -> List[Dict[str, str]]:
    """Keep commands that carry a string ``command``; default the colour."""
    if not isinstance(items, list):
        return []
    commands: List[Dict[str, str]] = []
    for item in items:
        if not isinstance(item, Mapping) or not isinstance(item.get("command"), str):
            continue
        color = item.get("color")
        commands.append({"command": item["command"], "color": color if isinstance(color, str) and color else DEFAULT_COLOR})
    return commands


def describe_geogebra_objects(objects: Iterable[Mapping[str, Any]]) -> str:
    lines = [f"- {obj.get('name', '')}: {obj.get('type', '')} = {obj.get('value', '')}" for obj in objects]
    if not lines:
        return ""
    return "Aktueller GeoGebra-Zustand (bereits vorhandene Objekte):\n" + "\n".join(lines)


__all__ = [
    "CANVAS_BOUNDS",
    "DEFAULT_COLOR",
    "DRAWING_TYPES",
    "DrawingBounds",
    "WHITEBOARD_BOUNDS",
    "describe_geogebra_objects",
    "is_valid_drawing",
    "sanitize_drawing",
    "sanitize_drawings",
    "sanitize_geogebra_commands",
]
