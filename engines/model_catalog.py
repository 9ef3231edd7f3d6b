"""Turn a provider's raw model listing into UI-ready descriptors."""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from schemas import ModelDescriptor

logger = logging.getLogger(__name__)

# Cost/capability gate: these tiers are never offered to learners.
EXCLUDED_SUBSTRINGS: Dict[str, Tuple[str, ...]] = {
    "claude": ("opus-4",),
}

_FAMILY_TYPES: Tuple[Tuple[str, str], ...] = (
    ("sonnet", "balanced"),
    ("opus", "powerful"),
    ("haiku", "fast"),
)

_DESCRIPTIONS: Tuple[Tuple[str, str], ...] = (
    ("sonnet-4-5", "Neueste Sonnet-Version mit verbesserter Genauigkeit und Geschwindigkeit"),
    ("sonnet-4", "Ausgewogenes Modell für komplexe Aufgaben"),
    ("sonnet", "Ausgewogen zwischen Leistung und Geschwindigkeit"),
    ("opus", "Höchste Genauigkeit und Intelligenz"),
    ("haiku", "Schnell und effizient für einfache Aufgaben"),
)


def _version(major: str, minor: Optional[str]) -> str:
    return f"{major}.{minor}" if minor else major


def format_model_name(model_id: str) -> str:
    """``claude-sonnet-4-5-20250929`` -> ``Claude Sonnet 4.5``.

    Date suffixes are never read as a minor version. Ids outside the known
    families are title-cased segment by segment.
    """
    lowered = model_id.lower()
    for family, _ in _FAMILY_TYPES:
        if family not in lowered:
            continue
        label = family.capitalize()
        match = re.search(rf"claude-{family}-(\d+)(?:-(\d{{1,2}}))?(?=-|$)", lowered)
        if match:
            return f"Claude {label} {_version(*match.groups())}"
        match = re.search(rf"claude-(\d+)(?:-(\d{{1,2}}))?-{family}", lowered)
        if match:
            return f"Claude {_version(*match.groups())} {label}"
        return f"Claude {label}"
    return " ".join(segment[:1].upper() + segment[1:] for segment in model_id.split("-"))


def model_type(model_id: str) -> str:
    lowered = model_id.lower()
    for family, kind in _FAMILY_TYPES:
        if family in lowered:
            return kind
    return "standard"


def model_description(model_id: str, provider_family: str = "claude") -> str:
    lowered = model_id.lower()
    for needle, text in _DESCRIPTIONS:
        if needle in lowered:
            return text
    return f"{provider_family.capitalize()} Modell"


def _timestamp(value: Any) -> float:
    """Sort key for a creation time; unknown values sort as oldest."""
    if isinstance(value, bool) or value is None:
        return -math.inf
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else -math.inf
    text = str(value).strip()
    if not text:
        return -math.inf
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable model creation time: %r", value)
        return -math.inf
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _created_label(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc).isoformat().replace("+00:00", "Z")
        except (OverflowError, OSError, ValueError):
            return None
    return str(value)


def _is_offered(model_id: str, provider_family: str) -> bool:
    lowered = model_id.lower()
    if provider_family not in lowered:
        return False
    return not any(blocked in lowered for blocked in EXCLUDED_SUBSTRINGS.get(provider_family, ()))


def normalize(
    raw_models: Iterable[Mapping[str, Any]],
    provider_family: str = "claude",
) -> List[ModelDescriptor]:
    """Filter, describe and sort a raw ``/v1/models`` listing, newest first.

    The sort is stable, so models with identical creation times keep the
    order the provider listed them in.
    """
    family = provider_family.lower()
    entries: List[Tuple[float, ModelDescriptor]] = []
    for raw in raw_models:
        if not isinstance(raw, Mapping):
            continue
        model_id = raw.get("id")
        if not isinstance(model_id, str) or not _is_offered(model_id, family):
            continue
        created = raw.get("created_at", raw.get("created"))
        entries.append(
            (
                _timestamp(created),
                ModelDescriptor(
                    id=model_id,
                    name=format_model_name(model_id),
                    type=model_type(model_id),
                    description=model_description(model_id, family),
                    created=_created_label(created),
                ),
            )
        )
    entries.sort(key=lambda entry: entry[0], reverse=True)
    return [descriptor for _, descriptor in entries]


__all__ = [
    "EXCLUDED_SUBSTRINGS",
    "format_model_name",
    "model_description",
    "model_type",
    "normalize",
]
