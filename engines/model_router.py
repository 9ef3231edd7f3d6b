"""Pick a model tier for question generation from the shape of the request."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

MODEL_TIERS: Dict[str, Dict[str, str]] = {
    "claude": {
        "light": "claude-3-5-haiku-20241022",
        "standard": "claude-sonnet-4-20250514",
        "heavy": "claude-sonnet-4-20250514",
    },
    "gemini": {
        "light": "gemini-2.0-flash-exp",
        "standard": "gemini-2.0-flash-exp",
        "heavy": "gemini-1.5-pro",
    },
    "openai": {
        "light": "gpt-4o-mini",
        "standard": "gpt-4o",
        "heavy": "gpt-4o",
    },
}

_GEOGEBRA_THEMES = ("geometrie", "funktion")
_NUMERIC_THEMES = ("rechnen", "arithmetik")


@dataclass(frozen=True)
class Complexity:
    afb_level: str = "II"
    has_geogebra: bool = False
    question_count: int = 20
    has_proof: bool = False
    is_numeric_only: bool = False


def determine_model_tier(complexity: Complexity) -> str:
    """Map request complexity to ``light``, ``standard`` or ``heavy``."""
    if (
        complexity.has_geogebra
        or complexity.has_proof
        or complexity.afb_level == "III"
        or complexity.question_count > 15
    ):
        return "heavy"
    if (
        complexity.afb_level == "I"
        or (complexity.is_numeric_only and complexity.question_count <= 5)
        or complexity.question_count <= 3
    ):
        return "light"
    return "standard"


def select_model(provider: str, complexity: Complexity, preferred: Optional[str] = None) -> str:
    if preferred:
        return preferred
    tier = determine_model_tier(complexity)
    model = MODEL_TIERS.get(provider, {}).get(tier) or MODEL_TIERS["claude"]["standard"]
    logger.info(
        "Model router selected %s for %s (AFB %s, GeoGebra %s, count %s)",
        model,
        provider,
        complexity.afb_level,
        complexity.has_geogebra,
        complexity.question_count,
    )
    return model


def _field(topic: Mapping[str, object], name: str) -> str:
    value = topic.get(name)
    return str(value).lower() if value else ""


def needs_geogebra(topics: Iterable[Mapping[str, object]]) -> bool:
    return any(
        any(key in _field(topic, "thema") for key in _GEOGEBRA_THEMES)
        or "graph" in _field(topic, "unterthema")
        for topic in topics
    )


def is_numeric_only(topics: Iterable[Mapping[str, object]]) -> bool:
    items = list(topics)
    return bool(items) and all(
        any(key in _field(topic, "thema") for key in _NUMERIC_THEMES) for topic in items
    )


def complexity_for(
    topics: Iterable[Mapping[str, object]],
    *,
    afb_level: str = "II",
    question_count: int = 20,
    has_proof: bool = False,
) -> Complexity:
    items = list(topics)
    return Complexity(
        afb_level=afb_level,
        has_geogebra=needs_geogebra(items),
        question_count=question_count,
        has_proof=has_proof,
        is_numeric_only=is_numeric_only(items),
    )


__all__ = [
    "Complexity",
    "MODEL_TIERS",
    "complexity_for",
    "determine_model_tier",
    "is_numeric_only",
    "needs_geogebra",
    "select_model",
]
