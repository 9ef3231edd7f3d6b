"""AUTO mode: clamp model-proposed learning settings and build the update prompt."""

from __future__ import annotations

import math
from typing import Any, Dict, Mapping, Optional

from schemas import AutoModeAssessment

DEFAULT_DETAIL_LEVEL = 50
DEFAULT_TEMPERATURE = 0.5
DEFAULT_HELPFULNESS = 50
DEFAULT_WINDOW = 10


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def _half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def clamp_assessment(raw: Mapping[str, Any]) -> AutoModeAssessment:
    """Force a proposed assessment into range.

    ``detailLevel`` and ``helpfulness`` end up as integers in 0..100,
    ``temperature`` in 0..1 rounded to one decimal. Missing or non-numeric
    values fall back to a balanced default.
    """
    detail = _number(raw.get("detailLevel"), DEFAULT_DETAIL_LEVEL)
    temperature = _number(raw.get("temperature"), DEFAULT_TEMPERATURE)
    helpfulness = _number(raw.get("helpfulness"), DEFAULT_HELPFULNESS)
    reasoning = raw.get("reasoning")
    return AutoModeAssessment(
        detail_level=int(_clamp(_half_up(detail), 0, 100)),
        temperature=_clamp(_half_up(temperature, 1), 0.0, 1.0),
        helpfulness=int(_clamp(_half_up(helpfulness), 0, 100)),
        reasoning=str(reasoning) if reasoning is not None else "",
    )


def describe_previous(previous: Optional[AutoModeAssessment]) -> str:
    if previous is None:
        return "ERSTE EINSCHÄTZUNG (keine vorherige Einschätzung vorhanden)"
    return (
        "VORHERIGE EINSCHÄTZUNG:\n"
        f"- Detailgrad: {previous.detail_level}%\n"
        f"- Temperatur: {previous.temperature}\n"
        f"- Hilfestellung: {previous.helpfulness}%\n"
        f'- Begründung: "{previous.reasoning}"'
    )


def describe_for_generation(assessment: Optional[AutoModeAssessment]) -> str:
    """Summary of the active AUTO settings for the question generation prompt."""
    if assessment is None:
        return "AUTO-Modus nicht aktiv - nutze ausgewogene Einstellungen"
    detail = "ausführliche" if assessment.detail_level > 60 else "kurze"
    style = "kreativ" if assessment.temperature > 0.6 else "präzise"
    support = "unterstützend" if assessment.helpfulness > 60 else "eigenständig"
    return (
        "AUTO-Modus Einschätzung:\n"
        f"- Detailgrad: {assessment.detail_level}% ({detail} Erklärungen)\n"
        f"- Temperatur: {assessment.temperature} ({style})\n"
        f"- Hilfestellung: {assessment.helpfulness}% ({support})\n\n"
        f'Interne Begründung: "{assessment.reasoning}"'
    )


def build_prompt_variables(
    previous: Optional[AutoModeAssessment],
    performance: Mapping[str, Any],
) -> Dict[str, str]:
    """Variables for the ``auto-mode-update`` template."""
    struggling = [str(topic) for topic in performance.get("strugglingTopics") or []]
    recent = performance.get("last10Questions")
    count = len(recent) if isinstance(recent, (list, tuple)) and recent else DEFAULT_WINDOW
    return {
        "PREVIOUS_ASSESSMENT": describe_previous(previous),
        "QUESTION_COUNT": str(count),
        "AVG_ACCURACY": str(int(_half_up(_number(performance.get("avgAccuracy"), 0.0)))),
        "AVG_HINTS_USED": f"{_number(performance.get('avgHintsUsed'), 0.0):.1f}",
        "AVG_TIME_SPENT": str(int(_half_up(_number(performance.get("avgTimeSpent"), 0.0)))),
        "STRUGGLING_TOPICS": (
            f"Schwierige Themen: {', '.join(struggling)}"
            if struggling
            else "Keine spezifischen Schwierigkeiten erkannt"
        ),
    }


__all__ = [
    "build_prompt_variables",
    "clamp_assessment",
    "describe_for_generation",
    "describe_previous",
]
