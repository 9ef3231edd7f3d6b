"""Baden-Württemberg Oberstufe curriculum lookup (Leitidee → Thema → Unterthema)."""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

_DEFAULT_PATH = Path(__file__).resolve().parent / "data" / "curriculum.json"
GRADE_BAND = "Klassen_11_12"

Curriculum = Dict[str, Dict[str, List[str]]]


def curriculum_path() -> Path:
    override = os.getenv("CURRICULUM_PATH")
    return Path(override) if override else _DEFAULT_PATH


def load_curriculum(path: Optional[Path] = None) -> Dict[str, Any]:
    return _load_curriculum(Path(path) if path else curriculum_path())


@lru_cache(maxsize=4)
def _load_curriculum(source: Path) -> Dict[str, Any]:
    with source.open(encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict) or GRADE_BAND not in data:
        raise RuntimeError(f"Curriculum file {source} has no '{GRADE_BAND}' section")
    logger.info("Loaded curriculum from %s (%d course types)", source, len(data[GRADE_BAND]))
    return data


def course_types(data: Optional[Mapping[str, Any]] = None) -> List[str]:
    data = data if data is not None else load_curriculum()
    return list(data[GRADE_BAND])


def course(course_type: str, data: Optional[Mapping[str, Any]] = None) -> Optional[Curriculum]:
    """Curriculum of one course type, ``None`` when the course type is unknown."""
    data = data if data is not None else load_curriculum()
    return data[GRADE_BAND].get(course_type)


def contains(curriculum: Mapping[str, Mapping[str, Iterable[str]]], topic: Mapping[str, Any]) -> bool:
    themes = curriculum.get(str(topic.get("leitidee") or ""))
    if not themes:
        return False
    subtopics = themes.get(str(topic.get("thema") or ""))
    if subtopics is None:
        return False
    return topic.get("unterthema") in list(subtopics)


def match_topics(
    curriculum: Mapping[str, Mapping[str, Iterable[str]]],
    topics: Iterable[Mapping[str, Any]],
) -> List[Mapping[str, Any]]:
    """Keep only topics whose Leitidee, Thema and Unterthema all exist verbatim."""
    return [topic for topic in topics if contains(curriculum, topic)]


def render(curriculum: Mapping[str, Any]) -> str:
    return json.dumps(curriculum, ensure_ascii=False, indent=2)


__all__ = [
    "GRADE_BAND",
    "contains",
    "course",
    "course_types",
    "curriculum_path",
    "load_curriculum",
    "match_topics",
    "render",
]
