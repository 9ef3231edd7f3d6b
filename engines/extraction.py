"""Pull a JSON object out of free-form model output."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, Iterator, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from errors import ResponseParseError

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)

_T = TypeVar("_T", bound=BaseModel)


def _fenced_block(text: str) -> Optional[str]:
    match = _FENCE_PATTERN.search(text)
    return match.group(1) if match else None


def _outer_braces(text: str) -> Optional[str]:
    # Greedy: first "{" to last "}". Two separate objects in one reply will
    # therefore fail to parse here and fall through to the next strategy.
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


_STRATEGIES: tuple[tuple[str, Callable[[str], Optional[str]]], ...] = (
    ("fence", _fenced_block),
    ("braces", _outer_braces),
    ("whole", lambda text: text),
)


def _candidates(text: str) -> Iterator[tuple[str, str]]:
    for label, strategy in _STRATEGIES:
        candidate = strategy(text)
        if candidate is not None and candidate.strip():
            yield label, candidate.strip()


def extract_json(raw_text: Optional[str]) -> Dict[str, Any]:
    """Return the first JSON object found in ``raw_text``.

    Tries the first triple-backtick fence, then the outermost brace span,
    then the whole text. Raises :class:`ResponseParseError` carrying a
    truncated copy of the input when none of them parse to an object.
    """

    text = raw_text or ""
    for label, candidate in _candidates(text):
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            if label != "fence":
                logger.debug("Extracted JSON via %s strategy", label)
            return parsed
    raise ResponseParseError(text)


def parse_model_output(raw_text: Optional[str], model: Type[_T]) -> _T:
    """Extract JSON from ``raw_text`` and validate it into ``model``."""

    data = extract_json(raw_text)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning("Model output did not match %s: %s", model.__name__, exc)
        raise ResponseParseError(
            raw_text, message="AI response did not match the expected format"
        ) from exc


__all__ = ["extract_json", "parse_model_output"]
