"""Validation of generated single-file HTML simulations."""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from engines.extraction import parse_model_output
from errors import ResponseParseError
from schemas import MiniAppOutput

logger = logging.getLogger(__name__)

_RAW_DOCUMENT = re.compile(r"<!DOCTYPE html>[\s\S]*</html>", re.IGNORECASE)

# Flagged for the operator only; the client renders the app in a sandboxed iframe.
SUSPICIOUS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"src\s*=\s*[\"']https?://",
        r"href\s*=\s*[\"']https?://",
        r"<script\s+[^>]*src\s*=",
        r"<link\s+[^>]*href\s*=\s*[\"']https?:",
        r"<iframe",
        r"fetch\s*\(",
        r"XMLHttpRequest",
        r"eval\s*\(",
        r"Function\s*\(",
        r"document\.cookie",
        r"localStorage",
        r"sessionStorage",
        r"window\.open",
        r"window\.location",
    )
)


def document_problem(html: str) -> Optional[str]:
    """Why ``html`` is not a complete document, or ``None`` if it is."""
    lowered = html.lower()
    if "<!doctype html>" not in lowered:
        return "Generated code is missing the HTML doctype"
    if "<html" not in lowered or "</html>" not in lowered:
        return "Generated HTML document is incomplete"
    return None


def suspicious_patterns(html: str) -> List[str]:
    return [pattern.pattern for pattern in SUSPICIOUS_PATTERNS if pattern.search(html)]


def parse_mini_app(raw_text: str) -> MiniAppOutput:
    """Read the ``{title, description, html}`` reply of the model.

    A reply that is a bare HTML document instead of JSON is accepted as
    well, with the default title.
    """
    try:
        output = parse_model_output(raw_text, MiniAppOutput)
    except ResponseParseError:
        match = _RAW_DOCUMENT.search(raw_text or "")
        if not match:
            raise
        logger.info("Mini-app reply was raw HTML instead of JSON")
        output = MiniAppOutput(html=match.group(0))

    html = output.html.strip()
    problem = document_problem(html)
    if problem:
        raise ResponseParseError(raw_text, message=problem)
    for pattern in suspicious_patterns(html):
        logger.warning("Generated mini-app matches suspicious pattern %s", pattern)
    return output.model_copy(update={"html": html})


__all__ = ["SUSPICIOUS_PATTERNS", "document_problem", "parse_mini_app", "suspicious_patterns"]
