"""Template rendering on top of the immutable prompt registry."""

from __future__ import annotations

import logging
import re
from typing import Any, List, Mapping, Optional, Tuple

from errors import UnknownTemplate
from prompts import PromptRegistry, load_registry

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")


class PromptEngine:
    """Substitutes ``{{KEY}}`` placeholders in registered templates.

    Rendering is a single pass over the template, so substituted values are
    never rescanned for further placeholders. Placeholders without a value
    are blanked and reported once per render as a warning.
    """

    def __init__(self, registry: Optional[PromptRegistry] = None) -> None:
        self.registry = registry if registry is not None else load_registry()

    def _template(self, name: str) -> str:
        template = self.registry.get(name)
        if template is None:
            raise UnknownTemplate(name, self.registry.names())
        return template

    def render(self, name: str, variables: Optional[Mapping[str, Any]] = None) -> str:
        template = self._template(name)
        values = variables or {}
        unresolved: List[str] = []

        def _substitute(match: re.Match) -> str:
            key = match.group(1)
            if key not in values:
                if key not in unresolved:
                    unresolved.append(key)
                return ""
            value = values[key]
            return "" if value is None else str(value)

        rendered = PLACEHOLDER_PATTERN.sub(_substitute, template)
        if unresolved:
            logger.warning(
                "Prompt '%s' rendered with unresolved placeholders: %s",
                name,
                ", ".join(unresolved),
            )
        return rendered.strip()

    def available(self) -> Tuple[str, ...]:
        return self.registry.names()

    def exists(self, name: str) -> bool:
        return name in self.registry

    def variables_of(self, name: str) -> Tuple[str, ...]:
        """Placeholder names of ``name`` in order of first appearance."""
        seen: List[str] = []
        for key in PLACEHOLDER_PATTERN.findall(self._template(name)):
            if key not in seen:
                seen.append(key)
        return tuple(seen)


__all__ = ["PLACEHOLDER_PATTERN", "PromptEngine"]
