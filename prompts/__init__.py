"""Utilities for loading the prompt templates used by the API handlers."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Tuple

_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
_NAME_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


@dataclass(frozen=True)
class PromptRegistry:
    """Immutable name → template mapping, loaded once at startup."""

    templates: Mapping[str, str]
    source: Path | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.templates, MappingProxyType):
            object.__setattr__(self, "templates", MappingProxyType(dict(self.templates)))

    def get(self, name: str) -> str | None:
        return self.templates.get(name)

    def names(self) -> Tuple[str, ...]:
        return tuple(self.templates)

    def __contains__(self, name: object) -> bool:
        return name in self.templates

    def __len__(self) -> int:
        return len(self.templates)


def _iter_template_files(directory: Path) -> Iterable[Path]:
    for path in sorted(directory.glob("*.md")):
        if path.is_file():
            yield path


def default_template_dir() -> Path:
    override = os.getenv("PROMPT_TEMPLATE_DIR")
    return Path(override) if override else _TEMPLATE_DIR


def load_registry(directory: Path | None = None) -> PromptRegistry:
    """Load the templates under ``directory``, else under ``PROMPT_TEMPLATE_DIR`` as set right now."""
    return _load_registry(Path(directory) if directory else default_template_dir())


@lru_cache(maxsize=4)
def _load_registry(base_dir: Path) -> PromptRegistry:
    templates: Dict[str, str] = {}
    for file_path in _iter_template_files(base_dir):
        name = file_path.stem.lower()
        if not _NAME_PATTERN.match(name):
            raise ValueError(f"Invalid prompt template name: {file_path.name}")
        if name in templates:
            raise ValueError(f"Duplicate prompt template detected: {name}")
        templates[name] = file_path.read_text(encoding="utf-8")
    if not templates:
        raise RuntimeError(f"No prompt templates found in {base_dir}")
    return PromptRegistry(templates=templates, source=base_dir)


__all__ = ["PromptRegistry", "default_template_dir", "load_registry"]
