import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def clean_llm_env(monkeypatch):
    for var in (
        "ANTHROPIC_API_URL",
        "ANTHROPIC_VERSION",
        "GEMINI_API_URL",
        "OPENAI_API_URL",
        "CLAUDE_MODEL",
        "GEMINI_MODEL",
        "OPENAI_MODEL",
        "LLM_TIMEOUT",
        "PROMPT_TEMPLATE_DIR",
        "CURRICULUM_PATH",
        "LOG_PROMPTS",
    ):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.fixture
def template_dir(tmp_path):
    directory = tmp_path / "templates"
    directory.mkdir()
    (directory / "greeting.md").write_text("  Hallo {{NAME}}, Klasse {{GRADE}}!\n", encoding="utf-8")
    (directory / "plain.md").write_text("Keine Platzhalter hier.", encoding="utf-8")
    return directory
