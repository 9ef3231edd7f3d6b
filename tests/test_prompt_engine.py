import logging

import pytest

from engines.prompt_engine import PromptEngine
from errors import UnknownTemplate
from prompts import PromptRegistry, load_registry

BUNDLED_TEMPLATES = {
    "adaptive-question-generation",
    "auto-mode-update",
    "collaborative-canvas",
    "custom-hint",
    "geogebra-generation",
    "image-analysis",
    "mini-app-generation",
    "question-generation",
    "solution-visualization",
    "whiteboard-analysis",
}


def test_bundled_registry_contains_every_handler_template(clean_llm_env):
    registry = load_registry()

    assert set(registry.names()) == BUNDLED_TEMPLATES


def test_registry_is_read_only():
    registry = PromptRegistry({"a": "x"})

    with pytest.raises(TypeError):
        registry.templates["b"] = "y"  # type: ignore[index]


def test_load_registry_rejects_bad_names(tmp_path):
    (tmp_path / "Bad Name.md").write_text("x", encoding="utf-8")

    with pytest.raises(ValueError):
        load_registry(tmp_path)


def test_load_registry_requires_templates(tmp_path):
    with pytest.raises(RuntimeError):
        load_registry(tmp_path)


def test_default_registry_follows_template_dir_variable(clean_llm_env, template_dir):
    assert "custom-hint" in load_registry()

    clean_llm_env.setenv("PROMPT_TEMPLATE_DIR", str(template_dir))

    assert set(load_registry().names()) == {"greeting", "plain"}


def test_render_substitutes_and_trims(template_dir):
    engine = PromptEngine(load_registry(template_dir))

    rendered = engine.render("greeting", {"NAME": "Lena", "GRADE": 11})

    assert rendered == "Hallo Lena, Klasse 11!"


def test_unused_variables_are_ignored(template_dir, caplog):
    engine = PromptEngine(load_registry(template_dir))

    with caplog.at_level(logging.WARNING, logger="engines.prompt_engine"):
        rendered = engine.render("plain", {"NAME": "Lena"})

    assert rendered == "Keine Platzhalter hier."
    assert not caplog.records


def test_missing_variables_render_empty_and_warn_once(template_dir, caplog):
    engine = PromptEngine(load_registry(template_dir))

    with caplog.at_level(logging.WARNING, logger="engines.prompt_engine"):
        rendered = engine.render("greeting", {"NAME": None})

    assert rendered == "Hallo , Klasse !"
    warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "GRADE" in warnings[0].getMessage()


def test_substituted_values_are_not_rescanned():
    engine = PromptEngine(PromptRegistry({"echo": "{{A}}|{{B}}"}))

    assert engine.render("echo", {"A": "{{B}}", "B": "b"}) == "{{B}}|b"


def test_unknown_template_lists_available_names(template_dir):
    engine = PromptEngine(load_registry(template_dir))

    with pytest.raises(UnknownTemplate) as excinfo:
        engine.render("missing", {})

    assert "greeting" in str(excinfo.value)
    assert "plain" in str(excinfo.value)
    assert excinfo.value.status_code == 500


def test_variables_of_keeps_first_appearance_order(clean_llm_env):
    engine = PromptEngine()

    assert engine.variables_of("custom-hint") == (
        "QUESTION",
        "QUESTION_TYPE_CONTENT",
        "PREVIOUS_HINTS",
        "USER_QUESTION",
    )
    assert engine.exists("custom-hint")
    assert not engine.exists("custom_hint")
