import os

import pytest

from env_validation import EnvironmentError, get_env_bool, validate_environment


def test_defaults_are_applied(clean_llm_env):
    validate_environment()

    assert os.environ["ANTHROPIC_API_URL"] == "https://api.anthropic.com/v1"
    assert os.environ["ANTHROPIC_VERSION"] == "2023-06-01"
    assert os.environ["LLM_TIMEOUT"] == "120"


def test_invalid_url_is_rejected(clean_llm_env):
    clean_llm_env.setenv("OPENAI_API_URL", "api.openai.com")

    with pytest.raises(EnvironmentError, match="OPENAI_API_URL"):
        validate_environment()


@pytest.mark.parametrize("value", ["0", "abc", "-5"])
def test_timeout_must_be_positive_integer(clean_llm_env, value):
    clean_llm_env.setenv("LLM_TIMEOUT", value)

    with pytest.raises(EnvironmentError, match="LLM_TIMEOUT"):
        validate_environment()


def test_missing_template_dir_is_rejected(clean_llm_env, tmp_path):
    clean_llm_env.setenv("PROMPT_TEMPLATE_DIR", str(tmp_path / "nowhere"))

    with pytest.raises(EnvironmentError, match="PROMPT_TEMPLATE_DIR"):
        validate_environment()


def test_get_env_bool(monkeypatch):
    monkeypatch.setenv("LOG_PROMPTS", "yes")
    assert get_env_bool("LOG_PROMPTS")
    monkeypatch.setenv("LOG_PROMPTS", "off")
    assert not get_env_bool("LOG_PROMPTS")
    monkeypatch.delenv("LOG_PROMPTS")
    assert get_env_bool("LOG_PROMPTS", default=True)
