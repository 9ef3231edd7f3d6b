"""Environment variable validation and management."""

import os
import logging
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)

class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass

def validate_environment() -> None:
    """Validate critical environment variables.

    Raises EnvironmentError if validation fails.
    """
    # API keys arrive with each request, so nothing is strictly required at startup.
    required_vars: Dict[str, str] = {}

    defaults = {
        "ANTHROPIC_API_URL": "https://api.anthropic.com/v1",
        "ANTHROPIC_VERSION": "2023-06-01",
        "GEMINI_API_URL": "https://generativelanguage.googleapis.com/v1beta/models",
        "OPENAI_API_URL": "https://api.openai.com/v1",
        "LLM_TIMEOUT": "120",
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    optional_vars = {
        "CLAUDE_MODEL": "Default Claude model",
        "GEMINI_MODEL": "Default Gemini model",
        "OPENAI_MODEL": "Default OpenAI model",
        "PROMPT_TEMPLATE_DIR": "Directory with prompt templates",
        "CURRICULUM_PATH": "Path to curriculum JSON",
        "LOG_LEVEL": "Root log level (DEBUG, INFO, WARNING, ERROR)",
    }

    # Check required variables
    missing = []
    for var, description in required_vars.items():
        if not os.getenv(var):
            missing.append(f"{var} ({description})")

    if missing:
        raise EnvironmentError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    # Validate URLs
    url_vars = {"ANTHROPIC_API_URL", "GEMINI_API_URL", "OPENAI_API_URL"}
    for var in sorted(url_vars):
        value = os.getenv(var)
        if value and not (value.startswith("http://") or value.startswith("https://")):
            raise EnvironmentError(f"Invalid URL format for {var}: {value}")

    timeout = os.getenv("LLM_TIMEOUT", "")
    if not timeout.isdigit() or int(timeout) <= 0:
        raise EnvironmentError(f"LLM_TIMEOUT must be a positive integer, got: {timeout}")

    log_level = os.getenv("LOG_LEVEL")
    if log_level and log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise EnvironmentError(f"Invalid LOG_LEVEL: {log_level}")

    for var in ("PROMPT_TEMPLATE_DIR", "CURRICULUM_PATH"):
        value = os.getenv(var)
        if value and not Path(value).exists():
            raise EnvironmentError(f"{var} points to a missing path: {value}")

    # Log optional variables status
    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.warning(f"Optional environment variable not set: {var} ({description})")

def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}
