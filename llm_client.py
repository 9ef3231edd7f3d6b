"""Thin clients for the upstream LLM providers (Claude, Gemini, OpenAI)."""

from __future__ import annotations

import json
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

import requests

from errors import UpstreamProviderError

logger = logging.getLogger(__name__)

_LLM_LOGGER = logging.getLogger("mathtutor.llm")
if not _LLM_LOGGER.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(message)s"))
    _LLM_LOGGER.addHandler(_handler)
_LLM_LOGGER.setLevel(logging.INFO)
_LLM_LOGGER.propagate = False

PROVIDERS = ("claude", "gemini", "openai")
_PROVIDER_LABELS = {"claude": "Claude", "gemini": "Gemini", "openai": "OpenAI"}

_DEFAULTS = {
    "ANTHROPIC_API_URL": "https://api.anthropic.com/v1",
    "ANTHROPIC_VERSION": "2023-06-01",
    "GEMINI_API_URL": "https://generativelanguage.googleapis.com/v1beta/models",
    "OPENAI_API_URL": "https://api.openai.com/v1",
    "CLAUDE_MODEL": "claude-sonnet-4-20250514",
    "GEMINI_MODEL": "gemini-2.0-flash-exp",
    "OPENAI_MODEL": "gpt-4o",
}


def _setting(name: str) -> str:
    return os.getenv(name) or _DEFAULTS[name]


def _safe_int(env_name: str, default: int) -> int:
    raw = os.getenv(env_name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _timeout() -> int:
    return _safe_int("LLM_TIMEOUT", 120)


def default_model(provider: str) -> str:
    return _setting(f"{provider.upper()}_MODEL") if provider in PROVIDERS else _setting("CLAUDE_MODEL")


@dataclass(frozen=True)
class Completion:
    text: str
    model: str
    provider: str
    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None


def text_block(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def image_block(data: str, media_type: str = "image/jpeg") -> Dict[str, Any]:
    return {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}}


_DATA_URL = re.compile(r"^data:(image/[\w.+-]+);base64,")


def image_from_data_url(value: str, default_media_type: str = "image/png") -> Dict[str, Any]:
    """Image block from a data URL or bare base64 string; the prefix is stripped."""
    match = _DATA_URL.match(value)
    if match:
        return image_block(value[match.end():], match.group(1))
    return image_block(value, default_media_type)


def user_message(*blocks: Any) -> Dict[str, Any]:
    """A user turn; a single string stays a plain string."""
    if len(blocks) == 1 and isinstance(blocks[0], str):
        return {"role": "user", "content": blocks[0]}
    return {"role": "user", "content": [text_block(b) if isinstance(b, str) else b for b in blocks]}


def _blocks(content: Any) -> List[Mapping[str, Any]]:
    if isinstance(content, str):
        return [text_block(content)]
    if isinstance(content, list):
        return [block for block in content if isinstance(block, Mapping)]
    return [text_block(str(content or ""))]


def _coerce_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Request building per provider


def _claude_request(
    api_key: str, model: str, messages: Sequence[Mapping[str, Any]], system: Optional[str],
    max_tokens: int, temperature: Optional[float],
) -> Tuple[str, Dict[str, Any], Dict[str, str], Optional[Dict[str, str]]]:
    payload: Dict[str, Any] = {"model": model, "max_tokens": max_tokens, "messages": list(messages)}
    if system:
        payload["system"] = system
    if temperature is not None:
        payload["temperature"] = temperature
    headers = {
        "Content-Type": "application/json",
        "x-api-key": api_key,
        "anthropic-version": _setting("ANTHROPIC_VERSION"),
    }
    return f"{_setting('ANTHROPIC_API_URL').rstrip('/')}/messages", payload, headers, None


def _gemini_parts(content: Any) -> List[Dict[str, Any]]:
    parts: List[Dict[str, Any]] = []
    for block in _blocks(content):
        if block.get("type") == "image":
            source = block.get("source") or {}
            parts.append(
                {"inline_data": {"mime_type": source.get("media_type", "image/png"), "data": source.get("data", "")}}
            )
        else:
            parts.append({"text": str(block.get("text", ""))})
    return parts


def _gemini_request(
    api_key: str, model: str, messages: Sequence[Mapping[str, Any]], system: Optional[str],
    max_tokens: int, temperature: Optional[float],
) -> Tuple[str, Dict[str, Any], Dict[str, str], Optional[Dict[str, str]]]:
    contents = [
        {"role": "model" if message.get("role") == "assistant" else "user", "parts": _gemini_parts(message.get("content"))}
        for message in messages
    ]
    generation_config: Dict[str, Any] = {"maxOutputTokens": max_tokens}
    if temperature is not None:
        generation_config["temperature"] = temperature
    payload: Dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
    if system:
        payload["systemInstruction"] = {"parts": [{"text": system}]}
    url = f"{_setting('GEMINI_API_URL').rstrip('/')}/{model}:generateContent"
    return url, payload, {"Content-Type": "application/json"}, {"key": api_key}


def _openai_content(content: Any) -> Any:
    if isinstance(content, str):
        return content
    converted: List[Dict[str, Any]] = []
    for block in _blocks(content):
        if block.get("type") == "image":
            source = block.get("source") or {}
            url = f"data:{source.get('media_type', 'image/png')};base64,{source.get('data', '')}"
            converted.append({"type": "image_url", "image_url": {"url": url}})
        else:
            converted.append({"type": "text", "text": str(block.get("text", ""))})
    return converted


def _openai_request(
    api_key: str, model: str, messages: Sequence[Mapping[str, Any]], system: Optional[str],
    max_tokens: int, temperature: Optional[float],
) -> Tuple[str, Dict[str, Any], Dict[str, str], Optional[Dict[str, str]]]:
    chat: List[Dict[str, Any]] = []
    if system:
        chat.append({"role": "system", "content": system})
    chat.extend({"role": m.get("role", "user"), "content": _openai_content(m.get("content"))} for m in messages)
    payload: Dict[str, Any] = {"model": model, "max_tokens": max_tokens, "messages": chat}
    if temperature is not None:
        payload["temperature"] = temperature
    headers = {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"}
    return f"{_setting('OPENAI_API_URL').rstrip('/')}/chat/completions", payload, headers, None


_BUILDERS = {"claude": _claude_request, "gemini": _gemini_request, "openai": _openai_request}


# ---------------------------------------------------------------------------
# Response parsing per provider


def _claude_text(data: Mapping[str, Any]) -> Tuple[str, Optional[int], Optional[int]]:
    blocks = data["content"]
    if not blocks:
        raise KeyError("content")
    text = "".join(block.get("text", "") for block in blocks if block.get("type", "text") == "text")
    usage = data.get("usage") or {}
    return text, _coerce_int(usage.get("input_tokens")), _coerce_int(usage.get("output_tokens"))


def _gemini_text(data: Mapping[str, Any]) -> Tuple[str, Optional[int], Optional[int]]:
    parts = data["candidates"][0]["content"]["parts"]
    text = "".join(part.get("text", "") for part in parts)
    usage = data.get("usageMetadata") or {}
    return text, _coerce_int(usage.get("promptTokenCount")), _coerce_int(usage.get("candidatesTokenCount"))


def _openai_text(data: Mapping[str, Any]) -> Tuple[str, Optional[int], Optional[int]]:
    text = data["choices"][0]["message"]["content"]
    if not isinstance(text, str):
        raise TypeError("message content is not text")
    usage = data.get("usage") or {}
    return text, _coerce_int(usage.get("prompt_tokens")), _coerce_int(usage.get("completion_tokens"))


_PARSERS = {"claude": _claude_text, "gemini": _gemini_text, "openai": _openai_text}


def _error_details(response: Any) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"message": (getattr(response, "text", "") or "")[:500]}


def _raise_for_upstream(response: Any, provider: str) -> None:
    if 200 <= response.status_code < 300:
        return
    label = _PROVIDER_LABELS.get(provider, provider)
    details = _error_details(response)
    logger.warning("%s API returned HTTP %s: %s", label, response.status_code, details)
    raise UpstreamProviderError(
        f"{label} API error",
        status_code=response.status_code,
        details=details,
        provider=provider,
    )


def complete(
    provider: str,
    api_key: str,
    messages: Sequence[Mapping[str, Any]],
    *,
    model: Optional[str] = None,
    system: Optional[str] = None,
    max_tokens: int = 2000,
    temperature: Optional[float] = None,
    purpose: Optional[str] = None,
) -> Completion:
    """Send one non-streaming completion request and return the reply text.

    Non-2xx answers raise :class:`UpstreamProviderError` with the provider's
    status code and error body. Transport failures and replies without the
    expected envelope raise the same error with status 502. Nothing is
    retried.
    """
    if provider not in _BUILDERS:
        raise UpstreamProviderError(f"Unknown provider: {provider}", status_code=400, provider=provider)
    label = _PROVIDER_LABELS[provider]
    model_id = model or default_model(provider)
    url, payload, headers, params = _BUILDERS[provider](
        api_key, model_id, messages, system, int(max_tokens), temperature
    )

    request_id = str(uuid4())
    start = time.perf_counter()
    status: Optional[int] = None
    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None
    try:
        try:
            response = requests.post(url, json=payload, headers=headers, params=params, timeout=_timeout())
        except requests.RequestException as exc:
            raise UpstreamProviderError(
                f"{label} API unreachable", details={"message": str(exc)}, provider=provider
            ) from exc
        status = response.status_code
        _raise_for_upstream(response, provider)
        try:
            data = response.json()
            text, tokens_in, tokens_out = _PARSERS[provider](data)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as exc:
            raise UpstreamProviderError(
                f"Unexpected {label} API response",
                details={"message": (getattr(response, "text", "") or "")[:500]},
                provider=provider,
            ) from exc
        return Completion(text=text, model=model_id, provider=provider, tokens_in=tokens_in, tokens_out=tokens_out)
    finally:
        log_record = {
            "event": "llm_call",
            "request_id": request_id,
            "provider": provider,
            "model": model_id,
            "purpose": purpose,
            "status": status,
            "latency_ms": int((time.perf_counter() - start) * 1000),
            "tokens_in": tokens_in,
            "tokens_out": tokens_out,
        }
        _LLM_LOGGER.info(json.dumps(log_record, ensure_ascii=False))


def list_models(api_key: str) -> List[Dict[str, Any]]:
    """Raw ``data`` entries of the Anthropic ``GET /models`` listing."""
    url = f"{_setting('ANTHROPIC_API_URL').rstrip('/')}/models"
    headers = {"x-api-key": api_key, "anthropic-version": _setting("ANTHROPIC_VERSION")}
    try:
        response = requests.get(url, headers=headers, timeout=_timeout())
    except requests.RequestException as exc:
        raise UpstreamProviderError(
            "Claude API unreachable", details={"message": str(exc)}, provider="claude"
        ) from exc
    if not 200 <= response.status_code < 300:
        raise UpstreamProviderError(
            "Failed to fetch models from Anthropic API",
            status_code=response.status_code,
            details=_error_details(response),
            provider="claude",
        )
    try:
        data = response.json()["data"]
    except (ValueError, KeyError, TypeError) as exc:
        raise UpstreamProviderError(
            "Unexpected Claude API response",
            details={"message": (getattr(response, "text", "") or "")[:500]},
            provider="claude",
        ) from exc
    if not isinstance(data, list):
        raise UpstreamProviderError("Unexpected Claude API response", details={"message": "data is not a list"}, provider="claude")
    return data


__all__ = [
    "Completion",
    "PROVIDERS",
    "complete",
    "default_model",
    "image_block",
    "image_from_data_url",
    "list_models",
    "text_block",
    "user_message",
]
