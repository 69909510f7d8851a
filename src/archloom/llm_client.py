"""LLM provider client for JSON-answer prompts (Anthropic or OpenAI over HTTP).

Fix suggestions are the only caller.  Each provider is described once in
``_PROVIDERS`` (endpoint, headers, request body, answer extraction); the
transport, status and empty-answer handling are shared.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from collections.abc import Callable

_DEFAULT_SYSTEM_PROMPT = (
    "You are an enterprise architecture expert specializing in "
    "TOGAF 10 ADM methodology. Answer with JSON only."
)
_DEFAULT_MAX_TOKENS = 4096
_DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class LLMConfig:
    """LLM provider configuration from the ``llm:`` section of config.yml."""

    provider: str  # "anthropic" or "openai"
    model: str
    api_key_env: str
    max_tokens: int = _DEFAULT_MAX_TOKENS
    timeout: float = _DEFAULT_TIMEOUT


class LLMError(Exception):
    """Raised when an LLM API call fails."""


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


def _anthropic_body(config: LLMConfig, system: str, prompt: str) -> dict[str, Any]:
    return {
        "model": config.model,
        "max_tokens": config.max_tokens,
        "system": system,
        "messages": [{"role": "user", "content": prompt}],
    }


def _anthropic_text(data: dict[str, Any]) -> str:
    blocks = data.get("content") or []
    return "".join(str(b.get("text", "")) for b in blocks if b.get("type", "text") == "text")


def _openai_body(config: LLMConfig, system: str, prompt: str) -> dict[str, Any]:
    # JSON mode keeps the answer parseable without fence stripping.
    return {
        "model": config.model,
        "max_tokens": config.max_tokens,
        "response_format": {"type": "json_object"},
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
    }


def _openai_text(data: dict[str, Any]) -> str:
    choices = data.get("choices") or []
    if not choices:
        return ""
    return str(choices[0].get("message", {}).get("content") or "")


@dataclass(frozen=True)
class _Provider:
    label: str
    url: str
    headers: Callable[[str], dict[str, str]]
    body: Callable[[LLMConfig, str, str], dict[str, Any]]
    text: Callable[[dict[str, Any]], str]


_PROVIDERS: dict[str, _Provider] = {
    "anthropic": _Provider(
        label="Anthropic",
        url="https://api.anthropic.com/v1/messages",
        headers=lambda key: {
            "x-api-key": key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        },
        body=_anthropic_body,
        text=_anthropic_text,
    ),
    "openai": _Provider(
        label="OpenAI",
        url="https://api.openai.com/v1/chat/completions",
        headers=lambda key: {
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        },
        body=_openai_body,
        text=_openai_text,
    ),
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _positive(raw: dict[str, Any], key: str, default: float, kind: type) -> Any:
    try:
        value = kind(raw.get(key, default))
    except (TypeError, ValueError) as exc:
        msg = f"LLM config '{key}' must be a number."
        raise ValueError(msg) from exc
    if value <= 0:
        msg = f"LLM config '{key}' must be positive."
        raise ValueError(msg)
    return value


def parse_llm_config(raw: dict[str, Any]) -> LLMConfig:
    """Parse and validate LLM config from config.yml ``llm`` section.

    Raises
    ------
    ValueError
        If required fields are missing, numbers are not positive or the
        provider is unsupported.
    """
    provider = raw.get("provider", "")
    if provider not in _PROVIDERS:
        msg = f"Unsupported LLM provider: {provider!r}. Use 'anthropic' or 'openai'."
        raise ValueError(msg)

    model = raw.get("model", "")
    if not model:
        msg = "LLM config requires 'model' field."
        raise ValueError(msg)

    api_key_env = raw.get("api_key_env", "")
    if not api_key_env:
        msg = "LLM config requires 'api_key_env' field."
        raise ValueError(msg)

    return LLMConfig(
        provider=provider,
        model=str(model),
        api_key_env=str(api_key_env),
        max_tokens=_positive(raw, "max_tokens", _DEFAULT_MAX_TOKENS, int),
        timeout=_positive(raw, "timeout", _DEFAULT_TIMEOUT, float),
    )


def call_llm(config: LLMConfig, prompt: str, *, system: str = _DEFAULT_SYSTEM_PROMPT) -> str:
    """Send *prompt* to the configured provider and return the answer text.

    Raises
    ------
    LLMError
        On a missing API key, transport failure, non-200 status or an empty
        answer.
    """
    provider = _PROVIDERS.get(config.provider)
    if provider is None:
        msg = f"Unsupported provider: {config.provider}"
        raise LLMError(msg)

    api_key = os.environ.get(config.api_key_env, "")
    if not api_key:
        msg = f"API key not found. Set environment variable: {config.api_key_env}"
        raise LLMError(msg)

    try:
        response = httpx.post(
            provider.url,
            headers=provider.headers(api_key),
            json=provider.body(config, system, prompt),
            timeout=config.timeout,
        )
    except httpx.HTTPError as exc:
        msg = f"{provider.label} API request failed: {exc}"
        raise LLMError(msg) from exc

    if response.status_code != 200:
        msg = f"{provider.label} API error {response.status_code}: {response.text}"
        raise LLMError(msg)

    text = provider.text(response.json())
    if not text.strip():
        msg = f"{provider.label} API returned empty response."
        raise LLMError(msg)
    return text
