"""Hosted LLM backends via LangChain chat models.

Used when `generation.provider` is `langchain`. `generation.model` then names a hosted
model; the provider and its API key env var come from the registry (or are inferred
from the model name):
- OpenAI (OPENAI_API_KEY)
- Google Gemini (GOOGLE_API_KEY)
- Anthropic (ANTHROPIC_API_KEY)
- Fireworks (FIREWORKS_API_KEY)

Models are created lazily and cached per name, so a run that never generates text
never needs a key.
"""

from __future__ import annotations

import os
import threading
from typing import Any, Mapping, Optional, TypeAlias

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage
from langchain_fireworks import ChatFireworks
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

ModelRegistry: TypeAlias = Mapping[str, Mapping[str, str]]


DEFAULT_MODEL_REGISTRY: dict[str, dict[str, str]] = {
    # OpenAI
    "gpt-5.1": {"provider": "openai", "env_var": "OPENAI_API_KEY"},
    "gpt-5.1-mini": {"provider": "openai", "env_var": "OPENAI_API_KEY"},
    # Google Gemini
    "gemini-3-flash-preview": {"provider": "google_genai", "env_var": "GOOGLE_API_KEY"},
    "gemini-3-pro-preview": {"provider": "google_genai", "env_var": "GOOGLE_API_KEY"},
    # Anthropic
    "claude-haiku-4-5": {"provider": "anthropic", "env_var": "ANTHROPIC_API_KEY"},
    "claude-sonnet-4-5": {"provider": "anthropic", "env_var": "ANTHROPIC_API_KEY"},
    # Fireworks
    "accounts/fireworks/models/gpt-oss-120b": {"provider": "fireworks", "env_var": "FIREWORKS_API_KEY"},
    "accounts/fireworks/models/deepseek-v3p2": {"provider": "fireworks", "env_var": "FIREWORKS_API_KEY"},
}

_PROVIDER_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "google_genai": "GOOGLE_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "fireworks": "FIREWORKS_API_KEY",
}


def _infer_provider(model_name: str) -> str | None:
    name = (model_name or "").lower()
    if "gemini" in name:
        return "google_genai"
    if "claude" in name:
        return "anthropic"
    if name.startswith("accounts/fireworks/models/"):
        return "fireworks"
    if name.startswith(("gpt", "o1", "o3", "o4")):
        return "openai"
    return None


def _require_api_key(env_var: str, model_name: str) -> str:
    value = os.getenv(env_var)
    if not value:
        raise ValueError(f"Missing API key for model '{model_name}'. Set {env_var}.")
    return value


def create_chat_model(
    *,
    model_name: str,
    registry: ModelRegistry | None = None,
    temperature: float | None = None,
    timeout: float | None = None,
) -> Any:
    """Create a provider-specific LangChain chat model supporting `.invoke()`."""
    entry = (registry or DEFAULT_MODEL_REGISTRY).get(model_name, {})
    provider = entry.get("provider") or _infer_provider(model_name)
    if provider is None:
        raise ValueError(
            f"Unknown provider for model '{model_name}'. "
            "Supported providers: openai, anthropic, google_genai, fireworks"
        )
    env_var = entry.get("env_var") or _PROVIDER_ENV_VARS[provider]
    api_key = _require_api_key(env_var, model_name)

    kwargs: dict[str, Any] = {}
    if temperature is not None:
        kwargs["temperature"] = temperature
    if timeout is not None:
        kwargs["timeout"] = timeout

    if provider == "openai":
        return ChatOpenAI(model=model_name, api_key=api_key, **kwargs)  # type: ignore[call-arg]
    if provider == "google_genai":
        return ChatGoogleGenerativeAI(model=model_name, google_api_key=api_key, **kwargs)
    if provider == "anthropic":
        # langchain_anthropic accepts `model_name=...`
        return ChatAnthropic(model_name=model_name, api_key=api_key, **kwargs)  # type: ignore[call-arg]
    if provider == "fireworks":
        return ChatFireworks(model=model_name, api_key=api_key, **kwargs)  # type: ignore[call-arg]

    raise ValueError(f"Unsupported provider '{provider}' for model '{model_name}'.")


def _message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    # Some providers return a list of content blocks.
    if isinstance(content, list):
        parts = [c.get("text", "") if isinstance(c, dict) else str(c) for c in content]
        return "".join(parts)
    return str(content)


class LangChainGenerator:
    """Text generation through a hosted chat model, one user message per prompt."""

    def __init__(
        self,
        *,
        registry: ModelRegistry | None = None,
        temperature: Optional[float] = 0.2,
        timeout: float | None = None,
    ) -> None:
        self.registry = registry
        self.temperature = temperature
        self.timeout = timeout
        self._models: dict[str, Any] = {}
        self._lock = threading.Lock()

    def _model(self, model_name: str) -> Any:
        with self._lock:
            if model_name not in self._models:
                self._models[model_name] = create_chat_model(
                    model_name=model_name,
                    registry=self.registry,
                    temperature=self.temperature,
                    timeout=self.timeout,
                )
            return self._models[model_name]

    def generate(self, prompt: str, model: str) -> str:
        reply = self._model(model).invoke([HumanMessage(content=prompt)])
        text = _message_text(reply).strip()
        if not text:
            raise RuntimeError(f"Model '{model}' returned an empty response.")
        return text
