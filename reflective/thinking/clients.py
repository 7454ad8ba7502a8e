"""OpenAI-compatible client used as the thought generator."""

from __future__ import annotations

import logging
import os
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Mapping, MutableMapping, Optional, Protocol, Sequence

from openai import OpenAI

from .errors import GeneratorError

logger = logging.getLogger(__name__)


DEFAULT_EXTRA_BODY: Mapping[str, Any] = {
    "extra_body": {"chat_template_kwargs": {"enable_thinking": False}}
}

PROVIDER_API_KEY_ENV: Mapping[str, str] = {
    "gemini": "GEMINI_API_KEY",
    "vllm": "OPENAI_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "openai": "OPENAI_API_KEY",
}

PROVIDER_BASE_URL: Mapping[str, str] = {
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/",
    "vllm": "http://localhost:1109/v1",
    "deepseek": "https://api.deepseek.com",
    "openai": "https://api.openai.com/v1",
}

# Providers whose OpenAI-compatible endpoint accepts a top_k sampling field.
TOP_K_PROVIDERS = frozenset({"gemini", "vllm"})


@dataclass(frozen=True)
class GenerationConfig:
    temperature: float = 0.7
    top_p: float = 0.8
    top_k: Optional[int] = 40
    max_tokens: int = 1024


class ThoughtGenerator(Protocol):
    def generate(
        self,
        prompt: str,
        *,
        config: GenerationConfig,
        system_prompt: Optional[str] = None,
    ) -> str:
        ...


class LLMClient:
    """Thin wrapper over :class:`openai.OpenAI` with provider defaults."""

    def __init__(
        self,
        *,
        model: str,
        provider: str = "gemini",
        base_url: str | None = None,
        api_key: str | None = None,
        api_key_env: str | None = None,
        default_extra_body: Mapping[str, Any] | None = None,
    ) -> None:
        provider_key = provider.lower()
        if provider_key not in PROVIDER_API_KEY_ENV:
            raise ValueError(f"Unsupported provider '{provider}'")

        if api_key is None:
            env_name = api_key_env or PROVIDER_API_KEY_ENV[provider_key]
            api_key = os.environ.get(env_name) or ""

        extra = default_extra_body
        if extra is None and provider_key == "vllm":
            extra = DEFAULT_EXTRA_BODY

        self.base_url = base_url or PROVIDER_BASE_URL[provider_key]
        self._client = OpenAI(base_url=self.base_url, api_key=api_key)
        self.model = model
        self.provider = provider_key
        self.default_extra_body = dict(extra or {})

    # ------------------------------------------------------------------
    # Chat completions
    # ------------------------------------------------------------------
    def chat(
        self,
        messages: Sequence[Mapping[str, object]],
        *,
        extra_body: Mapping[str, Any] | None = None,
        **params: Any,
    ) -> str:
        payload: MutableMapping[str, Any] = {"model": self.model, "messages": list(messages)}
        payload.update({key: value for key, value in params.items() if value is not None})
        merged = self._merge_extra(extra_body)
        if merged:
            payload.update(merged)

        logger.debug("Dispatching chat request: %s", payload)
        response = self._client.chat.completions.create(**payload)
        logger.debug("Chat raw response: %s", response)
        choice = response.choices[0].message
        return getattr(choice, "content", "") or ""

    def generate(
        self,
        prompt: str,
        *,
        config: GenerationConfig,
        system_prompt: Optional[str] = None,
    ) -> str:
        """Generate one thought; any client failure surfaces as :class:`GeneratorError`."""

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        extra: dict[str, Any] = {}
        if config.top_k is not None and self.provider in TOP_K_PROVIDERS:
            extra = {"extra_body": {"top_k": config.top_k}}
        try:
            text = self.chat(
                messages,
                extra_body=extra or None,
                temperature=config.temperature,
                top_p=config.top_p,
                max_tokens=config.max_tokens,
            )
        except Exception as exc:
            raise GeneratorError(str(exc)) from exc
        if not text.strip():
            raise GeneratorError("generator returned an empty response")
        return text

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _merge_extra(
        self, extra_body: Mapping[str, Any] | None
    ) -> MutableMapping[str, Any] | None:
        if not self.default_extra_body and not extra_body:
            return None
        merged: MutableMapping[str, Any] = deepcopy(self.default_extra_body)
        if extra_body:
            for key, value in extra_body.items():
                if (
                    key in merged
                    and isinstance(merged[key], MutableMapping)
                    and isinstance(value, Mapping)
                ):
                    merged[key].update(value)  # type: ignore[arg-type]
                else:
                    merged[key] = deepcopy(value) if isinstance(value, Mapping) else value
        return merged


__all__ = ["GenerationConfig", "LLMClient", "ThoughtGenerator"]
