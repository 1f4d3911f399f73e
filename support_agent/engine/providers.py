"""Provider catalog — allow-list, model exclusions and credentials.

The agent server knows about far more providers and models than this
tool is willing to offer. The catalog narrows the server's listing to
an ordered allow-list and decides which providers need an API key.
"""
from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Mapping
from typing import Any

from .errors import MissingApiKeyError
from .models import ModelSelector, ProviderInfo

logger = logging.getLogger(__name__)

# Display order. Free providers first, then paid ones.
ALLOWED_PROVIDERS: tuple[str, ...] = (
    "zai",
    "opencode",
    "google",
    "openai",
    "deepseek",
    "xai",
    "anthropic",
    "mistral",
)

# Served through OpenCode Zen, no key needed.
FREE_PROVIDERS: frozenset[str] = frozenset({"zai", "opencode"})

PROVIDER_API_KEYS: dict[str, str] = {
    "google": "GOOGLE_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "xai": "XAI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
}

EXCLUDED_MODEL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"embedding", re.IGNORECASE),
    re.compile(r"tts", re.IGNORECASE),
    re.compile(r"audio", re.IGNORECASE),
    re.compile(r"live", re.IGNORECASE),
    re.compile(r"image", re.IGNORECASE),
    re.compile(r"nano", re.IGNORECASE),
    re.compile(r"-8b$", re.IGNORECASE),
    re.compile(r"lite", re.IGNORECASE),
    re.compile(r"gemini-1\.", re.IGNORECASE),
    re.compile(r"gemini-2\.0", re.IGNORECASE),
    re.compile(r"-latest$", re.IGNORECASE),
)

RECOMMENDED_MODELS: dict[str, tuple[str, ...]] = {
    "zai": ("glm-4.7-free",),
    "opencode": ("big-pickle", "kimi-k2", "minimax-m2"),
    "google": ("gemini-2.5-flash", "gemini-2.5-pro"),
    "openai": ("gpt-5", "gpt-5-mini"),
    "deepseek": ("deepseek-chat", "deepseek-reasoner"),
    "xai": ("grok-4",),
    "anthropic": ("claude-sonnet-4-5", "claude-haiku-4-5"),
    "mistral": ("mistral-large-2411",),
}


def is_excluded_model(model_id: str) -> bool:
    return any(p.search(model_id) for p in EXCLUDED_MODEL_PATTERNS)


def filter_models(models: Mapping[str, Any]) -> dict[str, Any]:
    """Drop embedding, audio, deprecated and alias models."""
    return {
        model_id: info
        for model_id, info in models.items()
        if not is_excluded_model(model_id)
    }


class ProviderCatalog:
    """Filtering and credential rules for the providers we surface.

    ``api_key_envs`` overrides entries of PROVIDER_API_KEYS (the YAML
    ``providers.api_keys`` section feeds it).
    """

    def __init__(
        self,
        allowed: Iterable[str] = ALLOWED_PROVIDERS,
        api_key_envs: Mapping[str, str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._allowed = list(allowed)
        self._api_key_envs = {**PROVIDER_API_KEYS, **(api_key_envs or {})}
        self._environ = environ

    @property
    def allowed(self) -> list[str]:
        return list(self._allowed)

    def _env(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def requires_api_key(self, provider_id: str) -> bool:
        return provider_id not in FREE_PROVIDERS

    def get_api_key_env_var(self, provider_id: str) -> str | None:
        return self._api_key_envs.get(provider_id)

    def has_api_key(self, provider_id: str) -> bool:
        """True when the provider's key is set, or it needs none."""
        env_var = self._api_key_envs.get(provider_id)
        if env_var is None:
            return True
        return bool(self._env().get(env_var))

    def ensure_api_key(self, selector: ModelSelector) -> None:
        """Raise MissingApiKeyError if *selector* cannot be used yet."""
        provider_id = selector.provider_id
        if not self.requires_api_key(provider_id) or self.has_api_key(provider_id):
            return
        env_var = self.get_api_key_env_var(provider_id) or "<unknown>"
        raise MissingApiKeyError(provider_id, env_var)

    def is_model_free(self, provider_id: str, model_id: str) -> bool:
        return provider_id in FREE_PROVIDERS or model_id.endswith("-free")

    def recommended_models(self, provider_id: str) -> list[str]:
        return list(RECOMMENDED_MODELS.get(provider_id, ()))

    def filter_providers(self, raw_providers: Iterable[Any]) -> list[ProviderInfo]:
        """Keep allow-listed providers, in allow-list order.

        *raw_providers* is the server's ``all`` list; entries that are
        not dicts with an ``id`` are skipped.
        """
        order = {pid: idx for idx, pid in enumerate(self._allowed)}
        kept: list[ProviderInfo] = []
        for raw in raw_providers:
            if not isinstance(raw, dict):
                continue
            provider_id = raw.get("id")
            if provider_id not in order:
                continue
            models = raw.get("models")
            kept.append(ProviderInfo(
                id=provider_id,
                name=str(raw.get("name") or provider_id),
                models=filter_models(models if isinstance(models, dict) else {}),
            ))
        # sorted() is stable, so equal ranks keep server order
        kept.sort(key=lambda p: order[p.id])
        logger.debug(
            "Provider filter kept %d provider(s): %s",
            len(kept), ", ".join(p.id for p in kept),
        )
        return kept
