"""Unit tests for provider filtering and API key rules."""
from __future__ import annotations

import pytest

from support_agent.engine.errors import MissingApiKeyError
from support_agent.engine.models import ModelSelector
from support_agent.engine.providers import ProviderCatalog, filter_models, is_excluded_model


@pytest.mark.parametrize(
    "model_id",
    [
        "text-embedding-004",
        "gemini-2.5-flash-preview-tts",
        "gemini-2.5-flash-lite",
        "gemini-2.0-flash",
        "gemini-1.5-pro",
        "gemini-flash-latest",
        "gpt-5-nano",
        "gemini-1.5-flash-8b",
    ],
)
def test_excluded_models(model_id: str) -> None:
    assert is_excluded_model(model_id)


def test_kept_models() -> None:
    assert not is_excluded_model("gemini-2.5-flash")
    assert not is_excluded_model("gpt-5")
    assert filter_models({"gpt-5": {}, "gpt-5-nano": {}}) == {"gpt-5": {}}


def test_filter_providers_keeps_allow_list_order() -> None:
    catalog = ProviderCatalog(environ={})
    raw = [
        {"id": "openai", "name": "OpenAI", "models": {"gpt-5": {}, "gpt-5-nano": {}}},
        {"id": "amazon-bedrock", "models": {"x": {}}},
        {"id": "opencode", "models": {"big-pickle": {}}},
        "garbage",
        {"id": "google", "models": None},
    ]
    providers = catalog.filter_providers(raw)
    assert [p.id for p in providers] == ["opencode", "google", "openai"]
    assert providers[2].name == "OpenAI"
    assert providers[2].model_ids == ["gpt-5"]
    assert providers[1].models == {}
    assert providers[0].name == "opencode"


def test_free_providers_need_no_key() -> None:
    catalog = ProviderCatalog(environ={})
    assert not catalog.requires_api_key("opencode")
    catalog.ensure_api_key(ModelSelector.parse("zai/glm-4.7-free"))


def test_paid_provider_without_key_is_rejected() -> None:
    catalog = ProviderCatalog(environ={"OPENAI_API_KEY": ""})
    with pytest.raises(MissingApiKeyError) as exc_info:
        catalog.ensure_api_key(ModelSelector.parse("openai/gpt-5"))
    assert exc_info.value.env_var == "OPENAI_API_KEY"


def test_paid_provider_with_key_is_accepted() -> None:
    catalog = ProviderCatalog(environ={"GOOGLE_API_KEY": "k"})
    assert catalog.has_api_key("google")
    catalog.ensure_api_key(ModelSelector.parse("google/gemini-2.5-pro"))


def test_api_key_env_override() -> None:
    catalog = ProviderCatalog(api_key_envs={"openai": "MY_KEY"}, environ={"MY_KEY": "x"})
    assert catalog.get_api_key_env_var("openai") == "MY_KEY"
    assert catalog.has_api_key("openai")


def test_is_model_free() -> None:
    catalog = ProviderCatalog(environ={})
    assert catalog.is_model_free("opencode", "big-pickle")
    assert catalog.is_model_free("openai", "something-free")
    assert not catalog.is_model_free("openai", "gpt-5")
