from __future__ import annotations

import pytest

from support_agent.engine.errors import InvalidModelError
from support_agent.engine.models import (
    THINKING_CONFIGS,
    ModelSelector,
    ThinkingMode,
    TokenUsage,
)


def test_model_selector_splits_on_first_slash() -> None:
    selector = ModelSelector.parse("openrouter/meta/llama-3")
    assert selector.provider_id == "openrouter"
    assert selector.model_id == "meta/llama-3"
    assert selector.to_payload() == {"providerID": "openrouter", "modelID": "meta/llama-3"}
    assert str(selector) == "openrouter/meta/llama-3"


@pytest.mark.parametrize("bad", ["gpt-5", "/gpt-5", "openai/", "", "   "])
def test_model_selector_rejects_malformed(bad: str) -> None:
    with pytest.raises(InvalidModelError):
        ModelSelector.parse(bad)


def test_thinking_mode_parse_is_case_insensitive() -> None:
    assert ThinkingMode.parse(" HIGH ") is ThinkingMode.HIGH
    with pytest.raises(ValueError):
        ThinkingMode.parse("extreme")


def test_thinking_budgets() -> None:
    assert THINKING_CONFIGS[ThinkingMode.LOW].budget_tokens == 4000
    assert THINKING_CONFIGS[ThinkingMode.MEDIUM].budget_tokens == 8000
    assert THINKING_CONFIGS[ThinkingMode.HIGH].reasoning_effort == "high"


def test_token_usage_to_dict_omits_missing_cost() -> None:
    assert TokenUsage(1, 2, 3).to_dict() == {"inputTokens": 1, "outputTokens": 2, "totalTokens": 3}
    assert TokenUsage(1, 2, 3, cost=0.5).to_dict()["cost"] == 0.5
