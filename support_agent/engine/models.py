"""Core data types for the session query pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import InvalidModelError


class ThinkingMode(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: str) -> ThinkingMode:
        """Parse a mode name case-insensitively; raises ValueError."""
        return cls(value.strip().lower())


@dataclass(frozen=True)
class ThinkingConfig:
    reasoning_effort: str
    budget_tokens: int


THINKING_CONFIGS: dict[ThinkingMode, ThinkingConfig] = {
    ThinkingMode.LOW: ThinkingConfig(reasoning_effort="low", budget_tokens=4000),
    ThinkingMode.MEDIUM: ThinkingConfig(reasoning_effort="medium", budget_tokens=8000),
    ThinkingMode.HIGH: ThinkingConfig(reasoning_effort="high", budget_tokens=16000),
}


class AgentState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    READY = "ready"
    QUERYING = "querying"


@dataclass(frozen=True)
class ModelSelector:
    """The ``{providerID, modelID}`` pair sent with every prompt."""
    provider_id: str
    model_id: str

    @classmethod
    def parse(cls, model: str) -> ModelSelector:
        """Split ``provider/model`` on the first slash.

        Model ids may themselves contain slashes (for example
        ``openrouter/meta/llama``), so only the first one separates the
        provider.
        """
        provider_id, sep, model_id = model.strip().partition("/")
        if not sep or not provider_id or not model_id:
            raise InvalidModelError(model)
        return cls(provider_id=provider_id, model_id=model_id)

    def to_payload(self) -> dict[str, str]:
        return {"providerID": self.provider_id, "modelID": self.model_id}

    def __str__(self) -> str:
        return f"{self.provider_id}/{self.model_id}"


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
        }
        if self.cost is not None:
            d["cost"] = self.cost
        return d


@dataclass
class QueryResult:
    """Return value of one query cycle."""
    response: str
    token_usage: TokenUsage | None = None


@dataclass
class ProviderInfo:
    """A provider as surfaced to the user after filtering."""
    id: str
    name: str = ""
    models: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def model_ids(self) -> list[str]:
        return list(self.models)
