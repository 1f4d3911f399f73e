"""Support Agent engine: server supervision, event stream and query orchestration."""
from .models import (
    AgentState,
    ModelSelector,
    ProviderInfo,
    QueryResult,
    ThinkingConfig,
    ThinkingMode,
    TokenUsage,
)
from .config import AgentConfig
from .errors import (
    AgentClientError,
    AgentNotStartedError,
    InvalidModelError,
    MissingApiKeyError,
    QueryInProgressError,
    QueryTimeoutError,
    RepositoryLoadError,
    ServerStartupError,
    ServerTimeoutError,
    SessionCreationError,
    SessionError,
    SupportAgentError,
)

__all__ = [
    # Orchestrator (lazy import keeps aiohttp out of config-only callers)
    "SupportAgent",
    "AgentClient",
    # Models
    "AgentState",
    "ModelSelector",
    "ProviderInfo",
    "QueryResult",
    "ThinkingConfig",
    "ThinkingMode",
    "TokenUsage",
    # Config
    "AgentConfig",
    "load_config",
    # Errors
    "AgentClientError",
    "AgentNotStartedError",
    "InvalidModelError",
    "MissingApiKeyError",
    "QueryInProgressError",
    "QueryTimeoutError",
    "RepositoryLoadError",
    "ServerStartupError",
    "ServerTimeoutError",
    "SessionCreationError",
    "SessionError",
    "SupportAgentError",
]


def __getattr__(name: str):
    if name == "SupportAgent":
        from .agent import SupportAgent
        return SupportAgent
    if name == "AgentClient":
        from .client import AgentClient
        return AgentClient
    if name == "load_config":
        from .yaml_config import load_config
        return load_config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
