"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via SUPPORT_AGENT_* env
vars, a YAML file (see yaml_config.py) or command-line flags.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .models import ThinkingMode

logger = logging.getLogger(__name__)

ENV_PREFIX = "SUPPORT_AGENT_"


def _default_home() -> str:
    return str(Path.home() / ".support-agent")


@dataclass
class AgentConfig:
    """Support agent configuration."""

    # Model used for prompts, as "provider/model".
    model: str = "google/gemini-2.5-flash"
    thinking_mode: ThinkingMode = ThinkingMode.MEDIUM

    # Agent server process.
    opencode_command: str = "opencode"
    host: str = "127.0.0.1"
    port: int = 4096
    startup_timeout_seconds: float = 10.0
    startup_poll_interval_seconds: float = 0.1
    # Wait after SIGTERM so the port is released before a restart.
    stop_grace_seconds: float = 1.0

    # Upper bound on one query's event stream.
    # Set to 0 (or a negative value) to disable the deadline.
    query_timeout_seconds: float = 600.0

    # Per-user state: logs, saved sessions, cloned repositories.
    home_dir: str = field(default_factory=_default_home)

    # Overrides of provider id -> API key env var name.
    api_key_envs: dict[str, str] = field(default_factory=dict)

    log_level: str = "INFO"

    @property
    def log_dir(self) -> Path:
        return Path(self.home_dir) / "logs"

    @property
    def sessions_file(self) -> Path:
        return Path(self.home_dir) / "sessions.json"

    @property
    def repo_cache_dir(self) -> Path:
        return Path(self.home_dir) / "repos"

    def apply_env(self) -> AgentConfig:
        """Overlay SUPPORT_AGENT_* environment variables in place."""
        overrides = {
            k: v for k, v in os.environ.items() if k.startswith(ENV_PREFIX)
        }
        if overrides:
            logger.info(
                "AgentConfig: env overrides: %s",
                ", ".join(sorted(overrides)),
            )
        else:
            logger.debug("AgentConfig: no %s* env vars set", ENV_PREFIX)

        env = os.environ
        if env.get("SUPPORT_AGENT_MODEL"):
            self.model = env["SUPPORT_AGENT_MODEL"]
        if env.get("SUPPORT_AGENT_THINKING_MODE"):
            try:
                self.thinking_mode = ThinkingMode.parse(env["SUPPORT_AGENT_THINKING_MODE"])
            except ValueError:
                logger.warning(
                    "Ignoring invalid SUPPORT_AGENT_THINKING_MODE=%s",
                    env["SUPPORT_AGENT_THINKING_MODE"],
                )
        if env.get("SUPPORT_AGENT_OPENCODE_BIN"):
            self.opencode_command = env["SUPPORT_AGENT_OPENCODE_BIN"]
        if env.get("SUPPORT_AGENT_HOST"):
            self.host = env["SUPPORT_AGENT_HOST"]
        self.port = int(env.get("SUPPORT_AGENT_PORT", str(self.port)))
        self.startup_timeout_seconds = float(env.get(
            "SUPPORT_AGENT_STARTUP_TIMEOUT", str(self.startup_timeout_seconds)
        ))
        self.stop_grace_seconds = float(env.get(
            "SUPPORT_AGENT_STOP_GRACE", str(self.stop_grace_seconds)
        ))
        self.query_timeout_seconds = float(env.get(
            "SUPPORT_AGENT_QUERY_TIMEOUT", str(self.query_timeout_seconds)
        ))
        if env.get("SUPPORT_AGENT_HOME"):
            self.home_dir = env["SUPPORT_AGENT_HOME"]
        if env.get("SUPPORT_AGENT_LOG_LEVEL"):
            self.log_level = env["SUPPORT_AGENT_LOG_LEVEL"].upper()
        return self

    @classmethod
    def from_env(cls) -> AgentConfig:
        """Load configuration from SUPPORT_AGENT_* environment variables."""
        config = cls().apply_env()
        logger.info(
            "AgentConfig.from_env: model=%s mode=%s port=%s",
            config.model, config.thinking_mode.value, config.port,
        )
        return config
