"""YAML configuration loader.

Example YAML:
    agent:
      model: openai/gpt-5
      thinking_mode: high
      port: 4096
      query_timeout_seconds: 300

    providers:
      api_keys:
        openai: MY_OPENAI_KEY   # read the key from $MY_OPENAI_KEY

Precedence (highest wins): command-line flags, SUPPORT_AGENT_* env
vars, this file, built-in defaults.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from .config import AgentConfig
from .models import ThinkingMode

logger = logging.getLogger(__name__)

LOCAL_CONFIG_NAME = ".support-agent.yaml"

_FLOAT_KEYS = (
    "startup_timeout_seconds",
    "startup_poll_interval_seconds",
    "stop_grace_seconds",
    "query_timeout_seconds",
)
_STR_KEYS = ("model", "opencode_command", "host", "home_dir", "log_level")


def _global_config_path() -> Path:
    return Path.home() / ".support-agent" / "config.yaml"


def discover_config_path(cwd: Path | None = None) -> Path | None:
    """Return ``./.support-agent.yaml`` or ``~/.support-agent/config.yaml``."""
    local = (cwd or Path.cwd()) / LOCAL_CONFIG_NAME
    if local.is_file():
        return local
    global_path = _global_config_path()
    if global_path.is_file():
        return global_path
    logger.debug(
        "No config file found (tried %s, %s); using defaults",
        local, global_path,
    )
    return None


def _apply_agent_section(config: AgentConfig, raw: dict[str, Any]) -> None:
    for key in _STR_KEYS:
        if raw.get(key):
            setattr(config, key, str(raw[key]))
    for key in _FLOAT_KEYS:
        if key in raw:
            setattr(config, key, float(raw[key]))
    if "port" in raw:
        config.port = int(raw["port"])
    if raw.get("thinking_mode"):
        config.thinking_mode = ThinkingMode.parse(str(raw["thinking_mode"]))
    if config.log_level:
        config.log_level = config.log_level.upper()


def load_yaml_config(path: str | Path, base: AgentConfig | None = None) -> AgentConfig:
    """Load a YAML file onto *base* (or fresh defaults) and return it.

    Raises FileNotFoundError / yaml.YAMLError as-is so an explicitly
    requested file never silently falls back to defaults.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error("load_yaml_config: config file not found at %s", path)
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top-level YAML value must be a mapping")

    config = base if base is not None else AgentConfig()
    agent_raw = raw.get("agent") or {}
    if isinstance(agent_raw, dict):
        _apply_agent_section(config, agent_raw)

    providers_raw = raw.get("providers") or {}
    api_keys = providers_raw.get("api_keys") if isinstance(providers_raw, dict) else None
    if isinstance(api_keys, dict):
        config.api_key_envs.update({str(k): str(v) for k, v in api_keys.items()})

    logger.info(
        "Loaded config %s (sections: %s)",
        path, ", ".join(sorted(raw)) or "(empty)",
    )
    return config


def load_config(path: str | Path | None = None, cwd: Path | None = None) -> AgentConfig:
    """Build the effective config: defaults, then YAML, then env vars."""
    config_path = Path(path) if path else discover_config_path(cwd)
    config = AgentConfig()
    if config_path is not None:
        load_yaml_config(config_path, base=config)
    return config.apply_env()
