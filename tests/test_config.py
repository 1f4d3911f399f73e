from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from support_agent.engine.config import AgentConfig
from support_agent.engine.models import ThinkingMode
from support_agent.engine.yaml_config import LOCAL_CONFIG_NAME, load_config, load_yaml_config


def _clean_env() -> dict[str, str]:
    return {k: v for k, v in os.environ.items() if not k.startswith("SUPPORT_AGENT_")}


def test_defaults() -> None:
    cfg = AgentConfig()
    assert cfg.model == "google/gemini-2.5-flash"
    assert cfg.thinking_mode is ThinkingMode.MEDIUM
    assert cfg.port == 4096
    assert cfg.startup_timeout_seconds == 10.0
    assert cfg.query_timeout_seconds == 600.0
    assert cfg.sessions_file.name == "sessions.json"


def test_from_env_overrides() -> None:
    env = _clean_env()
    env.update({
        "SUPPORT_AGENT_MODEL": "openai/gpt-5",
        "SUPPORT_AGENT_THINKING_MODE": "HIGH",
        "SUPPORT_AGENT_PORT": "5001",
        "SUPPORT_AGENT_QUERY_TIMEOUT": "0",
        "SUPPORT_AGENT_HOME": "/tmp/sa-home",
        "SUPPORT_AGENT_LOG_LEVEL": "debug",
    })
    with patch.dict(os.environ, env, clear=True):
        cfg = AgentConfig.from_env()
    assert cfg.model == "openai/gpt-5"
    assert cfg.thinking_mode is ThinkingMode.HIGH
    assert cfg.port == 5001
    assert cfg.query_timeout_seconds == 0.0
    assert cfg.log_dir == Path("/tmp/sa-home/logs")
    assert cfg.log_level == "DEBUG"


def test_invalid_env_thinking_mode_is_ignored() -> None:
    env = _clean_env()
    env["SUPPORT_AGENT_THINKING_MODE"] = "turbo"
    with patch.dict(os.environ, env, clear=True):
        cfg = AgentConfig.from_env()
    assert cfg.thinking_mode is ThinkingMode.MEDIUM


def test_yaml_config_sections(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "agent:\n"
        "  model: deepseek/deepseek-chat\n"
        "  thinking_mode: low\n"
        "  port: 4100\n"
        "  query_timeout_seconds: 120\n"
        "providers:\n"
        "  api_keys:\n"
        "    openai: MY_OPENAI_KEY\n",
        encoding="utf-8",
    )
    cfg = load_yaml_config(path)
    assert cfg.model == "deepseek/deepseek-chat"
    assert cfg.thinking_mode is ThinkingMode.LOW
    assert cfg.port == 4100
    assert cfg.query_timeout_seconds == 120.0
    assert cfg.api_key_envs == {"openai": "MY_OPENAI_KEY"}


def test_yaml_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_yaml_config(tmp_path / "nope.yaml")


def test_yaml_parse_error_raises(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("agent: [unclosed\n", encoding="utf-8")
    with pytest.raises(yaml.YAMLError):
        load_yaml_config(path)


def test_yaml_non_mapping_raises(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_yaml_config(path)


def test_env_beats_discovered_local_yaml(tmp_path: Path) -> None:
    (tmp_path / LOCAL_CONFIG_NAME).write_text(
        "agent:\n  model: xai/grok-4\n  port: 4200\n", encoding="utf-8",
    )
    env = _clean_env()
    env["SUPPORT_AGENT_MODEL"] = "mistral/mistral-large-2411"
    with patch.dict(os.environ, env, clear=True):
        cfg = load_config(cwd=tmp_path)
    assert cfg.model == "mistral/mistral-large-2411"
    assert cfg.port == 4200
