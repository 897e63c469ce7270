"""3-layer configuration system for Ensemble.

Loads and merges configuration from:
1. Default settings (built-in)
2. Project config (.ensemble/config.yaml) or an explicit YAML file
3. Caller overrides (CLI flags)
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger("ensemble.config")

CONFIG_DIR = ".ensemble"

DEFAULT_CONFIG: dict = {
    "ai": {
        "temperature": 0.7,
        "timeout_seconds": 120,
        "capability": "chat",
        "multi_model_count": 3,
        "openai": {
            "api_key_env": "OPENAI_API_KEY",
            "base_url": "https://api.openai.com/v1/chat/completions",
        },
        "anthropic": {
            "api_key_env": "ANTHROPIC_API_KEY",
            "base_url": "https://api.anthropic.com/v1/messages",
            "anthropic_version": "2023-06-01",
        },
        "local": {
            "endpoint": "http://localhost:11434",
            "keep_alive": "30m",
            "startup_timeout_seconds": 60,
        },
        "models": {
            "openai-gpt4o": {
                "provider": "openai",
                "model": "gpt-4o",
                "max_tokens": 4096,
                "context_window": 128000,
                "capabilities": ["chat", "code", "analysis", "large-context"],
                "priority": 1,
            },
            "openai-gpt4o-mini": {
                "provider": "openai",
                "model": "gpt-4o-mini",
                "max_tokens": 4096,
                "context_window": 128000,
                "capabilities": ["chat", "code", "analysis"],
                "priority": 2,
            },
            "claude-sonnet": {
                "provider": "anthropic",
                "model": "claude-sonnet-4-5-20250929",
                "max_tokens": 4096,
                "context_window": 200000,
                "capabilities": ["chat", "code", "analysis", "large-context"],
                "priority": 3,
            },
            "local-codellama": {
                "provider": "local",
                "model": "codellama:7b",
                "max_tokens": 2048,
                "context_window": 4096,
                "capabilities": ["code", "completion"],
                "priority": 4,
                "offline": True,
            },
            "local-mistral": {
                "provider": "local",
                "model": "mistral:7b",
                "max_tokens": 2048,
                "context_window": 8192,
                "capabilities": ["chat", "code"],
                "priority": 5,
                "offline": True,
            },
        },
        "context": {
            "max_context_size": 100000,
            "chunk_size": 8000,
            "keep_ratio": 0.3,
        },
        "retry": {
            "max_retries": 3,
            "fallback_model": "local-mistral",
            "delays": {
                "rate_limit": 60,
                "api_error": 5,
                "context_too_large": 0,
            },
        },
    },
    "execution_log": {
        "max_entries": 1000,
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Lists are replaced, not merged; inputs are untouched."""
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


def load_config_file(config_path: Path) -> dict:
    """Parse a YAML config file. Missing, empty or invalid files yield {}."""
    if not config_path.exists():
        return {}
    try:
        content = config_path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
        loaded = yaml.safe_load(content) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable config %s: %s", config_path, e)
        return {}
    if not isinstance(loaded, dict):
        logger.warning("Ignoring config %s: top level is not a mapping", config_path)
        return {}
    return loaded


def load_project_config(project_path: Path) -> dict:
    """Load project configuration from .ensemble/config.yaml."""
    return load_config_file(Path(project_path) / CONFIG_DIR / "config.yaml")


def get_effective_config(
    project_path: Optional[Path] = None,
    config_path: Optional[Path] = None,
    overrides: Optional[dict] = None,
) -> dict:
    """Get the fully resolved configuration."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if project_path is not None:
        project_config = load_project_config(project_path)
        if project_config:
            config = deep_merge(config, project_config)

    if config_path is not None:
        file_config = load_config_file(Path(config_path))
        if file_config:
            config = deep_merge(config, file_config)

    if overrides:
        config = deep_merge(config, overrides)

    return config
