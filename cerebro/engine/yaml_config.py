"""YAML configuration loader.

Loads a single YAML file layered over the environment config.
Every section is optional.

Example YAML:
    runtime:
      ollama_url: http://127.0.0.1:11434
      local_model: mistral
      remote_url: https://api.deepseek.com/chat/completions
      remote_model: deepseek-1.3
      api_key_env: DEEPSEEK_API_KEY
      orbit_root: ~/cerebro-orbit

    settings:
      language: en
      network:
        enabled: true
      permissions:
        accessLevel: dev
      profile:
        mode: manual
        manualId: thoughtful

    profiles:
      balanced:
        model: qwen2.5:7b-instruct
        reasoning:
          temperature: 0.5
      research:
        runtime: remote
        model: deepseek-6.7
        rules:
          files: [list, read]

    access_levels:
      basic:
        files: [list, read, info]
        system: [info]
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path

import yaml

from .config import AssistantSettings, CerebroConfig
from .errors import ConfigurationError
from .permissions import DEFAULT_ACCESS_LEVEL_LIMITS, PolicyTable, parse_policy
from .profiles import ProfileRegistry

logger = logging.getLogger(__name__)

_RUNTIME_KEYS = {
    "ollama_url": "ollama_url",
    "local_model": "default_local_model",
    "remote_url": "remote_url",
    "remote_model": "default_remote_model",
    "api_key_env": "api_key_env",
    "probe_timeout": "probe_timeout_seconds",
    "model_cache_ttl": "model_cache_ttl_seconds",
    "orbit_root": "orbit_root",
    "log_level": "log_level",
}


@dataclass
class CerebroYamlConfig:
    """Complete parsed configuration."""
    config: CerebroConfig
    profiles: ProfileRegistry = field(default_factory=ProfileRegistry)
    policy: PolicyTable = field(default_factory=lambda: dict(DEFAULT_ACCESS_LEVEL_LIMITS))


def load_yaml_config(
    path: str | Path,
    base: CerebroConfig | None = None,
) -> CerebroYamlConfig:
    """Parse *path* and layer it over *base* (or the env config)."""
    config_path = Path(path).expanduser()
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config root must be a mapping: {config_path}")

    config = base or CerebroConfig.from_env()

    runtime = raw.get("runtime") or {}
    changes = {}
    for key, attr in _RUNTIME_KEYS.items():
        if key in runtime and runtime[key] is not None:
            value = runtime[key]
            if attr.endswith("_seconds"):
                value = float(value)
            elif attr == "orbit_root":
                value = str(Path(str(value)).expanduser())
            else:
                value = str(value)
            changes[attr] = value
    if changes:
        config = replace(config, **changes)

    profiles = ProfileRegistry().with_overrides(raw.get("profiles") or {})

    if "settings" in raw:
        config = config.with_settings(
            AssistantSettings.from_dict(raw["settings"], profiles.list_ids())
        )

    policy = parse_policy(raw.get("access_levels") or {})

    logger.info(
        "Loaded config from %s: %d profiles, access_level=%s",
        config_path, len(profiles.list_ids()),
        config.settings.access_level.value,
    )
    return CerebroYamlConfig(config=config, profiles=profiles, policy=policy)
