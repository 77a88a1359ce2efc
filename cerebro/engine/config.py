"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via CEREBRO_* env vars.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any

from .models import AccessLevel

logger = logging.getLogger(__name__)

LANGUAGES = ("es", "en")
PROFILE_MODES = ("auto", "manual")
_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class AssistantSettings:
    """User-facing settings, persisted elsewhere and consumed as plain values."""

    language: str = "es"
    # Remote providers are only used when the network toggle is on.
    network_enabled: bool = False
    access_level: AccessLevel = AccessLevel.BASIC
    profile_mode: str = "auto"
    manual_profile_id: str = "balanced"

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any] | None,
        profile_ids: list[str] | None = None,
    ) -> AssistantSettings:
        """Normalize stored settings, falling back to defaults per field.

        A legacy top-level ``model`` key naming a known profile pins that
        profile and switches the mode to manual.
        """
        defaults = cls()
        if not isinstance(data, dict):
            return defaults
        known = set(profile_ids) if profile_ids else {
            "fast", "balanced", "thoughtful", "thoughtfulLocal",
        }

        language = data.get("language")
        if language not in LANGUAGES:
            language = defaults.language

        network = data.get("network")
        network_enabled = defaults.network_enabled
        if isinstance(network, dict) and isinstance(network.get("enabled"), bool):
            network_enabled = network["enabled"]
        elif isinstance(data.get("network_enabled"), bool):
            network_enabled = data["network_enabled"]

        access_level = defaults.access_level
        raw_level = data.get("access_level")
        permissions = data.get("permissions")
        if isinstance(permissions, dict):
            raw_level = permissions.get("accessLevel", raw_level)
        try:
            if raw_level is not None:
                access_level = AccessLevel(raw_level)
        except ValueError:
            logger.warning("Ignoring unknown access level %r", raw_level)

        mode = defaults.profile_mode
        manual_id = defaults.manual_profile_id
        profile = data.get("profile")
        if isinstance(profile, dict):
            if profile.get("mode") in PROFILE_MODES:
                mode = profile["mode"]
            manual = profile.get("manualId", profile.get("manual_id"))
            if manual in known:
                manual_id = manual

        legacy = data.get("model")
        if isinstance(legacy, str) and legacy.strip() in known:
            manual_id = legacy.strip()
            mode = "manual"

        return cls(
            language=language,
            network_enabled=network_enabled,
            access_level=access_level,
            profile_mode=mode,
            manual_profile_id=manual_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "language": self.language,
            "network": {"enabled": self.network_enabled},
            "permissions": {"accessLevel": self.access_level.value},
            "profile": {
                "mode": self.profile_mode,
                "manualId": self.manual_profile_id,
            },
        }


@dataclass
class CerebroConfig:
    """Engine configuration: endpoints, defaults, and user settings."""

    ollama_url: str = "http://127.0.0.1:11434"
    default_local_model: str = "mistral"
    remote_url: str = "https://api.deepseek.com/chat/completions"
    default_remote_model: str = "deepseek-1.3"
    # Name of the env var holding the remote bearer token. Read lazily.
    api_key_env: str = "DEEPSEEK_API_KEY"
    probe_timeout_seconds: float = 1.2
    model_cache_ttl_seconds: float = 15.0
    orbit_root: str | None = None
    log_level: str = "INFO"
    settings: AssistantSettings = field(default_factory=AssistantSettings)

    @property
    def api_key(self) -> str | None:
        return os.environ.get(self.api_key_env) or None

    @property
    def remote_configured(self) -> bool:
        return self.api_key is not None

    def with_settings(self, settings: AssistantSettings) -> CerebroConfig:
        return replace(self, settings=settings)

    @classmethod
    def from_env(cls) -> CerebroConfig:
        """Load configuration from CEREBRO_* environment variables."""
        cerebro_vars = sorted(k for k in os.environ if k.startswith("CEREBRO_"))
        if cerebro_vars:
            logger.info(
                "CerebroConfig.from_env: CEREBRO_* env overrides: %s",
                ", ".join(cerebro_vars),
            )
        else:
            logger.debug("CerebroConfig.from_env: no CEREBRO_* env vars set, using defaults")

        settings = AssistantSettings.from_dict({
            "language": os.getenv("CEREBRO_LANGUAGE", "es"),
            "network_enabled": (
                os.getenv("CEREBRO_NETWORK_ENABLED", "").lower() in _TRUTHY
            ),
            "access_level": os.getenv("CEREBRO_ACCESS_LEVEL", "basic"),
            "profile": {
                "mode": os.getenv("CEREBRO_PROFILE_MODE", "auto"),
                "manualId": os.getenv("CEREBRO_PROFILE_ID", "balanced"),
            },
        })

        config = cls(
            ollama_url=os.getenv("CEREBRO_OLLAMA_URL", cls.ollama_url),
            default_local_model=os.getenv(
                "CEREBRO_LOCAL_MODEL", cls.default_local_model
            ),
            remote_url=os.getenv("CEREBRO_REMOTE_URL", cls.remote_url),
            default_remote_model=os.getenv(
                "CEREBRO_REMOTE_MODEL", cls.default_remote_model
            ),
            api_key_env=os.getenv("CEREBRO_API_KEY_ENV", cls.api_key_env),
            probe_timeout_seconds=float(os.getenv(
                "CEREBRO_PROBE_TIMEOUT", str(cls.probe_timeout_seconds)
            )),
            model_cache_ttl_seconds=float(os.getenv(
                "CEREBRO_MODEL_CACHE_TTL", str(cls.model_cache_ttl_seconds)
            )),
            orbit_root=os.getenv("CEREBRO_ORBIT_ROOT") or None,
            log_level=os.getenv("CEREBRO_LOG_LEVEL", cls.log_level),
            settings=settings,
        )
        logger.info(
            "CerebroConfig.from_env: ollama=%s local_model=%s remote_model=%s "
            "network=%s access_level=%s",
            config.ollama_url, config.default_local_model,
            config.default_remote_model, settings.network_enabled,
            settings.access_level.value,
        )
        return config
