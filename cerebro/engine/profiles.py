"""Reasoning profile registry.

Ships the four built-in profiles (fast, balanced, thoughtful,
thoughtfulLocal). YAML overrides are applied through
ProfileRegistry.with_overrides().
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from .errors import ConfigurationError, ProfileNotFoundError
from .models import (
    CapabilityMethod,
    CapabilityRule,
    ModelRuntime,
    ReasoningConfig,
    ReasoningProfile,
    RuntimeStatus,
    ServerId,
)

logger = logging.getLogger(__name__)

FAST = "fast"
BALANCED = "balanced"
THOUGHTFUL = "thoughtful"
THOUGHTFUL_LOCAL = "thoughtfulLocal"

# Least to most capable.
LEAST_CAPABLE = FAST
MID_CAPABLE = BALANCED
MOST_CAPABLE = THOUGHTFUL


def rule(server_id: ServerId, *methods: CapabilityMethod) -> CapabilityRule:
    return CapabilityRule(server_id=server_id, methods=tuple(methods))


_M = CapabilityMethod

_THOUGHTFUL_RULES: tuple[CapabilityRule, ...] = (
    rule(ServerId.FILES, _M.LIST, _M.READ, _M.WRITE, _M.INFO),
    rule(ServerId.GIT, _M.EXEC, _M.INFO),
    rule(ServerId.SHELL, _M.EXEC, _M.INFO),
    rule(ServerId.SYSTEM, _M.INFO),
    rule(ServerId.WINDOW, _M.EXEC, _M.INFO),
)

_PROMPT_FAST = {
    "es": (
        "Sos un asistente rápido. Respondé en pocas frases, "
        "directo al punto y sin rodeos."
    ),
    "en": (
        "You are a quick assistant. Answer in a few sentences, "
        "straight to the point."
    ),
}

_PROMPT_BALANCED = {
    "es": (
        "Sos un asistente equilibrado. Explicá con claridad, "
        "usá ejemplos cuando ayuden y pedí aclaraciones si falta contexto."
    ),
    "en": (
        "You are a balanced assistant. Explain clearly, use examples "
        "when they help, and ask for clarification when context is missing."
    ),
}

_PROMPT_THOUGHTFUL = {
    "es": (
        "Sos un asistente reflexivo. Analizá el problema paso a paso, "
        "considerá alternativas y riesgos, y proponé un plan concreto "
        "antes de responder."
    ),
    "en": (
        "You are a thoughtful assistant. Work through the problem step by "
        "step, weigh alternatives and risks, and propose a concrete plan "
        "before answering."
    ),
}

BUILTIN_PROFILES: tuple[ReasoningProfile, ...] = (
    ReasoningProfile(
        profile_id=FAST,
        runtime=ModelRuntime.LOCAL,
        model="llama3.2:3b",
        label="Fast",
        reasoning=ReasoningConfig(
            context_tokens=2048,
            max_output_tokens=320,
            temperature=0.7,
            max_history_messages=6,
            depth="shallow",
        ),
        system_prompts=_PROMPT_FAST,
        base_rules=(),
    ),
    ReasoningProfile(
        profile_id=BALANCED,
        runtime=ModelRuntime.LOCAL,
        model="qwen2.5:3b-instruct",
        label="Balanced",
        reasoning=ReasoningConfig(
            context_tokens=4096,
            max_output_tokens=768,
            temperature=0.6,
            max_history_messages=12,
            depth="standard",
        ),
        system_prompts=_PROMPT_BALANCED,
        base_rules=(rule(ServerId.FILES, _M.LIST, _M.READ, _M.INFO),),
    ),
    ReasoningProfile(
        profile_id=THOUGHTFUL,
        runtime=ModelRuntime.REMOTE,
        model="deepseek-6.7",
        label="Thoughtful",
        reasoning=ReasoningConfig(
            context_tokens=8192,
            max_output_tokens=2048,
            temperature=0.4,
            max_history_messages=24,
            depth="deep",
        ),
        system_prompts=_PROMPT_THOUGHTFUL,
        base_rules=_THOUGHTFUL_RULES,
        alternate_models=("deepseek-1.3",),
        local_variant=THOUGHTFUL_LOCAL,
    ),
    ReasoningProfile(
        profile_id=THOUGHTFUL_LOCAL,
        runtime=ModelRuntime.LOCAL,
        model="mistral",
        label="Thoughtful (local)",
        reasoning=ReasoningConfig(
            context_tokens=8192,
            max_output_tokens=1536,
            temperature=0.4,
            max_history_messages=24,
            depth="deep",
        ),
        system_prompts=_PROMPT_THOUGHTFUL,
        base_rules=_THOUGHTFUL_RULES,
    ),
)


class ProfileRegistry:
    """Lookup of reasoning profiles by id, in registration order."""

    def __init__(self, profiles: list[ReasoningProfile] | tuple[ReasoningProfile, ...] = BUILTIN_PROFILES) -> None:
        self._profiles: dict[str, ReasoningProfile] = {}
        for profile in profiles:
            self._profiles[profile.profile_id] = profile

    def get(self, profile_id: str | None) -> ReasoningProfile | None:
        if profile_id is None:
            return None
        return self._profiles.get(profile_id)

    def get_or_raise(self, profile_id: str) -> ReasoningProfile:
        profile = self._profiles.get(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id, self.list_ids())
        return profile

    def list_ids(self) -> list[str]:
        return list(self._profiles.keys())

    def list_profiles(self) -> list[ReasoningProfile]:
        return list(self._profiles.values())

    def by_runtime(self, runtime: ModelRuntime) -> list[ReasoningProfile]:
        return [p for p in self._profiles.values() if p.runtime == runtime]

    def __contains__(self, profile_id: object) -> bool:
        return profile_id in self._profiles

    def resolve_for_runtime(self, profile_id: str, status: RuntimeStatus) -> str:
        """Map a profile to its local variant when running locally."""
        profile = self._profiles.get(profile_id)
        if (
            profile is not None
            and status == RuntimeStatus.LOCAL
            and profile.runtime == ModelRuntime.REMOTE
            and profile.local_variant in self._profiles
        ):
            return profile.local_variant
        return profile_id

    def with_overrides(self, raw: dict[str, dict[str, Any]]) -> ProfileRegistry:
        """Return a new registry with YAML profile sections applied.

        Existing profiles are updated field by field. Unknown ids define
        new profiles and must provide at least ``runtime`` and ``model``.
        """
        profiles = dict(self._profiles)
        for profile_id, data in (raw or {}).items():
            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"Profile '{profile_id}' must be a mapping"
                )
            current = profiles.get(profile_id)
            profiles[profile_id] = _apply_profile_data(profile_id, current, data)
            logger.info(
                "Profile %s %s from config",
                profile_id, "updated" if current else "added",
            )
        return ProfileRegistry(list(profiles.values()))


def _apply_profile_data(
    profile_id: str,
    current: ReasoningProfile | None,
    data: dict[str, Any],
) -> ReasoningProfile:
    if current is None:
        if "runtime" not in data or "model" not in data:
            raise ConfigurationError(
                f"New profile '{profile_id}' needs 'runtime' and 'model'"
            )
        current = ReasoningProfile(
            profile_id=profile_id,
            runtime=ModelRuntime(data["runtime"]),
            model=str(data["model"]),
            label=str(data.get("label", profile_id)),
        )

    changes: dict[str, Any] = {}
    try:
        if "runtime" in data:
            changes["runtime"] = ModelRuntime(data["runtime"])
        if "model" in data:
            changes["model"] = str(data["model"])
        if "label" in data:
            changes["label"] = str(data["label"])
        if "alternate_models" in data:
            changes["alternate_models"] = tuple(str(m) for m in data["alternate_models"])
        if "local_variant" in data:
            changes["local_variant"] = data["local_variant"] or None
        if "system_prompts" in data:
            changes["system_prompts"] = {
                str(k): str(v) for k, v in data["system_prompts"].items()
            }
        if "reasoning" in data:
            changes["reasoning"] = _parse_reasoning(current.reasoning, data["reasoning"])
        if "rules" in data:
            changes["base_rules"] = tuple(
                CapabilityRule(
                    server_id=ServerId(server),
                    methods=tuple(CapabilityMethod(m) for m in methods),
                )
                for server, methods in data["rules"].items()
            )
    except (ValueError, TypeError, AttributeError) as exc:
        raise ConfigurationError(f"Invalid profile '{profile_id}': {exc}") from exc

    return replace(current, **changes)


def _parse_reasoning(
    current: ReasoningConfig | None,
    data: dict[str, Any] | None,
) -> ReasoningConfig | None:
    if data is None:
        return None
    base = current or ReasoningConfig(
        context_tokens=4096, max_output_tokens=512, temperature=0.7,
    )
    return ReasoningConfig(
        context_tokens=int(data.get("context_tokens", base.context_tokens)),
        max_output_tokens=int(data.get("max_output_tokens", base.max_output_tokens)),
        temperature=float(data.get("temperature", base.temperature)),
        max_history_messages=data.get("max_history_messages", base.max_history_messages),
        depth=data.get("depth", base.depth),
    )
