"""Local Ollama provider streaming line-delimited JSON.

Flow per completion:
  1. Resolve an installed model (requested → profile fallbacks →
     profile's configured models) against a cached /api/tags inventory.
  2. Build sampling options: profile tuning, then profile reasoning
     defaults, then per-request overrides.
  3. POST /api/generate with stream=true under a profile timeout and
     feed each decoded ``response`` fragment to ``on_token``.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from ..detect import DEFAULT_OLLAMA_URL, normalize_base_url
from ..errors import (
    EmptyResponseError,
    InvalidRequestError,
    ModelMissingError,
    ProviderError,
    ProviderHTTPError,
    ServiceUnreachableError,
    StreamError,
)
from ..model_cache import InstalledModelCache, InstalledModels, model_key
from ..models import AbortReason, CompletionRequest, ModelRuntime, ReasoningProfile
from ..profiles import ProfileRegistry
from .base import CompletionHandle, StreamingProvider
from .streaming import iter_lines

logger = logging.getLogger(__name__)

SERVICE = "Ollama"
GENERATE_ENDPOINT = "/api/generate"
TAGS_ENDPOINT = "/api/tags"

DISCOVERY_TIMEOUT_SECONDS = 10.0
DEFAULT_COMPLETION_TIMEOUT_SECONDS = 45.0

PROFILE_TIMEOUTS_SECONDS: dict[str, float] = {
    "fast": 8.0,
    "balanced": 20.0,
    "thoughtful": 60.0,
    "thoughtfulLocal": 60.0,
}

PROFILE_EXTRA_TUNING: dict[str, dict[str, Any]] = {
    "fast": {"top_p": 0.92, "repeat_penalty": 1.08, "repeat_last_n": 64},
    "balanced": {"top_p": 0.9, "repeat_penalty": 1.05, "repeat_last_n": 96},
    "thoughtful": {"top_p": 0.88, "repeat_penalty": 1.04, "repeat_last_n": 160},
    "thoughtfulLocal": {"top_p": 0.88, "repeat_penalty": 1.04, "repeat_last_n": 160},
}

PROFILE_MODEL_FALLBACKS: dict[str, list[str]] = {
    "fast": ["llama3.2:3b", "qwen2.5:3b-instruct", "mistral"],
    "balanced": ["mistral", "qwen2.5:3b-instruct", "llama3.2:3b"],
    "thoughtfulLocal": ["mistral", "qwen2.5:3b-instruct", "llama3.2:3b"],
}

# Used when the request has no profile with reasoning defaults.
# Keyed on model name prefix: (tuning, temperature, num_predict, num_ctx).
MODEL_HEURISTICS: dict[str, tuple[dict[str, Any], float, int, int]] = {
    "llama3.2:3b": ({"top_p": 0.9, "repeat_penalty": 1.08, "repeat_last_n": 64}, 0.7, 320, 2048),
    "qwen2.5:3b": ({"top_p": 0.9, "repeat_penalty": 1.05, "repeat_last_n": 96}, 0.6, 512, 4096),
}


def tuned_options(
    model: str,
    profile: ReasoningProfile | None = None,
    temperature: float | None = None,
    max_output_tokens: int | None = None,
    context_tokens: int | None = None,
) -> dict[str, Any] | None:
    """Sampling options for a generate call, or None when there are none.

    Precedence, lowest first: profile tuning hints, profile reasoning
    defaults (or model heuristics), explicit request overrides.
    """
    options: dict[str, Any] = {}
    default_temperature: float | None = None
    default_predict: int | None = None
    default_ctx: int | None = None

    if profile is not None and profile.reasoning is not None:
        options.update(PROFILE_EXTRA_TUNING.get(profile.profile_id, {}))
        default_temperature = profile.reasoning.temperature
        default_predict = profile.reasoning.max_output_tokens
        default_ctx = profile.reasoning.context_tokens
    else:
        normalized = model.strip().lower()
        for prefix, (tuning, temp, predict, ctx) in MODEL_HEURISTICS.items():
            if normalized.startswith(prefix):
                options.update(tuning)
                default_temperature, default_predict, default_ctx = temp, predict, ctx
                break

    values = {
        "temperature": temperature if temperature is not None else default_temperature,
        "num_predict": max_output_tokens if max_output_tokens is not None else default_predict,
        "num_ctx": context_tokens if context_tokens is not None else default_ctx,
    }
    options.update({k: v for k, v in values.items() if v is not None})
    return options or None


async def _error_detail(response: aiohttp.ClientResponse) -> str | None:
    """Server-provided error text: JSON ``error`` field, else raw body."""
    try:
        text = await response.text()
    except aiohttp.ClientError:
        return None
    try:
        data = json.loads(text)
    except ValueError:
        return text or None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return text or None


class OllamaProvider(StreamingProvider):
    """Streaming provider backed by a local Ollama server."""

    def __init__(
        self,
        default_model: str = "mistral",
        base_url: str = DEFAULT_OLLAMA_URL,
        profiles: ProfileRegistry | None = None,
        cache_ttl_seconds: float = 15.0,
        timeouts: dict[str, float] | None = None,
        default_timeout: float = DEFAULT_COMPLETION_TIMEOUT_SECONDS,
    ) -> None:
        default_model = (default_model or "").strip()
        if not default_model:
            raise InvalidRequestError(
                "Ollama provider: default_model is required and cannot be empty."
            )
        self._default_model = default_model
        self._base_url = normalize_base_url(base_url)
        self._profiles = profiles or ProfileRegistry()
        self._cache = InstalledModelCache(ttl_seconds=cache_ttl_seconds)
        self._timeouts = dict(PROFILE_TIMEOUTS_SECONDS)
        if timeouts:
            self._timeouts.update(timeouts)
        self._default_timeout = default_timeout

    @property
    def name(self) -> str:
        return "ollama"

    @property
    def last_known_models(self) -> list[str]:
        return self._cache.last_known

    @property
    def model_cache(self) -> InstalledModelCache:
        return self._cache

    def timeout_for(self, profile_id: str | None) -> float:
        if profile_id is None:
            return self._default_timeout
        return self._timeouts.get(profile_id, self._default_timeout)

    def initial_model(self, request: CompletionRequest) -> str | None:
        return self._desired_model(request)

    # ── Discovery ────────────────────────────────────────────────────

    async def installed_models(self) -> InstalledModels:
        return await self._cache.get(self._fetch_installed_models)

    async def _fetch_installed_models(self) -> InstalledModels:
        url = f"{self._base_url}{TAGS_ENDPOINT}"
        timeout = aiohttp.ClientTimeout(total=DISCOVERY_TIMEOUT_SECONDS)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if response.status >= 300:
                        raise ProviderHTTPError(
                            SERVICE, response.status, response.reason,
                            await _error_detail(response),
                            action="listing installed models",
                        )
                    try:
                        data = await response.json(content_type=None)
                    except ValueError as exc:
                        raise ProviderError(
                            "Ollama returned an invalid response while "
                            f"listing installed models: {exc}"
                        ) from exc
        except aiohttp.ClientConnectionError as exc:
            raise ServiceUnreachableError(SERVICE, str(exc)) from exc
        except asyncio.TimeoutError as exc:
            raise ServiceUnreachableError(
                SERVICE, f"model discovery timed out after {DISCOVERY_TIMEOUT_SECONDS}s"
            ) from exc

        names: list[str] = []
        entries = data.get("models") if isinstance(data, dict) else None
        for entry in entries if isinstance(entries, list) else []:
            if not isinstance(entry, dict):
                continue
            for key in ("name", "model"):
                value = entry.get(key)
                if isinstance(value, str):
                    names.append(value)
        info = InstalledModels.from_names(names)
        logger.debug("Ollama reports %d installed models", len(info.raw))
        return info

    # ── Model resolution ─────────────────────────────────────────────

    def _desired_model(self, request: CompletionRequest) -> str:
        if request.model and request.model.strip():
            return request.model.strip()
        profile = self._profiles.get(request.profile_id)
        if profile is not None and profile.runtime == ModelRuntime.LOCAL:
            return profile.model
        return self._default_model

    def candidate_models(self, desired: str, profile_id: str | None) -> list[str]:
        """Ordered, de-duplicated candidates, most preferred first."""
        candidates = [desired]
        if profile_id:
            candidates.extend(PROFILE_MODEL_FALLBACKS.get(profile_id, []))
            profile = self._profiles.get(profile_id)
            if profile is not None and profile.runtime == ModelRuntime.LOCAL:
                candidates.extend(profile.configured_models)

        ordered: list[str] = []
        seen: set[str] = set()
        for raw in candidates:
            candidate = raw.strip()
            if not candidate or model_key(candidate) in seen:
                continue
            seen.add(model_key(candidate))
            ordered.append(candidate)
        return ordered

    async def resolve_model(self, desired: str, profile_id: str | None) -> str:
        installed = await self.installed_models()
        candidates = self.candidate_models(desired, profile_id)
        for candidate in candidates:
            if installed.has(candidate):
                if model_key(candidate) != model_key(desired):
                    logger.warning(
                        "Model fallback: requested=%s selected=%s profile=%s",
                        desired, candidate, profile_id,
                    )
                return candidate
        raise ModelMissingError(desired, candidates)

    # ── Generation ───────────────────────────────────────────────────

    async def _run(self, request: CompletionRequest, handle: CompletionHandle) -> str:
        if not request.prompt.strip():
            raise InvalidRequestError(
                "Ollama provider: the prompt is empty. Provide a user message."
            )

        desired = self._desired_model(request)
        selected = await self.resolve_model(desired, request.profile_id)
        handle.model = selected

        timeout = self.timeout_for(request.profile_id)
        timer = asyncio.get_running_loop().call_later(
            timeout, handle.controller.abort, AbortReason.TIMEOUT,
        )
        try:
            return await self._generate(request, handle, selected)
        finally:
            timer.cancel()

    def build_payload(self, request: CompletionRequest, model: str) -> dict[str, Any]:
        profile = self._profiles.get(request.profile_id)
        payload: dict[str, Any] = {
            "model": model,
            "prompt": request.prompt,
            "stream": True,
        }
        system = (request.system or "").strip()
        if system:
            payload["system"] = system
        options = tuned_options(
            model,
            profile,
            temperature=request.temperature,
            max_output_tokens=request.max_output_tokens,
            context_tokens=request.context_tokens,
        )
        if options:
            payload["options"] = options
        return payload

    async def _generate(
        self,
        request: CompletionRequest,
        handle: CompletionHandle,
        model: str,
    ) -> str:
        payload = self.build_payload(request, model)
        logger.debug("Ollama generate: model=%s options=%s", model, payload.get("options"))
        url = f"{self._base_url}{GENERATE_ENDPOINT}"

        parts: list[str] = []
        received_any = False
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, json=payload) as response:
                    if response.status >= 300:
                        raise ProviderHTTPError(
                            SERVICE, response.status, response.reason,
                            await _error_detail(response),
                        )
                    async for line in iter_lines(response.content.iter_any()):
                        received_any = True
                        if self._process_line(line, request, handle, parts):
                            break
        except aiohttp.ClientConnectionError as exc:
            raise ServiceUnreachableError(SERVICE, str(exc)) from exc
        except aiohttp.ClientPayloadError as exc:
            raise ProviderError(f"Ollama stream was interrupted: {exc}") from exc

        if not received_any:
            raise EmptyResponseError("Ollama returned an empty response while generating text.")
        return "".join(parts)

    def _process_line(
        self,
        line: str,
        request: CompletionRequest,
        handle: CompletionHandle,
        parts: list[str],
    ) -> bool:
        """Handle one NDJSON object. Returns True once the engine reports done."""
        try:
            chunk = json.loads(line)
        except ValueError as exc:
            logger.warning("Could not parse Ollama chunk %r: %s", line, exc)
            return False
        if not isinstance(chunk, dict):
            logger.warning("Ignoring non-object Ollama chunk %r", line)
            return False

        if chunk.get("error"):
            raise StreamError(SERVICE, str(chunk["error"]))

        piece = chunk.get("response")
        if isinstance(piece, str) and piece:
            parts.append(piece)
            self.emit(request, handle, piece)
        return bool(chunk.get("done"))
