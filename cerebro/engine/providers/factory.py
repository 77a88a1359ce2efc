"""Provider factory — picks the best available backend.

local (Ollama answers its health probe) → remote (network enabled and
an API key configured) → none (offline fallback). Subscribers are
notified whenever the runtime status changes.
"""
from __future__ import annotations

import logging
from collections.abc import Callable

from ..config import CerebroConfig
from ..detect import probe_local_engine
from ..models import ProbeResult, RuntimeStatus
from ..profiles import ProfileRegistry
from .base import StreamingProvider
from .deepseek_provider import DeepSeekProvider
from .fallback_provider import FallbackProvider
from .ollama_provider import OllamaProvider

logger = logging.getLogger(__name__)

StatusListener = Callable[[RuntimeStatus], None]


class ProviderFactory:
    """Composes runtime detection and config into an active provider."""

    def __init__(
        self,
        config: CerebroConfig | None = None,
        profiles: ProfileRegistry | None = None,
    ) -> None:
        self._config = config or CerebroConfig.from_env()
        self._profiles = profiles or ProfileRegistry()
        self._status = RuntimeStatus.NONE
        self._provider: StreamingProvider | None = None
        self._last_probe: ProbeResult | None = None
        self._listeners: list[StatusListener] = []

    @property
    def status(self) -> RuntimeStatus:
        """Last known runtime status."""
        return self._status

    @property
    def provider(self) -> StreamingProvider | None:
        return self._provider

    @property
    def last_probe(self) -> ProbeResult | None:
        return self._last_probe

    @property
    def config(self) -> CerebroConfig:
        return self._config

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a status listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_status(self, status: RuntimeStatus) -> None:
        previous, self._status = self._status, status
        if previous == status:
            return
        logger.info("Runtime status: %s -> %s", previous.value, status.value)
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Runtime status listener failed")

    def _local_provider(self) -> OllamaProvider:
        # Reuse the local provider so its model cache survives re-evaluation.
        if isinstance(self._provider, OllamaProvider):
            return self._provider
        return OllamaProvider(
            default_model=self._config.default_local_model,
            base_url=self._config.ollama_url,
            profiles=self._profiles,
            cache_ttl_seconds=self._config.model_cache_ttl_seconds,
        )

    async def select(self) -> StreamingProvider:
        """Probe the local engine and return the provider to use."""
        probe = await probe_local_engine(
            self._config.ollama_url,
            timeout=self._config.probe_timeout_seconds,
        )
        self._last_probe = probe

        provider: StreamingProvider
        if probe.ok:
            provider = self._local_provider()
            status = RuntimeStatus.LOCAL
        else:
            logger.warning("Local Ollama not reachable: %s", probe.error)
            if self._config.settings.network_enabled and self._config.remote_configured:
                provider = DeepSeekProvider(
                    api_url=self._config.remote_url,
                    api_key_env=self._config.api_key_env,
                    default_model=self._config.default_remote_model,
                    profiles=self._profiles,
                )
                status = RuntimeStatus.REMOTE
            else:
                provider = FallbackProvider()
                status = RuntimeStatus.NONE

        self._provider = provider
        self._set_status(status)
        logger.info("Selected provider: %s", provider.name)
        return provider

    async def set_network_enabled(self, enabled: bool) -> StreamingProvider:
        """Update the network toggle and re-evaluate the provider."""
        settings = self._config.settings
        if settings.network_enabled != enabled:
            settings.network_enabled = enabled
            logger.info("Network access %s", "enabled" if enabled else "disabled")
        return await self.select()

    async def shutdown(self) -> None:
        if self._provider is not None:
            await self._provider.shutdown()
