"""Tests for the health probe and ProviderFactory runtime selection."""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiohttp import web
from aiohttp.test_utils import AioHTTPTestCase

from cerebro.engine.config import AssistantSettings, CerebroConfig
from cerebro.engine.detect import ping_local_engine, probe_local_engine
from cerebro.engine.models import ProbeResult, RuntimeStatus
from cerebro.engine.providers import (
    DeepSeekProvider,
    FallbackProvider,
    OllamaProvider,
    ProviderFactory,
)


class TestProbe(AioHTTPTestCase):
    async def get_application(self):
        self.version_status = 200

        async def version(request):
            return web.json_response({"version": "0.5.0"}, status=self.version_status)

        app = web.Application()
        app.router.add_get("/api/version", version)
        return app

    async def test_probe_ok_reports_latency(self):
        result = await probe_local_engine(str(self.server.make_url("/")))
        assert result.ok is True
        assert result.latency_ms is not None and result.latency_ms >= 0
        assert result.error is None

    async def test_probe_non_2xx_is_not_ok(self):
        self.version_status = 500
        result = await probe_local_engine(str(self.server.make_url("/")))
        assert result.ok is False
        assert result.error == "HTTP 500"


@pytest.mark.asyncio
async def test_probe_never_raises():
    session = MagicMock()
    session.get.side_effect = RuntimeError("socket exploded")
    result = await probe_local_engine("http://127.0.0.1:11434", session=session)
    assert result.ok is False
    assert "socket exploded" in result.error


@pytest.mark.asyncio
async def test_probe_timeout():
    session = MagicMock()
    session.get.side_effect = asyncio.TimeoutError()
    result = await probe_local_engine("http://127.0.0.1:11434", timeout=0.1, session=session)
    assert result.ok is False
    assert "timed out" in result.error


@pytest.mark.asyncio
async def test_ping_unreachable_is_false():
    assert await ping_local_engine("http://127.0.0.1:9", timeout=0.5) is False


def _config(network: bool = False) -> CerebroConfig:
    return CerebroConfig(
        api_key_env="CEREBRO_TEST_FACTORY_KEY",
        settings=AssistantSettings(network_enabled=network),
    )


@pytest.fixture
def no_key(monkeypatch):
    monkeypatch.delenv("CEREBRO_TEST_FACTORY_KEY", raising=False)
    return monkeypatch


def _probe(ok: bool):
    return AsyncMock(return_value=ProbeResult(ok=ok, latency_ms=3.0 if ok else None,
                                              error=None if ok else "refused"))


@pytest.mark.asyncio
async def test_factory_prefers_local(no_key):
    factory = ProviderFactory(_config())
    with patch("cerebro.engine.providers.factory.probe_local_engine", _probe(True)):
        provider = await factory.select()
    assert isinstance(provider, OllamaProvider)
    assert factory.status == RuntimeStatus.LOCAL


@pytest.mark.asyncio
async def test_factory_offline_without_network(no_key):
    no_key.setenv("CEREBRO_TEST_FACTORY_KEY", "sk-test")
    factory = ProviderFactory(_config(network=False))
    with patch("cerebro.engine.providers.factory.probe_local_engine", _probe(False)):
        provider = await factory.select()
    assert isinstance(provider, FallbackProvider)
    assert factory.status == RuntimeStatus.NONE


@pytest.mark.asyncio
async def test_factory_remote_needs_key(no_key):
    factory = ProviderFactory(_config(network=True))
    with patch("cerebro.engine.providers.factory.probe_local_engine", _probe(False)):
        assert isinstance(await factory.select(), FallbackProvider)
        no_key.setenv("CEREBRO_TEST_FACTORY_KEY", "sk-test")
        assert isinstance(await factory.select(), DeepSeekProvider)
    assert factory.status == RuntimeStatus.REMOTE


@pytest.mark.asyncio
async def test_factory_notifies_only_on_transitions(no_key):
    factory = ProviderFactory(_config())
    seen: list[RuntimeStatus] = []
    unsubscribe = factory.subscribe(seen.append)

    with patch("cerebro.engine.providers.factory.probe_local_engine", _probe(True)):
        await factory.select()
        await factory.select()
    with patch("cerebro.engine.providers.factory.probe_local_engine", _probe(False)):
        await factory.select()

    assert seen == [RuntimeStatus.LOCAL, RuntimeStatus.NONE]
    unsubscribe()
    with patch("cerebro.engine.providers.factory.probe_local_engine", _probe(True)):
        await factory.select()
    assert seen == [RuntimeStatus.LOCAL, RuntimeStatus.NONE]


@pytest.mark.asyncio
async def test_factory_reuses_local_provider(no_key):
    factory = ProviderFactory(_config())
    with patch("cerebro.engine.providers.factory.probe_local_engine", _probe(True)):
        first = await factory.select()
        second = await factory.select()
    assert first is second


@pytest.mark.asyncio
async def test_set_network_enabled_reselects(no_key):
    no_key.setenv("CEREBRO_TEST_FACTORY_KEY", "sk-test")
    factory = ProviderFactory(_config(network=False))
    with patch("cerebro.engine.providers.factory.probe_local_engine", _probe(False)):
        await factory.select()
        assert factory.status == RuntimeStatus.NONE
        provider = await factory.set_network_enabled(True)
    assert isinstance(provider, DeepSeekProvider)
    assert factory.config.settings.network_enabled is True


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_selection(no_key):
    factory = ProviderFactory(_config())
    factory.subscribe(MagicMock(side_effect=RuntimeError("ui gone")))
    with patch("cerebro.engine.providers.factory.probe_local_engine", _probe(True)):
        await factory.select()
    assert factory.status == RuntimeStatus.LOCAL
