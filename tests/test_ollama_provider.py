"""Tests for OllamaProvider against a fake Ollama HTTP server."""
from __future__ import annotations

import asyncio
import json

import pytest
from aiohttp import web
from aiohttp.test_utils import AioHTTPTestCase

from cerebro.engine.errors import (
    EmptyResponseError,
    InvalidRequestError,
    ModelMissingError,
    ProviderHTTPError,
    ServiceUnreachableError,
    StreamError,
)
from cerebro.engine.models import AbortReason, CompletionOutcome, CompletionRequest
from cerebro.engine.cancellation import AbortController
from cerebro.engine.providers.ollama_provider import OllamaProvider, tuned_options
from cerebro.engine.profiles import ProfileRegistry


def _ndjson(*objects) -> bytes:
    return b"".join(json.dumps(o).encode("utf-8") + b"\n" for o in objects)


class TestOllamaProvider(AioHTTPTestCase):
    """Streams, model fallback and cancellation against a fake engine."""

    async def get_application(self):
        self.installed = ["mistral:latest", "llama3.2:3b"]
        self.chunks: list[bytes] = []
        self.hold: asyncio.Event | None = None
        self.generate_status = 200
        self.generate_calls: list[dict] = []
        self.tags_calls = 0

        async def tags(request):
            self.tags_calls += 1
            return web.json_response({"models": [{"name": n} for n in self.installed]})

        async def version(request):
            return web.json_response({"version": "0.5.0"})

        async def generate(request):
            self.generate_calls.append(await request.json())
            if self.generate_status != 200:
                return web.json_response({"error": "model is loading"}, status=self.generate_status)
            response = web.StreamResponse()
            response.content_type = "application/x-ndjson"
            await response.prepare(request)
            for index, chunk in enumerate(self.chunks):
                await response.write(chunk)
                if index == 0 and self.hold is not None:
                    await self.hold.wait()
            await response.write_eof()
            return response

        app = web.Application()
        app.router.add_get("/api/tags", tags)
        app.router.add_get("/api/version", version)
        app.router.add_post("/api/generate", generate)
        return app

    def _provider(self, **kwargs) -> OllamaProvider:
        return OllamaProvider(base_url=str(self.server.make_url("/")), **kwargs)

    async def test_streams_tokens_split_across_chunks(self):
        body = _ndjson(
            {"response": "Hola", "done": False},
            {"response": " mundo ñ", "done": False},
            {"response": "", "done": True},
        )
        # Split mid-object and inside the multi-byte "ñ".
        cut = body.index("ñ".encode("utf-8")) + 1
        self.chunks = [body[:7], body[7:cut], body[cut:]]
        tokens: list[str] = []
        provider = self._provider()

        result = await provider.complete(
            CompletionRequest(prompt="hi", profile_id="balanced", on_token=tokens.append)
        )

        assert result.outcome == CompletionOutcome.COMPLETED
        assert result.text == "Hola mundo ñ"
        assert tokens == ["Hola", " mundo ñ"]
        assert result.model == "mistral"

    async def test_payload_carries_system_and_profile_options(self):
        self.chunks = [_ndjson({"response": "ok", "done": True})]
        provider = self._provider()
        await provider.complete(CompletionRequest(
            prompt="hi", system="Sé breve", profile_id="balanced", temperature=0.2,
        ))
        payload = self.generate_calls[0]
        assert payload["stream"] is True
        assert payload["system"] == "Sé breve"
        assert payload["options"]["temperature"] == 0.2
        assert payload["options"]["num_predict"] == 768
        assert payload["options"]["num_ctx"] == 4096
        assert payload["options"]["top_p"] == 0.9

    async def test_falls_back_to_installed_model(self):
        self.installed = ["llama3.2:3b"]
        self.chunks = [_ndjson({"response": "ok", "done": True})]
        provider = self._provider()
        result = await provider.complete(CompletionRequest(prompt="hi", profile_id="balanced"))
        assert result.model == "llama3.2:3b"
        assert self.generate_calls[0]["model"] == "llama3.2:3b"

    async def test_missing_model_lists_candidates(self):
        self.installed = ["phi3"]
        provider = self._provider()
        handle = provider.complete(CompletionRequest(prompt="hi", profile_id="fast"))
        try:
            await handle
        except ModelMissingError as exc:
            assert exc.model == "llama3.2:3b"
            assert exc.candidates[:3] == ["llama3.2:3b", "qwen2.5:3b-instruct", "mistral"]
            assert "ollama pull llama3.2:3b" in str(exc)
        else:
            raise AssertionError("expected ModelMissingError")
        assert self.generate_calls == []

    async def test_installed_models_are_cached(self):
        self.chunks = [_ndjson({"response": "ok", "done": True})]
        provider = self._provider()
        await provider.complete(CompletionRequest(prompt="a"))
        await provider.complete(CompletionRequest(prompt="b"))
        assert self.tags_calls == 1
        assert provider.last_known_models == ["mistral:latest", "llama3.2:3b"]

    async def test_error_line_raises_stream_error(self):
        self.chunks = [_ndjson({"response": "par", "done": False}, {"error": "out of memory"})]
        provider = self._provider()
        try:
            await provider.complete(CompletionRequest(prompt="hi"))
        except StreamError as exc:
            assert "out of memory" in str(exc)
        else:
            raise AssertionError("expected StreamError")

    async def test_unparseable_line_is_skipped(self):
        self.chunks = [b"{not json}\n" + _ndjson({"response": "ok", "done": True})]
        provider = self._provider()
        result = await provider.complete(CompletionRequest(prompt="hi"))
        assert result.text == "ok"

    async def test_unterminated_final_line_is_processed(self):
        self.chunks = [json.dumps({"response": "tail", "done": True}).encode("utf-8")]
        provider = self._provider()
        result = await provider.complete(CompletionRequest(prompt="hi"))
        assert result.text == "tail"

    async def test_empty_body_raises(self):
        self.chunks = []
        provider = self._provider()
        try:
            await provider.complete(CompletionRequest(prompt="hi"))
        except EmptyResponseError:
            pass
        else:
            raise AssertionError("expected EmptyResponseError")

    async def test_non_2xx_carries_detail(self):
        self.generate_status = 503
        provider = self._provider()
        try:
            await provider.complete(CompletionRequest(prompt="hi"))
        except ProviderHTTPError as exc:
            assert exc.status == 503
            assert "model is loading" in str(exc)
        else:
            raise AssertionError("expected ProviderHTTPError")

    async def test_empty_prompt_rejected(self):
        provider = self._provider()
        try:
            await provider.complete(CompletionRequest(prompt="   "))
        except InvalidRequestError:
            pass
        else:
            raise AssertionError("expected InvalidRequestError")

    async def test_user_abort_mid_stream(self):
        self.hold = asyncio.Event()
        self.chunks = [
            _ndjson({"response": "uno", "done": False}),
            _ndjson({"response": "dos", "done": True}),
        ]
        tokens: list[str] = []
        first = asyncio.Event()

        def on_token(token: str) -> None:
            tokens.append(token)
            first.set()

        signal = AbortController()
        provider = self._provider()
        handle = provider.complete(CompletionRequest(prompt="hi", on_token=on_token, signal=signal))
        await asyncio.wait_for(first.wait(), 5)
        signal.abort()
        result = await handle
        self.hold.set()

        assert result.outcome == CompletionOutcome.CANCELLED
        assert result.cancel_reason == AbortReason.USER
        assert tokens == ["uno"]

    async def test_timeout_cancels_with_timeout_reason(self):
        self.hold = asyncio.Event()
        self.chunks = [
            _ndjson({"response": "uno", "done": False}),
            _ndjson({"response": "dos", "done": True}),
        ]
        provider = self._provider(timeouts={"fast": 0.05})
        result = await provider.complete(CompletionRequest(prompt="hi", profile_id="fast"))
        self.hold.set()

        assert result.cancelled
        assert result.cancel_reason == AbortReason.TIMEOUT
        assert result.model == "llama3.2:3b"


@pytest.mark.asyncio
async def test_unreachable_engine_raises():
    provider = OllamaProvider(base_url="http://127.0.0.1:9")
    handle = provider.complete(CompletionRequest(prompt="hi"))
    try:
        await handle
    except ServiceUnreachableError as exc:
        assert "Ollama" in str(exc)
    else:
        raise AssertionError("expected ServiceUnreachableError")


def test_tuned_options_prefers_request_overrides():
    profile = ProfileRegistry().get("fast")
    options = tuned_options("llama3.2:3b", profile, temperature=0.1, max_output_tokens=50)
    assert options["temperature"] == 0.1
    assert options["num_predict"] == 50
    assert options["num_ctx"] == 2048
    assert options["top_p"] == 0.92


def test_tuned_options_model_heuristics_without_profile():
    options = tuned_options("qwen2.5:3b-instruct")
    assert options["num_ctx"] == 4096
    assert options["temperature"] == 0.6


def test_tuned_options_none_for_unknown_model():
    assert tuned_options("some-model") is None
