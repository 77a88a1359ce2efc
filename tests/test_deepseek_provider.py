"""Tests for DeepSeekProvider against a fake chat completions endpoint."""
from __future__ import annotations

import asyncio
import json

import pytest
from aiohttp import web
from aiohttp.test_utils import AioHTTPTestCase

from cerebro.engine.cancellation import AbortController
from cerebro.engine.errors import (
    MissingCredentialError,
    ProviderHTTPError,
    ServiceUnreachableError,
)
from cerebro.engine.models import (
    AbortReason,
    CompletionOutcome,
    CompletionRequest,
    ProviderMessage,
)
from cerebro.engine.providers.deepseek_provider import (
    DeepSeekProvider,
    error_message_from_body,
    extract_token,
    to_api_model,
)

KEY_ENV = "CEREBRO_TEST_DEEPSEEK_KEY"


def _sse(*payloads) -> bytes:
    out = b""
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        out += f"data: {data}\n\n".encode("utf-8")
    return out


def _delta(text: str) -> dict:
    return {"choices": [{"delta": {"content": text}}]}


class TestDeepSeekProvider(AioHTTPTestCase):
    """SSE and JSON responses from a fake remote API."""

    async def get_application(self):
        self.mode = "sse"
        self.chunks: list[bytes] = []
        self.requests: list[dict] = []
        self.auth: list[str | None] = []
        self.hold: asyncio.Event | None = None

        async def completions(request):
            self.auth.append(request.headers.get("Authorization"))
            self.requests.append(await request.json())
            if self.mode == "error":
                return web.json_response(
                    {"error": {"message": "Insufficient Balance"}}, status=402,
                )
            if self.mode == "json":
                return web.json_response({"choices": [{"message": {"content": "completo"}}]})
            response = web.StreamResponse()
            response.content_type = "text/plain" if self.mode == "sse-plain" else "text/event-stream"
            await response.prepare(request)
            for index, chunk in enumerate(self.chunks):
                await response.write(chunk)
                if index == 0 and self.hold is not None:
                    await self.hold.wait()
            await response.write_eof()
            return response

        app = web.Application()
        app.router.add_post("/chat/completions", completions)
        return app

    def _provider(self) -> DeepSeekProvider:
        return DeepSeekProvider(
            api_url=str(self.server.make_url("/chat/completions")),
            api_key_env=KEY_ENV,
        )

    def setUp(self):
        super().setUp()
        self._monkeypatch = pytest.MonkeyPatch()
        self._monkeypatch.setenv(KEY_ENV, "sk-test")

    def tearDown(self):
        self._monkeypatch.undo()
        super().tearDown()

    async def test_streams_sse_until_done(self):
        body = _sse(_delta("Hola"), _delta(" mundo"), "[DONE]", _delta("ignored"))
        self.chunks = [body[:10], body[10:33], body[33:]]
        tokens: list[str] = []
        result = await self._provider().complete(
            CompletionRequest(prompt="hi", profile_id="thoughtful", on_token=tokens.append)
        )
        assert result.outcome == CompletionOutcome.COMPLETED
        assert result.text == "Hola mundo"
        assert tokens == ["Hola", " mundo"]
        assert self.auth == ["Bearer sk-test"]

        payload = self.requests[0]
        assert payload["model"] == "deepseek-reasoner"
        assert payload["stream"] is True
        assert payload["temperature"] == 0.4
        assert payload["max_tokens"] == 2048

    async def test_non_stream_json_body(self):
        self.mode = "json"
        tokens: list[str] = []
        result = await self._provider().complete(
            CompletionRequest(prompt="hi", on_token=tokens.append)
        )
        assert result.text == "completo"
        assert tokens == ["completo"]
        assert result.model == "deepseek-chat"

    async def test_error_body_message_is_surfaced(self):
        self.mode = "error"
        try:
            await self._provider().complete(CompletionRequest(prompt="hi"))
        except ProviderHTTPError as exc:
            assert exc.status == 402
            assert str(exc) == "Insufficient Balance"
        else:
            raise AssertionError("expected ProviderHTTPError")

    async def test_history_is_trimmed_and_system_prepended(self):
        self.chunks = [_sse(_delta("ok"), "[DONE]")]
        history = [ProviderMessage("user" if i % 2 == 0 else "assistant", f"m{i}") for i in range(30)]
        await self._provider().complete(CompletionRequest(
            prompt="m29", system="Pensá en profundidad", profile_id="thoughtful", messages=history,
        ))
        messages = self.requests[0]["messages"]
        assert messages[0] == {"role": "system", "content": "Pensá en profundidad"}
        assert len(messages) == 1 + 24
        assert messages[1]["content"] == "m6"
        assert messages[-1]["content"] == "m29"

    async def test_missing_key_fails_at_use(self):
        self._monkeypatch.delenv(KEY_ENV)
        try:
            await self._provider().complete(CompletionRequest(prompt="hi"))
        except MissingCredentialError as exc:
            assert exc.variable == KEY_ENV
        else:
            raise AssertionError("expected MissingCredentialError")
        assert self.requests == []

    async def test_user_abort_mid_stream(self):
        self.hold = asyncio.Event()
        self.chunks = [_sse(_delta("uno")), _sse(_delta("dos"), "[DONE]")]
        tokens: list[str] = []
        first = asyncio.Event()

        def on_token(token: str) -> None:
            tokens.append(token)
            first.set()

        signal = AbortController()
        handle = self._provider().complete(
            CompletionRequest(prompt="hi", on_token=on_token, signal=signal)
        )
        await asyncio.wait_for(first.wait(), 5)
        signal.abort()
        result = await handle
        self.hold.set()

        assert result.outcome == CompletionOutcome.CANCELLED
        assert result.cancel_reason == AbortReason.USER
        assert result.model == "deepseek-chat"
        assert tokens == ["uno"]
        assert len(signal._listeners) == 0

    async def test_stream_without_done_flushes_tail(self):
        self.chunks = [
            _sse(_delta("Hola")),
            b'data: {"choices": [{"delta": {"content": " fin"}}]}',
        ]
        tokens: list[str] = []
        result = await self._provider().complete(
            CompletionRequest(prompt="hi", on_token=tokens.append)
        )
        assert result.outcome == CompletionOutcome.COMPLETED
        assert result.text == "Hola fin"
        assert tokens == ["Hola", " fin"]

    async def test_sse_body_without_event_stream_header(self):
        self.mode = "sse-plain"
        body = _sse(_delta("sin"), _delta(" cabecera"), "[DONE]")
        self.chunks = [b"\n" + body[:3], body[3:]]
        tokens: list[str] = []
        result = await self._provider().complete(
            CompletionRequest(prompt="hi", on_token=tokens.append)
        )
        assert result.text == "sin cabecera"
        assert tokens == ["sin", " cabecera"]

    async def test_unreachable_service(self):
        provider = DeepSeekProvider(
            api_url="http://127.0.0.1:9/chat/completions",
            api_key_env=KEY_ENV,
        )
        try:
            await provider.complete(CompletionRequest(prompt="hi"))
        except ServiceUnreachableError as exc:
            assert "DeepSeek" in str(exc)
        else:
            raise AssertionError("expected ServiceUnreachableError")


def test_model_alias_map():
    assert to_api_model("deepseek-1.3") == "deepseek-chat"
    assert to_api_model("deepseek-6.7") == "deepseek-reasoner"
    assert to_api_model("deepseek-coder") == "deepseek-coder"


def test_extract_token_variants():
    assert extract_token(_delta("a")) == "a"
    assert extract_token({"choices": [{"message": {"content": "b"}}]}) == "b"
    assert extract_token({"choices": []}) == ""
    assert extract_token("nope") == ""


def test_error_message_from_body_fallbacks():
    assert error_message_from_body(500, "Server Error", "") == "DeepSeek request failed (500 Server Error)"
    assert error_message_from_body(500, "Server Error", "boom").endswith("boom")
