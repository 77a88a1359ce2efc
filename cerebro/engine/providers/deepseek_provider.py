"""Remote DeepSeek provider streaming server-sent events.

Auth: bearer token read from the configured env var (DEEPSEEK_API_KEY
by default) when a completion starts. A missing key fails that
completion; availability is decided by the ProviderFactory.
"""
from __future__ import annotations

import json
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from ..errors import (
    EmptyResponseError,
    MissingCredentialError,
    ProviderError,
    ProviderHTTPError,
    ServiceUnreachableError,
)
from ..models import CompletionRequest, ModelRuntime, ProviderMessage
from ..profiles import ProfileRegistry
from .base import CompletionHandle, StreamingProvider
from .streaming import SSE_DATA_PREFIX, SSE_DONE, LineBuffer, sse_payload

logger = logging.getLogger(__name__)

SERVICE = "DeepSeek"
DEEPSEEK_API_URL = "https://api.deepseek.com/chat/completions"

# UI model ids → API model names. Unknown ids pass through unchanged.
UI_TO_API_MODEL: dict[str, str] = {
    "deepseek-1.3": "deepseek-chat",
    "deepseek-6.7": "deepseek-reasoner",
}

CONNECT_TIMEOUT_SECONDS = 15.0


def to_api_model(model: str) -> str:
    return UI_TO_API_MODEL.get(model, model)


def extract_token(payload: Any) -> str:
    """Delta content of the first choice, else full message content."""
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    choice = choices[0]
    for key in ("delta", "message"):
        part = choice.get(key)
        if isinstance(part, dict) and isinstance(part.get("content"), str):
            return part["content"]
    return ""


def error_message_from_body(status: int, reason: str | None, body: str) -> str:
    """Structured ``error.message``, else raw body, else a status message."""
    base = f"DeepSeek request failed ({status} {reason or ''}".rstrip() + ")"
    if not body:
        return base
    try:
        parsed = json.loads(body)
    except ValueError:
        return f"{base} {body}"
    error = parsed.get("error") if isinstance(parsed, dict) else None
    message = error.get("message") if isinstance(error, dict) else None
    if isinstance(message, str) and message.strip():
        return message.strip()
    return f"{base} {body}"


class DeepSeekProvider(StreamingProvider):
    """Streaming provider backed by the DeepSeek chat completions API."""

    def __init__(
        self,
        api_url: str = DEEPSEEK_API_URL,
        api_key_env: str = "DEEPSEEK_API_KEY",
        default_model: str = "deepseek-1.3",
        profiles: ProfileRegistry | None = None,
    ) -> None:
        self._api_url = api_url
        self._api_key_env = api_key_env
        self._default_model = default_model
        self._profiles = profiles or ProfileRegistry()

    @property
    def name(self) -> str:
        return "deepseek"

    def initial_model(self, request: CompletionRequest) -> str | None:
        return to_api_model(self._ui_model(request))

    def _ui_model(self, request: CompletionRequest) -> str:
        if request.model and request.model.strip():
            return request.model.strip()
        profile = self._profiles.get(request.profile_id)
        if profile is not None and profile.runtime == ModelRuntime.REMOTE:
            return profile.model
        return self._default_model

    def build_messages(self, request: CompletionRequest) -> list[dict[str, str]]:
        """System prompt, trimmed history, and the user prompt.

        When ``request.messages`` is given it is taken as the full
        conversation (including the current turn).
        """
        history: list[ProviderMessage] = list(request.messages or [])
        profile = self._profiles.get(request.profile_id)
        limit = profile.reasoning.max_history_messages if profile and profile.reasoning else None
        if limit is not None and len(history) > limit:
            history = history[-limit:]
        if not history and request.prompt.strip():
            history = [ProviderMessage(role="user", content=request.prompt)]

        messages = [m.to_dict() for m in history]
        if request.system and request.system.strip():
            messages.insert(0, {"role": "system", "content": request.system.strip()})
        return messages

    def build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        profile = self._profiles.get(request.profile_id)
        reasoning = profile.reasoning if profile is not None else None
        payload: dict[str, Any] = {
            "model": to_api_model(self._ui_model(request)),
            "messages": self.build_messages(request),
            "stream": True,
        }
        temperature = request.temperature
        if temperature is None and reasoning is not None:
            temperature = reasoning.temperature
        if temperature is not None:
            payload["temperature"] = temperature
        max_tokens = request.max_output_tokens
        if max_tokens is None and reasoning is not None:
            max_tokens = reasoning.max_output_tokens
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        return payload

    async def _run(self, request: CompletionRequest, handle: CompletionHandle) -> str:
        api_key = os.environ.get(self._api_key_env)
        if not api_key:
            raise MissingCredentialError(self._api_key_env)

        payload = self.build_payload(request)
        handle.model = payload["model"]
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=CONNECT_TIMEOUT_SECONDS)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self._api_url, json=payload, headers=headers) as response:
                    if response.status >= 300:
                        body = await response.text()
                        logger.warning(
                            "DeepSeek request failed: status=%s body=%s",
                            response.status, body[:500],
                        )
                        raise ProviderHTTPError(
                            SERVICE, response.status, response.reason, body or None,
                            message=error_message_from_body(
                                response.status, response.reason, body,
                            ),
                        )
                    return await self._read_body(response, request, handle)
        except aiohttp.ClientConnectionError as exc:
            raise ServiceUnreachableError(SERVICE, str(exc)) from exc
        except aiohttp.ClientPayloadError as exc:
            raise ProviderError(f"DeepSeek stream was interrupted: {exc}") from exc

    async def _read_body(
        self,
        response: aiohttp.ClientResponse,
        request: CompletionRequest,
        handle: CompletionHandle,
    ) -> str:
        """Stream SSE when labelled as such or when the body opens with ``data:``."""
        chunks = response.content.iter_any()
        if "text/event-stream" in response.headers.get("Content-Type", ""):
            return await self._read_stream(chunks, b"", request, handle)

        head = b""
        async for chunk in chunks:
            head += chunk
            if len(head.lstrip()) >= len(SSE_DATA_PREFIX):
                break
        if head.lstrip().startswith(SSE_DATA_PREFIX.encode("ascii")):
            logger.debug("DeepSeek sent SSE as %s", response.content_type)
            return await self._read_stream(chunks, head, request, handle)
        async for chunk in chunks:
            head += chunk
        return self._read_single(head.decode("utf-8", errors="replace"), request, handle)

    def _read_single(self, body: str, request: CompletionRequest, handle: CompletionHandle) -> str:
        """Non-streaming fallback: one JSON completion payload."""
        try:
            data = json.loads(body)
        except ValueError as exc:
            raise EmptyResponseError(
                f"DeepSeek stream is empty and JSON parsing failed: {exc}"
            ) from exc
        text = extract_token(data)
        if not text:
            raise EmptyResponseError("DeepSeek returned an empty completion.")
        self.emit(request, handle, text)
        return text

    async def _read_stream(
        self,
        chunks: AsyncIterator[bytes],
        head: bytes,
        request: CompletionRequest,
        handle: CompletionHandle,
    ) -> str:
        buffer = LineBuffer()
        parts: list[str] = []
        if self._consume(buffer.feed(head), parts, request, handle):
            return "".join(parts)
        async for chunk in chunks:
            if self._consume(buffer.feed(chunk), parts, request, handle):
                return "".join(parts)
        tail = buffer.flush()
        if tail:
            self._consume([tail], parts, request, handle)
        return "".join(parts)

    def _consume(
        self,
        lines: list[str],
        parts: list[str],
        request: CompletionRequest,
        handle: CompletionHandle,
    ) -> bool:
        """Emit tokens from SSE *lines*; True once ``[DONE]`` is seen."""
        for line in lines:
            payload = sse_payload(line)
            if payload is None:
                continue
            if payload == SSE_DONE:
                return True
            try:
                parsed = json.loads(payload)
            except ValueError as exc:
                logger.warning("DeepSeek streaming chunk parse failed %r: %s", payload, exc)
                continue
            token = extract_token(parsed)
            if token:
                parts.append(token)
                self.emit(request, handle, token)
        return False
