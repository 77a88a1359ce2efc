"""Offline provider used when no model is reachable."""
from __future__ import annotations

import asyncio

from ..models import CompletionRequest
from .base import CompletionHandle, StreamingProvider

FALLBACK_MESSAGE = (
    "No hay un modelo disponible. Inicia Ollama y descarga un modelo "
    "(`ollama run mistral`) o configura la variable DEEPSEEK_API_KEY. "
    "No model is available right now. Start Ollama and download a model "
    "(`ollama run mistral`) or set the DEEPSEEK_API_KEY environment variable."
)


class FallbackProvider(StreamingProvider):
    """Delivers one fixed bilingual message on the next loop iteration."""

    def __init__(self, message: str = FALLBACK_MESSAGE) -> None:
        self._message = message

    @property
    def name(self) -> str:
        return "fallback"

    def initial_model(self, request: CompletionRequest) -> str | None:
        return None

    async def _run(self, request: CompletionRequest, handle: CompletionHandle) -> str:
        await asyncio.sleep(0)
        if handle.controller.aborted:
            raise asyncio.CancelledError()
        self.emit(request, handle, self._message)
        return self._message
