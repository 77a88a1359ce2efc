"""Abstract base for streaming completion providers.

Each provider wraps a different inference backend (local Ollama,
remote DeepSeek, or the offline fallback). ``complete()`` returns a
CompletionHandle immediately; the work runs as an asyncio task and
delivers tokens through ``request.on_token`` as they arrive.
"""
from __future__ import annotations

import abc
import asyncio
import logging
from collections.abc import Awaitable, Callable, Generator
from typing import Any

from ..cancellation import AbortController
from ..errors import HandleNotStartedError
from ..models import (
    AbortReason,
    CompletionOutcome,
    CompletionRequest,
    CompletionResult,
)

logger = logging.getLogger(__name__)


class CompletionHandle:
    """Cancellation controller + pending result for one completion.

    Created per request and never reused. Await the handle (or
    ``result()``) for a CompletionResult; provider errors are raised.
    """

    def __init__(self, controller: AbortController, model: str | None = None) -> None:
        self.controller = controller
        self.model = model
        self._task: asyncio.Task[str] | None = None

    def _start(
        self,
        work: Callable[[CompletionHandle], Awaitable[str]],
        on_done: Callable[[], None] | None = None,
    ) -> None:
        self._task = asyncio.get_running_loop().create_task(work(self))
        self.controller.add_listener(self._on_abort)
        if on_done is not None:
            self._task.add_done_callback(lambda _task: on_done())

    def _on_abort(self, reason: AbortReason) -> None:
        if self._task is not None and not self._task.done():
            logger.debug("Completion aborted (%s); cancelling stream", reason.value)
            self._task.cancel()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self, reason: AbortReason = AbortReason.USER) -> None:
        self.controller.abort(reason)

    async def result(self) -> CompletionResult:
        if self._task is None:
            raise HandleNotStartedError()
        try:
            text = await self._task
        except asyncio.CancelledError:
            # Only a fired controller turns cancellation into a result;
            # cancellation of the awaiting task itself propagates.
            if not (self._task.cancelled() and self.controller.aborted):
                raise
            return CompletionResult(
                outcome=CompletionOutcome.CANCELLED,
                model=self.model,
                cancel_reason=self.controller.reason,
            )
        return CompletionResult(
            outcome=CompletionOutcome.COMPLETED,
            text=text,
            model=self.model,
        )

    def __await__(self) -> Generator[Any, None, CompletionResult]:
        return self.result().__await__()


class StreamingProvider(abc.ABC):
    """Uniform ``complete(request) -> handle`` contract."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short provider name (e.g. 'ollama', 'deepseek')."""

    def complete(self, request: CompletionRequest) -> CompletionHandle:
        """Start a completion and return its handle without waiting.

        Must be called from inside a running event loop.
        """
        controller = AbortController()
        unlink = controller.link(request.signal)
        handle = CompletionHandle(controller, model=self.initial_model(request))
        handle._start(lambda h: self._run(request, h), on_done=unlink)
        return handle

    def initial_model(self, request: CompletionRequest) -> str | None:
        """Model reported on the handle before resolution completes."""
        return request.model

    @abc.abstractmethod
    async def _run(self, request: CompletionRequest, handle: CompletionHandle) -> str:
        """Produce the full text, emitting tokens along the way."""

    @staticmethod
    def emit(request: CompletionRequest, handle: CompletionHandle, token: str) -> None:
        """Forward *token* unless the completion was already cancelled."""
        if token and request.on_token is not None and not handle.controller.aborted:
            request.on_token(token)

    async def shutdown(self) -> None:
        """Release resources. Default no-op."""
        return None
