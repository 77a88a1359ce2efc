"""Per-completion cancellation controller.

One AbortController per completion. Timeout and external
cancellation both fire it; the first reason recorded wins.
"""
from __future__ import annotations

import logging
from collections.abc import Callable

from .models import AbortReason

logger = logging.getLogger(__name__)

AbortListener = Callable[[AbortReason], None]


class AbortController:
    """Fire-once cancellation signal with listeners."""

    def __init__(self) -> None:
        self._reason: AbortReason | None = None
        self._listeners: list[AbortListener] = []

    @property
    def aborted(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> AbortReason | None:
        return self._reason

    def abort(self, reason: AbortReason = AbortReason.USER) -> None:
        """Fire the signal. Subsequent calls are ignored."""
        if self._reason is not None:
            return
        self._reason = reason
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener(reason)
            except Exception:
                logger.exception("Abort listener failed")

    def add_listener(self, listener: AbortListener) -> Callable[[], None]:
        """Register *listener*; returns a function that removes it.

        If the controller already fired, the listener runs immediately.
        """
        if self._reason is not None:
            listener(self._reason)
            return lambda: None
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def link(self, external: AbortController | None) -> Callable[[], None]:
        """Abort this controller whenever *external* aborts.

        Returns a function that detaches this controller from *external*.
        """
        if external is None:
            return lambda: None
        return external.add_listener(self.abort)
