"""Installed-model inventory cache for the local engine.

Owned by one provider instance. Entries expire after a short TTL.
Concurrent refreshes are de-duplicated: callers arriving while a
discovery call is in flight await that same call.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def model_key(name: str) -> str:
    """Case-insensitive key where ``name`` and ``name:latest`` collide."""
    key = name.strip().lower()
    if key.endswith(":latest"):
        key = key[: -len(":latest")]
    return key


@dataclass
class InstalledModels:
    """Model names reported by one discovery call."""
    raw: list[str] = field(default_factory=list)
    keys: frozenset[str] = frozenset()

    @classmethod
    def from_names(cls, names: Iterable[str]) -> InstalledModels:
        raw: list[str] = []
        for name in names:
            cleaned = (name or "").strip()
            if cleaned and cleaned not in raw:
                raw.append(cleaned)
        return cls(raw=raw, keys=frozenset(model_key(n) for n in raw))

    def has(self, name: str) -> bool:
        return model_key(name) in self.keys


Loader = Callable[[], Awaitable[InstalledModels]]


class InstalledModelCache:
    """TTL cache with single-flight refresh."""

    def __init__(
        self,
        ttl_seconds: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entry: InstalledModels | None = None
        self._fetched_at = 0.0
        self._inflight: asyncio.Future[InstalledModels] | None = None
        self._last_known: list[str] = []

    @property
    def last_known(self) -> list[str]:
        """Raw names from the most recent successful discovery."""
        return list(self._last_known)

    def is_fresh(self) -> bool:
        return (
            self._entry is not None
            and self._clock() - self._fetched_at < self._ttl
        )

    def invalidate(self) -> None:
        self._entry = None

    async def get(self, loader: Loader) -> InstalledModels:
        if self.is_fresh():
            logger.debug("Installed models cache hit")
            return self._entry  # type: ignore[return-value]

        if self._inflight is None:
            logger.debug("Installed models cache miss; refreshing")
            self._inflight = asyncio.ensure_future(self._refresh(loader))
        # Shield so one waiter's cancellation doesn't abort the shared call.
        return await asyncio.shield(self._inflight)

    async def _refresh(self, loader: Loader) -> InstalledModels:
        try:
            info = await loader()
            self._entry = info
            self._fetched_at = self._clock()
            self._last_known = list(info.raw)
            return info
        finally:
            self._inflight = None
