"""Local inference engine detection."""
from __future__ import annotations

import asyncio
import logging
import time

import aiohttp

from .models import ProbeResult

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://127.0.0.1:11434"
HEALTH_ENDPOINT = "/api/version"
PROBE_TIMEOUT_SECONDS = 1.2


def normalize_base_url(url: str) -> str:
    return url[:-1] if url.endswith("/") else url


async def probe_local_engine(
    base_url: str = DEFAULT_OLLAMA_URL,
    timeout: float = PROBE_TIMEOUT_SECONDS,
    session: aiohttp.ClientSession | None = None,
) -> ProbeResult:
    """GET the health endpoint; any 2xx within *timeout* counts as reachable.

    Never raises: failures are reported through ProbeResult.error.
    """
    url = f"{normalize_base_url(base_url)}{HEALTH_ENDPOINT}"
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    owns_session = session is None
    if session is None:
        session = aiohttp.ClientSession(timeout=client_timeout)

    started = time.perf_counter()
    try:
        async with session.get(url, timeout=client_timeout) as response:
            latency_ms = (time.perf_counter() - started) * 1000.0
            if 200 <= response.status < 300:
                return ProbeResult(ok=True, latency_ms=round(latency_ms, 1))
            return ProbeResult(
                ok=False,
                latency_ms=round(latency_ms, 1),
                error=f"HTTP {response.status}",
            )
    except asyncio.TimeoutError:
        logger.debug("Local engine probe timed out after %.1fs: %s", timeout, url)
        return ProbeResult(ok=False, error=f"timed out after {timeout}s")
    except Exception as exc:
        logger.debug("Local engine probe failed: %s (%s)", url, exc)
        return ProbeResult(ok=False, error=str(exc) or type(exc).__name__)
    finally:
        if owns_session:
            await session.close()


async def ping_local_engine(
    base_url: str = DEFAULT_OLLAMA_URL,
    timeout: float = PROBE_TIMEOUT_SECONDS,
) -> bool:
    return (await probe_local_engine(base_url, timeout)).ok
