"""Capability registry — maps server ids to server instances and dispatches.

Dispatch does not check permissions. Callers must consult the
permission matrix (and confirm sensitive methods) first; see
cerebro.adapters.capability_client.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import Any

from ..errors import InvalidParamsError, MethodNotImplementedError, ServerNotRegisteredError
from ..models import CapabilityMethod, ExecRequest, RequestContext, ServerId
from .base import CapabilityServer

logger = logging.getLogger(__name__)


class CapabilityRegistry:
    """Registry of capability servers keyed by ServerId."""

    def __init__(self) -> None:
        self._servers: dict[ServerId, CapabilityServer] = {}

    def register(self, server: CapabilityServer) -> None:
        """Register (or replace) a server under its id."""
        self._servers[server.server_id] = server
        logger.info(
            "Capability server registered: %s (%s)",
            server.server_id.value,
            ", ".join(sorted(m.value for m in server.methods)) or "no methods",
        )

    def get(self, server_id: ServerId) -> CapabilityServer | None:
        return self._servers.get(server_id)

    def list_servers(self) -> list[CapabilityServer]:
        return list(self._servers.values())

    def __contains__(self, server_id: object) -> bool:
        return server_id in self._servers

    async def dispatch(
        self,
        server_id: ServerId,
        method: CapabilityMethod,
        params: dict[str, Any] | None,
        context: RequestContext,
    ) -> Any:
        """Route one call and return the server's result verbatim."""
        try:
            server = self._servers.get(ServerId(server_id))
        except ValueError:
            server = None
        if server is None:
            raise ServerNotRegisteredError(str(getattr(server_id, "value", server_id)))
        method = CapabilityMethod(method)
        if not server.implements(method):
            raise MethodNotImplementedError(server.server_id.value, method.value)

        params = dict(params or {})
        logger.debug("Dispatching %s.%s for profile %s", server.server_id.value, method.value, context.profile_id)
        try:
            call = _bind_call(server, method, params, context)
        except KeyError as exc:
            raise InvalidParamsError(
                server.server_id.value, method.value, f"missing {exc}",
            ) from exc
        return await call


def _bind_call(
    server: CapabilityServer,
    method: CapabilityMethod,
    params: dict[str, Any],
    context: RequestContext,
) -> Awaitable[Any]:
    """Map a plain params dict onto the server method signature."""
    if method == CapabilityMethod.LIST:
        return server.list(params.get("path"), context)
    if method == CapabilityMethod.READ:
        return server.read(params["path"], params.get("encoding", "utf8"), context)
    if method == CapabilityMethod.WRITE:
        return server.write(
            params["path"],
            params["content"],
            params.get("encoding", "utf8"),
            bool(params.get("overwrite", True)),
            context,
        )
    if method == CapabilityMethod.EXEC:
        return server.exec(ExecRequest.from_params(params), context)
    return server.info(params or None, context)
