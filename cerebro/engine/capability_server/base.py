"""Capability server interface.

A server declares the methods it implements in ``methods``; every
other operation raises MethodNotImplementedError. Permission checks
happen before dispatch, never inside a server.
"""
from __future__ import annotations

from typing import Any

from ..errors import MethodNotImplementedError
from ..models import (
    CapabilityMethod,
    ExecRequest,
    ExecResult,
    ListEntry,
    ReadResult,
    RequestContext,
    ServerId,
    WriteResult,
)


class CapabilityServer:
    """Base class for file, shell, git, system, and window servers."""

    server_id: ServerId
    label: str = ""
    description: str = ""
    methods: frozenset[CapabilityMethod] = frozenset()

    def implements(self, method: CapabilityMethod) -> bool:
        return method in self.methods

    def _not_implemented(self, method: CapabilityMethod) -> MethodNotImplementedError:
        return MethodNotImplementedError(self.server_id.value, method.value)

    async def list(
        self, path: str | None, context: RequestContext,
    ) -> list[ListEntry]:
        raise self._not_implemented(CapabilityMethod.LIST)

    async def read(
        self, path: str, encoding: str, context: RequestContext,
    ) -> ReadResult:
        raise self._not_implemented(CapabilityMethod.READ)

    async def write(
        self,
        path: str,
        content: str,
        encoding: str,
        overwrite: bool,
        context: RequestContext,
    ) -> WriteResult:
        raise self._not_implemented(CapabilityMethod.WRITE)

    async def exec(self, request: ExecRequest, context: RequestContext) -> ExecResult:
        raise self._not_implemented(CapabilityMethod.EXEC)

    async def info(
        self, params: dict[str, Any] | None, context: RequestContext,
    ) -> dict[str, Any]:
        raise self._not_implemented(CapabilityMethod.INFO)
