"""Capability client — the calling layer in front of the registry.

Every call goes through three gates before dispatch:

1. The permission matrix at the active access level. A method the
   active profile may not use raises PermissionDeniedError.
2. Sensitive methods (file writes, exec on shell/git/window) need an
   explicit yes from the ``confirm`` callback unless the request context
   sets ``require_confirmation=False``. A refusal raises
   ActionCancelledError.
3. Sandbox violations reported by a server are normalized to
   OrbitViolationError so UI code never parses raw server text.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..engine.capability_server.registry import CapabilityRegistry
from ..engine.errors import (
    ActionCancelledError,
    OrbitViolationError,
    PermissionDeniedError,
    SandboxViolationError,
)
from ..engine.models import CapabilityMethod, RequestContext, ServerId
from ..engine.permissions import PermissionMatrix, is_sensitive_method
from ..engine.profile_selector import strip_diacritics
from ..engine.profiles import ProfileRegistry

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[list[str]], Awaitable[bool]]

ORBIT_MARKER = "orbita segura"

SERVER_LABELS = {
    ServerId.FILES: "File system",
    ServerId.GIT: "Git",
    ServerId.SHELL: "Shell",
    ServerId.SYSTEM: "System",
    ServerId.WINDOW: "Window control",
}

METHOD_LABELS = {
    CapabilityMethod.LIST: "list",
    CapabilityMethod.READ: "read",
    CapabilityMethod.WRITE: "write",
    CapabilityMethod.EXEC: "execute",
    CapabilityMethod.INFO: "info",
}


def is_orbit_violation(exc: BaseException) -> bool:
    if isinstance(exc, SandboxViolationError):
        return True
    return ORBIT_MARKER in strip_diacritics(str(exc)).lower()


def describe_confirmation(
    server_id: ServerId,
    method: CapabilityMethod,
    context: RequestContext,
    profiles: ProfileRegistry | None = None,
) -> list[str]:
    """Lines for the confirmation dialog of a sensitive call."""
    server_id = ServerId(server_id)
    method = CapabilityMethod(method)
    lines = [
        "Confirm sensitive action",
        f"Server: {SERVER_LABELS.get(server_id, server_id.value)}",
        f"Method: {METHOD_LABELS.get(method, method.value)}",
    ]
    profile = profiles.get(context.profile_id) if profiles else None
    if profile is not None:
        lines.append(f"Profile: {profile.label}")
    if context.summary:
        lines.append(f"Summary: {context.summary}")
    lines.extend(["", "Do you want to continue?"])
    return lines


class CapabilityClient:
    """Permission-checked entry point for capability calls."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        permissions: PermissionMatrix,
        confirm: ConfirmCallback | None = None,
    ) -> None:
        self._registry = registry
        self._permissions = permissions
        self._confirm = confirm

    @property
    def permissions(self) -> PermissionMatrix:
        return self._permissions

    def is_allowed(self, profile_id: str, server_id: ServerId, method: CapabilityMethod) -> bool:
        return self._permissions.is_allowed(profile_id, ServerId(server_id), CapabilityMethod(method))

    async def _confirm_sensitive(
        self,
        server_id: ServerId,
        method: CapabilityMethod,
        context: RequestContext,
    ) -> bool:
        if self._confirm is None:
            logger.warning(
                "No confirmation handler; declining %s.%s",
                server_id.value, method.value,
            )
            return False
        lines = describe_confirmation(
            server_id, method, context, self._permissions.engine.profiles,
        )
        return bool(await self._confirm(lines))

    async def call(
        self,
        server_id: ServerId,
        method: CapabilityMethod,
        params: dict[str, Any] | None,
        context: RequestContext,
    ) -> Any:
        server_id = ServerId(server_id)
        method = CapabilityMethod(method)

        if not self.is_allowed(context.profile_id, server_id, method):
            raise PermissionDeniedError(
                context.profile_id,
                server_id.value,
                method.value,
                self._permissions.access_level.value,
            )

        if is_sensitive_method(server_id, method) and context.require_confirmation is not False:
            if not await self._confirm_sensitive(server_id, method, context):
                logger.info("Sensitive action declined: %s.%s", server_id.value, method.value)
                raise ActionCancelledError(server_id.value, method.value)

        try:
            return await self._registry.dispatch(server_id, method, params, context)
        except Exception as exc:
            if isinstance(exc, OrbitViolationError) or not is_orbit_violation(exc):
                raise
            logger.warning("Orbit violation on %s.%s: %s", server_id.value, method.value, exc)
            raise OrbitViolationError(server_id.value, method.value) from exc
