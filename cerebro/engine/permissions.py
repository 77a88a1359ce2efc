"""Capability permission engine.

Each reasoning profile carries base capability rules. The active
access level caps them with a per-server ceiling:

    allowed = base ∩ ceiling   (rules with no surviving method are dropped)
    blocked = base − allowed   (per server, only when non-empty)

Sensitive methods (file writes, exec on shell/git/window) always need
an explicit confirmation, whether or not they are currently allowed.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .errors import PolicyConfigError
from .models import (
    ACCESS_LEVEL_ORDER,
    AccessLevel,
    CapabilityMethod,
    CapabilityRule,
    PermissionPartition,
    ServerId,
)
from .profiles import ProfileRegistry

logger = logging.getLogger(__name__)

Ceiling = dict[ServerId, tuple[CapabilityMethod, ...]]
PolicyTable = dict[AccessLevel, Ceiling]
PermissionMatrixMap = dict[str, PermissionPartition]

_M = CapabilityMethod

DEFAULT_ACCESS_LEVEL_LIMITS: PolicyTable = {
    AccessLevel.BASIC: {
        ServerId.FILES: (_M.LIST, _M.READ, _M.INFO),
        ServerId.SYSTEM: (_M.INFO,),
    },
    AccessLevel.DEV: {
        ServerId.FILES: (_M.LIST, _M.READ, _M.WRITE, _M.INFO),
        ServerId.SYSTEM: (_M.INFO,),
        ServerId.GIT: (_M.EXEC, _M.INFO),
        ServerId.SHELL: (_M.EXEC, _M.INFO),
        ServerId.WINDOW: (_M.INFO,),
    },
    AccessLevel.POWER: {
        ServerId.FILES: (_M.LIST, _M.READ, _M.WRITE, _M.INFO),
        ServerId.SYSTEM: (_M.INFO,),
        ServerId.GIT: (_M.EXEC, _M.INFO),
        ServerId.SHELL: (_M.EXEC, _M.INFO),
        ServerId.WINDOW: (_M.EXEC, _M.INFO),
    },
}

_SENSITIVE_EXEC_SERVERS = frozenset({ServerId.SHELL, ServerId.GIT, ServerId.WINDOW})


def is_sensitive_method(server_id: ServerId, method: CapabilityMethod) -> bool:
    """True for methods that must be confirmed by the user before dispatch."""
    if server_id == ServerId.FILES and method == CapabilityMethod.WRITE:
        return True
    return method == CapabilityMethod.EXEC and server_id in _SENSITIVE_EXEC_SERVERS


def validate_policy(table: PolicyTable) -> None:
    """Check that every level's ceiling is contained in the next one.

    Raises PolicyConfigError on the first level/server that widens
    less than the previous level, or on a missing level.
    """
    missing = [level.value for level in ACCESS_LEVEL_ORDER if level not in table]
    if missing:
        raise PolicyConfigError(f"Access levels missing from policy: {', '.join(missing)}")

    for lower, higher in zip(ACCESS_LEVEL_ORDER, ACCESS_LEVEL_ORDER[1:]):
        for server_id, methods in table[lower].items():
            wider = set(table[higher].get(server_id, ()))
            dropped = [m.value for m in methods if m not in wider]
            if dropped:
                raise PolicyConfigError(
                    f"Access level '{higher.value}' must include every method "
                    f"allowed at '{lower.value}'; {server_id.value} is missing "
                    f"{', '.join(dropped)}"
                )


def parse_policy(raw: Mapping[str, Mapping[str, Any]]) -> PolicyTable:
    """Build a policy table from plain YAML data and validate it.

    Levels absent from *raw* keep their default ceiling.
    """
    table: PolicyTable = {level: dict(c) for level, c in DEFAULT_ACCESS_LEVEL_LIMITS.items()}
    try:
        for level_name, servers in raw.items():
            level = AccessLevel(level_name)
            table[level] = {
                ServerId(server): tuple(CapabilityMethod(m) for m in methods or [])
                for server, methods in (servers or {}).items()
            }
    except ValueError as exc:
        raise PolicyConfigError(f"Invalid access level policy: {exc}") from exc
    validate_policy(table)
    return table


def intersect_methods(
    base: tuple[CapabilityMethod, ...],
    ceiling: tuple[CapabilityMethod, ...] | None,
) -> tuple[CapabilityMethod, ...]:
    """Base methods that also appear in *ceiling*, in base order."""
    if not ceiling:
        return ()
    return tuple(m for m in base if m in ceiling)


class PermissionMatrixEngine:
    """Computes allowed/blocked partitions for profiles at an access level."""

    def __init__(
        self,
        profiles: ProfileRegistry | None = None,
        policy: PolicyTable | None = None,
    ) -> None:
        self._profiles = profiles or ProfileRegistry()
        self._policy = policy or DEFAULT_ACCESS_LEVEL_LIMITS
        validate_policy(self._policy)

    @property
    def profiles(self) -> ProfileRegistry:
        return self._profiles

    def ceiling(self, level: AccessLevel) -> Ceiling:
        return dict(self._policy[AccessLevel(level)])

    def base_rules(self, profile_id: str) -> list[CapabilityRule]:
        profile = self._profiles.get(profile_id)
        return list(profile.base_rules) if profile else []

    def partition(self, profile_id: str, level: AccessLevel) -> PermissionPartition:
        base = self.base_rules(profile_id)
        if not base:
            return PermissionPartition()

        ceiling = self._policy[AccessLevel(level)]
        allowed: list[CapabilityRule] = []
        blocked: list[CapabilityRule] = []
        for rule in base:
            permitted = intersect_methods(rule.methods, ceiling.get(rule.server_id))
            if permitted:
                allowed.append(CapabilityRule(rule.server_id, permitted))
            denied = tuple(m for m in rule.methods if m not in permitted)
            if denied:
                blocked.append(CapabilityRule(rule.server_id, denied))
        return PermissionPartition(allowed=allowed, blocked=blocked)

    def build_matrix(self, level: AccessLevel) -> PermissionMatrixMap:
        return {
            profile_id: self.partition(profile_id, level)
            for profile_id in self._profiles.list_ids()
        }

    def is_method_allowed(
        self,
        profile_id: str,
        level: AccessLevel,
        server_id: ServerId,
        method: CapabilityMethod,
    ) -> bool:
        return self.partition(profile_id, level).is_allowed(server_id, method)


class PermissionMatrix:
    """The matrix at the active access level, cached until the level changes.

    Readers never mutate the cached partitions; getters return copies.
    """

    def __init__(
        self,
        engine: PermissionMatrixEngine | None = None,
        access_level: AccessLevel = AccessLevel.BASIC,
    ) -> None:
        self._engine = engine or PermissionMatrixEngine()
        self._access_level = AccessLevel(access_level)
        self._matrix = self._engine.build_matrix(self._access_level)

    @property
    def access_level(self) -> AccessLevel:
        return self._access_level

    @property
    def engine(self) -> PermissionMatrixEngine:
        return self._engine

    def set_access_level(self, level: AccessLevel) -> bool:
        """Switch levels and rebuild. Returns False if nothing changed."""
        level = AccessLevel(level)
        if level == self._access_level:
            return False
        logger.info(
            "Access level changed: %s -> %s",
            self._access_level.value, level.value,
        )
        self._access_level = level
        self._matrix = self._engine.build_matrix(level)
        return True

    def snapshot(self) -> PermissionMatrixMap:
        return {
            pid: PermissionPartition(list(p.allowed), list(p.blocked))
            for pid, p in self._matrix.items()
        }

    def matrix_for_level(self, level: AccessLevel) -> PermissionMatrixMap:
        """Compute a matrix for *level* without changing the active one."""
        return self._engine.build_matrix(AccessLevel(level))

    def effective_permissions(self, profile_id: str) -> list[CapabilityRule]:
        partition = self._matrix.get(profile_id)
        return list(partition.allowed) if partition else []

    def blocked_permissions(self, profile_id: str) -> list[CapabilityRule]:
        partition = self._matrix.get(profile_id)
        return list(partition.blocked) if partition else []

    def is_allowed(
        self,
        profile_id: str,
        server_id: ServerId,
        method: CapabilityMethod,
    ) -> bool:
        partition = self._matrix.get(profile_id)
        if partition is not None:
            return partition.is_allowed(server_id, method)
        return self._engine.is_method_allowed(
            profile_id, self._access_level, server_id, method,
        )


def describe_rules(rules: list[CapabilityRule]) -> list[str]:
    """Render rules as ``server:m1,m2`` strings."""
    return [r.describe() for r in rules]
