"""Capability servers and the registry that dispatches to them."""
from .base import CapabilityServer
from .exec_servers import GitServer, ShellServer
from .files import FilesServer
from .orbit import Orbit
from .registry import CapabilityRegistry
from .system import SystemServer


def build_default_registry(orbit: Orbit) -> CapabilityRegistry:
    """Registry with every built-in server. The window server is external."""
    registry = CapabilityRegistry()
    registry.register(FilesServer(orbit))
    registry.register(SystemServer(orbit))
    registry.register(ShellServer(orbit))
    registry.register(GitServer(orbit))
    return registry


__all__ = [
    "CapabilityServer",
    "CapabilityRegistry",
    "FilesServer",
    "GitServer",
    "Orbit",
    "ShellServer",
    "SystemServer",
    "build_default_registry",
]
