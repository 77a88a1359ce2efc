"""System information server."""
from __future__ import annotations

import os
import platform
import sys
from pathlib import Path
from typing import Any

from ..models import CapabilityMethod, RequestContext, ServerId
from .base import CapabilityServer
from .orbit import Orbit


class SystemServer(CapabilityServer):
    server_id = ServerId.SYSTEM
    label = "System"
    description = "Report platform details for the host machine."
    methods = frozenset({CapabilityMethod.INFO})

    def __init__(self, orbit: Orbit) -> None:
        self.orbit = orbit

    async def info(self, params: dict[str, Any] | None, context: RequestContext) -> dict[str, Any]:
        topic = (params or {}).get("topic")
        if topic == "paths":
            return {
                "home": Path.home().as_posix(),
                "cwd": Path.cwd().as_posix(),
                "orbit": self.orbit.root.as_posix(),
            }
        return {
            "platform": platform.system().lower(),
            "release": platform.release(),
            "machine": platform.machine(),
            "cpu_count": os.cpu_count() or 1,
            "python": sys.version.split()[0],
        }
