"""Shell and git servers.

Both run a single process with ``asyncio.create_subprocess_exec`` (no
shell interpolation) with the working directory pinned inside the orbit.
"""
from __future__ import annotations

import asyncio
import logging
import os
import platform
import time
from pathlib import Path
from typing import Any

from ..errors import CapabilityError, SandboxViolationError
from ..models import CapabilityMethod, ExecRequest, ExecResult, RequestContext, ServerId
from .base import CapabilityServer
from .orbit import Orbit

logger = logging.getLogger(__name__)

DEFAULT_EXEC_TIMEOUT_MS = 30_000


class _ExecServer(CapabilityServer):
    methods = frozenset({CapabilityMethod.EXEC, CapabilityMethod.INFO})

    def __init__(self, orbit: Orbit, default_timeout_ms: int = DEFAULT_EXEC_TIMEOUT_MS) -> None:
        self.orbit = orbit
        self.default_timeout_ms = default_timeout_ms

    def check_command(self, request: ExecRequest) -> None:
        if not request.command.strip():
            raise CapabilityError("A command is required.")

    async def exec(self, request: ExecRequest, context: RequestContext) -> ExecResult:
        self.check_command(request)
        cwd = self.orbit.resolve(request.cwd)
        if not cwd.is_dir():
            raise CapabilityError(f"Working directory does not exist: {request.cwd}")
        timeout_ms = request.timeout_ms or self.default_timeout_ms
        env = {**os.environ, **request.env}

        started = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                request.command,
                *request.args,
                cwd=str(cwd),
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise CapabilityError(f"Command not found: {request.command}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout_ms / 1000)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise CapabilityError(
                f"Command timed out after {timeout_ms} ms: {request.command}"
            )

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.debug(
            "%s exec %s exited %s in %sms",
            self.server_id.value, request.command, proc.returncode, duration_ms,
        )
        return ExecResult(
            command=request.command,
            args=list(request.args),
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration_ms=duration_ms,
            cwd=self.orbit.relative(cwd),
        )


class ShellServer(_ExecServer):
    server_id = ServerId.SHELL
    label = "Shell"
    description = "Run commands inside the orbit."

    async def info(self, params: dict[str, Any] | None, context: RequestContext) -> dict[str, Any]:
        return {
            "shell": os.environ.get("SHELL") or os.environ.get("COMSPEC") or "",
            "platform": platform.system().lower(),
            "default_timeout_ms": self.default_timeout_ms,
            "orbit": self.orbit.root.as_posix(),
        }


class GitServer(_ExecServer):
    server_id = ServerId.GIT
    label = "Git"
    description = "Run git commands on repositories inside the orbit."

    async def info(self, params: dict[str, Any] | None, context: RequestContext) -> dict[str, Any]:
        """Report the installed git version; ``available`` is False when git is missing."""
        version = None
        try:
            proc = await asyncio.create_subprocess_exec(
                "git", "--version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await asyncio.wait_for(proc.communicate(), self.default_timeout_ms / 1000)
            if proc.returncode == 0:
                version = stdout.decode("utf-8", errors="replace").strip()
        except FileNotFoundError:
            logger.info("git is not installed")
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("git --version timed out")
        return {
            "available": version is not None,
            "version": version,
            "orbit": self.orbit.root.as_posix(),
        }

    def check_command(self, request: ExecRequest) -> None:
        super().check_command(request)
        if Path(request.command).name.lower() not in ("git", "git.exe"):
            raise SandboxViolationError(
                f"Only git may run on the git server; got {request.command}."
            )
