"""File system server confined to the orbit."""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from pathlib import Path
from typing import Any

from ..errors import CapabilityError
from ..models import (
    CapabilityMethod,
    ListEntry,
    ReadResult,
    RequestContext,
    ServerId,
    WriteResult,
)
from .base import CapabilityServer
from .orbit import Orbit

logger = logging.getLogger(__name__)

ENCODINGS = ("utf8", "base64")


def _encoding(value: str | None) -> str:
    normalized = (value or "utf8").lower().replace("-", "")
    if normalized not in ENCODINGS:
        raise CapabilityError(f"Unsupported encoding: {value}")
    return normalized


class FilesServer(CapabilityServer):
    server_id = ServerId.FILES
    label = "File system"
    description = "Read and write files inside the authorized orbit."
    methods = frozenset({
        CapabilityMethod.LIST,
        CapabilityMethod.READ,
        CapabilityMethod.WRITE,
        CapabilityMethod.INFO,
    })

    def __init__(self, orbit: Orbit) -> None:
        self.orbit = orbit

    async def list(self, path: str | None, context: RequestContext) -> list[ListEntry]:
        target = self.orbit.resolve(path)
        return await asyncio.to_thread(self._list_sync, target)

    def _list_sync(self, target: Path) -> list[ListEntry]:
        if not target.exists():
            raise CapabilityError("The requested path does not exist.")
        if not target.is_dir():
            raise CapabilityError("The requested path is not a directory.")
        entries = []
        for entry in sorted(target.iterdir(), key=lambda p: p.name.lower()):
            # Links may point outside the orbit, nowhere, or at themselves.
            try:
                resolved = entry.resolve()
                stat = entry.stat()
            except (OSError, RuntimeError) as exc:
                logger.warning("Skipping unreadable entry %s: %s", entry.name, type(exc).__name__)
                continue
            if not self.orbit.contains(resolved):
                logger.warning("Skipping %s: link leaves the orbit", entry.name)
                continue
            entries.append(ListEntry(
                name=entry.name,
                path=self.orbit.relative(target / entry.name),
                type="directory" if entry.is_dir() else "file",
                size=stat.st_size if entry.is_file() else 0,
                modified_at=int(stat.st_mtime * 1000),
            ))
        return entries

    async def read(self, path: str, encoding: str, context: RequestContext) -> ReadResult:
        target = self.orbit.resolve(path)
        encoding = _encoding(encoding)
        if not target.exists():
            raise CapabilityError("The requested file does not exist.")
        if not target.is_file():
            raise CapabilityError("The requested path is not a file.")
        data = await asyncio.to_thread(target.read_bytes)
        if encoding == "base64":
            content = base64.b64encode(data).decode("ascii")
        else:
            try:
                content = data.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise CapabilityError(
                    "The file is not UTF-8 encoded. Use encoding base64."
                ) from exc
        return ReadResult(path=self.orbit.relative(target), encoding=encoding, content=content)

    async def write(
        self,
        path: str,
        content: str,
        encoding: str,
        overwrite: bool,
        context: RequestContext,
    ) -> WriteResult:
        target = self.orbit.resolve(path)
        if target == self.orbit.root:
            raise CapabilityError("Cannot write to the orbit root itself.")
        encoding = _encoding(encoding)
        existed = target.exists()
        if existed and not overwrite:
            raise CapabilityError("The file already exists and overwrite=false.")
        if encoding == "base64":
            try:
                payload = base64.b64decode(content, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise CapabilityError("Invalid base64 string.") from exc
        else:
            payload = content.encode("utf-8")

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(payload)

        await asyncio.to_thread(_write)
        return WriteResult(
            path=self.orbit.relative(target),
            bytes_written=len(payload),
            created=not existed,
        )

    async def info(self, params: dict[str, Any] | None, context: RequestContext) -> dict[str, Any]:
        return {"root": self.orbit.root.as_posix(), "exists": self.orbit.root.exists()}
