"""Orbit — the sandbox root every built-in server is confined to."""
from __future__ import annotations

from pathlib import Path

from ..errors import SandboxViolationError

DEFAULT_ORBIT = Path.home() / ".cerebro" / "orbit"


class Orbit:
    """Resolves user paths and refuses anything outside the root."""

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root or DEFAULT_ORBIT).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def resolve(self, user_path: str | None) -> Path:
        if not user_path:
            return self.root
        candidate = Path(user_path).expanduser()
        full = candidate.resolve() if candidate.is_absolute() else (self.root / candidate).resolve()
        if not self.contains(full):
            raise SandboxViolationError(
                f"La ruta {user_path} está fuera de la órbita segura."
            )
        return full

    def contains(self, path: Path) -> bool:
        try:
            path.relative_to(self.root)
            return True
        except ValueError:
            return False

    def relative(self, path: Path) -> str:
        rel = path.relative_to(self.root).as_posix()
        return "" if rel == "." else rel
