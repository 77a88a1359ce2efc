"""Core data models for the assistant engine.

All dataclasses, enums, and type aliases. Single source of truth
to avoid circular imports.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .cancellation import AbortController


class RuntimeStatus(str, Enum):
    """Which inference backend is currently serving completions."""
    LOCAL = "local"
    REMOTE = "remote"
    NONE = "none"


class ModelRuntime(str, Enum):
    """Runtime affinity of a reasoning profile."""
    LOCAL = "local"
    REMOTE = "remote"


class AccessLevel(str, Enum):
    """Administrator-facing ceiling on tool capabilities."""
    BASIC = "basic"
    DEV = "dev"
    POWER = "power"


# Ordered from most to least restrictive.
ACCESS_LEVEL_ORDER: tuple[AccessLevel, ...] = (
    AccessLevel.BASIC,
    AccessLevel.DEV,
    AccessLevel.POWER,
)


class ServerId(str, Enum):
    """Known capability (tool) servers."""
    FILES = "files"
    GIT = "git"
    SHELL = "shell"
    SYSTEM = "system"
    WINDOW = "window"


class CapabilityMethod(str, Enum):
    """Operations a capability server may expose."""
    LIST = "list"
    READ = "read"
    WRITE = "write"
    EXEC = "exec"
    INFO = "info"


class AbortReason(str, Enum):
    """Why a completion's cancellation controller fired."""
    USER = "user"
    TIMEOUT = "timeout"


class CompletionOutcome(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TokenCallback = Callable[[str], None]


@dataclass(frozen=True)
class ReasoningConfig:
    """Sampling and reasoning defaults attached to a profile."""
    context_tokens: int
    max_output_tokens: int
    temperature: float
    max_history_messages: int | None = None
    depth: str | None = None


@dataclass(frozen=True)
class CapabilityRule:
    """A server id plus the ordered methods granted (or blocked) on it."""
    server_id: ServerId
    methods: tuple[CapabilityMethod, ...]

    def allows(self, method: CapabilityMethod) -> bool:
        return method in self.methods

    def describe(self) -> str:
        return f"{self.server_id.value}:{','.join(m.value for m in self.methods)}"


@dataclass(frozen=True)
class ReasoningProfile:
    """A named reasoning configuration. Immutable once loaded."""
    profile_id: str
    runtime: ModelRuntime
    model: str
    label: str
    reasoning: ReasoningConfig | None = None
    system_prompts: dict[str, str] = field(default_factory=dict)
    base_rules: tuple[CapabilityRule, ...] = ()
    alternate_models: tuple[str, ...] = ()
    # Profile to use instead when the active runtime is local.
    local_variant: str | None = None

    def system_prompt(self, language: str = "es") -> str:
        """Return the system prompt for *language*, falling back to Spanish."""
        if language in self.system_prompts:
            return self.system_prompts[language]
        if "es" in self.system_prompts:
            return self.system_prompts["es"]
        return next(iter(self.system_prompts.values()), "")

    @property
    def configured_models(self) -> tuple[str, ...]:
        return (self.model, *self.alternate_models)


@dataclass
class PermissionPartition:
    """Allowed vs blocked rules for one (profile, access level) pair."""
    allowed: list[CapabilityRule] = field(default_factory=list)
    blocked: list[CapabilityRule] = field(default_factory=list)

    def is_allowed(self, server_id: ServerId, method: CapabilityMethod) -> bool:
        return any(
            rule.server_id == server_id and rule.allows(method)
            for rule in self.allowed
        )


@dataclass
class ProviderMessage:
    """A single chat message sent to a provider."""
    role: str  # "system", "user", or "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class CompletionRequest:
    """Everything a provider needs to produce one completion."""
    prompt: str
    system: str | None = None
    model: str | None = None
    messages: list[ProviderMessage] | None = None
    profile_id: str | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    context_tokens: int | None = None
    on_token: TokenCallback | None = field(default=None, repr=False)
    signal: AbortController | None = field(default=None, repr=False)


@dataclass
class CompletionResult:
    """Final outcome of a completion: generated text or a cancellation."""
    outcome: CompletionOutcome
    text: str = ""
    model: str | None = None
    cancel_reason: AbortReason | None = None

    @property
    def cancelled(self) -> bool:
        return self.outcome == CompletionOutcome.CANCELLED


@dataclass
class ProbeResult:
    """Outcome of a single health probe. Recomputed on each probe."""
    ok: bool
    latency_ms: float | None = None
    error: str | None = None


# ── Capability request/response shapes ──────────────────────────────


@dataclass
class RequestContext:
    """Context passed with every capability call."""
    profile_id: str
    summary: str | None = None
    # None means "use the default" (confirm sensitive methods).
    require_confirmation: bool | None = None


@dataclass
class ListEntry:
    name: str
    path: str
    type: str  # "file" or "directory"
    size: int
    modified_at: int | None = None


@dataclass
class ReadResult:
    path: str
    encoding: str
    content: str


@dataclass
class WriteResult:
    path: str
    bytes_written: int
    created: bool


@dataclass
class ExecRequest:
    command: str
    args: list[str] = field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    timeout_ms: int | None = None

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> ExecRequest:
        return cls(
            command=str(params["command"]),
            args=[str(a) for a in params.get("args") or []],
            cwd=params.get("cwd"),
            env={str(k): str(v) for k, v in (params.get("env") or {}).items()},
            timeout_ms=params.get("timeout_ms", params.get("timeoutMs")),
        )


@dataclass
class ExecResult:
    command: str
    args: list[str]
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    cwd: str | None = None
