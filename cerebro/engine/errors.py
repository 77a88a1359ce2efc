"""Exception hierarchy for the assistant engine.

Specific exceptions for each failure mode. Cancellation is not in
this list: a cancelled completion resolves to a CANCELLED result.
"""
from __future__ import annotations


class CerebroError(Exception):
    """Base exception for all engine errors."""


# ── Providers ────────────────────────────────────────────────────────


class ProviderError(CerebroError):
    """A completion backend failed."""


class ServiceUnreachableError(ProviderError):
    """The inference service could not be contacted."""
    def __init__(self, service: str, detail: str | None = None):
        self.service = service
        self.detail = detail
        message = (
            f"Could not connect to {service}. "
            "Check that the service is running"
        )
        if service == "Ollama":
            message += " (`ollama serve`)"
        super().__init__(_with_detail(message, detail))


class ProviderHTTPError(ProviderError):
    """The service answered with a non-2xx status."""
    def __init__(
        self,
        service: str,
        status: int,
        reason: str | None = None,
        detail: str | None = None,
        action: str | None = None,
        message: str | None = None,
    ):
        self.service = service
        self.status = status
        self.reason = reason
        self.detail = detail
        if message:
            super().__init__(message)
            return
        base = f"{service} returned an error ({status} {reason or ''}".rstrip()
        base += ")"
        if action:
            base += f" while {action}"
        super().__init__(_with_detail(base, detail))


class EmptyResponseError(ProviderError):
    """The service answered without a usable body."""


class StreamError(ProviderError):
    """The service reported an error in the middle of a stream."""
    def __init__(self, service: str, detail: str):
        self.service = service
        self.detail = detail
        super().__init__(
            _with_detail(f"{service} reported an error while generating", detail)
        )


class MissingCredentialError(ProviderError):
    """A remote provider was used without a configured API key."""
    def __init__(self, variable: str):
        self.variable = variable
        super().__init__(f"Remote API key is not configured (set {variable}).")


class InvalidRequestError(ProviderError):
    """The completion request cannot be sent as-is."""


class HandleNotStartedError(ProviderError):
    """A CompletionHandle was awaited before its task was started."""
    def __init__(self) -> None:
        super().__init__("Completion handle was never started.")


class ModelMissingError(ProviderError):
    """Neither the requested model nor any fallback is installed."""
    def __init__(self, model: str, candidates: list[str] | None = None):
        self.model = model
        self.candidates = [c.strip() for c in candidates or [] if c.strip()]
        if self.candidates:
            message = (
                f"Model '{model}' is not installed. "
                f"Run: ollama pull {self.candidates[0]}"
            )
        else:
            message = (
                f"Model '{model}' is not installed. "
                f"Run: ollama pull {model} or choose another profile"
            )
        super().__init__(message)


# ── Capabilities ─────────────────────────────────────────────────────


class CapabilityError(CerebroError):
    """Base for capability dispatch and gating errors."""


class ServerNotRegisteredError(CapabilityError):
    def __init__(self, server_id: str):
        self.server_id = server_id
        super().__init__(f"Capability server {server_id} is not registered.")


class MethodNotImplementedError(CapabilityError):
    def __init__(self, server_id: str, method: str):
        self.server_id = server_id
        self.method = method
        super().__init__(
            f"Capability server {server_id} does not implement {method}."
        )


class InvalidParamsError(CapabilityError):
    def __init__(self, server_id: str, method: str, detail: str):
        self.server_id = server_id
        self.method = method
        super().__init__(f"Invalid parameters for {server_id}.{method}: {detail}")


class PermissionDeniedError(CapabilityError):
    """The active profile/access level does not allow this method."""
    def __init__(self, profile_id: str, server_id: str, method: str, level: str):
        self.profile_id = profile_id
        self.server_id = server_id
        self.method = method
        self.level = level
        super().__init__(
            f"Permission denied: profile '{profile_id}' cannot use "
            f"{server_id}.{method} at access level '{level}'."
        )


class ActionCancelledError(CapabilityError):
    """The user declined a sensitive-action confirmation."""
    def __init__(self, server_id: str, method: str):
        self.server_id = server_id
        self.method = method
        super().__init__(f"Action cancelled by the user ({server_id}.{method}).")


class SandboxViolationError(CapabilityError):
    """Raised by tool servers when a path or operation leaves the orbit."""


class OrbitViolationError(CapabilityError):
    """Normalized form of a sandbox violation, safe to show in a UI."""
    def __init__(self, server_id: str, method: str):
        self.server_id = server_id
        self.method = method
        super().__init__(
            "The requested operation is outside the safe orbit "
            "and was blocked."
        )


# ── Configuration ────────────────────────────────────────────────────


class ConfigurationError(CerebroError):
    """Invalid configuration data."""


class PolicyConfigError(ConfigurationError):
    """The access-level policy table is inconsistent."""


class ProfileNotFoundError(ConfigurationError):
    def __init__(self, profile_id: str, available: list[str]):
        self.profile_id = profile_id
        self.available = available
        super().__init__(
            f"Reasoning profile not found: {profile_id} "
            f"(available: {', '.join(available) or 'none'})"
        )


def _with_detail(base: str, detail: str | None) -> str:
    if not detail:
        return base
    normalized = detail.strip()
    if not normalized:
        return base
    return f"{base}: {normalized}"
