"""Cerebro engine — streaming completion providers and capability policy."""
from .models import (
    AbortReason,
    AccessLevel,
    CapabilityMethod,
    CapabilityRule,
    CompletionOutcome,
    CompletionRequest,
    CompletionResult,
    ModelRuntime,
    PermissionPartition,
    ProbeResult,
    ProviderMessage,
    ReasoningConfig,
    ReasoningProfile,
    RequestContext,
    RuntimeStatus,
    ServerId,
)
from .config import AssistantSettings, CerebroConfig
from .cancellation import AbortController
from .errors import (
    ActionCancelledError,
    CapabilityError,
    CerebroError,
    ConfigurationError,
    EmptyResponseError,
    HandleNotStartedError,
    MethodNotImplementedError,
    MissingCredentialError,
    ModelMissingError,
    OrbitViolationError,
    PermissionDeniedError,
    PolicyConfigError,
    ProviderError,
    ProviderHTTPError,
    SandboxViolationError,
    ServerNotRegisteredError,
    ServiceUnreachableError,
    StreamError,
)
from .permissions import (
    DEFAULT_ACCESS_LEVEL_LIMITS,
    PermissionMatrix,
    PermissionMatrixEngine,
    is_sensitive_method,
)
from .profile_selector import choose_profile, estimate_token_count, select_profile
from .profiles import ProfileRegistry

__all__ = [
    # Models
    "AbortReason",
    "AccessLevel",
    "CapabilityMethod",
    "CapabilityRule",
    "CompletionOutcome",
    "CompletionRequest",
    "CompletionResult",
    "ModelRuntime",
    "PermissionPartition",
    "ProbeResult",
    "ProviderMessage",
    "ReasoningConfig",
    "ReasoningProfile",
    "RequestContext",
    "RuntimeStatus",
    "ServerId",
    # Config
    "AssistantSettings",
    "CerebroConfig",
    "AbortController",
    # Errors
    "ActionCancelledError",
    "CapabilityError",
    "CerebroError",
    "ConfigurationError",
    "EmptyResponseError",
    "HandleNotStartedError",
    "MethodNotImplementedError",
    "MissingCredentialError",
    "ModelMissingError",
    "OrbitViolationError",
    "PermissionDeniedError",
    "PolicyConfigError",
    "ProviderError",
    "ProviderHTTPError",
    "SandboxViolationError",
    "ServerNotRegisteredError",
    "ServiceUnreachableError",
    "StreamError",
    # Policy and profiles
    "DEFAULT_ACCESS_LEVEL_LIMITS",
    "PermissionMatrix",
    "PermissionMatrixEngine",
    "is_sensitive_method",
    "ProfileRegistry",
    "choose_profile",
    "estimate_token_count",
    "select_profile",
]
