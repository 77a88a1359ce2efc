"""Adapters between UI-facing callers and the engine."""
from .capability_client import CapabilityClient, describe_confirmation

__all__ = ["CapabilityClient", "describe_confirmation"]
