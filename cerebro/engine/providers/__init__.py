"""Streaming completion providers."""
from .base import CompletionHandle, StreamingProvider
from .deepseek_provider import DeepSeekProvider
from .factory import ProviderFactory
from .fallback_provider import FALLBACK_MESSAGE, FallbackProvider
from .ollama_provider import OllamaProvider

__all__ = [
    "CompletionHandle",
    "StreamingProvider",
    "OllamaProvider",
    "DeepSeekProvider",
    "FallbackProvider",
    "FALLBACK_MESSAGE",
    "ProviderFactory",
]
