"""
Completion provider interfaces for lifelens.

A completion provider wraps one LLM backend (OpenAI, Anthropic, Ollama)
behind a single `complete()` call and classifies its failures as
transient or fatal. Providers are configured by name in lifelens.toml.

Concrete providers are registered when `providers.llm` is imported,
which the registry does lazily on first use.
"""

from .base import (
    CompletionProvider,
    ProviderRegistry,
    classify_status,
    get_registry,
    validate_image,
)

__all__ = [
    "CompletionProvider",
    "ProviderRegistry",
    "classify_status",
    "get_registry",
    "validate_image",
]
