"""
Base provider protocol and registry.

A completion provider turns a prompt (plus an optional image) into raw
text. Failures must be raised as TransientProviderError or
FatalProviderError so the retry policy can tell them apart.
Using Protocol for structural subtyping - no explicit inheritance required.
"""

import json
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from ..errors import FatalProviderError, TransientProviderError


# -----------------------------------------------------------------------------
# Completion
# -----------------------------------------------------------------------------

@runtime_checkable
class CompletionProvider(Protocol):
    """
    Produces a JSON completion for a prompt.

    Example implementation:
        class EchoCompletion:
            def complete(self, prompt, schema_hint, *, system=None, image_path=None):
                return json.dumps(schema_hint)
    """

    def complete(
        self,
        prompt: str,
        schema_hint: dict[str, Any],
        *,
        system: Optional[str] = None,
        image_path: Optional[str] = None,
    ) -> str:
        """
        Request a completion and return the raw response text.

        Args:
            prompt: User prompt
            schema_hint: Example of the expected JSON object shape
            system: Optional system prompt
            image_path: Optional local image file to attach

        Returns:
            Raw response text (expected, but not guaranteed, to be JSON)

        Raises:
            TransientProviderError: Network, timeout, rate limit, 5xx
            FatalProviderError: Auth, quota, invalid request
        """
        ...


DEFAULT_SYSTEM_PROMPT = (
    "You are a careful analyst. Respond with a single JSON object only, "
    "no prose before or after it."
)


def build_user_prompt(prompt: str, schema_hint: dict[str, Any]) -> str:
    """Append the expected JSON shape to a prompt."""
    if not schema_hint:
        return prompt
    shape = json.dumps(schema_hint, ensure_ascii=False, indent=2)
    return f"{prompt}\n\nRespond in JSON with exactly this shape:\n{shape}"


# -----------------------------------------------------------------------------
# Error classification
# -----------------------------------------------------------------------------

# Request timeout, conflict, rate limit
TRANSIENT_STATUS_CODES = frozenset({408, 409, 429})


def classify_status(status_code: Optional[int], detail: str = "") -> type:
    """
    Map an HTTP status to TransientProviderError or FatalProviderError.

    5xx and 408/409/429 are transient. A 429 that reports exhausted quota
    is fatal: waiting two seconds will not refill a billing quota.
    Unknown status (None) is treated as transient.
    """
    if status_code is None:
        return TransientProviderError
    if status_code == 429 and "insufficient_quota" in detail:
        return FatalProviderError
    if status_code in TRANSIENT_STATUS_CODES or status_code >= 500:
        return TransientProviderError
    return FatalProviderError


def provider_error(status_code: Optional[int], detail: str):
    """Build the classified exception for a failed call."""
    cls = classify_status(status_code, detail)
    return cls(detail, status_code=status_code)


# -----------------------------------------------------------------------------
# Images
# -----------------------------------------------------------------------------

MAX_IMAGE_BYTES = 10 * 1024 * 1024

IMAGE_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def image_media_type(path: str) -> str:
    """MIME type for a supported image path. Raises FatalProviderError otherwise."""
    suffix = Path(path).suffix.lower()
    if suffix not in IMAGE_MEDIA_TYPES:
        allowed = ", ".join(sorted(IMAGE_MEDIA_TYPES))
        raise FatalProviderError(f"Unsupported image type '{suffix}' (allowed: {allowed})")
    return IMAGE_MEDIA_TYPES[suffix]


def validate_image(path: str) -> Path:
    """
    Check an image handle before it is sent to a provider.

    The file must exist, have a supported extension, and be at most 10MB.
    Problems are fatal: retrying will not fix a missing or oversized file.
    """
    p = Path(path)
    image_media_type(path)
    if not p.is_file():
        raise FatalProviderError(f"Image not found: {path}")
    size = p.stat().st_size
    if size > MAX_IMAGE_BYTES:
        raise FatalProviderError(
            f"Image too large: {size} bytes (max {MAX_IMAGE_BYTES})"
        )
    if size == 0:
        raise FatalProviderError(f"Image is empty: {path}")
    return p


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating completion providers.

    Providers are registered by name and can be instantiated from configuration.
    This allows the store configuration (TOML) to specify providers by name
    rather than requiring code changes.

    Example:
        registry = ProviderRegistry()
        registry.register_completion("openai", OpenAICompletion)

        # Later, from config:
        provider = registry.create_completion("openai", {"model": "gpt-4o-mini"})
    """

    def __init__(self):
        self._completion_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily load provider modules."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        # Importing registers the classes; SDKs load on instantiation
        from . import llm  # noqa: F401

    def register_completion(self, name: str, provider_class: type) -> None:
        """Register a completion provider class."""
        self._completion_providers[name] = provider_class

    def create_completion(self, name: str, params: dict | None = None) -> CompletionProvider:
        """Create a completion provider instance."""
        self._ensure_providers_loaded()
        if name not in self._completion_providers:
            available = ", ".join(self._completion_providers.keys()) or "none"
            raise ValueError(
                f"Unknown completion provider: '{name}'. "
                f"Available providers: {available}."
            )
        try:
            return self._completion_providers[name](**(params or {}))
        except ImportError as e:
            raise RuntimeError(
                f"Failed to create completion provider '{name}': {e}\n"
                f"Install required dependencies."
            ) from e
        except Exception as e:
            raise RuntimeError(
                f"Failed to create completion provider '{name}': {e}"
            ) from e

    def list_completion_providers(self) -> list[str]:
        """List registered completion provider names."""
        self._ensure_providers_loaded()
        return list(self._completion_providers.keys())


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
