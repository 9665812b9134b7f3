"""
Completion providers using LLMs.

SDK-level retries are disabled: the analyzer's retry policy is the only
retry bound, and every failure is re-raised as a classified
TransientProviderError or FatalProviderError.
"""

import base64
import logging
import os
from typing import Any, Optional

from ..errors import TransientProviderError
from .base import (
    DEFAULT_SYSTEM_PROMPT,
    build_user_prompt,
    get_registry,
    image_media_type,
    provider_error,
    validate_image,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


def _read_image_b64(image_path: str) -> tuple[str, str]:
    """Validate an image and return (media_type, base64 data)."""
    path = validate_image(image_path)
    with open(path, "rb") as f:
        data = base64.b64encode(f.read()).decode("utf-8")
    return image_media_type(image_path), data


class OpenAICompletion:
    """
    Completion provider using OpenAI's chat API in JSON mode.

    Requires: LIFELENS_OPENAI_API_KEY or OPENAI_API_KEY environment variable.

    Default model is gpt-4o-mini, which also accepts image input.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str | None = None,
    ):
        try:
            import openai
        except ImportError:
            raise RuntimeError("OpenAICompletion requires 'openai' library")

        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._openai = openai

        key = api_key or os.environ.get("LIFELENS_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
        if not key:
            raise ValueError(
                "OpenAI API key required. Set LIFELENS_OPENAI_API_KEY or OPENAI_API_KEY"
            )

        self._client = openai.OpenAI(
            api_key=key, base_url=base_url, timeout=timeout, max_retries=0,
        )

        # GPT-5+ and reasoning models use max_completion_tokens and no temperature
        self._new_api = self.model.startswith(("gpt-5", "o3", "o4"))

    def _completion_kwargs(self) -> dict:
        if self._new_api:
            return {"max_completion_tokens": self.max_tokens}
        return {"max_tokens": self.max_tokens, "temperature": self.temperature}

    def complete(
        self,
        prompt: str,
        schema_hint: dict[str, Any],
        *,
        system: Optional[str] = None,
        image_path: Optional[str] = None,
    ) -> str:
        """Request a JSON completion from OpenAI."""
        user_text = build_user_prompt(prompt, schema_hint)
        if image_path:
            media_type, data = _read_image_b64(image_path)
            user_content: Any = [
                {"type": "text", "text": user_text},
                {"type": "image_url", "image_url": {"url": f"data:{media_type};base64,{data}"}},
            ]
        else:
            user_content = user_text

        openai = self._openai
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system or DEFAULT_SYSTEM_PROMPT},
                    {"role": "user", "content": user_content},
                ],
                response_format={"type": "json_object"},
                **self._completion_kwargs(),
            )
        except openai.APIConnectionError as e:
            # Includes APITimeoutError
            raise TransientProviderError(f"{type(e).__name__}: {e}") from e
        except openai.APIStatusError as e:
            detail = f"{type(e).__name__}: {e}"
            code = getattr(e, "code", None)
            if code:
                detail = f"{detail} ({code})"
            raise provider_error(e.status_code, detail) from e

        if not response.choices or not response.choices[0].message.content:
            raise TransientProviderError("OpenAI returned an empty completion")
        return response.choices[0].message.content


class AnthropicCompletion:
    """
    Completion provider using Anthropic's messages API.

    Authentication: api_key parameter, then ANTHROPIC_API_KEY.
    Default model is claude-haiku-4.5, which also accepts image input.
    """

    def __init__(
        self,
        model: str = "claude-haiku-4-5-20251001",
        api_key: str | None = None,
        max_tokens: int = 2000,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        try:
            import anthropic
        except ImportError:
            raise RuntimeError("AnthropicCompletion requires 'anthropic' library")

        self.model = model
        self.max_tokens = max_tokens
        self._anthropic = anthropic

        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not key:
            raise ValueError(
                "Anthropic authentication required. Set ANTHROPIC_API_KEY "
                "(API key from console.anthropic.com)"
            )

        self.client = anthropic.Anthropic(api_key=key, timeout=timeout, max_retries=0)

    def complete(
        self,
        prompt: str,
        schema_hint: dict[str, Any],
        *,
        system: Optional[str] = None,
        image_path: Optional[str] = None,
    ) -> str:
        """Request a JSON completion from Anthropic Claude."""
        content: list[dict] = []
        if image_path:
            media_type, data = _read_image_b64(image_path)
            content.append({
                "type": "image",
                "source": {"type": "base64", "media_type": media_type, "data": data},
            })
        content.append({"type": "text", "text": build_user_prompt(prompt, schema_hint)})

        anthropic = self._anthropic
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system or DEFAULT_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APIConnectionError as e:
            raise TransientProviderError(f"{type(e).__name__}: {e}") from e
        except anthropic.APIStatusError as e:
            raise provider_error(e.status_code, f"{type(e).__name__}: {e}") from e

        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", "") == "text"
        )
        if not text:
            raise TransientProviderError("Anthropic returned an empty completion")
        return text


class OllamaCompletion:
    """
    Completion provider using Ollama's local chat API in JSON mode.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    Use a vision model (llava, llama3.2-vision) for image items.
    """

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        ensure_model: bool = True,
    ):
        self.model = model
        self.timeout = timeout
        from .ollama_utils import ollama_base_url, ollama_ensure_model
        self.base_url = ollama_base_url(base_url)
        if ensure_model:
            ollama_ensure_model(self.base_url, self.model)

    def complete(
        self,
        prompt: str,
        schema_hint: dict[str, Any],
        *,
        system: Optional[str] = None,
        image_path: Optional[str] = None,
    ) -> str:
        """Request a JSON completion from Ollama."""
        import requests

        user_message: dict[str, Any] = {
            "role": "user",
            "content": build_user_prompt(prompt, schema_hint),
        }
        if image_path:
            _, data = _read_image_b64(image_path)
            user_message["images"] = [data]

        try:
            response = requests.post(
                f"{self.base_url}/api/chat",
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": system or DEFAULT_SYSTEM_PROMPT},
                        user_message,
                    ],
                    "format": "json",
                    "stream": False,
                },
                timeout=(10, self.timeout),  # (connect, read)
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientProviderError(f"{type(e).__name__}: {e}") from e

        if not response.ok:
            detail = response.text[:200] if response.text else ""
            raise provider_error(
                response.status_code,
                f"Ollama completion failed (model={self.model}): "
                f"HTTP {response.status_code} from {self.base_url}. {detail}",
            )
        try:
            return response.json()["message"]["content"].strip()
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            detail = response.text[:200] if response.text else ""
            raise TransientProviderError(
                f"Unexpected Ollama reply from {self.base_url}: {detail}"
            ) from e


class CannedCompletion:
    """
    Returns configured responses in order, repeating the last one.

    No network access. Useful for dry runs and demos:

        [completion]
        name = "canned"
        responses = ['{"emotions": ["calm"]}']
    """

    def __init__(self, responses: list[str] | None = None):
        if not responses:
            raise ValueError("CannedCompletion requires at least one response")
        self.responses = list(responses)
        self.calls = 0

    def complete(
        self,
        prompt: str,
        schema_hint: dict[str, Any],
        *,
        system: Optional[str] = None,
        image_path: Optional[str] = None,
    ) -> str:
        index = min(self.calls, len(self.responses) - 1)
        self.calls += 1
        if image_path:
            validate_image(image_path)
        return self.responses[index]


# Register providers
_registry = get_registry()
_registry.register_completion("openai", OpenAICompletion)
_registry.register_completion("anthropic", AnthropicCompletion)
_registry.register_completion("ollama", OllamaCompletion)
_registry.register_completion("canned", CannedCompletion)
