"""
Ollama helpers: server URL resolution and first-use model download.
"""

import json
import logging
import os

import requests

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"

# Pulling a vision model can take several minutes
PULL_TIMEOUT = 600


def ollama_base_url(base_url: str | None = None) -> str:
    """Resolve the Ollama base URL (explicit, then OLLAMA_HOST, then default)."""
    url = base_url or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_URL
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url.rstrip("/")


def ollama_installed_models(base_url: str) -> set[str]:
    """Names of the models the server has locally, as ``name:tag``."""
    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=5)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise RuntimeError(
            f"Cannot reach Ollama at {base_url}. "
            "Is Ollama running? Start it with: ollama serve"
        ) from e
    return {m["name"] for m in resp.json().get("models", [])}


def is_installed(model: str, installed: set[str]) -> bool:
    """Match ``model`` against installed names; an untagged name means ``:latest``."""
    bare = model.split(":", 1)[0]
    candidates = {model, f"{model}:latest", bare, f"{bare}:latest"}
    return not candidates.isdisjoint(installed)


def ollama_pull(base_url: str, model: str) -> None:
    """Download a model, logging each new status line the server streams."""
    logger.warning("Pulling Ollama model %s (first use)...", model)
    try:
        resp = requests.post(
            f"{base_url}/api/pull",
            json={"name": model, "stream": True},
            stream=True,
            timeout=PULL_TIMEOUT,
        )
        resp.raise_for_status()
    except requests.RequestException as e:
        raise RuntimeError(f"Failed to pull Ollama model '{model}': {e}") from e

    last_status = None
    for line in resp.iter_lines():
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            continue
        if event.get("error"):
            raise RuntimeError(f"Ollama pull failed for '{model}': {event['error']}")
        status = event.get("status")
        if status and status != last_status:
            logger.info("ollama pull %s: %s", model, status)
            last_status = status
    logger.warning("Ollama model %s ready", model)


def ollama_ensure_model(base_url: str, model: str) -> None:
    """Pull ``model`` unless the server already has it.

    Raises RuntimeError if Ollama is unreachable or the pull fails.
    """
    if not is_installed(model, ollama_installed_models(base_url)):
        ollama_pull(base_url, model)
