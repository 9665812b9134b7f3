"""
Error types and error logging for lifelens.

Provider failures are classified as transient (retried) or fatal (not
retried). Per-item errors end up on the item record; the CLI logs
unexpected exceptions with full stack traces while showing clean
messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class LensError(Exception):
    """Base class for lifelens errors."""


class ProviderError(LensError):
    """A completion provider call failed."""

    transient = False

    def __init__(self, detail: str, *, status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class TransientProviderError(ProviderError):
    """Network, timeout, rate limit, or server error. Worth retrying."""

    transient = True


class FatalProviderError(ProviderError):
    """Authentication, quota, or invalid request. Retrying cannot help."""


class MalformedResponseError(LensError):
    """Provider output could not be parsed as a JSON object.

    The raw text is kept so it can be stored for diagnosis.
    """

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class InsufficientDataError(LensError):
    """Not enough input for a composite estimate. No provider call was made."""

    def __init__(self, data_points: int, required: int, data_sources: Optional[dict] = None):
        self.data_points = data_points
        self.required = required
        self.data_sources = data_sources or {}
        super().__init__(
            f"Not enough data: found {data_points} data point(s), need at least {required}. "
            f"Fill in more profile fields (10+ characters each) or add and analyze "
            f"{required - data_points} more item(s)."
        )


def describe_error(exc: BaseException) -> str:
    """Error text stored on failed items: ``ExceptionType: message``."""
    return f"{type(exc).__name__}: {exc}"


def _error_log_path() -> Path:
    """Resolve error log path, respecting LIFELENS_STORE_PATH."""
    store = os.environ.get("LIFELENS_STORE_PATH")
    if store:
        return Path(store) / "lifelens-errors.log"
    return Path.home() / ".lifelens" / "lifelens-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
