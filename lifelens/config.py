"""
Configuration management for lifelens stores.

The configuration is stored as a TOML file in the store directory.
It specifies which completion provider to use, the retry policy, and
the thresholds used by the composite estimators.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w


CONFIG_FILENAME = "lifelens.toml"
CONFIG_VERSION = 1
DEFAULT_STORE_DIRNAME = ".lifelens"


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class RetryConfig:
    """Bounded retry for transient provider errors."""
    max_attempts: int = 3
    delay: float = 2.0


@dataclass
class EstimationConfig:
    """Thresholds shared by the composite estimators."""
    min_data_points: int = 3
    min_profile_chars: int = 10
    top_n: int = 10
    # Below these counts, confidence / health scores are dampened
    sparse_type_points: int = 5
    sparse_emotion_points: int = 10


@dataclass
class EmotionConfig:
    """Weighting for the locally derived emotional-health score."""
    stability_weight: float = 0.5


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    completion: ProviderConfig = field(default_factory=lambda: ProviderConfig("openai"))
    retry: RetryConfig = field(default_factory=RetryConfig)
    estimation: EstimationConfig = field(default_factory=EstimationConfig)
    emotion: EmotionConfig = field(default_factory=EmotionConfig)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def db_path(self) -> Path:
        """Path to the SQLite database holding items, profiles and estimates."""
        return self.path / "lifelens.db"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """
    Resolve the store directory.

    Priority:
    1. LIFELENS_STORE_PATH environment variable
    2. ~/.lifelens
    """
    env = os.environ.get("LIFELENS_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / DEFAULT_STORE_DIRNAME


def detect_default_provider() -> ProviderConfig:
    """
    Detect the best default completion provider for the current environment.

    Priority:
    1. OpenAI (if LIFELENS_OPENAI_API_KEY or OPENAI_API_KEY is set)
    2. Anthropic (if ANTHROPIC_API_KEY is set)
    3. Ollama (local, no key required)
    """
    if os.environ.get("LIFELENS_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY"):
        return ProviderConfig("openai")
    if os.environ.get("ANTHROPIC_API_KEY"):
        return ProviderConfig("anthropic")
    return ProviderConfig("ollama")


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config with auto-detected defaults."""
    return StoreConfig(path=store_path, completion=detect_default_provider())


def _section(data: dict, name: str) -> dict:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ValueError(f"Config section [{name}] must be a table")
    return value


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = _section(data, "store")
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    completion = _section(data, "completion") or {"name": detect_default_provider().name}
    retry = _section(data, "retry")
    estimation = _section(data, "estimation")
    emotion = _section(data, "emotion")

    defaults = EstimationConfig()
    config = StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        completion=ProviderConfig(
            name=completion.get("name", ""),
            params={k: v for k, v in completion.items() if k != "name"},
        ),
        retry=RetryConfig(
            max_attempts=int(retry.get("max_attempts", RetryConfig.max_attempts)),
            delay=float(retry.get("delay", RetryConfig.delay)),
        ),
        estimation=EstimationConfig(
            min_data_points=int(estimation.get("min_data_points", defaults.min_data_points)),
            min_profile_chars=int(estimation.get("min_profile_chars", defaults.min_profile_chars)),
            top_n=int(estimation.get("top_n", defaults.top_n)),
            sparse_type_points=int(estimation.get("sparse_type_points", defaults.sparse_type_points)),
            sparse_emotion_points=int(estimation.get("sparse_emotion_points", defaults.sparse_emotion_points)),
        ),
        emotion=EmotionConfig(
            stability_weight=float(emotion.get("stability_weight", EmotionConfig.stability_weight)),
        ),
    )
    validate_config(config)
    return config


def validate_config(config: StoreConfig) -> None:
    """Reject values the pipeline cannot honor."""
    if not config.completion.name:
        raise ValueError("Config [completion] requires a provider name")
    if config.retry.max_attempts < 1:
        raise ValueError("retry.max_attempts must be at least 1")
    if config.retry.delay < 0:
        raise ValueError("retry.delay must not be negative")
    if config.estimation.min_data_points < 0:
        raise ValueError("estimation.min_data_points must not be negative")
    if config.estimation.top_n < 1:
        raise ValueError("estimation.top_n must be at least 1")
    if not 0.0 <= config.emotion.stability_weight <= 1.0:
        raise ValueError("emotion.stability_weight must be between 0 and 1")


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    completion = {"name": config.completion.name}
    completion.update(config.completion.params)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "completion": completion,
        "retry": {
            "max_attempts": config.retry.max_attempts,
            "delay": config.retry.delay,
        },
        "estimation": {
            "min_data_points": config.estimation.min_data_points,
            "min_profile_chars": config.estimation.min_profile_chars,
            "top_n": config.estimation.top_n,
            "sparse_type_points": config.estimation.sparse_type_points,
            "sparse_emotion_points": config.estimation.sparse_emotion_points,
        },
        "emotion": {
            "stability_weight": config.emotion.stability_weight,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Optional[Path] = None) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    store_path = Path(store_path) if store_path is not None else get_default_store_path()
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    config = create_default_config(store_path)
    save_config(config)
    return config
