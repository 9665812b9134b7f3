"""
Shared pytest fixtures for lifelens tests.

Provides a scripted completion provider so no test touches the network,
and a sleep recorder so retry delays cost no wall-clock time.
"""

import json
from pathlib import Path
from typing import Any, Optional

import pytest

from lifelens.api import Lens
from lifelens.config import ProviderConfig, StoreConfig
from lifelens.estimate_store import EstimateStore
from lifelens.item_store import ItemStore
from lifelens.profile_store import ProfileStore
from lifelens.schemas import project_result
from lifelens.types import Category


class ScriptedProvider:
    """
    Completion provider that replays a script.

    Each script entry is either a string (returned) or an exception
    instance (raised). The last entry repeats once the script runs out.
    Every call is recorded.
    """

    def __init__(self, *script: Any):
        self.calls: list[dict] = []
        self.load(*script)

    def load(self, *script: Any) -> None:
        """Replace the script; playback restarts at its first entry."""
        self.script = list(script) or ["{}"]
        self._position = 0

    def complete(
        self,
        prompt: str,
        schema_hint: dict[str, Any],
        *,
        system: Optional[str] = None,
        image_path: Optional[str] = None,
    ) -> str:
        index = min(self._position, len(self.script) - 1)
        self._position += 1
        self.calls.append({
            "prompt": prompt,
            "schema_hint": schema_hint,
            "system": system,
            "image_path": image_path,
        })
        entry = self.script[index]
        if isinstance(entry, BaseException):
            raise entry
        if isinstance(entry, dict):
            return json.dumps(entry, ensure_ascii=False)
        return entry

    @property
    def call_count(self) -> int:
        return len(self.calls)


class SleepRecorder:
    """Stand-in for time.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def provider():
    """A provider returning an empty JSON object; tests replace the script."""
    return ScriptedProvider("{}")


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "lifelens.db"


@pytest.fixture
def items(db_path):
    store = ItemStore(db_path)
    yield store
    store.close()


@pytest.fixture
def profiles(db_path):
    store = ProfileStore(db_path)
    yield store
    store.close()


@pytest.fixture
def estimates(db_path):
    store = EstimateStore(db_path)
    yield store
    store.close()


@pytest.fixture
def lens(tmp_path, provider, sleeper):
    """Lens on a temp store with the scripted provider injected."""
    config = StoreConfig(path=tmp_path / "store", completion=ProviderConfig("canned", {"responses": ["{}"]}))
    lens = Lens(config=config, provider=provider, sleep=sleeper)
    yield lens
    lens.close()


def add_completed(store: ItemStore, owner_id: str, category: Category, result: dict, content: str = "text"):
    """Insert an item and drive it straight to completed with ``result``."""
    item = store.create(owner_id, category, content)
    assert store.acquire(item.id) is not None
    assert store.complete(item.id, project_result(category, result))
    return store.get(item.id)


@pytest.fixture
def image_file(tmp_path) -> Path:
    """A small file with a supported image extension."""
    path = tmp_path / "photo.png"
    path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 64)
    return path
