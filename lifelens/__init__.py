"""
lifelens

Structured insights from personal documents and images. Each uploaded
item is analyzed by an LLM into a category-specific result; completed
results are aggregated and fed into composite estimates (personality
type, emotional health, narrative reports).

Quick Start:
    from lifelens import Lens

    lens = Lens()  # uses ~/.lifelens
    item = lens.add_document("me", "Read two chapters and went to a film...", "diary")
    lens.analyze(item.id)
    print(lens.get_summary("me").interests)

CLI Usage:
    lifelens add --category diary "Today I ..."
    lifelens pending
    lifelens summary
    lifelens type

Environment Variables:
    LIFELENS_STORE_PATH      - Override default store location
    LIFELENS_OPENAI_API_KEY  - API key for the OpenAI provider
    ANTHROPIC_API_KEY        - API key for the Anthropic provider
    OLLAMA_HOST              - Ollama server for the local provider

The store is initialized automatically on first use. Configuration is
persisted in lifelens.toml within the store directory.
"""

from .api import Lens
from .errors import (
    FatalProviderError,
    InsufficientDataError,
    LensError,
    MalformedResponseError,
    TransientProviderError,
)
from .types import AnalysisStatus, AnalyzableItem, Category, EstimateKind

__version__ = "0.3.0"
__all__ = [
    "Lens",
    "AnalyzableItem",
    "AnalysisStatus",
    "Category",
    "EstimateKind",
    "LensError",
    "TransientProviderError",
    "FatalProviderError",
    "MalformedResponseError",
    "InsufficientDataError",
]
