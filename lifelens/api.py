"""
Core API for lifelens.

``Lens`` ties the stores, the completion provider and the analysis
components together behind one object. It is what the CLI uses and what
a web layer would call.

Example:
    lens = Lens("~/.lifelens")
    item = lens.add_document("alice", "Went climbing with Jun today...", "diary")
    lens.analyze(item.id)
    print(lens.get_summary("alice").interests)
"""

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from .aggregator import Aggregator
from .analyzer import ItemAnalyzer
from .config import StoreConfig, get_default_store_path, load_or_create_config
from .coordinator import RetryCoordinator
from .estimate_store import Estimate, EstimateStore
from .estimators import (
    EmotionEstimator,
    ReportBuilder,
    TypeEstimator,
    WeightedHealthScorer,
)
from .item_store import STALE_ANALYSIS_SECONDS, ItemStore
from .logging_config import configure_ops_log, remove_ops_log
from .profile_store import ProfileStore
from .providers.base import CompletionProvider, get_registry, validate_image
from .retry import RetryPolicy
from .types import (
    AggregationSnapshot,
    AnalysisStatus,
    AnalyzableItem,
    Category,
    EmotionEstimate,
    EstimateKind,
    Profile,
    Report,
    TEXT_CATEGORIES,
    TypeEstimate,
)

logger = logging.getLogger(__name__)


class Lens:
    """
    Content analysis for one store directory.

    The completion provider is created from config on first use, so
    read-only operations (status, summary, history) work without API keys.
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        provider: Optional[CompletionProvider] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Open (or create) a store.

        Args:
            store_path: Store directory. Uses LIFELENS_STORE_PATH or
                ~/.lifelens if not specified.
            config: Pre-loaded StoreConfig (skips config file discovery)
            provider: Injected completion provider (skips registry lookup)
            sleep: Delay function for retries (tests pass a recorder)
        """
        if config is not None:
            self._config = config
            self._store_path = config.path
        else:
            self._store_path = (
                Path(store_path).expanduser().resolve()
                if store_path is not None else get_default_store_path()
            )
            self._config = load_or_create_config(self._store_path)
        self._store_path.mkdir(parents=True, exist_ok=True)

        self._ops_log_handler = configure_ops_log(self._store_path)

        db_path = self._config.db_path
        self._items = ItemStore(db_path)
        self._profiles = ProfileStore(db_path)
        self._estimates = EstimateStore(db_path)

        self._provider = provider
        self._sleep = sleep
        self._policy = RetryPolicy.from_config(self._config.retry)
        self._aggregator = Aggregator(self._items, top_n=self._config.estimation.top_n)

        # Built on first use, once the provider exists
        self._analyzer: Optional[ItemAnalyzer] = None
        self._coordinator: Optional[RetryCoordinator] = None

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def store_path(self) -> Path:
        return self._store_path

    # -- Providers and components --------------------------------------------

    def _get_provider(self) -> CompletionProvider:
        """Get completion provider, creating it lazily on first use."""
        if self._provider is None:
            self._provider = get_registry().create_completion(
                self._config.completion.name,
                self._config.completion.params,
            )
        return self._provider

    def _get_analyzer(self) -> ItemAnalyzer:
        if self._analyzer is None:
            self._analyzer = ItemAnalyzer(
                self._items, self._get_provider(), self._policy, sleep=self._sleep,
            )
        return self._analyzer

    def _get_coordinator(self) -> RetryCoordinator:
        if self._coordinator is None:
            self._coordinator = RetryCoordinator(self._items, self._get_analyzer())
        return self._coordinator

    def _estimator_kwargs(self) -> dict:
        return {
            "settings": self._config.estimation,
            "policy": self._policy,
            "sleep": self._sleep,
        }

    def _estimator_args(self) -> tuple:
        return (self._items, self._profiles, self._estimates, self._get_provider())

    # -- Ingestion ------------------------------------------------------------

    def add_document(
        self,
        owner_id: str,
        text: str,
        category: Category | str = Category.OTHER,
        *,
        id: Optional[str] = None,
    ) -> AnalyzableItem:
        """Add a text document in 'pending' status."""
        if isinstance(category, str):
            category = Category.parse(category)
        if category not in TEXT_CATEGORIES:
            raise ValueError(f"'{category.value}' is not a document category; use add_image()")
        if not text or not text.strip():
            raise ValueError("Document text is empty")
        return self._items.create(owner_id, category, text, id=id)

    def add_image(self, owner_id: str, path: str | Path, *, id: Optional[str] = None) -> AnalyzableItem:
        """
        Add an image (by file path) in 'pending' status.

        Raises:
            FatalProviderError: Missing file, unsupported type, or over 10MB
        """
        resolved = validate_image(str(Path(path).expanduser()))
        return self._items.create(owner_id, Category.IMAGE, str(resolved.resolve()), id=id)

    def set_profile(self, owner_id: str, *, replace: bool = False, **fields: str) -> Profile:
        """Create or update profile fields (see types.PROFILE_FIELDS)."""
        return self._profiles.upsert(owner_id, fields, replace=replace)

    def get_profile(self, owner_id: str) -> Optional[Profile]:
        return self._profiles.get(owner_id)

    # -- Items ----------------------------------------------------------------

    def get_item(self, item_id: str) -> Optional[AnalyzableItem]:
        return self._items.get(item_id)

    def list_items(
        self,
        owner_id: str,
        status: Optional[AnalysisStatus | str] = None,
        category: Optional[Category | str] = None,
    ) -> list[AnalyzableItem]:
        """List an owner's items in creation order."""
        if isinstance(status, str):
            status = AnalysisStatus(status)
        if isinstance(category, str):
            category = Category.parse(category)
        return self._items.list_by_owner(owner_id, status=status, category=category)

    def status_counts(self, owner_id: str) -> dict[str, int]:
        """Counts of pending, analyzing, completed and failed items."""
        return self._items.status_counts(owner_id)

    # -- Analysis -------------------------------------------------------------

    def analyze(self, item_id: str) -> Optional[AnalyzableItem]:
        """Analyze one item. No-op unless it is pending."""
        return self._get_analyzer().analyze(item_id)

    def process_pending(self, owner_id: Optional[str] = None, limit: int = 10) -> dict:
        """
        Analyze the oldest pending items.

        Args:
            owner_id: Restrict to one owner (default: all owners)
            limit: Maximum number of items to process in this batch

        Returns:
            Dict with: processed (int), completed (int), failed (int), errors (list)
        """
        result = {"processed": 0, "completed": 0, "failed": 0, "errors": []}
        analyzer = self._get_analyzer()
        for item_id in self._items.pending_ids(owner_id, limit=limit):
            item = analyzer.analyze(item_id)
            if item is None:
                continue
            result["processed"] += 1
            if item.status is AnalysisStatus.COMPLETED:
                result["completed"] += 1
            elif item.status is AnalysisStatus.FAILED:
                result["failed"] += 1
                result["errors"].append({"id": item.id, "error": item.error})
        if result["processed"]:
            logger.info(
                "Processed %d pending items (%d completed, %d failed)",
                result["processed"], result["completed"], result["failed"],
            )
        return result

    def retry(self, item_id: str, *, analyze: bool = True) -> bool:
        """Re-queue one failed item (and analyze it). False if it was not failed."""
        return self._get_coordinator().retry(item_id, analyze=analyze)

    def retry_all_failed(self, owner_id: str, *, analyze: bool = True) -> int:
        """Re-queue every failed item of an owner. Returns the count."""
        return self._get_coordinator().retry_all_failed(owner_id, analyze=analyze)

    def recover_stale(self, max_age_seconds: int = STALE_ANALYSIS_SECONDS) -> list[str]:
        """Mark analyses orphaned by a crashed process as failed."""
        # Provider not needed: go straight to the store
        return self._items.recover_stale(max_age_seconds)

    # -- Aggregation and estimates ---------------------------------------------

    def get_summary(self, owner_id: str) -> AggregationSnapshot:
        """Ranked interests, keywords and moods over completed items."""
        return self._aggregator.summarize(owner_id)

    def estimate_type(self, owner_id: str) -> TypeEstimate:
        """
        Estimate a four-letter personality type.

        Raises:
            InsufficientDataError: Too little data (no provider call made)
        """
        estimator = TypeEstimator(*self._estimator_args(), **self._estimator_kwargs())
        return estimator.estimate(owner_id)

    def estimate_emotion(self, owner_id: str) -> EmotionEstimate:
        """
        Estimate emotional health.

        Raises:
            InsufficientDataError: Too little data (no provider call made)
        """
        estimator = EmotionEstimator(
            *self._estimator_args(),
            scorer=WeightedHealthScorer(self._config.emotion.stability_weight),
            **self._estimator_kwargs(),
        )
        return estimator.estimate(owner_id)

    def build_report(self, owner_id: str, title: Optional[str] = None) -> Report:
        """
        Build a narrative report, using the latest type and emotion estimates.

        Raises:
            InsufficientDataError: Too little data (no provider call made)
        """
        builder = ReportBuilder(*self._estimator_args(), **self._estimator_kwargs())
        return builder.build(owner_id, title=title)

    def latest_estimate(self, kind: EstimateKind | str, owner_id: str) -> Optional[Estimate]:
        return self._estimates.latest(EstimateKind(kind), owner_id)

    def list_estimates(self, kind: EstimateKind | str, owner_id: str, limit: int = 20) -> list[Estimate]:
        """Estimate history of one kind, newest first."""
        return self._estimates.history(EstimateKind(kind), owner_id, limit=limit)

    # -- Lifecycle ------------------------------------------------------------

    def close(self) -> None:
        """Close stores and remove the ops log handler."""
        for store in (self._items, self._profiles, self._estimates):
            store.close()
        if self._ops_log_handler is not None:
            remove_ops_log(self._ops_log_handler)
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
