"""
Per-item analysis.

``ItemAnalyzer.analyze`` drives one item through
pending -> analyzing -> completed | failed:

1. claim the item (only if it is pending)
2. build the category prompt and call the provider under the retry policy
3. parse the response (strict JSON, then embedded-object fallback)
4. project it onto the category's result shape and store it

Every error after the claim ends in exactly one ``fail()``; nothing is
raised to the caller for per-item problems, so batches keep going.
"""

import logging
import time
from typing import Callable, Iterable, Optional

from .errors import MalformedResponseError, describe_error
from .item_store import ItemStore
from .parsing import parse_json_object
from .prompts import ITEM_SYSTEM_PROMPT, item_prompt
from .providers.base import CompletionProvider, validate_image
from .retry import RetryPolicy, call_with_retry
from .schemas import project_result, schema_hint
from .types import AnalysisStatus, AnalyzableItem

logger = logging.getLogger(__name__)


class ItemAnalyzer:
    """Analyzes single items with an injected completion provider."""

    def __init__(
        self,
        items: ItemStore,
        provider: CompletionProvider,
        policy: RetryPolicy = RetryPolicy(),
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._items = items
        self._provider = provider
        self._policy = policy
        self._sleep = sleep

    def analyze(self, item_id: str) -> Optional[AnalyzableItem]:
        """
        Analyze one item if it is pending.

        Items that are missing or not pending are left untouched (no-op).

        Returns:
            The item as stored after this call, or None if it doesn't exist
        """
        item = self._items.acquire(item_id)
        if item is None:
            current = self._items.get(item_id)
            logger.debug(
                "Skipping %s: %s", item_id,
                f"status is {current.status.value}" if current else "not found",
            )
            return current

        logger.info("Analyzing %s item %s", item.category.value, item.id)
        try:
            result = self._run(item)
        except MalformedResponseError as e:
            self._finish_failed(item, describe_error(e), raw_response=e.raw)
        except Exception as e:
            self._finish_failed(item, describe_error(e))
        except (KeyboardInterrupt, SystemExit):
            self._finish_failed(item, "Interrupted during analysis")
            raise
        else:
            if self._items.complete(item.id, result):
                logger.info("Analyzed %s", item.id)
            else:
                logger.warning("Item %s was no longer held when its result arrived", item.id)
        return self._items.get(item.id)

    def analyze_many(self, item_ids: Iterable[str]) -> dict[str, int]:
        """Analyze several items; one item's failure never stops the rest.

        Returns counts of resulting statuses plus ``skipped`` for no-ops.
        """
        counts = {"completed": 0, "failed": 0, "skipped": 0}
        for item_id in item_ids:
            before = self._items.get(item_id)
            if before is None or before.status is not AnalysisStatus.PENDING:
                counts["skipped"] += 1
                continue
            after = self.analyze(item_id)
            if after is not None and after.status is AnalysisStatus.COMPLETED:
                counts["completed"] += 1
            elif after is not None and after.status is AnalysisStatus.FAILED:
                counts["failed"] += 1
            else:
                counts["skipped"] += 1
        return counts

    def _run(self, item: AnalyzableItem):
        image_path = None
        if item.is_image:
            image_path = str(validate_image(item.content))
        prompt = item_prompt(item.category, item.content)
        hint = schema_hint(item.category)

        raw = call_with_retry(
            lambda: self._provider.complete(
                prompt, hint, system=ITEM_SYSTEM_PROMPT, image_path=image_path,
            ),
            self._policy,
            sleep=self._sleep,
            label=f"Analysis of {item.id}",
        )
        data = parse_json_object(raw)
        return project_result(item.category, data)

    def _finish_failed(self, item: AnalyzableItem, error: str, raw_response: Optional[str] = None) -> None:
        logger.warning("Analysis of %s failed: %s", item.id, error)
        if not self._items.fail(item.id, error, raw_response=raw_response):
            logger.warning("Item %s was no longer held when it failed", item.id)
