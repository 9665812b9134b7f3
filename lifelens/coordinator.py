"""
Re-queue failed items and hand them back to the analyzer.

Only failed items are eligible, and each goes failed -> pending before
the analyzer sees it, so the analyzer's own pending-only claim still
decides who runs it. Calling retry twice in a row re-queues nothing the
second time unless the first round failed again.
"""

import logging

from .analyzer import ItemAnalyzer
from .item_store import ItemStore
from .types import AnalysisStatus

logger = logging.getLogger(__name__)


class RetryCoordinator:

    def __init__(self, items: ItemStore, analyzer: ItemAnalyzer):
        self._items = items
        self._analyzer = analyzer

    def retry_all_failed(self, owner_id: str, *, analyze: bool = True) -> int:
        """
        Re-queue every failed item of an owner.

        Args:
            owner_id: Owner whose failed items are retried
            analyze: Run the analyzer on each re-queued item now. With
                False the items are left pending for `process_pending`.

        Returns:
            Number of items moved back to pending
        """
        failed = self._items.list_by_owner(owner_id, status=AnalysisStatus.FAILED)
        requeued = [item.id for item in failed if self._items.requeue(item.id)]
        if requeued:
            logger.info("Re-queued %d failed items for %s", len(requeued), owner_id)
        if analyze:
            self._analyzer.analyze_many(requeued)
        return len(requeued)

    def retry(self, item_id: str, *, analyze: bool = True) -> bool:
        """Re-queue one failed item. Returns False if it was not failed."""
        if not self._items.requeue(item_id):
            return False
        logger.info("Re-queued %s", item_id)
        if analyze:
            self._analyzer.analyze(item_id)
        return True
