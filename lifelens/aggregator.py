"""
Frequency ranking of signals across an owner's completed items.

Three signals are collected from each result:

    interests   diary.interests, note.interests, image.inferred_interests
    keywords    other.keywords, image.keywords, note.topics
    moods       diary.emotions, image.mood

Items are read in creation order and counts are kept in first-observed
order. Ranking sorts by count only, and Python's sort is stable, so ties
keep first-observed order and the output is the same on every call.
"""

import logging
from typing import Iterable

from .item_store import ItemStore
from .schemas import DiaryResult, ImageResult, NoteResult, TextResult
from .types import AggregationSnapshot, AnalysisStatus, AnalyzableItem, Category

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 10


def interests_of(item: AnalyzableItem) -> list[str]:
    result = item.result
    if isinstance(result, (DiaryResult, NoteResult)):
        return result.interests
    elif isinstance(result, ImageResult):
        return result.inferred_interests
    return []


def keywords_of(item: AnalyzableItem) -> list[str]:
    result = item.result
    if isinstance(result, (TextResult, ImageResult)):
        return result.keywords
    elif isinstance(result, NoteResult):
        return result.topics
    return []


def moods_of(item: AnalyzableItem) -> list[str]:
    result = item.result
    if isinstance(result, DiaryResult):
        return result.emotions
    elif isinstance(result, ImageResult):
        return [result.mood] if result.mood else []
    return []


def count_occurrences(values: Iterable[str]) -> dict[str, int]:
    """Count values; the dict keeps first-observed order."""
    counts: dict[str, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    return counts


def rank(counts: dict[str, int], top_n: int) -> list[tuple[str, int]]:
    """Highest counts first; ties keep the dict's (first-observed) order."""
    ranked = sorted(counts.items(), key=lambda kv: -kv[1])
    return ranked[:top_n]


def summarize_items(owner_id: str, items: list[AnalyzableItem], top_n: int = DEFAULT_TOP_N) -> AggregationSnapshot:
    """Build a snapshot from completed items given in creation order."""
    interests: list[str] = []
    keywords: list[str] = []
    moods: list[str] = []
    category_counts = {c.value: 0 for c in Category}
    for item in items:
        if item.status is not AnalysisStatus.COMPLETED or item.result is None:
            continue
        category_counts[item.category.value] += 1
        interests.extend(interests_of(item))
        keywords.extend(keywords_of(item))
        moods.extend(moods_of(item))

    interest_counts = count_occurrences(interests)
    keyword_counts = count_occurrences(keywords)
    mood_counts = count_occurrences(moods)
    return AggregationSnapshot(
        owner_id=owner_id,
        interests=rank(interest_counts, top_n),
        keywords=rank(keyword_counts, top_n),
        moods=rank(mood_counts, top_n),
        interest_counts=interest_counts,
        keyword_counts=keyword_counts,
        mood_counts=mood_counts,
        item_count=sum(category_counts.values()),
        category_counts={k: v for k, v in category_counts.items() if v},
    )


class Aggregator:
    """Read-only summaries over an item store."""

    def __init__(self, items: ItemStore, top_n: int = DEFAULT_TOP_N):
        self._items = items
        self.top_n = top_n

    def completed_items(self, owner_id: str) -> list[AnalyzableItem]:
        return self._items.list_by_owner(owner_id, status=AnalysisStatus.COMPLETED)

    def summarize(self, owner_id: str) -> AggregationSnapshot:
        """Rank interests, keywords and moods over completed items.

        Zero completed items gives an empty snapshot.
        """
        snapshot = summarize_items(owner_id, self.completed_items(owner_id), self.top_n)
        logger.debug("Summarized %d items for %s", snapshot.item_count, owner_id)
        return snapshot
