"""
Composite estimators: personality type, emotional health, and reports.

Each estimator reads the owner's profile and completed items, checks
that there is enough data, makes one provider request (under the retry
policy) and appends a new record to the estimate store.

A data point is a profile field with at least ``min_profile_chars``
characters, or a completed item. Reports also count the latest type and
emotion estimates. Below ``min_data_points`` an estimator raises
InsufficientDataError before contacting the provider.

All persisted scores are clamped to [0, 100].
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .aggregator import Aggregator, summarize_items
from .config import EstimationConfig
from .errors import InsufficientDataError, MalformedResponseError
from .estimate_store import EstimateStore
from .item_store import ItemStore
from .parsing import parse_json_object
from .profile_store import ProfileStore
from .prompts import (
    EMOTION_SCHEMA_HINT,
    ESTIMATE_SYSTEM_PROMPT,
    REPORT_SCHEMA_HINT,
    TYPE_SCHEMA_HINT,
    emotion_prompt,
    report_prompt,
    type_prompt,
)
from .providers.base import CompletionProvider
from .retry import RetryPolicy, call_with_retry
from .schemas import DiaryResult, ImageResult, coerce_list, coerce_str
from .types import (
    AggregationSnapshot,
    AnalyzableItem,
    AxisScore,
    EmotionEstimate,
    EstimateKind,
    Profile,
    Report,
    TimelineEntry,
    TypeEstimate,
    clamp_score,
    utc_now,
)

logger = logging.getLogger(__name__)

# (axis, pole at score >= 50, pole below 50)
TYPE_AXES = (
    ("EI", "E", "I"),
    ("SN", "S", "N"),
    ("TF", "T", "F"),
    ("JP", "J", "P"),
)

# Floor applied when sparse data lowers a score
SPARSE_FLOOR = 30.0
SPARSE_TYPE_PENALTY = 20.0
SPARSE_EMOTION_PENALTY = 10.0


def dampen(score: float, penalty: float, floor: float = SPARSE_FLOOR) -> float:
    """Lower a score by ``penalty`` but not below ``floor``. Never raises it."""
    return min(score, max(score - penalty, floor))


def _number(value: Any) -> Optional[float]:
    """A number from JSON, or None. Out-of-range integers become +/-inf."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return float("inf") if value > 0 else float("-inf")
    except ValueError:
        return None
    if number != number:
        return None
    return number


@dataclass
class EstimationInput:
    """Everything an estimator reads, gathered once per call."""
    owner_id: str
    profile: Optional[Profile]
    items: list[AnalyzableItem]
    snapshot: AggregationSnapshot
    filled_fields: list[str]
    data_points: int
    data_sources: dict = field(default_factory=dict)


class _Estimator:
    """Shared gathering, precondition and provider call."""

    kind: EstimateKind

    def __init__(
        self,
        items: ItemStore,
        profiles: ProfileStore,
        estimates: EstimateStore,
        provider: CompletionProvider,
        *,
        settings: Optional[EstimationConfig] = None,
        policy: RetryPolicy = RetryPolicy(),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._items = items
        self._profiles = profiles
        self._estimates = estimates
        self._provider = provider
        self.settings = settings or EstimationConfig()
        self._aggregator = Aggregator(items, top_n=self.settings.top_n)
        self._policy = policy
        self._sleep = sleep

    def gather(self, owner_id: str, *, extra_points: int = 0, extra_sources: Optional[dict] = None) -> EstimationInput:
        """
        Collect inputs and enforce the data-point threshold.

        Raises:
            InsufficientDataError: Fewer than ``min_data_points`` data points
        """
        profile = self._profiles.get(owner_id)
        filled = profile.filled_fields(self.settings.min_profile_chars) if profile else []
        items = self._aggregator.completed_items(owner_id)
        snapshot = summarize_items(owner_id, items, self.settings.top_n)
        data_points = len(filled) + len(items) + extra_points

        sources = {
            "profile": profile is not None and bool(filled),
            "profile_fields": filled,
            "items": dict(snapshot.category_counts),
            "item_count": len(items),
            "data_points": data_points,
        }
        if extra_sources:
            sources.update(extra_sources)

        if data_points < self.settings.min_data_points:
            logger.info(
                "Not enough data for %s of %s: %d < %d",
                self.kind.value, owner_id, data_points, self.settings.min_data_points,
            )
            raise InsufficientDataError(data_points, self.settings.min_data_points, sources)

        return EstimationInput(
            owner_id=owner_id,
            profile=profile,
            items=items,
            snapshot=snapshot,
            filled_fields=filled,
            data_points=data_points,
            data_sources=sources,
        )

    def request(self, prompt: str, hint: dict, owner_id: str) -> dict:
        """One provider request, retried on transient errors, parsed to a dict."""
        raw = call_with_retry(
            lambda: self._provider.complete(prompt, hint, system=ESTIMATE_SYSTEM_PROMPT),
            self._policy,
            sleep=self._sleep,
            label=f"{self.kind.value} for {owner_id}",
        )
        return parse_json_object(raw)


class TypeEstimator(_Estimator):
    """Four-axis personality type estimate (E/I, S/N, T/F, J/P)."""

    kind = EstimateKind.TYPE

    def estimate(self, owner_id: str) -> TypeEstimate:
        inputs = self.gather(owner_id)
        data = self.request(type_prompt(inputs.profile, inputs.snapshot), TYPE_SCHEMA_HINT, owner_id)

        axes = self.parse_axes(data)
        type_code = "".join(axis.letter for axis in axes)

        reported = _number(data.get("confidence"))
        if reported is not None:
            confidence = clamp_score(reported)
        else:
            confidence = sum(axis.confidence for axis in axes) / len(axes)
        if inputs.data_points < self.settings.sparse_type_points:
            confidence = dampen(confidence, SPARSE_TYPE_PENALTY)

        estimate = TypeEstimate(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            type_code=type_code,
            axes=axes,
            confidence=clamp_score(confidence),
            description=coerce_str(data.get("description")),
            characteristics=coerce_list(data.get("characteristics")),
            suitable_careers=coerce_list(data.get("suitable_careers")),
            suitable_environments=coerce_list(data.get("suitable_environments")),
            growth_suggestions=coerce_list(data.get("growth_suggestions")),
            data_sources=inputs.data_sources,
        )
        logger.info("Estimated type %s for %s (confidence %.0f)", type_code, owner_id, estimate.confidence)
        return self._estimates.add(estimate)

    @staticmethod
    def parse_axes(data: dict) -> list[AxisScore]:
        """
        Read the four axis scores. Letters are derived here from the score,
        never taken from the provider.

        Accepts ``{"EI": {"score": 70, "rationale": ...}}`` or a bare number
        per axis, under ``axes`` or ``dimensions``. A missing axis scores 50.

        Raises:
            MalformedResponseError: No axis score at all
        """
        raw_axes = data.get("axes") or data.get("dimensions") or {}
        if not isinstance(raw_axes, dict):
            raw_axes = {}
        axes = []
        found = 0
        for name, high, low in TYPE_AXES:
            entry = raw_axes.get(name)
            rationale = ""
            if isinstance(entry, dict):
                score = _number(entry.get("score"))
                rationale = coerce_str(entry.get("rationale") or entry.get("description"))
            else:
                score = _number(entry)
            if score is not None:
                found += 1
            score = clamp_score(score, default=50.0)
            letter = high if score >= 50 else low
            axes.append(AxisScore(axis=name, score=score, letter=letter, rationale=rationale))
        if not found:
            raise MalformedResponseError("Type estimate has no axis scores", raw=str(data))
        return axes


class WeightedHealthScorer:
    """
    Emotional-health score.

    Uses the provider's ``health_score`` when it reports one. Otherwise
    blends stability with the positive/negative balance, where balance is
    ``50 + (positive - negative) / 2``. ``stability_weight`` is the share
    given to stability.
    """

    def __init__(self, stability_weight: float = 0.5):
        if not 0.0 <= stability_weight <= 1.0:
            raise ValueError("stability_weight must be between 0 and 1")
        self.stability_weight = stability_weight

    def __call__(self, reported: Optional[float], positive: float, negative: float, stability: float) -> float:
        if reported is not None:
            return clamp_score(reported)
        balance = clamp_score(50.0 + (positive - negative) / 2)
        w = self.stability_weight
        return clamp_score(w * stability + (1 - w) * balance)


HealthScorer = Callable[[Optional[float], float, float, float], float]


class EmotionEstimator(_Estimator):
    """Emotional-health estimate from diary emotions and image moods."""

    kind = EstimateKind.EMOTION

    def __init__(self, *args, scorer: Optional[HealthScorer] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.scorer = scorer or WeightedHealthScorer()

    @staticmethod
    def emotion_signals(items: list[AnalyzableItem]) -> tuple[list, list]:
        """(date, category, emotions) for text items and (date, mood) for images."""
        document_emotions = []
        image_moods = []
        for item in items:
            if isinstance(item.result, DiaryResult) and item.result.emotions:
                document_emotions.append((item.created_at, item.category.value, item.result.emotions))
            elif isinstance(item.result, ImageResult) and item.result.mood:
                image_moods.append((item.created_at, item.result.mood))
        return document_emotions, image_moods

    @staticmethod
    def build_timeline(document_emotions: list, image_moods: list) -> list[TimelineEntry]:
        """Date-ordered timeline. Documents contribute their first emotion."""
        timeline = [
            TimelineEntry(date=date, source="document", emotion=emotions[0])
            for date, _, emotions in document_emotions
        ]
        timeline.extend(
            TimelineEntry(date=date, source="image", emotion=mood)
            for date, mood in image_moods
        )
        timeline.sort(key=lambda entry: entry.date)
        return timeline

    def estimate(self, owner_id: str) -> EmotionEstimate:
        inputs = self.gather(owner_id)
        document_emotions, image_moods = self.emotion_signals(inputs.items)
        data = self.request(emotion_prompt(document_emotions, image_moods), EMOTION_SCHEMA_HINT, owner_id)

        ratio = data.get("positive_negative_ratio")
        if not isinstance(ratio, dict):
            ratio = {}
        positive = clamp_score(_first_number(ratio.get("positive"), data.get("positive_ratio")))
        negative = clamp_score(_first_number(ratio.get("negative"), data.get("negative_ratio")))
        stability = clamp_score(_number(data.get("stability_score")))
        health = clamp_score(self.scorer(_number(data.get("health_score")), positive, negative, stability))

        data_count = len(inputs.items)
        if data_count < self.settings.sparse_emotion_points:
            health = dampen(health, SPARSE_EMOTION_PENALTY)
            stability = dampen(stability, SPARSE_EMOTION_PENALTY)

        estimate = EmotionEstimate(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            positive_ratio=positive,
            negative_ratio=negative,
            stability_score=clamp_score(stability),
            health_score=clamp_score(health),
            primary_emotions=coerce_list(data.get("primary_emotions")),
            emotion_patterns=coerce_list(data.get("emotion_patterns")),
            concerns=coerce_list(data.get("concerns")),
            suggestions=coerce_list(data.get("suggestions")),
            emotion_timeline=self.build_timeline(document_emotions, image_moods),
            data_count=data_count,
            data_sources=inputs.data_sources,
        )
        logger.info("Estimated emotional health %.0f for %s", estimate.health_score, owner_id)
        return self._estimates.add(estimate)


def _first_number(*values: Any) -> Optional[float]:
    for value in values:
        number = _number(value)
        if number is not None:
            return number
    return None


class ReportBuilder(_Estimator):
    """Narrative report; the latest type and emotion estimates feed into it."""

    kind = EstimateKind.REPORT

    def build(self, owner_id: str, title: Optional[str] = None) -> Report:
        type_estimate = self._estimates.latest(EstimateKind.TYPE, owner_id)
        emotion_estimate = self._estimates.latest(EstimateKind.EMOTION, owner_id)
        extra = int(type_estimate is not None) + int(emotion_estimate is not None)
        inputs = self.gather(
            owner_id,
            extra_points=extra,
            extra_sources={
                "type_estimate": type_estimate.id if type_estimate else None,
                "emotion_estimate": emotion_estimate.id if emotion_estimate else None,
            },
        )
        data = self.request(
            report_prompt(inputs.profile, inputs.snapshot, type_estimate, emotion_estimate),
            REPORT_SCHEMA_HINT,
            owner_id,
        )

        report = Report(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            title=(title or "").strip() or coerce_str(data.get("title")) or default_title(),
            summary=coerce_str(data.get("summary")),
            personality=coerce_str(data.get("personality")),
            strengths=coerce_list(data.get("strengths")),
            improvements=coerce_list(data.get("improvements")),
            career_suggestions=coerce_list(data.get("career_suggestions")),
            lifestyle_recommendations=coerce_list(data.get("lifestyle_recommendations")),
            relationship_style=coerce_str(data.get("relationship_style")),
            growth_roadmap=coerce_list(data.get("growth_roadmap")),
            cautions=coerce_list(data.get("cautions")),
            data_sources=inputs.data_sources,
        )
        logger.info("Built report %s for %s", report.id, owner_id)
        return self._estimates.add(report)


def default_title() -> str:
    return f"Insight report - {utc_now()[:10]}"
