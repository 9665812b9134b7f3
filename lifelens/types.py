"""
Data types for content analysis.

Items move through a small state machine (pending, analyzing, completed,
failed). Composite estimates are immutable records built from many
completed items plus the owner's profile.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class Category(str, Enum):
    """Closed set of artifact categories. Each has its own result shape."""
    DIARY = "diary"
    NOTE = "note"
    IMAGE = "image"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str) -> "Category":
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(c.value for c in cls)
            raise ValueError(f"Unknown category '{value}'. Expected one of: {choices}") from None


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class EstimateKind(str, Enum):
    """Closed set of composite estimate kinds, one table each."""
    TYPE = "type-estimation"
    EMOTION = "emotion-analysis"
    REPORT = "report"


# Document text is stored inline; image content is a filesystem path handle
TEXT_CATEGORIES = frozenset({Category.DIARY, Category.NOTE, Category.OTHER})

# Free-text profile fields, in display order
PROFILE_FIELDS = (
    "interests",
    "hobbies",
    "personality",
    "current_job",
    "future_dream",
    "ideal_life",
    "ideal_type",
    "concerns",
    "dreams",
    "dating_style",
    "other_info",
)


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS.

    All timestamps are UTC, stored without timezone suffix.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def clamp_score(value: Any, default: float = 50.0) -> float:
    """Coerce a provider-reported score to a number in [0, 100].

    Non-numeric values (including bools) fall back to ``default``.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        number = default
    else:
        try:
            number = float(value)
        except OverflowError:
            # Integers beyond float range
            number = 100.0 if value > 0 else 0.0
        except ValueError:
            number = default
    if number != number:  # NaN
        number = default
    return max(0.0, min(100.0, number))


@dataclass
class AnalyzableItem:
    """
    A single uploaded artifact and its analysis state.

    Invariants: ``result`` is set iff status is completed; ``error`` is set
    iff status is failed.

    Attributes:
        id: Item identifier
        owner_id: Owner the item belongs to
        category: Artifact category (selects prompt and result shape)
        content: Document text, or an image file path for images
        status: Current analysis status
        result: Category-specific result (see schemas.py), when completed
        error: Failure detail, when failed
        raw_response: Unparseable provider output kept for diagnosis
        analyzed_at: When the item reached completed
        created_at: Ingestion time
        claimed_at: When the current analysis claim was taken
        seq: Creation sequence number, used for deterministic ordering
    """
    id: str
    owner_id: str
    category: Category
    content: str
    status: AnalysisStatus = AnalysisStatus.PENDING
    result: Optional[Any] = None
    error: Optional[str] = None
    raw_response: Optional[str] = None
    analyzed_at: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    claimed_at: Optional[str] = None
    seq: int = 0

    @property
    def is_image(self) -> bool:
        return self.category is Category.IMAGE

    def to_dict(self) -> dict:
        from .schemas import result_to_dict
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "category": self.category.value,
            "status": self.status.value,
            "result": result_to_dict(self.result) if self.result is not None else None,
            "error": self.error,
            "analyzed_at": self.analyzed_at,
            "created_at": self.created_at,
        }


@dataclass
class Profile:
    """Free-text self-description supplied by the owner."""
    owner_id: str
    fields: dict[str, str] = field(default_factory=dict)
    updated_at: str = field(default_factory=utc_now)

    def filled_fields(self, min_chars: int = 10) -> list[str]:
        """Names of fields whose stripped text is at least ``min_chars`` long."""
        return [
            name for name in PROFILE_FIELDS
            if len((self.fields.get(name) or "").strip()) >= min_chars
        ]

    def as_text(self) -> str:
        """Render non-empty fields as ``name: value`` lines for prompts."""
        lines = []
        for name in PROFILE_FIELDS:
            value = (self.fields.get(name) or "").strip()
            if value:
                lines.append(f"{name.replace('_', ' ')}: {value}")
        return "\n".join(lines)


@dataclass
class AggregationSnapshot:
    """
    Ranked signal counts over an owner's completed items.

    Ranked lists are truncated to top-N; ``*_counts`` hold every observed
    value with its count in first-observed order. Recomputed on demand.
    """
    owner_id: str
    interests: list[tuple[str, int]] = field(default_factory=list)
    keywords: list[tuple[str, int]] = field(default_factory=list)
    moods: list[tuple[str, int]] = field(default_factory=list)
    interest_counts: dict[str, int] = field(default_factory=dict)
    keyword_counts: dict[str, int] = field(default_factory=dict)
    mood_counts: dict[str, int] = field(default_factory=dict)
    item_count: int = 0
    category_counts: dict[str, int] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.item_count == 0

    def to_dict(self) -> dict:
        return {
            "owner_id": self.owner_id,
            "item_count": self.item_count,
            "category_counts": dict(self.category_counts),
            "interests": [[k, n] for k, n in self.interests],
            "keywords": [[k, n] for k, n in self.keywords],
            "moods": [[k, n] for k, n in self.moods],
        }


@dataclass
class AxisScore:
    """One axis of a four-letter type estimate."""
    axis: str
    score: float
    letter: str
    rationale: str = ""

    @property
    def confidence(self) -> float:
        return abs(self.score - 50.0) * 2


@dataclass
class TypeEstimate:
    id: str
    owner_id: str
    type_code: str
    axes: list[AxisScore]
    confidence: float
    description: str = ""
    characteristics: list[str] = field(default_factory=list)
    suitable_careers: list[str] = field(default_factory=list)
    suitable_environments: list[str] = field(default_factory=list)
    growth_suggestions: list[str] = field(default_factory=list)
    data_sources: dict = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now)

    kind = EstimateKind.TYPE


@dataclass
class TimelineEntry:
    date: str
    source: str  # "document" or "image"
    emotion: str


@dataclass
class EmotionEstimate:
    id: str
    owner_id: str
    positive_ratio: float
    negative_ratio: float
    stability_score: float
    health_score: float
    primary_emotions: list[str] = field(default_factory=list)
    emotion_patterns: list[str] = field(default_factory=list)
    concerns: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    emotion_timeline: list[TimelineEntry] = field(default_factory=list)
    data_count: int = 0
    data_sources: dict = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now)

    kind = EstimateKind.EMOTION


@dataclass
class Report:
    id: str
    owner_id: str
    title: str
    summary: str = ""
    personality: str = ""
    strengths: list[str] = field(default_factory=list)
    improvements: list[str] = field(default_factory=list)
    career_suggestions: list[str] = field(default_factory=list)
    lifestyle_recommendations: list[str] = field(default_factory=list)
    relationship_style: str = ""
    growth_roadmap: list[str] = field(default_factory=list)
    cautions: list[str] = field(default_factory=list)
    data_sources: dict = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now)

    kind = EstimateKind.REPORT
