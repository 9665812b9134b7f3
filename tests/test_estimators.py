"""Tests for the composite estimators."""

import pytest

from conftest import ScriptedProvider, add_completed
from lifelens.config import EstimationConfig
from lifelens.errors import FatalProviderError, InsufficientDataError, MalformedResponseError, TransientProviderError
from lifelens.estimators import (
    EmotionEstimator,
    ReportBuilder,
    TypeEstimator,
    WeightedHealthScorer,
    dampen,
)
from lifelens.retry import RetryPolicy
from lifelens.types import (
    AxisScore,
    Category,
    EmotionEstimate,
    EstimateKind,
    TypeEstimate,
    clamp_score,
)

TYPE_RESPONSE = {
    "axes": {
        "EI": {"score": 70, "rationale": "talks about friends a lot"},
        "SN": {"score": 30},
        "TF": 50,
        "JP": {"score": 20},
    },
    "description": "curious and warm",
    "characteristics": ["sociable"],
}

EMOTION_RESPONSE = {
    "primary_emotions": ["joy", "calm"],
    "positive_negative_ratio": {"positive": 70, "negative": 30},
    "stability_score": 80,
    "suggestions": ["keep journaling"],
}


def make(cls, stores, provider, sleeper, **settings):
    items, profiles, estimates = stores
    return cls(
        items, profiles, estimates, provider,
        settings=EstimationConfig(**settings),
        policy=RetryPolicy(max_attempts=3, delay=2.0),
        sleep=sleeper,
    )


@pytest.fixture
def stores(items, profiles, estimates):
    return items, profiles, estimates


def three_diaries(items, owner_id="u1"):
    for emotion in ("joy", "calm", "joy"):
        add_completed(items, owner_id, Category.DIARY, {"emotions": [emotion], "interests": ["reading"]})


class TestPreconditions:

    def test_insufficient_data_makes_no_provider_call(self, stores, sleeper):
        items, profiles, estimates = stores
        profiles.upsert("u1", {"interests": "short"})
        add_completed(items, "u1", Category.DIARY, {"emotions": ["joy"]})
        provider = ScriptedProvider(TYPE_RESPONSE)

        for cls in (TypeEstimator, EmotionEstimator):
            with pytest.raises(InsufficientDataError) as excinfo:
                make(cls, stores, provider, sleeper).estimate("u1")
            assert excinfo.value.data_points == 1
            assert excinfo.value.required == 3
        with pytest.raises(InsufficientDataError):
            make(ReportBuilder, stores, provider, sleeper).build("u1")

        assert provider.call_count == 0
        assert estimates.count(EstimateKind.TYPE, "u1") == 0
        assert estimates.count(EstimateKind.REPORT, "u1") == 0

    def test_message_is_actionable(self, stores, sleeper):
        with pytest.raises(InsufficientDataError, match="need at least 3"):
            make(TypeEstimator, stores, ScriptedProvider({}), sleeper).estimate("nobody")

    def test_profile_fields_count_as_data_points(self, stores, sleeper):
        items, profiles, _ = stores
        profiles.upsert("u1", {
            "interests": "reading novels and essays",
            "hobbies": "hiking on weekends",
            "current_job": "dev",
        })
        add_completed(items, "u1", Category.NOTE, {"topics": ["plans"]})
        provider = ScriptedProvider(TYPE_RESPONSE)

        estimate = make(TypeEstimator, stores, provider, sleeper).estimate("u1")

        assert estimate.data_sources["profile_fields"] == ["interests", "hobbies"]
        assert estimate.data_sources["data_points"] == 3
        assert estimate.data_sources["items"] == {"note": 1}
        assert provider.call_count == 1


class TestTypeEstimator:

    def test_letters_follow_scores(self, stores, sleeper):
        three_diaries(stores[0])
        estimate = make(TypeEstimator, stores, ScriptedProvider(TYPE_RESPONSE), sleeper).estimate("u1")

        assert estimate.type_code == "ENTP"
        assert [a.letter for a in estimate.axes] == ["E", "N", "T", "P"]
        assert estimate.axes[0].rationale == "talks about friends a lot"
        assert estimate.description == "curious and warm"

    def test_confidence_from_axes_and_dampened_when_sparse(self, stores, sleeper):
        """Axis confidences 40, 40, 0, 60 average to 35; 3 points < 5 dampens to 30."""
        three_diaries(stores[0])
        provider = ScriptedProvider(TYPE_RESPONSE)

        sparse = make(TypeEstimator, stores, provider, sleeper).estimate("u1")
        full = make(TypeEstimator, stores, provider, sleeper, sparse_type_points=0).estimate("u1")

        assert sparse.confidence == 30.0
        assert full.confidence == 35.0

    def test_reported_confidence_is_clamped(self, stores, sleeper):
        three_diaries(stores[0])
        provider = ScriptedProvider({**TYPE_RESPONSE, "confidence": 150})

        estimate = make(TypeEstimator, stores, provider, sleeper, sparse_type_points=0).estimate("u1")

        assert estimate.confidence == 100.0

    def test_out_of_range_axis_scores(self, stores, sleeper):
        three_diaries(stores[0])
        provider = ScriptedProvider({"dimensions": {"EI": 140, "SN": -5, "TF": "65", "JP": None}})

        estimate = make(TypeEstimator, stores, provider, sleeper).estimate("u1")

        assert [a.score for a in estimate.axes] == [100.0, 0.0, 65.0, 50.0]
        assert estimate.type_code == "ENTJ"

    def test_integers_beyond_float_range_are_clamped(self, stores, sleeper):
        three_diaries(stores[0])
        huge = 10 ** 400
        provider = ScriptedProvider({"axes": {"EI": huge, "SN": -huge}, "confidence": huge})

        estimate = make(TypeEstimator, stores, provider, sleeper, sparse_type_points=0).estimate("u1")

        assert [a.score for a in estimate.axes] == [100.0, 0.0, 50.0, 50.0]
        assert estimate.type_code == "ENTJ"
        assert estimate.confidence == 100.0

    def test_no_axes_is_malformed(self, stores, sleeper):
        three_diaries(stores[0])
        provider = ScriptedProvider({"description": "no scores here"})

        with pytest.raises(MalformedResponseError):
            make(TypeEstimator, stores, provider, sleeper).estimate("u1")
        assert stores[2].count(EstimateKind.TYPE, "u1") == 0


class TestEmotionEstimator:

    def test_scores_and_timeline(self, stores, sleeper, image_file):
        items = stores[0]
        three_diaries(items)
        add_completed(items, "u1", Category.IMAGE, {"mood": "peaceful"}, content=str(image_file))
        provider = ScriptedProvider(EMOTION_RESPONSE)

        estimate = make(EmotionEstimator, stores, provider, sleeper, sparse_emotion_points=0).estimate("u1")

        assert estimate.positive_ratio == 70.0
        assert estimate.negative_ratio == 30.0
        assert estimate.stability_score == 80.0
        # 0.5 * 80 + 0.5 * (50 + (70 - 30) / 2)
        assert estimate.health_score == 75.0
        assert estimate.data_count == 4
        assert [(e.source, e.emotion) for e in estimate.emotion_timeline] == [
            ("document", "joy"), ("document", "calm"), ("document", "joy"), ("image", "peaceful"),
        ]
        assert estimate.primary_emotions == ["joy", "calm"]

    def test_sparse_data_dampens(self, stores, sleeper):
        three_diaries(stores[0])
        estimate = make(EmotionEstimator, stores, ScriptedProvider(EMOTION_RESPONSE), sleeper).estimate("u1")

        assert estimate.health_score == 65.0
        assert estimate.stability_score == 70.0

    def test_reported_scores_are_clamped(self, stores, sleeper):
        three_diaries(stores[0])
        provider = ScriptedProvider({
            "health_score": 150,
            "stability_score": -20,
            "positive_ratio": 120,
            "negative_ratio": "abc",
        })

        estimate = make(EmotionEstimator, stores, provider, sleeper, sparse_emotion_points=0).estimate("u1")

        assert estimate.health_score == 100.0
        assert estimate.stability_score == 0.0
        assert estimate.positive_ratio == 100.0
        assert estimate.negative_ratio == 50.0

    def test_integers_beyond_float_range_are_clamped(self, stores, sleeper):
        three_diaries(stores[0])
        huge = 10 ** 400
        provider = ScriptedProvider({
            "health_score": huge,
            "stability_score": -huge,
            "positive_negative_ratio": {"positive": huge, "negative": 0},
        })

        estimate = make(EmotionEstimator, stores, provider, sleeper, sparse_emotion_points=0).estimate("u1")

        assert estimate.health_score == 100.0
        assert estimate.stability_score == 0.0
        assert estimate.positive_ratio == 100.0
        assert estimate.negative_ratio == 0.0
        assert stores[2].count(EstimateKind.EMOTION, "u1") == 1

    def test_custom_scorer(self, stores, sleeper):
        items, profiles, estimates = stores
        three_diaries(items)
        estimator = EmotionEstimator(
            items, profiles, estimates, ScriptedProvider(EMOTION_RESPONSE),
            settings=EstimationConfig(sparse_emotion_points=0),
            sleep=sleeper,
            scorer=lambda reported, positive, negative, stability: 42,
        )
        assert estimator.estimate("u1").health_score == 42.0

    def test_transient_errors_are_retried(self, stores, sleeper):
        three_diaries(stores[0])
        provider = ScriptedProvider(
            TransientProviderError("overloaded", status_code=529),
            TransientProviderError("overloaded", status_code=529),
            EMOTION_RESPONSE,
        )

        make(EmotionEstimator, stores, provider, sleeper).estimate("u1")

        assert provider.call_count == 3
        assert sleeper.delays == [2.0, 2.0]

    def test_provider_failure_persists_nothing(self, stores, sleeper):
        three_diaries(stores[0])
        provider = ScriptedProvider(FatalProviderError("bad key", status_code=401))

        with pytest.raises(FatalProviderError):
            make(EmotionEstimator, stores, provider, sleeper).estimate("u1")
        assert stores[2].count(EstimateKind.EMOTION, "u1") == 0


class TestWeightedHealthScorer:

    def test_reported_value_wins(self):
        assert WeightedHealthScorer()(88, 10, 90, 10) == 88.0

    def test_weights(self):
        assert WeightedHealthScorer(stability_weight=1.0)(None, 0, 100, 60) == 60.0
        assert WeightedHealthScorer(stability_weight=0.0)(None, 100, 0, 0) == 100.0

    def test_invalid_weight(self):
        with pytest.raises(ValueError):
            WeightedHealthScorer(stability_weight=1.5)


def test_dampen_never_raises_a_score():
    assert dampen(80, 20) == 60
    assert dampen(40, 20) == 30
    assert dampen(20, 20) == 20


@pytest.mark.parametrize("value, expected", [
    (10 ** 400, 100.0),
    (-(10 ** 400), 0.0),
    ("1e400", 100.0),
    (float("nan"), 50.0),
    (True, 50.0),
    ("42.5", 42.5),
])
def test_clamp_score(value, expected):
    assert clamp_score(value) == expected


class TestReportBuilder:

    def _seed_estimates(self, estimates, owner_id="u1"):
        type_est = estimates.add(TypeEstimate(
            id="t1", owner_id=owner_id, type_code="INFJ",
            axes=[AxisScore("EI", 30, "I")], confidence=60,
        ))
        emotion_est = estimates.add(EmotionEstimate(
            id="e1", owner_id=owner_id, positive_ratio=60, negative_ratio=40,
            stability_score=70, health_score=68,
        ))
        return type_est, emotion_est

    def test_prior_estimates_count_and_are_recorded(self, stores, sleeper):
        items, _, estimates = stores
        add_completed(items, "u1", Category.DIARY, {"emotions": ["joy"]})
        self._seed_estimates(estimates)
        provider = ScriptedProvider({"summary": "steady year", "strengths": ["focus"]})

        report = make(ReportBuilder, stores, provider, sleeper).build("u1")

        assert report.summary == "steady year"
        assert report.strengths == ["focus"]
        assert report.data_sources["type_estimate"] == "t1"
        assert report.data_sources["emotion_estimate"] == "e1"
        assert report.data_sources["data_points"] == 3
        assert "INFJ" in provider.calls[0]["prompt"]

    def test_title(self, stores, sleeper):
        three_diaries(stores[0])
        provider = ScriptedProvider({"summary": "s"})
        builder = make(ReportBuilder, stores, provider, sleeper)

        assert builder.build("u1").title.startswith("Insight report - ")
        assert builder.build("u1", title="My year").title == "My year"

    def test_missing_fields_default(self, stores, sleeper):
        three_diaries(stores[0])
        report = make(ReportBuilder, stores, ScriptedProvider({}), sleeper).build("u1")
        assert report.summary == ""
        assert report.career_suggestions == []
        assert report.data_sources["type_estimate"] is None


class TestHistory:

    def test_estimates_are_append_only(self, stores, sleeper):
        estimates = stores[2]
        three_diaries(stores[0])
        provider = ScriptedProvider(TYPE_RESPONSE, {**TYPE_RESPONSE, "axes": {"EI": 10}})
        estimator = make(TypeEstimator, stores, provider, sleeper)

        first = estimator.estimate("u1")
        second = estimator.estimate("u1")

        history = estimates.history(EstimateKind.TYPE, "u1")
        assert [e.id for e in history] == [second.id, first.id]
        assert estimates.latest(EstimateKind.TYPE, "u1").type_code == second.type_code
        assert estimates.get(EstimateKind.TYPE, first.id).type_code == "ENTP"

    def test_duplicate_id_rejected(self, estimates):
        estimate = TypeEstimate(id="same", owner_id="u1", type_code="ISTJ", axes=[], confidence=0)
        estimates.add(estimate)
        with pytest.raises(ValueError):
            estimates.add(estimate)
