"""End-to-end tests through the Lens facade."""

import pytest

from lifelens.api import Lens
from lifelens.config import ProviderConfig, StoreConfig, save_config
from lifelens.errors import FatalProviderError, InsufficientDataError, TransientProviderError
from lifelens.providers.llm import CannedCompletion
from lifelens.types import AnalysisStatus, Category, EstimateKind


class TestIngestion:

    def test_add_document(self, lens):
        item = lens.add_document("alice", "Baked bread with my sister.", "diary")
        assert item.category is Category.DIARY
        assert item.status is AnalysisStatus.PENDING
        assert lens.get_item(item.id).content == "Baked bread with my sister."

    def test_add_document_rejects_bad_input(self, lens):
        with pytest.raises(ValueError):
            lens.add_document("alice", "   ", "note")
        with pytest.raises(ValueError):
            lens.add_document("alice", "text", "image")
        with pytest.raises(ValueError):
            lens.add_document("alice", "text", "poem")

    def test_add_image_stores_resolved_path(self, lens, image_file):
        item = lens.add_image("alice", image_file)
        assert item.category is Category.IMAGE
        assert item.content == str(image_file.resolve())

    def test_add_image_validates(self, lens, tmp_path):
        with pytest.raises(FatalProviderError, match="not found"):
            lens.add_image("alice", tmp_path / "missing.jpg")

    def test_profile_merge_and_clear(self, lens):
        lens.set_profile("alice", interests="climbing and baking", hobbies="chess")
        profile = lens.set_profile("alice", hobbies="")
        assert profile.fields == {"interests": "climbing and baking"}
        assert lens.get_profile("alice").fields == {"interests": "climbing and baking"}

    def test_profile_unknown_field(self, lens):
        with pytest.raises(ValueError, match="Unknown profile field"):
            lens.set_profile("alice", favourite_colour="green")


class TestAnalysisFlow:

    def test_process_pending(self, lens, provider):
        provider.load({"emotions": ["joy"]}, FatalProviderError("bad request"), {"topics": ["plan"]})
        a = lens.add_document("alice", "one", "diary")
        b = lens.add_document("alice", "two", "diary")
        c = lens.add_document("bob", "three", "note")

        result = lens.process_pending()

        assert result["processed"] == 3
        assert result["completed"] == 2
        assert result["failed"] == 1
        assert result["errors"] == [{"id": b.id, "error": "FatalProviderError: bad request"}]
        assert lens.get_item(a.id).status is AnalysisStatus.COMPLETED
        assert lens.get_item(c.id).status is AnalysisStatus.COMPLETED

    def test_process_pending_per_owner_and_limit(self, lens, provider):
        provider.load({})
        for i in range(3):
            lens.add_document("alice", f"entry {i}")
        lens.add_document("bob", "other")

        assert lens.process_pending("alice", limit=2)["processed"] == 2
        assert lens.status_counts("alice")["pending"] == 1
        assert lens.status_counts("bob")["pending"] == 1

    def test_retry_all_failed(self, lens, provider, sleeper):
        provider.load(*[TransientProviderError("Request timed out")] * 3, {"summary": "ok"})
        item = lens.add_document("alice", "x")

        failed = lens.analyze(item.id)
        assert failed.status is AnalysisStatus.FAILED
        assert sleeper.delays == [2.0, 2.0]

        assert lens.retry_all_failed("alice") == 1
        assert lens.get_item(item.id).status is AnalysisStatus.COMPLETED
        assert lens.retry_all_failed("alice") == 0

    def test_retry_one(self, lens, provider):
        provider.load(FatalProviderError("nope"), {})
        item = lens.add_document("alice", "x")
        lens.analyze(item.id)

        assert lens.retry(item.id, analyze=False)
        assert lens.get_item(item.id).status is AnalysisStatus.PENDING
        assert not lens.retry(item.id)

    def test_recover_stale_returns_failed_ids(self, lens):
        stuck = lens.add_document("alice", "interrupted")
        fresh = lens.add_document("alice", "in progress")
        lens._items.acquire(stuck.id)
        lens._items.acquire(fresh.id)
        lens._items._conn.execute(
            "UPDATE items SET claimed_at = '2000-01-01T00:00:00' WHERE id = ?", (stuck.id,)
        )

        assert lens.recover_stale() == [stuck.id]
        assert lens.get_item(stuck.id).status is AnalysisStatus.FAILED
        assert lens.get_item(fresh.id).status is AnalysisStatus.ANALYZING
        assert lens.recover_stale() == []

    def test_list_items_filters(self, lens, provider):
        provider.load({})
        lens.add_document("alice", "a", "diary")
        note = lens.add_document("alice", "b", "note")
        lens.analyze(note.id)

        assert [i.id for i in lens.list_items("alice", status="completed")] == [note.id]
        assert [i.id for i in lens.list_items("alice", category="note")] == [note.id]
        assert len(lens.list_items("alice")) == 2


class TestEstimates:

    def _analyzed_diaries(self, lens, provider, n=3):
        provider.load({"emotions": ["joy"], "interests": ["reading"]})
        for i in range(n):
            item = lens.add_document("alice", f"day {i}", "diary")
            lens.analyze(item.id)

    def test_summary(self, lens, provider):
        self._analyzed_diaries(lens, provider)
        snapshot = lens.get_summary("alice")
        assert snapshot.interests == [("reading", 3)]
        assert snapshot.moods == [("joy", 3)]

    def test_insufficient_data(self, lens, provider):
        with pytest.raises(InsufficientDataError):
            lens.estimate_type("alice")
        assert provider.call_count == 0

    def test_full_pipeline(self, lens, provider):
        self._analyzed_diaries(lens, provider)
        provider.load(
            {"axes": {"EI": 80, "SN": 60, "TF": 40, "JP": 30}},
            {"positive_ratio": 80, "negative_ratio": 20, "stability_score": 60},
            {"summary": "bookish and upbeat"},
        )
        calls_before = provider.call_count

        type_est = lens.estimate_type("alice")
        emotion_est = lens.estimate_emotion("alice")
        report = lens.build_report("alice", title="Spring")

        assert provider.call_count == calls_before + 3
        assert type_est.type_code == "ESFP"
        assert 0 <= emotion_est.health_score <= 100
        assert report.title == "Spring"
        assert report.data_sources["type_estimate"] == type_est.id
        assert lens.latest_estimate("type-estimation", "alice").id == type_est.id
        assert [r.id for r in lens.list_estimates(EstimateKind.REPORT, "alice")] == [report.id]


class TestLifecycle:

    def test_reopen_from_disk(self, tmp_path):
        config = StoreConfig(
            path=tmp_path / "store",
            completion=ProviderConfig("canned", {"responses": ['{"topics": ["tea"]}']}),
        )
        save_config(config)

        with Lens(tmp_path / "store") as lens:
            assert isinstance(lens._get_provider(), CannedCompletion)
            item = lens.add_document("alice", "green tea notes", "note")
            lens.analyze(item.id)

        with Lens(tmp_path / "store") as lens:
            assert lens.get_item(item.id).result.topics == ["tea"]

    def test_creates_config_on_first_use(self, tmp_path, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("LIFELENS_OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with Lens(tmp_path / "fresh") as lens:
            assert lens.config.config_path.exists()
            assert lens.config.completion.name == "ollama"
            # Read-only operations never build a provider
            assert lens.status_counts("alice")["pending"] == 0
            assert lens._provider is None
