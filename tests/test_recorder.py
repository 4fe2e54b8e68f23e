"""Tests for recording analysis results as events."""

from datetime import datetime, timezone

import pytest

from response_boxes.projection import project_store
from response_boxes.recorder import EventRecorder

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def recorder(memory_store) -> EventRecorder:
    return EventRecorder(memory_store)


class TestRecordInsight:
    """Tests for recording learnings."""

    def test_record_insight(self, recorder, memory_store):
        event = recorder.record_insight(
            "  Prefer Zod  ", confidence=0.7, scope="repo", tags=["ts", "validation"], ts=NOW
        )

        assert event.id.startswith("learn_")
        assert event.insight == "Prefer Zod"
        record = memory_store.read_all().records[0]
        assert record["event"] == "InsightCreated"
        assert record["confidence"] == 0.7
        assert record["scope"] == "repo"
        assert record["tags"] == ["ts", "validation"]
        assert record["schema_version"] == 1

    def test_explicit_id(self, recorder):
        assert recorder.record_insight("x", insight_id="l-fixed").id == "l-fixed"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"insight": "   "},
            {"insight": "x", "confidence": 1.5},
            {"insight": "x", "scope": "team"},
            {"insight": "x", "level": -1},
        ],
    )
    def test_invalid_arguments(self, recorder, memory_store, kwargs):
        with pytest.raises(ValueError):
            recorder.record_insight(**kwargs)

        assert memory_store.read_all().records == []


class TestMutations:
    """Tests for updates, enrichment and links."""

    def test_update_insight(self, recorder, memory_store):
        recorder.update_insight("l1", {"confidence": 0.9})

        record = memory_store.read_all().records[0]
        assert record["event"] == "InsightUpdated"
        assert record["learning_id"] == "l1"
        assert record["updates"] == {"confidence": 0.9}

    def test_empty_updates_rejected(self, recorder):
        with pytest.raises(ValueError):
            recorder.update_insight("l1", {})
        with pytest.raises(ValueError):
            recorder.enrich_annotation("a1", {})

    def test_enrich_annotation(self, recorder, memory_store):
        recorder.enrich_annotation("a1", {"score": 95})

        record = memory_store.read_all().records[0]
        assert record["event"] == "AnnotationEnriched"
        assert record["box_id"] == "a1"

    def test_link_evidence(self, recorder, memory_store):
        event = recorder.link_evidence("l1", "a1", strength=0.6, relationship="tangential")

        assert event.id.startswith("ev_")
        record = memory_store.read_all().records[0]
        assert record["learning_id"] == "l1"
        assert record["box_id"] == "a1"
        assert record["strength"] == 0.6
        assert record["relationship"] == "tangential"

    def test_link_evidence_validation(self, recorder):
        with pytest.raises(ValueError):
            recorder.link_evidence("l1", "a1", strength=-0.1)
        with pytest.raises(ValueError):
            recorder.link_evidence("l1", "a1", relationship="likes")

    def test_link_insights(self, recorder, memory_store):
        recorder.link_insights("meta", "l1", relationship="refines")

        record = memory_store.read_all().records[0]
        assert record["parent_learning_id"] == "meta"
        assert record["child_learning_id"] == "l1"
        assert record["relationship"] == "refines"

    def test_self_link_rejected(self, recorder):
        with pytest.raises(ValueError):
            recorder.link_insights("l1", "l1")

    def test_complete_analysis(self, recorder, memory_store):
        through = datetime(2026, 1, 10, tzinfo=timezone.utc)

        event = recorder.complete_analysis(through_ts=through, stats={"boxes": 4}, ts=NOW)

        assert event.horizon == through
        record = memory_store.read_all().records[0]
        assert record["event"] == "AnalysisCompleted"
        assert record["stats"] == {"boxes": 4}


class TestRecordedEventsProject:
    """Tests that recorded events feed the projection."""

    def test_full_cycle(self, recorder, memory_store, make_annotation):
        memory_store.append(make_annotation("a1", ts=NOW, repo="X"))
        meta = recorder.record_insight("Validate at boundaries", confidence=0.9, level=1, ts=NOW)
        base = recorder.record_insight("Prefer Zod", confidence=0.8, scope="repo", ts=NOW)
        recorder.link_evidence(base.id, "a1", strength=1.0, ts=NOW)
        recorder.link_insights(meta.id, base.id, ts=NOW)
        recorder.enrich_annotation("a1", {"score": 95}, ts=NOW)
        recorder.complete_analysis(ts=NOW)

        projection = project_store(memory_store.read_all().records, NOW, current_repo="X")

        insights = {i.id: i for i in projection.insights}
        assert insights[base.id].effective_confidence == pytest.approx(0.8)
        assert insights[base.id].repo_boost == 1.5
        assert insights[base.id].parent_ids == [meta.id]
        assert projection.annotations[0].base_score == 95
        assert projection.unanalyzed_count == 0
