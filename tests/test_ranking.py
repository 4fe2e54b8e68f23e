"""Tests for ranking and bounded selection."""

from datetime import datetime, timezone

from response_boxes.models.views import AnnotationView, InsightView
from response_boxes.ranking import (
    rank_insights,
    select_top_annotations,
    select_top_insights,
)

TS = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _annotation(annotation_id, effective_score, relevance_score=None):
    return AnnotationView(
        id=annotation_id,
        box_type="Choice",
        ts=TS,
        fields={},
        context={},
        initial_score=effective_score,
        base_score=effective_score,
        effective_score=effective_score,
        relevance_score=effective_score if relevance_score is None else relevance_score,
        age_weeks=0.0,
    )


def _insight(insight_id, relevance_score, level=0):
    return InsightView(
        id=insight_id,
        insight=insight_id,
        ts=TS,
        confidence=relevance_score,
        scope="global",
        level=level,
        evidence_count=0,
        evidence_factor=0.5,
        effective_confidence=relevance_score,
        relevance_score=relevance_score,
    )


class TestSelectTopInsights:
    """Tests for insight selection."""

    def test_level_outranks_relevance(self):
        """Test a meta-learning beats any base learning regardless of score."""
        insights = [_insight("base", 0.99, level=0), _insight("meta", 0.1, level=1)]

        assert [i.id for i in select_top_insights(insights, 2)] == ["meta", "base"]

    def test_relevance_within_level(self):
        insights = [_insight("low", 0.2), _insight("high", 0.9), _insight("mid", 0.5)]

        assert [i.id for i in select_top_insights(insights, 3)] == ["high", "mid", "low"]

    def test_bounded_by_n(self):
        insights = [_insight(f"l{i}", i / 10) for i in range(6)]

        assert len(select_top_insights(insights)) == 3
        assert len(select_top_insights(insights, 10)) == 6

    def test_zero_or_negative_n(self):
        insights = [_insight("l1", 0.9)]

        assert select_top_insights(insights, 0) == []
        assert select_top_insights(insights, -1) == []

    def test_ties_keep_input_order(self):
        insights = [_insight("first", 0.5), _insight("second", 0.5)]

        assert [i.id for i in rank_insights(insights)] == ["first", "second"]

    def test_does_not_mutate_input(self):
        insights = [_insight("low", 0.1), _insight("high", 0.9)]
        select_top_insights(insights)

        assert [i.id for i in insights] == ["low", "high"]


class TestSelectTopAnnotations:
    """Tests for annotation selection."""

    def test_threshold_filter(self):
        annotations = [
            _annotation("below", 59.9),
            _annotation("at", 60.0),
            _annotation("above", 90.0),
        ]

        selected = select_top_annotations(annotations, 5, min_effective_score=60)

        assert [a.id for a in selected] == ["above", "at"]
        assert all(a.effective_score >= 60 for a in selected)

    def test_threshold_uses_effective_not_relevance(self):
        """Test a repo boost cannot lift an annotation over the floor."""
        annotations = [_annotation("boosted", 50.0, relevance_score=75.0)]

        assert select_top_annotations(annotations, 5, min_effective_score=60) == []

    def test_ordered_by_relevance(self):
        annotations = [
            _annotation("a", 80.0, relevance_score=80.0),
            _annotation("b", 70.0, relevance_score=105.0),
        ]

        assert [a.id for a in select_top_annotations(annotations)] == ["b", "a"]

    def test_bounded_by_n(self):
        annotations = [_annotation(f"a{i}", 60.0 + i) for i in range(8)]

        selected = select_top_annotations(annotations)

        assert len(selected) == 5
        assert selected[0].id == "a7"

    def test_zero_n(self):
        assert select_top_annotations([_annotation("a", 99.0)], 0) == []

    def test_ties_keep_input_order(self):
        annotations = [_annotation("first", 70.0), _annotation("second", 70.0)]

        assert [a.id for a in select_top_annotations(annotations)] == ["first", "second"]
