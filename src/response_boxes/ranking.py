"""
Ranking and bounded selection of projected views for injection.

Python's sort is stable, so records with equal sort keys keep the order the
projection produced them in (creation order in the log).
"""

from response_boxes.models.views import AnnotationView, InsightView

DEFAULT_INSIGHT_COUNT = 3
DEFAULT_ANNOTATION_COUNT = 5
DEFAULT_MIN_EFFECTIVE_SCORE = 60.0


def rank_insights(insights: list[InsightView]) -> list[InsightView]:
    """Order insights by level (meta-insights first), then relevance."""
    return sorted(insights, key=lambda i: (-i.level, -i.relevance_score))


def rank_annotations(
    annotations: list[AnnotationView],
    min_effective_score: float = DEFAULT_MIN_EFFECTIVE_SCORE,
) -> list[AnnotationView]:
    """Drop annotations below the score floor and order the rest by relevance."""
    eligible = [a for a in annotations if a.effective_score >= min_effective_score]
    return sorted(eligible, key=lambda a: -a.relevance_score)


def select_top_insights(
    insights: list[InsightView], n: int = DEFAULT_INSIGHT_COUNT
) -> list[InsightView]:
    """
    Select the insights to inject.

    A higher level always outranks a lower one regardless of score; within a
    level, higher relevance wins.

    Args:
        insights: Projected insights
        n: Maximum number to return

    Returns:
        Up to n insights in rank order
    """
    if n <= 0:
        return []
    return rank_insights(insights)[:n]


def select_top_annotations(
    annotations: list[AnnotationView],
    n: int = DEFAULT_ANNOTATION_COUNT,
    min_effective_score: float = DEFAULT_MIN_EFFECTIVE_SCORE,
) -> list[AnnotationView]:
    """
    Select the annotations to inject.

    Args:
        annotations: Projected annotations
        n: Maximum number to return
        min_effective_score: Annotations with a lower effective score are dropped

    Returns:
        Up to n annotations in descending relevance
    """
    if n <= 0:
        return []
    return rank_annotations(annotations, min_effective_score)[:n]
