"""Event, taxonomy and view models."""

from response_boxes.models.events import (
    AnalysisCompleted,
    AnnotationContext,
    AnnotationCreated,
    AnnotationEnriched,
    BaseEvent,
    Event,
    EventType,
    EvidenceLinked,
    InsightCreated,
    InsightLinked,
    InsightUpdated,
    normalize_record,
    parse_event,
)
from response_boxes.models.taxonomy import BOX_MARKERS, INITIAL_SCORES, BoxType
from response_boxes.models.views import AnnotationView, EvidenceRef, InsightView

__all__ = [
    "AnalysisCompleted",
    "AnnotationContext",
    "AnnotationCreated",
    "AnnotationEnriched",
    "AnnotationView",
    "BOX_MARKERS",
    "BaseEvent",
    "BoxType",
    "Event",
    "EventType",
    "EvidenceLinked",
    "EvidenceRef",
    "INITIAL_SCORES",
    "InsightCreated",
    "InsightLinked",
    "InsightUpdated",
    "InsightView",
    "normalize_record",
    "parse_event",
]
