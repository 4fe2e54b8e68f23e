"""Append helpers for learnings, evidence and enrichment events.

Deciding *which* learnings exist is done elsewhere (an analysis pass over the
boxes); this module only records those decisions as new, immutable events.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Iterable, Optional

from response_boxes.config import SUPPORTED_SCHEMA_VERSION
from response_boxes.models.events import (
    AnalysisCompleted,
    AnnotationEnriched,
    EvidenceLinked,
    InsightCreated,
    InsightLinked,
    InsightUpdated,
)
from response_boxes.store import EventStore
from response_boxes.utils import utc_now

logger = logging.getLogger(__name__)

INSIGHT_SCOPES = ("global", "repo")
EVIDENCE_RELATIONSHIPS = ("supports", "contradicts", "tangential")
HIERARCHY_RELATIONSHIPS = ("synthesizes", "refines", "supersedes")


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _check_choice(name: str, value: str, allowed: tuple[str, ...]) -> None:
    if value not in allowed:
        raise ValueError(f"{name} must be one of {', '.join(allowed)}; got {value!r}")


def _check_unit_interval(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0 and 1; got {value}")


class EventRecorder:
    """Records analysis decisions as events in a store."""

    def __init__(self, store: EventStore):
        self.store = store

    def record_insight(
        self,
        insight: str,
        confidence: float = 0.5,
        scope: str = "global",
        tags: Optional[Iterable[str]] = None,
        level: int = 0,
        insight_id: Optional[str] = None,
        ts: Optional[datetime] = None,
    ) -> InsightCreated:
        """
        Record a new learning.

        Args:
            insight: The learning text
            confidence: Base confidence between 0 and 1
            scope: 'global' or 'repo'
            tags: Free-form tags
            level: 0 for a base learning, 1+ for a meta-learning
            insight_id: Explicit id (generated when omitted)
            ts: Event time (defaults to now)

        Returns:
            The appended event

        Raises:
            ValueError: If any argument is out of range
        """
        if not insight.strip():
            raise ValueError("insight text cannot be empty")
        _check_unit_interval("confidence", confidence)
        _check_choice("scope", scope, INSIGHT_SCOPES)
        if level < 0:
            raise ValueError(f"level must be >= 0; got {level}")

        event = InsightCreated(
            id=insight_id or _new_id("learn"),
            ts=ts or utc_now(),
            schema_version=SUPPORTED_SCHEMA_VERSION,
            insight=insight.strip(),
            confidence=confidence,
            scope=scope,
            tags=list(tags or []),
            level=level,
        )
        self.store.append(event)
        logger.info(f"Recorded learning {event.id} (level={level}, scope={scope})")
        return event

    def update_insight(
        self, insight_id: str, updates: dict[str, Any], ts: Optional[datetime] = None
    ) -> InsightUpdated:
        """Record a partial update to a learning."""
        if not updates:
            raise ValueError("updates cannot be empty")
        event = InsightUpdated(
            insight_id=insight_id,
            ts=ts or utc_now(),
            schema_version=SUPPORTED_SCHEMA_VERSION,
            updates=updates,
        )
        self.store.append(event)
        return event

    def enrich_annotation(
        self, annotation_id: str, updates: dict[str, Any], ts: Optional[datetime] = None
    ) -> AnnotationEnriched:
        """Record a partial update to a box (e.g. an adjusted score)."""
        if not updates:
            raise ValueError("updates cannot be empty")
        event = AnnotationEnriched(
            annotation_id=annotation_id,
            ts=ts or utc_now(),
            schema_version=SUPPORTED_SCHEMA_VERSION,
            updates=updates,
        )
        self.store.append(event)
        return event

    def link_evidence(
        self,
        insight_id: str,
        annotation_id: str,
        strength: float = 1.0,
        relationship: str = "supports",
        evidence_id: Optional[str] = None,
        ts: Optional[datetime] = None,
    ) -> EvidenceLinked:
        """Record that a box supports, contradicts or relates to a learning."""
        _check_unit_interval("strength", strength)
        _check_choice("relationship", relationship, EVIDENCE_RELATIONSHIPS)
        event = EvidenceLinked(
            id=evidence_id or _new_id("ev"),
            ts=ts or utc_now(),
            schema_version=SUPPORTED_SCHEMA_VERSION,
            insight_id=insight_id,
            annotation_id=annotation_id,
            strength=strength,
            relationship=relationship,
        )
        self.store.append(event)
        return event

    def link_insights(
        self,
        parent_insight_id: str,
        child_insight_id: str,
        relationship: str = "synthesizes",
        ts: Optional[datetime] = None,
    ) -> InsightLinked:
        """Record a hierarchy edge between a meta-learning and a learning."""
        _check_choice("relationship", relationship, HIERARCHY_RELATIONSHIPS)
        if parent_insight_id == child_insight_id:
            raise ValueError("a learning cannot be linked to itself")
        event = InsightLinked(
            ts=ts or utc_now(),
            schema_version=SUPPORTED_SCHEMA_VERSION,
            parent_insight_id=parent_insight_id,
            child_insight_id=child_insight_id,
            relationship=relationship,
        )
        self.store.append(event)
        return event

    def complete_analysis(
        self,
        through_ts: Optional[datetime] = None,
        stats: Optional[dict[str, Any]] = None,
        ts: Optional[datetime] = None,
    ) -> AnalysisCompleted:
        """Record that boxes up to through_ts have been considered."""
        now = ts or utc_now()
        event = AnalysisCompleted(
            ts=now,
            schema_version=SUPPORTED_SCHEMA_VERSION,
            through_ts=through_ts or now,
            stats=stats or {},
        )
        self.store.append(event)
        logger.info(f"Recorded analysis run through {event.horizon.isoformat()}")
        return event
