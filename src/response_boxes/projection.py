"""
Projection engine: folds the event log into current-state views.

All functions here are pure. They take the full event sequence and a
projection time `now`, and derive annotation and insight views from scratch:

- Mutation events (enrichments, updates) are folded per target id in
  timestamp order, ties broken by log position, via shallow merge.
- Scores and confidences decay exponentially by fractional weeks since the
  record's effective timestamp.
- Relevance adds a 1.5x boost for records tied to the caller's repository.

A store carrying events newer than the supported schema version yields a
NeedsUpgrade sentinel instead of a (possibly incomplete) projection.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from response_boxes.config import SUPPORTED_SCHEMA_VERSION
from response_boxes.models.events import (
    AnalysisCompleted,
    AnnotationCreated,
    AnnotationEnriched,
    BaseEvent,
    EvidenceLinked,
    InsightCreated,
    InsightLinked,
    InsightUpdated,
    parse_event,
)
from response_boxes.models.taxonomy import EXCLUDED_BOX_TYPES, LEGACY_INITIAL_SCORE
from response_boxes.models.views import AnnotationView, EvidenceRef, InsightView
from response_boxes.utils import EPOCH, coerce_float, coerce_timestamp

logger = logging.getLogger(__name__)

DEFAULT_DECAY_RATE = 0.95
WEEK_SECONDS = 7 * 24 * 60 * 60
REPO_BOOST = 1.5

# Neutral prior for insights without evidence
NO_EVIDENCE_FACTOR = 0.5
DEFAULT_CONFIDENCE = 0.5

RELATIONSHIP_WEIGHTS: dict[str, float] = {
    "supports": 1.0,
    "tangential": 0.3,
    "contradicts": -0.5,
}

_ANNOTATION_KEYS = {
    "event",
    "id",
    "ts",
    "schema_version",
    "box_type",
    "fields",
    "context",
    "initial_score",
    "score",
}
_INSIGHT_KEYS = {
    "event",
    "id",
    "ts",
    "schema_version",
    "insight",
    "confidence",
    "scope",
    "tags",
    "level",
}

EventLike = Union[BaseEvent, Mapping[str, Any]]


@dataclass
class ProjectionStats:
    """
    Diagnostic counters collected while folding.

    None of these are surfaced to the end user; they are logged for operators.
    """

    malformed: int = 0  # Failed required-field validation
    unknown: int = 0  # Unrecognized event discriminator
    excluded: int = 0  # Legacy box types kept out of the projection
    duplicate_ids: int = 0
    orphan_enrichments: int = 0
    orphan_updates: int = 0
    orphan_evidence: int = 0
    dangling_evidence: int = 0  # Evidence pointing at an unknown annotation
    orphan_links: int = 0
    warnings: list[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    @property
    def orphan_count(self) -> int:
        return (
            self.orphan_enrichments
            + self.orphan_updates
            + self.orphan_evidence
            + self.orphan_links
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "malformed": self.malformed,
            "unknown": self.unknown,
            "excluded": self.excluded,
            "duplicate_ids": self.duplicate_ids,
            "orphan_enrichments": self.orphan_enrichments,
            "orphan_updates": self.orphan_updates,
            "orphan_evidence": self.orphan_evidence,
            "dangling_evidence": self.dangling_evidence,
            "orphan_links": self.orphan_links,
        }


@dataclass
class Projection:
    """Result of projecting a whole store."""

    annotations: list[AnnotationView]
    insights: list[InsightView]
    stats: ProjectionStats
    unanalyzed_count: int = 0


@dataclass(frozen=True)
class NeedsUpgrade:
    """Sentinel returned when the store is newer than this projector."""

    max_version: int
    supported_version: int

    @property
    def message(self) -> str:
        return (
            f"Analytics schema version {self.max_version} is newer than this "
            f"tool supports (version {self.supported_version}). Update Response "
            f"Boxes to restore cross-session injection."
        )


# ─────────────────────────────────────────────────────────────────────────────
# Event loading
# ─────────────────────────────────────────────────────────────────────────────


def load_events(
    records: Iterable[EventLike], stats: Optional[ProjectionStats] = None
) -> list[BaseEvent]:
    """
    Validate raw records into typed events, skipping bad ones.

    Args:
        records: Raw store records or already-typed events, in log order
        stats: Counters to update for malformed and unknown records

    Returns:
        Typed events in log order
    """
    stats = stats if stats is not None else ProjectionStats()
    events: list[BaseEvent] = []

    for position, record in enumerate(records):
        if isinstance(record, BaseEvent):
            events.append(record)
            continue

        try:
            event = parse_event(record)
        except ValidationError as e:
            stats.malformed += 1
            stats.add_warning(
                f"Skipped malformed {record.get('event', 'AnnotationCreated')} "
                f"at position {position}: {e.error_count()} error(s)"
            )
            continue

        if event is None:
            stats.unknown += 1
            continue
        events.append(event)

    return events


def max_schema_version(records: Iterable[Mapping[str, Any]]) -> int:
    """
    Highest schema_version among raw records.

    Records without a version are legacy (version 0); non-integer versions
    are ignored.
    """
    highest = 0
    for record in records:
        version = record.get("schema_version", 0)
        if isinstance(version, bool):
            continue
        if isinstance(version, int):
            highest = max(highest, version)
        elif isinstance(version, float) and version.is_integer():
            highest = max(highest, int(version))
    return highest


# ─────────────────────────────────────────────────────────────────────────────
# Scoring helpers
# ─────────────────────────────────────────────────────────────────────────────


def weeks_since(ts: datetime, now: datetime) -> float:
    """Exact fractional weeks from ts to now (not floored)."""
    return (now - ts).total_seconds() / WEEK_SECONDS


def recency_factor(ts: datetime, now: datetime, decay_rate: float) -> float:
    """Exponential recency weight: decay_rate ** weeks_since(ts, now)."""
    return decay_rate ** weeks_since(ts, now)


def evidence_factor(evidence: list[EvidenceRef]) -> float:
    """
    Average weighted evidence strength.

    Returns the neutral prior 0.5 when there is no evidence. Contradicting
    evidence carries a negative weight and can pull the factor below zero.
    """
    if not evidence:
        return NO_EVIDENCE_FACTOR
    total = sum(
        ref.strength * RELATIONSHIP_WEIGHTS.get(ref.relationship, 0.0)
        for ref in evidence
    )
    return total / len(evidence)


def _fold(base: dict[str, Any], mutations: list[tuple[datetime, int, dict]]) -> dict:
    """Shallow-merge mutation updates onto base in (timestamp, log position) order."""
    state = dict(base)
    for _, _, updates in sorted(mutations, key=lambda m: (m[0], m[1])):
        state = {**state, **updates}
    return state


# ─────────────────────────────────────────────────────────────────────────────
# Annotations
# ─────────────────────────────────────────────────────────────────────────────


def _annotation_view(
    created: AnnotationCreated,
    mutations: list[tuple[datetime, int, dict]],
    now: datetime,
    current_repo: str,
    decay_rate: float,
) -> AnnotationView:
    state = _fold(created.model_dump(), mutations)

    ts = coerce_timestamp(state.get("ts"), default=created.ts)
    initial_score = coerce_float(state.get("initial_score"), LEGACY_INITIAL_SCORE)
    raw_score = state.get("score")
    score = None if raw_score is None else coerce_float(raw_score, initial_score)
    base_score = initial_score if score is None else score

    age_weeks = weeks_since(ts, now)
    effective_score = base_score * decay_rate**age_weeks

    context = state.get("context")
    context = dict(context) if isinstance(context, Mapping) else {}
    stored_repo = context.get("git_remote") or context.get("repo") or ""
    repo_boost = REPO_BOOST if current_repo and stored_repo == current_repo else 1.0

    fields = state.get("fields")
    fields = dict(fields) if isinstance(fields, Mapping) else {}

    return AnnotationView(
        id=created.id,
        box_type=str(state.get("box_type") or created.box_type),
        ts=ts,
        fields=fields,
        context=context,
        initial_score=initial_score,
        base_score=base_score,
        effective_score=effective_score,
        relevance_score=effective_score * repo_boost,
        age_weeks=age_weeks,
        repo_boost=repo_boost,
        score=score,
        schema_version=created.schema_version,
        extra={k: v for k, v in state.items() if k not in _ANNOTATION_KEYS},
    )


def project_annotations(
    events: Iterable[EventLike],
    now: datetime,
    current_repo: str = "",
    decay_rate: float = DEFAULT_DECAY_RATE,
    stats: Optional[ProjectionStats] = None,
) -> list[AnnotationView]:
    """
    Project the current state of every annotation.

    Args:
        events: Full event log in log order (raw records or typed events)
        now: Projection time
        current_repo: Caller's repository identifier ('' disables the boost)
        decay_rate: Weekly recency decay base
        stats: Optional counters for diagnostics

    Returns:
        One view per annotation, in creation order
    """
    stats = stats if stats is not None else ProjectionStats()
    typed = load_events(events, stats)

    created: dict[str, AnnotationCreated] = {}
    excluded_ids: set[str] = set()
    enrichments: dict[str, list[tuple[datetime, int, dict]]] = defaultdict(list)

    for position, event in enumerate(typed):
        if isinstance(event, AnnotationCreated):
            if event.box_type in EXCLUDED_BOX_TYPES:
                stats.excluded += 1
                excluded_ids.add(event.id)
            elif event.id in created:
                stats.duplicate_ids += 1
            else:
                created[event.id] = event
        elif isinstance(event, AnnotationEnriched):
            enrichments[event.annotation_id].append(
                (event.ts, position, dict(event.updates))
            )

    for target_id, mutations in enrichments.items():
        if target_id not in created and target_id not in excluded_ids:
            stats.orphan_enrichments += len(mutations)

    return [
        _annotation_view(
            annotation,
            enrichments.get(annotation_id, []),
            now,
            current_repo,
            decay_rate,
        )
        for annotation_id, annotation in created.items()
    ]


# ─────────────────────────────────────────────────────────────────────────────
# Insights
# ─────────────────────────────────────────────────────────────────────────────


def _insight_view(
    created: InsightCreated,
    mutations: list[tuple[datetime, int, dict]],
    evidence: list[EvidenceRef],
    annotation_repos: Mapping[str, str],
    now: datetime,
    current_repo: str,
    decay_rate: float,
) -> InsightView:
    state = _fold(created.model_dump(), mutations)

    ts = coerce_timestamp(state.get("ts"), default=created.ts)
    confidence = coerce_float(state.get("confidence"), DEFAULT_CONFIDENCE)
    level = max(0, int(coerce_float(state.get("level"), 0)))
    scope = str(state.get("scope") or "global")

    factor = evidence_factor(evidence)
    recency = recency_factor(ts, now, decay_rate)
    effective_confidence = confidence * (0.5 + factor * 0.5) * recency

    repo_supported = any(
        ref.relationship == "supports"
        and annotation_repos.get(ref.annotation_id) == current_repo
        for ref in evidence
    )
    repo_boost = (
        REPO_BOOST if scope == "repo" and current_repo and repo_supported else 1.0
    )

    tags = state.get("tags")
    return InsightView(
        id=created.id,
        insight=str(state.get("insight") or created.insight),
        ts=ts,
        confidence=confidence,
        scope=scope,
        level=level,
        evidence_count=len(evidence),
        evidence_factor=factor,
        effective_confidence=effective_confidence,
        relevance_score=effective_confidence * repo_boost,
        repo_boost=repo_boost,
        tags=list(tags) if isinstance(tags, (list, tuple, set)) else [],
        evidence=list(evidence),
        extra={k: v for k, v in state.items() if k not in _INSIGHT_KEYS},
    )


def project_insights(
    events: Iterable[EventLike],
    now: datetime,
    current_repo: str = "",
    decay_rate: float = DEFAULT_DECAY_RATE,
    stats: Optional[ProjectionStats] = None,
) -> list[InsightView]:
    """
    Project the current state of every insight.

    Args:
        events: Full event log in log order (raw records or typed events)
        now: Projection time
        current_repo: Caller's repository identifier ('' disables the boost)
        decay_rate: Weekly recency decay base
        stats: Optional counters for diagnostics

    Returns:
        One view per insight, in creation order
    """
    stats = stats if stats is not None else ProjectionStats()
    typed = load_events(events, stats)

    created: dict[str, InsightCreated] = {}
    updates: dict[str, list[tuple[datetime, int, dict]]] = defaultdict(list)
    evidence: dict[str, list[EvidenceRef]] = defaultdict(list)
    links: list[InsightLinked] = []
    annotation_repos: dict[str, str] = {}

    for position, event in enumerate(typed):
        if isinstance(event, InsightCreated):
            if event.id in created:
                stats.duplicate_ids += 1
            else:
                created[event.id] = event
        elif isinstance(event, InsightUpdated):
            updates[event.insight_id].append((event.ts, position, dict(event.updates)))
        elif isinstance(event, EvidenceLinked):
            evidence[event.insight_id].append(
                EvidenceRef(
                    annotation_id=event.annotation_id,
                    strength=event.strength,
                    relationship=event.relationship,
                )
            )
        elif isinstance(event, InsightLinked):
            links.append(event)
        elif isinstance(event, AnnotationCreated):
            annotation_repos.setdefault(event.id, event.context.repository)

    for target_id, mutations in updates.items():
        if target_id not in created:
            stats.orphan_updates += len(mutations)
    for target_id, refs in evidence.items():
        if target_id not in created:
            stats.orphan_evidence += len(refs)
            continue
        stats.dangling_evidence += sum(
            1 for ref in refs if ref.annotation_id not in annotation_repos
        )

    views = {
        insight_id: _insight_view(
            insight,
            updates.get(insight_id, []),
            evidence.get(insight_id, []),
            annotation_repos,
            now,
            current_repo,
            decay_rate,
        )
        for insight_id, insight in created.items()
    }

    for link in links:
        parent = views.get(link.parent_insight_id)
        child = views.get(link.child_insight_id)
        if parent is None or child is None:
            stats.orphan_links += 1
            continue
        if link.child_insight_id not in parent.child_ids:
            parent.child_ids.append(link.child_insight_id)
        if link.parent_insight_id not in child.parent_ids:
            child.parent_ids.append(link.parent_insight_id)

    return list(views.values())


# ─────────────────────────────────────────────────────────────────────────────
# Whole-store projection
# ─────────────────────────────────────────────────────────────────────────────


def count_unanalyzed(events: Iterable[EventLike]) -> int:
    """
    Count annotations created after the latest analysis horizon.

    The horizon is the `through_ts` (or `ts`) of the most recent
    AnalysisCompleted event; with no analysis yet, every annotation counts.
    """
    typed = load_events(events)

    runs = sorted(
        (event for event in typed if isinstance(event, AnalysisCompleted)),
        key=lambda run: run.ts,
    )
    horizon = runs[-1].horizon if runs else EPOCH

    return sum(
        1
        for event in typed
        if isinstance(event, AnnotationCreated) and event.ts > horizon
    )


def project_store(
    records: list[Mapping[str, Any]],
    now: datetime,
    current_repo: str = "",
    decay_rate: float = DEFAULT_DECAY_RATE,
    supported_version: int = SUPPORTED_SCHEMA_VERSION,
) -> Union[Projection, NeedsUpgrade]:
    """
    Project a whole store, applying the schema guardrail first.

    Args:
        records: Raw store records in log order
        now: Projection time
        current_repo: Caller's repository identifier
        decay_rate: Weekly recency decay base
        supported_version: Highest schema_version this projector understands

    Returns:
        Projection, or NeedsUpgrade when any record is newer than supported
    """
    highest = max_schema_version(records)
    if highest > supported_version:
        logger.warning(
            f"Store schema version {highest} exceeds supported {supported_version}"
        )
        return NeedsUpgrade(max_version=highest, supported_version=supported_version)

    stats = ProjectionStats()
    typed = load_events(records, stats)

    projection = Projection(
        annotations=project_annotations(typed, now, current_repo, decay_rate, stats),
        insights=project_insights(typed, now, current_repo, decay_rate, stats),
        stats=stats,
        unanalyzed_count=count_unanalyzed(typed),
    )

    if stats.malformed or stats.orphan_count or stats.unknown:
        logger.debug(f"Projection diagnostics: {stats.to_dict()}")
    for warning in stats.warnings:
        logger.debug(warning)

    return projection
