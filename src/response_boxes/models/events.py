"""
Event models for the Response Boxes event store.

Every line of the store is one immutable event. These models validate the
wire records, accept the Box*/Learning* names written by earlier hooks, and
normalize legacy records that predate the `event` discriminator.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from response_boxes.models.taxonomy import (
    LEGACY_INITIAL_SCORE,
    UNKNOWN_BOX_TYPE,
    initial_score_for,
)
from response_boxes.utils import EPOCH, coerce_float, coerce_timestamp, slugify


class EventType(str, Enum):
    """Canonical event discriminators."""

    ANNOTATION_CREATED = "AnnotationCreated"
    ANNOTATION_ENRICHED = "AnnotationEnriched"
    INSIGHT_CREATED = "InsightCreated"
    INSIGHT_UPDATED = "InsightUpdated"
    EVIDENCE_LINKED = "EvidenceLinked"
    INSIGHT_LINKED = "InsightLinked"
    ANALYSIS_COMPLETED = "AnalysisCompleted"


# Names written by the original shell hooks
EVENT_ALIASES: dict[str, EventType] = {
    "BoxCreated": EventType.ANNOTATION_CREATED,
    "BoxEnriched": EventType.ANNOTATION_ENRICHED,
    "LearningCreated": EventType.INSIGHT_CREATED,
    "LearningUpdated": EventType.INSIGHT_UPDATED,
    "LearningLinked": EventType.INSIGHT_LINKED,
}


def canonical_event_type(name: str) -> Optional[EventType]:
    """Resolve a wire discriminator to its canonical event type, if known."""
    if name in EVENT_ALIASES:
        return EVENT_ALIASES[name]
    try:
        return EventType(name)
    except ValueError:
        return None


class BaseEvent(BaseModel):
    """Fields common to every event."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    event: str
    ts: datetime = EPOCH
    schema_version: int = 1

    @field_validator("ts", mode="before")
    @classmethod
    def _lenient_timestamp(cls, value: Any) -> datetime:
        return coerce_timestamp(value)

    def to_record(self) -> dict[str, Any]:
        """Serialize to the JSON-ready wire record."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AnnotationContext(BaseModel):
    """Best-effort origin of an annotation."""

    model_config = ConfigDict(extra="allow")

    session_id: Optional[str] = None
    git_remote: Optional[str] = None
    git_branch: Optional[str] = None
    turn_number: Optional[Union[int, str]] = None

    @property
    def repository(self) -> str:
        """Stored repository identifier ('' when unknown)."""
        if self.git_remote:
            return self.git_remote
        extra = self.model_extra or {}
        repo = extra.get("repo")
        return repo if isinstance(repo, str) else ""


class AnnotationCreated(BaseEvent):
    """A raw observation ("box") extracted from assistant output."""

    event: str = EventType.ANNOTATION_CREATED.value
    id: str
    box_type: str = Field(
        UNKNOWN_BOX_TYPE, validation_alias=AliasChoices("box_type", "type")
    )
    fields: dict[str, str] = Field(default_factory=dict)
    context: AnnotationContext = Field(default_factory=AnnotationContext)
    initial_score: int = LEGACY_INITIAL_SCORE

    @field_validator("fields", mode="before")
    @classmethod
    def _stringify_fields(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, Mapping):
            return {}
        return {str(k): v if isinstance(v, str) else str(v) for k, v in value.items()}

    @field_validator("context", mode="before")
    @classmethod
    def _context_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, (Mapping, AnnotationContext)) else {}

    @field_validator("initial_score", mode="before")
    @classmethod
    def _numeric_score(cls, value: Any) -> int:
        return int(coerce_float(value, LEGACY_INITIAL_SCORE))


class AnnotationEnriched(BaseEvent):
    """Partial update to an annotation's derived fields."""

    event: str = EventType.ANNOTATION_ENRICHED.value
    annotation_id: str = Field(
        validation_alias=AliasChoices("box_id", "annotation_id"),
        serialization_alias="box_id",
    )
    updates: dict[str, Any] = Field(default_factory=dict)


class InsightCreated(BaseEvent):
    """A synthesized pattern ("learning")."""

    event: str = EventType.INSIGHT_CREATED.value
    id: str
    insight: str = Field(validation_alias=AliasChoices("insight", "insight_text"))
    confidence: float = 0.5
    scope: str = "global"
    tags: list[str] = Field(default_factory=list)
    level: int = 0

    @field_validator("confidence", mode="before")
    @classmethod
    def _numeric_confidence(cls, value: Any) -> float:
        return coerce_float(value, 0.5)

    @field_validator("level", mode="before")
    @classmethod
    def _numeric_level(cls, value: Any) -> int:
        return max(0, int(coerce_float(value, 0)))

    @field_validator("tags", mode="before")
    @classmethod
    def _tag_list(cls, value: Any) -> list[str]:
        if isinstance(value, (list, tuple, set, frozenset)):
            return sorted({str(tag) for tag in value})
        return []


class InsightUpdated(BaseEvent):
    """Partial update to an insight."""

    event: str = EventType.INSIGHT_UPDATED.value
    insight_id: str = Field(
        validation_alias=AliasChoices("learning_id", "insight_id"),
        serialization_alias="learning_id",
    )
    updates: dict[str, Any] = Field(default_factory=dict)


class EvidenceLinked(BaseEvent):
    """Strength-weighted edge from an annotation to an insight."""

    event: str = EventType.EVIDENCE_LINKED.value
    id: Optional[str] = None
    insight_id: str = Field(
        validation_alias=AliasChoices("learning_id", "insight_id"),
        serialization_alias="learning_id",
    )
    annotation_id: str = Field(
        validation_alias=AliasChoices("box_id", "annotation_id"),
        serialization_alias="box_id",
    )
    strength: float = 0.5
    relationship: str = "supports"

    @field_validator("strength", mode="before")
    @classmethod
    def _numeric_strength(cls, value: Any) -> float:
        return coerce_float(value, 0.5)


class InsightLinked(BaseEvent):
    """Hierarchy edge between two insights."""

    event: str = EventType.INSIGHT_LINKED.value
    parent_insight_id: str = Field(
        validation_alias=AliasChoices("parent_learning_id", "parent_insight_id"),
        serialization_alias="parent_learning_id",
    )
    child_insight_id: str = Field(
        validation_alias=AliasChoices("child_learning_id", "child_insight_id"),
        serialization_alias="child_learning_id",
    )
    relationship: str = "synthesizes"


class AnalysisCompleted(BaseEvent):
    """Marker for the horizon through which annotations were considered."""

    event: str = EventType.ANALYSIS_COMPLETED.value
    through_ts: Optional[datetime] = None
    stats: dict[str, Any] = Field(default_factory=dict)

    @field_validator("through_ts", mode="before")
    @classmethod
    def _lenient_through(cls, value: Any) -> Optional[datetime]:
        if value is None or value == "":
            return None
        return coerce_timestamp(value)

    @property
    def horizon(self) -> datetime:
        return self.through_ts or self.ts


Event = Union[
    AnnotationCreated,
    AnnotationEnriched,
    InsightCreated,
    InsightUpdated,
    EvidenceLinked,
    InsightLinked,
    AnalysisCompleted,
]

EVENT_MODELS: dict[EventType, type[BaseEvent]] = {
    EventType.ANNOTATION_CREATED: AnnotationCreated,
    EventType.ANNOTATION_ENRICHED: AnnotationEnriched,
    EventType.INSIGHT_CREATED: InsightCreated,
    EventType.INSIGHT_UPDATED: InsightUpdated,
    EventType.EVIDENCE_LINKED: EvidenceLinked,
    EventType.INSIGHT_LINKED: InsightLinked,
    EventType.ANALYSIS_COMPLETED: AnalysisCompleted,
}


def legacy_annotation_id(context: Mapping[str, Any], ts: str, box_type: str) -> str:
    """
    Synthesize a stable id for a record written before ids existed.

    Uses the session and turn when both are known, otherwise a slug of the
    timestamp and type.
    """
    session_id = context.get("session_id")
    turn_number = context.get("turn_number")
    if session_id not in (None, "") and turn_number is not None:
        return f"sess_{session_id}_{turn_number}"
    return "legacy_" + slugify(f"{ts}_{box_type}")


def normalize_record(record: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalize a raw store record into canonical wire form.

    Records without an `event` discriminator are legacy annotations: they
    become AnnotationCreated with schema_version 0, an initial score from the
    type table, and a synthesized id. Discriminated records only have their
    event name canonicalized.

    Args:
        record: Raw JSON object from the store

    Returns:
        New dict ready for model validation
    """
    event_name = record.get("event")
    if isinstance(event_name, str) and event_name:
        normalized = dict(record)
        event_type = canonical_event_type(event_name)
        if event_type is not None:
            normalized["event"] = event_type.value
        return normalized

    context = record.get("context")
    if not isinstance(context, Mapping):
        context = {}
    box_type = record.get("box_type") or record.get("type") or UNKNOWN_BOX_TYPE
    raw_ts = record.get("ts") if isinstance(record.get("ts"), str) else ""

    record_id = record.get("id")
    if not isinstance(record_id, str) or not record_id:
        record_id = legacy_annotation_id(context, raw_ts, str(box_type))

    initial_score = record.get("initial_score")
    if initial_score is None:
        initial_score = initial_score_for(str(box_type), LEGACY_INITIAL_SCORE)

    return {
        "event": EventType.ANNOTATION_CREATED.value,
        "id": record_id,
        "ts": raw_ts or EPOCH,
        "box_type": str(box_type),
        "fields": record.get("fields") or {},
        "context": dict(context),
        "initial_score": initial_score,
        "schema_version": record.get("schema_version", 0),
    }


def parse_event(record: Mapping[str, Any]) -> Optional[BaseEvent]:
    """
    Validate a raw record into a typed event.

    Args:
        record: Raw JSON object from the store

    Returns:
        Typed event, or None for an unrecognized discriminator

    Raises:
        pydantic.ValidationError: If required fields are missing or malformed
    """
    normalized = normalize_record(record)
    event_type = canonical_event_type(normalized["event"])
    if event_type is None:
        return None
    return EVENT_MODELS[event_type].model_validate(normalized)
