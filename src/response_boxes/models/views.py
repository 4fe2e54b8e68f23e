"""
Projected view models.

These are plain dataclasses holding the current state of an annotation or
insight after all mutation events have been folded in, together with the
derived scores used for ranking. They are recomputed from the full log on
every read and never persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass
class AnnotationView:
    """Current state of one annotation (box)."""

    id: str
    box_type: str
    ts: datetime
    fields: dict[str, str]
    context: dict[str, Any]
    initial_score: float
    base_score: float  # score ?? initial_score ?? 50
    effective_score: float  # base_score * recency factor
    relevance_score: float  # effective_score * repo boost
    age_weeks: float
    repo_boost: float = 1.0
    score: Optional[float] = None  # Enriched score, if any
    schema_version: int = 0
    extra: dict[str, Any] = field(default_factory=dict)  # Other enriched keys

    @property
    def repository(self) -> str:
        """Stored repository identifier ('' when unknown)."""
        repo = self.context.get("git_remote") or self.context.get("repo") or ""
        return repo if isinstance(repo, str) else str(repo)


@dataclass
class EvidenceRef:
    """One evidence link as seen from its insight."""

    annotation_id: str
    strength: float
    relationship: str


@dataclass
class InsightView:
    """Current state of one insight (learning)."""

    id: str
    insight: str
    ts: datetime
    confidence: float  # Post-update base confidence
    scope: str
    level: int
    evidence_count: int
    evidence_factor: float
    effective_confidence: float
    relevance_score: float
    repo_boost: float = 1.0
    tags: list[str] = field(default_factory=list)
    evidence: list[EvidenceRef] = field(default_factory=list)
    parent_ids: list[str] = field(default_factory=list)
    child_ids: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_meta(self) -> bool:
        """Whether this insight synthesizes other insights."""
        return self.level > 0
