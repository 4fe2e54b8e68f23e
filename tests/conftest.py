"""
Pytest configuration and fixtures for Response Boxes tests.

This module provides an isolated environment (no user settings, no log
files), fixed projection times, and factories for raw store records.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import pytest

from response_boxes.config import Settings
from response_boxes.store import InMemoryEventStore, JsonlEventStore

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

_ENV_VARS = [
    "BOX_INJECT_LEARNINGS",
    "BOX_INJECT_BOXES",
    "BOX_INJECT_DISABLED",
    "BOX_INJECT_TIMEOUT",
    "BOX_RECENCY_DECAY",
    "BOX_MIN_EFFECTIVE_SCORE",
    "RESPONSE_BOXES_DISABLED",
    "RESPONSE_BOXES_ANALYTICS_DIR",
    "RESPONSE_BOXES_FILE",
    "RESPONSE_BOXES_LEGACY_FILE",
    "LOG_DIR",
    "LOG_LEVEL",
    "XDG_STATE_HOME",
]


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep user configuration and real home directories out of tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("LOG_FILE_ENABLED", "false")
    monkeypatch.setenv("LOG_CONSOLE_ENABLED", "false")
    yield


@pytest.fixture
def now() -> datetime:
    """Fixed projection time."""
    return NOW


@pytest.fixture
def store_path(tmp_path):
    """Location for a JSONL event store (not created)."""
    return tmp_path / "analytics" / "boxes.jsonl"


@pytest.fixture
def jsonl_store(store_path) -> JsonlEventStore:
    return JsonlEventStore(store_path)


@pytest.fixture
def memory_store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def test_settings(store_path) -> Settings:
    """Settings pointing at the temporary store, without legacy migration."""
    return Settings(
        store_path=str(store_path),
        legacy_store_path="",
        log_file_enabled=False,
    )


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture
def make_annotation() -> Callable[..., dict[str, Any]]:
    """Factory for raw AnnotationCreated records."""

    def _make(
        annotation_id: str = "a1",
        box_type: str = "Choice",
        ts: datetime = NOW,
        fields: Optional[dict[str, str]] = None,
        repo: str = "",
        initial_score: int = 70,
        session_id: str = "s1",
        schema_version: int = 1,
    ) -> dict[str, Any]:
        return {
            "event": "AnnotationCreated",
            "id": annotation_id,
            "ts": _iso(ts),
            "schema_version": schema_version,
            "box_type": box_type,
            "fields": fields
            if fields is not None
            else {"selected": "Zod", "alternatives": "Yup"},
            "context": {"session_id": session_id, "git_remote": repo},
            "initial_score": initial_score,
        }

    return _make


@pytest.fixture
def make_insight() -> Callable[..., dict[str, Any]]:
    """Factory for raw InsightCreated records."""

    def _make(
        insight_id: str = "l1",
        insight: str = "Prefer Zod for validation",
        ts: datetime = NOW,
        confidence: float = 0.8,
        scope: str = "global",
        level: int = 0,
    ) -> dict[str, Any]:
        return {
            "event": "InsightCreated",
            "id": insight_id,
            "ts": _iso(ts),
            "schema_version": 1,
            "insight": insight,
            "confidence": confidence,
            "scope": scope,
            "tags": [],
            "level": level,
        }

    return _make


@pytest.fixture
def make_evidence() -> Callable[..., dict[str, Any]]:
    """Factory for raw EvidenceLinked records."""

    def _make(
        insight_id: str = "l1",
        annotation_id: str = "a1",
        strength: float = 1.0,
        relationship: str = "supports",
        ts: datetime = NOW,
    ) -> dict[str, Any]:
        return {
            "event": "EvidenceLinked",
            "ts": _iso(ts),
            "schema_version": 1,
            "learning_id": insight_id,
            "box_id": annotation_id,
            "strength": strength,
            "relationship": relationship,
        }

    return _make


@pytest.fixture
def weeks_ago() -> Callable[[float], datetime]:
    """Timestamp a given number of weeks before NOW."""

    def _weeks_ago(weeks: float) -> datetime:
        return NOW - timedelta(weeks=weeks)

    return _weeks_ago
