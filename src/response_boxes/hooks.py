"""
Session lifecycle boundaries.

These are the outermost error boundaries of the package: every failure in
the read/projection/format path degrades to "inject nothing", and every
failure in the collection path degrades to "append nothing". Neither path
may raise into, block, or crash the host session.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from threading import Thread
from typing import Any, Mapping, Optional

from response_boxes.collector import BoxCollector, CollectionContext, read_transcript
from response_boxes.config import Settings
from response_boxes.formatter import render, render_diagnostic
from response_boxes.git_context import get_branch, get_repository
from response_boxes.projection import NeedsUpgrade, project_store
from response_boxes.ranking import select_top_annotations, select_top_insights
from response_boxes.store import (
    EventStore,
    JsonlEventStore,
    StoreState,
    migrate_legacy_store,
)
from response_boxes.utils import utc_now

logger = logging.getLogger(__name__)

ARRAY_SHAPED_MESSAGE = (
    "Analytics event store is a JSON array, expected JSON lines. Back up {path} "
    "and migrate it to JSONL to restore cross-session injection."
)
CORRUPT_MESSAGE = (
    "Analytics event store is not valid JSON lines. Back up {path} and repair "
    "or reset it to restore cross-session injection."
)
SKIPPED_LINES_NOTICE = (
    "Note: {count} unreadable line(s) in the analytics event store were skipped."
)


@dataclass
class InjectionResult:
    """Outcome of a session-start injection."""

    context: Optional[str] = None
    learnings: int = 0
    boxes: int = 0
    diagnostic: Optional[str] = None
    stats: dict[str, int] = field(default_factory=dict)

    def to_hook_output(self) -> dict[str, Any]:
        """Hook JSON: additionalContext when there is text, otherwise {}."""
        if not self.context:
            return {}
        return {"hookSpecificOutput": {"additionalContext": self.context}}


def open_store(config: Settings, migrate: bool = True) -> JsonlEventStore:
    """
    Open the configured event store.

    On first use, a store left behind by the original hooks at
    `legacy_store_path` is copied to the configured location.
    """
    target = config.event_store_path
    if migrate and config.legacy_store_path:
        try:
            migrate_legacy_store(config.legacy_store_path, target)
        except OSError as e:
            logger.warning(f"Legacy store migration failed: {e}")
    return JsonlEventStore(target)


def build_injection(
    store: EventStore,
    config: Settings,
    current_repo: str = "",
    now: Optional[datetime] = None,
) -> InjectionResult:
    """
    Project the store and render the session-start context.

    Guardrail conditions (array-shaped store, corrupt store, newer schema)
    produce a diagnostic context instead of learnings.

    Args:
        store: Event store to read
        config: Counts, thresholds and decay settings
        current_repo: Repository identifier of the new session
        now: Projection time (defaults to now)

    Returns:
        InjectionResult with the rendered context, if any
    """
    now = now or utc_now()
    read = store.read_all()

    if read.state == StoreState.ARRAY_SHAPED:
        message = ARRAY_SHAPED_MESSAGE.format(path=read.source)
        return InjectionResult(context=render_diagnostic(message), diagnostic=message)
    if read.state == StoreState.CORRUPT:
        message = CORRUPT_MESSAGE.format(path=read.source)
        return InjectionResult(context=render_diagnostic(message), diagnostic=message)
    if not read.records:
        return InjectionResult()

    projection = project_store(
        read.records,
        now=now,
        current_repo=current_repo,
        decay_rate=config.recency_decay_rate,
        supported_version=config.supported_schema_version,
    )
    if isinstance(projection, NeedsUpgrade):
        return InjectionResult(
            context=render_diagnostic(projection.message),
            diagnostic=projection.message,
        )

    insights = select_top_insights(projection.insights, config.inject_learnings_count)
    annotations = select_top_annotations(
        projection.annotations,
        config.inject_annotations_count,
        config.min_effective_score,
    )
    notices = []
    if read.skipped_lines:
        notices.append(SKIPPED_LINES_NOTICE.format(count=read.skipped_lines))

    context = render(
        insights,
        annotations,
        unanalyzed_count=projection.unanalyzed_count,
        notices=notices,
    )
    return InjectionResult(
        context=context,
        learnings=len(insights),
        boxes=len(annotations),
        stats=projection.stats.to_dict(),
    )


def session_start(
    hook_input: Mapping[str, Any], store: EventStore, config: Settings
) -> dict[str, Any]:
    """
    Session-start hook: returns the hook output JSON.

    Runs the projection on a daemon thread under a soft timeout; a timeout,
    any exception, or disabled injection all yield `{}`. A stalled worker is
    abandoned and does not keep the process alive at exit.
    """
    if config.injection_disabled:
        logger.debug("Injection disabled via configuration")
        return {}

    outcome: dict[str, Any] = {}

    def _run(current_repo: str) -> None:
        try:
            outcome["result"] = build_injection(store, config, current_repo)
        except Exception as e:
            outcome["error"] = e

    try:
        current_repo = get_repository(hook_input.get("cwd"))
        thread = Thread(
            target=_run, args=(current_repo,), name="inject-context", daemon=True
        )
        thread.start()
        thread.join(timeout=config.injection_timeout_seconds)
    except Exception as e:
        logger.exception(f"Context injection failed: {e}")
        return {}

    if thread.is_alive():
        logger.warning(
            f"Context injection exceeded {config.injection_timeout_seconds}s; skipping"
        )
        return {}
    if "error" in outcome:
        error = outcome["error"]
        logger.error(f"Context injection failed: {error}", exc_info=error)
        return {}

    result: InjectionResult = outcome["result"]

    if result.context:
        logger.info(
            f"Injected {result.learnings} learnings and {result.boxes} boxes"
            + (f" ({result.diagnostic})" if result.diagnostic else "")
        )
    return result.to_hook_output()


def session_end(
    hook_input: Mapping[str, Any], store: EventStore, config: Settings
) -> int:
    """
    Session-end hook: collect boxes from the session transcript.

    Returns:
        Number of events appended (0 on any failure)
    """
    try:
        transcript_path = hook_input.get("transcript_path")
        if not transcript_path or not Path(transcript_path).is_file():
            logger.info("No transcript available, skipping")
            return 0

        cwd = hook_input.get("cwd")
        context = CollectionContext(
            session_id=str(hook_input.get("session_id") or "unknown"),
            git_remote=get_repository(cwd),
            git_branch=get_branch(cwd),
        )
        text = read_transcript(transcript_path)
        if not text:
            logger.info("No assistant messages found")
            return 0

        collector = BoxCollector(store, config.supported_schema_version)
        result = collector.collect(text, context)
        return result.appended
    except Exception as e:
        logger.exception(f"Box collection failed: {e}")
        return 0
