"""
Box collector: extracts response boxes from assistant output.

A box starts with a header line made of a known marker, whitespace and a
decorative rule, and ends at a line consisting only of the rule character:

    ⚖️ Choice ─────────────────────────────────────
    **Selected:** Zod for schema validation
    **Alternatives:** Yup, io-ts
    ───────────────────────────────────────────────

A new header also closes the previous box, and an unclosed box at the end of
the text is still emitted. Each box becomes one AnnotationCreated event.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional

from response_boxes.config import SUPPORTED_SCHEMA_VERSION
from response_boxes.models.events import (
    AnnotationContext,
    AnnotationCreated,
    EventType,
    normalize_record,
)
from response_boxes.models.taxonomy import BOX_MARKERS, initial_score_for
from response_boxes.projection import max_schema_version
from response_boxes.store import EventStore, StoreReadResult, StoreState
from response_boxes.utils import extract_text_content, utc_now

logger = logging.getLogger(__name__)

RULE_CHAR = "─"
VARIATION_SELECTOR = "\ufe0f"

# Markers are matched with or without the emoji variation selector
_MARKER_TYPES = {
    marker.replace(VARIATION_SELECTOR, ""): box_type.value
    for marker, box_type in BOX_MARKERS.items()
}
_MARKER_ALTERNATION = "|".join(
    re.escape(marker) for marker in sorted(_MARKER_TYPES, key=len, reverse=True)
)
HEADER_PATTERN = re.compile(
    rf"^({_MARKER_ALTERNATION}){VARIATION_SELECTOR}?\s.*{RULE_CHAR}+"
)
CLOSING_PATTERN = re.compile(rf"^{RULE_CHAR}+\s*$")
# **Field:** value  (also tolerates **Field**: value)
FIELD_PATTERN = re.compile(r"^\*\*([^*:]+?)(?::\*\*|\*\*:)\s*(.+?)\s*$")


@dataclass
class ExtractedBox:
    """One box found in free text."""

    box_type: str
    fields: dict[str, str]
    raw: str


@dataclass
class CollectionContext:
    """Where a batch of boxes came from."""

    session_id: str = "unknown"
    git_remote: str = ""
    git_branch: str = ""
    timestamp: Optional[datetime] = None


@dataclass
class CollectionResult:
    """Outcome of one collection call."""

    events: list[AnnotationCreated] = field(default_factory=list)
    refused_reason: Optional[str] = None
    duplicates: int = 0  # Boxes whose id is already in the store

    @property
    def appended(self) -> int:
        return len(self.events)


def normalize_field_name(name: str) -> str:
    """Lowercase a field label and replace spaces with underscores."""
    return name.strip().lower().replace(" ", "_")


def parse_fields(body: str) -> dict[str, str]:
    """
    Extract **Field:** value pairs from a box body.

    The first occurrence of a duplicate field wins.
    """
    fields: dict[str, str] = {}
    for line in body.splitlines():
        match = FIELD_PATTERN.match(line.strip())
        if not match:
            continue
        key = normalize_field_name(match.group(1))
        if key and key not in fields:
            fields[key] = match.group(2)
    return fields


def _marker_type(marker: str) -> str:
    return _MARKER_TYPES[marker.replace(VARIATION_SELECTOR, "")]


def extract_boxes(text: str) -> list[ExtractedBox]:
    """
    Find every box in a block of text.

    Args:
        text: Assistant output

    Returns:
        Boxes in order of appearance; boxes with an empty body are dropped
    """
    boxes: list[ExtractedBox] = []
    current_type: Optional[str] = None
    current_lines: list[str] = []

    def flush() -> None:
        body = "".join(line + "\n" for line in current_lines)
        if current_type is not None and body:
            boxes.append(
                ExtractedBox(box_type=current_type, fields=parse_fields(body), raw=body)
            )

    for line in text.splitlines():
        header = HEADER_PATTERN.match(line)
        if header:
            flush()
            current_type = _marker_type(header.group(1))
            current_lines = []
        elif current_type is not None and CLOSING_PATTERN.match(line):
            flush()
            current_type = None
            current_lines = []
        elif current_type is not None:
            current_lines.append(line)

    flush()
    return boxes


def build_events(
    boxes: list[ExtractedBox],
    context: CollectionContext,
    start_turn: int = 1,
) -> list[AnnotationCreated]:
    """
    Turn extracted boxes into AnnotationCreated events.

    Turn numbers increment per box from start_turn, and ids take the form
    sess_<session_id>_<turn>.
    """
    timestamp = context.timestamp or utc_now()
    events = []
    for offset, box in enumerate(boxes):
        turn_number = start_turn + offset
        events.append(
            AnnotationCreated(
                id=f"sess_{context.session_id}_{turn_number}",
                ts=timestamp,
                schema_version=SUPPORTED_SCHEMA_VERSION,
                box_type=box.box_type,
                fields=box.fields,
                context=AnnotationContext(
                    session_id=context.session_id,
                    git_remote=context.git_remote,
                    git_branch=context.git_branch,
                    turn_number=turn_number,
                ),
                initial_score=initial_score_for(box.box_type),
            )
        )
    return events


def _transcript_entries(path: Path) -> Iterator[dict[str, Any]]:
    text = path.read_text(encoding="utf-8", errors="replace")
    if text.lstrip().startswith("["):
        data = json.loads(text)
        for entry in data if isinstance(data, list) else []:
            if isinstance(entry, dict):
                yield entry
        return

    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(entry, dict):
            yield entry


def read_transcript(path: Path | str) -> str:
    """
    Concatenate the text of every assistant message in a transcript.

    Supports JSONL and JSON-array transcripts. Message text is read from
    `content` or `message.content`, either a string or a list of text items.

    Raises:
        OSError: If the transcript cannot be read
        json.JSONDecodeError: If an array-shaped transcript is invalid JSON
    """
    texts = []
    for entry in _transcript_entries(Path(path)):
        if entry.get("type") != "assistant":
            continue
        content = entry.get("content")
        if content is None and isinstance(entry.get("message"), dict):
            content = entry["message"].get("content")
        text = extract_text_content(content)
        if text:
            texts.append(text)
    return "\n".join(texts)


class BoxCollector:
    """
    Appends AnnotationCreated events for boxes found in text.

    Collection refuses to write into a store that is array-shaped, corrupt,
    or carries a newer schema than this collector understands.
    """

    def __init__(
        self, store: EventStore, supported_version: int = SUPPORTED_SCHEMA_VERSION
    ):
        self.store = store
        self.supported_version = supported_version

    def check_store(self, result: Optional[StoreReadResult] = None) -> Optional[str]:
        """Return a reason to refuse appends, or None if the store is writable."""
        if result is None:
            result = self.store.read_all()
        if result.state == StoreState.ARRAY_SHAPED:
            return "Event store is a JSON array, expected JSON lines; migrate it first"
        if result.state == StoreState.CORRUPT:
            return "Event store is not valid JSON lines; repair or reset it first"

        highest = max_schema_version(result.records)
        if highest > self.supported_version:
            return (
                f"Event store schema version {highest} is newer than this "
                f"collector supports ({self.supported_version})"
            )
        return None

    def next_turn(self, session_id: str) -> int:
        """Next free turn number for a session, based on existing creations."""
        count = 0
        for record in self.store.read_all().records:
            context = record.get("context")
            if (
                record.get("event", "AnnotationCreated")
                in ("AnnotationCreated", "BoxCreated")
                and isinstance(context, dict)
                and context.get("session_id") == session_id
            ):
                count += 1
        return count + 1

    def collect(
        self,
        text: str,
        context: CollectionContext,
        start_turn: int = 1,
    ) -> CollectionResult:
        """
        Extract boxes from text and append one event per box.

        Args:
            text: Assistant output to scan
            context: Session and repository metadata
            start_turn: Turn number for the first box

        Returns:
            CollectionResult with the appended events or the refusal reason
        """
        boxes = extract_boxes(text)
        if not boxes:
            return CollectionResult()

        snapshot = self.store.read_all()
        reason = self.check_store(snapshot)
        if reason:
            logger.warning(f"Not collecting {len(boxes)} box(es): {reason}")
            return CollectionResult(refused_reason=reason)

        # Re-running on the same transcript regenerates the same ids
        existing = _annotation_ids(snapshot.records)
        events = [
            event
            for event in build_events(boxes, context, start_turn=start_turn)
            if event.id not in existing
        ]
        duplicates = len(boxes) - len(events)
        if duplicates:
            logger.info(f"Skipped {duplicates} already recorded box(es)")

        if events:
            self.store.append_many(events)
            logger.info(
                f"Recorded {len(events)} box(es) for session {context.session_id}"
            )
        return CollectionResult(events=events, duplicates=duplicates)


def _annotation_ids(records: list[dict[str, Any]]) -> set[str]:
    """Ids of every annotation creation in the store, legacy lines included."""
    ids = set()
    for record in records:
        normalized = normalize_record(record)
        record_id = normalized.get("id")
        if (
            normalized.get("event") == EventType.ANNOTATION_CREATED.value
            and record_id is not None
        ):
            ids.add(str(record_id))
    return ids
