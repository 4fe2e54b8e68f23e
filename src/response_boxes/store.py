"""
Append-only event store.

The canonical store is a JSONL file: one JSON object per line. Appends are a
single write to the end of the file, so concurrent hook processes never
interleave partial lines; all derived state is recomputed from the full log
on every read, so nothing is cached here.
"""

import json
import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Protocol, Union

from response_boxes.exceptions import ArrayShapedStoreError, CorruptStoreError
from response_boxes.models.events import BaseEvent

logger = logging.getLogger(__name__)

Record = dict[str, Any]
Appendable = Union[BaseEvent, Mapping[str, Any]]


class StoreState(str, Enum):
    """Shape of the store as seen by the last read."""

    MISSING = "missing"  # Never initialized: no data, not an error
    EMPTY = "empty"  # Exists but holds no records
    OK = "ok"
    ARRAY_SHAPED = "array_shaped"  # Legacy bulk JSON array, not JSON lines
    CORRUPT = "corrupt"  # Exists but no line parses as a JSON object


@dataclass
class StoreReadResult:
    """
    Raw records read from the store plus shape diagnostics.

    Attributes:
        records: Every line that parsed as a JSON object, in log order
        state: Overall shape of the store
        skipped_lines: Count of non-blank lines that failed to parse
        source: Human-readable store location for diagnostics
    """

    records: list[Record] = field(default_factory=list)
    state: StoreState = StoreState.OK
    skipped_lines: int = 0
    source: str = ""

    @property
    def usable(self) -> bool:
        """Whether records can be projected."""
        return self.state in (StoreState.OK, StoreState.EMPTY, StoreState.MISSING)

    def raise_for_state(self) -> None:
        """
        Raise the matching StoreError for unusable stores.

        Raises:
            ArrayShapedStoreError: If the store is a single JSON array
            CorruptStoreError: If the store exists but cannot be parsed
        """
        if self.state == StoreState.ARRAY_SHAPED:
            raise ArrayShapedStoreError(
                "Store is array-shaped, not line-shaped", self.source or None
            )
        if self.state == StoreState.CORRUPT:
            raise CorruptStoreError(
                "Store is not valid JSON lines", self.source or None
            )


class EventStore(Protocol):
    """
    Protocol for event stores.

    Implementations must be append-only: records are never edited or removed.
    """

    def append(self, event: Appendable) -> None:
        """Append one event to the end of the log."""
        ...

    def append_many(self, events: Iterable[Appendable]) -> int:
        """Append events in order; returns the number appended."""
        ...

    def read_all(self) -> StoreReadResult:
        """Read every record in log order."""
        ...


def _to_record(event: Appendable) -> Record:
    if isinstance(event, BaseEvent):
        return event.to_record()
    return dict(event)


def _serialize(event: Appendable) -> str:
    return json.dumps(_to_record(event), ensure_ascii=False, separators=(",", ":"))


def parse_lines(lines: Iterable[str], source: str = "") -> StoreReadResult:
    """
    Parse JSONL text into records, tolerating bad lines.

    Args:
        lines: Raw lines of the store
        source: Store location for diagnostics

    Returns:
        StoreReadResult with parsed records and skip counts
    """
    result = StoreReadResult(source=source)
    seen_content = False

    for line_number, line in enumerate(lines, start=1):
        stripped = line.strip()
        if not stripped:
            continue

        if not seen_content:
            seen_content = True
            if stripped.startswith("["):
                result.state = StoreState.ARRAY_SHAPED
                return result

        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            result.skipped_lines += 1
            logger.debug(f"Skipping unparseable line {line_number} in {source}")
            continue

        if not isinstance(data, dict):
            result.skipped_lines += 1
            logger.debug(f"Skipping non-object line {line_number} in {source}")
            continue

        result.records.append(data)

    if not seen_content:
        result.state = StoreState.EMPTY
    elif not result.records:
        result.state = StoreState.CORRUPT

    if result.skipped_lines:
        logger.warning(
            f"Skipped {result.skipped_lines} unparseable line(s) in {source}"
        )

    return result


class JsonlEventStore:
    """Event store backed by a JSONL file on the local filesystem."""

    def __init__(self, path: Path | str):
        """
        Initialize the store.

        Args:
            path: Location of the JSONL log (created on first append)
        """
        self.path = Path(path).expanduser()

    def __repr__(self) -> str:
        return f"JsonlEventStore({str(self.path)!r})"

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    def append(self, event: Appendable) -> None:
        self.append_many([event])

    def append_many(self, events: Iterable[Appendable]) -> int:
        lines = [_serialize(event) + "\n" for event in events]
        if not lines:
            return 0

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write("".join(lines))

        logger.debug(f"Appended {len(lines)} event(s) to {self.path}")
        return len(lines)

    def read_all(self) -> StoreReadResult:
        source = str(self.path)
        if not self.path.exists():
            return StoreReadResult(state=StoreState.MISSING, source=source)

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return parse_lines(f, source=source)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Cannot read event store {source}: {e}")
            return StoreReadResult(state=StoreState.CORRUPT, source=source)


class InMemoryEventStore:
    """Event store kept in process memory, for tests and dry runs."""

    def __init__(self, records: Optional[Iterable[Appendable]] = None):
        self._lines: list[str] = []
        if records is not None:
            self.append_many(records)

    def __repr__(self) -> str:
        return f"InMemoryEventStore({len(self._lines)} lines)"

    def append(self, event: Appendable) -> None:
        self.append_many([event])

    def append_many(self, events: Iterable[Appendable]) -> int:
        lines = [_serialize(event) for event in events]
        self._lines.extend(lines)
        return len(lines)

    def append_raw(self, line: str) -> None:
        """Append a raw line verbatim (used to simulate damaged stores)."""
        self._lines.append(line)

    def read_all(self) -> StoreReadResult:
        if not self._lines:
            return StoreReadResult(state=StoreState.MISSING, source="memory")
        return parse_lines(self._lines, source="memory")


def migrate_legacy_store(legacy_path: Path | str, target_path: Path | str) -> bool:
    """
    Copy a legacy event store to a new location.

    The copy happens only when the target does not exist yet and the legacy
    store is non-empty, line-shaped JSON. Neither file is modified in place.

    Args:
        legacy_path: Existing store written by older tooling
        target_path: Configured store location

    Returns:
        True if the store was copied, False otherwise
    """
    legacy = Path(legacy_path).expanduser()
    target = Path(target_path).expanduser()

    if target.exists() or not legacy.is_file() or legacy == target:
        return False

    result = JsonlEventStore(legacy).read_all()
    if result.state != StoreState.OK:
        logger.info(f"Legacy store {legacy} not migrated (state={result.state.value})")
        return False

    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(legacy, target)
    logger.info(f"Migrated legacy event store {legacy} -> {target}")
    return True
