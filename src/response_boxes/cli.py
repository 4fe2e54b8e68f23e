"""
Response Boxes CLI - hook entry points and event store tooling.

The `inject` and `session-end` commands are wired into the agent's
SessionStart and SessionEnd hooks; everything else is for inspecting the
store and recording analysis results by hand.
"""

import json
import logging
import os
import sys
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from response_boxes.config import Settings
from response_boxes.exceptions import ResponseBoxesError, UnsupportedSchemaError
from response_boxes.logging_config import setup_logging

app = typer.Typer(
    name="response-boxes",
    help="Response Boxes - cross-session learning from structured response annotations",
    no_args_is_help=True,
)

console = Console()
logger = logging.getLogger(__name__)


def _read_hook_input() -> dict[str, Any]:
    """Read the hook's JSON payload from stdin ({} when absent or invalid)."""
    try:
        raw = sys.stdin.read()
    except OSError:
        return {}
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def _parse_updates(pairs: Optional[list[str]]) -> dict[str, Any]:
    """Parse repeated KEY=VALUE options; values are JSON when they parse as JSON."""
    updates: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected KEY=VALUE, got {pair!r}")
        try:
            updates[key.strip()] = json.loads(value)
        except json.JSONDecodeError:
            updates[key.strip()] = value
    return updates


def _load_projection(config: Settings, repo: str):
    """
    Read and project the configured store.

    Raises:
        StoreError: If the store is array-shaped or corrupt
        UnsupportedSchemaError: If the store is newer than this tool
    """
    from response_boxes.hooks import open_store
    from response_boxes.projection import NeedsUpgrade, project_store
    from response_boxes.utils import utc_now

    read = open_store(config).read_all()
    read.raise_for_state()

    projection = project_store(
        read.records,
        now=utc_now(),
        current_repo=repo,
        decay_rate=config.recency_decay_rate,
        supported_version=config.supported_schema_version,
    )
    if isinstance(projection, NeedsUpgrade):
        raise UnsupportedSchemaError(
            projection.max_version, projection.supported_version
        )
    return projection


def _recorder(config: Settings):
    from response_boxes.hooks import open_store
    from response_boxes.recorder import EventRecorder

    return EventRecorder(open_store(config))


@app.command()
def inject() -> None:
    """
    SessionStart hook: print learnings context as hook JSON.

    Reads the hook payload from stdin. Always exits 0; any failure prints {}.
    """
    from response_boxes.hooks import open_store, session_start

    hook_input = _read_hook_input()
    try:
        config = Settings()
        setup_logging(context="inject", config=config)
        output = session_start(hook_input, open_store(config), config)
    except Exception as e:
        logger.exception(f"inject failed: {e}")
        output = {}
    typer.echo(json.dumps(output, ensure_ascii=False))


@app.command("session-end")
def session_end() -> None:
    """
    SessionEnd hook: collect boxes from the session transcript.

    Reads the hook payload from stdin. Prints nothing and always exits 0.
    """
    from response_boxes.hooks import open_store
    from response_boxes.hooks import session_end as run_session_end

    hook_input = _read_hook_input()
    try:
        config = Settings()
        setup_logging(context="collect", config=config)
        run_session_end(hook_input, open_store(config), config)
    except Exception as e:
        logger.exception(f"session-end failed: {e}")


@app.command()
def collect(
    text: Optional[str] = typer.Argument(
        None, help="Assistant output to scan (read from stdin if omitted)"
    ),
    transcript: Optional[str] = typer.Option(
        None, "--transcript", help="Session transcript (JSONL or JSON array)"
    ),
    session_id: str = typer.Option("unknown", help="Session identifier"),
    cwd: Optional[str] = typer.Option(
        None, help="Working directory used for repository context"
    ),
) -> None:
    """
    Extract response boxes from text and append them to the event store.
    """
    from response_boxes.collector import (
        BoxCollector,
        CollectionContext,
        read_transcript,
    )
    from response_boxes.git_context import get_branch, get_repository
    from response_boxes.hooks import open_store

    config = Settings()
    setup_logging(context="cli", config=config)

    if transcript:
        try:
            text = read_transcript(transcript)
        except (OSError, ValueError) as e:
            console.print(f"[bold red]Error:[/bold red] Cannot read transcript: {e}")
            raise typer.Exit(1)
    elif text is None:
        text = sys.stdin.read()

    workdir = cwd or os.getcwd()
    context = CollectionContext(
        session_id=session_id,
        git_remote=get_repository(workdir),
        git_branch=get_branch(workdir),
    )

    collector = BoxCollector(open_store(config), config.supported_schema_version)
    result = collector.collect(
        text, context, start_turn=collector.next_turn(session_id)
    )

    if result.refused_reason:
        console.print(f"[bold red]Error:[/bold red] {result.refused_reason}")
        raise typer.Exit(1)
    if not result.appended:
        if result.duplicates:
            console.print(
                f"[yellow]{result.duplicates} box(es) already recorded[/yellow]"
            )
        else:
            console.print("[yellow]No response boxes found[/yellow]")
        return

    console.print(f"[green]✓ Recorded {result.appended} box(es)[/green]")
    for event in result.events:
        console.print(f"  {event.id}  {event.box_type}")


@app.command()
def show(
    repo: Optional[str] = typer.Option(
        None, help="Repository identifier for boosting (defaults to the cwd's origin)"
    ),
    show_all: bool = typer.Option(
        False, "--all", help="Show every record instead of the injected selection"
    ),
) -> None:
    """
    Show ranked learnings and boxes as they would be injected.
    """
    from response_boxes.formatter import format_age, summarize_annotation
    from response_boxes.git_context import get_repository
    from response_boxes.ranking import (
        rank_annotations,
        rank_insights,
        select_top_annotations,
        select_top_insights,
    )

    config = Settings()
    setup_logging(context="cli", config=config)

    current_repo = repo if repo is not None else get_repository(os.getcwd())
    try:
        projection = _load_projection(config, current_repo)
    except ResponseBoxesError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if show_all:
        insights = rank_insights(projection.insights)
        annotations = rank_annotations(
            projection.annotations, min_effective_score=float("-inf")
        )
    else:
        insights = select_top_insights(
            projection.insights, config.inject_learnings_count
        )
        annotations = select_top_annotations(
            projection.annotations,
            config.inject_annotations_count,
            config.min_effective_score,
        )

    console.print(f"[bold blue]Repository:[/bold blue] {current_repo or 'N/A'}")
    console.print()

    learning_table = Table(title="Learnings")
    learning_table.add_column("ID", style="cyan")
    learning_table.add_column("Level", justify="right")
    learning_table.add_column("Learning")
    learning_table.add_column("Scope")
    learning_table.add_column("Confidence", justify="right")
    learning_table.add_column("Evidence", justify="right")
    learning_table.add_column("Relevance", justify="right")
    for insight in insights:
        learning_table.add_row(
            insight.id,
            str(insight.level),
            insight.insight,
            insight.scope,
            f"{insight.effective_confidence:.0%}",
            str(insight.evidence_count),
            f"{insight.relevance_score:.3f}",
        )
    console.print(learning_table)

    box_table = Table(title="Boxes")
    box_table.add_column("ID", style="cyan")
    box_table.add_column("Type")
    box_table.add_column("Summary")
    box_table.add_column("Repository")
    box_table.add_column("Age")
    box_table.add_column("Score", justify="right")
    box_table.add_column("Relevance", justify="right")
    for annotation in annotations:
        box_table.add_row(
            annotation.id,
            annotation.box_type,
            summarize_annotation(annotation),
            annotation.repository or "local",
            format_age(annotation.age_weeks),
            f"{annotation.effective_score:.1f}",
            f"{annotation.relevance_score:.1f}",
        )
    console.print(box_table)

    if projection.unanalyzed_count:
        console.print(
            f"\n[yellow]{projection.unanalyzed_count} box(es) not yet analyzed[/yellow]"
        )


@app.command()
def status() -> None:
    """
    Show event store location, shape and record counts.
    """
    from response_boxes.hooks import open_store
    from response_boxes.projection import max_schema_version, project_store
    from response_boxes.store import StoreState
    from response_boxes.utils import utc_now

    config = Settings()
    setup_logging(context="cli", config=config)

    read = open_store(config).read_all()
    highest = max_schema_version(read.records)

    table = Table(title="Event Store", show_header=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Path", str(config.event_store_path))
    table.add_row("State", read.state.value)
    table.add_row("Records", str(len(read.records)))
    table.add_row("Skipped lines", str(read.skipped_lines))
    table.add_row(
        "Schema version",
        f"{highest} (supported: {config.supported_schema_version})",
    )

    if read.state == StoreState.OK and highest <= config.supported_schema_version:
        projection = project_store(
            read.records,
            now=utc_now(),
            decay_rate=config.recency_decay_rate,
            supported_version=config.supported_schema_version,
        )
        table.add_row("Boxes", str(len(projection.annotations)))
        table.add_row("Learnings", str(len(projection.insights)))
        table.add_row("Unanalyzed boxes", str(projection.unanalyzed_count))
        stats = projection.stats
        if stats.malformed or stats.unknown or stats.orphan_count:
            table.add_row(
                "Skipped events",
                f"malformed={stats.malformed}, unknown={stats.unknown}, "
                f"orphaned={stats.orphan_count}",
            )

    console.print(table)

    if read.state in (StoreState.ARRAY_SHAPED, StoreState.CORRUPT):
        console.print(
            f"[bold red]Error:[/bold red] Store is {read.state.value}; "
            f"injection is disabled until it is repaired"
        )
        raise typer.Exit(1)
    if highest > config.supported_schema_version:
        error = UnsupportedSchemaError(highest, config.supported_schema_version)
        console.print(f"[bold red]Error:[/bold red] {error}")
        raise typer.Exit(1)


@app.command()
def migrate(
    source: Optional[str] = typer.Option(
        None,
        "--from",
        help="Legacy store path (defaults to the configured legacy path)",
    ),
) -> None:
    """
    Copy a legacy event store to the configured location.
    """
    from response_boxes.store import migrate_legacy_store

    config = Settings()
    setup_logging(context="cli", config=config)

    legacy = source or config.legacy_store_path
    if not legacy:
        console.print("[bold red]Error:[/bold red] No legacy store path configured")
        raise typer.Exit(1)

    if migrate_legacy_store(legacy, config.event_store_path):
        console.print(
            f"[green]✓ Migrated[/green] {legacy} -> {config.event_store_path}"
        )
    else:
        console.print(
            "[yellow]Nothing migrated[/yellow] (target exists, or the legacy "
            "store is missing or not valid JSON lines)"
        )


@app.command("record-learning")
def record_learning(
    insight: str = typer.Argument(..., help="Learning text"),
    confidence: float = typer.Option(0.5, help="Base confidence between 0 and 1"),
    scope: str = typer.Option("global", help="'global' or 'repo'"),
    tag: Optional[list[str]] = typer.Option(None, "--tag", help="Tag (repeatable)"),
    level: int = typer.Option(0, help="0 for a learning, 1+ for a meta-learning"),
    learning_id: Optional[str] = typer.Option(None, "--id", help="Explicit id"),
) -> None:
    """
    Record a new learning.
    """
    config = Settings()
    setup_logging(context="cli", config=config)

    try:
        event = _recorder(config).record_insight(
            insight,
            confidence=confidence,
            scope=scope,
            tags=tag,
            level=level,
            insight_id=learning_id,
        )
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Recorded learning[/green] {event.id}")


@app.command("update-learning")
def update_learning(
    learning_id: str = typer.Argument(..., help="Learning id"),
    set_values: Optional[list[str]] = typer.Option(
        None, "--set", help="KEY=VALUE update (repeatable; JSON values allowed)"
    ),
) -> None:
    """
    Record a partial update to a learning.
    """
    config = Settings()
    setup_logging(context="cli", config=config)

    try:
        _recorder(config).update_insight(learning_id, _parse_updates(set_values))
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Updated learning[/green] {learning_id}")


@app.command()
def enrich(
    box_id: str = typer.Argument(..., help="Box id"),
    score: Optional[float] = typer.Option(None, help="Adjusted score"),
    set_values: Optional[list[str]] = typer.Option(
        None, "--set", help="KEY=VALUE update (repeatable; JSON values allowed)"
    ),
) -> None:
    """
    Record a partial update to a box.
    """
    config = Settings()
    setup_logging(context="cli", config=config)

    updates = _parse_updates(set_values)
    if score is not None:
        updates["score"] = score

    try:
        _recorder(config).enrich_annotation(box_id, updates)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Enriched box[/green] {box_id}")


@app.command("link-evidence")
def link_evidence(
    learning_id: str = typer.Argument(..., help="Learning id"),
    box_id: str = typer.Argument(..., help="Box id"),
    strength: float = typer.Option(1.0, help="Evidence strength between 0 and 1"),
    relationship: str = typer.Option(
        "supports", help="'supports', 'contradicts' or 'tangential'"
    ),
) -> None:
    """
    Link a box to a learning as evidence.
    """
    config = Settings()
    setup_logging(context="cli", config=config)

    try:
        event = _recorder(config).link_evidence(
            learning_id, box_id, strength=strength, relationship=relationship
        )
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(
        f"[green]✓ Linked[/green] {box_id} -> {learning_id} ({event.relationship})"
    )


@app.command("link-learnings")
def link_learnings(
    parent_id: str = typer.Argument(..., help="Meta-learning id"),
    child_id: str = typer.Argument(..., help="Learning id"),
    relationship: str = typer.Option(
        "synthesizes", help="'synthesizes', 'refines' or 'supersedes'"
    ),
) -> None:
    """
    Link a meta-learning to a learning it builds on.
    """
    config = Settings()
    setup_logging(context="cli", config=config)

    try:
        _recorder(config).link_insights(parent_id, child_id, relationship=relationship)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Linked[/green] {parent_id} -> {child_id}")


@app.command("analysis-complete")
def analysis_complete(
    through: Optional[str] = typer.Option(
        None, help="ISO timestamp through which boxes were analyzed (default: now)"
    ),
) -> None:
    """
    Mark boxes up to a point in time as analyzed.
    """
    from response_boxes.utils import parse_iso_timestamp

    config = Settings()
    setup_logging(context="cli", config=config)

    through_ts = None
    if through:
        try:
            through_ts = parse_iso_timestamp(through)
        except ValueError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(1)

    event = _recorder(config).complete_analysis(through_ts=through_ts)
    console.print(
        f"[green]✓ Analysis recorded[/green] through {event.horizon.isoformat()}"
    )


if __name__ == "__main__":
    app()
