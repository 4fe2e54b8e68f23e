"""
Render selected insights and annotations as a session-start context block.

Output layout:

    PRIOR SESSION LEARNINGS:

    ## Patterns (from cross-session analysis)
    • [HIGH] Prefer Zod for validation (repo-specific) (85% confidence, 3 evidence)

    ## Recent Notable Boxes
    • Choice: Chose Zod over Yup [github.com/acme/app] (today)

    Review and apply using 🔄 Reflection where relevant.
"""

import math
from typing import Callable, Iterable, Optional

from response_boxes.models.taxonomy import BoxType
from response_boxes.models.views import AnnotationView, InsightView

HEADER = "PRIOR SESSION LEARNINGS:"
PATTERNS_HEADING = "## Patterns (from cross-session analysis)"
BOXES_HEADING = "## Recent Notable Boxes"
FOOTER = "Review and apply using 🔄 Reflection where relevant."
MISSING = "N/A"

HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.6

Summarizer = Callable[[dict[str, str]], Optional[str]]


def _field(fields: dict[str, str], *names: str) -> str:
    for name in names:
        value = fields.get(name)
        if value:
            return value
    return MISSING


def _summarize_completion(fields: dict[str, str]) -> Optional[str]:
    if not fields.get("gaps"):
        return None
    return f"Gap noted: {fields['gaps']}"


# Returning None falls through to the generic key: value summary
SUMMARIZERS: dict[str, Summarizer] = {
    BoxType.ASSUMPTION.value: lambda f: f'Assumed "{_field(f, "what")}"',
    BoxType.CHOICE.value: lambda f: (
        f"Chose {_field(f, 'selected')} over {_field(f, 'alternatives')}"
    ),
    BoxType.WARNING.value: lambda f: _field(f, "risk"),
    BoxType.PUSHBACK.value: lambda f: f"Pushed back on: {_field(f, 'position')}",
    BoxType.REFLECTION.value: lambda f: (
        f"Applied: {_field(f, 'learning', 'application')}"
    ),
    BoxType.COMPLETION.value: _summarize_completion,
}


def summarize_fields(fields: dict[str, str], limit: int = 2) -> str:
    """Generic summary: the first `limit` fields as 'key: value'."""
    return ", ".join(f"{key}: {value}" for key, value in list(fields.items())[:limit])


def summarize_annotation(annotation: AnnotationView) -> str:
    """Summarize an annotation with its type-specific template."""
    summarizer = SUMMARIZERS.get(annotation.box_type)
    summary = summarizer(annotation.fields) if summarizer else None
    return summary if summary is not None else summarize_fields(annotation.fields)


def format_age(age_weeks: float) -> str:
    """Human age: 'today' under a week, '1 week ago', else whole weeks."""
    if age_weeks < 1:
        return "today"
    if age_weeks < 2:
        return "1 week ago"
    return f"{math.floor(age_weeks)} weeks ago"


def confidence_label(effective_confidence: float) -> str:
    if effective_confidence >= HIGH_CONFIDENCE:
        return "[HIGH]"
    if effective_confidence >= MEDIUM_CONFIDENCE:
        return "[MEDIUM]"
    return "[LOW]"


def format_insight(insight: InsightView) -> str:
    """Render one insight as a bullet line."""
    scope = " (repo-specific)" if insight.scope == "repo" else ""
    meta = " [meta-learning]" if insight.level > 0 else ""
    percent = math.floor(insight.effective_confidence * 100)
    return (
        f"• {confidence_label(insight.effective_confidence)} {insight.insight}"
        f"{scope}{meta} ({percent}% confidence, {insight.evidence_count} evidence)"
    )


def format_annotation(annotation: AnnotationView) -> str:
    """Render one annotation as a bullet line."""
    origin = annotation.context.get("git_remote") or "local"
    return (
        f"• {annotation.box_type}: {summarize_annotation(annotation)}"
        f" [{origin}] ({format_age(annotation.age_weeks)})"
    )


def render(
    insights: list[InsightView],
    annotations: list[AnnotationView],
    unanalyzed_count: int = 0,
    notices: Iterable[str] = (),
) -> Optional[str]:
    """
    Render the injection block.

    Args:
        insights: Selected insights, already ranked
        annotations: Selected annotations, already ranked
        unanalyzed_count: Annotations newer than the last analysis run
        notices: Short operator-facing diagnostics (e.g. skipped store lines)

    Returns:
        The context text, or None when there is nothing to inject
    """
    notices = [notice for notice in notices if notice]
    if not insights and not annotations and unanalyzed_count <= 0 and not notices:
        return None

    parts: list[str] = []
    for notice in notices:
        parts.extend([notice, ""])

    if unanalyzed_count > 0:
        parts.append(
            f"Unanalyzed response boxes detected ({unanalyzed_count}). "
            f"Run /analyze-boxes to update learnings."
        )
        parts.append("")

    if insights:
        parts.append(PATTERNS_HEADING)
        parts.extend(format_insight(insight) for insight in insights)
        parts.append("")

    if annotations:
        parts.append(BOXES_HEADING)
        parts.extend(format_annotation(annotation) for annotation in annotations)
        parts.append("")

    body = "\n".join(parts)
    return f"{HEADER}\n\n{body}\n{FOOTER}"


def render_diagnostic(message: str) -> str:
    """Render a diagnostic in place of the learnings block."""
    return f"{HEADER}\n\n{message}"
