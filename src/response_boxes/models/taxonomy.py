"""
Box type taxonomy shared by the collector and the projection engine.

Each box type has a unique leading marker in assistant output and a fixed
initial score used until an enrichment adjusts it.
"""

from enum import Enum


class BoxType(str, Enum):
    """Known box types."""

    REFLECTION = "Reflection"
    WARNING = "Warning"
    PUSHBACK = "Pushback"
    ASSUMPTION = "Assumption"
    CHOICE = "Choice"
    COMPLETION = "Completion"
    CONCERN = "Concern"
    CONFIDENCE = "Confidence"
    DECISION = "Decision"
    SYCOPHANCY = "Sycophancy"  # Legacy: no longer emitted as a box
    SUGGESTION = "Suggestion"
    QUALITY = "Quality"
    FOLLOW_UPS = "FollowUps"


UNKNOWN_BOX_TYPE = "Unknown"

# Leading marker -> box type
BOX_MARKERS: dict[str, BoxType] = {
    "⚖️": BoxType.CHOICE,
    "🎯": BoxType.DECISION,
    "💭": BoxType.ASSUMPTION,
    "📊": BoxType.CONFIDENCE,
    "↩️": BoxType.PUSHBACK,
    "⚠️": BoxType.CONCERN,
    "💡": BoxType.SUGGESTION,
    "🚨": BoxType.WARNING,
    "🪞": BoxType.SYCOPHANCY,
    "✅": BoxType.QUALITY,
    "📋": BoxType.FOLLOW_UPS,
    "🏁": BoxType.COMPLETION,
    "🔄": BoxType.REFLECTION,
}

INITIAL_SCORES: dict[str, int] = {
    BoxType.REFLECTION.value: 90,
    BoxType.WARNING.value: 90,
    BoxType.PUSHBACK.value: 85,
    BoxType.ASSUMPTION.value: 80,
    BoxType.CHOICE.value: 70,
    BoxType.COMPLETION.value: 70,
    BoxType.CONCERN.value: 65,
    BoxType.CONFIDENCE.value: 60,
    BoxType.DECISION.value: 55,
    BoxType.SYCOPHANCY.value: 50,
    BoxType.SUGGESTION.value: 45,
    BoxType.QUALITY.value: 40,
    BoxType.FOLLOW_UPS.value: 35,
}

# Score for types outside the table when the collector emits them
DEFAULT_INITIAL_SCORE = 40

# Score for legacy records that carry neither initial_score nor a known type
LEGACY_INITIAL_SCORE = 50

# Types kept in the log but never projected
EXCLUDED_BOX_TYPES = frozenset({BoxType.SYCOPHANCY.value})


def initial_score_for(box_type: str, default: int = DEFAULT_INITIAL_SCORE) -> int:
    """
    Look up the initial score for a box type.

    Args:
        box_type: Box type name (e.g. 'Warning')
        default: Score to use for types outside the table

    Returns:
        Initial score for the type
    """
    return INITIAL_SCORES.get(box_type, default)
