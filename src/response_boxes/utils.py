"""
Utility functions shared by the store, projection and collector.

Timestamp parsing is lenient: the event log has been written by several
generations of hooks, so offsets, fractional seconds and naive timestamps
all occur in practice.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_SLUG_PATTERN = re.compile(r"[^A-Za-z0-9_]+")


def parse_iso_timestamp(timestamp_str: str) -> datetime:
    """
    Parse an ISO 8601 timestamp string to a timezone-aware datetime.

    Args:
        timestamp_str: ISO 8601 formatted timestamp (e.g., "2025-10-16T19:12:28.024Z")

    Returns:
        Parsed datetime object; naive timestamps are assumed to be UTC

    Raises:
        ValueError: If the timestamp string is invalid
    """
    try:
        parsed = date_parser.isoparse(timestamp_str)
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Invalid timestamp format: {timestamp_str}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def coerce_timestamp(value: Any, default: datetime = EPOCH) -> datetime:
    """Convert a datetime or ISO string to an aware datetime, or return default."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        try:
            return parse_iso_timestamp(value)
        except ValueError:
            return default
    return default


def format_timestamp(value: datetime) -> str:
    """Format an aware datetime as ISO 8601 with a 'Z' suffix for UTC."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def coerce_float(value: Any, default: float) -> float:
    """
    Convert a loosely-typed numeric value to float.

    Booleans, None, non-numeric strings and non-finite values (NaN, inf,
    overflowing integers) fall back to the default rather than raising, so
    one bad field never aborts a projection.
    """
    if isinstance(value, bool) or value is None:
        return default
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return default
    except (ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


def slugify(value: str) -> str:
    """Replace every run of characters outside [A-Za-z0-9_] with '_'."""
    return _SLUG_PATTERN.sub("_", value)


def extract_text_content(content: Any) -> str:
    """
    Extract text content from a message's content field.

    Content can be:
    - A string (simple message)
    - An array of content items (structured message)

    Args:
        content: The message content (string or array)

    Returns:
        Extracted text content, or empty string if none found
    """
    if isinstance(content, str):
        return content

    if isinstance(content, list):
        text_parts = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                text_parts.append(item.get("text", ""))
        return "\n".join(text_parts)

    return ""
