"""
Response Boxes Configuration.

Centralized configuration management using Pydantic Settings.
Loads configuration from environment variables. The BOX_* and RESPONSE_BOXES_*
names used by the shell hooks are accepted as aliases.
"""

import os
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Highest event schema_version this projector understands
SUPPORTED_SCHEMA_VERSION = 1


def get_base_dir() -> str:
    """
    Get the base data directory for Response Boxes.

    Returns:
        str: $HOME/.response-boxes, or a relative .response-boxes when HOME
        is not available (dev/testing)
    """
    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".response-boxes")

    return ".response-boxes"


def get_xdg_state_dir() -> str:
    """
    Get XDG-compliant state directory for Response Boxes logs.

    Follows XDG Base Directory Specification:
    - Uses $XDG_STATE_HOME/response-boxes if XDG_STATE_HOME is set
    - Falls back to $HOME/.local/state/response-boxes if not set
    - Returns relative path ./logs if HOME not available (dev/testing)

    Returns:
        str: Path to state/logs directory
    """
    xdg_state_home = os.getenv("XDG_STATE_HOME")
    if xdg_state_home:
        return str(Path(xdg_state_home) / "response-boxes" / "logs")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "state" / "response-boxes" / "logs")

    return "./logs"


def get_legacy_store_path() -> str:
    """Location of the event log written by the original ~/.claude hooks."""
    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".claude" / "analytics" / "boxes.jsonl")
    return ""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Injection
    inject_learnings_count: int = Field(
        3,
        validation_alias=AliasChoices("BOX_INJECT_LEARNINGS", "inject_learnings_count"),
    )
    inject_annotations_count: int = Field(
        5, validation_alias=AliasChoices("BOX_INJECT_BOXES", "inject_annotations_count")
    )
    injection_disabled: bool = Field(
        False,
        validation_alias=AliasChoices(
            "BOX_INJECT_DISABLED", "RESPONSE_BOXES_DISABLED", "injection_disabled"
        ),
    )
    injection_timeout_seconds: float = Field(
        5.0,
        validation_alias=AliasChoices(
            "BOX_INJECT_TIMEOUT", "injection_timeout_seconds"
        ),
    )

    # Scoring
    recency_decay_rate: float = Field(
        0.95, validation_alias=AliasChoices("BOX_RECENCY_DECAY", "recency_decay_rate")
    )
    min_effective_score: float = Field(
        60,
        validation_alias=AliasChoices("BOX_MIN_EFFECTIVE_SCORE", "min_effective_score"),
    )
    supported_schema_version: int = SUPPORTED_SCHEMA_VERSION

    # Event store
    analytics_dir: str = Field(
        "",
        validation_alias=AliasChoices("RESPONSE_BOXES_ANALYTICS_DIR", "analytics_dir"),
    )  # Defaults to ~/.response-boxes/analytics if empty
    store_path: str = Field(
        "", validation_alias=AliasChoices("RESPONSE_BOXES_FILE", "store_path")
    )  # Defaults to <analytics_dir>/boxes.jsonl if empty
    legacy_store_path: str = Field(
        default_factory=get_legacy_store_path,
        validation_alias=AliasChoices(
            "RESPONSE_BOXES_LEGACY_FILE", "legacy_store_path"
        ),
    )

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # XDG-compliant log directory (defaults to XDG state dir if empty)
    log_console_enabled: bool = True  # Console logging always goes to stderr
    log_file_enabled: bool = True
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5

    @property
    def analytics_directory(self) -> Path:
        """Get the analytics directory, using ~/.response-boxes/analytics if unset."""
        if self.analytics_dir:
            return Path(self.analytics_dir).expanduser()
        return Path(get_base_dir()) / "analytics"

    @property
    def event_store_path(self) -> Path:
        """Get the event log path, defaulting into the analytics directory."""
        if self.store_path:
            return Path(self.store_path).expanduser()
        return self.analytics_directory / "boxes.jsonl"

    @property
    def log_directory(self) -> Path:
        """Get the log directory path, using XDG default if not specified."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir())

