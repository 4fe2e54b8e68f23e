"""
Repository context for a working directory.

Repository identifiers are the origin remote URL with the protocol and the
.git suffix stripped, so SSH and HTTPS clones of the same repository match:
`git@github.com:acme/app.git` and `https://github.com/acme/app` both become
`github.com/acme/app`.
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 2.0

_PROTOCOL_PATTERN = re.compile(r"^(?:https?://|ssh://)?(?:[^@/]+@)?")


def normalize_remote(remote: str) -> str:
    """
    Normalize a git remote URL into a repository identifier.

    Args:
        remote: Remote URL as printed by `git remote get-url`

    Returns:
        Identifier like 'github.com/acme/app', or '' for an empty remote
    """
    remote = remote.strip()
    if not remote:
        return ""
    remote = _PROTOCOL_PATTERN.sub("", remote, count=1)
    remote = remote.replace(":", "/", 1)
    if remote.endswith(".git"):
        remote = remote[: -len(".git")]
    return remote


def _run_git(cwd: Path, *args: str) -> Optional[str]:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"git {' '.join(args)} failed in {cwd}: {e}")
        return None

    if result.returncode != 0:
        return None
    return result.stdout.strip()


def get_repository(cwd: Optional[str | Path]) -> str:
    """
    Repository identifier for a working directory.

    Returns '' when cwd is missing, not a directory, not a git checkout, or
    has no origin remote.
    """
    if not cwd:
        return ""
    path = Path(cwd).expanduser()
    if not path.is_dir():
        return ""
    remote = _run_git(path, "remote", "get-url", "origin")
    return normalize_remote(remote) if remote else ""


def get_branch(cwd: Optional[str | Path]) -> str:
    """Current branch for a working directory ('' when unknown or detached)."""
    if not cwd:
        return ""
    path = Path(cwd).expanduser()
    if not path.is_dir():
        return ""
    return _run_git(path, "branch", "--show-current") or ""
