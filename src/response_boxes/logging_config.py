"""
Logging setup for Response Boxes entry points.

Hook processes reserve stdout for the JSON they hand back to the host, so
console logging always goes to stderr. File logging rotates under the XDG
state directory and is skipped when that directory is not writable.
"""

import logging
import logging.handlers
from typing import Optional

from response_boxes.config import Settings

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured_contexts: set[str] = set()


def setup_logging(context: str = "cli", config: Optional[Settings] = None) -> None:
    """
    Configure the package logger for a given entry point.

    Args:
        context: Name of the entry point ('cli', 'inject', 'collect'); used as
                 the log file name
        config: Settings to read from (loaded from the environment if omitted)

    Note:
        Calling this more than once for the same context is a no-op.
    """
    if context in _configured_contexts:
        return

    config = config or Settings()
    package_logger = logging.getLogger("response_boxes")
    package_logger.setLevel(config.log_level.upper())
    package_logger.propagate = False

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    if config.log_console_enabled:
        console_handler = logging.StreamHandler()  # stderr
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    if config.log_file_enabled:
        try:
            log_dir = config.log_directory
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_dir / f"{context}.log",
                maxBytes=config.log_max_bytes,
                backupCount=config.log_backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            package_logger.addHandler(file_handler)
        except OSError as e:
            package_logger.debug(f"File logging unavailable: {e}")

    _configured_contexts.add(context)
