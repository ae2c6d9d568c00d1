import logging
import sys
from typing import Optional

DEFAULT_LOG_LEVEL_NAME = "WARNING"
ALLOWED_LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})
LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def normalize_log_level_name(log_level: Optional[str]) -> str:
    normalized = str(log_level or "").strip().upper()
    if normalized not in ALLOWED_LOG_LEVELS:
        return DEFAULT_LOG_LEVEL_NAME
    return normalized


def coerce_log_level(log_level: Optional[str]) -> int:
    return getattr(logging, normalize_log_level_name(log_level))


def setup_logging(level: Optional[str] = None, stream=None) -> logging.Logger:
    """Configure the root logger with a single stderr stream handler.

    Report output goes to stdout, so log records never interleave with it.
    Calling this again replaces the handler installed by the previous call.

    Args:
        level: Level name ('DEBUG', 'INFO', ...). Unknown names fall back to WARNING.
        stream: Stream for the handler. Defaults to sys.stderr.

    Returns:
        logging.Logger: The configured root logger.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_marketplace_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._marketplace_handler = True
    root.addHandler(handler)

    effective = coerce_log_level(level)
    root.setLevel(effective)
    handler.setLevel(effective)
    return root
