"""
Logging utilities for the print agent.

- RequestIdFilter attaches request_id and path (when in a Flask request context)
- JsonFormatter emits structured logs when PRINTAGENT_JSON_LOGS=true
- configure_logging() initializes root logging with journald or console, adds a
  rotating agent log file (read back by the diagnostics view), and integrates
  with Flask's logger
"""

from __future__ import annotations

import logging
import os
from collections import deque
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from print_agent.core.config import get_log_path

LOG_MAX_BYTES = 1024 * 1024
LOG_BACKUP_COUNT = 3


class RequestIdFilter(logging.Filter):
    """
    Attach request-scoped metadata (request_id, path) to log records.
    Safely degrades outside of a Flask request context.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            from flask import g, has_request_context, request  # lazy import

            record.request_id = g.request_id if has_request_context() and hasattr(g, "request_id") else "-"
            record.path = request.path if has_request_context() else "-"
        except Exception:
            record.request_id = "-"
            record.path = "-"
        return True


class JsonFormatter(logging.Formatter):
    """
    Minimal JSON formatter that includes timestamp, level, logger, message, request_id, and path.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        from json import dumps

        base = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        path = getattr(record, "path", None)
        if path is not None:
            base["path"] = path
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return dumps(base, ensure_ascii=False)


def _file_logging_enabled() -> bool:
    return os.environ.get("PRINTAGENT_LOG_FILE", "true").lower() in ("1", "true", "yes")


def configure_logging(level: int = logging.INFO, log_path: Optional[str] = None) -> logging.Logger:
    """
    Configure root logging for the agent.

    Behavior:
    - Sets root logger to `level`
    - Clears any existing handlers to avoid duplicates on reload
    - Chooses JSON or plain formatter based on PRINTAGENT_JSON_LOGS
    - Prefer systemd's JournalHandler, fallback to StreamHandler
    - Adds a RotatingFileHandler on the agent log file unless PRINTAGENT_LOG_FILE=false
    - Adds RequestIdFilter so formatters can reference %(request_id)s
    - Ensures Flask app logger propagates to root (no separate handlers)

    Returns the configured root logger.
    """
    root = logging.getLogger()
    root.setLevel(level)

    # Avoid duplicate logs in dev reloads or repeated factory calls
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()

    json_logs = os.environ.get("PRINTAGENT_JSON_LOGS", "false").lower() in ("1", "true", "yes")
    formatter: logging.Formatter
    if json_logs:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s %(request_id)s %(name)s: %(message)s")

    # Prefer systemd journal when available
    try:
        from systemd.journal import JournalHandler  # type: ignore

        handler: logging.Handler = JournalHandler()
    except Exception:
        handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    if _file_logging_enabled():
        path = Path(log_path or get_log_path())
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            file_handler.addFilter(RequestIdFilter())
            root.addHandler(file_handler)
        except OSError as e:
            root.warning("Log file unavailable (%s): %s", path, e)

    # Make Flask's app logger propagate to root (avoid double formatting)
    flask_logger = logging.getLogger("flask.app")
    flask_logger.handlers = []
    flask_logger.propagate = True

    return root


def tail_log(lines: int = 200, log_path: Optional[str] = None) -> List[str]:
    """
    Return the last `lines` lines of the agent log file, or an empty list if it does not exist yet.
    """
    path = Path(log_path or get_log_path())
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="replace") as f:
        return [line.rstrip("\n") for line in deque(f, maxlen=max(1, lines))]


__all__ = ["JsonFormatter", "RequestIdFilter", "configure_logging", "tail_log"]
