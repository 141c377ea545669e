"""Structured debug logging for openpeon.

The dispatcher runs inside someone else's event loop, so nothing is ever
written to stdout/stderr.  Diagnostics go to a single debug file, and only
when debugging is switched on:

* **Opt-in**: ``OPENCODE_PEON_DEBUG`` (any non-empty value) or
  ``openpeon --debug`` attaches the file handler.  Otherwise the
  ``openpeon`` logger has a ``NullHandler`` and logging is free.
* **RotatingFileHandler**: 5 MB max, 3 backups.
* **Structured JSON**: each line is a JSON object with ``timestamp``,
  ``level``, ``logger``, ``message``, and optional ``context`` fields.
* **Context support**: callers pass ``event``, ``sound``, ``reason``,
  etc. via ``extra={"context": log_context(...)}``.
"""

from __future__ import annotations

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any, Optional


# ── Log file location ────────────────────────────────────────────────

DEBUG_ENV = "OPENCODE_PEON_DEBUG"
DEBUG_LOG = os.environ.get(
    "OPENPEON_DEBUG_LOG",
    os.path.join(os.path.expanduser("~"), ".config", "opencode", "peon-debug.log"),
)

ROOT_LOGGER = "openpeon"

# ── Rotation settings ────────────────────────────────────────────────

MAX_BYTES = 5 * 1024 * 1024  # 5 MB
BACKUP_COUNT = 3


class _JsonFormatter(logging.Formatter):
    """Emit each log record as a single-line JSON object.

    Fields:
        timestamp: ISO-8601 with milliseconds
        level: DEBUG / INFO / WARNING / ERROR / CRITICAL
        logger: logger name
        message: the log message
        context: optional dict with event, sound, reason, etc.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        ctx = getattr(record, "context", None)
        if ctx:
            entry["context"] = ctx
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_handler(
    path: str,
    max_bytes: int = MAX_BYTES,
    backup_count: int = BACKUP_COUNT,
) -> RotatingFileHandler:
    """Create a RotatingFileHandler that writes JSON lines to *path*."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    handler = RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setFormatter(_JsonFormatter())
    return handler


# ── Public helpers ────────────────────────────────────────────────────

_configured: set[str] = set()

logging.getLogger(ROOT_LOGGER).addHandler(logging.NullHandler())


def debug_enabled() -> bool:
    """True when the debug environment variable is set to a non-empty value."""
    return bool(os.environ.get(DEBUG_ENV))


def configure_debug_log(
    log_file: Optional[str] = None,
    *,
    force: bool = False,
    level: int = logging.DEBUG,
) -> Optional[logging.Handler]:
    """Attach the JSON file handler to the ``openpeon`` logger.

    Does nothing unless debugging is enabled or *force* is set.  Calling
    it again for the same file is a no-op.  Returns the handler that was
    attached (or ``None``).
    """
    if not (force or debug_enabled()):
        return None
    path = log_file or DEBUG_LOG
    if path in _configured:
        return None
    logger = logging.getLogger(ROOT_LOGGER)
    try:
        handler = _make_handler(path)
    except OSError:
        # Unwritable log location: run without the file handler.
        return None
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)
    _configured.add(path)
    logger.debug("initialized", extra={"context": log_context(log_file=path)})
    return handler


def log_context(
    *,
    event: str = "",
    sound: str = "",
    reason: str = "",
    **extra: Any,
) -> dict[str, Any]:
    """Build a context dict for structured log entries.

    Usage::

        log.debug("message-skip", extra={"context": log_context(
            event="message.updated", reason="duplicate", message_id="m1"
        )})
    """
    ctx: dict[str, Any] = {}
    if event:
        ctx["event"] = event
    if sound:
        ctx["sound"] = sound
    if reason:
        ctx["reason"] = reason
    ctx.update(extra)
    return ctx


def parse_log_line(line: str) -> dict[str, Any] | None:
    """Try to parse a structured JSON log line.

    Returns ``None`` for blank or non-JSON lines.
    """
    line = line.strip()
    if not line:
        return None
    try:
        return json.loads(line)
    except (json.JSONDecodeError, ValueError):
        return None


def read_log_tail(path: str, lines: int = 50) -> list[str]:
    """Read the last *lines* lines from a log file.

    Returns an empty list if the file does not exist.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read().strip()
        if not content:
            return []
        return content.split("\n")[-lines:]
    except (FileNotFoundError, OSError):
        return []


def format_log_entry(entry: dict[str, Any]) -> str:
    """One readable line for a parsed log entry."""
    line = "{} {:<7} {}: {}".format(
        entry.get("timestamp", "?"), entry.get("level", "?"),
        entry.get("logger", "?"), entry.get("message", ""),
    )
    ctx = entry.get("context")
    if isinstance(ctx, dict) and ctx:
        line += " " + " ".join(f"{k}={v}" for k, v in ctx.items())
    if entry.get("exception"):
        line += "\n" + str(entry["exception"])
    return line


def recent_log_text(path: Optional[str] = None, lines: int = 20) -> str:
    """The last *lines* debug log entries, formatted for a human."""
    path = path or DEBUG_LOG
    tail = read_log_tail(path, lines)
    if not tail:
        return f"No log entries in {path} (set {DEBUG_ENV}=1 or pass --debug)"
    out = []
    for raw in tail:
        entry = parse_log_line(raw)
        out.append(format_log_entry(entry) if isinstance(entry, dict) else raw)
    return "\n".join(out)
