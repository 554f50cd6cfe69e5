from __future__ import annotations

import json
import logging
import re
from typing import Any

# Record attributes copied into the JSON entry when a call site passes them
# through ``extra=``.
CONTEXT_FIELDS = ("key", "reason", "mode", "worker", "outcome")

_SECRET_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(?i)(bearer\s+)([A-Za-z0-9._~+/=-]+)"), r"\1[REDACTED]"),
    (
        re.compile(r"(?i)(\b(?:authorization|token|password|secret|api[_-]?key)\b\s*[:=]\s*)([^\s,;]+)"),
        r"\1[REDACTED]",
    ),
)


def redact(value: str) -> str:
    """Mask bearer tokens and ``secret=value`` style pairs in *value*."""
    for pattern, replacement in _SECRET_PATTERNS:
        value = pattern.sub(replacement, value)
    return value


def log_context(**fields: Any) -> dict[str, Any]:
    """Build an ``extra=`` mapping, skipping fields that are ``None``."""
    return {name: value for name, value in fields.items() if value is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per line.

    Besides the message, each entry names the thread it came from (workers
    and the informer each run on their own) and any context fields attached
    to the record, so a reconcile key can be followed across threads.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": redact(record.getMessage()),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = redact(value) if isinstance(value, str) else value
        if record.exc_info and record.exc_info[0] is not None:
            entry["error"] = redact(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO") -> logging.Handler:
    """Route root logging through a single :class:`JSONFormatter` handler.

    Calling it again replaces the handler installed by the previous call.
    """
    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing.formatter, JSONFormatter):
            root.removeHandler(existing)
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
    root.setLevel(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))
    return handler
