"""Structured Logging — JSON lines for the API process and the sweeper loop.

Invariants:
    - Every line carries timestamp, level, logger and the rendered message
    - Domain context passed through `extra=` (session_id, classroom_id, request_id,
      user_id, error_code, ...) becomes a top-level key; unknown extras are dropped
    - The timestamp is the moment the record was created, not when it was formatted
    - setup_logging is idempotent: calling it twice installs one academy handler

Design Decisions:
    - stdlib logging with a small Formatter subclass, no logging dependency
    - UUIDs, enums and datetimes are stringified; numbers and booleans stay typed
    - sqlalchemy.engine is held at WARNING unless the root level is DEBUG
"""

import json
import logging
from datetime import datetime, timezone

CONTEXT_FIELDS = (
    "session_id", "request_id", "classroom_id", "user_id", "error_code",
    "attempt", "status", "operation", "path",
)

_HANDLER_NAME = "academy"


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context_of(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _context_of(record: logging.LogRecord) -> dict:
    context = {}
    for key in CONTEXT_FIELDS:
        value = getattr(record, key, None)
        if value is None:
            continue
        context[key] = value if isinstance(value, (bool, int, float)) else str(value)
    return context


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """Install the academy handler on the root logger (replacing a previous one)."""
    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"),
        )
    root.addHandler(handler)

    numeric = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric)
    if numeric > logging.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    return handler
