"""Logging setup for DirStore.

Two output formats are supported. ``text`` is meant for a terminal and tags
request log lines with their request id; ``json`` emits one object per line
for log shippers. Both carry the per-request extras attached by the server
middleware.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Extras the request middleware attaches to its per-request log record.
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "request_id")

LOG_FORMATS = ("text", "json")


def _request_extras(record: logging.LogRecord) -> dict:
    return {
        name: getattr(record, name)
        for name in REQUEST_FIELDS
        if getattr(record, name, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """Render each record as a single-line JSON object.

    Keys: ``timestamp`` (UTC ISO 8601), ``level``, ``logger``, ``message``,
    ``exception`` when a traceback is attached, plus request extras.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(_request_extras(record))
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines; request records get a ``[request_id]`` tag."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        request_id = getattr(record, "request_id", None)
        if request_id:
            line = f"{line} [{request_id}]"
        return line


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL);
            unknown names fall back to INFO.
        fmt: One of ``LOG_FORMATS``.

    Raises:
        ValueError: If ``fmt`` is not a known format.
    """
    if fmt not in LOG_FORMATS:
        raise ValueError(f"unknown log format {fmt!r}, expected one of {LOG_FORMATS}")

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)

    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
    root.addHandler(handler)
