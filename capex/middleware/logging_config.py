"""
Logging setup for the CapEx tracker.

Every record emitted while a request is active is stamped by
``RequestContextFilter`` with the request id and the project / phase /
sub-item the route addresses, so a service line such as "status At Risk ->
On Track" can be traced back to the PATCH that caused it.

- Development: one readable line per record, context in brackets
- Production: one JSON object per record
- LOG_LEVEL overrides the level (DEBUG in dev, INFO in prod)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# Route arguments that identify what a request touches
_ROUTE_TAGS = {
    "project_id": "project_id",
    "phase_id": "phase_id",
    "item_key": "item_key",
}

# Fields copied from the record into JSON output when present
_CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "project_id",
    "phase_id",
    "item_key",
    "project_status",
    "overall_completion",
    "recomputed",
)


def request_tags() -> dict:
    """Request id plus the project / phase / item addressed by the current route."""
    if not has_request_context():
        return {}
    tags = {"request_id": getattr(g, "request_id", None)}
    view_args = request.view_args or {}
    for arg, field in _ROUTE_TAGS.items():
        if view_args.get(arg) is not None:
            tags[field] = view_args[arg]
    return tags


class RequestContextFilter(logging.Filter):
    """Attach ``request_tags()`` to records that do not already carry them."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in request_tags().items():
            if value is not None and getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line format for local development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    @staticmethod
    def _context(record: logging.LogRecord) -> str:
        parts = []
        project_id = getattr(record, "project_id", None)
        if project_id is not None:
            target = f"project={project_id}"
            phase_id = getattr(record, "phase_id", None)
            if phase_id:
                target += f" {phase_id}.{getattr(record, 'item_key', None) or '*'}"
            parts.append(target)
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            parts.append(f"{duration:.0f}ms")
        request_id = getattr(record, "request_id", None)
        if request_id:
            parts.append(request_id)
        return f" [{' | '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = (
            f"{color}{ts} {record.levelname:<8}{self.RESET} "
            f"{record.name}: {record.getMessage()}{self._context(record)}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger for ``app``.

    JSON in production, readable otherwise; the request-context filter is
    attached to the handler so records from every module get tagged.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Per-statement SQL and werkzeug access lines drown out the capex loggers
    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
