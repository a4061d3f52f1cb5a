"""
Logging setup for the site tracker.

Production writes one JSON object per line; development writes a short
colored line. Services tag records with ``extra={...}`` using the keys in
CONTEXT_FIELDS, e.g. ``extra={"project_id": pid, "event_type": "project.created"}``.
LOG_LEVEL overrides the default level.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("user_id", "project_id", "report_id", "event_type")

QUIET_LOGGERS = ("urllib3", "httpx", "werkzeug", "sqlalchemy.engine")


def record_context(record: logging.LogRecord) -> dict:
    """Context fields set on the record, in CONTEXT_FIELDS order."""
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            **record_context(record),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO     sitetrack.x: message [project=p1] (project.created)``"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        context = record_context(record)
        event = context.pop("event_type", None)
        tags = " ".join(f"{key.removesuffix('_id')}={val}" for key, val in context.items())

        line = (
            f"{self.COLORS.get(record.levelname, '')}"
            f"{datetime.fromtimestamp(record.created).strftime('%H:%M:%S')} "
            f"{record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"
        )
        if tags:
            line += f" [{tags}]"
        if event:
            line += f" ({event})"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger.

    JSON unless the app runs with DEBUG or TESTING. Calling it again
    replaces the handler, so tests that build many apps stay single-lined.
    """
    testing = app.config.get("TESTING", False)
    structured = not (app.config.get("DEBUG", False) or testing)

    level_name = os.getenv("LOG_LEVEL", "INFO" if structured else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if structured else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging at %s (%s)", level_name, "json" if structured else "readable")
