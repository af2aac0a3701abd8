"""
Structured logging configuration.

- Development: human-readable colored format with hierarchy scope tags
- Production: JSON format (log aggregator compatible)
- Log level: controlled via LOG_LEVEL env variable

Services attach scope through ``extra=``:
    logger.info("Project archived", extra={"tenant_id": 1, "project_id": 7})

Inside a request, ``request_id`` and ``tenant_id`` are filled in from
``flask.g`` when the caller did not pass them.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Scope fields carried on log records, in output order
SCOPE_FIELDS = ("tenant_id", "strategy_id", "project_id", "action_id")
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")


class RequestContextFilter(logging.Filter):
    """Copy request_id / tenant_id from flask.g onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "tenant_id", None) is None:
                record.tenant_id = getattr(g, "tenant_id", None)
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in REQUEST_FIELDS + SCOPE_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"
    _TAGS = {"tenant_id": "t", "strategy_id": "s", "project_id": "p", "action_id": "a"}

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        scope = " ".join(
            f"{tag}={getattr(record, key)}"
            for key, tag in self._TAGS.items()
            if getattr(record, key, None) is not None
        )
        scope_str = f" {{{scope}}}" if scope else ""
        msg = record.getMessage()
        base = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {msg}{scope_str}{dur_str}"
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(app):
    """
    Set up structured logging for the Flask app.

    Reads LOG_LEVEL from env (default: DEBUG in dev, INFO in prod).
    Development/testing → ReadableFormatter on stderr
    Production          → JSONFormatter on stderr
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    formatter = JSONFormatter() if is_prod else ReadableFormatter()

    # One stream handler of ours on the root logger, however many apps are created
    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_stratplan_handler", False):
            root.removeHandler(existing)
    handler = logging.StreamHandler(sys.stderr)
    handler._stratplan_handler = True
    handler.setFormatter(formatter)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
