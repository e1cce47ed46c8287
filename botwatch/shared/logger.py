"""Structured JSON logging for botwatch components."""

import json
import logging
from datetime import datetime, timezone

_default_log_file: str | None = None


class JsonFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record):
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "component": record.name.replace("botwatch.", "", 1),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if hasattr(record, "log_data"):
            entry["data"] = record.log_data
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def get_logger(
    component: str,
    log_file: str | None = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """Return a named logger that emits structured JSON.

    Args:
        component: Short name for the component (e.g. "registry").
        log_file: Optional path; writes JSON lines to this file instead of stderr.
        level: Logging level, defaults to INFO.

    Returns:
        A ``logging.Logger`` instance named ``botwatch.<component>``.
    """
    logger = logging.getLogger(f"botwatch.{component}")
    logger.setLevel(level)

    if not logger.handlers:
        log_file = log_file or _default_log_file
        if log_file:
            handler = logging.FileHandler(log_file)
        else:
            handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)

    return logger


def redirect_logs(log_file: str):
    """Send every botwatch logger, existing and future, to ``log_file``."""
    global _default_log_file
    _default_log_file = log_file
    for name, logger in logging.Logger.manager.loggerDict.items():
        if not name.startswith("botwatch.") or not isinstance(logger, logging.Logger):
            continue
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        handler = logging.FileHandler(log_file)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
