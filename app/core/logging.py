"""
Structured logging setup.

Production writes one JSON object per line; development writes coloured
text. Both carry the bound context of a `get_logger` adapter, so every
line of a delivery run can be filtered by campaign.
"""
import logging
import sys
import os
import json
from datetime import datetime, timezone
from typing import Any, Dict

# Extra attributes promoted to top-level JSON keys when present on a record
RECORD_FIELDS = ("task_name", "error_type", "details", "path")


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    return dict(getattr(record, "context", None) or {})


class JSONFormatter(logging.Formatter):
    """One JSON document per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_data.update(_record_context(record))

        for key in RECORD_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Human readable output with the level coloured and context appended."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        color = self.COLORS.get(levelname, self.RESET)
        record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            line = super().format(record)
        finally:
            record.levelname = levelname

        context = _record_context(record)
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        return line


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter with bound key/value context.

    Per-call context goes through `extra` and is merged over the bound one:

        log = get_logger(__name__, campaign_id="c-1")
        log.info("Step done", extra={"step": 3})
    """

    def process(self, msg, kwargs):
        context = dict(self.extra)
        context.update(kwargs.pop("extra", None) or {})
        kwargs["extra"] = {"context": context}
        return msg, kwargs

    def bind(self, **context: Any) -> "ContextLogger":
        """Returns a new adapter with additional bound context."""
        return ContextLogger(self.logger, {**self.extra, **context})


def get_logger(name: str, **context: Any) -> ContextLogger:
    """Logger for `name` with `context` attached to every record."""
    return ContextLogger(logging.getLogger(name), context)


def setup_logging():
    """Configures the root logger for the current environment."""
    environment = os.getenv("ENVIRONMENT", "development").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if environment == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ColoredFormatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    for noisy in ("httpx", "httpcore", "hpack", "uvicorn.access", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
