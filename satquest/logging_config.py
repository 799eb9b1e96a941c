"""
Logging setup for SAT Quest.

Console output is colored for local practice sessions; production runs
(``SATQUEST_ENV=production``) emit one JSON object per line and also write
a rotating file under ``logs/``.

Sync and leaderboard code can attach fields such as the device identity
with ``LogContext``; the JSON formatter puts them under ``"data"``.
"""

import contextvars
import json
import logging
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

LOGS_DIR = Path(__file__).parent.parent / "logs"
LOG_FILE_NAME = "satquest.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5
MAX_CONSOLE_MESSAGE = 500

DEFAULT_LEVELS = {
    "development": logging.DEBUG,
    "production": logging.INFO,
    "testing": logging.WARNING,
}

# Chatty libraries underneath Flask and the Supabase client
QUIET_LOGGERS = ("httpcore", "httpx", "hpack", "werkzeug")

_context_fields: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "satquest_log_context", default={}
)


class ContextFilter(logging.Filter):
    """Copies the active LogContext fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        fields = _context_fields.get()
        if fields:
            record.extra_data = dict(fields)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        data = getattr(record, "extra_data", None)
        if data:
            entry["data"] = data
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Short colored lines: time, level, logger, message and any context fields."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        message = record.getMessage()
        if len(message) > MAX_CONSOLE_MESSAGE:
            message = message[:MAX_CONSOLE_MESSAGE] + "..."

        data = getattr(record, "extra_data", None)
        if data:
            message += " " + " ".join(f"{key}={value}" for key, value in data.items())

        line = (
            f"{color}[{datetime.now():%H:%M:%S}] {record.levelname:8}{self.RESET} "
            f"{record.name}: {message}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_level(level: Optional[str], env: str) -> int:
    if level:
        return getattr(logging, level.upper(), logging.INFO)
    return DEFAULT_LEVELS.get(env, logging.INFO)


def setup_logging(
    level: Optional[str] = None,
    json_logs: bool = False,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root logger for the SAT Quest service.

    Args:
        level: Level name; defaults by ``SATQUEST_ENV``
        json_logs: JSON lines on the console instead of colored text
        log_file: Rotating JSON log file; production defaults to ``logs/satquest.log``

    Returns:
        The root logger
    """
    env = os.environ.get("SATQUEST_ENV", "development")
    log_level = _resolve_level(level, env)
    context_filter = ContextFilter()

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(log_level)
    console.addFilter(context_filter)
    console.setFormatter(JSONFormatter() if json_logs else ConsoleFormatter())
    root.addHandler(console)

    if log_file or env == "production":
        if log_file:
            path = Path(log_file)
        else:
            LOGS_DIR.mkdir(exist_ok=True)
            path = LOGS_DIR / LOG_FILE_NAME
        rotating = logging.handlers.RotatingFileHandler(
            str(path),
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        rotating.setLevel(log_level)
        rotating.addFilter(context_filter)
        rotating.setFormatter(JSONFormatter())
        root.addHandler(rotating)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Attach fields to every record logged inside the block.

    Fields live in a context variable, so the sync timer thread and request
    threads each see only their own context. Nested blocks merge fields.

    Usage:
        with LogContext(logger, identity=identity, total_xp=120):
            logger.info("Synced profile stats")
    """

    def __init__(self, logger: logging.Logger, **fields):
        self.logger = logger
        self.fields = fields
        self._token = None

    def __enter__(self):
        merged = {**_context_fields.get(), **self.fields}
        self._token = _context_fields.set(merged)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _context_fields.reset(self._token)
        return False
