"""
Structured logging configuration for the lead relay service.
Import and call setup_logging() once at app startup.

The process log written here is diagnostic only. Lead journals
(submission.log, whatsapp.log, ...) are written by leadrelay.core.journal
and are never rotated.
"""
import logging
import logging.handlers
import os
import json
from datetime import datetime, timezone

from leadrelay.core.paths import LOG_DIR

# Extra fields callers attach with logger.info(..., extra={...})
EXTRA_KEYS = ("submission_id", "source", "stage", "status",
              "route", "method", "duration_ms")


class JSONFormatter(logging.Formatter):
    """Structured JSON log lines for machine parsing."""
    def format(self, record):
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        for key in EXTRA_KEYS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        return json.dumps(entry, default=str, ensure_ascii=False)


class HumanFormatter(logging.Formatter):
    """Readable console format with color."""
    COLORS = {
        "DEBUG": "\033[36m", "INFO": "\033[32m",
        "WARNING": "\033[33m", "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now(timezone.utc).strftime("%H:%M:%S")
        sid = getattr(record, "submission_id", None)
        tag = f" [{sid}]" if sid else ""
        return (f"{color}{ts} [{record.levelname[0]}] {record.name}{tag}: "
                f"{record.getMessage()}{self.RESET}")


def setup_logging(level=None, json_logs=None, log_dir=None):
    """
    Configure logging for the full application.

    Args:
        level: Override log level (default: from LOG_LEVEL env or INFO)
        json_logs: Force JSON format (default: JSON_LOGS env, off in dev)
        log_dir: Where the rotating process log goes (default: LOG_DIR)
    """
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO").upper()
    if json_logs is None:
        json_logs = os.environ.get("JSON_LOGS", "").lower() in ("1", "true", "yes")
    log_dir = log_dir or LOG_DIR

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(JSONFormatter() if json_logs else HumanFormatter())
    root.addHandler(console)

    # File handler — rotates at 5MB, keeps 5 backups
    try:
        os.makedirs(log_dir, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, "leadrelay.log"),
            maxBytes=5_000_000, backupCount=5, encoding="utf-8",
        )
        fh.setFormatter(JSONFormatter())
        root.addHandler(fh)
    except (OSError, PermissionError):
        pass  # skip file logging if dir not writable

    # Quiet noisy libs
    for name in ("urllib3", "werkzeug", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("leadrelay").info("Logging initialized (level=%s)", level)
