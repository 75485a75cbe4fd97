"""
Logging configuration for the assistant engine.
Supports console and file logging with structured JSON output.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional


# ============================================================================
# Formatters
# ============================================================================

# Attributes passed through ``extra=`` that are worth keeping in structured logs
EXTRA_KEYS = [
    "project_id",
    "intent",
    "rule",
    "command_type",
    "task_ids",
    "duration_ms",
    "code",
    "details",
]


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in EXTRA_KEYS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored console formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy so other handlers still see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname}{self.RESET}"

        formatted = super().format(record)

        extras = []
        if hasattr(record, "project_id"):
            extras.append(f"project={record.project_id}")
        if hasattr(record, "intent"):
            extras.append(f"intent={record.intent}")
        if hasattr(record, "command_type"):
            extras.append(f"command={record.command_type}")
        if hasattr(record, "code"):
            extras.append(f"code={record.code}")

        if extras:
            formatted += f" [{', '.join(extras)}]"

        return formatted


# ============================================================================
# Logging Setup
# ============================================================================


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    json_logs: bool = False,
    app_name: str = "taskassist",
) -> logging.Logger:
    """
    Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files. If None, only console logging is used.
        json_logs: Whether to use JSON format for console logs.
        app_name: Application name for log files.

    Returns:
        Root logger instance.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)

    if json_logs:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            ColoredConsoleFormatter(
                fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        # Main log (rotated by size)
        file_handler = RotatingFileHandler(
            log_path / f"{app_name}.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

        # Error log (rotated daily)
        error_handler = TimedRotatingFileHandler(
            log_path / f"{app_name}_error.log",
            when="midnight",
            interval=1,
            backupCount=30,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(error_handler)

    logging.getLogger("taskassist").setLevel(level)
    logging.getLogger("taskassist.agents").setLevel(level)
    logging.getLogger("taskassist.services").setLevel(level)

    # Reduce noise from third-party libraries
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root_logger


# ============================================================================
# Utility Functions
# ============================================================================


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    project_id: Optional[Any] = None,
    **kwargs,
) -> None:
    """Log a message with additional context."""
    extra = {k: v for k, v in kwargs.items() if v is not None}
    if project_id is not None:
        extra["project_id"] = project_id

    logger.log(level, message, extra=extra)
