"""
Structured logging for the Public Service Chatbot.

Every module gets an AppLogger through get_logger(__name__). Keyword
arguments passed to a log call travel with the record as `extra_data` and
are rendered as `key=value` pairs on the console or as a `data` object in
the JSON log file (enabled with LOG_FILE).
"""

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

LEVEL_STYLES = {
    "DEBUG": ("\033[36m", "[D]"),
    "INFO": ("\033[32m", "[I]"),
    "WARNING": ("\033[33m", "[W]"),
    "ERROR": ("\033[31m", "[E]"),
    "CRITICAL": ("\033[35m", "[!]"),
}
RESET = "\033[0m"


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        data = getattr(record, "extra_data", None)
        if data:
            entry["data"] = data

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        # Vietnamese message text stays readable in the log file
        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored single-line console output."""

    def format(self, record: logging.LogRecord) -> str:
        color, icon = LEVEL_STYLES.get(record.levelname, (RESET, ""))
        clock = time.strftime("%H:%M:%S", time.gmtime(record.created))

        line = f"{color}[{clock}] {icon} {record.levelname:8}{RESET} | {record.name}: {record.getMessage()}"

        data = getattr(record, "extra_data", None)
        if data:
            line += " | " + ", ".join(f"{key}={value}" for key, value in data.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


def _configure(logger: logging.Logger, level: str) -> None:
    if logger.handlers:
        return

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(ConsoleFormatter())
    logger.addHandler(console)

    log_file = os.getenv("LOG_FILE")
    if log_file:
        json_file = logging.FileHandler(log_file, encoding="utf-8")
        json_file.setFormatter(StructuredFormatter())
        logger.addHandler(json_file)

    logger.propagate = False


class AppLogger:
    """
    Thin wrapper over logging.Logger that accepts structured fields.

    Usage:
        logger.info("Webhook received", entries=2, messages=3)
    """

    _instances: Dict[str, "AppLogger"] = {}

    def __init__(self, name: str, level: Optional[str] = None):
        self.name = name
        self.level = level or os.getenv("LOG_LEVEL", "INFO")
        self.logger = logging.getLogger(name)
        _configure(self.logger, self.level)

    def _log(self, level: int, message: str, fields: Dict[str, Any], exc_info: bool = False) -> None:
        if not self.logger.isEnabledFor(level):
            return
        # stacklevel 3 points the record at the caller of debug()/info()/...
        self.logger.log(
            level,
            message,
            exc_info=exc_info,
            extra={"extra_data": fields} if fields else None,
            stacklevel=3
        )

    def debug(self, message: str, **fields) -> None:
        self._log(logging.DEBUG, message, fields)

    def info(self, message: str, **fields) -> None:
        self._log(logging.INFO, message, fields)

    def warning(self, message: str, **fields) -> None:
        self._log(logging.WARNING, message, fields)

    def error(self, message: str, exc_info: bool = False, **fields) -> None:
        """Log an error; exc_info=True attaches the active exception's traceback."""
        self._log(logging.ERROR, message, fields, exc_info=exc_info)

    # Domain events

    def request(self, method: str, path: str, status: int, duration_ms: float, **fields) -> None:
        """One handled HTTP request."""
        self._log(logging.INFO, f"{method} {path} -> {status}", {
            "method": method,
            "path": path,
            "status": status,
            "duration_ms": round(duration_ms, 2),
            **fields,
        })

    def retrieval(self, keywords: int, candidates: int, results_count: int, duration_ms: float, **fields) -> None:
        """One keyword search over the indexed document."""
        self._log(logging.INFO, f"Retrieval over {candidates} chunks: {results_count} results", {
            "keywords": keywords,
            "candidates": candidates,
            "results": results_count,
            "duration_ms": round(duration_ms, 2),
            **fields,
        })

    def delivery(self, recipient: str, attempt: int, success: bool, **fields) -> None:
        """One Send API attempt; failures are logged as warnings."""
        outcome = "SUCCESS" if success else "FAILED"
        self._log(
            logging.INFO if success else logging.WARNING,
            f"Delivery to {recipient} (attempt {attempt}): {outcome}",
            {"recipient": recipient, "attempt": attempt, "success": success, **fields}
        )

    def llm_call(self, model: str, prompt_chars: Optional[int] = None, response_chars: Optional[int] = None,
                 **fields) -> None:
        """One completed Gemini call."""
        self._log(logging.INFO, f"LLM call to {model}", {
            "model": model,
            "prompt_chars": prompt_chars,
            "response_chars": response_chars,
            **fields,
        })


def get_logger(name: str) -> AppLogger:
    """Shared AppLogger for `name` (usually __name__)."""
    if name not in AppLogger._instances:
        AppLogger._instances[name] = AppLogger(name)
    return AppLogger._instances[name]


def log_async_function_call(logger: Optional[AppLogger] = None):
    """
    Decorator logging entry, exit and failures of a coroutine function.

    Exceptions are logged with their traceback and re-raised unchanged.
    """
    def decorator(func):
        log = logger or get_logger(func.__module__)

        @wraps(func)
        async def wrapper(*args, **kwargs):
            log.debug(f"Entering {func.__name__}", args_count=len(args), kwargs_keys=list(kwargs))
            started = time.time()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                log.error(f"Exception in {func.__name__}: {str(e)}", exc_info=True)
                raise
            log.debug(
                f"Exiting {func.__name__}",
                success=True,
                duration_ms=round((time.time() - started) * 1000, 2)
            )
            return result

        return wrapper
    return decorator
