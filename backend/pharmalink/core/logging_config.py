"""
Logging setup for the PharmaLink fulfillment core.

Console output is colourised for development or JSON for log shippers;
rotating files are always JSON. Structured fields travel in
``extra={"context": {...}}`` and are emitted under a ``context`` key.

    logger = get_logger(__name__)
    logger.info("Order confirmed", extra={"context": {"order_id": 42}})
"""

import json
import logging
import logging.handlers
import sys
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from flask import Flask, g, request
from flask_login import current_user

DEFAULT_LOG_DIR = Path(__file__).resolve().parents[2] / "logs"
ROTATE_BYTES = 10 * 1024 * 1024
ROTATE_KEEP = 5

# Third-party loggers that drown out fulfillment events at INFO
_QUIET_LOGGERS = ("werkzeug", "urllib3", "sqlalchemy.engine", "flask_limiter")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with request correlation when available."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            payload["request_id"] = request_id
        context = getattr(record, "context", None)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Single-line coloured output; context is appended as key=value pairs."""

    LEVEL_COLOURS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self):
        super().__init__(
            "%(asctime)s %(levelname_c)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        colour = self.LEVEL_COLOURS.get(record.levelno, "")
        record.levelname_c = f"{colour}{record.levelname:<7}{self.RESET}"
        line = super().format(record)
        context = getattr(record, "context", None)
        if context:
            pairs = " ".join(f"{k}={v}" for k, v in context.items())
            line = f"{line} [{pairs}]"
        return line


class RequestIdFilter(logging.Filter):
    """Stamps records emitted inside a Flask request with its request id."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            record.request_id = g.get("request_id")
        except RuntimeError:
            # Outside an application context (CLI, worker threads)
            record.request_id = None
        return True


def _resolve_level(log_level: Union[int, str]) -> int:
    if isinstance(log_level, int):
        return log_level
    level = getattr(logging, str(log_level).upper(), None)
    return level if isinstance(level, int) else logging.INFO


def _file_handlers(log_dir: Path, level: int) -> List[logging.Handler]:
    log_dir.mkdir(parents=True, exist_ok=True)
    everything = logging.handlers.RotatingFileHandler(
        log_dir / "app.log", maxBytes=ROTATE_BYTES, backupCount=ROTATE_KEEP, encoding="utf-8"
    )
    everything.setLevel(level)
    errors = logging.handlers.RotatingFileHandler(
        log_dir / "pharmalink_errors.log",
        maxBytes=ROTATE_BYTES,
        backupCount=ROTATE_KEEP,
        encoding="utf-8",
    )
    errors.setLevel(logging.ERROR)
    for handler in (everything, errors):
        handler.setFormatter(JSONFormatter())
    return [everything, errors]


def _install_request_hooks(app: Flask) -> None:
    access_log = logging.getLogger("pharmalink.http")

    @app.before_request
    def start_request_log():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex[:16]

    @app.after_request
    def finish_request_log(response):
        started = g.get("request_started")
        if started is None:
            return response
        actor = None
        if current_user and current_user.is_authenticated:
            actor = f"{current_user.role}:{current_user.id}"
        elapsed_ms = (time.perf_counter() - started) * 1000
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        access_log.log(
            level,
            "%s %s -> %s",
            request.method,
            request.path,
            response.status_code,
            extra={
                "context": {
                    "actor": actor,
                    "status_code": response.status_code,
                    "duration_ms": round(elapsed_ms, 2),
                }
            },
        )
        response.headers.setdefault("X-Request-Id", g.request_id)
        return response


def setup_logging(
    app: Optional[Flask] = None,
    log_level: Union[int, str] = "INFO",
    log_to_file: bool = True,
    use_json_format: bool = False,
    log_dir: Optional[Path] = None,
) -> None:
    """
    Replace the root handlers with the fulfillment handler set.

    Args:
        app: When given, every request gets an id and one access-log line
        log_level: ``logging`` level number or name
        log_to_file: Also write rotating JSON files under ``log_dir``
        use_json_format: JSON on stdout instead of the coloured console format
        log_dir: Directory for rotating files (defaults to backend/logs)
    """
    level = _resolve_level(log_level)
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    stdout = logging.StreamHandler(sys.stdout)
    stdout.setLevel(level)
    stdout.setFormatter(JSONFormatter() if use_json_format else ConsoleFormatter())
    handlers: List[logging.Handler] = [stdout]

    file_error = None
    if log_to_file:
        try:
            handlers.extend(_file_handlers(log_dir or DEFAULT_LOG_DIR, level))
        except OSError as exc:
            file_error = exc

    request_ids = RequestIdFilter()
    for handler in handlers:
        handler.addFilter(request_ids)
        root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        _install_request_hooks(app)

    setup_logger = logging.getLogger("pharmalink")
    if file_error is not None:
        setup_logger.warning(
            "File logging unavailable, using stdout only",
            extra={"context": {"error": str(file_error)}},
        )
    setup_logger.info(
        "Logging configured",
        extra={
            "context": {
                "level": logging.getLevelName(level),
                "files": log_to_file and file_error is None,
                "json": use_json_format,
            }
        },
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_performance(func_name: str, duration_ms: float, **kwargs) -> None:
    """Record how long a fulfillment operation took, with its context."""
    context = {"operation": func_name, "duration_ms": round(duration_ms, 2)}
    context.update(kwargs)
    get_logger("pharmalink.performance").debug(
        "%s took %.2fms", func_name, duration_ms, extra={"context": context}
    )
