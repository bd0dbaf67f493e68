"""
Sentinel Centralized Logging
----------------------------
Structured logging with request_id propagation for full request traceability.

Design:
- Every routing request gets a unique request_id
- request_id propagates through: Orchestrator -> Routers -> Tools
- Console output via Rich, file output as JSON lines
- Clear severity discipline: INFO=stage outcome, WARNING=recoverable, ERROR=abort

Usage:
    from infra.logging import get_logger, RequestContext

    logger = get_logger("core")

    with RequestContext() as request_id:
        logger.info("Routing request")
"""

from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
import contextvars
import json
import logging
import uuid

from rich.console import Console
from rich.logging import RichHandler

# Context variable for request_id - thread-safe and async-safe
_request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return f"req_{uuid.uuid4().hex[:12]}"


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return _request_id_var.get()


class RequestContext:
    """
    Context manager for request scoping.

    Usage:
        with RequestContext() as request_id:
            # All logs within this block carry request_id
            logger.info("Routing...")
    """

    def __init__(self, request_id: Optional[str] = None):
        self._request_id = request_id or generate_request_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self._token = _request_id_var.set(self._request_id)
        return self._request_id

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _request_id_var.reset(self._token)


class RequestIdFilter(logging.Filter):
    """Logging filter that adds request_id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured file logging."""

    EXTRA_FIELDS = ("stage", "tool_name", "source", "confidence", "latency_ms", "details")

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


class RequestConsoleFormatter(logging.Formatter):
    """Prefix console messages with the request id when one is set."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        request_id = getattr(record, "request_id", "-")
        return f"[{request_id}] {message}" if request_id != "-" else message


_logging_initialized = False


def configure_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    console: bool = True,
    file: bool = True,
    rich_console: Optional[Console] = None,
) -> None:
    """
    Configure the Sentinel logging system.

    Args:
        level: Logging level (default INFO)
        log_dir: Directory for log files (default: ./logs)
        console: Enable console output
        file: Enable file output
        rich_console: Console to render into (shared with the CLI)
    """
    global _logging_initialized

    if _logging_initialized:
        return

    root_logger = logging.getLogger("sentinel")
    root_logger.setLevel(logging.DEBUG if file else level)
    root_logger.handlers.clear()

    request_filter = RequestIdFilter()

    if console:
        console_handler = RichHandler(
            console=rich_console or Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
        )
        console_handler.setLevel(level)
        console_handler.setFormatter(RequestConsoleFormatter("%(message)s"))
        console_handler.addFilter(request_filter)
        root_logger.addHandler(console_handler)

    if file:
        log_path = Path(log_dir) if log_dir else Path("logs")
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            str(log_path / "sentinel.log"),
            maxBytes=10 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)  # File gets everything
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(request_filter)
        root_logger.addHandler(file_handler)

    _logging_initialized = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger in the Sentinel namespace.

    Args:
        name: Logger name (prefixed with 'sentinel.' if not already)
    """
    if not name.startswith("sentinel"):
        name = f"sentinel.{name}"
    return logging.getLogger(name)
