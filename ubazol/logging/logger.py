"""
Structured logging for the state containers.

Architecture:
- One named stream per state container (cart, orders, location,
  notifications, profile) plus system, storage and performance streams,
  all children of the "ubazol" package logger
- Each stream writes its own rotating file (JSON lines by default)
- The package logger owns the console handler
- Every record carries the correlation id active when it was created;
  order operations use the order id, so one order's lifecycle can be
  grepped out of any stream
"""

import functools
import logging
import logging.handlers
import time
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "ubazol"

_correlation_id: ContextVar[Optional[str]] = ContextVar("ubazol_correlation_id", default=None)


# ============================================================================
# LOG STREAMS
# ============================================================================

class LogStream:
    """Stream names; each maps to logger ubazol.<stream> and logs/<stream>/<stream>.log."""
    SYSTEM = "system"                 # Startup, shutdown, config
    CART = "cart"                     # Cart mutations, vendor conflicts
    ORDERS = "orders"                 # Order lifecycle events
    LOCATION = "location"             # Addresses, device position
    NOTIFICATIONS = "notifications"   # Notification log, push registration
    PROFILE = "profile"               # Favorites, loyalty, preferences
    STORAGE = "storage"               # Key-value store and write-behind
    PERFORMANCE = "performance"       # Timing

    ALL = (SYSTEM, CART, ORDERS, LOCATION, NOTIFICATIONS, PROFILE, STORAGE, PERFORMANCE)


def get_logger(stream: str) -> logging.Logger:
    """
    Logger for one stream.

    Example:
        logger = get_logger(LogStream.ORDERS)
        logger.info("Order created", extra={"order_id": order.id})
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{stream}")


# ============================================================================
# CORRELATION IDS
# ============================================================================

def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind a correlation id (a fresh UUID when None) to the current context."""
    value = correlation_id or uuid.uuid4().hex
    _correlation_id.set(value)
    return value


class LogContext:
    """
    Scoped correlation id. Nesting restores the outer id on exit.

    Usage:
        with LogContext(order.id):
            logger.info("Cancelling order")
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id
        self._token = None

    def __enter__(self) -> str:
        self.correlation_id = self.correlation_id or uuid.uuid4().hex
        self._token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        _correlation_id.reset(self._token)
        self._token = None


_base_record_factory = logging.getLogRecordFactory()


def _record_factory(*args, **kwargs) -> logging.LogRecord:
    record = _base_record_factory(*args, **kwargs)
    record.correlation_id = _correlation_id.get()
    return record


logging.setLogRecordFactory(_record_factory)


# ============================================================================
# SETUP / SHUTDOWN
# ============================================================================

_configured = False


def _stream_file_handler(
    log_dir: Path,
    stream: str,
    level: int,
    json_logs: bool,
    max_bytes: int,
    backup_count: int
) -> logging.Handler:
    from .formatters import JSONFormatter

    stream_dir = log_dir / stream
    stream_dir.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        stream_dir / f"{stream}.log",
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(
        JSONFormatter() if json_logs
        else logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(correlation_id)s] %(message)s")
    )
    return handler


def setup_logging(
    log_dir: Path = Path("logs"),
    log_level: str = "INFO",
    console_level: str = "INFO",
    json_logs: bool = True,
    max_bytes: int = 5_000_000,
    backup_count: int = 3,
    console_colors: bool = True
) -> None:
    """
    Attach console and per-stream file handlers. Later calls are no-ops
    until shutdown_logging().

    Args:
        log_dir: Base directory; created if missing
        log_level: File level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        console_level: Console level
        json_logs: JSON lines instead of plain text in the files
        max_bytes: Rotation size per file
        backup_count: Rotated files kept per stream
        console_colors: ANSI level colors on the console
    """
    global _configured
    if _configured:
        return

    from .formatters import ConsoleFormatter

    log_dir = Path(log_dir)
    file_level = logging.getLevelName(log_level.upper())

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(logging.DEBUG)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)

    console = logging.StreamHandler()
    console.setLevel(logging.getLevelName(console_level.upper()))
    console.setFormatter(ConsoleFormatter(use_colors=console_colors))
    package_logger.addHandler(console)

    for stream in LogStream.ALL:
        stream_logger = get_logger(stream)
        stream_logger.setLevel(file_level)
        stream_logger.addHandler(
            _stream_file_handler(log_dir, stream, file_level, json_logs, max_bytes, backup_count)
        )

    _configured = True

    get_logger(LogStream.SYSTEM).info("Logging configured", extra={
        "log_dir": str(log_dir),
        "log_level": log_level,
        "console_level": console_level,
        "json_logs": json_logs
    })


def shutdown_logging() -> None:
    """Detach and close every handler setup_logging() attached."""
    global _configured

    for name in (None,) + LogStream.ALL:
        logger = logging.getLogger(ROOT_LOGGER_NAME) if name is None else get_logger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        if name is not None:
            logger.setLevel(logging.NOTSET)

    _configured = False


# ============================================================================
# TIMING
# ============================================================================

def log_performance(stream: str = LogStream.PERFORMANCE):
    """
    Decorator: log how long the wrapped call took (DEBUG on success,
    ERROR with the exception on failure; the exception still propagates).

    Usage:
        @log_performance(LogStream.PERFORMANCE)
        def init(self):
            ...
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(stream)
            started = time.perf_counter()
            failed = None
            try:
                return func(*args, **kwargs)
            except Exception as e:
                failed = e
                raise
            finally:
                duration_ms = round((time.perf_counter() - started) * 1000, 2)
                extra = {"function": func.__qualname__, "duration_ms": duration_ms}
                if failed is None:
                    logger.debug(f"{func.__qualname__} took {duration_ms}ms", extra=extra)
                else:
                    extra["error_type"] = type(failed).__name__
                    logger.error(
                        f"{func.__qualname__} failed after {duration_ms}ms: {failed}",
                        extra=extra
                    )
        return wrapper
    return decorator
