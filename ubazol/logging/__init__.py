"""
Logging infrastructure for the Ubazol state core.

Features:
- JSON structured logging, one rotating file per stream
- Correlation ID tracking (trace an order through its lifecycle)
- Colored console output for development
- Execution timing decorator
"""

from .logger import (
    get_logger,
    setup_logging,
    shutdown_logging,
    LogContext,
    log_performance,
    set_correlation_id,
    get_correlation_id,
    LogStream,
)

from .formatters import (
    JSONFormatter,
    ConsoleFormatter,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "shutdown_logging",
    "LogContext",
    "log_performance",
    "set_correlation_id",
    "get_correlation_id",
    "LogStream",
    "JSONFormatter",
    "ConsoleFormatter",
]
