"""
Log formatters.

- JSONFormatter: one JSON object per line, for the per-stream files
- ConsoleFormatter: compact colored lines for the terminal
"""

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict


# Present on every LogRecord; anything else arrived through extra={}
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "correlation_id", "taskName"}


def extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    Output format:
    {
        "timestamp": "2026-10-19T10:30:45.123456Z",
        "level": "INFO",
        "logger": "ubazol.orders",
        "correlation_id": "1760869845123",
        "message": "Order created",
        "extra": {"order_id": "1760869845123", "total": "27.97"}
    }

    Warnings and above also carry "source"; records with exc_info carry
    "exception".
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": timestamp.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", None),
            "message": record.getMessage(),
        }

        extra = extra_fields(record)
        if extra:
            payload["extra"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        if record.levelno >= logging.WARNING:
            payload["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        # Decimals, datetimes and enums in extra={} fall back to str()
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Format:
    [2026-10-19 10:30:45] [INFO    ] [ORDERS      ] [corr:17608698] Order created
    """

    RESET = "\033[0m"
    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def _level(self, levelname: str) -> str:
        padded = f"{levelname:8}"
        if not self.use_colors:
            return padded
        return f"{self.LEVEL_COLORS.get(levelname, self.RESET)}{padded}{self.RESET}"

    def format(self, record: logging.LogRecord) -> str:
        when = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        stream = record.name.rsplit(".", 1)[-1].upper()

        parts = [f"[{when}]", f"[{self._level(record.levelname)}]", f"[{stream:12}]"]
        corr = getattr(record, "correlation_id", None)
        if corr:
            parts.append(f"[corr:{corr[:8]}]")
        parts.append(record.getMessage())

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line
