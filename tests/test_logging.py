"""
Tests for structured logging.
"""

import json
import logging

from ubazol.logging import LogContext, LogStream, get_correlation_id, get_logger
from ubazol.logging.formatters import ConsoleFormatter, JSONFormatter


def _record(logger_name="ubazol.orders", level=logging.INFO, msg="Order created", extra=None):
    logger = logging.getLogger(logger_name)
    return logger.makeRecord(logger_name, level, __file__, 10, msg, (), None, extra=extra)


class TestCorrelation:

    def test_log_context_scopes_id(self):
        assert get_correlation_id() is None

        with LogContext("order-1") as cid:
            assert cid == "order-1"
            with LogContext("order-2"):
                assert get_correlation_id() == "order-2"
            assert get_correlation_id() == "order-1"

        assert get_correlation_id() is None

    def test_generated_id(self):
        with LogContext() as cid:
            assert cid
            assert get_correlation_id() == cid

    def test_records_carry_id(self):
        with LogContext("order-7"):
            record = _record()

        assert record.correlation_id == "order-7"

    def test_stream_logger_names(self):
        assert get_logger(LogStream.CART).name == "ubazol.cart"


class TestFormatters:

    def test_json_includes_extra(self):
        record = _record(extra={"order_id": "1", "total": "27.97"})

        data = json.loads(JSONFormatter().format(record))

        assert data["logger"] == "ubazol.orders"
        assert data["message"] == "Order created"
        assert data["extra"] == {"order_id": "1", "total": "27.97"}
        assert data["timestamp"].endswith("Z")
        assert "source" not in data

    def test_json_warning_has_source(self):
        data = json.loads(JSONFormatter().format(_record(level=logging.WARNING)))

        assert data["source"]["line"] == 10

    def test_console_format(self):
        with LogContext("1760869845123"):
            record = _record()

        line = ConsoleFormatter(use_colors=False).format(record)

        assert "[ORDERS" in line
        assert "[corr:17608698]" in line
        assert line.endswith("Order created")
