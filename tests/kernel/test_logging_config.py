"""Tests for the structured logging system (eventfin_kernel/logging_config.py)."""

import contextvars
import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from eventfin_kernel.domain.ledger import AccountingState
from eventfin_kernel.exceptions import ConcurrentMutationError
from eventfin_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, restoring the suite's DEBUG setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "eventfin.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        record_id = uuid4()
        get_logger("test").info(
            "recalculated",
            extra={
                "record_id": record_id,
                "utility": Decimal("1250.50"),
                "accounting_state": AccountingState.AWAITING_PAYMENT,
            },
        )

        record = _parse_log(stream)
        assert record["record_id"] == str(record_id)
        assert record["utility"] == "1250.50"
        assert record["accounting_state"] == "awaiting_payment"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(batch_id="batch-1", event_id="evt-456"):
            get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["batch_id"] == "batch-1"
        assert record["event_id"] == "evt-456"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "batch_id" not in record
        assert "event_id" not in record

    def test_exception_code_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")

        try:
            raise ConcurrentMutationError("evt-1", 3, 4)
        except ConcurrentMutationError:
            logger.error("read_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ConcurrentMutationError"
        assert record["exc_code"] == "CONCURRENT_MUTATION"
        assert record["exc_version_before"] == 3
        assert record["exc_version_after"] == 4
        assert "traceback" in record

    def test_debug_filtered_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_bind_and_get(self):
        with LogContext.bind(batch_id="b-1", event_id="e-1"):
            assert LogContext.get_all() == {"batch_id": "b-1", "event_id": "e-1"}
        assert LogContext.get_all() == {}

    def test_clear(self):
        with LogContext.bind(batch_id="x"):
            LogContext.clear()
            assert LogContext.get_all() == {}

    def test_nested_bind_restores_outer(self):
        with LogContext.bind(batch_id="batch", event_id="outer"):
            with LogContext.bind(event_id="inner"):
                assert LogContext.get_all() == {"batch_id": "batch", "event_id": "inner"}
            assert LogContext.get_all()["event_id"] == "outer"

    def test_none_values_skipped(self):
        with LogContext.bind(event_id=None, batch_id="b"):
            assert LogContext.get_all() == {"batch_id": "b"}

    def test_bind_stringifies_uuid(self):
        uid = uuid4()
        with LogContext.bind(event_id=uid):
            assert LogContext.get_all()["event_id"] == str(uid)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="correlation_id"):
            with LogContext.bind(correlation_id="x"):
                pass

    def test_copied_context_inherits_fields(self):
        with LogContext.bind(batch_id="b-2"):
            ctx = contextvars.copy_context()
        assert ctx.run(LogContext.get_all) == {"batch_id": "b-2"}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        handlers = logging.getLogger("eventfin").handlers
        assert h1 in handlers
        assert h2 not in handlers

    def test_get_logger_returns_child(self):
        assert get_logger("services.recalculation").name == "eventfin.services.recalculation"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "eventfin.deep.nested.module"
