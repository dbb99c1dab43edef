"""
Unit tests for the logging subsystem: context propagation and JSON output.
"""

import asyncio
import json
import logging

import pytest

from credit_ledger.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    clear_log_context,
    get_log_context,
    get_logging_health,
    set_log_context,
)


def _record(msg="hello", **extra):
    record = logging.LogRecord("credit_ledger.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogContext:
    def test_binds_and_restores(self):
        clear_log_context()

        with LogContext(user_id="u-1", operation="add_credits", correlation_id="c-1"):
            context = get_log_context()
            assert context["user_id"] == "u-1"
            assert context["operation"] == "add_credits"
            assert context["correlation_id"] == "c-1"

        assert get_log_context() == {}

    def test_generates_correlation_id(self):
        with LogContext(user_id="u-1"):
            assert len(get_log_context()["correlation_id"]) == 8

    def test_set_log_context_merges(self):
        clear_log_context()
        set_log_context(user_id="u-1")
        set_log_context(operation="claim_daily_bonus")

        assert get_log_context()["user_id"] == "u-1"
        assert get_log_context()["operation"] == "claim_daily_bonus"
        clear_log_context()

    @pytest.mark.asyncio
    async def test_isolated_between_tasks(self):
        async def bound(user_id):
            async with LogContext(user_id=user_id):
                await asyncio.sleep(0)
                return get_log_context()["user_id"]

        assert await asyncio.gather(bound("a"), bound("b")) == ["a", "b"]


class TestContextFilter:
    def test_enriches_record(self):
        record = _record()

        with LogContext(user_id="u-9", component="orchestrator", operation="deduct_credits"):
            ContextFilter().filter(record)

        assert record.user_id == "u-9"
        assert record.component == "orchestrator"
        assert record.operation == "deduct_credits"

    def test_explicit_operation_wins(self):
        record = _record(operation="orchestrator.process_purchase")

        with LogContext(operation="process_purchase"):
            ContextFilter().filter(record)

        assert record.operation == "orchestrator.process_purchase"


class TestJSONFormatter:
    def test_context_and_extras(self):
        record = _record(user_id="u-1", correlation_id="N/A", amount=5)

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "hello"
        assert payload["user_id"] == "u-1"
        assert "correlation_id" not in payload
        assert payload["extra"] == {"amount": 5}

    def test_non_serializable_extras_use_str(self):
        from datetime import date

        payload = json.loads(JSONFormatter().format(_record(claim_date=date(2025, 3, 10))))

        assert payload["extra"]["claim_date"] == "2025-03-10"


def test_logging_initialized_on_import():
    assert get_logging_health().initialized is True
