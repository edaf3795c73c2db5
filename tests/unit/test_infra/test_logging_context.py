"""Tests for logging context propagation and the JSON formatter."""
from __future__ import annotations

import asyncio
import json
import logging
import sys

import pytest

from notification_service.infra.logging import (
    ContextInjectingFilter,
    JSONFormatter,
    clear_log_context,
    configure_logging,
    get_log_context,
    get_logger,
    remove_from_log_context,
    set_log_context,
    shutdown,
)


def make_record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("test", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestLogContext:
    def test_set_get_remove_clear(self):
        set_log_context(notification_id="n1", channel="email")
        assert get_log_context() == {"notification_id": "n1", "channel": "email"}

        remove_from_log_context("channel")
        assert get_log_context() == {"notification_id": "n1"}

        clear_log_context()
        assert get_log_context() == {}

    @pytest.mark.asyncio
    async def test_child_tasks_do_not_leak_back(self):
        set_log_context(notification_id="n1")

        async def channel_task(name: str) -> dict:
            set_log_context(channel=name)
            await asyncio.sleep(0)
            return get_log_context()

        contexts = await asyncio.gather(channel_task("email"), channel_task("in_app"))

        assert contexts == [
            {"notification_id": "n1", "channel": "email"},
            {"notification_id": "n1", "channel": "in_app"},
        ]
        assert get_log_context() == {"notification_id": "n1"}

    def test_filter_injects_without_overwriting(self):
        set_log_context(notification_id="n1", channel="email")
        record = make_record(channel="in_app")

        assert ContextInjectingFilter().filter(record)

        assert record.notification_id == "n1"
        assert record.channel == "in_app"


@pytest.mark.unit
class TestContextBoundLogger:
    def test_bound_context_merges_with_extra(self, caplog):
        logger = get_logger("tests.bound", channel="email").bind(notification_id="n1")

        with caplog.at_level(logging.INFO, logger="tests.bound"):
            logger.info("Attempt failed", extra={"attempt": 2})

        [record] = caplog.records
        assert record.channel == "email"
        assert record.notification_id == "n1"
        assert record.attempt == 2


@pytest.mark.unit
class TestJSONFormatter:
    def test_formats_one_json_object(self):
        record = make_record("Notification dispatched", notification_id="n1")

        data = json.loads(JSONFormatter(static={"service": "notification-service"}).format(record))

        assert data["message"] == "Notification dispatched"
        assert data["level"] == "INFO"
        assert data["notification_id"] == "n1"
        assert data["service"] == "notification-service"
        assert data["timestamp"].endswith("Z")

    def test_exception_stays_on_one_line(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("test", logging.ERROR, __file__, 1, "failed", (), None)
            record.exc_info = sys.exc_info()

        output = JSONFormatter().format(record)

        assert "\n" not in output
        assert "ValueError: boom" in json.loads(output)["exception"]


@pytest.mark.unit
class TestConfigureLogging:
    def test_file_handler_writes_json_lines_with_context(self, tmp_path):
        log_file = tmp_path / "service.log"
        configure_logging(
            log_level="INFO",
            file_path=log_file,
            console_enabled=False,
            capture_warnings=False,
            service_name="notification-test",
        )
        try:
            set_log_context(notification_id="n1")
            logging.getLogger("tests.configured").info("Dispatched")
        finally:
            shutdown()

        records = [json.loads(line) for line in log_file.read_text().splitlines() if "Dispatched" in line]
        assert len(records) == 1
        assert records[0]["notification_id"] == "n1"
        assert records[0]["service"] == "notification-test"
        assert records[0]["logger"] == "tests.configured"
