"""Tests for shared structured logging."""

import json
import logging
import re

import pytest
import structlog

from shared.logging import bound_context, get_correlation_id, get_logger, set_correlation_id, setup_logging


def strip_ansi(text):
    ansi_escape = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
    return ansi_escape.sub("", text)


def parse_json_lines(output):
    return [json.loads(line) for line in output.strip().split("\n") if line.strip()]


def find_event(output, event):
    return next((e for e in parse_json_lines(output) if e.get("event") == event), None)


@pytest.fixture(autouse=True)
def reset_logging():
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class TestSetup:
    def test_json_lines_carry_service_and_fields(self, capsys):
        setup_logging(service_name="monitor", log_format="json", log_level="INFO")

        structlog.get_logger().info("run_started", workflow="detect_changes", attempt=1)

        entry = find_event(capsys.readouterr().out, "run_started")
        assert entry is not None
        assert entry["service"] == "monitor"
        assert entry["workflow"] == "detect_changes"
        assert entry["attempt"] == 1
        assert entry["level"] == "info"
        assert "timestamp" in entry

    def test_console_format(self, capsys):
        setup_logging(service_name="monitor", log_format="console", log_level="INFO")

        structlog.get_logger().info("sweep_done", count=3)

        output = strip_ansi(capsys.readouterr().out)
        assert "sweep_done" in output
        assert "count=3" in output

    def test_settings_from_env(self, monkeypatch, capsys):
        monkeypatch.setenv("SERVICE_NAME", "env_monitor")
        monkeypatch.setenv("LOG_FORMAT", "json")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        setup_logging()
        structlog.get_logger().debug("step_replayed", step="fetch-dns")

        entry = find_event(capsys.readouterr().out, "step_replayed")
        assert entry["service"] == "env_monitor"
        assert entry["level"] == "debug"

    def test_level_filtering(self, capsys):
        setup_logging(service_name="monitor", log_format="console", log_level="WARNING")
        logger = structlog.get_logger()

        logger.info("info_event")
        logger.warning("warning_event")

        output = strip_ansi(capsys.readouterr().out)
        assert "info_event" not in output
        assert "warning_event" in output

    def test_httpx_request_logs_are_quieted(self):
        setup_logging(service_name="monitor", log_format="json", log_level="DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING

    def test_get_logger(self):
        setup_logging(service_name="monitor")

        assert hasattr(get_logger("src.tasks"), "info")


class TestContext:
    def test_bound_context_applies_inside_block_only(self, capsys):
        setup_logging(service_name="monitor", log_format="json", log_level="INFO")
        logger = structlog.get_logger()

        with bound_context(run_id="run-1", tracked_domain_id="td-1"):
            logger.info("inside")
        logger.info("outside")

        output = capsys.readouterr().out
        inside = find_event(output, "inside")
        outside = find_event(output, "outside")
        assert inside["run_id"] == "run-1"
        assert inside["tracked_domain_id"] == "td-1"
        assert "run_id" not in outside
        assert outside["service"] == "monitor"

    def test_correlation_id_roundtrip(self, capsys):
        setup_logging(service_name="monitor", log_format="json", log_level="INFO")

        set_correlation_id("corr-42")
        structlog.get_logger().info("job_received")

        assert get_correlation_id() == "corr-42"
        assert find_event(capsys.readouterr().out, "job_received")["correlation_id"] == "corr-42"


def test_error_with_exception_info(capsys):
    setup_logging(service_name="monitor", log_format="json", log_level="INFO")

    try:
        raise ValueError("Test error 12345")
    except ValueError as e:
        structlog.get_logger().error(
            "job_processing_error", error=str(e), error_type=type(e).__name__, exc_info=True
        )

    entry = find_event(capsys.readouterr().out, "job_processing_error")
    assert entry["error"] == "Test error 12345"
    assert entry["error_type"] == "ValueError"
    assert "exception" in entry
