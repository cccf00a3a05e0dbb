"""Tests for jobspine.core.logging."""

from __future__ import annotations

import pytest
import structlog

from jobspine.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    current_context,
    get_logger,
    unbind_context,
)


class TestContextHelpers:
    def test_bind_and_unbind(self):
        """Bound keys are visible until unbound."""
        bind_context(jobId="1", jobName="a.b")
        assert current_context() == {"jobId": "1", "jobName": "a.b"}
        unbind_context("jobId")
        assert current_context() == {"jobName": "a.b"}
        clear_context()
        assert current_context() == {}

    def test_log_context_cleans_up_on_error(self):
        """LogContext removes its keys even when the body raises."""
        with pytest.raises(RuntimeError):
            with LogContext(jobId="x"):
                assert current_context()["jobId"] == "x"
                raise RuntimeError("fail")
        assert "jobId" not in current_context()

    def test_log_context_leaves_other_keys(self):
        """Only the keys it bound are removed."""
        bind_context(request="r1")
        with LogContext(jobId="x"):
            pass
        assert current_context() == {"request": "r1"}


class TestConfigureLogging:
    def test_json_renderer(self):
        """json_format=True ends the chain with the JSON renderer."""
        configure_logging(level="DEBUG", json_format=True, service="svc")
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert structlog.contextvars.merge_contextvars in processors

    def test_console_renderer(self):
        """json_format=False renders for humans."""
        configure_logging(level="INFO", json_format=False)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_get_logger_logs_events(self):
        """Loggers emit structured events with their key-value pairs."""
        logger = get_logger("tests.logging")
        with structlog.testing.capture_logs() as logs:
            logger.info("job_started", job="a.b")
        assert logs == [{"event": "job_started", "job": "a.b", "log_level": "info"}]
