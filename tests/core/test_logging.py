# tests/core/test_logging.py
"""Tests for structured logging configuration."""

import json
import logging

import pytest


class TestLoggingConfig:
    """Tests for logging configuration."""

    def test_get_logger_returns_logger(self) -> None:
        from adcs.core.logging import get_logger

        logger = get_logger("test")
        assert hasattr(logger, "info")
        assert hasattr(logger, "warning")
        assert hasattr(logger, "bind")

    def test_logger_outputs_structured(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Logger outputs one JSON object per event."""
        from adcs.core.logging import configure_logging, get_logger

        configure_logging(json_output=True)
        logger = get_logger("test")

        logger.info("node_completed", node_id="risk", confidence=0.8)

        captured = capsys.readouterr()
        data = json.loads(captured.out.strip().split("\n")[-1])
        assert data["event"] == "node_completed"
        assert data["node_id"] == "risk"
        assert data["confidence"] == 0.8
        assert data["level"] == "info"
        assert "timestamp" in data
        assert "_record" not in data

    def test_json_output_renders_non_serializable_values(self, capsys: pytest.CaptureFixture[str]) -> None:
        from adcs.contracts import OutputFormat, StringAndBool
        from adcs.core.logging import configure_logging, get_logger

        configure_logging(json_output=True)
        get_logger("test").info("value_logged", value=StringAndBool("approved", True), fmt=OutputFormat.BOOL)

        data = json.loads(capsys.readouterr().out.strip().split("\n")[-1])
        assert "approved" in data["value"]
        assert data["fmt"] == "bool"

    def test_logger_console_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        from adcs.core.logging import configure_logging, get_logger

        configure_logging(json_output=False)
        get_logger("test").info("invocation_started", request_id="req-1")

        captured = capsys.readouterr()
        assert "invocation_started" in captured.out
        assert "req-1" in captured.out
        assert not captured.out.strip().startswith("{")

    def test_level_filters_events(self, capsys: pytest.CaptureFixture[str]) -> None:
        from adcs.core.logging import configure_logging, get_logger

        configure_logging(json_output=True, level="WARNING")
        logger = get_logger("test")
        logger.info("hidden_event")
        logger.warning("visible_event")

        captured = capsys.readouterr()
        assert "hidden_event" not in captured.out
        assert "visible_event" in captured.out

    def test_noisy_third_party_loggers_silenced(self) -> None:
        """HTTP client loggers stay at WARNING even in DEBUG mode."""
        from adcs.core.logging import configure_logging

        configure_logging(level="DEBUG")

        assert logging.getLogger().level == logging.DEBUG
        for name in ("httpx", "httpcore", "urllib3", "opentelemetry"):
            assert logging.getLogger(name).getEffectiveLevel() >= logging.WARNING

    def test_stdlib_loggers_emit_json_when_json_output_enabled(self, capsys: pytest.CaptureFixture[str]) -> None:
        from adcs.core.logging import configure_logging

        configure_logging(json_output=True)
        logging.getLogger("test.stdlib.module").info("message from stdlib logger")

        data = json.loads(capsys.readouterr().out.strip().split("\n")[-1])
        assert data["event"] == "message from stdlib logger"
        assert "level" in data

    def test_configure_from_settings(self, capsys: pytest.CaptureFixture[str]) -> None:
        from adcs.core.config import LoggingSettings
        from adcs.core.logging import configure_from_settings, get_logger

        configure_from_settings(LoggingSettings(level="ERROR", json_output=True))
        logger = get_logger("test")
        logger.warning("dropped_event")
        logger.error("kept_event")

        captured = capsys.readouterr()
        assert "dropped_event" not in captured.out
        assert json.loads(captured.out.strip().split("\n")[-1])["event"] == "kept_event"
