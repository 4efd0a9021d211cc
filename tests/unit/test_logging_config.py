"""Tests for logging configuration helpers."""

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from gemini.bootstrap.logging_setup import (
    CorrelationIdFilter,
    JsonFormatter,
    configure_logging,
    redact_sensitive,
)
from gemini.domain.correlation_id import (
    clear_correlation_id,
    component_logger,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def reset_project_logger():
    """Drop handlers installed by configure_logging."""
    yield
    logger = logging.getLogger("gemini")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()


def _record(msg="format test", **extra):
    record = logging.LogRecord(
        name="gemini.transport.worker",
        level=logging.INFO,
        pathname=__file__,
        lineno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_configure_logging_stream_handler():
    """Configure stdout handler and validate formatter output."""
    logger = configure_logging("DEBUG", "stdout")

    assert logger.logger.name == "gemini"
    assert logger.logger.level == logging.DEBUG
    assert len(logger.logger.handlers) == 1

    handler = logger.logger.handlers[0]
    assert isinstance(handler, logging.StreamHandler)
    formatted = handler.formatter.format(
        _record(correlation_id="test-id-123", component="transport.worker")
    )
    log_data = json.loads(formatted)
    assert log_data["component"] == "transport.worker"
    assert log_data["message"] == "format test"
    assert log_data["correlation_id"] == "test-id-123"


def test_configure_logging_file_destination(tmp_path: Path):
    """Configure file handler and verify writes are persisted."""
    destination = tmp_path / "logs" / "server.log"
    logger = configure_logging("WARNING", destination.as_posix())

    assert logger.logger.level == logging.WARNING
    handler = logger.logger.handlers[0]
    assert handler.baseFilename == destination.as_posix()

    logging.getLogger("gemini.transport.worker").warning("file log test")

    handler.flush()
    assert "file log test" in destination.read_text()


def test_configure_logging_plain_text(tmp_path: Path):
    """The non-JSON format still carries the correlation id placeholder."""
    destination = tmp_path / "plain.log"
    logger = configure_logging("INFO", destination.as_posix(), use_json=False)

    logging.getLogger("gemini.client").info("plain line")
    logger.logger.handlers[0].flush()

    contents = destination.read_text()
    assert "[-] gemini.client :: plain line" in contents


def test_configure_logging_emits_event():
    """configure_logging announces itself once the handler is installed."""
    with patch("gemini.bootstrap.logging_setup._build_handler") as mock_build:
        mock_handler = MagicMock()
        mock_handler.level = logging.INFO
        mock_build.return_value = mock_handler

        configure_logging("INFO", "stdout")

        record = mock_handler.handle.call_args[0][0]
        assert record.msg == "Logging configured"
        assert getattr(record, "event", None) == "logging_configured"
        assert getattr(record, "destination", None) == "stdout"
        assert getattr(record, "use_json", None) is True


def test_unknown_level_falls_back_to_info():
    """Unrecognised level names do not break startup."""
    logger = configure_logging("CHATTY", "stdout")
    assert logger.logger.level == logging.INFO


def test_correlation_id_filter_inserts_placeholder_when_missing():
    """Filter should default correlation_id to '-' for bare records."""
    record = _record("missing id")

    assert not hasattr(record, "correlation_id")
    assert CorrelationIdFilter().filter(record)
    assert record.correlation_id == "-"


def test_json_formatter_includes_known_extras_and_redacts():
    """Known extra keys are emitted and credential-like strings hidden."""
    formatted = JsonFormatter().format(
        _record(
            event="request_decoded",
            route="/post;token=abc",
            status_code=20,
            unrelated="ignored",
        )
    )
    log_data = json.loads(formatted)

    assert log_data["event"] == "request_decoded"
    assert log_data["route"] == "/post;token=[REDACTED]"
    assert log_data["status_code"] == 20
    assert "unrelated" not in log_data


def test_redact_sensitive_leaves_plain_values():
    """Ordinary values are untouched."""
    assert redact_sensitive("/index.gmi") == "/index.gmi"
    assert redact_sensitive("/files/documentation/chapter-one/index.gmi") == (
        "/files/documentation/chapter-one/index.gmi"
    )
    assert redact_sensitive("") == ""
    assert redact_sensitive("a" * 40) == "[REDACTED]"


def test_redact_sensitive_masks_only_credential_values():
    """Titan tokens are hidden while the rest of the target stays readable."""
    target = "titan://example.org/post;mime=text/plain;size=5;token=hunter2"
    assert redact_sensitive(target) == (
        "titan://example.org/post;mime=text/plain;size=5;token=[REDACTED]"
    )
    assert redact_sensitive("/q?a=1&password=pw&b=2") == (
        "/q?a=1&password=[REDACTED]&b=2"
    )


def test_component_logger_injects_correlation_and_component(caplog):
    """Adapters tag records with the connection id and component name."""
    caplog.set_level(logging.INFO)
    set_correlation_id("abc-123")
    try:
        component_logger("handlers.example").info("tagged")
    finally:
        clear_correlation_id()

    record = caplog.records[-1]
    assert record.correlation_id == "abc-123"
    assert record.component == "handlers.example"
