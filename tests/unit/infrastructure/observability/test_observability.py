"""Tests for logging configuration, correlation ids and log_operation."""

import json
import logging
import sys

import pytest

from audion.infrastructure.observability import (
    configure_logging,
    get_correlation_id,
    log_operation,
    set_correlation_id,
)
from audion.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CorrelationIdFilter,
    CustomJsonFormatter,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(msg: str = "hello", exc_info=None) -> logging.LogRecord:
    return logging.LogRecord("audion.test", logging.INFO, __file__, 10, msg, (), exc_info)


class TestCorrelationId:
    def test_set_generates_uuid_when_missing(self) -> None:
        generated = set_correlation_id()
        assert len(generated) == 36
        assert get_correlation_id() == generated

    def test_filter_stamps_record(self) -> None:
        set_correlation_id("req-42")
        record = _record()
        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "req-42"  # type: ignore[attr-defined]


class TestFormatters:
    def test_json_formatter_emits_fields(self) -> None:
        set_correlation_id("req-7")
        formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        record = _record("Spotify request failed")
        CorrelationIdFilter().filter(record)

        payload = json.loads(formatter.format(record))

        assert payload["message"] == "Spotify request failed"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "audion.test"
        assert payload["correlation_id"] == "req-7"

    def test_compact_formatter_shows_exception_chain(self) -> None:
        try:
            try:
                raise ConnectionError("refused")
            except ConnectionError as e:
                raise RuntimeError("Spotify unreachable") from e
        except RuntimeError:
            text = CompactExceptionFormatter().formatException(sys.exc_info())

        assert text.index("ConnectionError: refused") < text.index("RuntimeError: Spotify")


class TestConfigureLogging:
    def test_installs_single_handler_and_quiets_httpx(self) -> None:
        configure_logging("DEBUG")
        configure_logging("WARNING")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_json_format_uses_json_formatter(self) -> None:
        configure_logging("INFO", json_format=True)
        assert isinstance(logging.getLogger().handlers[0].formatter, CustomJsonFormatter)


class TestLogOperation:
    async def test_logs_started_and_completed(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("audion.test.ops")
        with caplog.at_level(logging.INFO, logger="audion.test.ops"):
            async with log_operation(logger, "catalog.import_tracks", query="yesterday"):
                pass

        messages = [r.getMessage() for r in caplog.records]
        assert messages == ["catalog.import_tracks.started", "catalog.import_tracks.completed"]
        assert caplog.records[1].query == "yesterday"  # type: ignore[attr-defined]
        assert caplog.records[1].duration_ms >= 0  # type: ignore[attr-defined]

    async def test_logs_failure_and_reraises(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("audion.test.ops")
        with caplog.at_level(logging.INFO, logger="audion.test.ops"):
            with pytest.raises(KeyError):
                async with log_operation(logger, "enrichment.song_details"):
                    raise KeyError("sp-1")

        failed = caplog.records[-1]
        assert failed.getMessage() == "enrichment.song_details.failed"
        assert failed.levelno == logging.ERROR
        assert failed.error_type == "KeyError"  # type: ignore[attr-defined]
