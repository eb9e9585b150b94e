from __future__ import annotations

import json
import logging

import pytest

from autometrics_gen.logging import JsonFormatter, LoggerAdapter, get_logger, with_fields


def _record(caplog: pytest.LogCaptureFixture) -> logging.LogRecord:
    assert len(caplog.records) == 1
    return caplog.records[0]


def test_get_logger_returns_adapter() -> None:
    logger = get_logger("autometrics_gen.tests")

    assert isinstance(logger, LoggerAdapter)
    assert any(isinstance(h, logging.NullHandler) for h in logger.logger.handlers)


def test_operation_and_status_defaults(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("autometrics_gen.tests")

    with caplog.at_level(logging.INFO):
        logger.warning("careful")

    record = _record(caplog)
    assert record.operation == "unknown"  # type: ignore[attr-defined]
    assert record.status == "warning"  # type: ignore[attr-defined]


def test_with_fields_binds_context(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("autometrics_gen.tests")

    with caplog.at_level(logging.INFO), with_fields(logger, operation="rewrite") as outer:
        with with_fields(outer, function="main") as inner:
            inner.info("done", extra={"operation": "override"})

    record = _record(caplog)
    assert record.operation == "override"  # type: ignore[attr-defined]
    assert record.function == "main"  # type: ignore[attr-defined]
    assert record.status == "success"  # type: ignore[attr-defined]


def test_json_formatter() -> None:
    record = logging.LogRecord(
        "autometrics_gen.rewriter", logging.ERROR, __file__, 1, "failed %s", ("main.go",), None
    )
    record.function = "main"
    record.status = "error"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "failed main.go"
    assert payload["level"] == "ERROR"
    assert payload["function"] == "main"
    assert payload["status"] == "error"
    assert "args" not in payload
