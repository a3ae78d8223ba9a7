from __future__ import annotations

import json
import logging

import pytest
import structlog

from snosgen.observability import configure_logging


def test_json_records_on_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(log_level="debug", json_format=True)
    structlog.get_logger("snosgen.test").info("stage_started", stage="compile")

    captured = capsys.readouterr()
    record = json.loads(captured.err.strip().splitlines()[-1])
    assert captured.out == ""
    assert record["event"] == "stage_started"
    assert record["stage"] == "compile"
    assert record["level"] == "info"
    assert logging.getLogger().level == logging.DEBUG


def test_level_filters_records(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(log_level="WARNING", json_format=True)
    structlog.get_logger("snosgen.test").info("hidden")
    assert "hidden" not in capsys.readouterr().err


def test_unknown_level_rejected() -> None:
    with pytest.raises(ValueError):
        configure_logging(log_level="LOUD")
