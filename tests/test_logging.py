"""Tests for the structlog/stdlib logging bridge."""
from __future__ import annotations

import json
import logging

import pytest
import structlog

from app import bootstrap, get_version
from app.core.config import Settings
from app.core.logging import get_logger, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def test_json_logs_render_structlog_and_stdlib_events(restore_logging, capsys):
    setup_logging("INFO", json_logs=True)
    get_logger("tests.cycle").info("trade_evaluated", pair="EUR_USD", units=5000)
    logging.getLogger("tests.engine").info("Auto-promote %s", "SUPPORT agent activated")

    lines = [json.loads(line) for line in capsys.readouterr().out.strip().splitlines()]
    assert lines[0]["event"] == "trade_evaluated"
    assert lines[0]["pair"] == "EUR_USD"
    assert lines[0]["level"] == "info"
    assert lines[0]["logger"] == "tests.cycle"
    assert lines[1]["event"] == "Auto-promote SUPPORT agent activated"
    assert lines[1]["logger"] == "tests.engine"


def test_level_filters_debug(restore_logging, capsys):
    setup_logging("WARNING", json_logs=True)
    get_logger("tests.quiet").info("hidden")
    get_logger("tests.quiet").warning("shown")
    out = capsys.readouterr().out
    assert "hidden" not in out
    assert "shown" in out


def test_bootstrap_applies_logging_settings(restore_logging, capsys):
    settings = bootstrap(Settings(_env_file=None, log_level="WARNING", json_logs=True))
    assert settings.json_logs
    assert logging.getLogger().level == logging.WARNING
    get_logger("tests.boot").warning("gate_override", pair="EUR_USD")

    lines = [json.loads(line) for line in capsys.readouterr().out.strip().splitlines()]
    assert [line["event"] for line in lines] == ["gate_override"]


def test_bootstrap_announces_version(restore_logging, capsys):
    bootstrap(Settings(_env_file=None, log_level="INFO", json_logs=True))
    [line] = [json.loads(line) for line in capsys.readouterr().out.strip().splitlines()]
    assert line["event"] == "governance_engine_started"
    assert line["version"] == get_version()
    assert line["primary_pair"] == "USD_CAD"
