from __future__ import annotations

import json
import logging

from reien.core.logging import JsonFormatter, setup_logging


def test_setup_logging_levels():
    setup_logging("debug", "standard")
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("reien").level == logging.DEBUG
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    assert len(logging.getLogger().handlers) == 1

    setup_logging("not-a-level", "json")
    assert logging.getLogger().level == logging.INFO
    assert isinstance(logging.getLogger().handlers[0].formatter, JsonFormatter)


def test_json_formatter_output():
    record = logging.LogRecord("reien.plots.inventory", logging.INFO, __file__, 1, "plot %s", (7,), None)
    data = json.loads(JsonFormatter().format(record))
    assert data["level"] == "INFO"
    assert data["logger"] == "reien.plots.inventory"
    assert data["message"] == "plot 7"
    assert set(data) == {"timestamp", "level", "logger", "message"}
