"""Tests for structured logging."""

import json
import logging
from typing import List

from propsync.utils.logging import (
    ContextTextFormatter,
    JSONFormatter,
    bind_context,
    get_logger,
)


def make_record(**extra) -> logging.LogRecord:
    return logging.makeLogRecord(
        {
            "name": "propsync.queries.workspace",
            "levelname": "INFO",
            "levelno": logging.INFO,
            "msg": "Created workspace w1 for u1",
            **extra,
        }
    )


class CollectingHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class TestFormatters:
    """Tests for JSON and text output."""

    def test_json_includes_context_fields(self) -> None:
        data = json.loads(JSONFormatter().format(make_record(user_id="u1", workspace_id="w1")))
        assert data["message"] == "Created workspace w1 for u1"
        assert data["level"] == "INFO"
        assert data["user_id"] == "u1"
        assert data["workspace_id"] == "w1"
        assert "collection" not in data

    def test_json_skips_empty_context(self) -> None:
        data = json.loads(JSONFormatter().format(make_record(workspace_id="")))
        assert "workspace_id" not in data

    def test_text_appends_context(self) -> None:
        line = ContextTextFormatter().format(make_record(user_id="u1", workspace_id="w1"))
        assert line.endswith("Created workspace w1 for u1 [user_id=u1 workspace_id=w1]")

    def test_text_without_context(self) -> None:
        line = ContextTextFormatter().format(make_record())
        assert line.endswith("INFO - Created workspace w1 for u1")


class TestBindContext:
    """Tests for context-bound loggers."""

    def test_call_extra_overrides_bound_values(self) -> None:
        log = bind_context(logging.getLogger("propsync.tests"), user_id="u1", workspace_id="w1")
        _, kwargs = log.process("msg", {"extra": {"workspace_id": "w2"}})
        assert kwargs["extra"] == {"user_id": "u1", "workspace_id": "w2"}

    def test_unknown_fields_are_not_bound(self) -> None:
        log = bind_context(logging.getLogger("propsync.tests"), user_id="u1", colour="red")
        assert log.extra == {"user_id": "u1"}

    def test_records_carry_bound_context(self) -> None:
        logger = get_logger("propsync.tests.bound")
        handler = CollectingHandler()
        logger.addHandler(handler)
        try:
            bind_context(logger, workspace_id="w1").warning("Import skipped a listing")
        finally:
            logger.removeHandler(handler)
        assert len(handler.records) == 1
        assert handler.records[0].workspace_id == "w1"
