"""Unit tests for structured logging helpers."""

import json
import logging
import sys

import pytest

from professorprep.logging_config import (
    HANDLER_NAME,
    DevFormatter,
    JsonFormatter,
    ServiceContextFilter,
    configure_logging,
    request_id_var,
    user_id_var,
)


def _record(msg="Feature quota exceeded", exc_info=None, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="professorprep.engines.rate_limit.limiter",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    ServiceContextFilter().filter(record)
    return record


@pytest.fixture
def request_context():
    request_token = request_id_var.set("req-42")
    user_token = user_id_var.set("u-ctx")
    yield
    user_id_var.reset(user_token)
    request_id_var.reset(request_token)


class TestServiceContextFilter:
    """Correlation fields are filled from context or left as None."""

    def test_fields_from_context(self, request_context):
        record = _record()
        assert record.request_id == "req-42"
        assert record.user_id == "u-ctx"
        assert record.objective_id is None

    def test_explicit_extra_wins_over_context(self, request_context):
        record = _record(user_id="u-explicit")
        assert record.user_id == "u-explicit"

    def test_outside_request(self):
        record = _record()
        assert record.request_id is None
        assert record.user_id is None
        assert record.feature is None


class TestJsonFormatter:
    """Correlation fields at the top level, other extras nested."""

    def test_service_fields_are_top_level(self, request_context):
        record = _record(feature="ai_chat", retry_after_seconds=12.5)
        data = json.loads(JsonFormatter().format(record))
        assert data["level"] == "WARNING"
        assert data["message"] == "Feature quota exceeded"
        assert data["request_id"] == "req-42"
        assert data["user_id"] == "u-ctx"
        assert data["feature"] == "ai_chat"
        assert data["extra"] == {"retry_after_seconds": 12.5}

    def test_mastery_fields(self):
        record = _record(student_id="s1", objective_id="obj-a", from_level="developing")
        data = json.loads(JsonFormatter().format(record))
        assert data["student_id"] == "s1"
        assert data["objective_id"] == "obj-a"
        assert data["extra"] == {"from_level": "developing"}

    def test_unknown_fields_omitted(self):
        data = json.loads(JsonFormatter().format(_record()))
        assert "request_id" not in data
        assert "user_id" not in data
        assert "extra" not in data

    def test_sets_and_objects_are_serialisable(self):
        record = _record(formats={"short_answer", "multiple_choice"}, obj=object())
        data = json.loads(JsonFormatter().format(record))
        assert data["extra"]["formats"] == ["multiple_choice", "short_answer"]
        assert isinstance(data["extra"]["obj"], str)

    def test_exception_included(self):
        try:
            raise ValueError("bad reply")
        except ValueError:
            record = _record(exc_info=sys.exc_info())
        data = json.loads(JsonFormatter().format(record))
        assert "ValueError: bad reply" in data["exception"]


class TestDevFormatter:
    """One readable line with key=value fields appended."""

    def test_appends_fields_in_order(self, request_context):
        line = DevFormatter().format(_record(feature="ai_chat", remaining=3))
        assert line.endswith("| request_id=req-42 user_id=u-ctx feature=ai_chat remaining=3")
        assert "[professorprep.engines.rate_limit.limiter] Feature quota exceeded" in line

    def test_plain_line_without_fields(self):
        line = DevFormatter().format(_record("Starting"))
        assert line.endswith("Starting")
        assert "|" not in line


class TestConfigureLogging:
    """The service handler is installed once and leaves others alone."""

    @pytest.fixture
    def root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield root
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_reconfigure_replaces_only_service_handler(self, root):
        other = logging.NullHandler()
        root.addHandler(other)

        configure_logging(log_level="INFO")
        configure_logging(log_level="WARNING", environment="production")

        ours = [h for h in root.handlers if h.get_name() == HANDLER_NAME]
        assert len(ours) == 1
        assert isinstance(ours[0].formatter, JsonFormatter)
        assert other in root.handlers
        assert root.level == logging.WARNING

    def test_debug_overrides_level(self, root):
        configure_logging(log_level="ERROR", debug=True)
        assert root.level == logging.DEBUG
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
