"""Unit tests for launcher logging utilities."""
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from launcher.logging_utils import (
    StructuredFormatter,
    get_log_context,
    log_context,
    log_duration,
    set_log_context,
)


def make_record(message="hello", fields=None):
    record = logging.LogRecord("launcher.domain", logging.INFO, __file__, 1, message, None, None)
    if fields is not None:
        record.fields = fields
    return record


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_human_format_includes_context_and_fields(self):
        with log_context(namespace="demo", executor="e1"):
            line = StructuredFormatter().format(make_record(fields={"locations": 3}))

        assert "[INFO]" in line
        assert "[domain]" in line
        assert "namespace=demo executor=e1" in line
        assert "locations=3" in line
        assert line.endswith("hello")

    def test_json_format(self):
        with log_context(namespace="demo"):
            entry = json.loads(StructuredFormatter(json_output=True).format(make_record(fields={"app": "appA"})))

        assert entry["message"] == "hello"
        assert entry["component"] == "domain"
        assert entry["namespace"] == "demo"
        assert entry["app"] == "appA"


class TestLogContext:
    """Tests for the log context helpers."""

    def test_log_context_restores_previous(self):
        with log_context(namespace="outer"):
            with log_context(namespace="inner", executor="e1"):
                assert get_log_context() == {"namespace": "inner", "executor": "e1"}
            assert get_log_context()["namespace"] == "outer"

    def test_set_log_context_keeps_unset_values(self):
        with log_context(namespace="demo", executor="e1"):
            set_log_context(executor="e2")
            assert get_log_context() == {"namespace": "demo", "executor": "e2"}


class TestLogDuration:
    """Tests for log_duration."""

    def test_logs_operation_fields(self, caplog):
        logger = logging.getLogger("launcher.test")
        with caplog.at_level(logging.INFO, logger="launcher.test"):
            with log_duration("scan_artifacts", logger, root="/opt/saturn/lib"):
                pass

        record = caplog.records[-1]
        assert record.fields["operation"] == "scan_artifacts"
        assert record.fields["root"] == "/opt/saturn/lib"
        assert record.fields["duration_ms"] >= 0
