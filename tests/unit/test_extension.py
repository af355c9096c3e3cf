"""Unit tests for the executor extension contract."""
import logging
import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from launcher.domain import LoadingDomain
from launcher.errors import UnknownNamespaceError
from launcher.extension import BOOTSTRAP_HOOKS, DefaultExecutorExtension, ExecutorExtension
from launcher.models import ExecutorConfig


class TestExecutorExtension:
    """Tests for ExecutorExtension.bootstrap."""

    def test_cannot_instantiate_abstract(self):
        with pytest.raises(TypeError):
            ExecutorExtension("exec-1", "ns", None, [])

    def test_hooks_fire_in_order(self, recording_extension):
        extension = recording_extension("exec-1", "ns", None, [])
        extension.bootstrap("zk1:2181")

        assert extension.events == list(BOOTSTRAP_HOOKS)
        assert extension.connect_strings == ["zk1:2181"]

    def test_hooks_fire_once(self, recording_extension):
        extension = recording_extension("exec-1", "ns", None, [])
        extension.bootstrap()
        extension.bootstrap()

        assert extension.events == list(BOOTSTRAP_HOOKS)
        assert extension.connect_strings == [None]

    def test_unknown_namespace_aborts(self, recording_extension):
        """Readiness is never declared for an unknown namespace."""
        extension = recording_extension("exec-1", "ghost", None, [], unknown_namespace=True)

        with pytest.raises(UnknownNamespaceError):
            extension.bootstrap("zk1:2181")

        assert extension.events[-1] == "validate_namespace_existing"
        assert "init" not in extension.events

    def test_application_domains_default_empty(self, recording_extension):
        extension = recording_extension(None, "ns", None, None)
        assert extension.application_domains == []
        assert extension.executor_name is None

    def test_find_application_domain(self, tmp_path, module_writer, recording_extension):
        module_writer(tmp_path / "appA", "orders_job.py", "class OrdersJob:\n    pass\n")
        module_writer(tmp_path / "appB", "billing_job.py", "class BillingJob:\n    pass\n")
        app_a = LoadingDomain([tmp_path / "appA"])
        app_b = LoadingDomain([tmp_path / "appB"])
        extension = recording_extension("exec-1", "ns", None, [app_a, app_b])

        assert extension.find_application_domain("billing_job:BillingJob") is app_b
        assert extension.find_application_domain("orders_job:OrdersJob") is app_a
        assert extension.find_application_domain("missing_job:Job") is None


class TestDefaultExecutorExtension:
    """Tests for DefaultExecutorExtension."""

    def test_executor_config_class(self):
        extension = DefaultExecutorExtension("exec-1", "ns", None, [])
        assert extension.get_executor_config_class() is ExecutorConfig

    def test_post_discover(self):
        extension = DefaultExecutorExtension("exec-1", "ns", None, [])
        extension.post_discover({"connect_string": "zk1:2181", "region": "eu"})

        assert extension.executor_config.connect_string == "zk1:2181"
        assert extension.executor_config.region == "eu"

    def test_post_discover_string_values(self):
        """Discovery reports every value as a string."""
        extension = DefaultExecutorExtension("exec-1", "ns", None, [])
        extension.post_discover({
            "connect_string": "zk:2181",
            "console_uris": "http://a, http://b",
            "properties": "region=eu,zone=1",
        })

        assert extension.executor_config.console_uris == ["http://a", "http://b"]
        assert extension.executor_config.properties == {"region": "eu", "zone": "1"}

    def test_post_discover_empty_console_uris(self):
        extension = DefaultExecutorExtension("exec-1", "ns", None, [])
        extension.post_discover({"console_uris": ""})
        assert extension.executor_config.console_uris == []

    def test_log_dir_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("SATURN_LOG_DIR", "")
        extension = DefaultExecutorExtension("exec-1", "ns", None, [])
        extension.init_log_dir_env()

        assert os.environ["SATURN_LOG_DIR"] == str(tmp_path / "logs" / "saturn" / "ns" / "exec-1")

    def test_log_dir_kept_when_set(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SATURN_LOG_DIR", str(tmp_path / "custom"))
        extension = DefaultExecutorExtension(None, "ns", None, [])
        extension.init_log_dir_env()

        assert os.environ["SATURN_LOG_DIR"] == str(tmp_path / "custom")

    def test_start_error_is_logged(self, caplog):
        extension = DefaultExecutorExtension("exec-1", "ns", None, [])

        with caplog.at_level(logging.ERROR, logger="launcher.extension"):
            extension.handle_executor_start_error(RuntimeError("cluster unreachable"))

        assert "cluster unreachable" in caplog.text
