"""
Pytest fixtures for launcher tests.

Builds library trees in temporary directories and provides a stand-in
executor runtime that is loaded through real loading domains.
"""
import os
import sys
import zipfile
from pathlib import Path
from typing import Dict

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from launcher.errors import UnknownNamespaceError  # noqa: E402
from launcher.extension import ExecutorExtension  # noqa: E402

NAMESPACE_BINDINGS = ("app.instance.name", "namespace")

FAKE_RUNTIME = '''
import threading

from launcher.domain import current_domain


class SaturnExecutor:
    """Stand-in executor runtime driven by the app_map passed to it."""

    def __init__(self, namespace, executor_name, runtime_domain, application_domains, app_map):
        self.namespace = namespace
        self.executor_name = executor_name or "fake-executor"
        self.runtime_domain = runtime_domain
        self.application_domains = application_domains
        self.options = dict(app_map or {})
        self.events = self.options.get("events", [])
        self.calls = []
        self.connect_string = self.options.get("connect_string")
        self.extension = None
        factory = self.options.get("extension")
        if factory is not None:
            self.extension = factory(self.executor_name, namespace, runtime_domain, application_domains)

    @classmethod
    def build_executor(cls, namespace, executor_name, runtime_domain, application_domains, app_map):
        if (app_map or {}).get("fail_on") == "build":
            raise RuntimeError("build failed")
        return cls(namespace, executor_name, runtime_domain, application_domains, app_map)

    def _record(self, name):
        self.calls.append((name, current_domain()))
        self.events.append(name)
        if self.options.get("fail_on") == name:
            raise RuntimeError(name + " failed")

    def get_executor_name(self):
        if self.options.get("fail_on") == "get_executor_name":
            raise RuntimeError("name lookup failed")
        return self.options.get("assigned_name", self.executor_name)

    def execute(self):
        self._record("execute")
        if self.options.get("background"):
            self.worker = threading.Thread(target=self._work, daemon=True)
            self.worker.start()

    def _work(self):
        try:
            import saturn_helpers
            self.background = saturn_helpers.VALUE
        except Exception as e:
            self.background = e

    def run_job(self):
        from saturn_helpers import VALUE
        return VALUE

    def shutdown(self):
        self._record("shutdown")

    def shutdown_gracefully(self):
        self._record("shutdown_gracefully")
'''


def write_archive(path: Path, files: Dict[str, str]) -> Path:
    """Write an importable zip archive."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, 'w') as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return path


def write_module(directory: Path, name: str, content: str) -> Path:
    """Write a source file, creating parent directories."""
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def write_runtime(directory: Path, archive_name: str = "saturn-executor.zip") -> Path:
    """Write the stand-in runtime and its helper module as an archive."""
    return write_archive(directory / archive_name, {
        "saturn_executor.py": FAKE_RUNTIME,
        "saturn_helpers.py": "VALUE = 'helped'\n",
    })


class RecordingExtension(ExecutorExtension):
    """Extension that records every hook it receives."""

    def __init__(self, executor_name, namespace, executor_domain, application_domains,
                 events=None, unknown_namespace=False):
        super().__init__(executor_name, namespace, executor_domain, application_domains)
        self.events = events if events is not None else []
        self.connect_strings = []
        self.discovered = []
        self.errors = []
        self.unknown_namespace = unknown_namespace

    def init_before(self):
        self.events.append("init_before")

    def init_log_dir_env(self):
        self.events.append("init_log_dir_env")

    def init_log(self):
        self.events.append("init_log")

    def init_after(self):
        self.events.append("init_after")

    def register_job_type(self):
        self.events.append("register_job_type")

    def validate_namespace_existing(self, connect_string):
        self.events.append("validate_namespace_existing")
        self.connect_strings.append(connect_string)
        if self.unknown_namespace:
            raise UnknownNamespaceError(f"namespace {self.namespace} does not exist")

    def init(self):
        self.events.append("init")

    def get_executor_config_class(self):
        return dict

    def post_discover(self, discovery_info):
        self.discovered.append(dict(discovery_info))

    def handle_executor_start_error(self, error):
        self.errors.append(error)


@pytest.fixture(autouse=True)
def namespace_bindings():
    """Keep the process-wide namespace bindings from leaking between tests."""
    saved = {key: os.environ.pop(key, None) for key in NAMESPACE_BINDINGS}
    yield
    for key, value in saved.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


@pytest.fixture
def lib_dir(tmp_path) -> Path:
    """Empty library root."""
    lib = tmp_path / "lib"
    lib.mkdir()
    return lib


@pytest.fixture
def recording_extension():
    """Extension class recording its hooks."""
    return RecordingExtension


@pytest.fixture
def archive_writer():
    """Helper writing importable zip archives."""
    return write_archive


@pytest.fixture
def module_writer():
    """Helper writing source files."""
    return write_module


@pytest.fixture
def runtime_writer():
    """Helper writing the stand-in runtime archive."""
    return write_runtime
