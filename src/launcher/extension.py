"""
Executor extension contract.

The executor runtime exposes an extension that customises logging,
configuration and discovery at fixed bootstrap phases. The launcher drives
the bootstrap hooks in order through ``ExecutorExtension.bootstrap``.
"""
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Mapping, Optional, Type

from launcher.domain import find_domain
from launcher.logging_utils import set_log_context, setup_logging
from launcher.models import ExecutorConfig

logger = logging.getLogger(__name__)

# Invocation order of the bootstrap hooks
BOOTSTRAP_HOOKS = (
    "init_before",
    "init_log_dir_env",
    "init_log",
    "init_after",
    "register_job_type",
    "validate_namespace_existing",
    "init",
)


class ExecutorExtension(ABC):
    """Capability set the executor runtime exposes to the launcher."""

    def __init__(
        self,
        executor_name: Optional[str],
        namespace: str,
        executor_domain: Any,
        application_domains: Optional[List[Any]],
    ):
        self.executor_name = executor_name
        self.namespace = namespace
        self.executor_domain = executor_domain
        self.application_domains = application_domains if application_domains is not None else []
        self._bootstrapped = False

    @abstractmethod
    def init_before(self) -> None:
        """First hook; logging is not configured yet."""
        ...

    @abstractmethod
    def init_log_dir_env(self) -> None:
        """Set up the environment the logger reads."""
        ...

    @abstractmethod
    def init_log(self) -> None:
        """Configure logging; logging is usable afterwards."""
        ...

    @abstractmethod
    def init_after(self) -> None:
        """General post-logging setup."""
        ...

    @abstractmethod
    def register_job_type(self) -> None:
        """Register executable job kinds with the runtime registry."""
        ...

    @abstractmethod
    def validate_namespace_existing(self, connect_string: Optional[str]) -> None:
        """
        Check the namespace before connecting to the coordination cluster.

        Raises:
            UnknownNamespaceError: To abort the start
        """
        ...

    @abstractmethod
    def init(self) -> None:
        """Last bootstrap hook; the runtime declares readiness."""
        ...

    @abstractmethod
    def get_executor_config_class(self) -> Type:
        """Descriptor of the typed executor configuration."""
        ...

    @abstractmethod
    def post_discover(self, discovery_info: Mapping[str, str]) -> None:
        """Called with the discovered settings once discovery finishes."""
        ...

    @abstractmethod
    def handle_executor_start_error(self, error: BaseException) -> None:
        """Called on any bootstrap failure. Must not raise."""
        ...

    def bootstrap(self, connect_string: Optional[str] = None) -> None:
        """
        Invoke the bootstrap hooks in order.

        Hooks fire at most once per extension; a repeated call is ignored.

        Args:
            connect_string: Coordination cluster connect string, if known
        """
        if self._bootstrapped:
            logger.warning(f"Extension for namespace {self.namespace} already bootstrapped")
            return
        self._bootstrapped = True

        for hook in BOOTSTRAP_HOOKS:
            if hook == "validate_namespace_existing":
                self.validate_namespace_existing(connect_string)
            else:
                getattr(self, hook)()

    def find_application_domain(self, unit_name: str) -> Optional[Any]:
        """Find the application domain that provides a unit of user code."""
        return find_domain(unit_name, self.application_domains)


class DefaultExecutorExtension(ExecutorExtension):
    """Extension with the launcher's standard logging and configuration."""

    def __init__(self, executor_name, namespace, executor_domain, application_domains):
        super().__init__(executor_name, namespace, executor_domain, application_domains)
        self.executor_config: Optional[ExecutorConfig] = None

    def init_before(self) -> None:
        pass

    def init_log_dir_env(self) -> None:
        if not os.getenv('SATURN_LOG_DIR'):
            log_dir = Path.home() / "logs" / "saturn" / self.namespace / (self.executor_name or "executor")
            os.environ['SATURN_LOG_DIR'] = str(log_dir)

    def init_log(self) -> None:
        setup_logging()
        set_log_context(namespace=self.namespace, executor=self.executor_name)

    def init_after(self) -> None:
        logger.info(f"Executor extension initialised (log dir: {os.getenv('SATURN_LOG_DIR')})")

    def register_job_type(self) -> None:
        pass

    def validate_namespace_existing(self, connect_string: Optional[str]) -> None:
        pass

    def init(self) -> None:
        logger.info(f"Executor ready for namespace {self.namespace}")

    def get_executor_config_class(self) -> Type:
        return ExecutorConfig

    def post_discover(self, discovery_info: Mapping[str, str]) -> None:
        self.executor_config = self.get_executor_config_class()(**dict(discovery_info))
        logger.info(f"Discovered {len(discovery_info)} executor settings")

    def handle_executor_start_error(self, error: BaseException) -> None:
        logger.error(f"Executor failed to start: {error}", exc_info=error)
