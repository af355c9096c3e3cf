#!/usr/bin/env python3
"""
Saturn executor launcher - Main entry point.
"""
import logging
import os
import sys
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import click

from launcher.args import parse_args
from launcher.domain import AMBIENT_DOMAIN, BorrowedDomain, LoadingDomain
from launcher.errors import (
    LauncherError,
    RuntimeHandoffError,
    RuntimeNotFoundError,
    ScanFailedError,
    UnitNotFoundError,
)
from launcher.logging_utils import log_duration, log_with_fields, set_log_context, setup_logging
from launcher.models import LauncherConfig, LifecyclePhase
from launcher.scanner import scan_artifacts

logger = logging.getLogger(__name__)

# Factory the executor runtime exposes inside the runtime domain
RUNTIME_ENTRY = "saturn_executor:SaturnExecutor"

# Process-wide bindings read by legacy logging patterns
NAMESPACE_BINDINGS = ("app.instance.name", "namespace")


def publish_namespace(namespace: str) -> None:
    """Publish the namespace to the process environment."""
    for key in NAMESPACE_BINDINGS:
        os.environ[key] = namespace


class Launcher:
    """Brings the executor runtime up in isolated domains and tears it down."""

    def __init__(self, runtime_entry: str = RUNTIME_ENTRY):
        """
        Initialize launcher.

        Args:
            runtime_entry: Name of the runtime factory, "module:attr"
        """
        self.runtime_entry = runtime_entry
        self.config: Optional[LauncherConfig] = None
        self.runtime_domain = None
        self.application_domains: List[Any] = []
        self.executor = None
        self.phase = LifecyclePhase.UNSTARTED
        # Domains this launcher constructed; only these are ever released
        self._built: List[Any] = []

    @property
    def namespace(self) -> Optional[str]:
        return self.config.namespace if self.config else None

    @property
    def executor_name(self) -> Optional[str]:
        """Executor name reported by the runtime, else the configured one."""
        getter = getattr(self.executor, 'get_executor_name', None)
        if callable(getter):
            try:
                if getattr(self.runtime_domain, 'released', True):
                    name = getter()
                else:
                    with self.runtime_domain.bound():
                        name = getter()
                if name:
                    return name
            except Exception:
                logger.warning("Failed to read executor name from runtime", exc_info=True)
        return self.config.executor_name if self.config else None

    @executor_name.setter
    def executor_name(self, value: Optional[str]) -> None:
        if self.config is None:
            raise LauncherError("Cannot set executor name before arguments are parsed")
        self.config = self.config.model_copy(update={'executor_name': value})

    def parse_args(self, args: Sequence[str]) -> LauncherConfig:
        """Parse arguments and publish the namespace."""
        self.config = parse_args(args)
        publish_namespace(self.config.namespace)
        set_log_context(namespace=self.config.namespace, executor=self.config.executor_name)
        self.phase = LifecyclePhase.PARSED
        logger.info(f"Parsed arguments for namespace {self.config.namespace}")
        return self.config

    def init_domains(self, runtime_domain=None, application_domains: Optional[List[Any]] = None) -> None:
        """
        Build or adopt the runtime and application domains.

        Args:
            runtime_domain: Embedder-supplied runtime domain (not released)
            application_domains: Embedder-supplied application domains (not released)
        """
        if runtime_domain is None:
            locations = scan_artifacts(self.config.runtime_lib_dir)
            self.runtime_domain = LoadingDomain(
                locations,
                parent=AMBIENT_DOMAIN,
                name="runtime",
                owned=True,
                releasable=True,
            )
            self._built.append(self.runtime_domain)
            log_with_fields(
                logger, logging.INFO, "Runtime domain built",
                root=self.config.runtime_lib_dir, locations=len(locations)
            )
        else:
            self.runtime_domain = runtime_domain
            logger.info(f"Using supplied runtime domain {runtime_domain!r}")

        if application_domains is None:
            self.application_domains = self._build_application_domains(self.config.app_lib_dir)
        else:
            self.application_domains = application_domains
            logger.info(f"Using {len(application_domains)} supplied application domains")

        self.phase = LifecyclePhase.ISOLATED

    def _build_application_domains(self, app_lib_dir: Optional[Path]) -> List[Any]:
        """One domain per application directory; loose files share the runtime domain."""
        domains: List[Any] = []
        self.application_domains = domains
        if app_lib_dir is None or not Path(app_lib_dir).is_dir():
            logger.warning(f"Application library directory not found: {app_lib_dir}")
            return domains

        try:
            children = sorted(Path(app_lib_dir).iterdir())
        except OSError as e:
            raise ScanFailedError(f"Cannot list {app_lib_dir}: {e}") from e

        for child in children:
            if child.is_dir():
                domain = LoadingDomain(
                    scan_artifacts(child),
                    parent=AMBIENT_DOMAIN,
                    name=f"app:{child.name}",
                    owned=True,
                    releasable=True,
                )
                domains.append(domain)
                self._built.append(domain)
                log_with_fields(
                    logger, logging.INFO, "Application domain built",
                    app=child.name, locations=len(domain.locations)
                )
            else:
                domains.append(BorrowedDomain(self.runtime_domain))
                logger.debug(f"Loose artefact {child.name} shares the runtime domain")

        return domains

    def start_executor(self, app_map: Optional[Dict[Any, Any]] = None) -> None:
        """
        Hand control to the executor runtime.

        Runs under the runtime domain's binding, which is restored on
        every exit path.

        Raises:
            RuntimeNotFoundError: If the runtime factory cannot be resolved
            RuntimeHandoffError: If the runtime fails to build or start
        """
        with self.runtime_domain.bound():
            try:
                factory = self.runtime_domain.lookup(self.runtime_entry)
            except UnitNotFoundError as e:
                raise RuntimeNotFoundError(
                    f"Runtime entry {self.runtime_entry} not found in {self.runtime_domain!r}"
                ) from e

            with log_duration("build_executor", logger):
                try:
                    self.executor = factory.build_executor(
                        self.config.namespace,
                        self.config.executor_name,
                        self.runtime_domain,
                        self.application_domains,
                        app_map,
                    )
                except Exception as e:
                    raise RuntimeHandoffError(f"Failed to build executor: {e}") from e

            try:
                extension = getattr(self.executor, 'extension', None)
                if extension is not None:
                    extension.bootstrap(getattr(self.executor, 'connect_string', None))
                with log_duration("execute", logger):
                    self.executor.execute()
            except Exception as e:
                self._report_start_error(e)
                if isinstance(e, LauncherError):
                    raise
                raise RuntimeHandoffError(f"Failed to start executor: {e}") from e

        self.phase = LifecyclePhase.RUNNING
        set_log_context(executor=self.executor_name)
        logger.info(f"✓ Executor {self.executor_name} started for namespace {self.config.namespace}")

    def _report_start_error(self, error: BaseException) -> None:
        extension = getattr(self.executor, 'extension', None)
        if extension is None:
            return
        try:
            extension.handle_executor_start_error(error)
        except Exception:
            logger.warning("Extension failed to handle executor start error", exc_info=True)

    def launch(
        self,
        args: Sequence[str],
        application_domains: Optional[List[Any]] = None,
        app_map: Optional[Dict[Any, Any]] = None,
    ) -> None:
        """
        Start the executor; the launcher owns the runtime domain.

        Args:
            args: Command line tokens
            application_domains: Embedder-supplied application domains
            app_map: Embedder-supplied applications passed through to the runtime
        """
        self._launch(args, None, application_domains, app_map)

    def launch_inner(
        self,
        args: Sequence[str],
        runtime_domain,
        application_domains: Optional[List[Any]] = None,
    ) -> None:
        """Start the executor inside domains supplied by an embedder."""
        self._launch(args, runtime_domain, application_domains, None)

    def _launch(self, args, runtime_domain, application_domains, app_map) -> None:
        if self.phase != LifecyclePhase.UNSTARTED:
            raise LauncherError(f"Launcher already used (phase: {self.phase.value})")

        try:
            self.parse_args(args)
            self.init_domains(runtime_domain, application_domains)
            self.start_executor(app_map)
        except Exception:
            logger.error("Failed to launch executor")
            self.phase = LifecyclePhase.STOPPED
            self.release_domains()
            raise

    def shutdown(self) -> None:
        """Stop the runtime immediately."""
        self._stop("shutdown")

    def shutdown_gracefully(self) -> None:
        """Stop the runtime after running jobs finish."""
        self._stop("shutdown_gracefully")

    def _stop(self, method_name: str) -> None:
        if self.phase != LifecyclePhase.RUNNING:
            logger.debug(f"Ignoring {method_name}: launcher is {self.phase.value}")
            return

        logger.info(f"Stopping executor ({method_name})...")
        self.phase = LifecyclePhase.STOPPED
        try:
            with self.runtime_domain.bound():
                getattr(self.executor, method_name)()
        finally:
            self.release_domains()
        logger.info("✓ Executor stopped")

    def release_domains(self) -> None:
        """Release the owned and releasable domains this launcher built, best effort."""
        released = set()
        for domain in self._built:
            if id(domain) in released:
                continue
            released.add(id(domain))
            if not (getattr(domain, 'owned', False) and getattr(domain, 'releasable', False)):
                continue
            try:
                domain.release()
            except Exception:
                logger.warning(f"Failed to release domain {domain!r}", exc_info=True)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    setup_logging()
    args = sys.argv[1:] if argv is None else list(argv)

    try:
        launcher = Launcher()
        launcher.launch(args)
    except Exception as e:
        click.echo(f"ERROR: {e}", err=True)
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
