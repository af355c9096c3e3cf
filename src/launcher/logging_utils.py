"""
Logging utilities for the Saturn executor launcher.

Provides:
- Structured logging with key=value fields
- Namespace/executor context carried on every record
- Performance timing utilities
- Optional JSON output
"""
import json
import logging
import os
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Dict, Optional


# Context variables for log context (thread-safe)
_namespace: ContextVar[Optional[str]] = ContextVar('namespace', default=None)
_executor: ContextVar[Optional[str]] = ContextVar('executor', default=None)

LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class StructuredFormatter(logging.Formatter):
    """
    Formatter that adds the log context and structured fields.

    Format: [timestamp] [level] [component] context key=value message
    """

    def __init__(self, json_output: bool = False):
        """
        Initialize formatter.

        Args:
            json_output: If True, output JSON lines instead of human-readable
        """
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        if self.json_output:
            return self._format_json(record)
        return self._format_human(record)

    def _timestamp(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, datefmt='%Y-%m-%dT%H:%M:%S')
        return f"{timestamp}.{int(record.msecs):03d}Z"

    def _format_human(self, record: logging.LogRecord) -> str:
        """Human-readable format with key=value pairs."""
        parts = [
            f"[{self._timestamp(record)}]",
            f"[{record.levelname}]",
            f"[{record.name.split('.')[-1]}]",
        ]

        context = " ".join(f"{key}={value}" for key, value in get_log_context().items() if value)
        if context:
            parts.append(context)

        fields = getattr(record, 'fields', None)
        if isinstance(fields, dict) and fields:
            parts.append(" ".join(f"{key}={value}" for key, value in fields.items()))

        parts.append(record.getMessage())

        result = " ".join(parts)
        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)
        return result

    def _format_json(self, record: logging.LogRecord) -> str:
        """JSON format for machine parsing."""
        log_entry = {
            "timestamp": self._timestamp(record),
            "level": record.levelname,
            "component": record.name.split('.')[-1],
            "message": record.getMessage(),
        }

        for key, value in get_log_context().items():
            if value:
                log_entry[key] = value

        fields = getattr(record, 'fields', None)
        if isinstance(fields, dict):
            log_entry.update(fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, separators=(',', ':'), default=str)


def set_log_context(namespace: Optional[str] = None, executor: Optional[str] = None) -> None:
    """
    Set the namespace/executor included in all log messages.

    Args:
        namespace: Tenant namespace
        executor: Executor name
    """
    if namespace is not None:
        _namespace.set(namespace)
    if executor is not None:
        _executor.set(executor)


def get_log_context() -> Dict[str, Optional[str]]:
    """Get the current log context."""
    return {
        'namespace': _namespace.get(),
        'executor': _executor.get(),
    }


@contextmanager
def log_context(namespace: Optional[str] = None, executor: Optional[str] = None):
    """
    Context manager for a temporary log context.

    Previous values are restored when the context exits.
    """
    old_namespace = _namespace.get()
    old_executor = _executor.get()
    try:
        set_log_context(namespace, executor)
        yield
    finally:
        _namespace.set(old_namespace)
        _executor.set(old_executor)


@contextmanager
def log_duration(operation: str, logger: Optional[logging.Logger] = None, **extra_fields):
    """
    Context manager that logs duration of an operation.

    Example:
        with log_duration("scan_artifacts", logger, root="/opt/saturn/lib"):
            scan()
        # Logs: operation=scan_artifacts duration_ms=12 root=/opt/saturn/lib
    """
    if logger is None:
        logger = logging.getLogger()

    start_time = time.time()
    try:
        yield
    finally:
        duration_ms = int((time.time() - start_time) * 1000)
        fields = {
            'operation': operation,
            'duration_ms': duration_ms,
            **extra_fields
        }
        logger.info(f"Operation completed: {operation}", extra={'fields': fields})


def log_with_fields(logger: logging.Logger, level: int, message: str, **fields):
    """
    Log a message with structured fields.

    Example:
        log_with_fields(logger, logging.INFO, "Domain built", locations=3)
    """
    logger.log(level, message, extra={'fields': fields})


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
    module_levels: Optional[Dict[str, str]] = None
) -> None:
    """
    Setup logging configuration for the launcher.

    Args:
        level: Global log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Enable JSON output instead of human-readable
        log_file: Optional log file path (in addition to stderr)
        module_levels: Per-module log levels, e.g. {'domain': 'DEBUG'}

    Environment Variables:
        SATURN_LOG_LEVEL: Override log level
        SATURN_LOG_JSON: Enable JSON output (1 or 0)
        SATURN_LOG_FILE: Log file path
    """
    level = os.getenv('SATURN_LOG_LEVEL', level).upper()
    json_output = os.getenv('SATURN_LOG_JSON', '0') == '1' or json_output
    log_file = os.getenv('SATURN_LOG_FILE', log_file)

    if level not in LEVELS:
        logging.warning(f"Invalid log level '{level}', using INFO")
        level = 'INFO'

    formatter = StructuredFormatter(json_output=json_output)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            log_path = os.path.dirname(log_file)
            if log_path and not os.path.exists(log_path):
                os.makedirs(log_path, mode=0o755)

            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            logging.info(f"Logging to file: {log_file}")
        except OSError as e:
            logging.error(f"Failed to setup file logging: {e}")

    if module_levels:
        for module_name, module_level in module_levels.items():
            module_level_upper = module_level.upper()
            if module_level_upper in LEVELS:
                logging.getLogger(f'launcher.{module_name}').setLevel(getattr(logging, module_level_upper))
                logging.debug(f"Set log level for {module_name}: {module_level_upper}")
            else:
                logging.warning(f"Invalid log level for module {module_name}: {module_level}")

    logging.debug(f"Logging initialized: level={level}, json={json_output}, file={log_file}")
