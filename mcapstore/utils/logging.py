"""
Structured logging for mcapstore, built on structlog.

Hosts call configure_logging() (or configure_logging_from_config()) once at
startup. Library modules only ever call get_logger(); a storage binds its file
path and mode onto its own logger so every event of a recording session
carries them.
"""

import logging
import sys
from typing import Any, List

import structlog
from structlog.types import EventDict, Processor

from mcapstore.utils.config import Config

LOG_FORMATS = ("json", "console")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag every event with the library name."""
    event_dict.setdefault("app", "mcapstore")
    return event_dict


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")
    return level


def _build_processors(log_format: str) -> List[Processor]:
    if log_format not in LOG_FORMATS:
        raise ValueError(f"Unknown log format {log_format!r}, expected one of {LOG_FORMATS}")

    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    return processors


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_output: str = "stdout",
) -> None:
    """
    Configure structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_output: stdout, stderr, or a file path

    Raises:
        ValueError: If the level or format is unknown
    """
    level = _resolve_level(log_level)
    processors = _build_processors(log_format)

    if log_output in ("stdout", "stderr"):
        destination = {"stream": sys.stdout if log_output == "stdout" else sys.stderr}
    else:
        destination = {"filename": log_output}

    logging.basicConfig(format="%(message)s", level=level, **destination)
    # basicConfig is a no-op once the root logger has handlers
    logging.getLogger().setLevel(level)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging_from_config(config: Config) -> None:
    """
    Configure logging from the ``logging`` section of a configuration.

    Args:
        config: Loaded configuration (MCAPSTORE_LOG_LEVEL already applied)
    """
    configure_logging(
        log_level=config.get("logging.level", "INFO"),
        log_format=config.get("logging.format", "json"),
        log_output=config.get("logging.output", "stdout"),
    )


def get_logger(name: str, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a logger, optionally with bound context.

    Args:
        name: Logger name (typically __name__)
        **initial_context: Key/values attached to every event

    Returns:
        structlog logger
    """
    return structlog.get_logger(name, **initial_context)
