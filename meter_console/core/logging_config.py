"""Structured logging configuration."""

from __future__ import annotations

import datetime
import logging
import sys

import structlog
from structlog.types import EventDict, Processor

QUIET_LOGGERS = ("httpx", "httpcore", "gmqtt")


def add_log_level(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add log level to event dict."""
    if method_name == "warn":
        method_name = "warning"
    event_dict["level"] = method_name.upper()
    return event_dict


def add_timestamp(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add an ISO-8601 UTC timestamp to event dict."""
    now = datetime.datetime.now(datetime.timezone.utc)
    event_dict["timestamp"] = now.isoformat().replace("+00:00", "Z")
    return event_dict


def service_context(service: str) -> Processor:
    """Build a processor stamping every event with the service name."""

    def add_service(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return add_service


def setup_logging(
    log_level: str = "INFO",
    use_json: bool = False,
    include_caller_info: bool = True,
    service: str | None = None,
) -> None:
    """Setup structured logging for the console.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: If True, output JSON lines. If False, use colored console output.
        include_caller_info: If True, render stack info and formatted exceptions
        service: Optional name added to every event as ``service``
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    # Client libraries log every request; the poller makes one per second
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLogger().level))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_timestamp,
        add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    if service:
        processors.append(service_context(service))

    if include_caller_info:
        processors.append(structlog.processors.StackInfoRenderer())
        processors.append(structlog.processors.format_exc_info)

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger

    Example:
        logger = get_logger(__name__)
        logger.info("acquisition_started", port="COM3", message="Acquisition started")
    """
    return structlog.get_logger(name)
