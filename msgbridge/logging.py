"""
Structured logging configuration using structlog.

Standardized log format:
{
    "ts": "2026-10-19T04:30:00.123456Z",
    "level": "warning",
    "service": "msgbridge",
    "env": "dev",
    "message_id": "msg-3f2a9c1b-7-1792380600123",
    "action": "ping",
    "event": "request.timed_out",
    "module": "msgbridge.correlator",
    "function": "_expire",
    "line": 42,
    ...additional context...
}
"""
import structlog
import logging
from typing import Any
from .config import get_settings

_static_fields = {"service": "msgbridge"}


def add_service_name(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Add service name and deployment env to all log entries."""
    event_dict.update(_static_fields)
    return event_dict


def add_module_info(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Add module, function, and line number to log entries."""
    frame = structlog._frames._find_first_app_frame_and_name(additional_ignores=[__name__])[0]
    if frame:
        event_dict["module"] = frame.f_globals.get("__name__", "unknown")
        event_dict["function"] = frame.f_code.co_name
        event_dict["line"] = frame.f_lineno
    return event_dict


def setup_logging(json_output: bool | None = None, service_name: str = "msgbridge", level: str | None = None):
    """
    Configure structured logging with standardized fields.

    Args:
        json_output: If True, output JSON logs. If False, use console format.
            Defaults to MSGBRIDGE_LOG_JSON.
        service_name: Name of the service embedding the correlator.
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
            Defaults to MSGBRIDGE_LOG_LEVEL.
    """
    settings = get_settings()
    if json_output is None:
        json_output = settings.LOG_JSON
    if level is None:
        level = settings.LOG_LEVEL

    _static_fields.clear()
    _static_fields.update(service=service_name, env=settings.ENV)

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    shared_processors = [
        # Picks up message_id/action bound while an inbound request is dispatched
        structlog.contextvars.merge_contextvars,
        add_service_name,
        structlog.processors.TimeStamper(fmt="iso", key="ts"),
        structlog.processors.add_log_level,
        add_module_info,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
    )

