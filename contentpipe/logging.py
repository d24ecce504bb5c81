"""
Structured logging configuration using structlog.

Standardized log format:
{
    "ts": "2025-11-18T04:30:00.123456Z",
    "level": "info",
    "service": "contentpipe",
    "correlation_id": "uuid-v4",
    "workflow_id": "content-cycle",
    "agent": "ScriptwriterAgent",
    "event": "agent.run.finished",
    ...additional context...
}

Agent runs bind ``agent``, ``workflow_id`` and ``correlation_id`` for the
duration of a single call, so every log line emitted inside the call carries
them without any state on the agent object.
"""
import structlog
import logging
from typing import Any

SERVICE_NAME = "contentpipe"


def add_service_name(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Add service name to all log entries."""
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def drop_empty_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Remove context keys bound as None (e.g. runs without a workflow)."""
    for key in ("workflow_id", "correlation_id"):
        if key in event_dict and event_dict[key] is None:
            del event_dict[key]
    return event_dict


def setup_logging(json_output: bool = True, level: int = logging.INFO):
    """
    Configure structured logging with standardized fields.

    Args:
        json_output: If True, output JSON logs. If False, use console format.
        level: Minimum level passed through the filtering logger.
    """
    shared_processors = [
        # Add contextvars (correlation id from middleware, run context from agents)
        structlog.contextvars.merge_contextvars,
        drop_empty_context,
        add_service_name,
        structlog.processors.TimeStamper(fmt="iso", key="ts"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors = shared_processors + [structlog.processors.JSONRenderer()]
    else:
        processors = shared_processors + [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", level=level)

    # Silence uvicorn's default logging to avoid duplicate logs
    logging.getLogger("uvicorn.error").handlers = []
    logging.getLogger("uvicorn.access").handlers = []


def get_logger(**initial_values: Any):
    """Get a configured structlog logger."""
    return structlog.get_logger(**initial_values)
