"""Structured logging configuration for the Lumina command service

Every event is a snake_case name plus key/value fields, rendered as JSON in
production (LOG_FORMAT=json) or for humans during development
(LOG_FORMAT=console). Anthropic keys are masked before rendering.
"""

import os
import re
import sys
import logging
import structlog
from typing import Any, Dict, Optional

_API_KEY_RE = re.compile(r"sk-ant-[A-Za-z0-9_\-]+")

# Fields whose whole value is masked
SECRET_FIELDS = frozenset({"api_key", "anthropic_api_key", "authorization"})


def redact_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """structlog processor: mask Anthropic keys wherever they appear."""
    for key, value in event_dict.items():
        if key in SECRET_FIELDS and value:
            event_dict[key] = "***"
        elif isinstance(value, str) and "sk-ant-" in value:
            event_dict[key] = _API_KEY_RE.sub("sk-ant-***", value)
    return event_dict


def configure_logging(service_name: str, level: Optional[str] = None):
    """Configure structlog for a service and return a bound logger

    Args:
        service_name: Bound as ``service`` on every event
        level: Minimum level (default: LOG_LEVEL env var, else INFO)
    """
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    renderer = (
        structlog.dev.ConsoleRenderer()
        if os.getenv("LOG_FORMAT", "json") == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=service_name)

    return structlog.get_logger()
