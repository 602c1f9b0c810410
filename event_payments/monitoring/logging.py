"""
Structured logging configuration.

Uses structlog for JSON-formatted logs with request-scoped context.
"""
import json
import logging
import sys
from typing import Any, Dict, Optional

import structlog
from pythonjsonlogger import jsonlogger

from event_payments.config import get_settings

CRITICAL_FAILURE_TYPES = ("webhook", "shopify", "payment")


def add_app_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Add application context to log events.

    Args:
        logger: Logger instance
        method_name: Log method name
        event_dict: Event dictionary

    Returns:
        dict[str, Any]: Enhanced event dictionary
    """
    settings = get_settings()
    event_dict["app_name"] = settings.app_name
    event_dict["app_env"] = settings.app_env
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog and the stdlib root logger.

    structlog renders JSON; records from third-party libraries go through
    python-json-logger on stdout.
    """
    settings = get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_app_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    json_handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        rename_fields={
            "timestamp": "@timestamp",
            "level": "level",
            "name": "logger",
            "message": "message",
        },
    )
    json_handler.setFormatter(formatter)
    root_logger.addHandler(json_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.INFO)

    logger = structlog.get_logger(__name__)
    logger.info(
        "logging_configured",
        log_level=settings.log_level,
        app_env=settings.app_env,
    )


def log_critical_failure(
    failure_type: str, message: str, details: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log a failure that needs operator attention.

    Args:
        failure_type: One of webhook, shopify, payment
        message: Human readable summary
        details: Extra context, serialised to JSON
    """
    if failure_type not in CRITICAL_FAILURE_TYPES:
        raise ValueError(
            f"Unknown critical failure type {failure_type!r}, "
            f"expected one of {CRITICAL_FAILURE_TYPES}"
        )

    structlog.get_logger("event_payments.critical").error(
        "critical_failure",
        failure_type=failure_type,
        failure_message=message,
        details=json.dumps(details or {}, default=str, sort_keys=True),
    )
