"""Logging, metrics and health checks."""
from .logging import log_critical_failure, setup_logging
from .metrics import (
    get_stats,
    metrics,
    track_order_created,
    track_order_failed,
    track_webhook_failure,
    track_webhook_received,
    track_webhook_success,
)

__all__ = [
    "get_stats",
    "log_critical_failure",
    "metrics",
    "setup_logging",
    "track_order_created",
    "track_order_failed",
    "track_webhook_failure",
    "track_webhook_received",
    "track_webhook_success",
]
