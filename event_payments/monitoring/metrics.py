"""
Prometheus metrics for the registration payment pipeline.

Tracks:
- Webhook events received, processed and failed
- Shopify orders created and failed
- Duplicate payment attempts blocked
- Payment lock outcomes
- Stripe and Shopify API calls
"""
from typing import Any, Dict

from prometheus_client import Counter, Histogram

# Webhook metrics
webhook_events_received_total = Counter(
    "webhook_events_received_total",
    "Total webhook events received",
    ["event_type"],
)

webhook_events_processed_total = Counter(
    "webhook_events_processed_total",
    "Total webhook events processed",
    ["event_type", "status"],  # success, failed, duplicate, ignored
)

webhook_processing_duration_seconds = Histogram(
    "webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    ["event_type"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Order metrics
shopify_orders_total = Counter(
    "shopify_orders_total",
    "Shopify orders by outcome",
    ["status"],  # created, failed
)

# Checkout metrics
payment_intents_created_total = Counter(
    "payment_intents_created_total",
    "Payment intents created",
    ["event_id", "option"],
)

duplicate_payment_attempts_total = Counter(
    "duplicate_payment_attempts_total",
    "Payment attempts rejected as duplicates",
    ["layer"],  # request, lock
)

payment_lock_acquisitions_total = Counter(
    "payment_lock_acquisitions_total",
    "Payment intent lock acquisitions",
    ["status"],  # acquired, refused
)

# External API metrics
external_api_requests_total = Counter(
    "external_api_requests_total",
    "External API requests",
    ["service", "operation", "status"],
)

external_api_duration_seconds = Histogram(
    "external_api_duration_seconds",
    "External API call duration in seconds",
    ["service", "operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)


class MetricsCollector:
    """
    Helper class for collecting metrics.

    Besides the Prometheus series, keeps per-process totals for the stats
    endpoint. Prometheus counters cannot be read back without a registry
    scrape, so the totals live here.
    """

    def __init__(self) -> None:
        self._stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, Dict[str, int]]:
        return {
            "webhooks": {"received": 0, "successful": 0, "failed": 0},
            "orders": {"created": 0, "failed": 0},
        }

    def track_webhook_received(self, event_type: str) -> None:
        webhook_events_received_total.labels(event_type=event_type).inc()
        self._stats["webhooks"]["received"] += 1

    def track_webhook_success(self, event_type: str, duration_seconds: float = 0) -> None:
        webhook_events_processed_total.labels(event_type=event_type, status="success").inc()
        webhook_processing_duration_seconds.labels(event_type=event_type).observe(
            duration_seconds
        )
        self._stats["webhooks"]["successful"] += 1

    def track_webhook_failure(self, event_type: str, duration_seconds: float = 0) -> None:
        webhook_events_processed_total.labels(event_type=event_type, status="failed").inc()
        webhook_processing_duration_seconds.labels(event_type=event_type).observe(
            duration_seconds
        )
        self._stats["webhooks"]["failed"] += 1

    def track_webhook_skipped(self, event_type: str, status: str) -> None:
        """Record a duplicate or ignored event."""
        webhook_events_processed_total.labels(event_type=event_type, status=status).inc()

    def track_order_created(self) -> None:
        shopify_orders_total.labels(status="created").inc()
        self._stats["orders"]["created"] += 1

    def track_order_failed(self) -> None:
        shopify_orders_total.labels(status="failed").inc()
        self._stats["orders"]["failed"] += 1

    @staticmethod
    def record_payment_intent_created(event_id: int, option: str) -> None:
        payment_intents_created_total.labels(event_id=str(event_id), option=option).inc()

    @staticmethod
    def record_duplicate_payment_attempt(layer: str) -> None:
        duplicate_payment_attempts_total.labels(layer=layer).inc()

    @staticmethod
    def record_payment_lock(status: str) -> None:
        payment_lock_acquisitions_total.labels(status=status).inc()

    @staticmethod
    def record_api_call(
        service: str, operation: str, status: str, duration_seconds: float
    ) -> None:
        """Record a Stripe or Shopify API call."""
        external_api_requests_total.labels(
            service=service, operation=operation, status=status
        ).inc()
        external_api_duration_seconds.labels(service=service, operation=operation).observe(
            duration_seconds
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "webhooks": dict(self._stats["webhooks"]),
            "orders": dict(self._stats["orders"]),
        }

    def reset(self) -> None:
        self._stats = self._empty_stats()


# Export singleton instance
metrics = MetricsCollector()


def track_webhook_received(event_type: str = "unknown") -> None:
    metrics.track_webhook_received(event_type)


def track_webhook_success(event_type: str = "unknown", duration_seconds: float = 0) -> None:
    metrics.track_webhook_success(event_type, duration_seconds)


def track_webhook_failure(event_type: str = "unknown", duration_seconds: float = 0) -> None:
    metrics.track_webhook_failure(event_type, duration_seconds)


def track_order_created() -> None:
    metrics.track_order_created()


def track_order_failed() -> None:
    metrics.track_order_failed()


def get_stats() -> Dict[str, Any]:
    return metrics.get_stats()
