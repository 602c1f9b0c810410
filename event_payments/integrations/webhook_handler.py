"""
Stripe webhook event routing with event deduplication.

Implements:
- Event deduplication (processed event ids kept in the idempotency store)
- Event type routing to registered handlers
- Success/failure tracking
"""
import time
from typing import Any, Awaitable, Callable, Dict

import structlog

from event_payments.core.idempotency import IdempotencyStore
from event_payments.monitoring.logging import log_critical_failure
from event_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

EventHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


class WebhookError(Exception):
    """Raised when webhook processing fails."""

    def __init__(self, message: str, event_id: str, event_type: str):
        super().__init__(message)
        self.event_id = event_id
        self.event_type = event_type


class WebhookHandler:
    """
    Routes Stripe webhook events to handlers exactly once per event id.

    An event is marked processed only after its handler returns, so a
    failed event is redelivered by Stripe and retried.
    """

    key_prefix = "webhook:processed:"

    def __init__(
        self,
        store: IdempotencyStore,
        dedup_ttl_seconds: int = 86400 * 7,
        processing_ttl_seconds: int = 300,
    ):
        self.store = store
        self.dedup_ttl_seconds = dedup_ttl_seconds
        self.processing_ttl_seconds = processing_ttl_seconds
        self.event_handlers: Dict[str, EventHandler] = {}

    def register_handler(self, event_type: str, handler: EventHandler) -> None:
        """
        Register a handler for a specific event type.

        Args:
            event_type: Stripe event type (e.g., 'payment_intent.succeeded')
            handler: Async callable receiving the event's data object
        """
        self.event_handlers[event_type] = handler
        logger.info("webhook_handler_registered", event_type=event_type)

    def _key(self, event_id: str) -> str:
        return f"{self.key_prefix}{event_id}"

    async def is_event_processed(self, event_id: str) -> bool:
        record = await self.store.get(self._key(event_id))
        return record is not None and record.get("status") == "processed"

    async def claim_event(self, event_id: str) -> bool:
        """Reserve an event for processing. False if processed or in flight."""
        return await self.store.add(
            self._key(event_id),
            {"status": "processing", "claimed_at": time.time()},
            self.processing_ttl_seconds,
        )

    async def release_event(self, event_id: str) -> None:
        await self.store.delete(self._key(event_id))

    async def mark_event_processed(self, event_id: str) -> None:
        await self.store.set(
            self._key(event_id),
            {"status": "processed", "processed_at": time.time()},
            self.dedup_ttl_seconds,
        )
        logger.info("webhook_marked_processed", event_id=event_id)

    async def process_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Process a verified webhook event.

        Args:
            event: Stripe event as a dict

        Returns:
            Dict[str, Any]: Processing result with a ``status`` of
            duplicate, ignored or success

        Raises:
            WebhookError: If the handler fails
        """
        event_id = event.get("id") or "unknown"
        event_type = event.get("type") or "unknown"
        start_time = time.time()

        metrics.track_webhook_received(event_type)
        logger.info("processing_webhook_event", event_id=event_id, event_type=event_type)

        if not await self.claim_event(event_id):
            logger.info(
                "webhook_event_already_processed",
                event_id=event_id,
                event_type=event_type,
            )
            metrics.track_webhook_skipped(event_type, "duplicate")
            return {"status": "duplicate", "eventId": event_id, "eventType": event_type}

        handler = self.event_handlers.get(event_type)
        if handler is None:
            logger.info("webhook_event_ignored", event_id=event_id, event_type=event_type)
            await self.mark_event_processed(event_id)
            metrics.track_webhook_skipped(event_type, "ignored")
            return {"status": "ignored", "eventId": event_id, "eventType": event_type}

        data_object = (event.get("data") or {}).get("object") or {}
        try:
            result = await handler(data_object)
        except Exception as e:
            duration = time.time() - start_time
            metrics.track_webhook_failure(event_type, duration)
            logger.error(
                "webhook_event_processing_failed",
                event_id=event_id,
                event_type=event_type,
                error=str(e),
                exc_info=True,
            )
            log_critical_failure(
                "webhook",
                f"Failed to process {event_type}",
                {"eventId": event_id, "error": str(e)},
            )
            await self.release_event(event_id)
            raise WebhookError(
                f"Failed to process event {event_id}: {e}", event_id, event_type
            ) from e

        await self.mark_event_processed(event_id)
        metrics.track_webhook_success(event_type, time.time() - start_time)
        logger.info("webhook_event_processed", event_id=event_id, event_type=event_type)

        return {"status": "success", "eventId": event_id, "eventType": event_type, "result": result}
