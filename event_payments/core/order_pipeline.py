"""
Webhook-driven registration and order creation.

When Stripe reports a successful payment the registration is stored and a
paid Shopify order is created from the payment intent metadata. Failed
payments are recorded so the registrant can be followed up.
"""
from typing import Any, Dict, List, Optional

import structlog

from event_payments.core.payment_lock import PaymentIntentLock
from event_payments.core.pricing import get_event_info
from event_payments.database.models import OrderStatus, PaymentStatus, Registration
from event_payments.database.repository import RegistrationRepository
from event_payments.integrations.shopify_client import ShopifyClient, ShopifyError
from event_payments.integrations.webhook_handler import WebhookHandler
from event_payments.monitoring.logging import log_critical_failure
from event_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

class OrderCreationError(Exception):
    """Raised after a failed Shopify order has been recorded on its registration."""

    def __init__(self, message: str, payment_intent_id: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.payment_intent_id = payment_intent_id
        self.status_code = status_code


OPTION_LABELS = {
    "full": "Full Camp",
    "single": "Single Day",
    "1day": "1 Day",
    "2day": "2 Days",
}


def _split_dates(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    return [part.strip() for part in raw.split(",") if part.strip()]


def _optional_int(raw: Optional[str]) -> Optional[int]:
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def registration_values_from_intent(payment_intent: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Map payment intent metadata to Registration column values.

    Returns None for intents that were not created by event checkout.
    """
    metadata = payment_intent.get("metadata") or {}
    event_id = _optional_int(metadata.get("eventId"))
    if event_id is None:
        return None

    first_name = metadata.get("participantFirstName") or ""
    last_name = metadata.get("participantLastName") or ""
    if not first_name and metadata.get("customerName"):
        first_name, _, last_name = metadata["customerName"].partition(" ")

    event = get_event_info(event_id)
    return {
        "event_id": event_id,
        "event_slug": metadata.get("eventSlug") or (event.slug if event else None),
        "event_title": metadata.get("eventTitle") or (event.title if event else None),
        "option": metadata.get("option") or "full",
        "number_of_days": _optional_int(metadata.get("numberOfDays")),
        "selected_dates": _split_dates(metadata.get("selectedDates")),
        "first_name": first_name,
        "last_name": last_name,
        "email": metadata.get("customerEmail") or payment_intent.get("receipt_email") or "",
        "contact_name": metadata.get("contactName") or None,
        "phone": metadata.get("phone") or None,
        "school_name": metadata.get("schoolName") or None,
        "club_name": metadata.get("clubName") or None,
        "age": metadata.get("age") or None,
        "t_shirt_size": metadata.get("tShirtSize") or None,
        "waiver_accepted": metadata.get("waiverAccepted") == "true",
        "amount_cents": int(payment_intent.get("amount") or 0),
        "currency": payment_intent.get("currency") or "usd",
        "discount_code": metadata.get("discountCode") or None,
        "session_id": metadata.get("sessionId") or None,
        "raw_metadata": dict(metadata),
    }


def build_shopify_order(registration: Registration) -> Dict[str, Any]:
    """Build the ``order`` object for a paid registration."""
    price = f"{registration.amount_cents / 100:.2f}"
    option_label = OPTION_LABELS.get(registration.option, registration.option)
    title = f"{registration.event_title or f'Event {registration.event_id}'} - {option_label}"
    attendee = f"{registration.first_name} {registration.last_name}".strip()

    note_attributes = [
        {"name": "Event_ID", "value": str(registration.event_id)},
        {"name": "Attendee_Name", "value": attendee},
        {"name": "Attendee_Email", "value": registration.email},
        {"name": "Attendee_Phone", "value": registration.phone or "Not provided"},
        {"name": "Contact_Name", "value": registration.contact_name or "Not provided"},
        {"name": "School", "value": registration.school_name or "Not provided"},
        {"name": "Age", "value": registration.age or "Not provided"},
        {"name": "Registration_Type", "value": registration.option},
        {"name": "Stripe_Payment_Intent", "value": registration.stripe_payment_intent_id},
    ]
    if registration.selected_dates:
        note_attributes.append(
            {"name": "Selected_Dates", "value": ", ".join(registration.selected_dates)}
        )
    if registration.t_shirt_size:
        note_attributes.append({"name": "T_Shirt_Size", "value": registration.t_shirt_size})
    if registration.discount_code:
        note_attributes.append({"name": "Discount_Code", "value": registration.discount_code})

    tags = ["event-registration"]
    if registration.event_slug:
        tags.append(registration.event_slug)

    return {
        "email": registration.email,
        "financial_status": "paid",
        "currency": registration.currency.upper(),
        "line_items": [
            {
                "title": title,
                "price": price,
                "quantity": 1,
                "requires_shipping": False,
                "taxable": False,
            }
        ],
        "customer": {
            "first_name": registration.first_name,
            "last_name": registration.last_name,
            "email": registration.email,
        },
        "transactions": [
            {"kind": "sale", "status": "success", "amount": price, "gateway": "stripe"}
        ],
        "note": f"Event registration paid via Stripe ({registration.stripe_payment_intent_id})",
        "note_attributes": note_attributes,
        "tags": ", ".join(tags),
    }


class OrderPipeline:
    """Handlers for the payment intent webhook events."""

    def __init__(
        self,
        repository: RegistrationRepository,
        shopify_client: ShopifyClient,
        payment_lock: PaymentIntentLock,
    ):
        self.repository = repository
        self.shopify_client = shopify_client
        self.payment_lock = payment_lock

    def register(self, webhook_handler: WebhookHandler) -> None:
        webhook_handler.register_handler("payment_intent.succeeded", self.handle_payment_succeeded)
        webhook_handler.register_handler("payment_intent.payment_failed", self.handle_payment_failed)

    async def handle_payment_succeeded(self, payment_intent: Dict[str, Any]) -> Dict[str, Any]:
        """
        Store the paid registration and create its Shopify order.

        A Shopify failure is recorded on the registration and then raised as
        ``OrderCreationError`` so the event is left unprocessed and Stripe
        redelivers it; the redelivery retries the order.

        Raises:
            OrderCreationError: The Shopify order could not be created
            DatabaseError: The registration could not be stored
        """
        payment_intent_id = payment_intent["id"]
        values = registration_values_from_intent(payment_intent)
        if values is None:
            logger.info("payment_intent_not_a_registration", payment_intent_id=payment_intent_id)
            return {"paymentIntentId": payment_intent_id, "registration": "skipped"}

        registration = await self.repository.upsert(
            payment_intent_id,
            {**values, "payment_status": PaymentStatus.SUCCEEDED, "payment_error": None},
        )
        if registration.session_id:
            await self.payment_lock.update_lock(registration.session_id, payment_intent_id)

        result: Dict[str, Any] = {
            "paymentIntentId": payment_intent_id,
            "registrationId": str(registration.id),
        }

        metadata = payment_intent.get("metadata") or {}
        if metadata.get("createShopifyOrder") == "false":
            result["order"] = "not_requested"
            return result

        if registration.order_status == OrderStatus.CREATED:
            logger.info(
                "shopify_order_already_created",
                payment_intent_id=payment_intent_id,
                order_id=registration.shopify_order_id,
            )
            result.update(order="existing", shopifyOrderId=registration.shopify_order_id)
            return result

        return {**result, **await self._create_order(registration)}

    async def _create_order(self, registration: Registration) -> Dict[str, Any]:
        payment_intent_id = registration.stripe_payment_intent_id
        try:
            order = await self.shopify_client.create_order(build_shopify_order(registration))
        except ShopifyError as e:
            await self.repository.record_order_failed(payment_intent_id, str(e))
            metrics.track_order_failed()
            log_critical_failure(
                "shopify",
                "Failed to create Shopify order for paid registration",
                {
                    "paymentIntentId": payment_intent_id,
                    "eventId": registration.event_id,
                    "email": registration.email,
                    "statusCode": e.status_code,
                    "error": str(e),
                },
            )
            raise OrderCreationError(
                f"Shopify order creation failed: {e}", payment_intent_id, e.status_code
            ) from e

        order_id = str(order["id"])
        await self.repository.record_order_created(payment_intent_id, order_id)
        metrics.track_order_created()
        logger.info(
            "registration_order_created",
            payment_intent_id=payment_intent_id,
            shopify_order_id=order_id,
        )
        return {"order": OrderStatus.CREATED, "shopifyOrderId": order_id}

    async def handle_payment_failed(self, payment_intent: Dict[str, Any]) -> Dict[str, Any]:
        payment_intent_id = payment_intent["id"]
        error_message = (payment_intent.get("last_payment_error") or {}).get(
            "message", "Unknown error"
        )
        logger.info(
            "handling_payment_intent_failed",
            payment_intent_id=payment_intent_id,
            error=error_message,
        )

        values = registration_values_from_intent(payment_intent)
        if values is None:
            return {"paymentIntentId": payment_intent_id, "registration": "skipped"}

        registration = await self.repository.record_payment_failed(
            payment_intent_id, values, error_message
        )
        if registration.session_id:
            await self.payment_lock.mark_failed(registration.session_id)

        return {
            "paymentIntentId": payment_intent_id,
            "registrationId": str(registration.id),
            "error": error_message,
        }
