"""
Registration checkout: prices a registration and creates its Stripe
PaymentIntent under the per-session payment lock.
"""
import hashlib
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from event_payments.core.errors import DuplicatePaymentError, EventNotFoundError, PaymentError
from event_payments.core.payment_lock import LockStatus, PaymentIntentLock
from event_payments.core.pricing import (
    DiscountPolicy,
    EventInfo,
    apply_discount,
    calculate_registration_amount,
    get_event_info,
)
from event_payments.integrations.stripe_client import StripeClient, StripeError
from event_payments.monitoring.logging import log_critical_failure
from event_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

STRIPE_MINIMUM_CENTS = 50
FREE_REGISTRATION_SECRET = "free_registration"
REUSABLE_INTENT_STATUSES = frozenset(
    {"requires_payment_method", "requires_confirmation", "requires_action"}
)


@dataclass
class CheckoutRequest:
    """Everything checkout needs, already validated at the API edge."""

    event_id: int
    option: str
    first_name: str
    last_name: str
    email: str
    contact_name: str
    session_id: Optional[str] = None
    number_of_days: Optional[int] = None
    selected_dates: Optional[List[str]] = None
    discount_code: Optional[str] = None
    phone: Optional[str] = None
    school_name: Optional[str] = None
    club_name: Optional[str] = None
    age: Optional[str] = None
    t_shirt_size: Optional[str] = None
    waiver_accepted: bool = False

    @property
    def customer_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def lock_key(self) -> str:
        """Session id, or a stable per-registrant key when the browser sent none."""
        if self.session_id:
            return self.session_id
        digest = hashlib.sha256(
            f"{self.event_id}:{self.email}:{self.first_name}:{self.last_name}".encode("utf-8")
        ).hexdigest()
        return f"anonymous:{digest[:32]}"


def build_intent_metadata(
    request: CheckoutRequest, event: EventInfo, discount_code: Optional[str]
) -> Dict[str, str]:
    """Payment intent metadata; Stripe only accepts string values."""
    return {
        "eventId": str(event.id),
        "eventSlug": event.slug,
        "eventTitle": event.title,
        "customerEmail": request.email,
        "customerName": request.customer_name,
        "participantFirstName": request.first_name,
        "participantLastName": request.last_name,
        "contactName": request.contact_name,
        "phone": request.phone or "",
        "schoolName": request.school_name or "",
        "clubName": request.club_name or "",
        "age": request.age or "",
        "tShirtSize": request.t_shirt_size or "",
        "option": request.option,
        "numberOfDays": str(request.number_of_days) if request.number_of_days else "",
        "selectedDates": ",".join(request.selected_dates or []),
        "discountCode": discount_code or "",
        "sessionId": request.session_id or "",
        "waiverAccepted": "true" if request.waiver_accepted else "false",
        "registrationType": "individual",
        "createShopifyOrder": "true",
        "source": f"{event.slug.replace('-', '_')}_registration",
    }


def intent_idempotency_key(request: CheckoutRequest, amount_cents: int) -> str:
    raw = f"{request.lock_key}:{request.event_id}:{request.email}:{request.option}:{amount_cents}"
    return f"pi-{hashlib.sha256(raw.encode('utf-8')).hexdigest()[:40]}"


class RegistrationCheckout:
    """
    Creates payment intents for event registrations.

    Args:
        stripe_client: Stripe API wrapper
        payment_lock: Per-session payment intent lock
        discount_policy: Admin discount codes and emails
        currency: Charge currency
    """

    def __init__(
        self,
        stripe_client: StripeClient,
        payment_lock: PaymentIntentLock,
        discount_policy: DiscountPolicy,
        currency: str = "usd",
    ):
        self.stripe_client = stripe_client
        self.payment_lock = payment_lock
        self.discount_policy = discount_policy
        self.currency = currency

    async def create_payment_intent(self, request: CheckoutRequest) -> Dict[str, Any]:
        """
        Price the registration and create its payment intent.

        Returns:
            Dict[str, Any]: Response body for the storefront

        Raises:
            EventNotFoundError: Unknown event id
            PricingError: Invalid option, day count, dates or discount code
            DuplicatePaymentError: A payment intent is already being created
            PaymentError: Stripe rejected or failed the request
        """
        event = get_event_info(request.event_id)
        if event is None:
            raise EventNotFoundError(f"Event {request.event_id} not found")

        amount = calculate_registration_amount(
            request.event_id, request.option, request.number_of_days, request.selected_dates
        )
        calculation = apply_discount(
            amount, request.discount_code, request.email, self.discount_policy
        )

        logger.info(
            "registration_priced",
            event_id=event.id,
            option=request.option,
            original_amount=calculation.original_amount,
            final_amount=calculation.final_amount,
            discount_code=calculation.applied_discount_code,
        )

        if calculation.final_amount == 0:
            logger.info("free_registration", event_id=event.id, email=request.email)
            return {
                "clientSecret": FREE_REGISTRATION_SECRET,
                "amount": 0,
                "originalAmount": calculation.original_amount,
                "eventId": event.id,
                "eventTitle": event.title,
                "isFreeRegistration": True,
                "success": True,
            }

        final_amount = max(calculation.final_amount, STRIPE_MINIMUM_CENTS)
        lock_key = request.lock_key
        idempotency_key = intent_idempotency_key(request, final_amount)

        if not await self.payment_lock.acquire_lock(lock_key):
            existing = await self._existing_intent_response(lock_key, idempotency_key, event)
            if existing is not None:
                return existing
            metrics.record_duplicate_payment_attempt("lock")
            raise DuplicatePaymentError(
                f"Payment intent creation already in progress for session {lock_key}"
            )

        try:
            payment_intent = await self.stripe_client.create_payment_intent(
                amount_cents=final_amount,
                currency=self.currency,
                idempotency_key=idempotency_key,
                metadata=build_intent_metadata(
                    request, event, calculation.applied_discount_code or request.discount_code
                ),
                description=f"{event.title} registration",
                receipt_email=request.email,
            )
        except StripeError as e:
            await self.payment_lock.mark_failed(lock_key)
            await self.payment_lock.release_lock(lock_key)
            log_critical_failure(
                "payment",
                "Failed to create payment intent",
                {
                    "eventId": event.id,
                    "email": request.email,
                    "amount": final_amount,
                    "errorType": e.error_type.value,
                    "error": str(e),
                },
            )
            raise PaymentError(f"Payment intent creation failed: {e}") from e

        await self.payment_lock.update_lock(lock_key, payment_intent.id, idempotency_key)
        metrics.record_payment_intent_created(event.id, request.option)

        return {
            "clientSecret": payment_intent.client_secret,
            "paymentIntentId": payment_intent.id,
            "amount": final_amount,
            "originalAmount": calculation.original_amount,
            "eventId": event.id,
            "eventTitle": event.title,
            "success": True,
        }

    async def _existing_intent_response(
        self, lock_key: str, fingerprint: str, event: EventInfo
    ) -> Optional[Dict[str, Any]]:
        if await self.payment_lock.get_lock_status(lock_key) != LockStatus.COMPLETED:
            return None
        payment_intent_id = await self.payment_lock.get_existing_intent(lock_key, fingerprint)
        if not payment_intent_id:
            return None

        try:
            payment_intent = await self.stripe_client.retrieve_payment_intent(payment_intent_id)
        except StripeError as e:
            logger.warning(
                "existing_payment_intent_retrieve_failed",
                payment_intent_id=payment_intent_id,
                error=str(e),
            )
            return None

        if payment_intent.status not in REUSABLE_INTENT_STATUSES:
            logger.info(
                "existing_payment_intent_not_reusable",
                payment_intent_id=payment_intent_id,
                status=payment_intent.status,
            )
            return None

        logger.info("existing_payment_intent_reused", payment_intent_id=payment_intent_id)
        return {
            "clientSecret": payment_intent.client_secret,
            "paymentIntentId": payment_intent.id,
            "amount": payment_intent.amount,
            "eventId": event.id,
            "eventTitle": event.title,
            "success": True,
            "reusedExistingIntent": True,
        }
