"""
API routes for registration checkout, the Stripe webhook and monitoring.
"""
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Header, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from event_payments.api.deduplication import PAYMENT_ATTEMPT_STATE_KEY
from event_payments.api.dependencies import Services, get_services
from event_payments.core.checkout import CheckoutRequest
from event_payments.core.errors import EventNotFoundError
from event_payments.core.pricing import (
    PricingErr,
    get_event_info,
    get_event_pricing,
    validate_registration_selection,
)
from event_payments.integrations.stripe_client import WebhookSignatureError
from event_payments.integrations.webhook_handler import WebhookError
from event_payments.monitoring.metrics import metrics

from .schemas import (
    CreatePaymentIntentRequest,
    CreatePaymentIntentResponse,
    EventPricingResponse,
    HealthCheckResponse,
    PricingSelection,
    StatsResponse,
    ValidateRegistrationResponse,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

event_router = APIRouter(prefix="/api/events", tags=["events"])
webhook_router = APIRouter(prefix="/api", tags=["webhooks"])
monitoring_router = APIRouter(tags=["monitoring"])


@event_router.get(
    "/{event_id}/pricing",
    response_model=EventPricingResponse,
    summary="Get event pricing",
)
async def get_pricing(event_id: int) -> EventPricingResponse:
    event = get_event_info(event_id)
    pricing = get_event_pricing(event_id)
    if event is None or pricing is None:
        raise EventNotFoundError(f"Event {event_id} not found")

    return EventPricingResponse(
        event_id=event.id,
        event_slug=event.slug,
        event_title=event.title,
        pricing=pricing.to_dict(),
    )


@event_router.post(
    "/{event_id}/validate-registration",
    response_model=ValidateRegistrationResponse,
    summary="Validate a registration option before payment",
)
async def validate_registration(
    event_id: int, selection: PricingSelection
) -> ValidateRegistrationResponse:
    if get_event_info(event_id) is None:
        raise EventNotFoundError(f"Event {event_id} not found")

    result = validate_registration_selection(
        event_id, selection.option, selection.number_of_days, selection.selected_dates
    )
    if isinstance(result, PricingErr):
        return ValidateRegistrationResponse(valid=False, errors=result.errors)
    return ValidateRegistrationResponse(valid=True, amount=result.amount_cents)


@event_router.post(
    "/{event_id}/create-payment-intent",
    response_model=CreatePaymentIntentResponse,
    response_model_exclude_none=True,
    summary="Create a registration payment intent",
    description="Price a registration and create its Stripe PaymentIntent",
)
async def create_payment_intent(
    event_id: int,
    body: CreatePaymentIntentRequest,
    request: Request,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    registrant = body.registration_data
    session_id = (
        request.headers.get("x-session-id")
        or request.cookies.get("session_id")
        or body.session_id
    )

    logger.info(
        "api_create_payment_intent_request",
        event_id=event_id,
        option=body.option,
        email=registrant.email,
    )

    checkout_request = CheckoutRequest(
        event_id=event_id,
        option=body.option,
        first_name=registrant.first_name,
        last_name=registrant.last_name,
        email=registrant.email,
        contact_name=registrant.contact_name,
        session_id=session_id,
        number_of_days=body.number_of_days,
        selected_dates=body.selected_dates,
        discount_code=body.discount_code,
        phone=registrant.phone,
        school_name=registrant.school_name,
        club_name=registrant.club_name,
        age=registrant.age or registrant.grade,
        t_shirt_size=registrant.t_shirt_size,
        waiver_accepted=registrant.waiver_accepted or registrant.medical_release_accepted,
    )
    result = await services.checkout.create_payment_intent(checkout_request)

    attempt_key = getattr(request.state, PAYMENT_ATTEMPT_STATE_KEY, None)
    if attempt_key and result.get("paymentIntentId"):
        await services.attempt_tracker.mark_payment_intent_created(
            attempt_key, result["paymentIntentId"]
        )

    return result


@webhook_router.post(
    "/stripe-webhook",
    response_model=WebhookResponse,
    response_model_exclude_none=True,
    summary="Stripe webhook endpoint",
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    services: Services = Depends(get_services),
) -> Any:
    payload = await request.body()

    try:
        event = services.stripe_client.parse_webhook_event(payload, stripe_signature)
    except WebhookSignatureError as e:
        metrics.track_webhook_received("unverified")
        metrics.track_webhook_failure("unverified")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Webhook Error", "message": str(e)},
        )

    try:
        result = await services.webhook_handler.process_event(event)
    except WebhookError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "received": False,
                "error": "Webhook processing failed",
                "eventId": e.event_id,
                "eventType": e.event_type,
                "message": str(e),
            },
        )

    return WebhookResponse(
        received=True,
        status=result["status"],
        event_id=result.get("eventId"),
        event_type=result.get("eventType"),
        result=result.get("result"),
    )


@monitoring_router.get(
    "/api/health",
    response_model=HealthCheckResponse,
    summary="Health check",
)
async def health(response: Response, services: Services = Depends(get_services)) -> Dict[str, Any]:
    result = await services.health_check.check_all()
    if result["status"] != "healthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return result


@monitoring_router.get(
    "/api/monitoring/stats",
    response_model=StatsResponse,
    summary="Webhook and order counters",
)
async def monitoring_stats() -> Dict[str, Any]:
    return metrics.get_stats()


@monitoring_router.get("/metrics", summary="Prometheus metrics")
async def prometheus_metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
