"""
Stripe API client with retry logic and error classification.

Implements:
- Exponential backoff for transient errors
- Circuit breaker pattern
- Idempotent payment intent creation
- Webhook signature verification

The Stripe SDK is synchronous; calls run in the default executor so they
do not block the event loop.
"""
import asyncio
import functools
import json
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

import stripe
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from event_payments.config import Settings, get_settings
from event_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class StripeErrorType(Enum):
    """Classification of Stripe errors for retry logic."""

    TRANSIENT = "transient"  # Retry these
    PERMANENT = "permanent"  # Don't retry these
    RATE_LIMIT = "rate_limit"  # Retry with longer backoff


class StripeError(Exception):
    """Base exception for Stripe-related errors."""

    def __init__(
        self,
        message: str,
        error_type: StripeErrorType,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error


class WebhookSignatureError(Exception):
    """Raised when a webhook payload cannot be verified."""

    pass


def _counts_toward_breaker(error: BaseException) -> bool:
    """Permanent request errors do not count as breaker failures."""
    if isinstance(error, stripe.StripeError):
        return StripeClient._classify_error(error) != StripeErrorType.PERMANENT
    return True


class CircuitBreaker:
    """
    Circuit breaker for Stripe API calls.

    Prevents cascading failures by temporarily stopping requests
    when consecutive failures exceed a threshold.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: int = 60,
        success_threshold: int = 2,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            timeout: Seconds before attempting to close circuit
            success_threshold: Successful calls needed to close circuit
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "closed"  # closed, open, half_open

    async def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Run a blocking function in the executor with circuit breaker protection.

        Raises:
            StripeError: If circuit is open
        """
        if self.state == "open":
            if (
                self.last_failure_time
                and time.time() - self.last_failure_time > self.timeout
            ):
                self.state = "half_open"
                self.success_count = 0
                logger.info("circuit_breaker_half_open")
            else:
                raise StripeError(
                    "Circuit breaker is open",
                    StripeErrorType.TRANSIENT,
                )

        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
        except Exception as e:
            if _counts_toward_breaker(e):
                self.on_failure()
            raise
        self.on_success()
        return result

    def on_success(self) -> None:
        """Record successful call."""
        self.failure_count = 0
        if self.state == "half_open":
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self.state = "closed"
                logger.info("circuit_breaker_closed")

    def on_failure(self) -> None:
        """Record failed call."""
        self.failure_count += 1
        self.last_failure_time = time.time()
        if self.failure_count >= self.failure_threshold:
            self.state = "open"
            logger.warning(
                "circuit_breaker_opened",
                failure_count=self.failure_count,
            )


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, StripeError) and error.error_type != StripeErrorType.PERMANENT


class StripeClient:
    """
    Wrapper for the Stripe API used by checkout and the webhook.

    Features:
    - Retry with exponential backoff for transient and rate-limit errors
    - Circuit breaker pattern
    - Idempotent payment intent creation
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 1.0,
    ) -> None:
        settings = settings or get_settings()
        stripe.api_key = settings.stripe_secret_key
        stripe.api_version = settings.stripe_api_version
        self.settings = settings
        self.circuit_breaker = CircuitBreaker()
        self.max_attempts = max_attempts
        self.retry_backoff_seconds = retry_backoff_seconds

        logger.info(
            "stripe_client_initialized",
            api_version=stripe.api_version,
            test_mode=settings.is_test_mode,
        )

    @staticmethod
    def _classify_error(error: stripe.StripeError) -> StripeErrorType:
        """
        Classify Stripe error for retry logic.

        Args:
            error: Stripe error

        Returns:
            StripeErrorType: Error classification
        """
        if isinstance(error, stripe.RateLimitError):
            return StripeErrorType.RATE_LIMIT
        elif isinstance(error, (stripe.APIConnectionError, stripe.APIError)):
            return StripeErrorType.TRANSIENT
        elif isinstance(
            error,
            (
                stripe.CardError,
                stripe.InvalidRequestError,
                stripe.AuthenticationError,
                stripe.PermissionError,
            ),
        ):
            return StripeErrorType.PERMANENT
        else:
            # Unknown errors are treated as transient
            return StripeErrorType.TRANSIENT

    def _wrap_stripe_error(self, operation: str, error: stripe.StripeError) -> StripeError:
        error_type = self._classify_error(error)
        metrics.record_api_call("stripe", operation, error_type.value, 0)

        logger.error(
            "stripe_api_error",
            operation=operation,
            error_type=error_type.value,
            error_code=getattr(error, "code", None),
            error_message=str(error),
        )

        return StripeError(
            message=str(error),
            error_type=error_type,
            original_error=error,
        )

    async def _call(self, operation: str, func: Callable[..., Any], **kwargs: Any) -> Any:
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff_seconds, max=16),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                start_time = time.time()
                try:
                    result = await self.circuit_breaker.call(func, **kwargs)
                except stripe.StripeError as e:
                    raise self._wrap_stripe_error(operation, e) from e
                metrics.record_api_call("stripe", operation, "success", time.time() - start_time)
                return result

    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, str]] = None,
        description: Optional[str] = None,
        receipt_email: Optional[str] = None,
    ) -> stripe.PaymentIntent:
        """
        Create a Stripe PaymentIntent with idempotency.

        Args:
            amount_cents: Amount in cents
            currency: Currency code (e.g., 'usd')
            idempotency_key: Idempotency key for preventing duplicates
            metadata: String-valued metadata attached to the intent
            description: Optional statement description
            receipt_email: Optional receipt address

        Returns:
            stripe.PaymentIntent: Created payment intent

        Raises:
            StripeError: If payment creation fails
        """
        logger.info(
            "creating_payment_intent",
            amount_cents=amount_cents,
            currency=currency,
            idempotency_key=idempotency_key,
        )

        params: Dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency.lower(),
            "idempotency_key": idempotency_key,
            "metadata": metadata or {},
            "automatic_payment_methods": {"enabled": True},
        }
        if description:
            params["description"] = description
        if receipt_email:
            params["receipt_email"] = receipt_email

        payment_intent = await self._call("create_intent", stripe.PaymentIntent.create, **params)

        logger.info(
            "payment_intent_created",
            payment_intent_id=payment_intent.id,
            status=payment_intent.status,
        )
        return payment_intent

    async def retrieve_payment_intent(self, payment_intent_id: str) -> stripe.PaymentIntent:
        """
        Retrieve a PaymentIntent by ID.

        Raises:
            StripeError: If retrieval fails
        """
        logger.info("retrieving_payment_intent", payment_intent_id=payment_intent_id)
        return await self._call("retrieve_intent", stripe.PaymentIntent.retrieve, id=payment_intent_id)

    def parse_webhook_event(
        self, payload: bytes, signature: Optional[str]
    ) -> Dict[str, Any]:
        """
        Verify a webhook payload and return the event as a dict.

        Without a configured webhook secret the payload is accepted unverified
        outside production.

        Raises:
            WebhookSignatureError: If verification fails or no secret is
            configured in production
        """
        secret = self.settings.stripe_webhook_secret
        if not secret:
            if self.settings.is_production:
                logger.error("webhook_secret_missing_in_production")
                raise WebhookSignatureError("Webhook secret is not configured")
            logger.warning("webhook_signature_verification_skipped")
            return self._load_payload(payload)

        if not signature:
            logger.error("webhook_signature_missing")
            raise WebhookSignatureError("Missing Stripe-Signature header")

        try:
            stripe.Webhook.construct_event(payload=payload, sig_header=signature, secret=secret)
        except stripe.SignatureVerificationError as e:
            logger.error("webhook_signature_verification_failed", error=str(e))
            raise WebhookSignatureError(f"Invalid webhook signature: {e}") from e
        except ValueError as e:
            logger.error("webhook_payload_invalid", error=str(e))
            raise WebhookSignatureError(f"Invalid webhook payload: {e}") from e

        event = self._load_payload(payload)
        logger.info(
            "webhook_signature_verified",
            event_id=event.get("id"),
            event_type=event.get("type"),
        )
        return event

    @staticmethod
    def _load_payload(payload: bytes) -> Dict[str, Any]:
        try:
            event = json.loads(payload)
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid webhook payload: {e}") from e
        if not isinstance(event, dict) or "type" not in event:
            raise WebhookSignatureError("Invalid webhook payload: not a Stripe event")
        return event
