"""
Unit tests for registration checkout.
"""
from typing import Any
from unittest.mock import MagicMock

import pytest

from event_payments.core.checkout import CheckoutRequest, RegistrationCheckout
from event_payments.core.errors import (
    DuplicatePaymentError,
    EventNotFoundError,
    PaymentError,
    PricingError,
)
from event_payments.core.idempotency import InMemoryIdempotencyStore
from event_payments.core.payment_lock import LockStatus, PaymentIntentLock
from event_payments.core.pricing import DiscountPolicy
from event_payments.integrations.stripe_client import StripeClient, StripeError, StripeErrorType

from conftest import FakeClock


def _intent(intent_id: str = "pi_test_123", amount: int = 11900) -> MagicMock:
    payment_intent = MagicMock()
    payment_intent.id = intent_id
    payment_intent.client_secret = f"{intent_id}_secret_abc"
    payment_intent.status = "requires_payment_method"
    payment_intent.amount = amount
    return payment_intent


def _request(**overrides: Any) -> CheckoutRequest:
    fields = dict(
        event_id=2,
        option="1day",
        number_of_days=1,
        selected_dates=["June 5"],
        first_name="Kyle",
        last_name="Dake",
        email="athlete@example.com",
        contact_name="Pat Dake",
        session_id="sess_abc",
        waiver_accepted=True,
    )
    fields.update(overrides)
    return CheckoutRequest(**fields)


@pytest.fixture
def mock_stripe() -> MagicMock:
    stripe_client = MagicMock(spec=StripeClient)
    stripe_client.create_payment_intent.return_value = _intent()
    return stripe_client


@pytest.fixture
def lock(memory_store: InMemoryIdempotencyStore, clock: FakeClock) -> PaymentIntentLock:
    return PaymentIntentLock(memory_store, timeout_seconds=30, clock=clock)


@pytest.fixture
def checkout(mock_stripe: MagicMock, lock: PaymentIntentLock) -> RegistrationCheckout:
    return RegistrationCheckout(
        mock_stripe,
        lock,
        DiscountPolicy(admin_codes=("ADMIN-100-OFF",), admin_emails=("admin@example.com",)),
    )


class TestRegistrationCheckout:
    """Test suite for RegistrationCheckout."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_creates_intent_with_registration_metadata(
        self, checkout: RegistrationCheckout, mock_stripe: MagicMock, lock: PaymentIntentLock
    ) -> None:
        result = await checkout.create_payment_intent(_request())

        assert result["clientSecret"] == "pi_test_123_secret_abc"
        assert result["paymentIntentId"] == "pi_test_123"
        assert result["amount"] == 11900
        assert result["eventTitle"] == "National Champ Camp"

        kwargs = mock_stripe.create_payment_intent.call_args.kwargs
        assert kwargs["amount_cents"] == 11900
        assert kwargs["currency"] == "usd"
        metadata = kwargs["metadata"]
        assert metadata["eventId"] == "2"
        assert metadata["eventSlug"] == "national-champ-camp"
        assert metadata["customerName"] == "Kyle Dake"
        assert metadata["selectedDates"] == "June 5"
        assert metadata["waiverAccepted"] == "true"
        assert metadata["createShopifyOrder"] == "true"
        assert all(isinstance(value, str) for value in metadata.values())

        assert await lock.get_lock_status("sess_abc") == LockStatus.COMPLETED
        assert await lock.get_existing_intent("sess_abc") == "pi_test_123"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_event(self, checkout: RegistrationCheckout, mock_stripe: MagicMock) -> None:
        with pytest.raises(EventNotFoundError):
            await checkout.create_payment_intent(_request(event_id=999))

        mock_stripe.create_payment_intent.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_day_selection(
        self, checkout: RegistrationCheckout, mock_stripe: MagicMock
    ) -> None:
        with pytest.raises(PricingError):
            await checkout.create_payment_intent(_request(number_of_days=2))

        mock_stripe.create_payment_intent.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_admin_discount_is_free_registration(
        self, checkout: RegistrationCheckout, mock_stripe: MagicMock, lock: PaymentIntentLock
    ) -> None:
        result = await checkout.create_payment_intent(
            _request(email="admin@example.com", discount_code="ADMIN-100-OFF")
        )

        assert result["clientSecret"] == "free_registration"
        assert result["amount"] == 0
        assert result["isFreeRegistration"] is True
        mock_stripe.create_payment_intent.assert_not_called()
        assert await lock.get_lock_status("sess_abc") == LockStatus.NONE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_in_flight_lock_refuses_second_attempt(
        self, checkout: RegistrationCheckout, lock: PaymentIntentLock, mock_stripe: MagicMock
    ) -> None:
        await lock.acquire_lock("sess_abc")

        with pytest.raises(DuplicatePaymentError):
            await checkout.create_payment_intent(_request())

        mock_stripe.create_payment_intent.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_completed_lock_returns_existing_intent(
        self, checkout: RegistrationCheckout, mock_stripe: MagicMock
    ) -> None:
        mock_stripe.retrieve_payment_intent.return_value = _intent()

        await checkout.create_payment_intent(_request())
        result = await checkout.create_payment_intent(_request())

        assert result["paymentIntentId"] == "pi_test_123"
        assert result["reusedExistingIntent"] is True
        assert mock_stripe.create_payment_intent.call_count == 1
        mock_stripe.retrieve_payment_intent.assert_called_once_with("pi_test_123")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_registrant_in_session_does_not_get_first_intent(
        self, checkout: RegistrationCheckout, mock_stripe: MagicMock
    ) -> None:
        mock_stripe.retrieve_payment_intent.return_value = _intent()
        await checkout.create_payment_intent(_request())

        with pytest.raises(DuplicatePaymentError):
            await checkout.create_payment_intent(
                _request(
                    event_id=1,
                    option="full",
                    number_of_days=None,
                    selected_dates=None,
                    first_name="Jordan",
                    last_name="Burroughs",
                    email="other@example.com",
                )
            )

        mock_stripe.retrieve_payment_intent.assert_not_called()
        assert mock_stripe.create_payment_intent.call_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_paid_intent_is_not_reused(
        self, checkout: RegistrationCheckout, mock_stripe: MagicMock
    ) -> None:
        paid = _intent()
        paid.status = "succeeded"
        mock_stripe.retrieve_payment_intent.return_value = paid
        await checkout.create_payment_intent(_request())

        with pytest.raises(DuplicatePaymentError):
            await checkout.create_payment_intent(_request())

        assert mock_stripe.create_payment_intent.call_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_lock_expiry_allows_new_intent(
        self, checkout: RegistrationCheckout, mock_stripe: MagicMock, clock: FakeClock
    ) -> None:
        await checkout.create_payment_intent(_request())
        clock.advance(31)
        mock_stripe.create_payment_intent.return_value = _intent("pi_test_456")

        result = await checkout.create_payment_intent(_request())

        assert result["paymentIntentId"] == "pi_test_456"
        assert mock_stripe.create_payment_intent.call_count == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stripe_failure_releases_lock(
        self,
        checkout: RegistrationCheckout,
        mock_stripe: MagicMock,
        lock: PaymentIntentLock,
        mocker: Any,
    ) -> None:
        critical = mocker.patch("event_payments.core.checkout.log_critical_failure")
        mock_stripe.create_payment_intent.side_effect = StripeError(
            "Card declined", StripeErrorType.PERMANENT
        )

        with pytest.raises(PaymentError) as exc_info:
            await checkout.create_payment_intent(_request())

        assert exc_info.value.status_code == 502
        assert await lock.get_lock_status("sess_abc") == LockStatus.NONE
        assert critical.call_args.args[0] == "payment"

        mock_stripe.create_payment_intent.side_effect = None
        mock_stripe.create_payment_intent.return_value = _intent("pi_retry")
        result = await checkout.create_payment_intent(_request())
        assert result["paymentIntentId"] == "pi_retry"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_session_uses_registrant_key(
        self, checkout: RegistrationCheckout, lock: PaymentIntentLock
    ) -> None:
        request = _request(session_id=None)

        await checkout.create_payment_intent(request)

        assert request.lock_key.startswith("anonymous:")
        assert await lock.get_lock_status(request.lock_key) == LockStatus.COMPLETED
