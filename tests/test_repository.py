"""
Tests for registration persistence on SQLite.
"""
from typing import Any, Dict

import pytest
from sqlalchemy.exc import OperationalError

from event_payments.core.errors import DatabaseError
from event_payments.database.models import OrderStatus, PaymentStatus
from event_payments.database.repository import RegistrationRepository


def _values(**overrides: Any) -> Dict[str, Any]:
    values = {
        "event_id": 1,
        "event_slug": "birmingham-slam-camp",
        "event_title": "Birmingham Slam Camp",
        "option": "full",
        "first_name": "Ann",
        "last_name": "Lee",
        "email": "ann@example.com",
        "amount_cents": 24900,
        "payment_status": PaymentStatus.SUCCEEDED,
    }
    values.update(overrides)
    return values


class TestRegistrationRepository:
    """Test suite for RegistrationRepository."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_upsert_inserts_then_updates_same_row(
        self, repository: RegistrationRepository
    ) -> None:
        first = await repository.upsert("pi_1", _values(payment_status=PaymentStatus.PENDING))
        second = await repository.upsert("pi_1", _values())

        assert first.id == second.id
        assert second.payment_status == PaymentStatus.SUCCEEDED
        assert second.order_status == OrderStatus.NOT_REQUESTED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_order_status_updates(self, repository: RegistrationRepository) -> None:
        await repository.upsert("pi_1", _values())

        failed = await repository.record_order_failed("pi_1", "Shopify API error: 500")
        assert failed.order_status == OrderStatus.FAILED

        created = await repository.record_order_created("pi_1", "1001")
        assert created.order_status == OrderStatus.CREATED
        assert created.shopify_order_id == "1001"
        assert created.order_error is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_order_update_for_unknown_intent(
        self, repository: RegistrationRepository
    ) -> None:
        assert await repository.record_order_created("pi_missing", "1001") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_json_columns_round_trip(self, repository: RegistrationRepository) -> None:
        await repository.upsert(
            "pi_1",
            _values(
                event_id=2,
                option="2day",
                number_of_days=2,
                selected_dates=["June 5", "June 6"],
                raw_metadata={"eventId": "2"},
            ),
        )

        registration = await repository.get_by_payment_intent("pi_1")

        assert registration.selected_dates == ["June 5", "June 6"]
        assert registration.raw_metadata == {"eventId": "2"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_database_errors_are_wrapped(
        self, repository: RegistrationRepository, mocker: Any
    ) -> None:
        mocker.patch.object(
            RegistrationRepository,
            "_find",
            side_effect=OperationalError("SELECT", {}, Exception("database is locked")),
        )

        with pytest.raises(DatabaseError):
            await repository.get_by_payment_intent("pi_1")
