"""Registration persistence."""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from event_payments.core.errors import DatabaseError
from event_payments.database.models import OrderStatus, PaymentStatus, Registration

logger = structlog.get_logger(__name__)


class RegistrationRepository:
    """
    Reads and writes Registration rows.

    Each public method runs in its own session and commits before
    returning, so webhook handlers never hold a transaction across
    Shopify calls.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    async def _find(db: AsyncSession, payment_intent_id: str) -> Optional[Registration]:
        stmt = select(Registration).where(
            Registration.stripe_payment_intent_id == payment_intent_id
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_payment_intent(self, payment_intent_id: str) -> Optional[Registration]:
        try:
            async with self.session_factory() as db:
                return await self._find(db, payment_intent_id)
        except SQLAlchemyError as e:
            logger.error(
                "registration_lookup_failed",
                payment_intent_id=payment_intent_id,
                error=str(e),
            )
            raise DatabaseError(f"Failed to load registration: {e}") from e

    async def upsert(self, payment_intent_id: str, values: Dict[str, Any]) -> Registration:
        """
        Insert or update the registration for a payment intent.

        Args:
            payment_intent_id: Stripe PaymentIntent id
            values: Column values to write

        Returns:
            Registration: The stored row

        Raises:
            DatabaseError: If the write fails
        """
        try:
            return await self._upsert_once(payment_intent_id, values)
        except IntegrityError:
            # A concurrent delivery inserted the row first
            logger.info("registration_upsert_conflict", payment_intent_id=payment_intent_id)
            try:
                return await self._upsert_once(payment_intent_id, values)
            except SQLAlchemyError as e:
                raise DatabaseError(f"Failed to save registration: {e}") from e
        except SQLAlchemyError as e:
            logger.error(
                "registration_upsert_failed",
                payment_intent_id=payment_intent_id,
                error=str(e),
            )
            raise DatabaseError(f"Failed to save registration: {e}") from e

    async def _upsert_once(self, payment_intent_id: str, values: Dict[str, Any]) -> Registration:
        async with self.session_factory() as db:
            registration = await self._find(db, payment_intent_id)
            created = registration is None
            if registration is None:
                registration = Registration(stripe_payment_intent_id=payment_intent_id, **values)
                db.add(registration)
            else:
                for column, value in values.items():
                    setattr(registration, column, value)
            await db.commit()
            await db.refresh(registration)

        logger.info(
            "registration_saved",
            payment_intent_id=payment_intent_id,
            created=created,
            payment_status=registration.payment_status,
        )
        return registration

    async def _update(self, payment_intent_id: str, **values: Any) -> Optional[Registration]:
        try:
            async with self.session_factory() as db:
                registration = await self._find(db, payment_intent_id)
                if registration is None:
                    logger.warning(
                        "registration_not_found",
                        payment_intent_id=payment_intent_id,
                    )
                    return None
                for column, value in values.items():
                    setattr(registration, column, value)
                await db.commit()
                await db.refresh(registration)
                return registration
        except SQLAlchemyError as e:
            logger.error(
                "registration_update_failed",
                payment_intent_id=payment_intent_id,
                error=str(e),
            )
            raise DatabaseError(f"Failed to update registration: {e}") from e

    async def record_order_created(
        self, payment_intent_id: str, shopify_order_id: str
    ) -> Optional[Registration]:
        return await self._update(
            payment_intent_id,
            shopify_order_id=shopify_order_id,
            order_status=OrderStatus.CREATED,
            order_error=None,
        )

    async def record_order_failed(
        self, payment_intent_id: str, error: str
    ) -> Optional[Registration]:
        return await self._update(
            payment_intent_id,
            order_status=OrderStatus.FAILED,
            order_error=error,
        )

    async def record_payment_failed(
        self, payment_intent_id: str, values: Dict[str, Any], error: str
    ) -> Registration:
        return await self.upsert(
            payment_intent_id,
            {**values, "payment_status": PaymentStatus.FAILED, "payment_error": error},
        )
