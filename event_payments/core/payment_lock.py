"""
Per-session payment intent lock.

Stops a browser session from creating more than one Stripe PaymentIntent
while a previous creation is in flight or has just completed. Locks expire
after ``timeout_seconds``; expired locks are evicted lazily on read and by a
periodic sweep.
"""
import time
from enum import Enum
from typing import Any, Dict, Optional

import structlog

from event_payments.core.idempotency import Clock, IdempotencyStore
from event_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class LockStatus(str, Enum):
    NONE = "none"
    CREATING = "creating"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentIntentLock:
    """Session-scoped lock around payment intent creation."""

    key_prefix = "payment-lock:"

    def __init__(
        self,
        store: IdempotencyStore,
        timeout_seconds: float = 30.0,
        clock: Clock = time.time,
    ):
        self.store = store
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    def _expired(self, record: Dict[str, Any]) -> bool:
        return self._clock() - record["timestamp"] > self.timeout_seconds

    async def _current(self, session_id: str) -> Optional[Dict[str, Any]]:
        record = await self.store.get(self._key(session_id))
        if record is None:
            return None
        if self._expired(record):
            await self.store.delete(self._key(session_id))
            logger.info("payment_lock_expired", session_id=session_id)
            return None
        return record

    async def acquire_lock(self, session_id: str) -> bool:
        """
        Try to take the lock for a session.

        Returns:
            bool: False if an unexpired lock exists, True if a new
            ``creating`` lock was inserted
        """
        await self._current(session_id)
        record = {
            "timestamp": self._clock(),
            "status": LockStatus.CREATING.value,
            "payment_intent_id": None,
        }
        acquired = await self.store.add(self._key(session_id), record, self.timeout_seconds)

        metrics.record_payment_lock("acquired" if acquired else "refused")
        if acquired:
            logger.info("payment_lock_acquired", session_id=session_id)
        else:
            logger.warning("payment_lock_refused", session_id=session_id)
        return acquired

    async def get_existing_intent(
        self, session_id: str, fingerprint: Optional[str] = None
    ) -> Optional[str]:
        """
        Intent id held by the session lock.

        With ``fingerprint`` the id is returned only if the intent was created
        for that same request fingerprint.
        """
        record = await self._current(session_id)
        if record is None:
            return None
        if fingerprint is not None and record.get("fingerprint") != fingerprint:
            return None
        return record.get("payment_intent_id")

    async def _transition(
        self,
        session_id: str,
        status: LockStatus,
        payment_intent_id: Optional[str] = None,
        fingerprint: Optional[str] = None,
    ) -> None:
        record = await self._current(session_id)
        if record is None:
            logger.warning(
                "payment_lock_missing",
                session_id=session_id,
                requested_status=status.value,
            )
            return
        record["status"] = status.value
        record["timestamp"] = self._clock()
        if payment_intent_id is not None:
            record["payment_intent_id"] = payment_intent_id
        if fingerprint is not None:
            record["fingerprint"] = fingerprint
        await self.store.set(self._key(session_id), record, self.timeout_seconds)

    async def update_lock(
        self, session_id: str, payment_intent_id: str, fingerprint: Optional[str] = None
    ) -> None:
        """
        Mark the lock completed and attach the created intent id.

        ``fingerprint`` identifies the request the intent was created for; a
        later request may reuse the intent only with the same fingerprint.
        """
        await self._transition(session_id, LockStatus.COMPLETED, payment_intent_id, fingerprint)
        logger.info(
            "payment_lock_completed",
            session_id=session_id,
            payment_intent_id=payment_intent_id,
        )

    async def mark_failed(self, session_id: str) -> None:
        await self._transition(session_id, LockStatus.FAILED)
        logger.info("payment_lock_failed", session_id=session_id)

    async def release_lock(self, session_id: str) -> None:
        await self.store.delete(self._key(session_id))
        logger.info("payment_lock_released", session_id=session_id)

    async def get_lock_status(self, session_id: str) -> LockStatus:
        record = await self._current(session_id)
        if record is None:
            return LockStatus.NONE
        return LockStatus(record["status"])

    async def sweep_expired(self) -> int:
        removed = await self.store.sweep()
        if removed:
            logger.info("payment_locks_swept", removed=removed)
        return removed
