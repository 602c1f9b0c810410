"""
Request-level payment deduplication.

Rejects a second create-payment-intent request for the same session and
registrant within a short window, before the route runs. Works alongside
the per-session payment intent lock.
"""
import hashlib
import json
import time
from typing import Any, Dict, Optional

import structlog
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from event_payments.core.errors import DuplicatePaymentError
from event_payments.core.idempotency import Clock, IdempotencyStore
from event_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

PAYMENT_ATTEMPT_STATE_KEY = "payment_attempt_key"
SESSION_HEADER = "x-session-id"
SESSION_COOKIE = "session_id"


class PaymentAttemptTracker:
    """
    Records payment attempts keyed by session and registrant.

    An attempt within ``window_seconds`` of the previous one is a duplicate.
    Records are kept for ``retention_seconds`` and pruned by ``sweep``.
    """

    key_prefix = "payment-attempt:"

    def __init__(
        self,
        store: IdempotencyStore,
        window_seconds: float = 60.0,
        retention_seconds: float = 1800.0,
        clock: Clock = time.time,
    ):
        self.store = store
        self.window_seconds = window_seconds
        self.retention_seconds = retention_seconds
        self._clock = clock

    def make_key(self, session_id: str, email: str, first_name: str, last_name: str) -> str:
        composite = f"{session_id}_{email.strip().lower()}_{first_name.strip()}_{last_name.strip()}"
        digest = hashlib.sha256(composite.encode("utf-8")).hexdigest()
        return f"{self.key_prefix}{digest}"

    async def check_and_record(self, key: str) -> bool:
        """
        Record an attempt.

        Returns:
            bool: True if the attempt may proceed, False if it duplicates one
            seen within the window
        """
        now = self._clock()
        record = {"timestamp": now, "payment_intent_id": None}
        if await self.store.add(key, record, self.retention_seconds):
            return True

        previous = await self.store.get(key)
        if previous is not None and now - previous["timestamp"] < self.window_seconds:
            return False

        await self.store.set(key, record, self.retention_seconds)
        return True

    async def mark_payment_intent_created(self, key: str, payment_intent_id: str) -> None:
        record = await self.store.get(key)
        if record is None:
            logger.warning("payment_attempt_missing", payment_intent_id=payment_intent_id)
            return
        record["payment_intent_id"] = payment_intent_id
        remaining = self.retention_seconds - (self._clock() - record["timestamp"])
        await self.store.set(key, record, max(remaining, 1.0))
        logger.info("payment_attempt_marked_created", payment_intent_id=payment_intent_id)

    async def sweep(self) -> int:
        removed = await self.store.sweep()
        if removed:
            logger.info("payment_attempts_swept", removed=removed)
        return removed


def _session_id(request: Request, body: Dict[str, Any]) -> Optional[str]:
    return (
        request.headers.get(SESSION_HEADER)
        or request.cookies.get(SESSION_COOKIE)
        or body.get("sessionId")
    )


class PaymentDeduplicationMiddleware:
    """
    ASGI middleware guarding ``create-payment-intent`` routes.

    The request body is buffered to build the attempt key and replayed
    unchanged to the application.
    """

    def __init__(self, app: ASGIApp, tracker: PaymentAttemptTracker):
        self.app = app
        self.tracker = tracker

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or scope.get("method") != "POST"
            or "create-payment-intent" not in scope.get("path", "")
        ):
            await self.app(scope, receive, send)
            return

        chunks = []
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            chunks.append(message.get("body", b""))
            more_body = message.get("more_body", False)
        body = b"".join(chunks)

        key = self._attempt_key(scope, body)
        if key is not None:
            if not await self.tracker.check_and_record(key):
                metrics.record_duplicate_payment_attempt("request")
                logger.warning("duplicate_payment_attempt_blocked", path=scope.get("path"))
                error = DuplicatePaymentError("Please wait before attempting another payment")
                response = JSONResponse(status_code=error.status_code, content=error.to_dict())
                await response(scope, receive, send)
                return
            scope.setdefault("state", {})[PAYMENT_ATTEMPT_STATE_KEY] = key

        body_sent = False

        async def replay() -> Message:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)

    def _attempt_key(self, scope: Scope, body: bytes) -> Optional[str]:
        try:
            payload = json.loads(body) if body else {}
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None

        registration = payload.get("registrationData") or {}
        if not isinstance(registration, dict):
            return None

        email = registration.get("email")
        session_id = _session_id(Request(scope), payload)
        if not email or not session_id:
            return None

        return self.tracker.make_key(
            str(session_id),
            str(email),
            str(registration.get("firstName") or ""),
            str(registration.get("lastName") or ""),
        )
