"""
Pytest configuration and fixtures.
"""
import hashlib
import hmac
import json
import os
import time
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fake_key_for_testing")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from event_payments.api.dependencies import Services, wire_services
from event_payments.api.main import create_app
from event_payments.config import Settings
from event_payments.core.idempotency import InMemoryIdempotencyStore
from event_payments.database.connection import create_session_factory
from event_payments.database.models import Base
from event_payments.database.repository import RegistrationRepository
from event_payments.integrations.shopify_client import ShopifyClient
from event_payments.integrations.stripe_client import StripeClient
from event_payments.monitoring.metrics import metrics

ShopifyHandler = Callable[[httpx.Request], httpx.Response]


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ShopifyRecorder:
    """Scripted Shopify responses plus a log of received requests."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.responses: List[httpx.Response] = []
        self.order_id = 820982911946154508

    def queue(self, *responses: httpx.Response) -> None:
        self.responses.extend(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            return self.responses.pop(0)
        return httpx.Response(
            201, json={"order": {"id": self.order_id, "name": "#1001"}}
        )

    def order_bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content)["order"] for request in self.requests]


def make_shopify_client(settings: Settings, handler: ShopifyHandler) -> ShopifyClient:
    base_url = (
        f"https://{settings.shopify_store_domain}/admin/api/{settings.shopify_api_version}"
    )
    http_client = httpx.AsyncClient(
        base_url=base_url,
        headers={"X-Shopify-Access-Token": settings.shopify_access_token},
        transport=httpx.MockTransport(handler),
    )
    return ShopifyClient(settings, http_client=http_client, retry_backoff_seconds=0)


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def payment_intent_event(
    event_id: str = "evt_test_1",
    event_type: str = "payment_intent.succeeded",
    payment_intent_id: str = "pi_test_123",
    amount: int = 11900,
    metadata: Optional[Dict[str, str]] = None,
    **intent_fields: Any,
) -> Dict[str, Any]:
    base_metadata = {
        "eventId": "2",
        "eventSlug": "national-champ-camp",
        "eventTitle": "National Champ Camp",
        "customerEmail": "athlete@example.com",
        "customerName": "Kyle Dake",
        "participantFirstName": "Kyle",
        "participantLastName": "Dake",
        "contactName": "Pat Dake",
        "phone": "555-123-4567",
        "schoolName": "Lansing High",
        "age": "16",
        "option": "1day",
        "numberOfDays": "1",
        "selectedDates": "June 5",
        "sessionId": "sess_abc",
        "waiverAccepted": "true",
        "createShopifyOrder": "true",
    }
    base_metadata.update(metadata or {})
    payment_intent = {
        "id": payment_intent_id,
        "object": "payment_intent",
        "amount": amount,
        "currency": "usd",
        "metadata": base_metadata,
        **intent_fields,
    }
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": payment_intent},
    }


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    metrics.reset()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        stripe_secret_key="sk_test_fake_key_for_testing",
        stripe_publishable_key="pk_test_fake_key_for_testing",
        stripe_webhook_secret=None,
        shopify_store_domain="wrestling-test.myshopify.com",
        shopify_access_token="shpat_test_token",
        database_url="sqlite+aiosqlite://",
        idempotency_backend="memory",
        admin_discount_codes="ADMIN-100-OFF",
        admin_discount_emails="admin@example.com",
        app_name="event-payments-test",
        app_env="test",
        log_level="DEBUG",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemoryIdempotencyStore:
    return InMemoryIdempotencyStore(clock=clock)


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, Any]:
    """In-memory SQLite shared by every session of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest.fixture
def repository(session_factory: async_sessionmaker[AsyncSession]) -> RegistrationRepository:
    return RegistrationRepository(session_factory)


@pytest.fixture
def shopify_recorder() -> ShopifyRecorder:
    return ShopifyRecorder()


@pytest_asyncio.fixture
async def shopify_client(
    test_settings: Settings, shopify_recorder: ShopifyRecorder
) -> AsyncGenerator[ShopifyClient, Any]:
    client = make_shopify_client(test_settings, shopify_recorder)
    yield client
    await client.close()


@pytest.fixture
def stripe_client(test_settings: Settings) -> StripeClient:
    return StripeClient(test_settings, retry_backoff_seconds=0)


@pytest.fixture
def services(
    test_settings: Settings,
    memory_store: InMemoryIdempotencyStore,
    session_factory: async_sessionmaker[AsyncSession],
    stripe_client: StripeClient,
    shopify_client: ShopifyClient,
    clock: FakeClock,
) -> Services:
    return wire_services(
        test_settings,
        store=memory_store,
        session_factory=session_factory,
        stripe_client=stripe_client,
        shopify_client=shopify_client,
        clock=clock,
    )


@pytest_asyncio.fixture
async def client(services: Services) -> AsyncGenerator[httpx.AsyncClient, Any]:
    """Create test HTTP client."""
    app = create_app(services=services)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def registration_payload() -> Dict[str, Any]:
    """Sample create-payment-intent request body."""
    return {
        "option": "1day",
        "numberOfDays": 1,
        "selectedDates": ["June 5"],
        "sessionId": "sess_abc",
        "registrationData": {
            "firstName": "Kyle",
            "lastName": "Dake",
            "email": "Athlete@Example.com",
            "contactName": "Pat Dake",
            "phone": "(555) 123-4567",
            "schoolName": "Lansing High",
            "age": "16",
            "waiverAccepted": True,
        },
    }
