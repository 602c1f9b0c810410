"""
Service wiring for the API.

Services are built once per application and stored on ``app.state`` so
tests can substitute their own.
"""
import time
from dataclasses import dataclass, field
from typing import List, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from event_payments.api.deduplication import PaymentAttemptTracker
from event_payments.config import Settings
from event_payments.core.checkout import RegistrationCheckout
from event_payments.core.idempotency import Clock, IdempotencyStore, build_store
from event_payments.core.order_pipeline import OrderPipeline
from event_payments.core.payment_lock import PaymentIntentLock
from event_payments.core.pricing import DiscountPolicy
from event_payments.core.sweeper import PeriodicSweeper
from event_payments.database.connection import build_engine, create_session_factory
from event_payments.database.repository import RegistrationRepository
from event_payments.integrations.shopify_client import ShopifyClient
from event_payments.integrations.stripe_client import StripeClient
from event_payments.integrations.webhook_handler import WebhookHandler
from event_payments.monitoring.health import HealthCheck


@dataclass
class Services:
    settings: Settings
    store: IdempotencyStore
    payment_lock: PaymentIntentLock
    attempt_tracker: PaymentAttemptTracker
    stripe_client: StripeClient
    shopify_client: ShopifyClient
    repository: RegistrationRepository
    checkout: RegistrationCheckout
    webhook_handler: WebhookHandler
    health_check: HealthCheck
    session_factory: async_sessionmaker[AsyncSession]
    engine: Optional[AsyncEngine] = None
    sweepers: List[PeriodicSweeper] = field(default_factory=list)

    def build_sweepers(self) -> List[PeriodicSweeper]:
        self.sweepers = [
            PeriodicSweeper(
                "payment_locks",
                self.payment_lock.sweep_expired,
                self.settings.payment_lock_sweep_interval_seconds,
            ),
            PeriodicSweeper(
                "payment_attempts",
                self.attempt_tracker.sweep,
                self.settings.dedup_sweep_interval_seconds,
            ),
        ]
        return self.sweepers

    async def close(self) -> None:
        for sweeper in self.sweepers:
            await sweeper.stop()
        await self.shopify_client.close()
        await self.store.close()
        if self.engine is not None:
            await self.engine.dispose()


def wire_services(
    settings: Settings,
    store: IdempotencyStore,
    session_factory: async_sessionmaker[AsyncSession],
    stripe_client: StripeClient,
    shopify_client: ShopifyClient,
    engine: Optional[AsyncEngine] = None,
    clock: Clock = time.time,
) -> Services:
    """Connect the domain services around the given infrastructure."""
    payment_lock = PaymentIntentLock(
        store, timeout_seconds=settings.payment_lock_timeout_seconds, clock=clock
    )
    attempt_tracker = PaymentAttemptTracker(
        store,
        window_seconds=settings.dedup_window_seconds,
        retention_seconds=settings.dedup_retention_seconds,
        clock=clock,
    )
    repository = RegistrationRepository(session_factory)
    checkout = RegistrationCheckout(
        stripe_client,
        payment_lock,
        DiscountPolicy(
            admin_codes=tuple(settings.get_admin_discount_codes()),
            admin_emails=tuple(settings.get_admin_discount_emails()),
        ),
        currency=settings.payment_currency,
    )
    webhook_handler = WebhookHandler(store, dedup_ttl_seconds=settings.webhook_dedup_ttl_seconds)
    OrderPipeline(repository, shopify_client, payment_lock).register(webhook_handler)

    return Services(
        settings=settings,
        store=store,
        payment_lock=payment_lock,
        attempt_tracker=attempt_tracker,
        stripe_client=stripe_client,
        shopify_client=shopify_client,
        repository=repository,
        checkout=checkout,
        webhook_handler=webhook_handler,
        health_check=HealthCheck(settings, session_factory, store),
        session_factory=session_factory,
        engine=engine,
    )


def build_services(settings: Settings) -> Services:
    """Build production services from settings."""
    engine = build_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    return wire_services(
        settings,
        store=build_store(settings),
        session_factory=create_session_factory(engine),
        stripe_client=StripeClient(settings),
        shopify_client=ShopifyClient(settings),
        engine=engine,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
