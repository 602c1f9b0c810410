"""
Health checks for the registration payment service.

Checks:
- Database connectivity
- Idempotency store reachability
- Stripe configuration
"""
from typing import Any, Dict

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from event_payments.config import Settings
from event_payments.core.idempotency import IdempotencyStore

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Aggregates dependency checks into one status."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        store: IdempotencyStore,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.store = store

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            async with self.session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {e}") from e

        return {
            "status": "healthy",
            "service": "database",
            "message": "Database connection successful",
        }

    async def check_idempotency_store(self) -> Dict[str, Any]:
        """
        Check the lock and deduplication store.

        Raises:
            HealthCheckError: If the store cannot be reached
        """
        try:
            reachable = await self.store.ping()
        except Exception as e:
            logger.error("idempotency_store_health_check_failed", error=str(e))
            raise HealthCheckError(f"Idempotency store health check failed: {e}") from e

        if not reachable:
            raise HealthCheckError("Idempotency store did not answer ping")

        return {
            "status": "healthy",
            "service": "idempotency_store",
            "backend": self.settings.idempotency_backend,
        }

    async def check_stripe(self) -> Dict[str, Any]:
        """
        Check Stripe configuration.

        Only the keys are inspected; no API call is made.
        """
        if not self.settings.stripe_webhook_secret and self.settings.is_production:
            raise HealthCheckError("Stripe webhook secret is not configured")

        return {
            "status": "healthy",
            "service": "stripe",
            "test_mode": self.settings.is_test_mode,
            "webhook_verification": bool(self.settings.stripe_webhook_secret),
        }

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks: Dict[str, Dict[str, Any]] = {}
        all_healthy = True

        for name, check in (
            ("database", self.check_database),
            ("idempotency_store", self.check_idempotency_store),
            ("stripe", self.check_stripe),
        ):
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {"status": "unhealthy", "service": name, "error": str(e)}
                all_healthy = False

        checks["shopify"] = {
            "status": "healthy" if self.settings.shopify_configured else "not_configured",
            "service": "shopify",
        }

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }
