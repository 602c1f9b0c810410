"""
Shopify Admin REST client.

Creates paid orders for event registrations. Connection errors, timeouts,
429 and 5xx responses are retried with exponential backoff; anything else
fails immediately.
"""
import time
from typing import Any, Dict, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from event_payments.config import Settings, get_settings
from event_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class ShopifyError(Exception):
    """Raised when a Shopify request fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ShopifyTransientError(ShopifyError):
    """A failure worth retrying."""

    pass


class ShopifyClient:
    """
    Async client for the Shopify Admin API.

    Args:
        settings: Application settings (store domain, token, API version)
        http_client: Optional preconfigured httpx client
        max_attempts: Attempts per request including the first
        retry_backoff_seconds: Multiplier for the exponential backoff
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 0.5,
    ):
        self.settings = settings or get_settings()
        self.max_attempts = max_attempts
        self.retry_backoff_seconds = retry_backoff_seconds
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "X-Shopify-Access-Token": self.settings.shopify_access_token,
                "Content-Type": "application/json",
            },
            timeout=self.settings.shopify_timeout_seconds,
        )

    @property
    def base_url(self) -> str:
        return (
            f"https://{self.settings.shopify_store_domain}"
            f"/admin/api/{self.settings.shopify_api_version}"
        )

    @property
    def configured(self) -> bool:
        return self.settings.shopify_configured

    async def _request_once(
        self, method: str, path: str, json_body: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json_body)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            logger.warning("shopify_request_transport_error", path=path, error=str(e))
            raise ShopifyTransientError(f"Shopify request failed: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(
                "shopify_request_retryable_status",
                path=path,
                status_code=response.status_code,
            )
            raise ShopifyTransientError(
                f"Shopify API error: {response.status_code}",
                status_code=response.status_code,
            )

        if response.status_code >= 400:
            logger.error(
                "shopify_request_rejected",
                path=path,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ShopifyError(
                f"Shopify API error: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

        return response.json()

    async def request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        operation: str = "request",
    ) -> Dict[str, Any]:
        """
        Send a request, retrying transient failures.

        Raises:
            ShopifyError: If the request fails permanently or retries run out
        """
        start_time = time.time()
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ShopifyTransientError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff_seconds, max=8),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    data = await self._request_once(method, path, json_body)
        except ShopifyError:
            metrics.record_api_call("shopify", operation, "failed", time.time() - start_time)
            raise

        metrics.record_api_call("shopify", operation, "success", time.time() - start_time)
        return data

    async def create_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an order.

        Args:
            order: The ``order`` object for ``orders.json``

        Returns:
            Dict[str, Any]: The created order as returned by Shopify
        """
        if not self.configured:
            raise ShopifyError("Shopify store domain or access token is not configured")

        data = await self.request("POST", "/orders.json", {"order": order}, operation="create_order")
        created = data.get("order")
        if not created or "id" not in created:
            raise ShopifyError("Shopify response did not include an order id")

        logger.info("shopify_order_created", order_id=created["id"], order_name=created.get("name"))
        return created

    async def close(self) -> None:
        await self._client.aclose()
