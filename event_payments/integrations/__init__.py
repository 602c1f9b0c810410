"""External service clients: Stripe, Shopify and the Stripe webhook router."""
from .shopify_client import ShopifyClient, ShopifyError, ShopifyTransientError
from .stripe_client import StripeClient, StripeError, StripeErrorType, WebhookSignatureError
from .webhook_handler import WebhookError, WebhookHandler

__all__ = [
    "ShopifyClient",
    "ShopifyError",
    "ShopifyTransientError",
    "StripeClient",
    "StripeError",
    "StripeErrorType",
    "WebhookError",
    "WebhookHandler",
    "WebhookSignatureError",
]
