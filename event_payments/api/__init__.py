"""HTTP API for registration checkout and the Stripe webhook."""
from .main import create_app

__all__ = ["create_app"]
