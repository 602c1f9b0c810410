"""Checkout, pricing, locking and order creation."""
