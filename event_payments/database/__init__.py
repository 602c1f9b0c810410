"""Database package for event registrations."""
from .connection import build_engine, create_session_factory, init_db
from .models import Base, OrderStatus, PaymentStatus, Registration
from .repository import RegistrationRepository

__all__ = [
    "Base",
    "OrderStatus",
    "PaymentStatus",
    "Registration",
    "RegistrationRepository",
    "build_engine",
    "create_session_factory",
    "init_db",
]
