"""SQLAlchemy database models for event registrations."""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONVariant = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class PaymentStatus:
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class OrderStatus:
    NOT_REQUESTED = "not_requested"
    CREATED = "created"
    FAILED = "failed"


class Registration(Base):
    """
    Event registration records table.

    One row per Stripe PaymentIntent. Webhook replays update the same row.
    """

    __tablename__ = "registrations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    stripe_payment_intent_id: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    event_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    event_slug: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    event_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    option: Mapped[str] = mapped_column(String(20), nullable=False, default="full")
    number_of_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    selected_dates: Mapped[Optional[List[str]]] = mapped_column(JSONVariant, nullable=True)

    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    school_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    club_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    age: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    t_shirt_size: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    waiver_accepted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    discount_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING, index=True
    )
    payment_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shopify_order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    order_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.NOT_REQUESTED
    )
    order_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    raw_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONVariant, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="non_negative_amount"),
        CheckConstraint(
            "payment_status IN ('pending', 'succeeded', 'failed')",
            name="valid_payment_status",
        ),
        CheckConstraint(
            "order_status IN ('not_requested', 'created', 'failed')",
            name="valid_order_status",
        ),
        Index("idx_registrations_event_status", "event_id", "payment_status"),
    )

    def __repr__(self) -> str:
        """String representation of Registration."""
        return (
            f"<Registration(id={self.id}, event_id={self.event_id}, "
            f"payment_intent={self.stripe_payment_intent_id}, "
            f"payment_status={self.payment_status}, order_status={self.order_status})>"
        )
