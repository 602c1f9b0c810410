"""
Pydantic schemas for API request/response models.

Field names are snake_case in Python and camelCase on the wire.
"""
import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NAME_PATTERN = re.compile(r"^[a-zA-Z\s\-'.]+$")

RegistrationOption = Literal["full", "single", "1day", "2day"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _validate_name(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{label} is required")
    if not NAME_PATTERN.match(value):
        raise ValueError(f"{label} contains invalid characters")
    if len(value) < 2:
        raise ValueError(f"{label} must be at least 2 characters")
    return value


class RegistrationData(CamelModel):
    """Registrant and guardian details submitted with a payment request."""

    first_name: str = Field(..., min_length=1, description="Participant first name")
    last_name: str = Field(..., min_length=1, description="Participant last name")
    email: str = Field(..., description="Contact email")
    contact_name: str = Field(..., min_length=1, description="Parent/guardian name")
    phone: Optional[str] = Field(default=None, description="Contact phone")
    school_name: Optional[str] = None
    club_name: Optional[str] = None
    age: Optional[str] = None
    grade: Optional[str] = None
    t_shirt_size: Optional[str] = None
    waiver_accepted: bool = False
    medical_release_accepted: bool = False

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, v: str) -> str:
        return _validate_name(v, "first name")

    @field_validator("last_name")
    @classmethod
    def validate_last_name(cls, v: str) -> str:
        return _validate_name(v, "last name")

    @field_validator("contact_name")
    @classmethod
    def validate_contact_name(cls, v: str) -> str:
        return _validate_name(v, "contact name")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Validate email format and normalise to lower case."""
        v = v.strip()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Please enter a valid email address")
        return v.lower()

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        if len(re.sub(r"\D", "", v)) < 10:
            raise ValueError("Please enter a valid phone number")
        return v.strip()

    @field_validator("age", mode="before")
    @classmethod
    def coerce_age(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


class PricingSelection(CamelModel):
    option: RegistrationOption = "full"
    number_of_days: Optional[int] = Field(default=None, ge=1, le=3)
    selected_dates: Optional[List[str]] = None


class CreatePaymentIntentRequest(PricingSelection):
    """Request schema for creating a registration payment intent."""

    registration_data: RegistrationData
    discount_code: Optional[str] = None
    session_id: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "option": "1day",
                    "numberOfDays": 1,
                    "selectedDates": ["June 5"],
                    "sessionId": "sess_123",
                    "registrationData": {
                        "firstName": "Jordan",
                        "lastName": "Burroughs",
                        "email": "jordan@example.com",
                        "contactName": "Pat Burroughs",
                        "phone": "555-123-4567",
                        "waiverAccepted": True,
                    },
                }
            ]
        },
    )


class CreatePaymentIntentResponse(CamelModel):
    client_secret: str
    payment_intent_id: Optional[str] = None
    amount: int = Field(..., description="Amount in cents")
    original_amount: Optional[int] = None
    event_id: int
    event_title: str
    success: bool = True
    is_free_registration: bool = False
    reused_existing_intent: bool = False


class EventPricingResponse(CamelModel):
    event_id: int
    event_slug: str
    event_title: str
    pricing: Dict[str, int]


class ValidateRegistrationResponse(CamelModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    amount: Optional[int] = None


class WebhookResponse(CamelModel):
    received: bool = True
    status: str
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


class HealthCheckResponse(BaseModel):
    status: str
    checks: Dict[str, Dict[str, Any]]


class StatsResponse(BaseModel):
    webhooks: Dict[str, int]
    orders: Dict[str, int]
