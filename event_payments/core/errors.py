"""
Error taxonomy shared by the checkout, pricing and webhook flows.

Every error carries:
- A stable code (for client handling)
- An internal message (for logs)
- A user friendly message (safe to show in the storefront)
- An HTTP status code (for API responses)
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base exception for all application errors."""

    code = "APP_ERROR"
    status_code = 500
    default_user_message = "An unexpected error occurred. Please try again."

    def __init__(
        self,
        message: str,
        user_friendly_message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.user_friendly_message = user_friendly_message or self.default_user_message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for API responses."""
        body: Dict[str, Any] = {
            "error": self.error_title,
            "code": self.code,
            "message": self.message,
            "userFriendlyMessage": self.user_friendly_message,
        }
        if self.details:
            body["details"] = self.details
        return body

    @property
    def error_title(self) -> str:
        return self.code.replace("_", " ").capitalize()


class ValidationError(AppError):
    """Registrant or request data failed validation."""

    code = "VALIDATION_ERROR"
    status_code = 400
    default_user_message = "Please check your input and try again."


class PricingError(ValidationError):
    """Unknown event, missing price tier or inconsistent day selection."""

    code = "PRICING_ERROR"
    default_user_message = "The selected registration option is not available."

    def __init__(self, message: str, errors: Optional[list[str]] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.errors = errors or [message]
        self.details.setdefault("errors", self.errors)


class EventNotFoundError(AppError):
    """Registration requested for an event that does not exist."""

    code = "EVENT_NOT_FOUND"
    status_code = 404
    default_user_message = "The event you're trying to register for could not be found."


class DuplicatePaymentError(AppError):
    """A payment attempt for the same registrant or session is already in flight."""

    code = "DUPLICATE_PAYMENT"
    status_code = 429
    default_user_message = (
        "Payment already in progress. Please wait a moment before trying again."
    )

    @property
    def error_title(self) -> str:
        return "Duplicate payment attempt"


class PaymentError(AppError):
    """The payment processor rejected or failed a request."""

    code = "PAYMENT_ERROR"
    status_code = 502
    default_user_message = (
        "Payment system is temporarily unavailable. Please try again in a few moments."
    )


class DatabaseError(AppError):
    """A persistence operation failed."""

    code = "DATABASE_ERROR"
    status_code = 500
    default_user_message = "A database error occurred. Please try again later."


def handle_error(error: BaseException) -> AppError:
    """
    Map any exception to an AppError.

    Known application errors are returned unchanged; anything else becomes
    a generic 500 that does not leak internals to the user.
    """
    if isinstance(error, AppError):
        return error

    wrapped = AppError("An unexpected error occurred. Please try again later.")
    wrapped.code = "UNKNOWN_ERROR"
    return wrapped
