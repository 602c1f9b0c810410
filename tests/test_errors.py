"""
Tests for the error taxonomy.
"""
import pytest

from event_payments.core.errors import (
    AppError,
    DuplicatePaymentError,
    PricingError,
    ValidationError,
    handle_error,
)


class TestErrors:
    @pytest.mark.unit
    def test_to_dict(self) -> None:
        error = ValidationError("email is invalid")

        assert error.to_dict() == {
            "error": "Validation error",
            "code": "VALIDATION_ERROR",
            "message": "email is invalid",
            "userFriendlyMessage": "Please check your input and try again.",
        }

    @pytest.mark.unit
    def test_pricing_error_lists_errors(self) -> None:
        error = PricingError("bad selection", errors=["a", "b"])

        assert error.status_code == 400
        assert error.to_dict()["details"] == {"errors": ["a", "b"]}

    @pytest.mark.unit
    def test_duplicate_payment(self) -> None:
        error = DuplicatePaymentError("Please wait")

        assert error.status_code == 429
        assert error.to_dict()["error"] == "Duplicate payment attempt"

    @pytest.mark.unit
    def test_handle_error_wraps_unknown(self) -> None:
        wrapped = handle_error(KeyError("secret internal detail"))

        assert isinstance(wrapped, AppError)
        assert "secret internal detail" not in wrapped.message
        assert wrapped.code == "UNKNOWN_ERROR"
        assert wrapped.status_code == 500

    @pytest.mark.unit
    def test_handle_error_keeps_app_errors(self) -> None:
        error = ValidationError("x")

        assert handle_error(error) is error
