"""
Unit tests for registration pricing.
"""
import pytest

from event_payments.core.errors import PricingError
from event_payments.core.pricing import (
    DiscountPolicy,
    PricingErr,
    PricingOk,
    apply_discount,
    calculate_registration_amount,
    calculate_team_price,
    get_event_info,
    get_event_pricing,
    validate_national_champ_camp_registration,
    validate_registration_selection,
)

ADMIN_POLICY = DiscountPolicy(admin_codes=("ADMIN-100-OFF",), admin_emails=("admin@example.com",))


class TestEventPricing:
    """Test suite for the pricing table."""

    @pytest.mark.unit
    def test_unknown_event_has_no_pricing(self) -> None:
        assert get_event_pricing(999) is None
        assert get_event_info(999) is None

    @pytest.mark.unit
    def test_flexible_day_tiers_only_on_national_champ_camp(self) -> None:
        assert get_event_pricing(2).to_dict() == {
            "full": 29900,
            "single": 17500,
            "1day": 11900,
            "2day": 23800,
        }
        assert get_event_pricing(1).to_dict() == {"full": 24900, "single": 14900}

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "event_id,option,expected",
        [
            (1, "full", 24900),
            (1, "single", 14900),
            (3, "full", 24900),
            (4, "single", 9900),
            (4, "full", 20000),
        ],
    )
    def test_standard_options(self, event_id: int, option: str, expected: int) -> None:
        assert calculate_registration_amount(event_id, option) == expected

    @pytest.mark.unit
    def test_flexible_option_on_regular_event_falls_back_to_full(self) -> None:
        assert calculate_registration_amount(1, "1day") == 24900

    @pytest.mark.unit
    def test_one_day_national_champ_camp(self) -> None:
        assert calculate_registration_amount(2, "1day", 1, ["June 5"]) == 11900

    @pytest.mark.unit
    def test_two_day_national_champ_camp(self) -> None:
        assert calculate_registration_amount(2, "2day", 2, ["June 6", "June 7"]) == 23800

    @pytest.mark.unit
    def test_day_count_mismatch_raises(self) -> None:
        with pytest.raises(PricingError, match="numberOfDays must be 1"):
            calculate_registration_amount(2, "1day", 2, ["June 5"])

    @pytest.mark.unit
    def test_unknown_event_raises(self) -> None:
        with pytest.raises(PricingError, match="Pricing not found for event 999"):
            calculate_registration_amount(999, "full")

    @pytest.mark.unit
    def test_pricing_error_carries_every_reason(self) -> None:
        with pytest.raises(PricingError) as exc_info:
            calculate_registration_amount(2, "2day", 1, ["June 9"])

        assert len(exc_info.value.errors) == 3
        assert exc_info.value.status_code == 400
        assert exc_info.value.to_dict()["details"]["errors"] == exc_info.value.errors


class TestSelectionValidation:
    """Test suite for the error-collecting validators."""

    @pytest.mark.unit
    def test_valid_selection_returns_amount(self) -> None:
        assert validate_registration_selection(2, "2day", 2, ["June 5", "June 6"]) == PricingOk(
            23800
        )

    @pytest.mark.unit
    def test_invalid_date_is_reported(self) -> None:
        result = validate_national_champ_camp_registration("2day", 2, ["June 5", "June 8"])

        assert result.valid is False
        assert result.errors == ["Invalid date selected: June 8"]

    @pytest.mark.unit
    def test_missing_dates_reported(self) -> None:
        result = validate_registration_selection(2, "1day", 1, None)

        assert isinstance(result, PricingErr)
        assert result.errors == ["Must select exactly 1 date(s) for 1day option"]

    @pytest.mark.unit
    def test_full_option_needs_no_dates(self) -> None:
        result = validate_national_champ_camp_registration("full")

        assert result.valid is True
        assert result.errors == []

    @pytest.mark.unit
    def test_validator_and_calculator_agree(self) -> None:
        selections = [
            ("1day", 1, ["June 5"]),
            ("1day", 2, ["June 5"]),
            ("2day", 2, ["June 5", "June 5"]),
            ("2day", 2, ["June 5"]),
            ("single", None, None),
        ]
        for option, days, dates in selections:
            validation = validate_national_champ_camp_registration(option, days, dates)
            try:
                calculate_registration_amount(2, option, days, dates)
                calculated = True
            except PricingError:
                calculated = False
            assert validation.valid is calculated, (option, days, dates)


class TestTeamAndDiscounts:
    """Test suite for team pricing and discount codes."""

    @pytest.mark.unit
    def test_team_price_multiplies_individual_price(self) -> None:
        assert calculate_team_price(1, 5) == 5 * 24900

    @pytest.mark.unit
    def test_team_price_requires_an_athlete(self) -> None:
        with pytest.raises(PricingError):
            calculate_team_price(1, 0)

    @pytest.mark.unit
    def test_no_code_keeps_amount(self) -> None:
        calculation = apply_discount(24900, None, "someone@example.com", ADMIN_POLICY)

        assert calculation.final_amount == 24900
        assert calculation.discount_amount == 0
        assert calculation.applied_discount_code is None

    @pytest.mark.unit
    def test_admin_code_is_free_for_admin_email(self) -> None:
        calculation = apply_discount(24900, "admin-100-off", "Admin@Example.com", ADMIN_POLICY)

        assert calculation.final_amount == 0
        assert calculation.discount_amount == 24900
        assert calculation.applied_discount_code == "ADMIN-100-OFF"

    @pytest.mark.unit
    def test_admin_code_rejected_for_other_email(self) -> None:
        with pytest.raises(PricingError, match="not valid for"):
            apply_discount(24900, "ADMIN-100-OFF", "someone@example.com", ADMIN_POLICY)

    @pytest.mark.unit
    def test_unknown_code_rejected(self) -> None:
        with pytest.raises(PricingError, match="Invalid discount code"):
            apply_discount(24900, "SUMMER10", "admin@example.com", ADMIN_POLICY)
