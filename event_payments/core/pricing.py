"""
Centralized registration pricing for all events.

Prices are integer cents, as Stripe expects. One function owns the
day/date selection rules; the throwing calculator and the error-collecting
validator are both views over its result.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Union

import structlog

from event_payments.core.errors import PricingError

logger = structlog.get_logger(__name__)

FLEXIBLE_DAY_EVENT_ID = 2
FLEXIBLE_DAY_OPTIONS: Mapping[str, int] = MappingProxyType({"1day": 1, "2day": 2})
NATIONAL_CHAMP_CAMP_DATES = ("June 5", "June 6", "June 7")
REGISTRATION_OPTIONS = ("full", "single", "1day", "2day")


@dataclass(frozen=True)
class EventPricing:
    """Price tiers for one event, in cents."""

    full: int
    single: int
    one_day: Optional[int] = None
    two_day: Optional[int] = None

    def tier(self, option: str) -> Optional[int]:
        return {
            "full": self.full,
            "single": self.single,
            "1day": self.one_day,
            "2day": self.two_day,
        }.get(option)

    def to_dict(self) -> Dict[str, int]:
        tiers = {"full": self.full, "single": self.single}
        if self.one_day is not None:
            tiers["1day"] = self.one_day
        if self.two_day is not None:
            tiers["2day"] = self.two_day
        return tiers


@dataclass(frozen=True)
class EventInfo:
    id: int
    slug: str
    title: str


EVENT_PRICING: Mapping[int, EventPricing] = MappingProxyType(
    {
        1: EventPricing(full=24900, single=14900),  # Birmingham Slam Camp
        2: EventPricing(full=29900, single=17500, one_day=11900, two_day=23800),  # National Champ Camp
        3: EventPricing(full=24900, single=14900),  # Texas Recruiting Clinic
        4: EventPricing(full=20000, single=9900),  # Panther Train Tour
    }
)

EVENT_CATALOG: Mapping[int, EventInfo] = MappingProxyType(
    {
        1: EventInfo(1, "birmingham-slam-camp", "Birmingham Slam Camp"),
        2: EventInfo(2, "national-champ-camp", "National Champ Camp"),
        3: EventInfo(3, "texas-recruiting-clinic", "Texas Recruiting Clinic"),
        4: EventInfo(4, "panther-train-tour", "Panther Train Tour"),
    }
)


@dataclass(frozen=True)
class PricingOk:
    amount_cents: int

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class PricingErr:
    errors: List[str]

    @property
    def ok(self) -> bool:
        return False


PricingResult = Union[PricingOk, PricingErr]


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {"valid": self.valid, "errors": list(self.errors)}


@dataclass
class PricingCalculation:
    original_amount: int
    final_amount: int
    discount_amount: int = 0
    applied_discount_code: Optional[str] = None
    number_of_days: Optional[int] = None
    selected_dates: Optional[List[str]] = None


@dataclass(frozen=True)
class DiscountPolicy:
    """Admin discount codes and the emails allowed to redeem them."""

    admin_codes: Sequence[str] = ()
    admin_emails: Sequence[str] = ()


def get_event_pricing(event_id: int) -> Optional[EventPricing]:
    return EVENT_PRICING.get(event_id)


def get_event_info(event_id: int) -> Optional[EventInfo]:
    return EVENT_CATALOG.get(event_id)


def _flexible_day_errors(
    option: str,
    number_of_days: Optional[int],
    selected_dates: Optional[Sequence[str]],
) -> List[str]:
    expected_days = FLEXIBLE_DAY_OPTIONS[option]
    errors: List[str] = []

    if number_of_days != expected_days:
        errors.append(f"numberOfDays must be {expected_days} for {option} option")

    if selected_dates is None or len(selected_dates) != expected_days:
        errors.append(f"Must select exactly {expected_days} date(s) for {option} option")

    for selected in selected_dates or ():
        if selected not in NATIONAL_CHAMP_CAMP_DATES:
            errors.append(f"Invalid date selected: {selected}")

    return errors


def validate_registration_selection(
    event_id: int,
    option: str,
    number_of_days: Optional[int] = None,
    selected_dates: Optional[Sequence[str]] = None,
) -> PricingResult:
    """
    Validate an option selection and price it.

    Args:
        event_id: Event identifier
        option: Registration option (full, single, 1day, 2day)
        number_of_days: Day count for flexible-day options
        selected_dates: Chosen camp dates for flexible-day options

    Returns:
        PricingResult: PricingOk with the amount in cents, or PricingErr
        listing every rule the selection breaks
    """
    pricing = get_event_pricing(event_id)
    if pricing is None:
        return PricingErr([f"Pricing not found for event {event_id}"])

    if event_id == FLEXIBLE_DAY_EVENT_ID and option in FLEXIBLE_DAY_OPTIONS:
        errors = _flexible_day_errors(option, number_of_days, selected_dates)
        price = pricing.tier(option)
        if price is None:
            errors.append(f"{option} pricing not available for event {event_id}")
        if errors:
            return PricingErr(errors)
        return PricingOk(price)

    if option == "single":
        return PricingOk(pricing.single)
    return PricingOk(pricing.full)


def calculate_registration_amount(
    event_id: int,
    option: str,
    number_of_days: Optional[int] = None,
    selected_dates: Optional[Sequence[str]] = None,
) -> int:
    """
    Compute the charge for a registration in cents.

    Raises:
        PricingError: If the event is unknown or the selection is invalid
    """
    result = validate_registration_selection(event_id, option, number_of_days, selected_dates)
    if isinstance(result, PricingErr):
        logger.warning(
            "registration_pricing_rejected",
            event_id=event_id,
            option=option,
            errors=result.errors,
        )
        raise PricingError("; ".join(result.errors), errors=result.errors)
    return result.amount_cents


def validate_national_champ_camp_registration(
    option: str,
    number_of_days: Optional[int] = None,
    selected_dates: Optional[Sequence[str]] = None,
) -> ValidationResult:
    result = validate_registration_selection(
        FLEXIBLE_DAY_EVENT_ID, option, number_of_days, selected_dates
    )
    if isinstance(result, PricingErr):
        return ValidationResult(valid=False, errors=list(result.errors))
    return ValidationResult(valid=True)


def calculate_team_price(event_id: int, athlete_count: int, option: str = "full") -> int:
    """Team pricing: full individual price per athlete."""
    if athlete_count < 1:
        raise PricingError(f"Team registration needs at least one athlete, got {athlete_count}")
    return calculate_registration_amount(event_id, option) * athlete_count


def apply_discount(
    amount_cents: int,
    code: Optional[str],
    email: Optional[str],
    policy: DiscountPolicy,
) -> PricingCalculation:
    """
    Apply a discount code to a registration amount.

    Admin codes take 100% off and are honoured only for admin emails.

    Raises:
        PricingError: If the code is unknown or not valid for the email
    """
    if not code:
        return PricingCalculation(original_amount=amount_cents, final_amount=amount_cents)

    normalized = code.strip().upper()
    if normalized not in {c.upper() for c in policy.admin_codes}:
        raise PricingError(
            f"Invalid discount code: {code}",
            user_friendly_message="Invalid discount code",
        )

    if not email or email.strip().lower() not in {e.lower() for e in policy.admin_emails}:
        logger.warning("admin_discount_rejected", code=normalized, email=email)
        raise PricingError(
            f"Discount code {normalized} is not valid for {email}",
            user_friendly_message="This discount code is not valid for your email",
        )

    logger.info("admin_discount_applied", code=normalized, email=email)
    return PricingCalculation(
        original_amount=amount_cents,
        final_amount=0,
        discount_amount=amount_cents,
        applied_discount_code=normalized,
    )
