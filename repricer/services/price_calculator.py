"""
Price calculation for pricing strategies.

Pure functions: no I/O, no logging side effects beyond a warning for
unrecognized rules.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import structlog

from repricer.core.errors import ValidationError
from repricer.models.schemas import (
    AdjustmentMode,
    NoCompetitionAction,
    PricingStrategy,
    RepricingRule,
)

logger = structlog.get_logger()

CENT = Decimal("0.01")
STAY_ABOVE_SNAP_THRESHOLD = Decimal("2.00")


def round_price(price: Decimal) -> Decimal:
    """Round to cents, half away from zero."""
    return Decimal(price).quantize(CENT, rounding=ROUND_HALF_UP)


def clamp(
    price: Decimal,
    minimum: Optional[Decimal],
    maximum: Optional[Decimal]
) -> Decimal:
    if minimum is not None and price < minimum:
        return minimum
    if maximum is not None and price > maximum:
        return maximum
    return price


def _adjust(base: Decimal, mode: Optional[AdjustmentMode], value: Decimal, sign: int) -> Decimal:
    if mode == AdjustmentMode.AMOUNT:
        return base + sign * value
    return base * (1 + sign * value)


def calculate_raw_price(
    strategy: PricingStrategy,
    competitor_price: Optional[Decimal],
    current_price: Decimal
) -> Decimal:
    """
    Compute the strategy's target price before listing bounds are applied.

    Without a positive competitor price the strategy's no-competition
    action decides; otherwise the repricing rule positions the listing
    relative to the competitor. CUSTOM and unrecognized rules keep the
    current price.
    """
    if competitor_price is None or competitor_price <= 0:
        action = strategy.no_competition_action
        if action == NoCompetitionAction.USE_MAX_PRICE:
            return strategy.max_price if strategy.max_price is not None else current_price
        if action == NoCompetitionAction.USE_MIN_PRICE:
            return strategy.min_price if strategy.min_price is not None else current_price
        return current_price

    value = strategy.value or Decimal("0")
    rule = strategy.repricing_rule

    if rule == RepricingRule.MATCH_LOWEST:
        return competitor_price
    if rule == RepricingRule.BEAT_LOWEST:
        return _adjust(competitor_price, strategy.beat_by, value, -1)
    if rule == RepricingRule.STAY_ABOVE:
        return _adjust(competitor_price, strategy.stay_above_by, value, 1)

    if rule != RepricingRule.CUSTOM:
        logger.warning("Unknown repricing rule, keeping current price", rule=str(rule))
    return current_price


def calculate_price(
    strategy: PricingStrategy,
    competitor_price: Optional[Decimal],
    current_price: Decimal,
    listing_min: Optional[Decimal] = None,
    listing_max: Optional[Decimal] = None,
    snap_threshold: Decimal = STAY_ABOVE_SNAP_THRESHOLD,
    fallback_min: Optional[Decimal] = None,
    fallback_max: Optional[Decimal] = None,
) -> Decimal:
    """
    Compute the final target price for a listing.

    Args:
        strategy: Pricing strategy attached to the listing
        competitor_price: Lowest qualifying competitor price, if any
        current_price: The listing's current price (must be positive)
        listing_min: Per-listing lower bound
        listing_max: Per-listing upper bound
        snap_threshold: STAY_ABOVE headroom below ``listing_max`` that
            triggers snapping up to ``listing_max``
        fallback_min: Lower clamp used when the listing has no minimum
        fallback_max: Upper clamp used when the listing has no maximum;
            never a snap target

    Returns:
        Positive price rounded to cents
    """
    if current_price is None or current_price <= 0:
        raise ValidationError("current_price must be greater than zero")

    raw = calculate_raw_price(strategy, competitor_price, current_price)
    price = clamp(
        raw,
        listing_min if listing_min is not None else fallback_min,
        listing_max if listing_max is not None else fallback_max,
    )

    if (
        strategy.repricing_rule == RepricingRule.STAY_ABOVE
        and listing_max is not None
        and listing_max - raw >= snap_threshold
    ):
        price = listing_max

    rounded = round_price(price)
    if rounded <= 0:
        return round_price(current_price)
    return rounded
