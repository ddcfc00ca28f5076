"""Price calculation from a venue's pricing configuration.

Pure function: no calendar or database access, so every pricing rule can be
unit-tested directly.

Priority (first match wins):
  1. A named package (case-insensitive exact match), times guests if per-person
  2. ``PricingRules.base_price`` plus ``per_person_rate x guests``
  3. The venue's duration-bracket prices (hourly / half day / evening / full day)

The result is then clamped up to ``minimum_spend`` and a platform fee of
``PLATFORM_FEE_RATE`` is added on top.
"""

from __future__ import annotations

import math

from venue_agent.config import PLATFORM_FEE_RATE
from venue_agent.models import PriceBreakdown, PricingRules, VenueProfile


def calculate_price(
    guest_count: int,
    duration_hours: float,
    event_type: str,
    pricing_rules: PricingRules | None,
    venue: VenueProfile,
    package_name: str | None = None,
) -> PriceBreakdown:
    """Return the full price breakdown for one event.

    ``event_type`` is accepted for parity with the tool signature; no rule
    currently prices by event type.
    """
    base_price = 0.0
    per_person_cost: float | None = None
    package_cost: float | None = None

    if package_name and pricing_rules and pricing_rules.packages:
        wanted = package_name.lower()
        package = next((p for p in pricing_rules.packages if p.name.lower() == wanted), None)
        if package is not None:
            package_cost = package.price * guest_count if package.per_person else package.price
            base_price = package_cost

    if base_price == 0 and pricing_rules:
        if pricing_rules.base_price:
            base_price = pricing_rules.base_price
        if pricing_rules.per_person_rate:
            per_person_cost = pricing_rules.per_person_rate * guest_count
            base_price += per_person_cost

    if base_price == 0:
        base_price = _price_from_venue_brackets(duration_hours, venue)

    if pricing_rules and pricing_rules.minimum_spend and base_price < pricing_rules.minimum_spend:
        base_price = pricing_rules.minimum_spend

    total_before_fee = base_price
    platform_fee = _round_half_up(total_before_fee * PLATFORM_FEE_RATE)

    return PriceBreakdown(
        base_price=base_price,
        per_person_cost=per_person_cost,
        package_cost=package_cost,
        total_before_fee=total_before_fee,
        platform_fee=platform_fee,
        total_price=total_before_fee + platform_fee,
    )


def _price_from_venue_brackets(duration_hours: float, venue: VenueProfile) -> float:
    if duration_hours <= 4 and venue.price_per_hour:
        return venue.price_per_hour * duration_hours
    if duration_hours <= 5 and venue.price_half_day:
        return venue.price_half_day
    if duration_hours <= 6 and venue.price_evening:
        return venue.price_evening
    if venue.price_full_day:
        return venue.price_full_day

    # Nothing fits the bracket; use whatever the venue has
    if venue.price_evening:
        return venue.price_evening
    if venue.price_half_day:
        return venue.price_half_day
    if venue.price_per_hour:
        return venue.price_per_hour * duration_hours
    return 0.0


def _round_half_up(value: float) -> float:
    # round() is banker's rounding; fees round .5 up
    return float(math.floor(value + 0.5))
