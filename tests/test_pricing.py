"""Tests for price calculation."""

from __future__ import annotations

import pytest

from venue_agent.models import PricingPackage, PricingRules, VenueProfile
from venue_agent.tools.pricing import calculate_price


@pytest.fixture
def bare_venue():
    return VenueProfile(id="v", name="Bare")


class TestBaseAndPerPerson:
    def test_base_plus_per_person_with_platform_fee(self, bare_venue):
        rules = PricingRules(base_price=5000, per_person_rate=100)
        result = calculate_price(50, 4, "fest", rules, bare_venue)

        assert result.per_person_cost == 5000
        assert result.base_price == 10000
        assert result.total_before_fee == 10000
        assert result.platform_fee == 1200
        assert result.total_price == 11200
        assert result.package_cost is None

    def test_per_person_only(self, bare_venue):
        result = calculate_price(30, 3, "middag", PricingRules(per_person_rate=450), bare_venue)
        assert result.base_price == 13500
        assert result.total_price == 13500 + 1620

    def test_fee_rounds_half_up(self, bare_venue):
        # 12% of 1012.5 is 121.5
        result = calculate_price(1, 1, "x", PricingRules(base_price=1012.5), bare_venue)
        assert result.platform_fee == 122


class TestPackages:
    def test_per_person_package_wins_over_base_price(self, bare_venue):
        rules = PricingRules(
            base_price=5000,
            per_person_rate=100,
            packages=[PricingPackage(name="Mingel", price=250, per_person=True)],
        )
        result = calculate_price(40, 3, "fest", rules, bare_venue, package_name="mingel")

        assert result.package_cost == 10000
        assert result.base_price == 10000
        assert result.per_person_cost is None
        assert result.total_price == 11200

    def test_flat_package(self, bare_venue):
        rules = PricingRules(packages=[PricingPackage(name="Heldag", price=20000)])
        result = calculate_price(80, 10, "konferens", rules, bare_venue, package_name="Heldag")
        assert result.package_cost == 20000
        assert result.platform_fee == 2400

    def test_unknown_package_falls_back_to_rules(self, bare_venue):
        rules = PricingRules(base_price=3000, packages=[PricingPackage(name="Heldag", price=20000)])
        result = calculate_price(10, 2, "fest", rules, bare_venue, package_name="Brunch")
        assert result.package_cost is None
        assert result.base_price == 3000


class TestVenueBrackets:
    @pytest.fixture
    def venue(self):
        return VenueProfile(
            id="v",
            name="Brackets",
            price_per_hour=1000,
            price_half_day=4500,
            price_evening=6000,
            price_full_day=9000,
        )

    @pytest.mark.parametrize(
        "hours, expected",
        [(3, 3000), (4, 4000), (5, 4500), (6, 6000), (8, 9000)],
    )
    def test_duration_picks_bracket(self, venue, hours, expected):
        result = calculate_price(20, hours, "fest", None, venue)
        assert result.base_price == expected

    def test_long_event_without_full_day_uses_evening(self):
        venue = VenueProfile(id="v", name="Evening", price_evening=6000)
        assert calculate_price(20, 10, "fest", PricingRules(), venue).base_price == 6000

    def test_no_prices_at_all_is_zero(self, bare_venue):
        result = calculate_price(20, 4, "fest", None, bare_venue)
        assert result.total_price == 0
        assert result.platform_fee == 0


class TestMinimumSpend:
    def test_clamps_up_to_minimum_spend(self, bare_venue):
        rules = PricingRules(per_person_rate=100, minimum_spend=8000)
        result = calculate_price(20, 3, "fest", rules, bare_venue)
        assert result.base_price == 8000
        assert result.total_price == 8960

    def test_above_minimum_spend_is_unchanged(self, bare_venue):
        rules = PricingRules(per_person_rate=100, minimum_spend=1000)
        assert calculate_price(20, 3, "fest", rules, bare_venue).base_price == 2000


class TestToolResult:
    def test_camel_case_keys_and_optional_fields(self, bare_venue):
        result = calculate_price(50, 4, "fest", PricingRules(base_price=5000, per_person_rate=100), bare_venue)
        payload = result.to_tool_result()
        assert payload == {
            "basePrice": 10000,
            "perPersonCost": 5000,
            "totalBeforeFee": 10000,
            "platformFee": 1200,
            "totalPrice": 11200,
        }
