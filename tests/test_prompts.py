"""Tests for the system prompt compiler."""

from __future__ import annotations

from datetime import date

from conftest import TODAY

from venue_agent.models import AgentConfig, BookingParams, CalendarSnapshot, VenueProfile
from venue_agent.prompts import SECTION_SEPARATOR, add_months, build_agent_system_prompt


def _sections(prompt: str) -> list[str]:
    return prompt.split(SECTION_SEPARATOR)


class TestStructure:
    def test_is_deterministic(self, venue, agent_config):
        calendar = CalendarSnapshot(blocked_dates=["2026-04-20"], booked_dates=["2026-04-15"])
        first = build_agent_system_prompt(venue, agent_config, calendar, TODAY)
        second = build_agent_system_prompt(venue, agent_config, calendar, TODAY)
        assert first == second

    def test_section_order_with_full_config(self, venue, agent_config):
        config = agent_config.model_copy(update={"booking_params": BookingParams(max_guests=100)})
        sections = _sections(build_agent_system_prompt(venue, config, CalendarSnapshot(), TODAY))
        headings = [s.splitlines()[0] for s in sections]
        assert headings == [
            "# Identitet & Beteende",
            "# Lokalprofil",
            "# Prissättning",
            "# Bokningsparametrar",
            "# Evenemangstyper",
            "# Policyer",
            "# Vanliga frågor",
            "# Kalender (nästa 3 månader)",
            "# Eskaleringsregler",
        ]

    def test_optional_sections_skipped_when_empty(self, venue):
        prompt = build_agent_system_prompt(venue, None, CalendarSnapshot(), TODAY)
        headings = [s.splitlines()[0] for s in _sections(prompt)]
        assert headings == [
            "# Identitet & Beteende",
            "# Lokalprofil",
            "# Prissättning",
            "# Kalender (nästa 3 månader)",
            "# Eskaleringsregler",
        ]

    def test_identity_carries_rules_and_date(self, venue, agent_config):
        identity = _sections(build_agent_system_prompt(venue, agent_config, CalendarSnapshot(), TODAY))[0]
        assert '"Ateljé Söder"' in identity
        assert "BEKRÄFTA ALDRIG en bokning på egen hand" in identity
        assert identity.endswith("Dagens datum: 2026-03-10")

    def test_english_config(self, venue):
        config = AgentConfig(venue_id=venue.id, language="en")
        prompt = build_agent_system_prompt(venue, config, CalendarSnapshot(), TODAY)
        assert prompt.startswith("# Identity & Behavior")
        assert "NEVER confirm a booking on your own" in prompt
        assert "**Blocked dates:** None" in prompt


class TestPricingSection:
    def test_base_price_per_person_and_packages(self, venue, agent_config):
        pricing = _sections(build_agent_system_prompt(venue, agent_config, CalendarSnapshot(), TODAY))[2]
        assert "En plattformsavgift på 12% tillkommer" in pricing
        assert "**Grundpris:** 5000 kr" in pricing
        assert "**Per person:** 100 kr" in pricing
        assert "- Mingel: 250 kr/person (Bubbel och tilltugg)" in pricing
        assert "timme" not in pricing

    def test_venue_brackets_without_base_price(self, venue):
        pricing = _sections(build_agent_system_prompt(venue, None, CalendarSnapshot(), TODAY))[2]
        assert "**Priser:** 1500 kr/timme, 5000 kr halvdag, 9000 kr heldag, 7000 kr kväll" in pricing


class TestProfileAndConfigSections:
    def test_profile_fields(self, venue, agent_config):
        profile = _sections(build_agent_system_prompt(venue, agent_config, CalendarSnapshot(), TODAY))[1]
        assert "**Plats:** Södermalm, Stockholm" in profile
        assert "**Kapacitet:** 120 stående, 80 sittande" in profile
        assert "**Minsta antal gäster:** 10" in profile

    def test_location_without_area(self):
        venue = VenueProfile(id="v", name="Hall", city="Uppsala", address="Storgatan 1")
        prompt = build_agent_system_prompt(venue, None, CalendarSnapshot(), TODAY)
        assert "**Plats:** Uppsala" in prompt

    def test_event_types_grouped_by_status(self, venue, agent_config):
        prompt = build_agent_system_prompt(venue, agent_config, CalendarSnapshot(), TODAY)
        section = next(s for s in _sections(prompt) if s.startswith("# Evenemangstyper"))
        assert section.splitlines() == [
            "# Evenemangstyper",
            "**Välkomna evenemang:**",
            "- Bröllop",
            "**Ej tillgängliga:**",
            "- Studentfest (Inga nollningar)",
            "**Kräver ägarens godkännande (eskalera):**",
            "- Konsert",
        ]

    def test_booking_params_weekdays_start_on_sunday(self, venue):
        config = AgentConfig(
            venue_id=venue.id,
            booking_params=BookingParams(min_duration_hours=3, blocked_weekdays=[0, 1]),
        )
        prompt = build_agent_system_prompt(venue, config, CalendarSnapshot(), TODAY)
        assert "**Minsta bokningslängd:** 3 timmar" in prompt
        assert "**Stängda veckodagar:** söndag, måndag" in prompt

    def test_faq_entries(self, venue, agent_config):
        prompt = build_agent_system_prompt(venue, agent_config, CalendarSnapshot(), TODAY)
        assert "**F: Får man ta med egen dryck?**\nS: Ja, mot en korkavgift på 100 kr per flaska." in prompt


class TestCalendarSection:
    def test_only_dates_inside_three_month_window(self, venue, agent_config):
        calendar = CalendarSnapshot(
            blocked_dates=["2026-03-09", "2026-04-20", "2026-06-11"],
            booked_dates=["2026-06-10", "2026-04-15", "2026-04-15"],
        )
        prompt = build_agent_system_prompt(venue, agent_config, calendar, TODAY)
        assert "**Blockerade datum:** 2026-04-20" in prompt
        assert "**Bokade datum:** 2026-04-15, 2026-06-10" in prompt

    def test_empty_calendar_says_none(self, venue, agent_config):
        prompt = build_agent_system_prompt(venue, agent_config, CalendarSnapshot(), TODAY)
        assert "**Blockerade datum:** Inga" in prompt
        assert "**Bokade datum:** Inga" in prompt
        assert "`check_availability`" in prompt


class TestAddMonths:
    def test_plain(self):
        assert add_months(date(2026, 3, 10), 3) == date(2026, 6, 10)

    def test_clamps_to_month_end(self):
        assert add_months(date(2026, 11, 30), 3) == date(2027, 2, 28)

    def test_year_rollover(self):
        assert add_months(date(2026, 12, 1), 1) == date(2027, 1, 1)
