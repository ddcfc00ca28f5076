"""Shared test fixtures for the venue agent test suite."""

from __future__ import annotations

import os
from datetime import UTC, date, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from venue_agent.models import (
    AgentConfig,
    EventTypeConfig,
    FaqEntry,
    PolicyConfig,
    PricingPackage,
    PricingRules,
    VenueProfile,
)
from venue_agent.services.store import AgentStore

TODAY = date(2026, 3, 10)
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)
VENUE_ID = "venue-1"
OWNER_ID = "owner-1"


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    ``venue_agent.config`` reads these at import time.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ["METRICS_ENABLED"] = "false"
    os.environ["DATABASE_URL"] = "sqlite://"
    os.environ.pop("NOTIFICATION_WEBHOOK_URL", None)
    os.environ.pop("REALTIME_WEBHOOK_URL", None)


@pytest.fixture
def venue() -> VenueProfile:
    return VenueProfile(
        id=VENUE_ID,
        owner_id=OWNER_ID,
        name="Ateljé Söder",
        description="Ljus ateljé med takfönster",
        area="Södermalm",
        city="Stockholm",
        address="Götgatan 12",
        capacity_standing=120,
        capacity_seated=80,
        min_guests=10,
        amenities=["Parkering", "Projektor", "Wifi", "Kök", "Hiss"],
        venue_types=["Fest", "Konferens"],
        price_per_hour=1500,
        price_half_day=5000,
        price_full_day=9000,
        price_evening=7000,
    )


@pytest.fixture
def agent_config() -> AgentConfig:
    return AgentConfig(
        venue_id=VENUE_ID,
        pricing_rules=PricingRules(
            base_price=5000,
            per_person_rate=100,
            packages=[PricingPackage(name="Mingel", price=250, description="Bubbel och tilltugg", per_person=True)],
        ),
        event_types=[
            EventTypeConfig(type="wedding", label="Bröllop", status="welcome"),
            EventTypeConfig(type="student_party", label="Studentfest", status="declined", note="Inga nollningar"),
            EventTypeConfig(type="concert", label="Konsert", status="ask_owner"),
        ],
        policy_config=PolicyConfig(cancellation="Kostnadsfri avbokning 30 dagar innan", deposit="20% vid bokning"),
        faq_entries=[FaqEntry(question="Får man ta med egen dryck?", answer="Ja, mot en korkavgift på 100 kr per flaska.")],
    )


@pytest.fixture
def store(venue, agent_config) -> AgentStore:
    """Fresh in-memory database seeded with one venue and its agent config."""
    agent_store = AgentStore.from_url("sqlite://")
    with agent_store.transaction() as tx:
        tx.upsert_venue(venue)
        tx.upsert_agent_config(agent_config)
    return agent_store


@pytest.fixture
def conversation_id(store) -> str:
    with store.transaction() as tx:
        conversation = tx.create_conversation(VENUE_ID, "customer-1", NOW, timedelta(days=7))
    return conversation.id


@pytest.fixture
def add_booking(store):
    """Factory: insert an active booking for the seeded venue."""

    def _add(event_date: str, start_time: str = "09:00", end_time: str = "12:00", status: str = "accepted"):
        with store.transaction() as tx:
            return tx.add_booking(
                venue_id=VENUE_ID,
                event_date=event_date,
                start_time=start_time,
                end_time=end_time,
                event_type="fest",
                guest_count=20,
                status=status,
                now=NOW,
            )

    return _add


@pytest.fixture
def block_date(store):
    """Factory: block a date for the seeded venue."""

    def _block(day: str, reason: str | None = None):
        with store.transaction() as tx:
            tx.add_blocked_date(VENUE_ID, day, reason)

    return _block


@pytest.fixture
def notifier():
    mock = MagicMock()
    mock.dispatch.return_value = True
    return mock


@pytest.fixture
def broadcaster():
    mock = MagicMock()
    mock.broadcast.return_value = True
    return mock
