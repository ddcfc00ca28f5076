"""Availability checks against a venue's blocked dates and bookings.

Rules, first failure wins:
  1. the date is before *today*
  2. the owner has blocked the date
  3. an active (pending/accepted) booking overlaps the requested window

When a date is blocked or booked the nearest open alternatives within
``ALTERNATIVE_SEARCH_DAYS`` are suggested.  The result reflects the calendar
at query time only; the final check happens when a booking is written.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TypedDict

from venue_agent.config import ALTERNATIVE_SEARCH_DAYS, MAX_ALTERNATIVES
from venue_agent.services.store import StoreTransaction

logger = logging.getLogger(__name__)


class AvailabilityResult(TypedDict, total=False):
    available: bool
    reason: str
    alternatives: list[str]


_REASONS = {
    "sv": {
        "past": "Datumet har redan passerat.",
        "blocked": "Datumet är blockerat av lokalägaren.",
        "booked": "Datumet är redan bokat.",
    },
    "en": {
        "past": "The date has already passed.",
        "blocked": "The date is blocked by the venue owner.",
        "booked": "The date is already booked.",
    },
}


def check_availability(
    tx: StoreTransaction,
    venue_id: str,
    day: str,
    today: date,
    start_time: str | None = None,
    end_time: str | None = None,
    language: str = "sv",
) -> AvailabilityResult:
    """Check whether *day* (``YYYY-MM-DD``) can be booked.

    ``start_time``/``end_time`` (``HH:MM``) narrow the check to the half-open
    window ``[start_time, end_time)``; without both, any booking on the day
    is a conflict.
    """
    reasons = _REASONS.get(language, _REASONS["sv"])
    requested = date.fromisoformat(day)

    if requested < today:
        return {"available": False, "reason": reasons["past"]}

    block_reasons = tx.blocked_date_reasons(venue_id, day)
    if block_reasons:
        return {
            "available": False,
            "reason": block_reasons[0] or reasons["blocked"],
            "alternatives": find_alternative_dates(tx, venue_id, requested, today),
        }

    if tx.conflicting_bookings(venue_id, day, start_time, end_time):
        return {
            "available": False,
            "reason": reasons["booked"],
            "alternatives": find_alternative_dates(tx, venue_id, requested, today),
        }

    return {"available": True}


def find_alternative_dates(
    tx: StoreTransaction,
    venue_id: str,
    target: date,
    today: date,
    *,
    search_days: int = ALTERNATIVE_SEARCH_DAYS,
    limit: int = MAX_ALTERNATIVES,
) -> list[str]:
    """Nearest open dates around *target*, closest first.

    Candidates are every day within ``search_days`` either side (the target
    itself excluded) that is not in the past.  Blocked and booked days are
    fetched with one range query each.
    """
    candidates = [
        target + timedelta(days=offset)
        for offset in range(-search_days, search_days + 1)
        if offset != 0 and target + timedelta(days=offset) >= today
    ]
    if not candidates:
        return []

    # Stable sort: equal distances keep generation order (earlier date first)
    candidates.sort(key=lambda d: abs((d - target).days))

    start = min(candidates).isoformat()
    end = max(candidates).isoformat()
    unavailable = tx.blocked_dates_between(venue_id, start, end) | tx.booked_dates_between(venue_id, start, end)

    alternatives: list[str] = []
    for candidate in candidates:
        iso = candidate.isoformat()
        if iso not in unavailable:
            alternatives.append(iso)
            if len(alternatives) >= limit:
                break

    logger.debug("Alternatives for %s at venue %s: %s", target, venue_id, alternatives)
    return alternatives
