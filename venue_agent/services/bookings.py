"""Booking creation for approved agent proposals.

The availability check the agent runs mid-conversation is advisory: another
booking can land between that check and the owner's approval.  This module
performs the final check inside the caller's transaction, immediately before
the insert, so the approval either writes a non-overlapping booking or
rolls back entirely.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime

from venue_agent.errors import BookingCreationError, BookingUnavailableError
from venue_agent.models import Booking
from venue_agent.services.store import StoreTransaction

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def create_confirmed_booking(
    tx: StoreTransaction,
    *,
    venue_id: str,
    event_date: str,
    start_time: str,
    end_time: str,
    event_type: str,
    guest_count: int,
    total_price: float | None,
    now: datetime,
    customer_id: str | None = None,
    action_id: str | None = None,
) -> Booking:
    """Insert an accepted booking after re-checking the calendar.

    Raises ``BookingUnavailableError`` when the date is blocked or the time
    window overlaps an active booking, and ``BookingCreationError`` for any
    other reason the booking cannot be written.
    """
    if not _DATE_RE.match(event_date or ""):
        raise BookingCreationError(f"Invalid event date: {event_date!r}")
    if not _TIME_RE.match(start_time or "") or not _TIME_RE.match(end_time or ""):
        raise BookingCreationError(f"Invalid time window: {start_time!r}-{end_time!r}")
    if start_time >= end_time:
        raise BookingCreationError("End time must be after start time")
    if guest_count < 1:
        raise BookingCreationError("Guest count must be at least 1")

    if tx.blocked_date_reasons(venue_id, event_date):
        raise BookingUnavailableError(f"{event_date} is blocked for venue {venue_id}")

    conflicts = tx.conflicting_bookings(venue_id, event_date, start_time, end_time)
    if conflicts:
        raise BookingUnavailableError(
            f"{event_date} {start_time}-{end_time} overlaps booking {conflicts[0].id}"
        )

    booking = tx.add_booking(
        venue_id=venue_id,
        event_date=event_date,
        start_time=start_time,
        end_time=end_time,
        event_type=event_type,
        guest_count=guest_count,
        status="accepted",
        total_price=total_price,
        customer_id=customer_id,
        action_id=action_id,
        now=now,
    )
    logger.info(
        "Booking created: %s at venue %s on %s %s-%s", booking.id, venue_id, event_date, start_time, end_time,
    )
    return booking
