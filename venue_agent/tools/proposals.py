"""Agent tools that hand a decision to the venue owner.

``propose_booking`` and ``escalate_to_owner`` share one shape:

  1. build the structured summary for the action
  2. in one transaction, insert a ``pending`` action and move the
     conversation to ``waiting_for_owner``
  3. notify the owner (best effort; a failed notification never undoes 2)

A persistence failure is reported as ``{"success": False}`` so the model can
tell the customer something went wrong without the turn crashing.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from venue_agent.models import (
    ActionSummary,
    ActionType,
    BookingApprovalSummary,
    ConversationStatus,
    EscalationSummary,
    VenueProfile,
)
from venue_agent.services.notifications import (
    Notification,
    NotificationDispatcher,
    NotificationReference,
    get_notifier,
)
from venue_agent.services.store import AgentStore

logger = logging.getLogger(__name__)

_HEADLINES = {
    "sv": {
        "agent_booking_approval": "Ny bokningsförfrågan via agenten",
        "agent_escalation": "Agenten behöver din hjälp",
    },
    "en": {
        "agent_booking_approval": "New booking request from the agent",
        "agent_escalation": "The agent needs your help",
    },
}


def _booking_body(language: str, venue: VenueProfile, summary: BookingApprovalSummary) -> str:
    window = f"{summary.start_time}–{summary.end_time}"
    if language == "en":
        return (
            f"A customer wants to book {venue.name or 'your venue'} on {summary.date} "
            f"({window}) for {summary.guest_count} guests."
        )
    return (
        f"En kund vill boka {venue.name or 'din lokal'} den {summary.date} "
        f"({window}) för {summary.guest_count} gäster."
    )


def _escalation_body(language: str, summary: EscalationSummary) -> str:
    if language == "en":
        return f"A customer has a request that needs your answer: {summary.customer_request}"
    return f"En kund har en förfrågan som kräver ditt svar: {summary.customer_request}"


def _submit_action(
    store: AgentStore,
    *,
    venue_id: str,
    conversation_id: str,
    action_type: ActionType,
    summary: ActionSummary,
    now: datetime,
) -> str | None:
    """Insert the action and park the conversation.  ``None`` on persistence failure."""
    try:
        with store.transaction() as tx:
            action = tx.create_action(
                conversation_id=conversation_id,
                venue_id=venue_id,
                action_type=action_type,
                summary=summary,
                now=now,
            )
            tx.set_conversation_status(conversation_id, ConversationStatus.WAITING_FOR_OWNER)
    except SQLAlchemyError:
        logger.exception("Failed to persist %s action for conversation %s", action_type.value, conversation_id)
        return None

    logger.info("Action %s (%s) pending for venue %s", action.id, action_type.value, venue_id)
    return action.id


def _notify_owner(
    notifier: NotificationDispatcher | None,
    venue: VenueProfile,
    *,
    category: str,
    language: str,
    body: str,
    action_id: str,
    extra: dict[str, Any],
) -> None:
    if not venue.owner_id:
        logger.debug("Venue %s has no owner; skipping %s notification", venue.id, category)
        return
    headlines = _HEADLINES.get(language, _HEADLINES["sv"])
    (notifier or get_notifier()).dispatch(
        Notification(
            recipient_id=venue.owner_id,
            category=category,
            headline=headlines[category],
            body=body,
            reference=NotificationReference(id=action_id),
            extra=extra,
        )
    )


def propose_booking(
    store: AgentStore,
    *,
    venue: VenueProfile,
    conversation_id: str,
    date: str,
    start_time: str,
    end_time: str,
    guest_count: int,
    event_type: str,
    price: float,
    now: datetime,
    extras: list[str] | None = None,
    customer_note: str | None = None,
    language: str = "sv",
    notifier: NotificationDispatcher | None = None,
) -> dict[str, Any]:
    """Send a booking proposal to the owner for approval."""
    summary = BookingApprovalSummary(
        event_type=event_type,
        guest_count=guest_count,
        date=date,
        start_time=start_time,
        end_time=end_time,
        price=price,
        extras=extras or [],
        customer_note=customer_note,
    )

    action_id = _submit_action(
        store,
        venue_id=venue.id,
        conversation_id=conversation_id,
        action_type=ActionType.BOOKING_APPROVAL,
        summary=summary,
        now=now,
    )
    if action_id is None:
        return {"success": False}

    _notify_owner(
        notifier,
        venue,
        category="agent_booking_approval",
        language=language,
        body=_booking_body(language, venue, summary),
        action_id=action_id,
        extra={"conversation_id": conversation_id, "venue_id": venue.id},
    )
    return {"success": True, "actionId": action_id}


def escalate_to_owner(
    store: AgentStore,
    *,
    venue: VenueProfile,
    conversation_id: str,
    reason: str,
    customer_request: str,
    now: datetime,
    context: dict[str, Any] | None = None,
    language: str = "sv",
    notifier: NotificationDispatcher | None = None,
) -> dict[str, Any]:
    """Hand a request the agent may not decide on to the owner."""
    summary = EscalationSummary(reason=reason, customer_request=customer_request, context=context or {})

    action_id = _submit_action(
        store,
        venue_id=venue.id,
        conversation_id=conversation_id,
        action_type=ActionType.ESCALATION,
        summary=summary,
        now=now,
    )
    if action_id is None:
        return {"success": False}

    _notify_owner(
        notifier,
        venue,
        category="agent_escalation",
        language=language,
        body=_escalation_body(language, summary),
        action_id=action_id,
        extra={"conversation_id": conversation_id, "venue_id": venue.id, "reason": reason},
    )
    return {"success": True, "actionId": action_id}
