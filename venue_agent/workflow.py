"""Action approval workflow.

Every agent proposal becomes an ``Action`` that leaves ``pending`` exactly
once.  Each entry point below follows the same pattern:

  1. re-read the action and reject it early if it is missing
     (``ActionNotFoundError``), already resolved
     (``ActionAlreadyResolvedError``) or of the wrong type
     (``InvalidRequestError``)
  2. compare-and-swap ``pending -> <terminal>`` together with the
     resulting conversation changes, all in one transaction; losing the
     swap to a concurrent caller raises ``ActionAlreadyResolvedError``
  3. after commit, notify and broadcast (best effort)

Owner entry points: ``approve``, ``decline``, ``reply``, ``modify``.
Customer entry points: ``accept_counter_offer``, ``decline_counter_offer``.

A ``modify`` does not resolve the booking approval.  It opens a separate
``counter_offer`` action for the customer, linked by ``original_action_id``;
the original stays ``pending`` (and cannot be approved, declined or
modified again) until the customer answers, then it becomes ``modified``.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from venue_agent.config import ACTION_TTL_HOURS
from venue_agent.errors import (
    ActionAlreadyResolvedError,
    ActionNotFoundError,
    ConflictError,
    ConversationNotFoundError,
    InvalidRequestError,
)
from venue_agent.models import (
    Action,
    ActionStatus,
    ActionType,
    BookingApprovalSummary,
    Conversation,
    ConversationStatus,
    CounterOfferSummary,
    MessageRole,
)
from venue_agent.services.bookings import create_confirmed_booking
from venue_agent.services.notifications import (
    Notification,
    NotificationDispatcher,
    NotificationReference,
    RealtimeBroadcaster,
    get_broadcaster,
    get_notifier,
)
from venue_agent.services.store import AgentStore, StoreTransaction

logger = logging.getLogger(__name__)

OWNER_REPLY_PREFIX = {"sv": "[Svar från lokalägaren]: ", "en": "[Reply from the venue owner]: "}

_MESSAGES = {
    "sv": {
        "approved": "Goda nyheter! Lokalägaren har godkänt din bokning den {date} ({start}–{end}). Totalpris: {price} kr.",
        "declined": "[Lokalägaren avböjde förfrågan]",
        "declined_reason": "[Lokalägaren avböjde förfrågan]: {reason}",
        "counter_offer": (
            "Lokalägaren har skickat ett motförslag: {date} ({start}–{end}) för {price} kr. "
            "Vill du acceptera det?"
        ),
        "owner_note": "Meddelande från lokalägaren: {note}",
        "counter_accepted": "Du har accepterat motförslaget. Din bokning den {date} ({start}–{end}) är bekräftad.",
        "counter_declined": "[Kunden avböjde lokalägarens motförslag]",
        "counter_withdrawn": "[Lokalägaren drog tillbaka sitt motförslag]",
        "approved_headline": "Bokning godkänd",
        "approved_body": "Din bokning av {venue} den {date} har godkänts.",
        "counter_headline": "Motförslag från lokalägare",
        "counter_body": "{venue} har skickat ett motförslag för din bokning.",
        "venue_fallback": "lokalen",
    },
    "en": {
        "approved": "Good news! The venue owner has approved your booking on {date} ({start}–{end}). Total price: {price} SEK.",
        "declined": "[The venue owner declined the request]",
        "declined_reason": "[The venue owner declined the request]: {reason}",
        "counter_offer": (
            "The venue owner has sent a counter-offer: {date} ({start}–{end}) for {price} SEK. "
            "Would you like to accept it?"
        ),
        "owner_note": "Message from the venue owner: {note}",
        "counter_accepted": "You accepted the counter-offer. Your booking on {date} ({start}–{end}) is confirmed.",
        "counter_declined": "[The customer declined the owner's counter-offer]",
        "counter_withdrawn": "[The venue owner withdrew the counter-offer]",
        "approved_headline": "Booking approved",
        "approved_body": "Your booking of {venue} on {date} has been approved.",
        "counter_headline": "Counter-offer from the venue owner",
        "counter_body": "{venue} has sent a counter-offer for your booking.",
        "venue_fallback": "the venue",
    },
}

_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class ModifyRequest(BaseModel):
    """Owner adjustments for a counter-offer.  Unset fields keep the proposal's value."""

    adjusted_price: float | None = Field(None, gt=0)
    suggested_date: str | None = Field(None, pattern=_DATE_PATTERN)
    suggested_start_time: str | None = Field(None, pattern=_TIME_PATTERN)
    suggested_end_time: str | None = Field(None, pattern=_TIME_PATTERN)
    note: str | None = Field(None, max_length=2000)


class ReplyRequest(BaseModel):
    response: str = Field(min_length=1, max_length=2000)

    @field_validator("response")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Response must not be blank")
        return value


class Resolution(BaseModel):
    """Outcome of a workflow call."""

    action: Action
    booking_id: str | None = None
    counter_offer: Action | None = None


def _fmt_price(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


def _first_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error['msg']}" if location else error["msg"]


class ActionWorkflow:
    """Owner- and customer-driven resolution of agent actions."""

    def __init__(
        self,
        store: AgentStore,
        *,
        notifier: NotificationDispatcher | None = None,
        broadcaster: RealtimeBroadcaster | None = None,
    ) -> None:
        self.store = store
        self._notifier = notifier
        self._broadcaster = broadcaster

    @property
    def notifier(self) -> NotificationDispatcher:
        return self._notifier or get_notifier()

    @property
    def broadcaster(self) -> RealtimeBroadcaster:
        return self._broadcaster or get_broadcaster()

    # ── Owner entry points ───────────────────────────────────────────

    def approve(self, action_id: str, *, now: datetime | None = None) -> Resolution:
        """Approve a booking proposal and create the booking.

        The swap and the booking insert share one transaction: if the slot
        was taken meanwhile (``BookingUnavailableError``) the action stays
        ``pending``.
        """
        now = now or datetime.now(UTC)
        with self.store.transaction() as tx:
            action = self._load_pending(tx, action_id, ActionType.BOOKING_APPROVAL)
            self._ensure_no_open_counter_offer(tx, action)
            conversation = self._conversation(tx, action)
            summary: BookingApprovalSummary = action.summary

            self._swap(tx, action_id, ActionStatus.APPROVED, now)
            booking = create_confirmed_booking(
                tx,
                venue_id=action.venue_id,
                event_date=summary.date,
                start_time=summary.start_time,
                end_time=summary.end_time,
                event_type=summary.event_type,
                guest_count=summary.guest_count,
                total_price=summary.price,
                customer_id=conversation.customer_id,
                action_id=action_id,
                now=now,
            )
            tx.set_action_booking(action_id, booking.id)

            lang = self._language(tx, action.venue_id)
            text = _MESSAGES[lang]
            tx.append_message(
                action.conversation_id,
                MessageRole.AGENT,
                text["approved"].format(
                    date=summary.date, start=summary.start_time, end=summary.end_time, price=_fmt_price(summary.price),
                ),
                now,
            )
            tx.set_conversation_status(action.conversation_id, ConversationStatus.COMPLETED)
            venue = tx.get_venue(action.venue_id)
            resolved = tx.get_action(action_id)

        logger.info("Action %s approved; booking %s created", action_id, booking.id)

        if conversation.customer_id:
            venue_name = venue.name if venue else text["venue_fallback"]
            self._notify(
                Notification(
                    recipient_id=conversation.customer_id,
                    category="agent_booking_approval",
                    headline=text["approved_headline"],
                    body=text["approved_body"].format(venue=venue_name, date=summary.date),
                    reference=NotificationReference(id=action_id),
                    extra={"booking_id": booking.id, "event_date": summary.date, "event_type": summary.event_type},
                )
            )
        self._broadcast(resolved, {"bookingId": booking.id})
        return Resolution(action=resolved, booking_id=booking.id)

    def decline(self, action_id: str, reason: str | None = None, *, now: datetime | None = None) -> Resolution:
        """Decline any pending action.

        On a counter-offer this withdraws it and the original booking
        approval becomes actionable again.
        """
        now = now or datetime.now(UTC)
        reason = (reason or "").strip() or None
        if reason and len(reason) > 2000:
            raise InvalidRequestError("reason: must be at most 2000 characters")

        with self.store.transaction() as tx:
            action = self._load_pending(tx, action_id)
            if action.action_type == ActionType.BOOKING_APPROVAL:
                self._ensure_no_open_counter_offer(tx, action)

            self._swap(tx, action_id, ActionStatus.DECLINED, now, owner_response={"reason": reason} if reason else None)

            text = _MESSAGES[self._language(tx, action.venue_id)]
            if action.action_type == ActionType.COUNTER_OFFER:
                note = text["counter_withdrawn"]
                next_status, only_if = ConversationStatus.WAITING_FOR_OWNER, ConversationStatus.ACTIVE
            else:
                note = text["declined_reason"].format(reason=reason) if reason else text["declined"]
                next_status, only_if = ConversationStatus.ACTIVE, ConversationStatus.WAITING_FOR_OWNER
            tx.append_message(action.conversation_id, MessageRole.SYSTEM, note, now)
            tx.set_conversation_status(action.conversation_id, next_status, only_if=only_if)
            resolved = tx.get_action(action_id)

        logger.info("Action %s (%s) declined", action_id, action.action_type.value)
        self._broadcast(resolved)
        return Resolution(action=resolved)

    def reply(self, action_id: str, response: str, *, now: datetime | None = None) -> Resolution:
        """Answer an escalation; the reply is fed back into the conversation."""
        try:
            response = ReplyRequest(response=response).response.strip()
        except ValidationError as exc:
            raise InvalidRequestError(_first_error(exc)) from exc
        now = now or datetime.now(UTC)

        with self.store.transaction() as tx:
            action = self._load_pending(tx, action_id, ActionType.ESCALATION)
            self._conversation(tx, action)
            self._swap(tx, action_id, ActionStatus.APPROVED, now, owner_response={"message": response})

            lang = self._language(tx, action.venue_id)
            tx.append_message(action.conversation_id, MessageRole.SYSTEM, OWNER_REPLY_PREFIX[lang] + response, now)
            tx.set_conversation_status(
                action.conversation_id, ConversationStatus.ACTIVE, only_if=ConversationStatus.WAITING_FOR_OWNER,
            )
            resolved = tx.get_action(action_id)

        logger.info("Escalation %s answered by owner", action_id)
        self._broadcast(resolved)
        return Resolution(action=resolved)

    def modify(
        self,
        action_id: str,
        *,
        adjusted_price: float | None = None,
        suggested_date: str | None = None,
        suggested_start_time: str | None = None,
        suggested_end_time: str | None = None,
        note: str | None = None,
        now: datetime | None = None,
    ) -> Resolution:
        """Send the customer a counter-offer based on a pending booking proposal."""
        try:
            changes = ModifyRequest(
                adjusted_price=adjusted_price,
                suggested_date=suggested_date,
                suggested_start_time=suggested_start_time,
                suggested_end_time=suggested_end_time,
                note=note,
            )
        except ValidationError as exc:
            raise InvalidRequestError(_first_error(exc)) from exc
        now = now or datetime.now(UTC)

        with self.store.transaction() as tx:
            action = self._load_pending(tx, action_id, ActionType.BOOKING_APPROVAL)
            self._ensure_no_open_counter_offer(tx, action)
            conversation = self._conversation(tx, action)
            original: BookingApprovalSummary = action.summary

            offer = CounterOfferSummary(
                original_action_id=action_id,
                event_type=original.event_type,
                guest_count=original.guest_count,
                date=changes.suggested_date or original.date,
                start_time=changes.suggested_start_time or original.start_time,
                end_time=changes.suggested_end_time or original.end_time,
                price=changes.adjusted_price if changes.adjusted_price is not None else original.price,
                extras=original.extras,
                customer_note=original.customer_note,
                customer_name=original.customer_name,
                customer_email=original.customer_email,
                owner_note=changes.note,
            )
            if offer.start_time >= offer.end_time:
                raise InvalidRequestError("suggested_end_time: must be after the start time")

            counter = tx.create_action(
                conversation_id=action.conversation_id,
                venue_id=action.venue_id,
                action_type=ActionType.COUNTER_OFFER,
                summary=offer,
                now=now,
                original_action_id=action_id,
            )

            lang = self._language(tx, action.venue_id)
            text = _MESSAGES[lang]
            message = text["counter_offer"].format(
                date=offer.date, start=offer.start_time, end=offer.end_time, price=_fmt_price(offer.price),
            )
            if offer.owner_note:
                message += "\n" + text["owner_note"].format(note=offer.owner_note)
            tx.append_message(action.conversation_id, MessageRole.AGENT, message, now)
            tx.set_conversation_status(
                action.conversation_id, ConversationStatus.ACTIVE, only_if=ConversationStatus.WAITING_FOR_OWNER,
            )
            venue = tx.get_venue(action.venue_id)

        logger.info("Counter-offer %s created for action %s", counter.id, action_id)

        if conversation.customer_id:
            venue_name = venue.name if venue else text["venue_fallback"]
            self._notify(
                Notification(
                    recipient_id=conversation.customer_id,
                    category="agent_counter_offer",
                    headline=text["counter_headline"],
                    body=text["counter_body"].format(venue=venue_name),
                    reference=NotificationReference(id=counter.id),
                    extra={"venue_name": venue_name, "original_action_id": action_id},
                )
            )
        self._broadcast(
            action,
            {"counterOfferId": counter.id},
            owner_response=changes.model_dump(exclude_none=True),
        )
        return Resolution(action=action, counter_offer=counter)

    # ── Customer entry points ────────────────────────────────────────

    def accept_counter_offer(self, counter_offer_id: str, *, now: datetime | None = None) -> Resolution:
        """Customer accepts: the counter-offer is approved and booked, the original becomes ``modified``."""
        now = now or datetime.now(UTC)
        with self.store.transaction() as tx:
            counter = self._load_pending(tx, counter_offer_id, ActionType.COUNTER_OFFER)
            conversation = self._conversation(tx, counter)
            offer: CounterOfferSummary = counter.summary

            self._swap(tx, counter_offer_id, ActionStatus.APPROVED, now)
            self._swap(
                tx,
                offer.original_action_id,
                ActionStatus.MODIFIED,
                now,
                owner_response={"counterOfferId": counter_offer_id, "customerDecision": "accepted"},
            )
            booking = create_confirmed_booking(
                tx,
                venue_id=counter.venue_id,
                event_date=offer.date,
                start_time=offer.start_time,
                end_time=offer.end_time,
                event_type=offer.event_type,
                guest_count=offer.guest_count,
                total_price=offer.price,
                customer_id=conversation.customer_id,
                action_id=counter_offer_id,
                now=now,
            )
            tx.set_action_booking(counter_offer_id, booking.id)

            text = _MESSAGES[self._language(tx, counter.venue_id)]
            tx.append_message(
                counter.conversation_id,
                MessageRole.AGENT,
                text["counter_accepted"].format(date=offer.date, start=offer.start_time, end=offer.end_time),
                now,
            )
            tx.set_conversation_status(counter.conversation_id, ConversationStatus.COMPLETED)
            resolved = tx.get_action(counter_offer_id)

        logger.info("Counter-offer %s accepted; booking %s created", counter_offer_id, booking.id)
        self._broadcast(resolved, {"bookingId": booking.id})
        return Resolution(action=resolved, booking_id=booking.id)

    def decline_counter_offer(self, counter_offer_id: str, *, now: datetime | None = None) -> Resolution:
        """Customer declines: both the counter-offer and its original are closed."""
        now = now or datetime.now(UTC)
        with self.store.transaction() as tx:
            counter = self._load_pending(tx, counter_offer_id, ActionType.COUNTER_OFFER)
            offer: CounterOfferSummary = counter.summary

            self._swap(tx, counter_offer_id, ActionStatus.DECLINED, now)
            self._swap(
                tx,
                offer.original_action_id,
                ActionStatus.MODIFIED,
                now,
                owner_response={"counterOfferId": counter_offer_id, "customerDecision": "declined"},
            )

            text = _MESSAGES[self._language(tx, counter.venue_id)]
            tx.append_message(counter.conversation_id, MessageRole.SYSTEM, text["counter_declined"], now)
            tx.set_conversation_status(counter.conversation_id, ConversationStatus.ACTIVE)
            resolved = tx.get_action(counter_offer_id)

        logger.info("Counter-offer %s declined by customer", counter_offer_id)
        self._broadcast(resolved)
        return Resolution(action=resolved)

    # ── Maintenance & owner feed ─────────────────────────────────────

    def expire_stale_actions(self, *, now: datetime | None = None, max_age: timedelta | None = None) -> list[str]:
        """Expire pending actions older than *max_age* and conversations past their TTL."""
        now = now or datetime.now(UTC)
        cutoff = now - (max_age or timedelta(hours=ACTION_TTL_HOURS))

        with self.store.transaction() as tx:
            expired: list[str] = []
            # A stale original only becomes eligible once its counter-offer has expired.
            while batch := [
                action_id
                for action_id in tx.stale_pending_action_ids(cutoff)
                if tx.resolve_action(action_id, ActionStatus.EXPIRED, now)
            ]:
                expired.extend(batch)
            conversations = tx.expire_conversations(now)
            resolved = [tx.get_action(action_id) for action_id in expired]

        if expired or conversations:
            logger.info("Expired %d action(s) and %d conversation(s)", len(expired), conversations)
        for action in resolved:
            self._broadcast(action)
        return expired

    def list_actions(
        self, venue_id: str | None = None, status: ActionStatus | None = None, limit: int = 50,
    ) -> list[Action]:
        with self.store.transaction() as tx:
            return tx.list_actions(venue_id=venue_id, status=status, limit=limit)

    def pending_action_count(self, venue_ids: list[str] | None = None) -> int:
        with self.store.transaction() as tx:
            return tx.pending_action_count(venue_ids)

    # ── Internals ────────────────────────────────────────────────────

    @staticmethod
    def _load_pending(tx: StoreTransaction, action_id: str, expected: ActionType | None = None) -> Action:
        action = tx.get_action(action_id)
        if action is None:
            raise ActionNotFoundError(action_id)
        if action.status != ActionStatus.PENDING:
            raise ActionAlreadyResolvedError(action_id, action.status.value)
        if expected is not None and action.action_type != expected:
            raise InvalidRequestError(
                f"Action {action_id} is a {action.action_type.value}, expected {expected.value}"
            )
        return action

    @staticmethod
    def _ensure_no_open_counter_offer(tx: StoreTransaction, action: Action) -> None:
        counter = tx.pending_counter_offer_for(action.id)
        if counter is not None:
            raise ConflictError(f"Action {action.id} is awaiting the customer's answer to counter-offer {counter.id}")

    @staticmethod
    def _swap(
        tx: StoreTransaction,
        action_id: str,
        status: ActionStatus,
        now: datetime,
        *,
        owner_response: dict[str, Any] | None = None,
    ) -> None:
        if tx.resolve_action(action_id, status, now, owner_response=owner_response):
            return
        current = tx.get_action(action_id)
        if current is None:
            raise ActionNotFoundError(action_id)
        logger.warning("Lost resolution race on action %s (now %s)", action_id, current.status.value)
        raise ActionAlreadyResolvedError(action_id, current.status.value)

    @staticmethod
    def _conversation(tx: StoreTransaction, action: Action) -> Conversation:
        conversation = tx.get_conversation(action.conversation_id, with_messages=False)
        if conversation is None:
            raise ConversationNotFoundError(action.conversation_id)
        return conversation

    @staticmethod
    def _language(tx: StoreTransaction, venue_id: str) -> str:
        config = tx.get_agent_config(venue_id)
        return config.language if config is not None else "sv"

    def _notify(self, notification: Notification) -> None:
        self.notifier.dispatch(notification)

    def _broadcast(
        self, action: Action, extra: dict[str, Any] | None = None, *, owner_response: Any = None,
    ) -> None:
        payload = {
            "actionId": action.id,
            "status": action.status.value,
            "ownerResponse": owner_response if owner_response is not None else action.owner_response,
        }
        payload.update(extra or {})
        self.broadcaster.broadcast(action.conversation_id, payload)
