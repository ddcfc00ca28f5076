"""Durable state access for the agent core.

All shared state lives in the database; nothing is cached in process memory
between requests.  Callers group work into a unit of work::

    with store.transaction() as tx:
        action = tx.create_action(...)
        tx.set_conversation_status(conversation_id, ConversationStatus.WAITING_FOR_OWNER)

Everything inside the ``with`` block commits together or not at all.

Action resolution is a compare-and-swap: ``resolve_action`` issues
``UPDATE ... WHERE id = :id AND status = 'pending'`` and reports whether a
row was affected, so two concurrent resolutions can never both succeed.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import TypeAdapter
from sqlalchemy import exists, func, select, update
from sqlalchemy.orm import Session, aliased, sessionmaker

from venue_agent.models import (
    Action,
    ActionStatus,
    ActionSummary,
    ActionType,
    AgentConfig,
    Booking,
    CalendarSnapshot,
    CollectedBookingData,
    Conversation,
    ConversationMessage,
    ConversationStatus,
    MessageRole,
    VenueProfile,
)
from venue_agent.services.database import (
    ActionRow,
    AgentConfigRow,
    BlockedDateRow,
    BookingRow,
    ConversationRow,
    MessageRow,
    VenueRow,
    create_db_engine,
    create_session_factory,
    init_db,
)

logger = logging.getLogger(__name__)

# Booking statuses that occupy the calendar
ACTIVE_BOOKING_STATUSES = ("pending", "accepted")

_summary_adapter: TypeAdapter = TypeAdapter(ActionSummary)


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; every timestamp we write is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def new_id() -> str:
    return str(uuid.uuid4())


class StoreTransaction:
    """All read/write operations, bound to one SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # ── Venues & configuration ───────────────────────────────────────

    def get_venue(self, venue_id: str) -> VenueProfile | None:
        row = self.session.get(VenueRow, venue_id)
        if row is None:
            return None
        return VenueProfile.model_validate({**row.profile, "id": row.id, "owner_id": row.owner_id})

    def upsert_venue(self, venue: VenueProfile) -> None:
        profile = venue.model_dump(mode="json", exclude={"id", "owner_id"})
        row = self.session.get(VenueRow, venue.id)
        if row is None:
            self.session.add(VenueRow(id=venue.id, owner_id=venue.owner_id, profile=profile))
        else:
            row.owner_id = venue.owner_id
            row.profile = profile
        self.session.flush()

    def get_agent_config(self, venue_id: str) -> AgentConfig | None:
        row = self.session.get(AgentConfigRow, venue_id)
        if row is None:
            return None
        return AgentConfig.model_validate({**row.config, "venue_id": venue_id})

    def upsert_agent_config(self, config: AgentConfig) -> None:
        data = config.model_dump(mode="json")
        row = self.session.get(AgentConfigRow, config.venue_id)
        if row is None:
            self.session.add(AgentConfigRow(venue_id=config.venue_id, config=data))
        else:
            row.config = data
        self.session.flush()

    # ── Calendar ─────────────────────────────────────────────────────

    def add_blocked_date(self, venue_id: str, blocked_date: str, reason: str | None = None) -> None:
        self.session.add(BlockedDateRow(venue_id=venue_id, blocked_date=blocked_date, reason=reason))
        self.session.flush()

    def blocked_date_reasons(self, venue_id: str, day: str) -> list[str | None]:
        """Reasons for every block on *day* (empty list when not blocked)."""
        rows = self.session.execute(
            select(BlockedDateRow.reason).where(
                BlockedDateRow.venue_id == venue_id,
                BlockedDateRow.blocked_date == day,
            )
        ).all()
        return [r.reason for r in rows]

    def blocked_dates_between(self, venue_id: str, start: str, end: str) -> set[str]:
        rows = self.session.execute(
            select(BlockedDateRow.blocked_date).where(
                BlockedDateRow.venue_id == venue_id,
                BlockedDateRow.blocked_date >= start,
                BlockedDateRow.blocked_date <= end,
            )
        ).scalars()
        return set(rows)

    def booked_dates_between(self, venue_id: str, start: str, end: str) -> set[str]:
        rows = self.session.execute(
            select(BookingRow.event_date).where(
                BookingRow.venue_id == venue_id,
                BookingRow.event_date >= start,
                BookingRow.event_date <= end,
                BookingRow.status.in_(ACTIVE_BOOKING_STATUSES),
            )
        ).scalars()
        return set(rows)

    def conflicting_bookings(
        self,
        venue_id: str,
        day: str,
        start_time: str | None = None,
        end_time: str | None = None,
    ) -> list[Booking]:
        """Active bookings on *day* overlapping ``[start_time, end_time)``.

        Without a full window every active booking on the day conflicts.
        """
        query = select(BookingRow).where(
            BookingRow.venue_id == venue_id,
            BookingRow.event_date == day,
            BookingRow.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        if start_time and end_time:
            query = query.where(BookingRow.start_time < end_time, BookingRow.end_time > start_time)
        return [self._booking(row) for row in self.session.execute(query).scalars()]

    def add_booking(
        self,
        *,
        venue_id: str,
        event_date: str,
        start_time: str,
        end_time: str,
        event_type: str,
        guest_count: int,
        status: str,
        now: datetime,
        total_price: float | None = None,
        customer_id: str | None = None,
        action_id: str | None = None,
    ) -> Booking:
        row = BookingRow(
            id=new_id(),
            venue_id=venue_id,
            event_date=event_date,
            start_time=start_time,
            end_time=end_time,
            event_type=event_type,
            guest_count=guest_count,
            status=status,
            total_price=total_price,
            customer_id=customer_id,
            action_id=action_id,
            created_at=now,
        )
        self.session.add(row)
        self.session.flush()
        return self._booking(row)

    def calendar_snapshot(self, venue_id: str, start: str, end: str) -> CalendarSnapshot:
        return CalendarSnapshot(
            blocked_dates=sorted(self.blocked_dates_between(venue_id, start, end)),
            booked_dates=sorted(self.booked_dates_between(venue_id, start, end)),
        )

    # ── Conversations ────────────────────────────────────────────────

    def create_conversation(
        self, venue_id: str, customer_id: str | None, now: datetime, ttl: timedelta,
    ) -> Conversation:
        row = ConversationRow(
            id=new_id(),
            venue_id=venue_id,
            customer_id=customer_id,
            status=ConversationStatus.ACTIVE.value,
            collected_booking_data={},
            created_at=now,
            expires_at=now + ttl,
        )
        self.session.add(row)
        self.session.flush()
        return self._conversation(row, [])

    def get_conversation(self, conversation_id: str, *, with_messages: bool = True) -> Conversation | None:
        row = self.session.get(ConversationRow, conversation_id)
        if row is None:
            return None
        messages = self.messages(conversation_id) if with_messages else []
        return self._conversation(row, messages)

    def find_resumable_conversation(
        self,
        venue_id: str,
        now: datetime,
        conversation_id: str | None = None,
        customer_id: str | None = None,
    ) -> Conversation | None:
        """An unexpired conversation by id, else the customer's newest active one."""
        if conversation_id:
            row = self.session.execute(
                select(ConversationRow).where(
                    ConversationRow.id == conversation_id,
                    ConversationRow.venue_id == venue_id,
                    ConversationRow.status != ConversationStatus.EXPIRED.value,
                )
            ).scalar_one_or_none()
            if row is not None and _aware(row.expires_at) > now:
                return self._conversation(row, self.messages(row.id))

        if customer_id:
            rows = self.session.execute(
                select(ConversationRow)
                .where(
                    ConversationRow.venue_id == venue_id,
                    ConversationRow.customer_id == customer_id,
                    ConversationRow.status == ConversationStatus.ACTIVE.value,
                )
                .order_by(ConversationRow.created_at.desc())
            ).scalars()
            for row in rows:
                if _aware(row.expires_at) > now:
                    return self._conversation(row, self.messages(row.id))
        return None

    def messages(self, conversation_id: str) -> list[ConversationMessage]:
        rows = self.session.execute(
            select(MessageRow)
            .where(MessageRow.conversation_id == conversation_id)
            .order_by(MessageRow.seq)
        ).scalars()
        return [self._message(row) for row in rows]

    def append_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        now: datetime,
        *,
        tool_calls: list[dict[str, Any]] | None = None,
        tool_results: list[dict[str, Any]] | None = None,
    ) -> ConversationMessage:
        row = MessageRow(
            id=f"{role.value}_{uuid.uuid4().hex[:12]}",
            conversation_id=conversation_id,
            role=role.value,
            content=content,
            tool_calls=tool_calls,
            tool_results=tool_results,
            created_at=now,
        )
        self.session.add(row)
        self.session.flush()
        return self._message(row)

    def set_conversation_status(
        self,
        conversation_id: str,
        status: ConversationStatus,
        *,
        only_if: ConversationStatus | None = None,
    ) -> bool:
        """Set the status; with *only_if* the write is conditional on the current status."""
        stmt = update(ConversationRow).where(ConversationRow.id == conversation_id)
        if only_if is not None:
            stmt = stmt.where(ConversationRow.status == only_if.value)
        result = self.session.execute(stmt.values(status=status.value))
        return result.rowcount > 0

    def update_collected_data(self, conversation_id: str, data: CollectedBookingData) -> None:
        self.session.execute(
            update(ConversationRow)
            .where(ConversationRow.id == conversation_id)
            .values(collected_booking_data=data.model_dump(mode="json", exclude_none=True))
        )

    def expire_conversations(self, now: datetime) -> int:
        """Mark open conversations past ``expires_at`` as expired."""
        result = self.session.execute(
            update(ConversationRow)
            .where(
                ConversationRow.expires_at <= now,
                ConversationRow.status.in_(
                    [ConversationStatus.ACTIVE.value, ConversationStatus.WAITING_FOR_OWNER.value]
                ),
            )
            .values(status=ConversationStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def link_customer(self, conversation_id: str, customer_id: str) -> bool:
        result = self.session.execute(
            update(ConversationRow)
            .where(ConversationRow.id == conversation_id, ConversationRow.customer_id.is_(None))
            .values(customer_id=customer_id)
        )
        return result.rowcount > 0

    # ── Actions ──────────────────────────────────────────────────────

    def create_action(
        self,
        *,
        conversation_id: str,
        venue_id: str,
        action_type: ActionType,
        summary: ActionSummary,
        now: datetime,
        original_action_id: str | None = None,
    ) -> Action:
        row = ActionRow(
            id=new_id(),
            conversation_id=conversation_id,
            venue_id=venue_id,
            action_type=action_type.value,
            status=ActionStatus.PENDING.value,
            summary=summary.model_dump(mode="json"),
            original_action_id=original_action_id,
            created_at=now,
        )
        self.session.add(row)
        self.session.flush()
        return self._action(row)

    def get_action(self, action_id: str) -> Action | None:
        row = self.session.get(ActionRow, action_id, populate_existing=True)
        return self._action(row) if row is not None else None

    def pending_counter_offer_for(self, action_id: str) -> Action | None:
        row = self.session.execute(
            select(ActionRow).where(
                ActionRow.original_action_id == action_id,
                ActionRow.action_type == ActionType.COUNTER_OFFER.value,
                ActionRow.status == ActionStatus.PENDING.value,
            )
        ).scalars().first()
        return self._action(row) if row is not None else None

    def resolve_action(
        self,
        action_id: str,
        status: ActionStatus,
        now: datetime,
        *,
        owner_response: dict[str, Any] | None = None,
        booking_id: str | None = None,
    ) -> bool:
        """Compare-and-swap ``pending -> status``.  ``False`` means someone got there first."""
        values: dict[str, Any] = {"status": status.value, "resolved_at": now}
        if owner_response is not None:
            values["owner_response"] = owner_response
        if booking_id is not None:
            values["booking_id"] = booking_id
        result = self.session.execute(
            update(ActionRow)
            .where(ActionRow.id == action_id, ActionRow.status == ActionStatus.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def set_action_booking(self, action_id: str, booking_id: str) -> None:
        self.session.execute(
            update(ActionRow)
            .where(ActionRow.id == action_id)
            .values(booking_id=booking_id)
            .execution_options(synchronize_session=False)
        )

    def list_actions(
        self,
        venue_id: str | None = None,
        status: ActionStatus | None = None,
        limit: int = 50,
    ) -> list[Action]:
        query = select(ActionRow).order_by(ActionRow.created_at.desc()).limit(limit)
        if venue_id:
            query = query.where(ActionRow.venue_id == venue_id)
        if status:
            query = query.where(ActionRow.status == status.value)
        return [self._action(row) for row in self.session.execute(query).scalars()]

    def pending_action_count(self, venue_ids: Iterable[str] | None = None) -> int:
        query = select(func.count(ActionRow.id)).where(ActionRow.status == ActionStatus.PENDING.value)
        if venue_ids is not None:
            query = query.where(ActionRow.venue_id.in_(list(venue_ids)))
        return self.session.execute(query).scalar_one()

    def stale_pending_action_ids(self, cutoff: datetime) -> list[str]:
        """Pending actions created before *cutoff*, oldest first.

        An action with an open counter-offer is left out; it stays pending
        until the counter-offer is answered or has expired itself.
        """
        counter = aliased(ActionRow)
        open_counter_offer = exists().where(
            counter.original_action_id == ActionRow.id,
            counter.status == ActionStatus.PENDING.value,
        )
        rows = self.session.execute(
            select(ActionRow.id)
            .where(
                ActionRow.status == ActionStatus.PENDING.value,
                ActionRow.created_at < cutoff,
                ~open_counter_offer,
            )
            .order_by(ActionRow.created_at)
        ).scalars()
        return list(rows)

    # ── Row conversion ───────────────────────────────────────────────

    @staticmethod
    def _booking(row: BookingRow) -> Booking:
        return Booking(
            id=row.id,
            venue_id=row.venue_id,
            event_date=row.event_date,
            start_time=row.start_time,
            end_time=row.end_time,
            event_type=row.event_type,
            guest_count=row.guest_count,
            status=row.status,
            total_price=row.total_price,
            customer_id=row.customer_id,
            action_id=row.action_id,
        )

    @staticmethod
    def _message(row: MessageRow) -> ConversationMessage:
        return ConversationMessage(
            id=row.id,
            role=MessageRole(row.role),
            content=row.content,
            tool_calls=row.tool_calls,
            tool_results=row.tool_results,
            timestamp=_aware(row.created_at),
        )

    @staticmethod
    def _conversation(row: ConversationRow, messages: list[ConversationMessage]) -> Conversation:
        return Conversation(
            id=row.id,
            venue_id=row.venue_id,
            customer_id=row.customer_id,
            status=ConversationStatus(row.status),
            messages=messages,
            collected_booking_data=CollectedBookingData.model_validate(row.collected_booking_data or {}),
            created_at=_aware(row.created_at),
            expires_at=_aware(row.expires_at),
        )

    @staticmethod
    def _action(row: ActionRow) -> Action:
        return Action(
            id=row.id,
            conversation_id=row.conversation_id,
            venue_id=row.venue_id,
            action_type=ActionType(row.action_type),
            status=ActionStatus(row.status),
            summary=_summary_adapter.validate_python(row.summary),
            owner_response=row.owner_response,
            booking_id=row.booking_id,
            created_at=_aware(row.created_at),
            resolved_at=_aware(row.resolved_at),
        )


class AgentStore:
    """Factory for units of work against one database."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, url: str) -> AgentStore:
        """Build an engine for *url*, create missing tables and wrap it."""
        engine = create_db_engine(url)
        init_db(engine)
        logger.debug("Agent store ready on %s", engine.url.render_as_string(hide_password=True))
        return cls(create_session_factory(engine))

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        session = self._session_factory()
        try:
            yield StoreTransaction(session)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
