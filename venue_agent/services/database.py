"""SQLAlchemy engine, session factory and table definitions.

SQLite is used locally and in tests; any SQLAlchemy-supported database works
in production via ``DATABASE_URL``.  Dates are stored as ISO ``YYYY-MM-DD``
strings and times as ``HH:MM`` so range and overlap checks are plain string
comparisons in SQL.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

Base = declarative_base()


class VenueRow(Base):
    __tablename__ = "venues"

    id = Column(String(64), primary_key=True)
    owner_id = Column(String(64), nullable=True, index=True)
    profile = Column(JSON, nullable=False)


class AgentConfigRow(Base):
    __tablename__ = "venue_agent_configs"

    venue_id = Column(String(64), ForeignKey("venues.id", ondelete="CASCADE"), primary_key=True)
    config = Column(JSON, nullable=False)


class BlockedDateRow(Base):
    __tablename__ = "venue_blocked_dates"
    __table_args__ = (Index("ix_blocked_venue_date", "venue_id", "blocked_date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    venue_id = Column(String(64), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    blocked_date = Column(String(10), nullable=False)
    reason = Column(Text, nullable=True)


class BookingRow(Base):
    __tablename__ = "booking_requests"
    __table_args__ = (Index("ix_booking_venue_date", "venue_id", "event_date", "status"),)

    id = Column(String(64), primary_key=True)
    venue_id = Column(String(64), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    event_date = Column(String(10), nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    event_type = Column(String(64), nullable=False)
    guest_count = Column(Integer, nullable=False)
    status = Column(String(32), nullable=False, default="pending")  # pending | accepted | declined | cancelled
    total_price = Column(Float, nullable=True)
    customer_id = Column(String(64), nullable=True)
    action_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ConversationRow(Base):
    __tablename__ = "agent_conversations"

    id = Column(String(64), primary_key=True)
    venue_id = Column(String(64), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(String(64), nullable=True, index=True)
    status = Column(String(32), nullable=False, default="active")
    collected_booking_data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)


class MessageRow(Base):
    """Append-only message log; the autoincrement id is the arrival order."""

    __tablename__ = "agent_messages"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(64), nullable=False, unique=True)
    conversation_id = Column(
        String(64), ForeignKey("agent_conversations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    role = Column(String(16), nullable=False)  # user | agent | system
    content = Column(Text, nullable=False)
    tool_calls = Column(JSON, nullable=True)
    tool_results = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ActionRow(Base):
    __tablename__ = "agent_actions"
    __table_args__ = (Index("ix_action_venue_status", "venue_id", "status"),)

    id = Column(String(64), primary_key=True)
    conversation_id = Column(
        String(64), ForeignKey("agent_conversations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    venue_id = Column(String(64), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    action_type = Column(String(32), nullable=False)  # booking_approval | escalation | counter_offer
    status = Column(String(32), nullable=False, default="pending")
    summary = Column(JSON, nullable=False)
    owner_response = Column(JSON, nullable=True)
    booking_id = Column(String(64), nullable=True)
    # Set on counter offers: the booking approval they answer.
    original_action_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)


def create_db_engine(url: str) -> Engine:
    """Create an engine suited to *url*.

    In-memory SQLite needs a single shared connection (``StaticPool``) or
    every session would see an empty database.
    """
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
        return create_engine(url, connect_args=connect_args, poolclass=NullPool)

    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=engine)
