"""Tool dispatch for the venue agent.

``execute_agent_tool`` is the only way the model reaches venue state.  It
validates the model's arguments against a pydantic schema, routes to the
resolver or proposal tool, and converts every failure into an
``{"error": message}`` result so one broken tool call never aborts the turn.

``TOOL_SPECS`` describes the same tools in the format the chat model is
bound with (see ``venue_agent.agent``).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from venue_agent.models import AgentConfig, VenueProfile
from venue_agent.services.metrics import metrics
from venue_agent.services.notifications import NotificationDispatcher
from venue_agent.services.store import AgentStore
from venue_agent.tools.availability import check_availability
from venue_agent.tools.pricing import calculate_price
from venue_agent.tools.proposals import escalate_to_owner, propose_booking
from venue_agent.tools.venue_info import get_venue_info

logger = logging.getLogger(__name__)

_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


@dataclass
class ToolContext:
    """Everything a tool needs for one conversation turn."""

    venue_id: str
    conversation_id: str
    venue: VenueProfile
    config: AgentConfig
    store: AgentStore
    today: date
    customer_id: str | None = None
    notifier: NotificationDispatcher | None = None
    now: datetime | None = None

    def current_time(self) -> datetime:
        return self.now or datetime.now(UTC)


# ── Argument schemas ─────────────────────────────────────────────────


class _ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CheckAvailabilityArgs(_ToolArgs):
    date: str = Field(pattern=_DATE_PATTERN, description="Date in YYYY-MM-DD format")
    start_time: str | None = Field(None, alias="startTime", pattern=_TIME_PATTERN, description="Optional start time HH:MM")
    end_time: str | None = Field(None, alias="endTime", pattern=_TIME_PATTERN, description="Optional end time HH:MM")


class CalculatePriceArgs(_ToolArgs):
    guest_count: int = Field(alias="guestCount", ge=1, description="Number of guests")
    duration_hours: float = Field(alias="durationHours", gt=0, description="Event duration in hours")
    event_type: str = Field(alias="eventType", description="Type of event")
    package_name: str | None = Field(None, alias="packageName", description="Optional package name")


class GetVenueInfoArgs(_ToolArgs):
    model_config = ConfigDict(str_strip_whitespace=True)

    topic: str = Field(min_length=1, description="What to look up")


class ProposeBookingArgs(_ToolArgs):
    date: str = Field(pattern=_DATE_PATTERN, description="Event date YYYY-MM-DD")
    start_time: str = Field(alias="startTime", pattern=_TIME_PATTERN, description="Start time HH:MM")
    end_time: str = Field(alias="endTime", pattern=_TIME_PATTERN, description="End time HH:MM")
    guest_count: int = Field(alias="guestCount", ge=1, description="Number of guests")
    event_type: str = Field(alias="eventType", description="Event type")
    price: float = Field(ge=0, description="Total price including platform fee")
    extras: list[str] | None = Field(None, description="Additional services")
    customer_note: str | None = Field(None, alias="customerNote", description="Optional customer note")


class EscalateToOwnerArgs(_ToolArgs):
    reason: str = Field(min_length=1, description="Why this needs owner input")
    customer_request: str = Field(alias="customerRequest", min_length=1, description="What the customer wants")
    context: dict[str, Any] | None = Field(None, description="Additional context")


# ── Handlers ─────────────────────────────────────────────────────────


def _check_availability(args: CheckAvailabilityArgs, ctx: ToolContext) -> dict[str, Any]:
    with ctx.store.transaction() as tx:
        return dict(
            check_availability(
                tx,
                ctx.venue_id,
                args.date,
                ctx.today,
                start_time=args.start_time,
                end_time=args.end_time,
                language=ctx.config.language,
            )
        )


def _calculate_price(args: CalculatePriceArgs, ctx: ToolContext) -> dict[str, Any]:
    breakdown = calculate_price(
        args.guest_count,
        args.duration_hours,
        args.event_type,
        ctx.config.pricing_rules,
        ctx.venue,
        package_name=args.package_name,
    )
    return breakdown.to_tool_result()


def _get_venue_info(args: GetVenueInfoArgs, ctx: ToolContext) -> dict[str, Any]:
    return dict(get_venue_info(args.topic, ctx.venue, ctx.config))


def _propose_booking(args: ProposeBookingArgs, ctx: ToolContext) -> dict[str, Any]:
    if args.start_time >= args.end_time:
        raise ValueError("endTime must be after startTime")
    return propose_booking(
        ctx.store,
        venue=ctx.venue,
        conversation_id=ctx.conversation_id,
        date=args.date,
        start_time=args.start_time,
        end_time=args.end_time,
        guest_count=args.guest_count,
        event_type=args.event_type,
        price=args.price,
        extras=args.extras,
        customer_note=args.customer_note,
        now=ctx.current_time(),
        language=ctx.config.language,
        notifier=ctx.notifier,
    )


def _escalate_to_owner(args: EscalateToOwnerArgs, ctx: ToolContext) -> dict[str, Any]:
    return escalate_to_owner(
        ctx.store,
        venue=ctx.venue,
        conversation_id=ctx.conversation_id,
        reason=args.reason,
        customer_request=args.customer_request,
        context=args.context,
        now=ctx.current_time(),
        language=ctx.config.language,
        notifier=ctx.notifier,
    )


@dataclass(frozen=True)
class _ToolEntry:
    description: str
    schema: type[_ToolArgs]
    handler: Any


_TOOLS: dict[str, _ToolEntry] = {
    "check_availability": _ToolEntry(
        "Check if a specific date (optionally a time window) is available for booking at this venue.",
        CheckAvailabilityArgs,
        _check_availability,
    ),
    "calculate_price": _ToolEntry(
        "Calculate the price for an event based on guest count, duration and type.",
        CalculatePriceArgs,
        _calculate_price,
    ),
    "get_venue_info": _ToolEntry(
        "Look up specific information about this venue (parking, capacity, policies, catering ...).",
        GetVenueInfoArgs,
        _get_venue_info,
    ),
    "propose_booking": _ToolEntry(
        "Send a booking proposal to the venue owner for approval. Only call when the customer has confirmed.",
        ProposeBookingArgs,
        _propose_booking,
    ),
    "escalate_to_owner": _ToolEntry(
        "Escalate to the venue owner when a request is outside your authority.",
        EscalateToOwnerArgs,
        _escalate_to_owner,
    ),
}

TOOL_NAMES: tuple[str, ...] = tuple(_TOOLS)

# Anthropic tool format: the model sees the camelCase argument names
TOOL_SPECS: list[dict[str, Any]] = [
    {
        "name": name,
        "description": entry.description,
        "input_schema": entry.schema.model_json_schema(by_alias=True),
    }
    for name, entry in _TOOLS.items()
]


def execute_agent_tool(name: str, args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
    """Run tool *name* with *args*.  Never raises; failures come back as ``{"error": ...}``."""
    entry = _TOOLS.get(name)
    if entry is None:
        logger.warning("Model requested unknown tool %r", name)
        return {"error": f"Unknown tool: {name}"}

    t0 = time.perf_counter()
    try:
        parsed = entry.schema.model_validate(args or {})
        result = entry.handler(parsed, context)
    except Exception as exc:
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_failure("tool", name, error_type=type(exc).__name__, latency_ms=elapsed)
        logger.exception("Error executing tool %s", name)
        return {"error": str(exc) or "An unexpected error occurred"}

    elapsed = (time.perf_counter() - t0) * 1000
    metrics.record_success("tool", name, latency_ms=elapsed)
    logger.debug("Tool %s -> %s (%.0fms)", name, result, elapsed)
    return result
