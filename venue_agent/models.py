"""Domain models for venues, agent configuration, conversations and actions.

Everything the core reads or persists is described here as a pydantic model
so the same types flow through the tools, the store and the HTTP layer.
Action summaries are a tagged union keyed by ``kind`` (always equal to the
action's ``action_type``) so each resolution path can match on it.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


# ── Enums ────────────────────────────────────────────────────────────


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    WAITING_FOR_OWNER = "waiting_for_owner"
    COMPLETED = "completed"
    EXPIRED = "expired"


class MessageRole(str, Enum):
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class ActionType(str, Enum):
    BOOKING_APPROVAL = "booking_approval"
    ESCALATION = "escalation"
    COUNTER_OFFER = "counter_offer"


class ActionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    MODIFIED = "modified"
    EXPIRED = "expired"


class EventTypeStatus(str, Enum):
    WELCOME = "welcome"
    DECLINED = "declined"
    ASK_OWNER = "ask_owner"


# ── Venue & configuration ────────────────────────────────────────────


class VenueProfile(BaseModel):
    """Descriptive and pricing data for a venue, owned by its operator."""

    id: str
    owner_id: str | None = None
    name: str
    description: str | None = None
    area: str | None = None
    city: str = ""
    address: str = ""
    capacity_standing: int | None = None
    capacity_seated: int | None = None
    capacity_conference: int | None = None
    min_guests: int = 1
    amenities: list[str] = Field(default_factory=list)
    venue_types: list[str] = Field(default_factory=list)
    vibes: list[str] = Field(default_factory=list)
    price_per_hour: float | None = None
    price_half_day: float | None = None
    price_full_day: float | None = None
    price_evening: float | None = None
    price_notes: str | None = None
    website: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None


class PricingPackage(BaseModel):
    name: str
    price: float
    description: str = ""
    per_person: bool = False


class PricingRules(BaseModel):
    base_price: float | None = None
    per_person_rate: float | None = None
    minimum_spend: float | None = None
    packages: list[PricingPackage] = Field(default_factory=list)
    notes: str | None = None


class BookingParams(BaseModel):
    """Guest, duration and advance-notice bounds. Weekdays: 0 = Sunday."""

    min_guests: int | None = None
    max_guests: int | None = None
    min_duration_hours: float | None = None
    max_duration_hours: float | None = None
    min_advance_days: int | None = None
    max_advance_months: int | None = None
    blocked_weekdays: list[int] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(
            value not in (None, [])
            for value in self.model_dump().values()
        )


class EventTypeConfig(BaseModel):
    type: str
    label: str
    status: EventTypeStatus
    note: str | None = None


class PolicyConfig(BaseModel):
    cancellation: str | None = None
    deposit: str | None = None
    house_rules: str | None = None

    def is_empty(self) -> bool:
        return not (self.cancellation or self.deposit or self.house_rules)


class FaqEntry(BaseModel):
    question: str
    answer: str


class AgentConfig(BaseModel):
    """Per-venue agent configuration, edited by the owner elsewhere."""

    venue_id: str
    is_enabled: bool = True
    language: Literal["sv", "en"] = "sv"
    greeting_message: str | None = None
    pricing_rules: PricingRules = Field(default_factory=PricingRules)
    booking_params: BookingParams = Field(default_factory=BookingParams)
    event_types: list[EventTypeConfig] = Field(default_factory=list)
    policy_config: PolicyConfig = Field(default_factory=PolicyConfig)
    faq_entries: list[FaqEntry] = Field(default_factory=list)


class CalendarSnapshot(BaseModel):
    """Blocked dates and dates holding a pending/accepted booking (ISO strings)."""

    blocked_dates: list[str] = Field(default_factory=list)
    booked_dates: list[str] = Field(default_factory=list)


# ── Pricing ──────────────────────────────────────────────────────────


class PriceBreakdown(BaseModel):
    base_price: float
    per_person_cost: float | None = None
    package_cost: float | None = None
    total_before_fee: float
    platform_fee: float
    total_price: float

    def to_tool_result(self) -> dict[str, Any]:
        """camelCase view handed back to the language model."""
        result: dict[str, Any] = {
            "basePrice": self.base_price,
            "totalBeforeFee": self.total_before_fee,
            "platformFee": self.platform_fee,
            "totalPrice": self.total_price,
        }
        if self.per_person_cost is not None:
            result["perPersonCost"] = self.per_person_cost
        if self.package_cost is not None:
            result["packageCost"] = self.package_cost
        return result


# ── Conversations ────────────────────────────────────────────────────


class ConversationMessage(BaseModel):
    id: str
    role: MessageRole
    content: str
    tool_calls: list[dict[str, Any]] | None = None
    tool_results: list[dict[str, Any]] | None = None
    timestamp: datetime


class CollectedBookingData(BaseModel):
    """Booking slots accumulated across turns."""

    date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    guest_count: int | None = None
    event_type: str | None = None
    duration_hours: float | None = None
    extras: list[str] | None = None
    customer_note: str | None = None
    calculated_price: float | None = None
    price_breakdown: PriceBreakdown | None = None


class Conversation(BaseModel):
    id: str
    venue_id: str
    customer_id: str | None = None
    status: ConversationStatus = ConversationStatus.ACTIVE
    messages: list[ConversationMessage] = Field(default_factory=list)
    collected_booking_data: CollectedBookingData = Field(default_factory=CollectedBookingData)
    created_at: datetime
    expires_at: datetime


# ── Actions ──────────────────────────────────────────────────────────


class BookingApprovalSummary(BaseModel):
    kind: Literal["booking_approval"] = "booking_approval"
    event_type: str
    guest_count: int
    date: str
    start_time: str
    end_time: str
    price: float
    extras: list[str] = Field(default_factory=list)
    customer_note: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None


class EscalationSummary(BaseModel):
    kind: Literal["escalation"] = "escalation"
    reason: str
    customer_request: str
    context: dict[str, Any] = Field(default_factory=dict)


class CounterOfferSummary(BaseModel):
    kind: Literal["counter_offer"] = "counter_offer"
    original_action_id: str
    event_type: str
    guest_count: int
    date: str
    start_time: str
    end_time: str
    price: float
    extras: list[str] = Field(default_factory=list)
    customer_note: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    owner_note: str | None = None


ActionSummary = Annotated[
    Union[BookingApprovalSummary, EscalationSummary, CounterOfferSummary],
    Field(discriminator="kind"),
]


class Action(BaseModel):
    id: str
    conversation_id: str
    venue_id: str
    action_type: ActionType
    status: ActionStatus
    summary: ActionSummary
    owner_response: dict[str, Any] | None = None
    booking_id: str | None = None
    created_at: datetime
    resolved_at: datetime | None = None


class Booking(BaseModel):
    id: str
    venue_id: str
    event_date: str
    start_time: str
    end_time: str
    event_type: str
    guest_count: int
    status: str
    total_price: float | None = None
    customer_id: str | None = None
    action_id: str | None = None
