"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from venue_agent.models import Action
from venue_agent.workflow import ModifyRequest as CounterOfferChanges


class ChatRequest(BaseModel):
    """Incoming customer message for a venue's agent."""

    message: str = Field(..., min_length=1, max_length=2000, description="The customer's message")
    conversation_id: str | None = Field(
        None, max_length=100, description="Conversation to resume; omitted on the first message",
    )
    customer_id: str | None = Field(None, max_length=100, description="Signed-in customer, if any")


class ChatResponse(BaseModel):
    reply: str = Field(..., description="The agent's response message")
    conversation_id: str
    status: str = Field(..., description="Conversation status after the turn")


class DeclineRequest(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class ReplyRequest(BaseModel):
    response: str = Field(..., min_length=1, max_length=2000)


class ModifyRequest(CounterOfferChanges):
    """Owner adjustments for a counter-offer, validated with the workflow's rules."""


class ResolutionResponse(BaseModel):
    success: bool = True
    action: Action
    booking_id: str | None = None
    counter_offer: Action | None = None


class ActionListResponse(BaseModel):
    actions: list[Action]


class PendingCountResponse(BaseModel):
    count: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "venue-agent"
