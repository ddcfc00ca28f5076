"""FastAPI route definitions for the venue agent API."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Request

from venue_agent.agent import run_agent_turn
from venue_agent.api.schemas import (
    ActionListResponse,
    ChatRequest,
    ChatResponse,
    DeclineRequest,
    HealthResponse,
    ModifyRequest,
    PendingCountResponse,
    ReplyRequest,
    ResolutionResponse,
)
from venue_agent.errors import (
    AgentDisabledError,
    BookingUnavailableError,
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    VenueAgentError,
)
from venue_agent.models import ActionStatus
from venue_agent.workflow import ActionWorkflow, Resolution

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_workflow(request: Request) -> ActionWorkflow:
    """The workflow (and its store) is created once in the server lifespan."""
    workflow = getattr(request.app.state, "workflow", None)
    if workflow is None:
        raise HTTPException(
            status_code=503,
            detail="The agent is still starting up. Please try again in a moment.",
        )
    return workflow


def _to_http_error(exc: Exception, request_id: str) -> HTTPException:
    """Map core errors to status codes.  Unexpected errors never leak their message."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (ConflictError, BookingUnavailableError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, InvalidRequestError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, AgentDisabledError):
        return HTTPException(status_code=403, detail=str(exc))
    logger.error("[%s] Unhandled %s: %s", request_id, type(exc).__name__, exc)
    return HTTPException(status_code=500, detail="An internal error occurred. Please try again.")


async def _run(http_request: Request, func, *args, **kwargs):
    """Run a blocking core call in a worker thread and translate its errors."""
    request_id = getattr(http_request.state, "request_id", "?")
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except VenueAgentError as e:
        raise _to_http_error(e, request_id) from e
    except Exception as e:
        logger.exception("[%s] Error processing request", request_id)
        raise _to_http_error(e, request_id) from e


def _resolution(result: Resolution) -> ResolutionResponse:
    return ResolutionResponse(
        action=result.action, booking_id=result.booking_id, counter_offer=result.counter_offer,
    )


# ── Health ───────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


# ── Customer chat ────────────────────────────────────────────────────


@router.post("/venues/{venue_id}/chat", response_model=ChatResponse)
async def chat(venue_id: str, request: ChatRequest, http_request: Request):
    """Send a customer message to a venue's agent.

    ``run_agent_turn`` blocks on the Anthropic API and the database, so it
    runs in the default thread pool.
    """
    workflow = _get_workflow(http_request)
    result = await _run(
        http_request,
        run_agent_turn,
        workflow.store,
        venue_id,
        request.message,
        conversation_id=request.conversation_id,
        customer_id=request.customer_id,
    )
    return ChatResponse(reply=result.reply, conversation_id=result.conversation_id, status=result.status.value)


# ── Owner feed ───────────────────────────────────────────────────────


@router.get("/actions", response_model=ActionListResponse)
async def list_actions(
    http_request: Request,
    venue_id: str | None = None,
    status: ActionStatus | None = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
):
    workflow = _get_workflow(http_request)
    actions = await _run(http_request, workflow.list_actions, venue_id=venue_id, status=status, limit=limit)
    return ActionListResponse(actions=actions)


@router.get("/actions/pending-count", response_model=PendingCountResponse)
async def pending_count(http_request: Request, venue_id: Annotated[list[str] | None, Query()] = None):
    workflow = _get_workflow(http_request)
    count = await _run(http_request, workflow.pending_action_count, venue_id)
    return PendingCountResponse(count=count)


# ── Owner resolution ─────────────────────────────────────────────────


@router.post("/actions/{action_id}/approve", response_model=ResolutionResponse)
async def approve_action(action_id: str, http_request: Request):
    workflow = _get_workflow(http_request)
    return _resolution(await _run(http_request, workflow.approve, action_id))


@router.post("/actions/{action_id}/decline", response_model=ResolutionResponse)
async def decline_action(action_id: str, http_request: Request, request: DeclineRequest | None = None):
    workflow = _get_workflow(http_request)
    reason = request.reason if request else None
    return _resolution(await _run(http_request, workflow.decline, action_id, reason))


@router.post("/actions/{action_id}/reply", response_model=ResolutionResponse)
async def reply_to_escalation(action_id: str, request: ReplyRequest, http_request: Request):
    workflow = _get_workflow(http_request)
    return _resolution(await _run(http_request, workflow.reply, action_id, request.response))


@router.post("/actions/{action_id}/modify", response_model=ResolutionResponse)
async def modify_action(action_id: str, request: ModifyRequest, http_request: Request):
    workflow = _get_workflow(http_request)
    return _resolution(await _run(http_request, workflow.modify, action_id, **request.model_dump()))


# ── Customer response to counter-offers ──────────────────────────────


@router.post("/counter-offers/{action_id}/accept", response_model=ResolutionResponse)
async def accept_counter_offer(action_id: str, http_request: Request):
    workflow = _get_workflow(http_request)
    return _resolution(await _run(http_request, workflow.accept_counter_offer, action_id))


@router.post("/counter-offers/{action_id}/decline", response_model=ResolutionResponse)
async def decline_counter_offer(action_id: str, http_request: Request):
    workflow = _get_workflow(http_request)
    return _resolution(await _run(http_request, workflow.decline_counter_offer, action_id))
