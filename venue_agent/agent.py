"""LangGraph agent loop for venue booking conversations.

Architecture:
  A two-node LangGraph ``StateGraph`` is built for every turn around the
  venue's ``ToolContext``:

    1. **chatbot** — ChatAnthropic bound to the venue tools
    2. **tools**   — runs each requested tool through ``execute_agent_tool``

  Routing:
    chatbot → (has tool calls?) → tools → chatbot (loop, at most
    ``MAX_TOOL_ROUNDS`` rounds) → (no tool calls?) → END

  Memory:
    There is no in-process checkpointer.  The durable message log is the
    conversation memory; each turn replays it into the graph and appends
    the new user and agent messages when the turn finishes.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Annotated, Any

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage, ToolMessage
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from venue_agent.config import (
    ANTHROPIC_API_KEY,
    CALENDAR_WINDOW_MONTHS,
    CONVERSATION_TTL_DAYS,
    MAX_TOOL_ROUNDS,
    MODEL_NAME,
)
from venue_agent.errors import AgentDisabledError, VenueNotFoundError
from venue_agent.models import (
    CollectedBookingData,
    ConversationMessage,
    ConversationStatus,
    MessageRole,
    PriceBreakdown,
)
from venue_agent.prompts import add_months, build_agent_system_prompt
from venue_agent.services.metrics import metrics
from venue_agent.services.notifications import NotificationDispatcher
from venue_agent.services.store import AgentStore
from venue_agent.tools.dispatcher import TOOL_SPECS, ToolContext, execute_agent_tool

logger = logging.getLogger(__name__)

FALLBACK_REPLY = {
    "sv": "Förlåt, jag kunde inte slutföra det just nu. Vill du att jag kontaktar lokalägaren?",
    "en": "Sorry, I couldn't finish that right now. Would you like me to contact the venue owner?",
}


# ── State schema ─────────────────────────────────────────────────────


class AgentState(TypedDict):
    """State flowing through the graph.

    ``messages`` uses the ``add_messages`` reducer so nodes append rather
    than overwrite.  ``tool_rounds`` counts completed tool executions and
    caps the chatbot/tools loop.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    tool_rounds: int


@dataclass
class AgentTurnResult:
    conversation_id: str
    reply: str
    status: ConversationStatus
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    tool_results: list[dict[str, Any]] = field(default_factory=list)


# ── LLM builder ─────────────────────────────────────────────────────


def _build_llm():
    """Build the chat model with the venue tools bound."""
    llm = ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.2,
        max_tokens=1024,
    )
    return llm.bind_tools(TOOL_SPECS)


# ── Nodes ────────────────────────────────────────────────────────────


def _make_chatbot_node(system_prompt: str):
    llm_with_tools = _build_llm()

    def chatbot_node(state: AgentState) -> dict:
        system = SystemMessage(content=system_prompt)
        t0 = time.perf_counter()
        try:
            response = llm_with_tools.invoke([system] + state["messages"])
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure("anthropic", "llm_invoke", error_type=type(exc).__name__, latency_ms=elapsed)
            raise
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("anthropic", "llm_invoke", latency_ms=elapsed)
        logger.debug("chatbot responded in %.0fms", elapsed)
        return {"messages": [response]}

    return chatbot_node


def _make_tools_node(context: ToolContext):
    def tools_node(state: AgentState) -> dict:
        last_message = state["messages"][-1]
        outputs = []
        for call in getattr(last_message, "tool_calls", None) or []:
            result = execute_agent_tool(call["name"], call.get("args") or {}, context)
            outputs.append(
                ToolMessage(
                    content=json.dumps(result, ensure_ascii=False),
                    name=call["name"],
                    tool_call_id=call["id"],
                )
            )
        return {"messages": outputs, "tool_rounds": state.get("tool_rounds", 0) + 1}

    return tools_node


def should_use_tools(state: AgentState) -> str:
    """Route to the tools node while the model keeps calling tools."""
    last_message = state["messages"][-1]
    if not (hasattr(last_message, "tool_calls") and last_message.tool_calls):
        return END
    if state.get("tool_rounds", 0) >= MAX_TOOL_ROUNDS:
        logger.warning("Tool round limit (%d) reached; ending turn", MAX_TOOL_ROUNDS)
        return END
    return "tools"


# ── Graph assembly ───────────────────────────────────────────────────


def create_venue_agent(context: ToolContext, system_prompt: str):
    """Build and compile the agent graph for one turn.

    Invoke with ``{"messages": [...], "tool_rounds": 0}``.
    """
    graph = StateGraph(AgentState)
    graph.add_node("chatbot", _make_chatbot_node(system_prompt))
    graph.add_node("tools", _make_tools_node(context))

    graph.set_entry_point("chatbot")
    graph.add_conditional_edges("chatbot", should_use_tools, {"tools": "tools", END: END})
    graph.add_edge("tools", "chatbot")

    return graph.compile()


# ── History & results ────────────────────────────────────────────────


def history_to_messages(history: list[ConversationMessage]) -> list[AnyMessage]:
    """Replay the stored log as chat messages.

    Anthropic only accepts a leading system prompt, so owner replies and
    other ``system`` log entries are replayed as user-side context.
    """
    messages: list[AnyMessage] = []
    for entry in history:
        if entry.role == MessageRole.AGENT:
            messages.append(AIMessage(content=entry.content))
        else:
            messages.append(HumanMessage(content=entry.content))
    return messages


def message_text(message: AnyMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def merge_collected_data(
    current: CollectedBookingData,
    tool_calls: list[dict[str, Any]],
    tool_results: list[dict[str, Any]],
) -> CollectedBookingData:
    """Fold the slots seen in this turn's tool calls into the collected data."""
    data = current.model_dump()
    results = {r["tool_call_id"]: r["result"] for r in tool_results}

    for call in tool_calls:
        args = call.get("args") or {}
        result = results.get(call["id"], {})
        name = call["name"]
        if "error" in result:
            continue

        if name in ("check_availability", "propose_booking"):
            for key, attr in (("date", "date"), ("startTime", "start_time"), ("endTime", "end_time")):
                if args.get(key):
                    data[attr] = args[key]
        if name in ("calculate_price", "propose_booking"):
            if args.get("guestCount") is not None:
                data["guest_count"] = args["guestCount"]
            if args.get("eventType"):
                data["event_type"] = args["eventType"]
        if name == "calculate_price":
            if args.get("durationHours") is not None:
                data["duration_hours"] = args["durationHours"]
            if "totalPrice" in result:
                data["calculated_price"] = result["totalPrice"]
                data["price_breakdown"] = PriceBreakdown(
                    base_price=result["basePrice"],
                    per_person_cost=result.get("perPersonCost"),
                    package_cost=result.get("packageCost"),
                    total_before_fee=result["totalBeforeFee"],
                    platform_fee=result["platformFee"],
                    total_price=result["totalPrice"],
                )
        if name == "propose_booking":
            if args.get("price") is not None:
                data["calculated_price"] = args["price"]
            if args.get("extras"):
                data["extras"] = args["extras"]
            if args.get("customerNote"):
                data["customer_note"] = args["customerNote"]

    return CollectedBookingData.model_validate(data)


# ── Turn runtime ─────────────────────────────────────────────────────


def run_agent_turn(
    store: AgentStore,
    venue_id: str,
    message: str,
    *,
    conversation_id: str | None = None,
    customer_id: str | None = None,
    now: datetime | None = None,
    notifier: NotificationDispatcher | None = None,
) -> AgentTurnResult:
    """Handle one customer message end to end.

    Resumes (or creates) the conversation, logs the user message, runs the
    graph against a freshly compiled prompt and logs the agent's reply with
    the tool calls it made.
    """
    now = now or datetime.now(UTC)
    today = now.date()

    with store.transaction() as tx:
        venue = tx.get_venue(venue_id)
        if venue is None:
            raise VenueNotFoundError(venue_id)
        config = tx.get_agent_config(venue_id)
        if config is None or not config.is_enabled:
            raise AgentDisabledError(f"The booking agent is not enabled for venue {venue_id}")

        conversation = tx.find_resumable_conversation(
            venue_id, now, conversation_id=conversation_id, customer_id=customer_id,
        )
        if conversation is None:
            conversation = tx.create_conversation(venue_id, customer_id, now, timedelta(days=CONVERSATION_TTL_DAYS))
            logger.info("Started conversation %s for venue %s", conversation.id, venue_id)
        elif customer_id and conversation.customer_id is None:
            tx.link_customer(conversation.id, customer_id)
            conversation.customer_id = customer_id

        history = list(conversation.messages)
        tx.append_message(conversation.id, MessageRole.USER, message, now)
        calendar = tx.calendar_snapshot(
            venue_id, today.isoformat(), add_months(today, CALENDAR_WINDOW_MONTHS).isoformat(),
        )

    context = ToolContext(
        venue_id=venue_id,
        conversation_id=conversation.id,
        venue=venue,
        config=config,
        store=store,
        today=today,
        customer_id=conversation.customer_id,
        notifier=notifier,
        now=now,
    )
    system_prompt = build_agent_system_prompt(venue, config, calendar, today)
    agent = create_venue_agent(context, system_prompt)

    inputs = history_to_messages(history) + [HumanMessage(content=message)]
    result = agent.invoke({"messages": inputs, "tool_rounds": 0})
    produced = result["messages"][len(inputs):]

    tool_calls: list[dict[str, Any]] = []
    tool_results: list[dict[str, Any]] = []
    for produced_message in produced:
        if isinstance(produced_message, AIMessage):
            for call in produced_message.tool_calls:
                tool_calls.append({"id": call["id"], "name": call["name"], "args": call.get("args") or {}})
        elif isinstance(produced_message, ToolMessage):
            tool_results.append({
                "tool_call_id": produced_message.tool_call_id,
                "name": produced_message.name,
                "result": json.loads(produced_message.content),
            })

    reply = ""
    for produced_message in reversed(produced):
        if isinstance(produced_message, AIMessage):
            reply = message_text(produced_message).strip()
            break
    if not reply:
        reply = FALLBACK_REPLY.get(config.language, FALLBACK_REPLY["sv"])

    with store.transaction() as tx:
        tx.append_message(
            conversation.id,
            MessageRole.AGENT,
            reply,
            now,
            tool_calls=tool_calls or None,
            tool_results=tool_results or None,
        )
        if tool_calls:
            tx.update_collected_data(
                conversation.id,
                merge_collected_data(conversation.collected_booking_data, tool_calls, tool_results),
            )
        stored = tx.get_conversation(conversation.id, with_messages=False)

    logger.debug("Turn done for conversation %s: %d tool call(s)", conversation.id, len(tool_calls))
    return AgentTurnResult(
        conversation_id=conversation.id,
        reply=reply,
        status=stored.status if stored else conversation.status,
        tool_calls=tool_calls,
        tool_results=tool_results,
    )
