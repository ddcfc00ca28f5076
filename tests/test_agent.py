"""Tests for the agent graph and the per-turn runtime.

Covers:
  - Chatbot node (system prompt, error propagation)
  - Tool routing and the tool round cap
  - History replay and collected booking data
  - End-to-end turns with a mocked LLM
"""

from __future__ import annotations

from datetime import timedelta
from itertools import count
from unittest.mock import MagicMock, patch

import pytest
from conftest import NOW, VENUE_ID
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langgraph.graph import END

from venue_agent.agent import (
    FALLBACK_REPLY,
    AgentState,
    _make_chatbot_node,
    history_to_messages,
    merge_collected_data,
    message_text,
    run_agent_turn,
    should_use_tools,
)
from venue_agent.errors import AgentDisabledError, VenueNotFoundError
from venue_agent.models import (
    ActionStatus,
    CollectedBookingData,
    ConversationMessage,
    ConversationStatus,
    MessageRole,
)


# ── Helpers ──────────────────────────────────────────────────────────


def _make_mock_llm(*responses: AIMessage):
    """Create a mock LLM that returns the given AIMessages in order."""
    mock_llm = MagicMock()
    mock_llm.invoke.side_effect = list(responses)
    return mock_llm


def _tool_call(name: str, args: dict, call_id: str = "call_1") -> dict:
    return {"name": name, "args": args, "id": call_id}


def _log(role: MessageRole, content: str) -> ConversationMessage:
    return ConversationMessage(id=f"{role.value}_1", role=role, content=content, timestamp=NOW)


# ── TestChatbotNode ──────────────────────────────────────────────────


class TestChatbotNode:
    @patch("venue_agent.agent._build_llm")
    def test_chatbot_prepends_system_prompt(self, mock_build):
        mock_llm = _make_mock_llm(AIMessage(content="Hej! Vad kan jag hjälpa till med?"))
        mock_build.return_value = mock_llm
        chatbot_node = _make_chatbot_node("Du är en bokningsassistent.")

        state: AgentState = {"messages": [HumanMessage(content="Hej")], "tool_rounds": 0}
        result = chatbot_node(state)

        assert len(result["messages"]) == 1
        sent = mock_llm.invoke.call_args[0][0]
        assert isinstance(sent[0], SystemMessage)
        assert sent[0].content == "Du är en bokningsassistent."
        assert sent[1].content == "Hej"

    @patch("venue_agent.agent._build_llm")
    def test_chatbot_propagates_llm_errors(self, mock_build):
        mock_llm = MagicMock()
        mock_llm.invoke.side_effect = RuntimeError("LLM down")
        mock_build.return_value = mock_llm
        chatbot_node = _make_chatbot_node("prompt")

        with pytest.raises(RuntimeError, match="LLM down"):
            chatbot_node({"messages": [HumanMessage(content="Hej")], "tool_rounds": 0})


# ── TestShouldUseTools ───────────────────────────────────────────────


class TestShouldUseTools:
    def test_message_with_tool_calls_routes_to_tools(self):
        ai_msg = AIMessage(content="", tool_calls=[_tool_call("check_availability", {"date": "2026-04-15"})])
        assert should_use_tools({"messages": [ai_msg], "tool_rounds": 0}) == "tools"

    def test_message_without_tool_calls_routes_to_end(self):
        ai_msg = AIMessage(content="Datumet är ledigt.")
        assert should_use_tools({"messages": [ai_msg], "tool_rounds": 0}) == END

    def test_round_limit_routes_to_end(self):
        ai_msg = AIMessage(content="", tool_calls=[_tool_call("check_availability", {"date": "2026-04-15"})])
        with patch("venue_agent.agent.MAX_TOOL_ROUNDS", 3):
            assert should_use_tools({"messages": [ai_msg], "tool_rounds": 3}) == END


# ── TestHistory ──────────────────────────────────────────────────────


class TestHistory:
    def test_roles_are_mapped_for_replay(self):
        messages = history_to_messages([
            _log(MessageRole.USER, "Har ni ledigt i april?"),
            _log(MessageRole.AGENT, "Jag frågar ägaren."),
            _log(MessageRole.SYSTEM, "[Svar från lokalägaren]: Ja"),
        ])
        assert [type(m) for m in messages] == [HumanMessage, AIMessage, HumanMessage]
        assert messages[2].content == "[Svar från lokalägaren]: Ja"

    def test_message_text_joins_text_blocks(self):
        message = AIMessage(content=[
            {"type": "text", "text": "Hej "},
            {"type": "tool_use", "id": "x", "name": "calculate_price", "input": {}},
            {"type": "text", "text": "där"},
        ])
        assert message_text(message) == "Hej där"


class TestMergeCollectedData:
    def test_slots_from_price_and_availability_calls(self):
        calls = [
            _tool_call("check_availability", {"date": "2026-04-15", "startTime": "18:00"}, "c1"),
            _tool_call("calculate_price", {"guestCount": 50, "durationHours": 5, "eventType": "wedding"}, "c2"),
        ]
        results = [
            {"tool_call_id": "c1", "name": "check_availability", "result": {"available": True}},
            {
                "tool_call_id": "c2",
                "name": "calculate_price",
                "result": {"basePrice": 10000, "totalBeforeFee": 10000, "platformFee": 1200, "totalPrice": 11200},
            },
        ]

        data = merge_collected_data(CollectedBookingData(end_time="23:00"), calls, results)

        assert data.date == "2026-04-15"
        assert data.start_time == "18:00"
        assert data.end_time == "23:00"
        assert data.guest_count == 50
        assert data.duration_hours == 5
        assert data.calculated_price == 11200
        assert data.price_breakdown.platform_fee == 1200

    def test_failed_calls_are_ignored(self):
        calls = [_tool_call("check_availability", {"date": "2026-04-15"}, "c1")]
        results = [{"tool_call_id": "c1", "name": "check_availability", "result": {"error": "bad date"}}]
        assert merge_collected_data(CollectedBookingData(), calls, results).date is None


# ── TestRunAgentTurn ─────────────────────────────────────────────────


class TestRunAgentTurn:
    @patch("venue_agent.agent._build_llm")
    def test_turn_runs_tools_and_persists_the_log(self, mock_build, store):
        mock_build.return_value = _make_mock_llm(
            AIMessage(
                content="",
                tool_calls=[_tool_call("calculate_price", {"guestCount": 50, "durationHours": 5, "eventType": "wedding"})],
            ),
            AIMessage(content="Det kostar 11200 kr inklusive avgift."),
        )

        result = run_agent_turn(store, VENUE_ID, "Vad kostar ett bröllop för 50 personer?", customer_id="c-9", now=NOW)

        assert result.reply == "Det kostar 11200 kr inklusive avgift."
        assert result.status == ConversationStatus.ACTIVE
        assert result.tool_calls == [
            {"id": "call_1", "name": "calculate_price", "args": {"guestCount": 50, "durationHours": 5, "eventType": "wedding"}},
        ]
        assert result.tool_results[0]["result"]["totalPrice"] == 11200

        with store.transaction() as tx:
            conversation = tx.get_conversation(result.conversation_id)
        assert conversation.customer_id == "c-9"
        assert [m.role for m in conversation.messages] == [MessageRole.USER, MessageRole.AGENT]
        assert conversation.messages[1].tool_calls == result.tool_calls
        assert conversation.collected_booking_data.guest_count == 50
        assert conversation.collected_booking_data.calculated_price == 11200

    @patch("venue_agent.agent._build_llm")
    def test_system_prompt_is_compiled_for_the_venue(self, mock_build, store):
        mock_llm = _make_mock_llm(AIMessage(content="Hej!"))
        mock_build.return_value = mock_llm

        run_agent_turn(store, VENUE_ID, "Hej", now=NOW)

        system = mock_llm.invoke.call_args[0][0][0]
        assert isinstance(system, SystemMessage)
        assert '"Ateljé Söder"' in system.content
        assert "Dagens datum: 2026-03-10" in system.content

    @patch("venue_agent.agent._build_llm")
    def test_next_turn_replays_history(self, mock_build, store):
        mock_build.return_value = _make_mock_llm(AIMessage(content="Hej! Hur kan jag hjälpa dig?"))
        first = run_agent_turn(store, VENUE_ID, "Hej", now=NOW)

        mock_llm = _make_mock_llm(AIMessage(content="Vi har parkering."))
        mock_build.return_value = mock_llm
        second = run_agent_turn(
            store, VENUE_ID, "Finns det parkering?", conversation_id=first.conversation_id,
            now=NOW + timedelta(minutes=5),
        )

        assert second.conversation_id == first.conversation_id
        sent = mock_llm.invoke.call_args[0][0]
        assert [m.content for m in sent[1:]] == ["Hej", "Hej! Hur kan jag hjälpa dig?", "Finns det parkering?"]

    @patch("venue_agent.agent._build_llm")
    def test_expired_conversation_is_not_resumed(self, mock_build, store):
        mock_build.return_value = _make_mock_llm(AIMessage(content="Hej!"))
        first = run_agent_turn(store, VENUE_ID, "Hej", now=NOW)

        mock_build.return_value = _make_mock_llm(AIMessage(content="Hej igen!"))
        second = run_agent_turn(
            store, VENUE_ID, "Hej igen", conversation_id=first.conversation_id, now=NOW + timedelta(days=8),
        )
        assert second.conversation_id != first.conversation_id

    @patch("venue_agent.agent._build_llm")
    def test_proposal_parks_the_conversation(self, mock_build, store, notifier):
        args = {
            "date": "2026-04-15",
            "startTime": "18:00",
            "endTime": "23:00",
            "guestCount": 50,
            "eventType": "wedding",
            "price": 11200,
        }
        mock_build.return_value = _make_mock_llm(
            AIMessage(content="", tool_calls=[_tool_call("propose_booking", args)]),
            AIMessage(content="Jag har skickat förfrågan till lokalägaren."),
        )

        result = run_agent_turn(store, VENUE_ID, "Boka det!", now=NOW, notifier=notifier)

        assert result.status == ConversationStatus.WAITING_FOR_OWNER
        action_id = result.tool_results[0]["result"]["actionId"]
        with store.transaction() as tx:
            action = tx.get_action(action_id)
        assert action.status == ActionStatus.PENDING
        assert action.conversation_id == result.conversation_id
        notifier.dispatch.assert_called_once()

    @patch("venue_agent.agent._build_llm")
    def test_tool_errors_do_not_abort_the_turn(self, mock_build, store):
        mock_build.return_value = _make_mock_llm(
            AIMessage(content="", tool_calls=[_tool_call("book_directly", {})]),
            AIMessage(content="Jag kan tyvärr inte göra det."),
        )
        result = run_agent_turn(store, VENUE_ID, "Boka direkt", now=NOW)
        assert result.tool_results[0]["result"] == {"error": "Unknown tool: book_directly"}
        assert result.reply == "Jag kan tyvärr inte göra det."

    @patch("venue_agent.agent.MAX_TOOL_ROUNDS", 2)
    @patch("venue_agent.agent._build_llm")
    def test_round_cap_falls_back_to_default_reply(self, mock_build, store):
        ids = count()
        mock_llm = MagicMock()
        mock_llm.invoke.side_effect = lambda _messages: AIMessage(
            content="",
            tool_calls=[_tool_call("get_venue_info", {"topic": "pris"}, f"call_{next(ids)}")],
        )
        mock_build.return_value = mock_llm

        result = run_agent_turn(store, VENUE_ID, "Berätta allt", now=NOW)

        assert mock_llm.invoke.call_count == 3
        assert len(result.tool_results) == 2
        assert result.reply == FALLBACK_REPLY["sv"]

    def test_unknown_venue(self, store):
        with pytest.raises(VenueNotFoundError):
            run_agent_turn(store, "nowhere", "Hej", now=NOW)

    def test_disabled_agent(self, store, agent_config):
        with store.transaction() as tx:
            tx.upsert_agent_config(agent_config.model_copy(update={"is_enabled": False}))
        with pytest.raises(AgentDisabledError):
            run_agent_turn(store, VENUE_ID, "Hej", now=NOW)
