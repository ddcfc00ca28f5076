"""Tests for tool dispatch."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from conftest import NOW, TODAY, VENUE_ID

from venue_agent.models import ActionStatus
from venue_agent.tools.dispatcher import TOOL_NAMES, TOOL_SPECS, ToolContext, execute_agent_tool


@pytest.fixture
def context(store, venue, agent_config, conversation_id, notifier):
    return ToolContext(
        venue_id=VENUE_ID,
        conversation_id=conversation_id,
        venue=venue,
        config=agent_config,
        store=store,
        today=TODAY,
        customer_id="customer-1",
        notifier=notifier,
        now=NOW,
    )


class TestToolSpecs:
    def test_all_tools_exposed(self):
        assert TOOL_NAMES == (
            "check_availability",
            "calculate_price",
            "get_venue_info",
            "propose_booking",
            "escalate_to_owner",
        )
        assert [spec["name"] for spec in TOOL_SPECS] == list(TOOL_NAMES)

    def test_schemas_use_camel_case(self):
        specs = {spec["name"]: spec for spec in TOOL_SPECS}
        propose = specs["propose_booking"]["input_schema"]
        assert {"date", "startTime", "endTime", "guestCount", "eventType", "price"} <= set(propose["required"])
        assert "customerNote" in propose["properties"]
        assert specs["check_availability"]["input_schema"]["required"] == ["date"]


class TestExecuteAgentTool:
    def test_unknown_tool_returns_error(self, context):
        assert execute_agent_tool("book_it_now", {}, context) == {"error": "Unknown tool: book_it_now"}

    def test_check_availability(self, context, add_booking):
        add_booking("2026-04-15", "09:00", "12:00")
        result = execute_agent_tool(
            "check_availability",
            {"date": "2026-04-15", "startTime": "11:00", "endTime": "13:00"},
            context,
        )
        assert result["available"] is False
        assert len(result["alternatives"]) == 3

    def test_calculate_price(self, context):
        result = execute_agent_tool(
            "calculate_price",
            {"guestCount": 50, "durationHours": 5, "eventType": "wedding"},
            context,
        )
        assert result["totalPrice"] == 11200
        assert result["platformFee"] == 1200

    def test_get_venue_info(self, context):
        result = execute_agent_tool("get_venue_info", {"topic": "parkering"}, context)
        assert result["found"] is True

    def test_snake_case_arguments_are_accepted(self, context):
        result = execute_agent_tool(
            "calculate_price",
            {"guest_count": 10, "duration_hours": 2, "event_type": "fest"},
            context,
        )
        assert result["totalPrice"] == 6720

    def test_invalid_arguments_become_error_result(self, context):
        result = execute_agent_tool(
            "calculate_price",
            {"guestCount": 0, "durationHours": 5, "eventType": "wedding"},
            context,
        )
        assert set(result) == {"error"}
        assert "guestCount" in result["error"]

    def test_blank_topic_is_rejected(self, context):
        result = execute_agent_tool("get_venue_info", {"topic": "   "}, context)
        assert set(result) == {"error"}
        assert "topic" in result["error"]

    def test_malformed_date_is_rejected(self, context):
        result = execute_agent_tool("check_availability", {"date": "15/04/2026"}, context)
        assert "error" in result

    def test_propose_booking_creates_action(self, context, store):
        result = execute_agent_tool(
            "propose_booking",
            {
                "date": "2026-04-15",
                "startTime": "18:00",
                "endTime": "23:00",
                "guestCount": 50,
                "eventType": "wedding",
                "price": 11200,
            },
            context,
        )
        assert result["success"] is True
        with store.transaction() as tx:
            assert tx.get_action(result["actionId"]).status == ActionStatus.PENDING

    def test_propose_booking_rejects_inverted_window(self, context, store):
        result = execute_agent_tool(
            "propose_booking",
            {
                "date": "2026-04-15",
                "startTime": "23:00",
                "endTime": "18:00",
                "guestCount": 50,
                "eventType": "wedding",
                "price": 11200,
            },
            context,
        )
        assert result == {"error": "endTime must be after startTime"}
        with store.transaction() as tx:
            assert tx.pending_action_count() == 0

    def test_escalate_to_owner(self, context):
        result = execute_agent_tool(
            "escalate_to_owner",
            {"reason": "Konsert", "customerRequest": "Får vi ha liveband?"},
            context,
        )
        assert result["success"] is True

    def test_handler_exception_is_recorded_and_returned(self, context):
        with (
            patch("venue_agent.tools.dispatcher.metrics") as mock_metrics,
            patch("venue_agent.tools.dispatcher.calculate_price", side_effect=RuntimeError("boom")),
        ):
            result = execute_agent_tool(
                "calculate_price",
                {"guestCount": 5, "durationHours": 2, "eventType": "fest"},
                context,
            )
        assert result == {"error": "boom"}
        mock_metrics.record_failure.assert_called_once()
        assert mock_metrics.record_failure.call_args[0][:2] == ("tool", "calculate_price")

    def test_empty_exception_message_gets_generic_text(self, context):
        with patch("venue_agent.tools.dispatcher.get_venue_info", side_effect=RuntimeError()):
            result = execute_agent_tool("get_venue_info", {"topic": "pris"}, context)
        assert result == {"error": "An unexpected error occurred"}

    def test_success_is_recorded(self, context):
        with patch("venue_agent.tools.dispatcher.metrics") as mock_metrics:
            execute_agent_tool("get_venue_info", {"topic": "pris"}, context)
        mock_metrics.record_success.assert_called_once()
        assert mock_metrics.record_success.call_args[0][:2] == ("tool", "get_venue_info")
