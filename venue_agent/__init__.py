"""Venue Booking Agent: a conversational booking assistant for event venues.

Architecture Overview
=====================

Customers chat with a per-venue agent built on **LangGraph** with two nodes:

1. **chatbot** — Claude (via ``langchain-anthropic``) with a system prompt
   compiled from the venue's profile, agent configuration and calendar.
2. **tools** — routes each tool call through a single dispatcher that turns
   every failure into an ``{"error": ...}`` result.

Routing: chatbot → (tool calls?) → tools → chatbot (loop until no tool calls → END)

Key Design Decisions
--------------------
- **Human in the loop**: the agent can read availability, prices and venue
  facts, but can only *propose* bookings and *escalate* questions.  Both
  create a pending ``Action`` the owner resolves (approve / decline / reply /
  modify).  A modify sends a counter-offer back to the customer.
- **Resolve exactly once**: every resolution is a compare-and-swap on
  ``status = 'pending'`` (optimistic concurrency, no locks).
- **Durable state only**: conversations, the append-only message log,
  actions and bookings live in SQL (SQLAlchemy); nothing is shared in
  process memory between requests.
- **Best-effort side effects**: owner/customer notifications and realtime
  broadcasts go to webhooks; failures are logged and never undo a commit.
- **Injected clock**: ``today``/``now`` are parameters, so the prompt
  compiler and availability checks are deterministic under test.

Package Structure
-----------------
- ``venue_agent/agent.py`` — LangGraph graph and per-turn runtime
- ``venue_agent/workflow.py`` — action approval state machine
- ``venue_agent/prompts.py`` — system prompt compiler
- ``venue_agent/models.py`` — pydantic domain models
- ``venue_agent/errors.py`` — exception taxonomy
- ``venue_agent/config.py`` — configuration from environment / SSM
- ``venue_agent/server.py`` — FastAPI application
- ``venue_agent/main.py`` — CLI chat loop and expiry sweep
- ``venue_agent/services/`` — persistence, bookings, notifications, metrics
- ``venue_agent/tools/`` — pricing, availability, venue info, proposals, dispatcher
- ``venue_agent/api/`` — FastAPI routes and Pydantic schemas
"""
