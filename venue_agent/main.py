"""CLI entry point for the venue booking agent.

A terminal chat loop for trying a venue's agent locally, plus the expiry
sweep meant to run from a scheduler.  For production, use the FastAPI server
(``venue_agent/server.py``).

Usage:
    python -m venue_agent.main chat --venue-id <id>          # chat as a customer
    python -m venue_agent.main chat --venue-id <id> --debug  # show API calls
    python -m venue_agent.main expire                        # expire stale actions
"""

from __future__ import annotations

import argparse
import logging
from datetime import timedelta

from dotenv import load_dotenv

from venue_agent.agent import run_agent_turn
from venue_agent.config import DATABASE_URL
from venue_agent.errors import VenueAgentError
from venue_agent.services.store import AgentStore
from venue_agent.workflow import ActionWorkflow

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("venue_agent").setLevel(logging.DEBUG if debug else logging.INFO)


def _chat(store: AgentStore, venue_id: str, customer_id: str | None) -> None:
    print("\n" + "=" * 60)
    print("  Venue Booking Agent - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new conversation.")
    print("=" * 60 + "\n")

    conversation_id: str | None = None
    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue
        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            break
        if user_input.lower() == "new":
            conversation_id = None
            print("\n>> New conversation\n")
            continue

        try:
            result = run_agent_turn(
                store, venue_id, user_input, conversation_id=conversation_id, customer_id=customer_id,
            )
        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except VenueAgentError as e:
            print(f"\nAgent: {e}\n")
            continue
        except Exception as e:
            logger.exception("Error processing message")
            print(f"\nAgent: Something went wrong: {e}")
            print("       Please try again or type 'new' to start a fresh conversation.\n")
            continue

        conversation_id = result.conversation_id
        print(f"\nAgent: {result.reply}\n")
        if result.status.value != "active":
            print(f"   (conversation status: {result.status.value})\n")


def main():
    parser = argparse.ArgumentParser(description="Venue booking agent CLI")
    parser.add_argument("--debug", action="store_true", help="Show all log messages including HTTP requests")
    parser.add_argument("--database-url", default=DATABASE_URL, help="SQLAlchemy database URL")
    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="Chat with a venue's agent")
    chat.add_argument("--venue-id", required=True)
    chat.add_argument("--customer-id", default=None)

    expire = sub.add_parser("expire", help="Expire stale pending actions and conversations")
    expire.add_argument("--max-age-hours", type=int, default=None)

    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)
    store = AgentStore.from_url(args.database_url)

    if args.command == "chat":
        _chat(store, args.venue_id, args.customer_id)
    else:
        max_age = timedelta(hours=args.max_age_hours) if args.max_age_hours else None
        expired = ActionWorkflow(store).expire_stale_actions(max_age=max_age)
        print(f"Expired {len(expired)} action(s)")


if __name__ == "__main__":
    main()
