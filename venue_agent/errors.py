"""Exception taxonomy for the venue agent core.

Pure resolvers (pricing, availability, venue info) never raise for expected
domain outcomes; these exceptions cover invalid input, missing records,
lost resolution races and booking-creation failures.
"""

from __future__ import annotations


class VenueAgentError(Exception):
    """Base class for every error raised by the agent core."""


class InvalidRequestError(VenueAgentError):
    """Malformed or out-of-range input, or an operation the action type does not support."""


class NotFoundError(VenueAgentError):
    """A referenced record does not exist."""


class ActionNotFoundError(NotFoundError):
    def __init__(self, action_id: str):
        self.action_id = action_id
        super().__init__(f"Action {action_id} not found")


class ConversationNotFoundError(NotFoundError):
    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found")


class VenueNotFoundError(NotFoundError):
    def __init__(self, venue_id: str):
        self.venue_id = venue_id
        super().__init__(f"Venue {venue_id} not found")


class ConflictError(VenueAgentError):
    """The record is in a state that forbids the requested transition."""


class ActionAlreadyResolvedError(ConflictError):
    def __init__(self, action_id: str, status: str):
        self.action_id = action_id
        self.status = status
        super().__init__(f"Action {action_id} is already resolved ({status})")


class BookingCreationError(VenueAgentError):
    """The booking collaborator could not create the booking."""


class BookingUnavailableError(BookingCreationError):
    """The slot was taken or blocked by the time the booking was written."""


class AgentDisabledError(VenueAgentError):
    """The venue has no enabled agent configuration."""
