"""
Domain exceptions for the conversation engine.

Provider and persistence failures are recovered inside the engine; the
not-found errors are mapped to HTTP 404 by the app factory.
"""

from typing import Optional


class RoundtableError(Exception):
    """Base class for all engine errors."""


class ProviderError(RoundtableError):
    """A generation call failed, timed out, or returned malformed output."""

    def __init__(self, message: str, participant_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.participant_id = participant_id


class PersistenceError(RoundtableError):
    """The record store failed to save or read."""


class InvalidTransition(RoundtableError):
    """A status change that the conversation state machine does not allow."""

    def __init__(self, current, requested):
        super().__init__(f"Cannot move conversation from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class SchedulerEmpty(RoundtableError):
    """No participants are available to take a turn."""


class ConversationNotFoundError(RoundtableError):
    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class ParticipantNotFoundError(RoundtableError):
    def __init__(self, participant_id: str):
        super().__init__(f"Participant {participant_id} not found")
        self.participant_id = participant_id
