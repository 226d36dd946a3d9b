"""
Domain enums for type-safe constants.
"""

from enum import Enum


class ConversationStatus(str, Enum):
    """Lifecycle status of a conversation. STOPPED is terminal."""

    ACTIVE = "active"
    PAUSED = "paused"
    STOPPED = "stopped"

    def __str__(self) -> str:
        return self.value


class ParticipantKind(str, Enum):
    """Tag for the participant union."""

    KNOWN = "known"
    CUSTOM = "custom"

    def __str__(self) -> str:
        return self.value


class ProviderKind(str, Enum):
    """Vendor API used to generate a participant's replies."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    OPENROUTER = "openrouter"
    CUSTOM = "custom"  # OpenAI-compatible endpoint supplied by the user

    def __str__(self) -> str:
        return self.value


class MessageKind(str, Enum):
    """Origin of a transcript entry."""

    USER = "user"
    PARTICIPANT = "participant"
    ERROR = "error"  # synthesized when a participant fails to respond
    SYSTEM = "system"  # UI-only notices such as "X has joined the conversation."

    def __str__(self) -> str:
        return self.value


class EventType(str, Enum):
    """Notifications published to conversation subscribers."""

    THINKING = "thinking"
    MESSAGE = "message"
    STATUS_CHANGED = "status_changed"

    def __str__(self) -> str:
        return self.value


class TurnOutcome(str, Enum):
    """Result of one generation cycle."""

    COMMITTED = "committed"
    FAILED = "failed"  # provider error committed as a visible message
    DISCARDED = "discarded"  # paused or stopped while generating
    NO_SPEAKER = "no_speaker"

    def __str__(self) -> str:
        return self.value
