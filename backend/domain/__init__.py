"""
Domain layer for internal business logic data structures.

This package contains dataclasses and enums used for clean parameter passing
between the orchestration engine, provider adapters and the store.
"""

from .contexts import ConversationRecord, GenerationRequest, TurnContext
from .enums import (
    ConversationStatus,
    EventType,
    MessageKind,
    ParticipantKind,
    ProviderKind,
    TurnOutcome,
)
from .events import ConversationEvent, ConversationSnapshot
from .messages import Message
from .participants import CustomParticipant, KnownParticipant, Participant, ProviderRef

__all__ = [
    "ConversationEvent",
    "ConversationRecord",
    "ConversationSnapshot",
    "ConversationStatus",
    "CustomParticipant",
    "EventType",
    "GenerationRequest",
    "KnownParticipant",
    "Message",
    "MessageKind",
    "Participant",
    "ParticipantKind",
    "ProviderKind",
    "ProviderRef",
    "TurnContext",
    "TurnOutcome",
]
